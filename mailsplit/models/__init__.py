"""
Database models - import all models here so Alembic can discover them.
"""
from mailsplit.models.ab_test import (
    ABTest,
    ABTestVariant,
    ABTestSnapshot,
    ABTestStatus,
    EmailType,
    EngagementKind,
)

__all__ = [
    "ABTest",
    "ABTestVariant",
    "ABTestSnapshot",
    "ABTestStatus",
    "EmailType",
    "EngagementKind",
]
