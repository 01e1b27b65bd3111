"""A/B testing schema - tests, variants and performance snapshots.

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _metric_columns() -> list:
    return [
        sa.Column(name, sa.Integer, nullable=False, server_default="0")
        for name in (
            "sent_count", "open_count", "click_count", "reply_count", "conversion_count",
            "open_rate", "click_rate", "reply_rate", "conversion_rate",
        )
    ]


def upgrade() -> None:
    # Tests
    op.create_table(
        "ab_tests",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("owner_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("email_type", sa.String(30), nullable=False, server_default="custom"),
        sa.Column("status", sa.String(20), nullable=False, server_default="running"),
        sa.Column("winner_variant_id", postgresql.UUID(as_uuid=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("completed_at", sa.DateTime(timezone=True)),
        sa.Column("cancelled_at", sa.DateTime(timezone=True)),
    )
    op.create_index("ix_ab_tests_owner_created", "ab_tests", ["owner_id", "created_at"])
    op.create_index("ix_ab_tests_status", "ab_tests", ["status"])

    # Variants
    op.create_table(
        "ab_test_variants",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "test_id", postgresql.UUID(as_uuid=True),
            sa.ForeignKey("ab_tests.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("position", sa.Integer, nullable=False, server_default="0"),
        sa.Column("label", sa.String(100), nullable=False),
        sa.Column("subject_line", sa.String(500), nullable=False),
        sa.Column("body", sa.Text, nullable=False),
        sa.Column("traffic_allocation", sa.Integer, nullable=False, server_default="0"),
        *_metric_columns(),
        sa.Column("is_winner", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint(
            "traffic_allocation >= 0 AND traffic_allocation <= 100",
            name="ck_ab_test_variants_allocation_range",
        ),
    )
    op.create_index("ix_ab_test_variants_test", "ab_test_variants", ["test_id", "position"])
    op.create_index("ix_ab_test_variants_winner", "ab_test_variants", ["is_winner"])

    # Snapshots (no FKs - history outlives the test)
    op.create_table(
        "ab_test_snapshots",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("test_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("variant_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("snapshot_at", sa.DateTime(timezone=True), nullable=False),
        *_metric_columns(),
        sa.Column("max_confidence", sa.Integer, nullable=False, server_default="0"),
    )
    op.create_index("ix_ab_test_snapshots_test_at", "ab_test_snapshots", ["test_id", "snapshot_at"])
    op.create_index("ix_ab_test_snapshots_variant", "ab_test_snapshots", ["variant_id"])


def downgrade() -> None:
    op.drop_index("ix_ab_test_snapshots_variant", table_name="ab_test_snapshots")
    op.drop_index("ix_ab_test_snapshots_test_at", table_name="ab_test_snapshots")
    op.drop_table("ab_test_snapshots")
    op.drop_index("ix_ab_test_variants_winner", table_name="ab_test_variants")
    op.drop_index("ix_ab_test_variants_test", table_name="ab_test_variants")
    op.drop_table("ab_test_variants")
    op.drop_index("ix_ab_tests_status", table_name="ab_tests")
    op.drop_index("ix_ab_tests_owner_created", table_name="ab_tests")
    op.drop_table("ab_tests")
