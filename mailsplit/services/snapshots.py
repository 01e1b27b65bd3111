"""
Performance snapshot recorder - append-only, timestamped copies of every
variant's metrics for trend charts.

Each snapshot row also stores the highest confidence level the variant reaches
against any sibling at that moment. Rows are never updated or deleted.
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from mailsplit.models.ab_test import ABTestSnapshot, ABTestVariant
from mailsplit.services.lifecycle import get_test
from mailsplit.services.significance import compare_proportions
from mailsplit.services.variant_store import IdLike, list_variants, to_uuid

logger = logging.getLogger(__name__)

SNAPSHOT_FIELDS = (
    "sent_count", "open_count", "click_count", "reply_count", "conversion_count",
    "open_rate", "click_rate", "reply_rate", "conversion_rate",
)


def max_confidence_against_others(variant, variants) -> int:
    best = 0
    for other in variants:
        if other.id == variant.id:
            continue
        best = max(best, compare_proportions(variant, other).confidence_level)
    return best


async def create_snapshot(
    db: AsyncSession,
    test_id: IdLike,
    now: Optional[datetime] = None,
) -> list[ABTestSnapshot]:
    """
    Record one snapshot row per variant, all sharing the same timestamp.

    Args:
        test_id: Test to capture
        now: Snapshot timestamp (defaults to current UTC time)

    Raises:
        ABTestNotFound: unknown test
    """
    test = await get_test(db, test_id)
    variants = await list_variants(db, test.id)
    snapshot_at = now or datetime.now(timezone.utc)

    snapshots = []
    for variant in variants:
        snapshot = ABTestSnapshot(
            test_id=test.id,
            variant_id=variant.id,
            snapshot_at=snapshot_at,
            max_confidence=max_confidence_against_others(variant, variants),
            **{field: getattr(variant, field) for field in SNAPSHOT_FIELDS},
        )
        db.add(snapshot)
        snapshots.append(snapshot)

    await db.commit()

    logger.info(
        "Recorded %d performance snapshots for A/B test %s",
        len(snapshots), str(test.id)[:8],
    )
    return snapshots


async def list_snapshots(db: AsyncSession, test_id: IdLike) -> list[ABTestSnapshot]:
    """Snapshot history, oldest first (variant creation order within a timestamp)."""
    result = await db.execute(
        select(ABTestSnapshot)
        .outerjoin(ABTestVariant, ABTestVariant.id == ABTestSnapshot.variant_id)
        .where(ABTestSnapshot.test_id == to_uuid(test_id))
        .order_by(ABTestSnapshot.snapshot_at, ABTestVariant.position)
    )
    return list(result.scalars().all())


async def latest_snapshot_at(db: AsyncSession, test_id: IdLike) -> Optional[datetime]:
    result = await db.execute(
        select(func.max(ABTestSnapshot.snapshot_at))
        .where(ABTestSnapshot.test_id == to_uuid(test_id))
    )
    return result.scalar()
