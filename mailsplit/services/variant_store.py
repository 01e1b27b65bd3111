"""
Variant store - creation, counter mutation and derived-rate recomputation for
A/B test variants.
One-Writer for the ab_test_variants table.

Counter increments are applied SQL-side (col = col + 1) so concurrent tracking
events for the same variant never lose updates. Rate recomputation re-reads the
row under SELECT ... FOR UPDATE inside the same transaction.
"""
import logging
import uuid
from typing import Iterable, Union

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from mailsplit.errors import InvalidAllocation, VariantNotFound
from mailsplit.models.ab_test import (
    ABTestVariant,
    ENGAGEMENT_COUNTERS,
    EngagementKind,
    RATE_COUNTERS,
)

logger = logging.getLogger(__name__)

TOTAL_ALLOCATION = 100

IdLike = Union[str, uuid.UUID]


def to_uuid(value: IdLike) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    return uuid.UUID(str(value))


def percent(count: int, total: int) -> int:
    """Integer percentage of count/total, rounded half up. 0 when total is 0."""
    if not total or total <= 0:
        return 0
    return (200 * count + total) // (2 * total)


def validate_allocation(specs) -> None:
    """
    Check that a set of variant specs can form a test.

    Raises:
        InvalidAllocation: fewer than 2 variants, a percentage outside 0-100,
            or percentages that do not sum to exactly 100
    """
    specs = list(specs)
    if len(specs) < 2:
        raise InvalidAllocation(f"A test needs at least 2 variants, got {len(specs)}")

    for spec in specs:
        pct = spec.traffic_allocation
        if pct < 0 or pct > TOTAL_ALLOCATION:
            raise InvalidAllocation(
                f"Traffic allocation for variant {spec.label!r} must be 0-100, got {pct}"
            )

    total = sum(spec.traffic_allocation for spec in specs)
    if total != TOTAL_ALLOCATION:
        raise InvalidAllocation(f"Traffic allocation must sum to 100%, got {total}%")


async def create_variants(
    db: AsyncSession,
    test_id: IdLike,
    specs: Iterable,
) -> list[ABTestVariant]:
    """
    Add the variants of a new test to the session (flushed, not committed).

    Args:
        test_id: Parent test
        specs: Objects with label, subject_line, body, traffic_allocation

    Returns:
        Created variants in spec order
    """
    specs = list(specs)
    validate_allocation(specs)

    variants = []
    for position, spec in enumerate(specs):
        variant = ABTestVariant(
            test_id=to_uuid(test_id),
            position=position,
            label=spec.label,
            subject_line=spec.subject_line,
            body=spec.body,
            traffic_allocation=spec.traffic_allocation,
            sent_count=0,
            open_count=0,
            click_count=0,
            reply_count=0,
            conversion_count=0,
            open_rate=0,
            click_rate=0,
            reply_rate=0,
            conversion_rate=0,
            is_winner=False,
        )
        db.add(variant)
        variants.append(variant)

    await db.flush()
    return variants


async def _increment(db: AsyncSession, variant_id: IdLike, column: str) -> ABTestVariant:
    vid = to_uuid(variant_id)
    result = await db.execute(
        update(ABTestVariant)
        .where(ABTestVariant.id == vid)
        .values({column: getattr(ABTestVariant, column) + 1})
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise VariantNotFound(vid)

    variant = await _recompute(db, vid)
    await db.commit()
    return variant


async def record_sent(db: AsyncSession, variant_id: IdLike) -> ABTestVariant:
    """Count one delivered email for a variant."""
    variant = await _increment(db, variant_id, "sent_count")
    logger.debug("A/B variant %s sent=%d", str(variant.id)[:8], variant.sent_count)
    return variant


async def record_engagement(
    db: AsyncSession,
    variant_id: IdLike,
    kind: Union[EngagementKind, str],
) -> ABTestVariant:
    """
    Count one engagement event (open, click, reply or conversion) for a variant.

    Raises:
        ValueError: unknown engagement kind
        VariantNotFound: no such variant
    """
    kind = EngagementKind(kind)
    variant = await _increment(db, variant_id, ENGAGEMENT_COUNTERS[kind])
    logger.debug(
        "A/B variant %s %s recorded (conversion_rate=%d%%)",
        str(variant.id)[:8], kind.value, variant.conversion_rate,
    )
    return variant


async def _recompute(db: AsyncSession, variant_id: uuid.UUID) -> ABTestVariant:
    result = await db.execute(
        select(ABTestVariant)
        .where(ABTestVariant.id == variant_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    variant = result.scalar_one_or_none()
    if variant is None:
        raise VariantNotFound(variant_id)

    for rate_column, counter_column in RATE_COUNTERS.items():
        setattr(variant, rate_column, percent(getattr(variant, counter_column), variant.sent_count))

    await db.flush()
    return variant


async def recompute_rates(db: AsyncSession, variant_id: IdLike) -> ABTestVariant:
    """Recompute open/click/reply/conversion rates from the stored counters."""
    variant = await _recompute(db, to_uuid(variant_id))
    await db.commit()
    return variant


async def list_variants(db: AsyncSession, test_id: IdLike) -> list[ABTestVariant]:
    """All variants of a test in stable creation order."""
    result = await db.execute(
        select(ABTestVariant)
        .where(ABTestVariant.test_id == to_uuid(test_id))
        .order_by(ABTestVariant.position)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def get_variant(db: AsyncSession, variant_id: IdLike) -> ABTestVariant:
    vid = to_uuid(variant_id)
    variant = await db.get(ABTestVariant, vid, populate_existing=True)
    if not variant:
        raise VariantNotFound(vid)
    return variant


async def set_winner(db: AsyncSession, variant_id: IdLike) -> None:
    """
    Flag a variant as the winner of its test (flushed, not committed).
    At-most-one-winner is enforced by the winner evaluator, not here.
    """
    vid = to_uuid(variant_id)
    result = await db.execute(
        update(ABTestVariant)
        .where(ABTestVariant.id == vid)
        .values(is_winner=True)
    )
    if result.rowcount == 0:
        raise VariantNotFound(vid)
    await db.flush()


async def set_traffic_allocation(db: AsyncSession, variant_id: IdLike, pct: int) -> None:
    """Rewrite one variant's allocation (flushed, not committed). Auto-promotion only."""
    if pct < 0 or pct > TOTAL_ALLOCATION:
        raise InvalidAllocation(f"Traffic allocation must be 0-100, got {pct}")

    vid = to_uuid(variant_id)
    result = await db.execute(
        update(ABTestVariant)
        .where(ABTestVariant.id == vid)
        .values(traffic_allocation=pct)
    )
    if result.rowcount == 0:
        raise VariantNotFound(vid)
    await db.flush()
