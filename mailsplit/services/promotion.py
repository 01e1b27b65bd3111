"""
Auto-promoter - once a test has a winner, route all future sends to it
(winner 100%, every sibling 0%).

Idempotent: calling again on a completed test re-applies the same allocation and
keeps returning True; a completed test without a winner keeps returning False.
"""
import logging
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from mailsplit.errors import ABTestNotRunning
from mailsplit.models.ab_test import ABTestStatus, ABTestVariant
from mailsplit.services.lifecycle import get_test
from mailsplit.services.variant_store import IdLike, TOTAL_ALLOCATION, set_traffic_allocation
from mailsplit.services.winner import determine_winner

logger = logging.getLogger(__name__)


async def _route_all_traffic(db: AsyncSession, test_id: uuid.UUID, winner_id: uuid.UUID) -> int:
    """Rewrite allocations so winner_id gets 100%. Returns the number of rows changed."""
    result = await db.execute(
        select(ABTestVariant)
        .where(ABTestVariant.test_id == test_id)
        .order_by(ABTestVariant.position)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    variants = result.scalars().all()

    changed = 0
    for variant in variants:
        target = TOTAL_ALLOCATION if variant.id == winner_id else 0
        if variant.traffic_allocation != target:
            await set_traffic_allocation(db, variant.id, target)
            changed += 1

    await db.commit()
    return changed


async def auto_promote(db: AsyncSession, test_id: IdLike) -> bool:
    """
    Evaluate the test and, if a winner exists, give it all traffic.

    Returns:
        True when a winner exists (newly found or already declared), else False

    Raises:
        ABTestNotFound: unknown test
        ABTestNotRunning: test was cancelled
    """
    test = await get_test(db, test_id)
    tid = test.id

    if test.status == ABTestStatus.RUNNING.value:
        try:
            winner = await determine_winner(db, tid)
        except ABTestNotRunning:
            # A concurrent evaluation completed it first - fall through to its result
            test = await get_test(db, tid)
            if test.status != ABTestStatus.COMPLETED.value:
                raise
        else:
            if winner is None:
                return False
            test = await get_test(db, tid)

    if test.status != ABTestStatus.COMPLETED.value:
        raise ABTestNotRunning(tid, test.status)

    if test.winner_variant_id is None:
        return False

    changed = await _route_all_traffic(db, tid, test.winner_variant_id)
    if changed:
        logger.info(
            "Auto-promoted A/B test %s: variant %s now receives 100%% of traffic",
            str(tid)[:8], str(test.winner_variant_id)[:8],
        )
    return True
