"""
Test lifecycle manager - creation, status transitions and queries for A/B tests.
One-Writer for the ab_tests table (the winner evaluator owns running -> completed).

State machine:
    draft/running -> completed   (winner evaluator only)
    running       -> cancelled   (owner)
    completed, cancelled          terminal
Tests are created directly in running; there is no activation step. Nothing
ever writes draft, so the evaluator and transition_status only accept running
tests (EVALUABLE_STATUSES).
"""
import logging
from datetime import datetime, timezone
from typing import Iterable, Optional, Union

from sqlalchemy import select, update, and_
from sqlalchemy.ext.asyncio import AsyncSession

from mailsplit.errors import ABTestNotFound, ABTestNotRunning
from mailsplit.models.ab_test import ABTest, ABTestStatus, ABTestVariant, EmailType
from mailsplit.services.variant_store import IdLike, create_variants, to_uuid, validate_allocation

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    ABTestStatus.DRAFT: {ABTestStatus.COMPLETED},
    ABTestStatus.RUNNING: {ABTestStatus.COMPLETED, ABTestStatus.CANCELLED},
    ABTestStatus.COMPLETED: set(),
    ABTestStatus.CANCELLED: set(),
}

EVALUABLE_STATUSES = (ABTestStatus.RUNNING.value,)


def can_transition(current: Union[ABTestStatus, str], target: Union[ABTestStatus, str]) -> bool:
    return ABTestStatus(target) in ALLOWED_TRANSITIONS[ABTestStatus(current)]


async def create_test(
    db: AsyncSession,
    owner_id: IdLike,
    name: str,
    email_type: Union[EmailType, str],
    variant_specs: Iterable,
) -> tuple[ABTest, list[ABTestVariant]]:
    """
    Create a running A/B test together with its variants in one transaction.

    Raises:
        InvalidAllocation: allocations do not sum to 100 - nothing is persisted
    """
    variant_specs = list(variant_specs)
    validate_allocation(variant_specs)

    test = ABTest(
        owner_id=to_uuid(owner_id),
        name=name,
        email_type=EmailType(email_type).value,
        status=ABTestStatus.RUNNING.value,
    )
    db.add(test)
    await db.flush()

    variants = await create_variants(db, test.id, variant_specs)
    await db.commit()

    logger.info(
        "Created A/B test: %s (%s) with %d variants for owner %s",
        str(test.id)[:8], test.email_type, len(variants), str(test.owner_id)[:8],
        extra={"test_id": str(test.id), "owner_id": str(test.owner_id)},
    )
    return test, variants


async def get_test(db: AsyncSession, test_id: IdLike) -> ABTest:
    tid = to_uuid(test_id)
    test = await db.get(ABTest, tid, populate_existing=True)
    if not test:
        raise ABTestNotFound(tid)
    return test


async def list_tests_for_owner(
    db: AsyncSession,
    owner_id: IdLike,
    status: Optional[Union[ABTestStatus, str]] = None,
) -> list[ABTest]:
    """All tests of an owner, newest first."""
    conditions = [ABTest.owner_id == to_uuid(owner_id)]
    if status is not None:
        conditions.append(ABTest.status == ABTestStatus(status).value)

    result = await db.execute(
        select(ABTest)
        .where(and_(*conditions))
        .order_by(ABTest.created_at.desc())
    )
    return list(result.scalars().all())


async def list_running_tests(db: AsyncSession) -> list[ABTest]:
    result = await db.execute(
        select(ABTest)
        .where(ABTest.status == ABTestStatus.RUNNING.value)
        .order_by(ABTest.created_at)
    )
    return list(result.scalars().all())


async def transition_status(
    db: AsyncSession,
    test_id: IdLike,
    target: ABTestStatus,
    **values,
) -> bool:
    """
    Compare-and-swap a running test into target status (flushed, not committed).

    Returns:
        True if this call performed the transition, False if the test was no
        longer running
    """
    result = await db.execute(
        update(ABTest)
        .where(
            and_(
                ABTest.id == to_uuid(test_id),
                ABTest.status.in_(EVALUABLE_STATUSES),
            )
        )
        .values(status=target.value, **values)
    )
    await db.flush()
    return result.rowcount == 1


async def cancel_test(db: AsyncSession, test_id: IdLike) -> ABTest:
    """
    Manually stop a running test. No evaluation or promotion happens afterwards.

    Raises:
        ABTestNotFound: unknown test
        ABTestNotRunning: test already completed or cancelled
    """
    test = await get_test(db, test_id)
    if not can_transition(test.status, ABTestStatus.CANCELLED):
        raise ABTestNotRunning(test.id, test.status)

    tid = test.id
    swapped = await transition_status(
        db, tid, ABTestStatus.CANCELLED,
        cancelled_at=datetime.now(timezone.utc),
    )
    if not swapped:
        await db.rollback()
        current = await get_test(db, tid)
        raise ABTestNotRunning(tid, current.status)

    await db.commit()
    logger.info("Cancelled A/B test %s", str(tid)[:8])
    return await get_test(db, tid)
