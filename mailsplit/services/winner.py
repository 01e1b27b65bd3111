"""
Winner evaluator - decides whether an A/B test has a statistically significant
winner and, if so, completes the test.

Decision rule:
1. Sort variants by conversion_rate (desc; ties on the rounded rate go to the
   higher exact proportion, then creation order)
2. Compare the leader with the runner-up (two-proportion Z-test)
3. Winner iff significant AND confidence >= 95%
4. Mark the winner and move the test running -> completed via compare-and-swap,
   so two concurrent evaluations can never both declare a winner

Only the top two are compared; see DESIGN.md for why no multi-way correction.
"""
import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from mailsplit.errors import ABTestNotRunning
from mailsplit.models.ab_test import ABTestStatus, ABTestVariant
from mailsplit.services.lifecycle import get_test, transition_status
from mailsplit.services.significance import (
    SignificanceResult,
    compare_proportions,
    conversion_proportion,
)
from mailsplit.services.variant_store import IdLike, list_variants, set_winner

logger = logging.getLogger(__name__)

WINNER_CONFIDENCE_THRESHOLD = 95


class EvaluationOutcome(str, enum.Enum):
    WINNER_FOUND = "winner_found"
    NO_WINNER_YET = "no_winner_yet"
    NOT_ELIGIBLE = "not_eligible"


@dataclass
class Evaluation:
    outcome: EvaluationOutcome
    winner: Optional[ABTestVariant] = None
    significance: Optional[SignificanceResult] = None
    status: Optional[str] = None


def rank_by_conversion(variants: list) -> list:
    return sorted(
        variants,
        key=lambda v: (-v.conversion_rate, -conversion_proportion(v), v.position),
    )


def is_decisive(significance: SignificanceResult) -> bool:
    return (
        significance.is_significant
        and significance.confidence_level >= WINNER_CONFIDENCE_THRESHOLD
    )


async def _evaluate(db: AsyncSession, test_id: IdLike) -> Evaluation:
    test = await get_test(db, test_id)
    if test.status != ABTestStatus.RUNNING.value:
        raise ABTestNotRunning(test.id, test.status)

    variants = rank_by_conversion(await list_variants(db, test.id))
    if len(variants) < 2:
        return Evaluation(outcome=EvaluationOutcome.NO_WINNER_YET, status=test.status)

    leader, runner_up = variants[0], variants[1]
    significance = compare_proportions(leader, runner_up)

    if not is_decisive(significance):
        logger.debug(
            "A/B test %s: no winner yet (%s vs %s, confidence=%d%%)",
            str(test.id)[:8], leader.label, runner_up.label, significance.confidence_level,
        )
        return Evaluation(
            outcome=EvaluationOutcome.NO_WINNER_YET,
            significance=significance,
            status=test.status,
        )

    # Single writer: only the evaluation that flips running -> completed marks a winner
    tid = test.id
    swapped = await transition_status(
        db, tid, ABTestStatus.COMPLETED,
        winner_variant_id=leader.id,
        completed_at=datetime.now(timezone.utc),
    )
    if not swapped:
        await db.rollback()
        current = await get_test(db, tid)
        raise ABTestNotRunning(tid, current.status)

    await set_winner(db, leader.id)
    await db.commit()

    logger.info(
        "A/B test winner: test=%s variant=%s conversion_rate=%d%% vs %s %d%% (confidence=%d%%, p=%.4f)",
        str(test.id)[:8], leader.label, leader.conversion_rate,
        runner_up.label, runner_up.conversion_rate,
        significance.confidence_level, significance.p_value,
        extra={
            "test_id": str(tid),
            "variant_id": str(leader.id),
            "outcome": EvaluationOutcome.WINNER_FOUND.value,
        },
    )
    return Evaluation(
        outcome=EvaluationOutcome.WINNER_FOUND,
        winner=leader,
        significance=significance,
        status=ABTestStatus.COMPLETED.value,
    )


async def determine_winner(db: AsyncSession, test_id: IdLike) -> Optional[ABTestVariant]:
    """
    Declare a winner when the leading variant beats the runner-up significantly.

    Returns:
        The winning variant, or None while the evidence is insufficient

    Raises:
        ABTestNotFound: unknown test
        ABTestNotRunning: test is completed/cancelled (caller error, not retried)
    """
    evaluation = await _evaluate(db, test_id)
    return evaluation.winner


async def evaluate_test(db: AsyncSession, test_id: IdLike) -> Evaluation:
    """
    Tri-state wrapper around determine_winner for API callers:
    winner_found / no_winner_yet / not_eligible.

    Raises:
        ABTestNotFound: unknown test
    """
    try:
        return await _evaluate(db, test_id)
    except ABTestNotRunning as e:
        return Evaluation(outcome=EvaluationOutcome.NOT_ELIGIBLE, status=e.status)
