"""
A/B test engine worker - periodically analyzes every running test.

Per cycle, for each running test (under its per-test lock):
1. Record a performance snapshot if the newest one is older than the interval
2. Evaluate for a winner, or auto-promote when AB_AUTO_PROMOTE is on
"""
import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from mailsplit.config import get_settings
from mailsplit.database import async_session_factory
from mailsplit.services.lifecycle import list_running_tests
from mailsplit.services.promotion import auto_promote
from mailsplit.services.snapshots import create_snapshot, latest_snapshot_at
from mailsplit.services.winner import EvaluationOutcome, evaluate_test
from mailsplit.utils.locks import LockTimeoutError, experiment_lock
from mailsplit.utils.logging import bound_test_id

logger = logging.getLogger(__name__)

HEARTBEAT_KEY = "mailsplit:worker_health:ab_test_engine"


async def _heartbeat():
    """Store heartbeat timestamp in Redis."""
    try:
        from mailsplit.utils.locks import get_redis
        redis = await get_redis()
        await redis.set(
            HEARTBEAT_KEY,
            datetime.now(timezone.utc).isoformat(),
            ex=get_settings().ab_engine_poll_seconds * 2,
        )
    except Exception as e:
        logger.debug("Heartbeat write failed: %s", str(e))


async def run_ab_test_engine():
    """Main loop - analyze running A/B tests every poll interval."""
    settings = get_settings()
    logger.info("A/B test engine started (poll every %ds)", settings.ab_engine_poll_seconds)

    # Let the API finish starting before the first cycle
    await asyncio.sleep(settings.ab_engine_startup_delay_seconds)

    while True:
        try:
            summary = await ab_test_cycle()
            logger.info(
                "A/B test cycle: analyzed=%d winners=%d promoted=%d snapshots=%d",
                summary["analyzed"], summary["winners_found"],
                summary["promoted"], summary["snapshots"],
            )
        except Exception as e:
            logger.error("A/B test engine cycle error: %s", str(e))

        await _heartbeat()
        await asyncio.sleep(settings.ab_engine_poll_seconds)


def _snapshot_due(latest: Optional[datetime], now: datetime, interval_hours: int) -> bool:
    if latest is None:
        return True
    if latest.tzinfo is None:
        latest = latest.replace(tzinfo=timezone.utc)
    return now - latest >= timedelta(hours=interval_hours)


async def _process_test(test_id, summary: dict, now: datetime) -> None:
    settings = get_settings()

    with bound_test_id(test_id):
        async with experiment_lock(str(test_id)), async_session_factory() as db:
            latest = await latest_snapshot_at(db, test_id)
            if _snapshot_due(latest, now, settings.ab_snapshot_interval_hours):
                await create_snapshot(db, test_id, now=now)
                summary["snapshots"] += 1

            if settings.ab_auto_promote:
                if await auto_promote(db, test_id):
                    summary["winners_found"] += 1
                    summary["promoted"] += 1
                    logger.info(
                        "A/B test %s promoted", str(test_id)[:8],
                        extra={"outcome": "promoted"},
                    )
            else:
                evaluation = await evaluate_test(db, test_id)
                if evaluation.outcome == EvaluationOutcome.WINNER_FOUND:
                    summary["winners_found"] += 1
                    logger.info(
                        "A/B test %s has a winner: %s",
                        str(test_id)[:8], evaluation.winner.label,
                        extra={"outcome": evaluation.outcome.value},
                    )


async def ab_test_cycle(now: Optional[datetime] = None) -> dict:
    """
    Run one engine cycle over all running tests.

    Returns:
        {"analyzed": int, "winners_found": int, "promoted": int, "snapshots": int}
    """
    now = now or datetime.now(timezone.utc)
    summary = {"analyzed": 0, "winners_found": 0, "promoted": 0, "snapshots": 0}

    async with async_session_factory() as db:
        test_ids = [test.id for test in await list_running_tests(db)]

    for test_id in test_ids:
        try:
            await _process_test(test_id, summary, now)
            summary["analyzed"] += 1
        except LockTimeoutError:
            logger.info("A/B test %s busy, skipping this cycle", str(test_id)[:8])
        except Exception as e:
            logger.error(
                "Error analyzing A/B test %s: %s",
                str(test_id)[:8], str(e),
                extra={"test_id": str(test_id)},
            )

    return summary
