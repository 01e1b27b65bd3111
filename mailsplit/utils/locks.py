"""
Redis distributed locks - serializes evaluation, promotion and snapshotting of
the same A/B test across API workers and the scheduler.
Uses Redis SET NX with TTL for automatic expiration.

The compare-and-swap on ab_tests.status still guarantees a single winner if the
lock is unavailable; the lock keeps concurrent callers from doing wasted work.
"""
import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from typing import Optional

logger = logging.getLogger(__name__)

LOCK_POLL_INTERVAL = 0.1  # 100ms

# Redis client (lazily initialized)
_redis_client = None


async def get_redis():
    """Get or create Redis connection."""
    global _redis_client
    if _redis_client is None:
        import redis.asyncio as aioredis
        from mailsplit.config import get_settings
        _redis_client = aioredis.from_url(
            get_settings().redis_url,
            decode_responses=True,
        )
    return _redis_client


def make_lock_key(test_id: str) -> str:
    return f"mailsplit:lock:ab_test:{test_id}"


@asynccontextmanager
async def experiment_lock(
    test_id: str,
    ttl: Optional[int] = None,
    wait: Optional[float] = None,
):
    """
    Acquire a distributed lock for one A/B test.

    Usage:
        async with experiment_lock(test_id):
            # evaluate / promote / snapshot safely
    """
    if ttl is None or wait is None:
        from mailsplit.config import get_settings
        settings = get_settings()
        ttl = settings.ab_lock_ttl_seconds if ttl is None else ttl
        wait = settings.ab_lock_wait_seconds if wait is None else wait

    test_id = str(test_id)
    lock_key = make_lock_key(test_id)
    lock_value = uuid.uuid4().hex  # Unique value to ensure we only release our own lock

    acquired = False
    try:
        acquired = await _acquire_lock(lock_key, lock_value, ttl, wait)
        if not acquired:
            raise LockTimeoutError(f"Could not acquire lock for A/B test {test_id[:8]} within {wait}s")
        yield
    finally:
        if acquired:
            await _release_lock(lock_key, lock_value)


async def _acquire_lock(
    key: str,
    value: str,
    ttl: int,
    wait: float,
) -> bool:
    """Try to acquire a Redis lock with polling."""
    try:
        redis = await get_redis()

        # Immediate attempt
        was_set = await redis.set(key, value, nx=True, ex=ttl)
        if was_set:
            return True

        # Poll until timeout
        elapsed = 0.0
        while elapsed < wait:
            await asyncio.sleep(LOCK_POLL_INTERVAL)
            elapsed += LOCK_POLL_INTERVAL
            was_set = await redis.set(key, value, nx=True, ex=ttl)
            if was_set:
                return True

        logger.warning("Lock acquisition timed out for %s", key)
        return False
    except Exception as e:
        # Redis failure should not block evaluation; the status CAS still protects the winner
        logger.warning("Redis lock error for %s: %s. Proceeding without lock.", key, str(e))
        return True


async def _release_lock(key: str, value: str) -> None:
    """Release a Redis lock only if we still own it (compare-and-delete)."""
    try:
        redis = await get_redis()

        lua_script = """
        if redis.call('get', KEYS[1]) == ARGV[1] then
            return redis.call('del', KEYS[1])
        else
            return 0
        end
        """
        await redis.eval(lua_script, 1, key, value)
    except Exception as e:
        logger.warning("Redis lock release error for %s: %s", key, str(e))


class LockTimeoutError(Exception):
    """Raised when a lock cannot be acquired within the timeout."""
    pass
