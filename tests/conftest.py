"""
Test configuration and fixtures.
Uses SQLite in-memory for fast tests. Mocks Redis.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("AB_ENGINE_ENABLED", "false")

import pytest
import uuid
from unittest.mock import AsyncMock, patch
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from mailsplit.database import Base
import mailsplit.models  # noqa: F401  (registers tables on Base.metadata)


@pytest.fixture
async def db():
    """In-memory SQLite database for tests."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session
    await engine.dispose()


@pytest.fixture
async def session_factory(tmp_path):
    """File-backed SQLite so several sessions can run against the same rows at once."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'concurrency.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def mock_redis():
    """Mock for async Redis - prevents real Redis calls in tests."""
    with patch("mailsplit.utils.locks.get_redis", new_callable=AsyncMock) as mock:
        redis_mock = AsyncMock()
        redis_mock.set = AsyncMock(return_value=True)
        redis_mock.eval = AsyncMock(return_value=1)
        redis_mock.ping = AsyncMock(return_value=True)
        mock.return_value = redis_mock
        yield redis_mock


@pytest.fixture
def make_ab_test(db):
    """
    Factory for a running test with variants.

    Usage:
        test, variants = await make_ab_test([("A", 50), ("B", 50)])

    Pass session= to create it through another session (e.g. session_factory).
    """
    from mailsplit.schemas.ab_test import VariantSpec
    from mailsplit.services.lifecycle import create_test

    async def _make(
        allocations=(("A", 50), ("B", 50)), owner_id=None, name="Subject line test", session=None,
    ):
        specs = [
            VariantSpec(
                label=label,
                subject_line=f"Subject {label}",
                body=f"Body {label}",
                traffic_allocation=pct,
            )
            for label, pct in allocations
        ]
        return await create_test(
            session or db,
            owner_id=owner_id or uuid.uuid4(),
            name=name,
            email_type="follow_up",
            variant_specs=specs,
        )

    return _make


@pytest.fixture
def set_metrics(db):
    """Write sent/conversion counters straight onto a variant and recompute its rates."""
    from mailsplit.services.variant_store import recompute_rates

    async def _set(variant, sent, conversions, opens=0, session=None):
        session = session or db
        variant.sent_count = sent
        variant.conversion_count = conversions
        variant.open_count = opens
        await session.commit()
        return await recompute_rates(session, variant.id)

    return _set
