"""
Test Suite Configuration
"""
import uuid
from datetime import date, datetime, timedelta, timezone
from typing import AsyncGenerator, List, Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from judicial_cache.config import CacheSettings
from judicial_cache.database import create_session_factory
from judicial_cache.database.models import Base, FactCase


class FrozenClock:
    """Controllable clock handed to the stores"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2026, 6, 15, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def cache_settings() -> CacheSettings:
    """Create test settings"""
    return CacheSettings(
        aggregate_window_years=3,
        summary_window_years=3,
        analytics_ready_threshold=500,
        reconcile_batch_size=2,
        analytics_version=1,
        stale_entry_days=90,
        stale_clear_days=180,
    )


@pytest_asyncio.fixture
async def test_engine() -> AsyncGenerator[AsyncEngine, None]:
    """In-memory database, fresh per test"""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(test_engine)


@pytest.fixture
def add_cases(session_factory):
    """Insert case facts for a judge, one per decision date"""
    async def _add(judge_id: Optional[uuid.UUID], decision_dates: List[Optional[date]]) -> None:
        async with session_factory() as session:
            async with session.begin():
                session.add_all([
                    FactCase(
                        case_id=uuid.uuid4(),
                        judge_id=judge_id,
                        decision_date=decided,
                        case_type="civil",
                        outcome="affirmed",
                    )
                    for decided in decision_dates
                ])

    return _add
