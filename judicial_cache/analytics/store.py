"""
Judge Analytics Cache Store

Persistent cache of computed analytics, one JSON object per judge:
- Reads never compute; a miss is None
- Writes replace the whole payload
- Only the privileged writer may write or invalidate
- Age statistics and stale-entry cleanup for monitoring
"""

import json
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, Mapping, Optional

import structlog
from pydantic import BaseModel, ConfigDict
from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from judicial_cache.access import AccessGate, Action, Caller, Resource, default_gate
from judicial_cache.clock import Clock, UtcDateTime, as_utc, utcnow
from judicial_cache.config import CacheSettings, get_settings
from judicial_cache.database.models import JudgeAnalyticsCache
from judicial_cache.errors import ValidationError

logger = structlog.get_logger(__name__)


class CachedAnalytics(BaseModel):
    """A cache hit"""
    model_config = ConfigDict(from_attributes=True)

    judge_id: uuid.UUID
    analytics: Dict[str, Any]
    analytics_version: int
    created_at: UtcDateTime
    updated_at: UtcDateTime


class CacheStats(BaseModel):
    """Cache size and age distribution"""
    total_entries: int = 0
    oldest_entry: Optional[datetime] = None
    newest_entry: Optional[datetime] = None
    average_age_days: Optional[float] = None
    stale_entries: int = 0
    stale_after_days: int


class StaleClearReport(BaseModel):
    """Result of a stale-entry cleanup"""
    deleted_count: int = 0
    oldest_deleted: Optional[datetime] = None
    newest_deleted: Optional[datetime] = None
    cutoff: datetime


def _non_string_key(value: Any) -> Optional[Any]:
    """First mapping key anywhere in `value` that is not a str"""
    if isinstance(value, Mapping):
        for key, item in value.items():
            if not isinstance(key, str):
                return key
            found = _non_string_key(item)
            if found is not None:
                return found
    elif isinstance(value, (list, tuple)):
        for item in value:
            found = _non_string_key(item)
            if found is not None:
                return found
    return None


def _normalize_payload(payload: Any) -> Dict[str, Any]:
    """
    Check that a payload is a JSON object and return its stored form.

    Keys must be strings at every level and numbers must be finite, so what
    get() returns equals what put() was given.
    """
    if not isinstance(payload, Mapping):
        raise ValidationError(f"Analytics payload must be a JSON object, got {type(payload).__name__}")

    bad_key = _non_string_key(payload)
    if bad_key is not None:
        raise ValidationError(f"Analytics payload keys must be strings, got {bad_key!r}")

    try:
        return json.loads(json.dumps(payload, allow_nan=False))
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Analytics payload is not JSON serializable: {e}", original_error=e) from e


class AnalyticsCacheStore:
    """
    Analytics cache keyed by judge.

    Entry age is measured from updated_at, the time of the last write.

    Example:
        store = AnalyticsCacheStore(session_factory)
        await store.put(Caller.service(), judge_id, analytics)
        hit = await store.get(Caller.anonymous(), judge_id)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        gate: AccessGate = default_gate,
        settings: Optional[CacheSettings] = None,
        clock: Clock = utcnow,
    ):
        self._session_factory = session_factory
        self._gate = gate
        self._settings = settings or get_settings().cache
        self._clock = clock

    async def get(self, caller: Caller, judge_id: uuid.UUID) -> Optional[CachedAnalytics]:
        """
        Get cached analytics.

        Returns:
            The cached entry, or None on a miss
        """
        self._gate.require(caller, Resource.ANALYTICS_CACHE, Action.READ)

        async with self._session_factory() as session:
            entry = await session.get(JudgeAnalyticsCache, judge_id)

        if entry is None:
            logger.debug("Analytics cache miss", judge_id=str(judge_id))
            return None
        return CachedAnalytics.model_validate(entry)

    async def put(
        self,
        caller: Caller,
        judge_id: uuid.UUID,
        payload: Mapping[str, Any],
        analytics_version: Optional[int] = None,
    ) -> CachedAnalytics:
        """
        Insert or fully replace a judge's cached analytics.

        Raises:
            AuthorizationError: If the caller is not the privileged writer
            ValidationError: If the payload is not a JSON object with string keys
                and finite numbers, or the version is below 1
        """
        self._gate.require(caller, Resource.ANALYTICS_CACHE, Action.WRITE)

        analytics = _normalize_payload(payload)
        version = self._settings.analytics_version if analytics_version is None else analytics_version
        if version < 1:
            raise ValidationError(f"analytics_version must be at least 1, got {version}")

        try:
            entry = await self._upsert(judge_id, analytics, version)
        except IntegrityError:
            logger.info("Analytics cache insert raced, retrying", judge_id=str(judge_id))
            entry = await self._upsert(judge_id, analytics, version)

        logger.info(
            "Analytics cached",
            judge_id=str(judge_id),
            analytics_version=version,
            keys=len(analytics),
        )
        return CachedAnalytics.model_validate(entry)

    async def _upsert(self, judge_id: uuid.UUID, analytics: Dict[str, Any], version: int) -> JudgeAnalyticsCache:
        async with self._session_factory() as session:
            async with session.begin():
                now = self._clock()
                entry = await session.get(JudgeAnalyticsCache, judge_id, with_for_update=True)
                if entry is None:
                    entry = JudgeAnalyticsCache(judge_id=judge_id, created_at=now)
                    session.add(entry)
                entry.analytics = analytics
                entry.analytics_version = version
                entry.updated_at = now
        return entry

    async def invalidate(self, caller: Caller, judge_id: uuid.UUID) -> int:
        """Delete one judge's entry; returns the number of rows removed"""
        self._gate.require(caller, Resource.ANALYTICS_CACHE, Action.WRITE)

        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    delete(JudgeAnalyticsCache).where(JudgeAnalyticsCache.judge_id == judge_id)
                )

        logger.info("Analytics cache invalidated", judge_id=str(judge_id), removed=result.rowcount)
        return result.rowcount

    async def invalidate_all(self, caller: Caller) -> int:
        """Delete every entry; returns the number of rows removed"""
        self._gate.require(caller, Resource.ANALYTICS_CACHE, Action.WRITE)

        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(delete(JudgeAnalyticsCache))

        logger.warning("Analytics cache cleared", removed=result.rowcount)
        return result.rowcount

    async def clear_stale(self, caller: Caller, days_old: Optional[int] = None) -> StaleClearReport:
        """
        Delete entries not rewritten within `days_old` days.

        Regeneration is expensive, so the default window is long.
        """
        self._gate.require(caller, Resource.ANALYTICS_CACHE, Action.WRITE)
        days = self._settings.stale_clear_days if days_old is None else days_old
        if days < 0:
            raise ValidationError(f"days_old must not be negative, got {days}")

        cutoff = self._clock() - timedelta(days=days)
        is_stale = JudgeAnalyticsCache.updated_at < cutoff

        async with self._session_factory() as session:
            async with session.begin():
                found = (await session.execute(
                    select(
                        func.count(),
                        func.min(JudgeAnalyticsCache.updated_at),
                        func.max(JudgeAnalyticsCache.updated_at),
                    ).where(is_stale)
                )).one()
                result = await session.execute(delete(JudgeAnalyticsCache).where(is_stale))

        report = StaleClearReport(
            deleted_count=result.rowcount,
            oldest_deleted=as_utc(found[1]),
            newest_deleted=as_utc(found[2]),
            cutoff=cutoff,
        )
        logger.info("Stale analytics cleared", deleted=report.deleted_count, days_old=days)
        return report

    async def stats(self, caller: Caller) -> CacheStats:
        """Entry count, oldest/newest write, average age and stale count"""
        self._gate.require(caller, Resource.ANALYTICS_CACHE, Action.READ)

        now = self._clock()
        stale_cutoff = now - timedelta(days=self._settings.stale_entry_days)

        async with self._session_factory() as session:
            total, oldest, newest, stale = (await session.execute(
                select(
                    func.count(),
                    func.min(JudgeAnalyticsCache.updated_at),
                    func.max(JudgeAnalyticsCache.updated_at),
                    func.count().filter(JudgeAnalyticsCache.updated_at < stale_cutoff),
                )
            )).one()
            written = (await session.scalars(select(JudgeAnalyticsCache.updated_at))).all()

        average_age_days = None
        if written:
            ages = [(now - as_utc(ts)).total_seconds() / 86400 for ts in written]
            average_age_days = round(sum(ages) / len(ages), 2)

        return CacheStats(
            total_entries=total,
            oldest_entry=as_utc(oldest),
            newest_entry=as_utc(newest),
            average_age_days=average_age_days,
            stale_entries=stale,
            stale_after_days=self._settings.stale_entry_days,
        )
