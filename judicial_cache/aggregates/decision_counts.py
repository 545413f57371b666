"""
Judge Decision Count Cache

Pre-aggregated decision counts by judge and calendar year. Replaces the
one-query-per-judge summary pattern with a single lookup against a table that
a scheduled job rebuilds from the case fact table.

Rebuilds never touch the generation readers are using. Each rebuild writes a
complete new generation with one INSERT ... SELECT, flips the pointer in
aggregate_generations and drops the older generations, all in one
transaction. Readers resolve the active generation inside their own query, so
they see either the old bucket set or the new one, never a mix.
"""

import asyncio
import time
import uuid
from collections import defaultdict
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import structlog
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import Integer, cast, delete, extract, func, insert, literal, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from judicial_cache.access import AccessGate, Action, Caller, Resource, default_gate
from judicial_cache.clock import Clock, utcnow
from judicial_cache.config import CacheSettings, get_settings
from judicial_cache.database.models import (
    AggJudgeDecisionCount,
    AggregateGeneration,
    AggregateRefreshLog,
    FactCase,
    RefreshStatus,
)
from judicial_cache.errors import ValidationError

logger = structlog.get_logger(__name__)

AGGREGATE_NAME = "judge_decision_counts"


class YearlyCount(BaseModel):
    """Decision count for one calendar year"""
    year: int
    count: int


class DecisionSummary(BaseModel):
    """Decision counts for one judge within a trailing window"""
    judge_id: uuid.UUID
    yearly_counts: List[YearlyCount] = Field(default_factory=list)
    total_recent: int = 0
    latest_decision: Optional[date] = None
    earliest_decision: Optional[date] = None

    @classmethod
    def from_buckets(
        cls,
        judge_id: uuid.UUID,
        buckets: Sequence[AggJudgeDecisionCount],
    ) -> "DecisionSummary":
        """Fold a judge's buckets into a summary; no buckets gives the zero summary."""
        if not buckets:
            return cls(judge_id=judge_id)

        ordered = sorted(buckets, key=lambda b: b.year, reverse=True)
        latest = [b.latest_decision_date for b in ordered if b.latest_decision_date]
        earliest = [b.earliest_decision_date for b in ordered if b.earliest_decision_date]

        return cls(
            judge_id=judge_id,
            yearly_counts=[YearlyCount(year=b.year, count=b.decision_count) for b in ordered],
            total_recent=sum(b.decision_count for b in ordered),
            latest_decision=max(latest) if latest else None,
            earliest_decision=min(earliest) if earliest else None,
        )


class RebuildReport(BaseModel):
    """Result of a rebuild attempt"""
    aggregate_name: str = AGGREGATE_NAME
    status: RefreshStatus
    generation: Optional[int] = None
    row_count: int = 0
    duration_ms: float = 0
    error_message: Optional[str] = None
    started_at: datetime
    completed_at: Optional[datetime] = None

    @property
    def success(self) -> bool:
        return self.status == RefreshStatus.COMPLETED


class RefreshRecord(BaseModel):
    """One row of the refresh log"""
    model_config = ConfigDict(from_attributes=True)

    refresh_id: int
    aggregate_name: str
    status: RefreshStatus
    generation: Optional[int] = None
    row_count: int = 0
    duration_ms: float = 0
    error_message: Optional[str] = None
    started_at: datetime
    completed_at: Optional[datetime] = None


def trailing_window_start(today: date, years: int) -> date:
    """Same calendar day `years` years before `today` (Feb 29 maps to Feb 28)."""
    try:
        return today.replace(year=today.year - years)
    except ValueError:
        return today.replace(year=today.year - years, day=28)


class DecisionCountCache:
    """
    Per-judge, per-year decision count cache.

    Example:
        cache = DecisionCountCache(session_factory)
        report = await cache.rebuild(Caller.service())
        summaries = await cache.get_batch_summaries(Caller.anonymous(), judge_ids)
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
        self._rebuild_lock = asyncio.Lock()

    # -------------------------------------------------------------------------
    # Rebuild
    # -------------------------------------------------------------------------

    async def rebuild(self, caller: Caller) -> RebuildReport:
        """
        Recompute every bucket from the fact table and swap it in.

        Failures are absorbed: the previous generation stays active and the
        returned report carries the error.
        """
        self._gate.require(caller, Resource.DECISION_COUNTS, Action.WRITE)

        async with self._rebuild_lock:
            started_at = self._clock()
            start = time.perf_counter()

            logger.info(
                "Starting decision count rebuild",
                aggregate=AGGREGATE_NAME,
                window_years=self._settings.aggregate_window_years,
            )

            try:
                generation, row_count = await self._build_and_swap(started_at.date())
            except Exception as e:
                duration_ms = round((time.perf_counter() - start) * 1000, 2)
                logger.error(
                    "Decision count rebuild failed",
                    aggregate=AGGREGATE_NAME,
                    error=str(e),
                    error_type=type(e).__name__,
                    duration_ms=duration_ms,
                )
                report = RebuildReport(
                    status=RefreshStatus.FAILED,
                    duration_ms=duration_ms,
                    error_message=str(e) or type(e).__name__,
                    started_at=started_at,
                    completed_at=self._clock(),
                )
            else:
                duration_ms = round((time.perf_counter() - start) * 1000, 2)
                report = RebuildReport(
                    status=RefreshStatus.COMPLETED,
                    generation=generation,
                    row_count=row_count,
                    duration_ms=duration_ms,
                    started_at=started_at,
                    completed_at=self._clock(),
                )
                logger.info(
                    "Decision count rebuild completed",
                    aggregate=AGGREGATE_NAME,
                    generation=generation,
                    row_count=row_count,
                    duration_ms=duration_ms,
                )

            await self._record_refresh(report)
            return report

    async def _build_and_swap(self, today: date) -> Tuple[int, int]:
        window_start = trailing_window_start(today, self._settings.aggregate_window_years)

        async with self._session_factory() as session:
            async with session.begin():
                pointer = await session.get(AggregateGeneration, AGGREGATE_NAME, with_for_update=True)
                if pointer is None:
                    pointer = AggregateGeneration(aggregate_name=AGGREGATE_NAME, active_generation=0)
                    session.add(pointer)
                    await session.flush()

                generation = pointer.active_generation + 1
                await self._insert_buckets(session, generation, window_start, today)

                row_count = await session.scalar(
                    select(func.count())
                    .select_from(AggJudgeDecisionCount)
                    .where(AggJudgeDecisionCount.generation == generation)
                )

                pointer.active_generation = generation
                pointer.refreshed_at = self._clock()
                await session.flush()

                await session.execute(
                    delete(AggJudgeDecisionCount).where(AggJudgeDecisionCount.generation < generation)
                )

        return generation, row_count or 0

    async def _insert_buckets(
        self,
        session: AsyncSession,
        generation: int,
        window_start: date,
        today: date,
    ) -> None:
        year = cast(extract("year", FactCase.decision_date), Integer)

        buckets = (
            select(
                cast(literal(generation), Integer),
                FactCase.judge_id,
                year,
                func.count(),
                func.min(FactCase.decision_date),
                func.max(FactCase.decision_date),
            )
            .where(
                FactCase.judge_id.is_not(None),
                FactCase.decision_date.is_not(None),
                FactCase.decision_date >= window_start,
                FactCase.decision_date <= today,
            )
            .group_by(FactCase.judge_id, year)
        )

        await session.execute(
            insert(AggJudgeDecisionCount).from_select(
                [
                    "generation",
                    "judge_id",
                    "year",
                    "decision_count",
                    "earliest_decision_date",
                    "latest_decision_date",
                ],
                buckets,
            )
        )

    async def _record_refresh(self, report: RebuildReport) -> None:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    session.add(AggregateRefreshLog(
                        aggregate_name=report.aggregate_name,
                        status=report.status.value,
                        generation=report.generation,
                        row_count=report.row_count,
                        duration_ms=report.duration_ms,
                        error_message=report.error_message,
                        started_at=report.started_at,
                        completed_at=report.completed_at,
                    ))
        except Exception as e:
            logger.error("Failed to record refresh log entry", error=str(e), status=report.status.value)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def _start_year(self, window_years: Optional[int]) -> int:
        years = self._settings.summary_window_years if window_years is None else window_years
        if years < 1:
            raise ValidationError(f"window_years must be at least 1, got {years}")
        return self._clock().year - years + 1

    @staticmethod
    def _active_generation():
        return (
            select(AggregateGeneration.active_generation)
            .where(AggregateGeneration.aggregate_name == AGGREGATE_NAME)
            .scalar_subquery()
        )

    async def get_summary(
        self,
        caller: Caller,
        judge_id: uuid.UUID,
        window_years: Optional[int] = None,
    ) -> DecisionSummary:
        """Decision summary for one judge, served by the (generation, judge_id, year) index."""
        self._gate.require(caller, Resource.DECISION_COUNTS, Action.READ)
        start_year = self._start_year(window_years)

        async with self._session_factory() as session:
            result = await session.execute(
                select(AggJudgeDecisionCount)
                .where(
                    AggJudgeDecisionCount.generation == self._active_generation(),
                    AggJudgeDecisionCount.judge_id == judge_id,
                    AggJudgeDecisionCount.year >= start_year,
                )
                .order_by(AggJudgeDecisionCount.year.desc())
            )
            buckets = result.scalars().all()

        return DecisionSummary.from_buckets(judge_id, buckets)

    async def get_batch_summaries(
        self,
        caller: Caller,
        judge_ids: Iterable[uuid.UUID],
        window_years: Optional[int] = None,
    ) -> Dict[uuid.UUID, DecisionSummary]:
        """
        Decision summaries for many judges in one query.

        Returns a mapping in input order with duplicates collapsed. Judges
        without buckets map to the zero summary.
        """
        self._gate.require(caller, Resource.DECISION_COUNTS, Action.READ)
        start_year = self._start_year(window_years)

        ids = list(dict.fromkeys(judge_ids))
        if not ids:
            return {}

        async with self._session_factory() as session:
            result = await session.execute(
                select(AggJudgeDecisionCount)
                .where(
                    AggJudgeDecisionCount.generation == self._active_generation(),
                    AggJudgeDecisionCount.judge_id.in_(ids),
                    AggJudgeDecisionCount.year >= start_year,
                )
                .order_by(AggJudgeDecisionCount.judge_id, AggJudgeDecisionCount.year.desc())
            )
            rows = result.scalars().all()

        grouped: Dict[uuid.UUID, List[AggJudgeDecisionCount]] = defaultdict(list)
        for bucket in rows:
            grouped[bucket.judge_id].append(bucket)

        logger.debug("Batch decision summaries loaded", judges=len(ids), buckets=len(rows))

        return {
            judge_id: DecisionSummary.from_buckets(judge_id, grouped.get(judge_id, []))
            for judge_id in ids
        }

    async def refresh_history(self, caller: Caller, limit: int = 20) -> List[RefreshRecord]:
        """Most recent rebuild attempts, newest first"""
        self._gate.require(caller, Resource.DECISION_COUNTS, Action.READ)

        async with self._session_factory() as session:
            result = await session.execute(
                select(AggregateRefreshLog)
                .where(AggregateRefreshLog.aggregate_name == AGGREGATE_NAME)
                .order_by(AggregateRefreshLog.started_at.desc(), AggregateRefreshLog.refresh_id.desc())
                .limit(limit)
            )
            return [RefreshRecord.model_validate(row) for row in result.scalars().all()]
