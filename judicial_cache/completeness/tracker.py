"""
Completeness Tracker

One sync_progress row per judge, updated incrementally as each ingestion
sub-phase finishes. Writers pass partial updates; the tracker merges them
into the stored row under a row lock, stamps the synced-at column of every
field it touched, and rewrites the derived columns from the merged flags and
counters before committing.
"""

import time
import uuid
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

import structlog
from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictInt
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from judicial_cache.access import AccessGate, Action, Caller, Resource, default_gate
from judicial_cache.clock import Clock, UtcDateTime, utcnow
from judicial_cache.completeness.phases import ProgressFacts, SyncPhase, derive_sync_state
from judicial_cache.config import CacheSettings, get_settings
from judicial_cache.database.models import JudgeSyncProgress
from judicial_cache.errors import ValidationError

logger = structlog.get_logger(__name__)

MAX_PAGE_SIZE = 1000

# Field written by an update -> timestamp column stamped alongside it
SYNCED_AT_COLUMNS: Dict[str, str] = {
    "has_positions": "positions_synced_at",
    "has_education": "education_synced_at",
    "has_political_affiliations": "political_affiliations_synced_at",
    "opinions_count": "opinions_synced_at",
    "dockets_count": "dockets_synced_at",
}


class ProgressUpdate(BaseModel):
    """Partial update of a judge's flags and counters. Unset fields are left alone."""
    model_config = ConfigDict(extra="forbid")

    has_positions: Optional[StrictBool] = None
    has_education: Optional[StrictBool] = None
    has_political_affiliations: Optional[StrictBool] = None
    opinions_count: Optional[StrictInt] = Field(default=None, ge=0)
    dockets_count: Optional[StrictInt] = Field(default=None, ge=0)
    total_cases_count: Optional[StrictInt] = Field(default=None, ge=0)

    def changes(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class ProgressSnapshot(BaseModel):
    """Read-only view of a sync_progress row"""
    model_config = ConfigDict(from_attributes=True)

    judge_id: uuid.UUID
    has_positions: bool
    has_education: bool
    has_political_affiliations: bool
    opinions_count: int
    dockets_count: int
    total_cases_count: int
    is_complete: bool
    is_analytics_ready: bool
    sync_phase: SyncPhase
    positions_synced_at: Optional[UtcDateTime] = None
    education_synced_at: Optional[UtcDateTime] = None
    political_affiliations_synced_at: Optional[UtcDateTime] = None
    opinions_synced_at: Optional[UtcDateTime] = None
    dockets_synced_at: Optional[UtcDateTime] = None
    last_synced_at: Optional[UtcDateTime] = None
    error_count: int = 0
    last_error: Optional[str] = None
    last_error_at: Optional[UtcDateTime] = None
    created_at: UtcDateTime
    updated_at: UtcDateTime


class ProgressSummary(BaseModel):
    """Fleet-wide completeness statistics"""
    total_judges: int = 0
    complete_judges: int = 0
    analytics_ready_judges: int = 0
    judges_with_positions: int = 0
    judges_with_education: int = 0
    judges_with_affiliations: int = 0
    judges_with_opinions: int = 0
    judges_with_dockets: int = 0
    avg_opinions_per_judge: float = 0.0
    avg_dockets_per_judge: float = 0.0
    avg_total_cases_per_judge: float = 0.0
    phase_counts: Dict[SyncPhase, int] = Field(default_factory=dict)
    judges_with_errors: int = 0
    most_recent_sync: Optional[UtcDateTime] = None
    oldest_sync: Optional[UtcDateTime] = None


class ReconcileReport(BaseModel):
    """Result of a reconciliation sweep"""
    scanned: int = 0
    corrected: int = 0
    duration_ms: float = 0


class CompletenessTracker:
    """
    Per-judge data completeness tracker.

    Example:
        tracker = CompletenessTracker(session_factory)
        await tracker.upsert_progress(Caller.service(), judge_id, {"has_positions": True})
        ready = await tracker.list_analytics_ready(Caller.anonymous())
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

    @property
    def analytics_ready_threshold(self) -> int:
        return self._settings.analytics_ready_threshold

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def upsert_progress(
        self,
        caller: Caller,
        judge_id: uuid.UUID,
        update: Union[ProgressUpdate, Mapping[str, Any]],
    ) -> ProgressSnapshot:
        """
        Merge a partial update into a judge's progress record.

        Creates the record with all-false defaults on first contact.

        Raises:
            AuthorizationError: If the caller is not the privileged writer
            ValidationError: If the update has negative counters or unknown fields
        """
        self._gate.require(caller, Resource.SYNC_PROGRESS, Action.WRITE)
        changes = self._validate(update).changes()

        def merge(record: JudgeSyncProgress, now: datetime) -> None:
            for field, value in changes.items():
                setattr(record, field, value)
                synced_at = SYNCED_AT_COLUMNS.get(field)
                if synced_at:
                    setattr(record, synced_at, now)
            record.last_synced_at = now

        record = await self._write(judge_id, merge)

        logger.info(
            "Sync progress updated",
            judge_id=str(judge_id),
            fields=sorted(changes),
            phase=record.sync_phase,
            is_complete=record.is_complete,
            is_analytics_ready=record.is_analytics_ready,
        )
        return ProgressSnapshot.model_validate(record)

    async def record_error(self, caller: Caller, judge_id: uuid.UUID, message: str) -> ProgressSnapshot:
        """Count a sync failure against a judge; flags, counters and phase are untouched."""
        self._gate.require(caller, Resource.SYNC_PROGRESS, Action.WRITE)
        if not message or not message.strip():
            raise ValidationError("Error message must not be empty")

        def note_error(record: JudgeSyncProgress, now: datetime) -> None:
            record.error_count = (record.error_count or 0) + 1
            record.last_error = message
            record.last_error_at = now

        record = await self._write(judge_id, note_error)

        logger.warning(
            "Sync error recorded",
            judge_id=str(judge_id),
            error_count=record.error_count,
            error=message,
        )
        return ProgressSnapshot.model_validate(record)

    async def reconcile(self, caller: Caller, batch_size: Optional[int] = None) -> ReconcileReport:
        """
        Re-derive state for every record, fixing rows changed out of band.

        Walks the table in primary-key pages, one transaction per page.
        """
        self._gate.require(caller, Resource.SYNC_PROGRESS, Action.WRITE)
        size = batch_size or self._settings.reconcile_batch_size
        if size < 1:
            raise ValidationError(f"batch_size must be at least 1, got {size}")

        start = time.perf_counter()
        report = ReconcileReport()
        last_id = 0

        while True:
            async with self._session_factory() as session:
                async with session.begin():
                    result = await session.scalars(
                        select(JudgeSyncProgress)
                        .where(JudgeSyncProgress.id > last_id)
                        .order_by(JudgeSyncProgress.id)
                        .limit(size)
                        .with_for_update()
                    )
                    records = result.all()
                    if not records:
                        break

                    now = self._clock()
                    for record in records:
                        if self._apply_state(record):
                            record.updated_at = now
                            report.corrected += 1

                    report.scanned += len(records)
                    last_id = records[-1].id

        report.duration_ms = round((time.perf_counter() - start) * 1000, 2)
        logger.info(
            "Sync progress reconciled",
            scanned=report.scanned,
            corrected=report.corrected,
            duration_ms=report.duration_ms,
        )
        return report

    def _validate(self, update: Union[ProgressUpdate, Mapping[str, Any]]) -> ProgressUpdate:
        if isinstance(update, ProgressUpdate):
            return update
        try:
            return ProgressUpdate.model_validate(dict(update))
        except PydanticValidationError as e:
            details = "; ".join(
                f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in e.errors()
            )
            raise ValidationError(f"Invalid progress update: {details}", original_error=e) from e

    def _apply_state(self, record: JudgeSyncProgress) -> bool:
        """Rewrite the derived columns; report whether any of them changed."""
        state = derive_sync_state(ProgressFacts.of(record), self.analytics_ready_threshold)
        changed = (
            record.sync_phase != state.phase.value
            or record.is_complete != state.is_complete
            or record.is_analytics_ready != state.is_analytics_ready
        )
        record.sync_phase = state.phase.value
        record.is_complete = state.is_complete
        record.is_analytics_ready = state.is_analytics_ready
        return changed

    @staticmethod
    def _new_record(judge_id: uuid.UUID, now: datetime) -> JudgeSyncProgress:
        return JudgeSyncProgress(
            judge_id=judge_id,
            has_positions=False,
            has_education=False,
            has_political_affiliations=False,
            opinions_count=0,
            dockets_count=0,
            total_cases_count=0,
            is_complete=False,
            is_analytics_ready=False,
            sync_phase=SyncPhase.DISCOVERY.value,
            error_count=0,
            created_at=now,
            updated_at=now,
        )

    async def _write(
        self,
        judge_id: uuid.UUID,
        mutate: Callable[[JudgeSyncProgress, datetime], None],
    ) -> JudgeSyncProgress:
        # A concurrent first write for the same judge loses the unique-key
        # race once; the retry finds the row and merges into it.
        try:
            return await self._write_once(judge_id, mutate)
        except IntegrityError:
            logger.info("Sync progress insert raced, retrying", judge_id=str(judge_id))
            return await self._write_once(judge_id, mutate)

    async def _write_once(
        self,
        judge_id: uuid.UUID,
        mutate: Callable[[JudgeSyncProgress, datetime], None],
    ) -> JudgeSyncProgress:
        async with self._session_factory() as session:
            async with session.begin():
                now = self._clock()
                record = await session.scalar(
                    select(JudgeSyncProgress)
                    .where(JudgeSyncProgress.judge_id == judge_id)
                    .with_for_update()
                )
                if record is None:
                    record = self._new_record(judge_id, now)
                    session.add(record)

                mutate(record, now)
                self._apply_state(record)
                record.updated_at = now
        return record

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get_progress(self, caller: Caller, judge_id: uuid.UUID) -> Optional[ProgressSnapshot]:
        """Progress for one judge, or None if the judge was never seen"""
        self._gate.require(caller, Resource.SYNC_PROGRESS, Action.READ)

        async with self._session_factory() as session:
            record = await session.scalar(
                select(JudgeSyncProgress).where(JudgeSyncProgress.judge_id == judge_id)
            )
        return ProgressSnapshot.model_validate(record) if record is not None else None

    async def list_by_phase(
        self,
        caller: Caller,
        phase: Union[SyncPhase, str],
        limit: int = 100,
        offset: int = 0,
    ) -> List[ProgressSnapshot]:
        try:
            phase = SyncPhase(phase)
        except ValueError as e:
            raise ValidationError(f"Unknown sync phase: {phase}", original_error=e) from e
        return await self._list(caller, JudgeSyncProgress.sync_phase == phase.value, limit, offset)

    async def list_by_completion(
        self,
        caller: Caller,
        is_complete: bool = True,
        limit: int = 100,
        offset: int = 0,
    ) -> List[ProgressSnapshot]:
        return await self._list(caller, JudgeSyncProgress.is_complete.is_(is_complete), limit, offset)

    async def list_analytics_ready(
        self,
        caller: Caller,
        ready: bool = True,
        limit: int = 100,
        offset: int = 0,
    ) -> List[ProgressSnapshot]:
        return await self._list(caller, JudgeSyncProgress.is_analytics_ready.is_(ready), limit, offset)

    async def _list(self, caller: Caller, condition, limit: int, offset: int) -> List[ProgressSnapshot]:
        self._gate.require(caller, Resource.SYNC_PROGRESS, Action.READ)
        if not 1 <= limit <= MAX_PAGE_SIZE or offset < 0:
            raise ValidationError(
                f"Invalid page: limit={limit}, offset={offset} (limit must be 1..{MAX_PAGE_SIZE})"
            )

        async with self._session_factory() as session:
            result = await session.scalars(
                select(JudgeSyncProgress)
                .where(condition)
                .order_by(JudgeSyncProgress.id)
                .limit(limit)
                .offset(offset)
            )
            return [ProgressSnapshot.model_validate(record) for record in result.all()]

    async def snapshots(self, caller: Caller) -> List[ProgressSnapshot]:
        """Every progress record, for reporting"""
        self._gate.require(caller, Resource.SYNC_PROGRESS, Action.READ)

        async with self._session_factory() as session:
            result = await session.scalars(select(JudgeSyncProgress).order_by(JudgeSyncProgress.id))
            return [ProgressSnapshot.model_validate(record) for record in result.all()]

    async def summary(self, caller: Caller) -> ProgressSummary:
        """Counts and averages across all tracked judges"""
        self._gate.require(caller, Resource.SYNC_PROGRESS, Action.READ)
        p = JudgeSyncProgress

        phase_columns = [
            func.count().filter(p.sync_phase == phase.value).label(f"phase_{phase.value}")
            for phase in SyncPhase
        ]
        query = select(
            func.count().label("total"),
            func.count().filter(p.is_complete.is_(True)).label("complete"),
            func.count().filter(p.is_analytics_ready.is_(True)).label("analytics_ready"),
            func.count().filter(p.has_positions.is_(True)).label("positions"),
            func.count().filter(p.has_education.is_(True)).label("education"),
            func.count().filter(p.has_political_affiliations.is_(True)).label("affiliations"),
            func.count().filter(p.opinions_count > 0).label("opinions"),
            func.count().filter(p.dockets_count > 0).label("dockets"),
            func.avg(p.opinions_count).label("avg_opinions"),
            func.avg(p.dockets_count).label("avg_dockets"),
            func.avg(p.total_cases_count).label("avg_total_cases"),
            func.count().filter(p.error_count > 0).label("with_errors"),
            func.max(p.last_synced_at).label("most_recent_sync"),
            func.min(p.last_synced_at).label("oldest_sync"),
            *phase_columns,
        )

        async with self._session_factory() as session:
            row = (await session.execute(query)).one()._mapping

        return ProgressSummary(
            total_judges=row["total"],
            complete_judges=row["complete"],
            analytics_ready_judges=row["analytics_ready"],
            judges_with_positions=row["positions"],
            judges_with_education=row["education"],
            judges_with_affiliations=row["affiliations"],
            judges_with_opinions=row["opinions"],
            judges_with_dockets=row["dockets"],
            avg_opinions_per_judge=float(row["avg_opinions"] or 0),
            avg_dockets_per_judge=float(row["avg_dockets"] or 0),
            avg_total_cases_per_judge=float(row["avg_total_cases"] or 0),
            phase_counts={phase: row[f"phase_{phase.value}"] for phase in SyncPhase},
            judges_with_errors=row["with_errors"],
            most_recent_sync=row["most_recent_sync"],
            oldest_sync=row["oldest_sync"],
        )
