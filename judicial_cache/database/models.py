"""
Database Models - Judicial Cache Core

This module defines the tables the persistence core reads and owns:

Fact Tables (owned by the ingestion pipeline, read-only here):
- FactCase: decided cases keyed by judge reference

Aggregate Tables:
- AggJudgeDecisionCount: per-judge, per-year decision counts, versioned by generation
- AggregateGeneration: the generation pointer readers resolve
- AggregateRefreshLog: one row per rebuild attempt

Tracking and Cache Tables:
- JudgeSyncProgress: data completeness per judge
- JudgeAnalyticsCache: computed analytics payload per judge

Judge ids are loose references. No foreign keys tie these tables to the
judges table, so rows may outlive the judge they describe.
"""

from datetime import datetime, date
from enum import Enum
from typing import Any, Dict, Optional
import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    Uuid,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all database models"""
    pass


# =============================================================================
# ENUMERATIONS
# =============================================================================

class RefreshStatus(str, Enum):
    """Aggregate rebuild status"""
    COMPLETED = "completed"
    FAILED = "failed"


# =============================================================================
# FACT TABLES
# =============================================================================

class FactCase(Base):
    """
    Case Fact Table

    Written by the ingestion pipeline. Rows are immutable once written; the
    core only aggregates over them.
    """
    __tablename__ = "cases"

    case_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    judge_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    decision_date: Mapped[Optional[date]] = mapped_column(Date)
    case_type: Mapped[Optional[str]] = mapped_column(String(100))
    outcome: Mapped[Optional[str]] = mapped_column(String(100))
    created_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        Index("ix_cases_judge_decision_date", "judge_id", "decision_date"),
        Index("ix_cases_decision_date", "decision_date"),
    )


# =============================================================================
# ANALYTICS AGGREGATES
# =============================================================================

class AggJudgeDecisionCount(Base):
    """
    Judge Decision Count Aggregate Table

    Grain: one row per judge per calendar year per generation. Each rebuild
    writes a complete new generation; only the generation named by
    AggregateGeneration is visible to readers.
    """
    __tablename__ = "agg_judge_decision_counts"

    generation: Mapped[int] = mapped_column(Integer, primary_key=True)
    judge_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    year: Mapped[int] = mapped_column(Integer, primary_key=True)

    decision_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    earliest_decision_date: Mapped[Optional[date]] = mapped_column(Date)
    latest_decision_date: Mapped[Optional[date]] = mapped_column(Date)

    __table_args__ = (
        Index("ix_agg_decision_counts_judge_year", "generation", "judge_id", "year"),
        Index("ix_agg_decision_counts_year", "generation", "year"),
    )


class AggregateGeneration(Base):
    """Active generation pointer, one row per aggregate"""
    __tablename__ = "aggregate_generations"

    aggregate_name: Mapped[str] = mapped_column(String(100), primary_key=True)
    active_generation: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    refreshed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))


class AggregateRefreshLog(Base):
    """
    Aggregate Refresh Log

    Audit trail of rebuild attempts, successful or not.
    """
    __tablename__ = "aggregate_refresh_log"

    refresh_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    aggregate_name: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    generation: Mapped[Optional[int]] = mapped_column(Integer)
    row_count: Mapped[int] = mapped_column(Integer, default=0)
    duration_ms: Mapped[float] = mapped_column(default=0.0)
    error_message: Mapped[Optional[str]] = mapped_column(Text)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        Index("ix_aggregate_refresh_log_name_started", "aggregate_name", "started_at"),
    )


# =============================================================================
# COMPLETENESS TRACKING
# =============================================================================

class JudgeSyncProgress(Base):
    """
    Judge Sync Progress Table

    Tracks how complete each judge's dataset is. sync_phase, is_complete and
    is_analytics_ready are derived columns: they are rewritten from the flags
    and counters on every write and never set on their own.
    """
    __tablename__ = "sync_progress"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    judge_id: Mapped[uuid.UUID] = mapped_column(Uuid, unique=True, nullable=False)

    # Data completeness flags
    has_positions: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    has_education: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    has_political_affiliations: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Case data counts
    opinions_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    dockets_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_cases_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Derived state
    is_complete: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_analytics_ready: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    sync_phase: Mapped[str] = mapped_column(String(50), default="discovery", nullable=False)

    # Timestamps
    positions_synced_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    education_synced_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    political_affiliations_synced_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    opinions_synced_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    dockets_synced_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    last_synced_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    # Errors
    error_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_error: Mapped[Optional[str]] = mapped_column(Text)
    last_error_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    # Audit
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_sync_progress_is_complete", "is_complete"),
        Index("ix_sync_progress_is_analytics_ready", "is_analytics_ready"),
        Index("ix_sync_progress_sync_phase", "sync_phase"),
        Index("ix_sync_progress_last_synced", "last_synced_at"),
        Index(
            "ix_sync_progress_incomplete",
            "is_complete",
            "sync_phase",
            postgresql_where=text("NOT is_complete"),
            sqlite_where=text("NOT is_complete"),
        ),
    )


# =============================================================================
# ANALYTICS CACHE
# =============================================================================

class JudgeAnalyticsCache(Base):
    """
    Judge Analytics Cache Table

    One computed analytics payload per judge. Writes replace the payload
    wholesale.
    """
    __tablename__ = "judge_analytics_cache"

    judge_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    analytics: Mapped[Dict[str, Any]] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"), nullable=False
    )
    analytics_version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_judge_analytics_cache_created_at", "created_at"),
        Index("ix_judge_analytics_cache_updated_at", "updated_at"),
    )
