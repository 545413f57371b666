"""
Data Readiness Report

Summarizes how far judge ingestion has progressed, using polars over
progress snapshots:
- Completion and analytics-readiness percentages
- Per-dataset coverage
- Case-count distribution and top judges
- Incomplete judges and what they are missing
- Consistency checks on stored derived columns
"""

from typing import Any, Dict, List, Optional, Sequence

import polars as pl
import structlog
from pydantic import BaseModel, Field

from judicial_cache.completeness.phases import ProgressFacts
from judicial_cache.completeness.tracker import ProgressSnapshot
from judicial_cache.config import CacheSettings, get_settings

from .validators import ValidationResult, ValidationStatus, create_progress_validator

logger = structlog.get_logger(__name__)

SNAPSHOT_SCHEMA = {
    "judge_id": pl.Utf8,
    "has_positions": pl.Boolean,
    "has_education": pl.Boolean,
    "has_political_affiliations": pl.Boolean,
    "opinions_count": pl.Int64,
    "dockets_count": pl.Int64,
    "total_cases_count": pl.Int64,
    "is_complete": pl.Boolean,
    "is_analytics_ready": pl.Boolean,
    "sync_phase": pl.Utf8,
    "error_count": pl.Int64,
}


class ReadinessSummary(BaseModel):
    total_judges: int = 0
    analytics_ready: int = 0
    incomplete: int = 0
    completion_percentage: float = 0.0


class DataBreakdown(BaseModel):
    with_positions: int = 0
    with_education: int = 0
    with_political_affiliations: int = 0
    with_opinions: int = 0
    with_dockets: int = 0


class CaseMetrics(BaseModel):
    min_cases_required: int
    judges_with_min_cases: int = 0
    mean_cases: float = 0.0
    median_cases: float = 0.0
    max_cases: int = 0
    min_cases: int = 0


class JudgeCases(BaseModel):
    judge_id: str
    total_cases: int


class IncompleteJudge(BaseModel):
    judge_id: str
    sync_phase: str
    missing: List[str]


class ReadinessReport(BaseModel):
    """Full readiness report"""
    summary: ReadinessSummary
    breakdown: DataBreakdown
    case_metrics: CaseMetrics
    top_judges: List[JudgeCases] = Field(default_factory=list)
    incomplete_judges: List[IncompleteJudge] = Field(default_factory=list)
    consistency_status: ValidationStatus
    consistency_failures: List[str] = Field(default_factory=list)

    @property
    def consistent(self) -> bool:
        return self.consistency_status != ValidationStatus.FAILED


def snapshots_to_frame(snapshots: Sequence[ProgressSnapshot]) -> pl.DataFrame:
    """Load snapshots into a DataFrame with a fixed schema (empty input gives an empty frame)"""
    rows = [
        {
            "judge_id": str(s.judge_id),
            "has_positions": s.has_positions,
            "has_education": s.has_education,
            "has_political_affiliations": s.has_political_affiliations,
            "opinions_count": s.opinions_count,
            "dockets_count": s.dockets_count,
            "total_cases_count": s.total_cases_count,
            "is_complete": s.is_complete,
            "is_analytics_ready": s.is_analytics_ready,
            "sync_phase": s.sync_phase.value,
            "error_count": s.error_count,
        }
        for s in snapshots
    ]
    return pl.DataFrame(rows, schema=SNAPSHOT_SCHEMA)


class ReadinessReporter:
    """
    Builds a ReadinessReport from progress snapshots.

    Example:
        snapshots = await tracker.snapshots(Caller.service())
        report = ReadinessReporter().build(snapshots)
    """

    def __init__(self, settings: Optional[CacheSettings] = None, top_n: int = 10, incomplete_limit: int = 20):
        self._settings = settings or get_settings().cache
        self.top_n = top_n
        self.incomplete_limit = incomplete_limit

    def build(self, snapshots: Sequence[ProgressSnapshot]) -> ReadinessReport:
        df = snapshots_to_frame(snapshots)
        threshold = self._settings.analytics_ready_threshold

        validation = create_progress_validator(threshold).validate(df)

        report = ReadinessReport(
            summary=self._summary(df),
            breakdown=self._breakdown(df),
            case_metrics=self._case_metrics(df, threshold),
            top_judges=self._top_judges(df),
            incomplete_judges=self._incomplete(snapshots),
            consistency_status=validation.status,
            consistency_failures=_failures(validation),
        )

        logger.info(
            "Readiness report built",
            total_judges=report.summary.total_judges,
            analytics_ready=report.summary.analytics_ready,
            consistency=report.consistency_status.value,
        )
        return report

    def _summary(self, df: pl.DataFrame) -> ReadinessSummary:
        total = df.height
        if total == 0:
            return ReadinessSummary()

        ready = int(df["is_analytics_ready"].sum())
        complete = int(df["is_complete"].sum())
        return ReadinessSummary(
            total_judges=total,
            analytics_ready=ready,
            incomplete=total - complete,
            completion_percentage=round(complete / total * 100, 1),
        )

    def _breakdown(self, df: pl.DataFrame) -> DataBreakdown:
        if df.height == 0:
            return DataBreakdown()

        counts = df.select(
            pl.col("has_positions").sum().alias("with_positions"),
            pl.col("has_education").sum().alias("with_education"),
            pl.col("has_political_affiliations").sum().alias("with_political_affiliations"),
            (pl.col("opinions_count") > 0).sum().alias("with_opinions"),
            (pl.col("dockets_count") > 0).sum().alias("with_dockets"),
        ).row(0, named=True)
        return DataBreakdown(**{k: int(v) for k, v in counts.items()})

    def _case_metrics(self, df: pl.DataFrame, threshold: int) -> CaseMetrics:
        if df.height == 0:
            return CaseMetrics(min_cases_required=threshold)

        cases = df["total_cases_count"]
        return CaseMetrics(
            min_cases_required=threshold,
            judges_with_min_cases=int((cases >= threshold).sum()),
            mean_cases=round(float(cases.mean()), 1),
            median_cases=float(cases.median()),
            max_cases=int(cases.max()),
            min_cases=int(cases.min()),
        )

    def _top_judges(self, df: pl.DataFrame) -> List[JudgeCases]:
        top = (
            df.sort(["total_cases_count", "judge_id"], descending=[True, False])
            .head(self.top_n)
            .select("judge_id", "total_cases_count")
        )
        return [
            JudgeCases(judge_id=row["judge_id"], total_cases=row["total_cases_count"])
            for row in top.iter_rows(named=True)
        ]

    def _incomplete(self, snapshots: Sequence[ProgressSnapshot]) -> List[IncompleteJudge]:
        incomplete = [s for s in snapshots if not s.is_complete]
        incomplete.sort(key=lambda s: (s.sync_phase.rank, str(s.judge_id)))
        return [
            IncompleteJudge(
                judge_id=str(s.judge_id),
                sync_phase=s.sync_phase.value,
                missing=ProgressFacts.of(s).missing,
            )
            for s in incomplete[: self.incomplete_limit]
        ]


def _failures(result: ValidationResult) -> List[str]:
    return [f"{check.name}: {check.message}" for check in result.checks if not check.passed]


def report_to_dict(report: ReadinessReport) -> Dict[str, Any]:
    """JSON-ready form of a report"""
    return report.model_dump(mode="json")
