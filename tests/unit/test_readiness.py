"""
Unit Tests - Data Quality and Readiness Report
"""
import uuid
from datetime import datetime, timezone

import polars as pl
import pytest

from judicial_cache.completeness import ProgressFacts, ProgressSnapshot, SyncPhase, derive_sync_state
from judicial_cache.config import CacheSettings
from judicial_cache.quality import (
    DataValidator,
    ReadinessReporter,
    ValidationStatus,
    create_progress_validator,
    snapshots_to_frame,
)
from judicial_cache.quality.validators import ValidationSeverity

NOW = datetime(2026, 6, 15, tzinfo=timezone.utc)
THRESHOLD = 500


def make_snapshot(**overrides) -> ProgressSnapshot:
    """Snapshot whose derived columns agree with its flags unless overridden"""
    facts = ProgressFacts(
        has_positions=overrides.get("has_positions", False),
        has_education=overrides.get("has_education", False),
        has_political_affiliations=overrides.get("has_political_affiliations", False),
        opinions_count=overrides.get("opinions_count", 0),
        dockets_count=overrides.get("dockets_count", 0),
        total_cases_count=overrides.get("total_cases_count", 0),
    )
    state = derive_sync_state(facts, THRESHOLD)
    values = {
        "judge_id": uuid.uuid4(),
        "has_positions": facts.has_positions,
        "has_education": facts.has_education,
        "has_political_affiliations": facts.has_political_affiliations,
        "opinions_count": facts.opinions_count,
        "dockets_count": facts.dockets_count,
        "total_cases_count": facts.total_cases_count,
        "is_complete": state.is_complete,
        "is_analytics_ready": state.is_analytics_ready,
        "sync_phase": state.phase,
        "created_at": NOW,
        "updated_at": NOW,
    }
    values.update(overrides)
    return ProgressSnapshot(**values)


def complete_snapshot(**overrides) -> ProgressSnapshot:
    values = dict(
        has_positions=True,
        has_education=True,
        has_political_affiliations=True,
        opinions_count=400,
        dockets_count=200,
        total_cases_count=600,
    )
    values.update(overrides)
    return make_snapshot(**values)


@pytest.fixture
def reporter() -> ReadinessReporter:
    return ReadinessReporter(settings=CacheSettings(analytics_ready_threshold=THRESHOLD), top_n=2)


class TestDataValidator:
    """Tests for DataValidator"""

    def test_not_null_check_fails(self):
        df = pl.DataFrame({"judge_id": ["a", None, "c"]})

        result = DataValidator().add_not_null_check("judge_id").validate(df)

        assert result.status == ValidationStatus.FAILED
        assert result.checks[0].failed_rows == 1

    def test_unique_check_fails(self):
        df = pl.DataFrame({"judge_id": ["a", "a", "b"]})

        result = DataValidator().add_unique_check("judge_id").validate(df)

        assert result.status == ValidationStatus.FAILED
        assert result.checks[0].details["duplicate_count"] == 1

    def test_range_check_warning_is_partial(self):
        df = pl.DataFrame({"error_count": [0, -1]})

        result = (
            DataValidator()
            .add_range_check("error_count", min_value=0, severity=ValidationSeverity.WARNING)
            .validate(df)
        )

        assert result.status == ValidationStatus.PARTIAL
        assert result.warning_count == 1

    def test_strict_mode_fails_on_warning(self):
        df = pl.DataFrame({"error_count": [-1]})

        result = (
            DataValidator(strict_mode=True)
            .add_range_check("error_count", min_value=0, severity=ValidationSeverity.WARNING)
            .validate(df)
        )

        assert result.status == ValidationStatus.FAILED

    def test_missing_column_fails(self):
        result = DataValidator().add_enum_check("sync_phase", ["discovery"]).validate(pl.DataFrame({"x": [1]}))

        assert result.status == ValidationStatus.FAILED
        assert "not found" in result.checks[0].message

    def test_success_rate(self):
        df = pl.DataFrame({"id": [1, 2, 2]})

        result = DataValidator().add_not_null_check("id").add_unique_check("id").validate(df)

        assert result.success_rate == 50.0


class TestProgressValidator:
    """Tests for the sync progress consistency checks"""

    def test_consistent_snapshots_pass(self):
        df = snapshots_to_frame([make_snapshot(), make_snapshot(has_positions=True), complete_snapshot()])

        result = create_progress_validator(THRESHOLD).validate(df)

        assert result.status == ValidationStatus.PASSED

    def test_stale_phase_is_flagged(self):
        df = snapshots_to_frame([make_snapshot(opinions_count=5, sync_phase=SyncPhase.POSITIONS)])

        result = create_progress_validator(THRESHOLD).validate(df)

        failed = {c.name for c in result.checks if not c.passed}
        assert failed == {"phase_matches_flags"}

    def test_complete_without_data_is_flagged(self):
        df = snapshots_to_frame([make_snapshot(has_positions=True, is_complete=True)])

        result = create_progress_validator(THRESHOLD).validate(df)

        failed = {c.name for c in result.checks if not c.passed}
        assert "complete_requires_all_data" in failed

    def test_readiness_disagreeing_with_threshold_is_flagged(self):
        df = snapshots_to_frame([make_snapshot(total_cases_count=10, is_analytics_ready=True)])

        result = create_progress_validator(THRESHOLD).validate(df)

        failed = {c.name for c in result.checks if not c.passed}
        assert failed == {"analytics_ready_matches_threshold"}


class TestReadinessReporter:
    """Tests for ReadinessReporter"""

    def test_empty_report(self, reporter):
        report = reporter.build([])

        assert report.summary.total_judges == 0
        assert report.summary.completion_percentage == 0.0
        assert report.case_metrics.min_cases_required == THRESHOLD
        assert report.top_judges == []
        assert report.consistent

    def test_summary_and_breakdown(self, reporter):
        snapshots = [
            complete_snapshot(),
            complete_snapshot(total_cases_count=100),
            make_snapshot(has_positions=True, opinions_count=3, total_cases_count=900),
            make_snapshot(),
        ]

        report = reporter.build(snapshots)

        assert report.summary.total_judges == 4
        assert report.summary.analytics_ready == 2
        assert report.summary.incomplete == 2
        assert report.summary.completion_percentage == 50.0
        assert report.breakdown.with_positions == 3
        assert report.breakdown.with_education == 2
        assert report.breakdown.with_opinions == 3
        assert report.breakdown.with_dockets == 2

    def test_case_metrics(self, reporter):
        snapshots = [
            make_snapshot(total_cases_count=100),
            make_snapshot(total_cases_count=600),
            make_snapshot(total_cases_count=800),
        ]

        metrics = reporter.build(snapshots).case_metrics

        assert metrics.judges_with_min_cases == 2
        assert metrics.mean_cases == 500.0
        assert metrics.median_cases == 600.0
        assert metrics.max_cases == 800
        assert metrics.min_cases == 100

    def test_top_judges_sorted_and_limited(self, reporter):
        snapshots = [make_snapshot(total_cases_count=n) for n in (5, 50, 500)]

        top = reporter.build(snapshots).top_judges

        assert [j.total_cases for j in top] == [500, 50]

    def test_incomplete_judges_list_missing_data(self, reporter):
        early = make_snapshot()
        later = make_snapshot(has_positions=True, has_education=True, opinions_count=1)

        incomplete = reporter.build([later, early, complete_snapshot()]).incomplete_judges

        assert [j.judge_id for j in incomplete] == [str(early.judge_id), str(later.judge_id)]
        assert incomplete[0].missing == [
            "positions", "education", "political_affiliations", "opinions", "dockets",
        ]
        assert incomplete[1].missing == ["political_affiliations", "dockets"]

    def test_inconsistency_reported(self, reporter):
        report = reporter.build([make_snapshot(dockets_count=2, sync_phase=SyncPhase.DISCOVERY)])

        assert not report.consistent
        assert report.consistency_failures[0].startswith("phase_matches_flags")
