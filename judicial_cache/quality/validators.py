"""
Data Validation Module

Rule-based consistency checks over progress snapshots loaded into polars.

Features:
- Null and uniqueness checks
- Range and allowed-value checks
- Derived-column consistency (phase, completeness, analytics readiness)
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import polars as pl
import structlog

from judicial_cache.clock import utcnow
from judicial_cache.completeness.phases import SyncPhase

logger = structlog.get_logger(__name__)


class ValidationSeverity(str, Enum):
    """Severity levels for validation failures"""
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class ValidationStatus(str, Enum):
    """Overall validation status"""
    PASSED = "passed"
    FAILED = "failed"
    PARTIAL = "partial"


@dataclass
class ValidationCheck:
    """Single validation check result"""
    name: str
    passed: bool
    severity: ValidationSeverity
    message: str
    details: Optional[Dict[str, Any]] = None
    failed_rows: int = 0
    total_rows: int = 0


@dataclass
class ValidationResult:
    """Complete validation suite result"""
    status: ValidationStatus
    total_checks: int
    passed_checks: int
    failed_checks: int
    warning_count: int
    checks: List[ValidationCheck] = field(default_factory=list)
    started_at: datetime = field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    @property
    def success_rate(self) -> float:
        """Percentage of passed checks"""
        if self.total_checks == 0:
            return 100.0
        return (self.passed_checks / self.total_checks) * 100


def derived_phase_expr() -> pl.Expr:
    """Polars expression computing sync_phase from the flag and counter columns"""
    return (
        pl.when(
            pl.col("has_positions")
            & pl.col("has_education")
            & pl.col("has_political_affiliations")
            & (pl.col("opinions_count") > 0)
            & (pl.col("dockets_count") > 0)
        ).then(pl.lit(SyncPhase.COMPLETE.value))
        .when(pl.col("dockets_count") > 0).then(pl.lit(SyncPhase.DOCKETS.value))
        .when(pl.col("opinions_count") > 0).then(pl.lit(SyncPhase.OPINIONS.value))
        .when(pl.col("has_education") | pl.col("has_political_affiliations")).then(pl.lit(SyncPhase.DETAILS.value))
        .when(pl.col("has_positions")).then(pl.lit(SyncPhase.POSITIONS.value))
        .otherwise(pl.lit(SyncPhase.DISCOVERY.value))
    )


class DataValidator:
    """
    Data validator with a chainable check suite.

    Example:
        validator = DataValidator()
        validator.add_not_null_check("judge_id")
        validator.add_range_check("opinions_count", min_value=0)
        result = validator.validate(df)
    """

    def __init__(self, strict_mode: bool = False):
        self.strict_mode = strict_mode  # Fail on any warning
        self._checks: List[Callable[[pl.DataFrame], ValidationCheck]] = []

    def _missing_column(self, name: str, column: str, severity: ValidationSeverity) -> ValidationCheck:
        return ValidationCheck(
            name=name,
            passed=False,
            severity=severity,
            message=f"Column '{column}' not found",
        )

    def add_not_null_check(
        self,
        column: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check for null values in column"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            if column not in df.columns:
                return self._missing_column(f"not_null_{column}", column, severity)

            null_count = df[column].null_count()
            total = len(df)
            passed = null_count == 0

            return ValidationCheck(
                name=f"not_null_{column}",
                passed=passed,
                severity=severity,
                message=f"Column '{column}' has {null_count} null values" if not passed else f"Column '{column}' has no null values",
                details={"null_count": null_count},
                failed_rows=null_count,
                total_rows=total,
            )

        self._checks.append(check)
        return self

    def add_unique_check(
        self,
        column: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check for uniqueness of column values"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            if column not in df.columns:
                return self._missing_column(f"unique_{column}", column, severity)

            total = len(df)
            duplicate_count = total - df[column].n_unique()
            passed = duplicate_count == 0

            return ValidationCheck(
                name=f"unique_{column}",
                passed=passed,
                severity=severity,
                message=f"Column '{column}' has {duplicate_count} duplicate values" if not passed else f"Column '{column}' values are unique",
                details={"duplicate_count": duplicate_count},
                failed_rows=duplicate_count,
                total_rows=total,
            )

        self._checks.append(check)
        return self

    def add_range_check(
        self,
        column: str,
        min_value: Optional[float] = None,
        max_value: Optional[float] = None,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check for values within specified range"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            if column not in df.columns:
                return self._missing_column(f"range_{column}", column, severity)

            out_of_range_expr = pl.lit(False)
            if min_value is not None:
                out_of_range_expr = out_of_range_expr | (pl.col(column) < min_value)
            if max_value is not None:
                out_of_range_expr = out_of_range_expr | (pl.col(column) > max_value)

            out_of_range = df.filter(out_of_range_expr).height
            passed = out_of_range == 0

            return ValidationCheck(
                name=f"range_{column}",
                passed=passed,
                severity=severity,
                message=f"Column '{column}' has {out_of_range} values outside range [{min_value}, {max_value}]" if not passed else "All values in range",
                details={"min": min_value, "max": max_value, "out_of_range_count": out_of_range},
                failed_rows=out_of_range,
                total_rows=len(df),
            )

        self._checks.append(check)
        return self

    def add_enum_check(
        self,
        column: str,
        allowed_values: List[Any],
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check for values in allowed set"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            if column not in df.columns:
                return self._missing_column(f"enum_{column}", column, severity)

            invalid = df.filter(
                ~pl.col(column).is_in(allowed_values) & pl.col(column).is_not_null()
            ).height
            passed = invalid == 0

            return ValidationCheck(
                name=f"enum_{column}",
                passed=passed,
                severity=severity,
                message=f"Column '{column}' has {invalid} invalid values" if not passed else "All values are valid",
                details={"allowed_values": allowed_values, "invalid_count": invalid},
                failed_rows=invalid,
                total_rows=len(df),
            )

        self._checks.append(check)
        return self

    def add_row_rule(
        self,
        name: str,
        violation: pl.Expr,
        message_on_fail: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add a rule that fails for every row where `violation` is true"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            try:
                violating = df.filter(violation).height
            except pl.exceptions.PolarsError as e:
                return ValidationCheck(
                    name=name,
                    passed=False,
                    severity=severity,
                    message=f"Check failed with error: {e}",
                )

            passed = violating == 0
            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message="Check passed" if passed else f"{message_on_fail} ({violating} rows)",
                failed_rows=violating,
                total_rows=len(df),
            )

        self._checks.append(check)
        return self

    def validate(self, df: pl.DataFrame) -> ValidationResult:
        """
        Run all validation checks on DataFrame.

        Args:
            df: DataFrame to validate

        Returns:
            ValidationResult with all check results
        """
        started_at = utcnow()
        results = []

        logger.info("Running validation checks", checks=len(self._checks), rows=len(df))

        for check_func in self._checks:
            result = check_func(df)
            results.append(result)

            if not result.passed:
                logger.warning(
                    "Validation failed",
                    check=result.name,
                    message=result.message,
                    severity=result.severity.value,
                )

        passed_checks = sum(1 for r in results if r.passed)
        failed_checks = sum(1 for r in results if not r.passed and r.severity == ValidationSeverity.ERROR)
        warning_count = sum(1 for r in results if not r.passed and r.severity == ValidationSeverity.WARNING)

        if failed_checks > 0:
            status = ValidationStatus.FAILED
        elif warning_count > 0 and self.strict_mode:
            status = ValidationStatus.FAILED
        elif warning_count > 0:
            status = ValidationStatus.PARTIAL
        else:
            status = ValidationStatus.PASSED

        logger.info(
            "Validation complete",
            status=status.value,
            passed=passed_checks,
            failed=failed_checks,
            warnings=warning_count,
        )

        return ValidationResult(
            status=status,
            total_checks=len(results),
            passed_checks=passed_checks,
            failed_checks=failed_checks,
            warning_count=warning_count,
            checks=results,
            started_at=started_at,
            completed_at=utcnow(),
        )


def create_progress_validator(analytics_ready_threshold: int) -> DataValidator:
    """Create pre-configured validator for sync progress snapshots"""
    return (
        DataValidator()
        .add_not_null_check("judge_id")
        .add_unique_check("judge_id")
        .add_range_check("opinions_count", min_value=0)
        .add_range_check("dockets_count", min_value=0)
        .add_range_check("total_cases_count", min_value=0)
        .add_range_check("error_count", min_value=0, severity=ValidationSeverity.WARNING)
        .add_enum_check("sync_phase", [phase.value for phase in SyncPhase])
        .add_row_rule(
            "complete_requires_all_data",
            pl.col("is_complete") & (
                ~pl.col("has_positions")
                | ~pl.col("has_education")
                | ~pl.col("has_political_affiliations")
                | (pl.col("opinions_count") <= 0)
                | (pl.col("dockets_count") <= 0)
            ),
            "Records marked complete are missing data",
        )
        .add_row_rule(
            "phase_matches_flags",
            pl.col("sync_phase") != derived_phase_expr(),
            "Stored phase disagrees with flags and counters",
        )
        .add_row_rule(
            "analytics_ready_matches_threshold",
            pl.col("is_analytics_ready") != (pl.col("total_cases_count") >= analytics_ready_threshold),
            "Stored analytics readiness disagrees with total case count",
        )
    )
