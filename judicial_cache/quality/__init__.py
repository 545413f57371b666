"""
Data Quality Module
"""
from .readiness import ReadinessReport, ReadinessReporter, snapshots_to_frame
from .validators import DataValidator, ValidationResult, ValidationStatus, create_progress_validator

__all__ = [
    "DataValidator",
    "ReadinessReport",
    "ReadinessReporter",
    "ValidationResult",
    "ValidationStatus",
    "create_progress_validator",
    "snapshots_to_frame",
]
