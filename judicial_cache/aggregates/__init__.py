"""
Aggregate Cache Module
"""
from .decision_counts import (
    AGGREGATE_NAME,
    DecisionCountCache,
    DecisionSummary,
    RebuildReport,
    RefreshRecord,
    YearlyCount,
)

__all__ = [
    "AGGREGATE_NAME",
    "DecisionCountCache",
    "DecisionSummary",
    "RebuildReport",
    "RefreshRecord",
    "YearlyCount",
]
