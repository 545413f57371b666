"""
Completeness Tracking Module
"""
from .phases import ProgressFacts, SyncPhase, SyncState, derive_phase, derive_sync_state
from .tracker import (
    CompletenessTracker,
    ProgressSnapshot,
    ProgressSummary,
    ProgressUpdate,
    ReconcileReport,
)

__all__ = [
    "CompletenessTracker",
    "ProgressFacts",
    "ProgressSnapshot",
    "ProgressSummary",
    "ProgressUpdate",
    "ReconcileReport",
    "SyncPhase",
    "SyncState",
    "derive_phase",
    "derive_sync_state",
]
