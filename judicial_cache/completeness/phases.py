"""
Sync phase derivation.

The phase of a judge's dataset is computed from its readiness flags and
counters alone, never from the previous phase, so any two records with the
same flags and counters carry the same phase no matter how they got there.

Phases in forward order:

    discovery -> positions -> details -> opinions -> dockets -> complete

Analytics readiness is a separate guarantee: it only looks at the total case
count against a configured threshold, so a judge may be analytics-ready
before every flag is set, or complete without enough cases.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, List


class SyncPhase(str, Enum):
    """Data completeness phase"""
    DISCOVERY = "discovery"
    POSITIONS = "positions"
    DETAILS = "details"
    OPINIONS = "opinions"
    DOCKETS = "dockets"
    COMPLETE = "complete"

    @classmethod
    def ordered(cls) -> List["SyncPhase"]:
        return list(cls)

    @property
    def rank(self) -> int:
        return SyncPhase.ordered().index(self)


@dataclass(frozen=True)
class ProgressFacts:
    """The inputs of phase derivation"""
    has_positions: bool = False
    has_education: bool = False
    has_political_affiliations: bool = False
    opinions_count: int = 0
    dockets_count: int = 0
    total_cases_count: int = 0

    @classmethod
    def of(cls, record: Any) -> "ProgressFacts":
        """Read the inputs off a progress row or snapshot"""
        return cls(
            has_positions=bool(record.has_positions),
            has_education=bool(record.has_education),
            has_political_affiliations=bool(record.has_political_affiliations),
            opinions_count=record.opinions_count or 0,
            dockets_count=record.dockets_count or 0,
            total_cases_count=record.total_cases_count or 0,
        )

    @property
    def missing(self) -> List[str]:
        """Names of the completeness requirements not yet met"""
        gaps = []
        if not self.has_positions:
            gaps.append("positions")
        if not self.has_education:
            gaps.append("education")
        if not self.has_political_affiliations:
            gaps.append("political_affiliations")
        if self.opinions_count <= 0:
            gaps.append("opinions")
        if self.dockets_count <= 0:
            gaps.append("dockets")
        return gaps


@dataclass(frozen=True)
class SyncState:
    """Derived columns of a progress record"""
    phase: SyncPhase
    is_complete: bool
    is_analytics_ready: bool


def derive_phase(facts: ProgressFacts) -> SyncPhase:
    if (
        facts.has_positions
        and facts.has_education
        and facts.has_political_affiliations
        and facts.opinions_count > 0
        and facts.dockets_count > 0
    ):
        return SyncPhase.COMPLETE
    if facts.dockets_count > 0:
        return SyncPhase.DOCKETS
    if facts.opinions_count > 0:
        return SyncPhase.OPINIONS
    if facts.has_education or facts.has_political_affiliations:
        return SyncPhase.DETAILS
    if facts.has_positions:
        return SyncPhase.POSITIONS
    return SyncPhase.DISCOVERY


def derive_sync_state(facts: ProgressFacts, analytics_ready_threshold: int) -> SyncState:
    """
    Derive phase, completeness and analytics readiness.

    Args:
        facts: Current flags and counters
        analytics_ready_threshold: Minimum total case count for analytics

    Returns:
        SyncState: The derived columns
    """
    phase = derive_phase(facts)
    return SyncState(
        phase=phase,
        is_complete=phase == SyncPhase.COMPLETE,
        is_analytics_ready=facts.total_cases_count >= analytics_ready_threshold,
    )
