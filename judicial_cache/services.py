"""
Service wiring.

Builds the three stores over one session factory, sharing the access gate,
settings and clock.
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from judicial_cache.access import AccessGate, default_gate
from judicial_cache.aggregates import DecisionCountCache
from judicial_cache.analytics import AnalyticsCacheStore
from judicial_cache.clock import Clock, utcnow
from judicial_cache.completeness import CompletenessTracker
from judicial_cache.config import CacheSettings, get_settings


@dataclass
class CacheServices:
    decision_counts: DecisionCountCache
    progress: CompletenessTracker
    analytics: AnalyticsCacheStore
    settings: CacheSettings


def build_services(
    session_factory: async_sessionmaker[AsyncSession],
    settings: Optional[CacheSettings] = None,
    gate: AccessGate = default_gate,
    clock: Clock = utcnow,
) -> CacheServices:
    settings = settings or get_settings().cache
    return CacheServices(
        decision_counts=DecisionCountCache(session_factory, gate=gate, settings=settings, clock=clock),
        progress=CompletenessTracker(session_factory, gate=gate, settings=settings, clock=clock),
        analytics=AnalyticsCacheStore(session_factory, gate=gate, settings=settings, clock=clock),
        settings=settings,
    )
