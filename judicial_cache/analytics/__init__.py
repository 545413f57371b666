"""
Analytics Cache Module
"""
from .store import AnalyticsCacheStore, CachedAnalytics, CacheStats, StaleClearReport

__all__ = [
    "AnalyticsCacheStore",
    "CachedAnalytics",
    "CacheStats",
    "StaleClearReport",
]
