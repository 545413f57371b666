"""
Judicial Cache Core
Configuration Module
"""
from .settings import CacheSettings, Settings, get_settings

__all__ = ["CacheSettings", "Settings", "get_settings"]
