"""
Judicial Cache

Derived-data cache for a judicial analytics platform: per-judge yearly
decision counts, ingestion completeness tracking and a per-judge analytics
cache, all behind one access gate.
"""

__version__ = "0.1.0"
