"""
Database Module
"""
from .connection import (
    init_database,
    close_database,
    create_schema,
    create_session_factory,
    get_db,
    get_session_factory,
    check_database_health,
)
from .models import Base

__all__ = [
    "init_database",
    "close_database",
    "create_schema",
    "create_session_factory",
    "get_db",
    "get_session_factory",
    "check_database_health",
    "Base",
]
