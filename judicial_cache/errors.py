"""
Exceptions raised synchronously to callers of the core.

Recoverable conditions are not exceptions: a failed aggregate rebuild comes
back as a RebuildReport and a cache miss comes back as None or an empty
summary.
"""

from typing import Optional


class JudicialCacheError(Exception):
    """Base exception for judicial cache errors."""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(message)
        self.original_error = original_error


class AuthorizationError(JudicialCacheError):
    """Raised when a caller's role lacks the capability for an operation."""

    def __init__(self, message: str, role: str, resource: str, action: str):
        super().__init__(message)
        self.role = role
        self.resource = resource
        self.action = action


class ValidationError(JudicialCacheError):
    """Raised when input is rejected before it reaches a store."""
    pass
