"""
Access Control Module
"""
from .gate import AccessGate, Action, Caller, CallerRole, Resource, default_gate

__all__ = [
    "AccessGate",
    "Action",
    "Caller",
    "CallerRole",
    "Resource",
    "default_gate",
]
