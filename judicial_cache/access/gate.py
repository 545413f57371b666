"""
Access Gate

Single policy-check entry point for the cache and tracker stores. Every
operation on the stores calls AccessGate.require() before touching a session,
so a denied call has no partial effect.

Capability matrix:

    resource              read                          write
    decision_counts       anonymous, authenticated,     service
                          service
    sync_progress         anonymous, authenticated,     service
                          service
    analytics_cache       anonymous, authenticated,     service
                          service
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Mapping, Optional, Tuple

import structlog

from judicial_cache.errors import AuthorizationError

logger = structlog.get_logger(__name__)


class CallerRole(str, Enum):
    """Caller classes recognized by the gate"""
    ANONYMOUS = "anonymous"
    AUTHENTICATED = "authenticated"
    SERVICE = "service"  # privileged writer


class Resource(str, Enum):
    """Stores guarded by the gate"""
    DECISION_COUNTS = "decision_counts"
    SYNC_PROGRESS = "sync_progress"
    ANALYTICS_CACHE = "analytics_cache"


class Action(str, Enum):
    """Capabilities a caller may request"""
    READ = "read"
    WRITE = "write"


@dataclass(frozen=True)
class Caller:
    """Identity of whoever invokes a store operation."""
    role: CallerRole
    subject: Optional[str] = None

    @classmethod
    def anonymous(cls) -> "Caller":
        return cls(CallerRole.ANONYMOUS)

    @classmethod
    def authenticated(cls, subject: str) -> "Caller":
        return cls(CallerRole.AUTHENTICATED, subject)

    @classmethod
    def service(cls, subject: str = "service") -> "Caller":
        return cls(CallerRole.SERVICE, subject)

    @property
    def is_privileged(self) -> bool:
        return self.role == CallerRole.SERVICE


_ALL_ROLES = frozenset(CallerRole)
_WRITER_ONLY = frozenset({CallerRole.SERVICE})

DEFAULT_POLICY: Mapping[Tuple[Resource, Action], FrozenSet[CallerRole]] = {
    (Resource.DECISION_COUNTS, Action.READ): _ALL_ROLES,
    (Resource.DECISION_COUNTS, Action.WRITE): _WRITER_ONLY,
    (Resource.SYNC_PROGRESS, Action.READ): _ALL_ROLES,
    (Resource.SYNC_PROGRESS, Action.WRITE): _WRITER_ONLY,
    (Resource.ANALYTICS_CACHE, Action.READ): _ALL_ROLES,
    (Resource.ANALYTICS_CACHE, Action.WRITE): _WRITER_ONLY,
}


class AccessGate:
    """
    Capability-gated policy check.

    Pairs missing from the policy are denied.

    Example:
        gate = AccessGate()
        gate.require(caller, Resource.ANALYTICS_CACHE, Action.WRITE)
    """

    def __init__(self, policy: Optional[Mapping[Tuple[Resource, Action], FrozenSet[CallerRole]]] = None):
        self._policy: Dict[Tuple[Resource, Action], FrozenSet[CallerRole]] = dict(policy or DEFAULT_POLICY)

    def allows(self, caller: Caller, resource: Resource, action: Action) -> bool:
        """Check a capability without raising"""
        return caller.role in self._policy.get((resource, action), frozenset())

    def require(self, caller: Caller, resource: Resource, action: Action) -> None:
        """
        Assert that the caller holds a capability.

        Raises:
            AuthorizationError: If the caller's role is not granted the action
        """
        if self.allows(caller, resource, action):
            return

        logger.warning(
            "Access denied",
            role=caller.role.value,
            subject=caller.subject,
            resource=resource.value,
            action=action.value,
        )
        raise AuthorizationError(
            f"Role '{caller.role.value}' may not {action.value} {resource.value}",
            role=caller.role.value,
            resource=resource.value,
            action=action.value,
        )


default_gate = AccessGate()
