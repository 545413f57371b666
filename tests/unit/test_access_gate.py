"""
Unit Tests - Access Gate
"""
import pytest

from judicial_cache.access import AccessGate, Action, Caller, CallerRole, Resource
from judicial_cache.errors import AuthorizationError


class TestAccessGate:
    """Tests for the default capability matrix"""

    @pytest.mark.parametrize("resource", list(Resource))
    @pytest.mark.parametrize(
        "caller",
        [Caller.anonymous(), Caller.authenticated("clerk"), Caller.service()],
    )
    def test_everyone_reads(self, resource, caller):
        AccessGate().require(caller, resource, Action.READ)

    @pytest.mark.parametrize("resource", list(Resource))
    def test_only_service_writes(self, resource):
        gate = AccessGate()

        assert gate.allows(Caller.service(), resource, Action.WRITE)
        assert not gate.allows(Caller.anonymous(), resource, Action.WRITE)
        assert not gate.allows(Caller.authenticated("clerk"), resource, Action.WRITE)

    def test_denial_carries_context(self):
        with pytest.raises(AuthorizationError) as exc_info:
            AccessGate().require(Caller.authenticated("clerk"), Resource.ANALYTICS_CACHE, Action.WRITE)

        err = exc_info.value
        assert err.role == "authenticated"
        assert err.resource == "analytics_cache"
        assert err.action == "write"

    def test_missing_pair_is_denied(self):
        gate = AccessGate(policy={(Resource.DECISION_COUNTS, Action.READ): frozenset({CallerRole.SERVICE})})

        assert gate.allows(Caller.service(), Resource.DECISION_COUNTS, Action.READ)
        assert not gate.allows(Caller.anonymous(), Resource.DECISION_COUNTS, Action.READ)
        assert not gate.allows(Caller.service(), Resource.SYNC_PROGRESS, Action.READ)

    def test_caller_privilege(self):
        assert Caller.service().is_privileged
        assert not Caller.authenticated("clerk").is_privileged
        assert not Caller.anonymous().is_privileged
