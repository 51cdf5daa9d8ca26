"""Tests for the caller-facing PermissionService."""

from __future__ import annotations

import pytest

from grantcore import (
    AccessTier,
    ConfigurationError,
    ForbiddenError,
    GrantCoreConfig,
    NotFoundError,
    PermissionService,
    RelayCounts,
    RequestStatus,
    StaticIdentityProvider,
    StaticRelayInventory,
    User,
    build_service,
)
from grantcore.service import ADMIN_REQUESTS_LIMIT, MY_REQUESTS_LIMIT


class TestUserOperations:
    """Operations available to any authenticated user."""

    def test_list_permission_types(self, service) -> None:
        types = service.list_permission_types()
        assert {"type": "beta_tester", "disclaimer": ""} in types
        assert [t["type"] for t in types][:4] == ["admin", "coinos_admin", "operator", "nip05_operator"]

    def test_submit_uses_caller_id(self, service, user) -> None:
        request = service.submit_request(user, "operator", reason="hosting a relay")
        assert request.user_id == "u1"
        assert request.status == RequestStatus.PENDING

    def test_my_permissions(self, service, admin, user) -> None:
        """Test that 'mine' shows active grants and request history."""
        denied = service.submit_request(user, "coinos_admin")
        service.decide_request(admin, denied.id, "denied")
        approved = service.submit_request(user, "operator")
        service.decide_request(admin, approved.id, "approved")
        service.assign_grant(admin, user.id, "nip05_operator")
        service.revoke_grant(admin, user.id, "nip05_operator")

        mine = service.my_permissions(user)
        assert [g.type for g in mine.grants] == ["operator"]
        assert [r.id for r in mine.requests] == [approved.id, denied.id]

    def test_my_permissions_limits_requests(self, service, admin, user) -> None:
        for _ in range(MY_REQUESTS_LIMIT + 2):
            request = service.submit_request(user, "operator")
            service.decide_request(admin, request.id, "denied")
        assert len(service.my_permissions(user).requests) == MY_REQUESTS_LIMIT

    def test_my_permissions_only_own(self, service, user) -> None:
        service.submit_request(User(id="u2"), "operator")
        mine = service.my_permissions(user)
        assert mine.grants == []
        assert mine.requests == []

    def test_accept_disclaimer(self, service, admin, user) -> None:
        service.assign_grant(admin, user.id, "coinos_admin")
        grant = service.accept_disclaimer(user, "coinos_admin")
        assert grant.disclaimer_accepted is True
        assert service.engine.has_permission(user, "coinos_admin") is True

    def test_accept_disclaimer_for_someone_else_is_impossible(self, service, admin) -> None:
        """Test that acceptance always applies to the caller's own grant."""
        service.assign_grant(admin, "u2", "coinos_admin")
        with pytest.raises(NotFoundError):
            service.accept_disclaimer(User(id="u1"), "coinos_admin")
        assert service.engine.disclaimer_accepted(User(id="u2"), "coinos_admin") is False


class TestTierAndEligibility:
    """Tier and eligibility queries resolved through the relay inventory."""

    def test_access_tier(self, service, inventory, admin, user) -> None:
        assert service.access_tier(admin) == AccessTier.ADMIN
        assert service.access_tier(user) == AccessTier.DEMO
        inventory.set(user.id, RelayCounts(moderated=1))
        assert service.access_tier(user) == AccessTier.OPERATOR

    def test_relay_eligibility_uses_owned_count(self, service, inventory, admin, user) -> None:
        service.assign_grant(admin, user.id, "operator", relay_quota=1)
        service.accept_disclaimer(user, "operator")
        assert service.relay_eligibility(user).eligible is True

        inventory.set(user.id, RelayCounts(owned=1))
        result = service.relay_eligibility(user)
        assert result.eligible is False
        assert result.relays_owned == 1

    def test_nip05_eligibility(self, service, user) -> None:
        result = service.nip05_eligibility(user, nip05_used=0)
        assert result.eligible is False
        assert result.can_request is True


class TestAdminOperations:
    """Admin-only operations and their authorization checks."""

    def test_list_requests_defaults_to_pending(self, service, admin) -> None:
        r1 = service.submit_request(User(id="u1"), "operator")
        r2 = service.submit_request(User(id="u2"), "operator")
        service.decide_request(admin, r1.id, "denied")

        assert [r.id for r in service.list_requests(admin)] == [r2.id]
        assert [r.id for r in service.list_requests(admin, "denied")] == [r1.id]

    def test_list_requests_limit(self, service, admin) -> None:
        for i in range(ADMIN_REQUESTS_LIMIT + 1):
            service.submit_request(User(id=f"u{i}"), "operator")
        assert len(service.list_requests(admin)) == ADMIN_REQUESTS_LIMIT

    def test_list_grants(self, service, admin) -> None:
        service.assign_grant(admin, "u1", "operator")
        service.assign_grant(admin, "u2", "operator")
        service.revoke_grant(admin, "u1", "operator", notes="inactive")
        assert [g.user_id for g in service.list_grants(admin)] == ["u2"]

    def test_update_quota(self, service, admin) -> None:
        service.assign_grant(admin, "u1", "operator")
        grant = service.update_quota(admin, "u1", "operator", relay_quota=9, nip05_quota=1)
        assert (grant.relay_quota, grant.nip05_quota) == (9, 1)

    @pytest.mark.parametrize(
        "call",
        [
            lambda s, u: s.list_requests(u),
            lambda s, u: s.decide_request(u, "r1", "approved"),
            lambda s, u: s.list_grants(u),
            lambda s, u: s.revoke_grant(u, "u2", "operator"),
            lambda s, u: s.assign_grant(u, "u2", "operator"),
            lambda s, u: s.update_quota(u, "u2", "operator", relay_quota=1),
        ],
    )
    def test_admin_operations_forbidden(self, service, user, call) -> None:
        """Test that non-admins get ForbiddenError before anything happens."""
        with pytest.raises(ForbiddenError):
            call(service, user)

    def test_forbidden_revoke_leaves_grant(self, service, admin, user) -> None:
        service.assign_grant(admin, "u2", "operator")
        with pytest.raises(ForbiddenError):
            service.revoke_grant(user, "u2", "operator")
        assert service.engine.grants.active_grant("u2", "operator") is not None

    def test_decide_request_is_audited(self, service, admin, user, caplog) -> None:
        request = service.submit_request(user, "operator")
        with caplog.at_level("INFO"):
            service.decide_request(admin, request.id, "approved")
        assert "Admin decided request" in caplog.text


class TestCaller:
    """Caller resolution through the identity provider."""

    def test_caller(self, engine, inventory, admin) -> None:
        service = PermissionService(engine, inventory, StaticIdentityProvider({"a1": admin}))
        assert service.caller("a1") == admin

    def test_unknown_caller(self, engine, inventory) -> None:
        service = PermissionService(engine, inventory, StaticIdentityProvider())
        with pytest.raises(NotFoundError, match="Unknown user"):
            service.caller("ghost")

    def test_no_identity_provider(self, service) -> None:
        with pytest.raises(ConfigurationError):
            service.caller("a1")

    def test_admin_flag_is_read_per_call(self, engine, inventory) -> None:
        """Test that a demoted admin loses the bypass on the next call."""
        identity = StaticIdentityProvider({"a1": User(id="a1", admin=True)})
        service = PermissionService(engine, inventory, identity)
        assert service.engine.has_permission(service.caller("a1"), "coinos_admin") is True

        identity.add(User(id="a1", admin=False))
        assert service.engine.has_permission(service.caller("a1"), "coinos_admin") is False


class TestQuotaFreshness:
    """Relay quota checks read live counts even behind the inventory cache."""

    def test_relay_eligibility_sees_new_relay_within_ttl(self) -> None:
        """Test that reaching the quota is visible before the cache entry expires."""
        upstream = StaticRelayInventory({"u1": RelayCounts(owned=4)})
        service = build_service(GrantCoreConfig(), inventory=upstream)
        admin, user = User(id="a1", admin=True), User(id="u1")
        service.assign_grant(admin, user.id, "operator")
        service.accept_disclaimer(user, "operator")

        assert service.relay_eligibility(user).eligible is True

        upstream.set(user.id, RelayCounts(owned=5))
        result = service.relay_eligibility(user)
        assert result.eligible is False
        assert result.relays_owned == 5
        assert result.relay_quota == 5

    def test_fresh_read_refreshes_tier(self) -> None:
        upstream = StaticRelayInventory()
        service = build_service(GrantCoreConfig(), inventory=upstream)
        user = User(id="u1")
        assert service.access_tier(user) == AccessTier.DEMO

        upstream.set(user.id, RelayCounts(owned=1))
        service.relay_eligibility(user)
        assert service.access_tier(user) == AccessTier.OPERATOR
