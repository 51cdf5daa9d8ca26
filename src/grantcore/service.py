"""Caller-facing permission operations.

Transport-agnostic facade over the AuthorizationEngine: every method takes
the already-authenticated caller (see :mod:`grantcore.identity`) and
enforces who may do what. A REST or gRPC layer maps these one-to-one and
translates GrantCoreError via :mod:`grantcore.exceptions`.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel

from .engine import AuthorizationEngine, require_admin
from .exceptions import ConfigurationError
from .identity import IdentityProvider, User
from .inventory import RelayInventory
from .logging import get_grant_logger
from .permissions.constants import AccessTier, Decision, RequestStatus
from .permissions.eligibility import (
    Nip05Eligibility,
    RelayEligibility,
    nip05_eligibility,
    relay_eligibility,
)
from .permissions.models import PermissionGrant, PermissionRequest
from .permissions.tier import TierClassifier

audit = get_grant_logger(__name__)

# Page sizes of the admin and "mine" listings
ADMIN_REQUESTS_LIMIT = 100
MY_REQUESTS_LIMIT = 20


class MyPermissions(BaseModel):
    grants: list[PermissionGrant]
    requests: list[PermissionRequest]


class PermissionService:
    """The logical operations exposed to API gateways and UIs.

    Args:
        engine: Authorization engine.
        inventory: Relay inventory used for tier classification and relay eligibility.
        identity: Resolves transport credentials to the calling User.
    """

    def __init__(
        self,
        engine: AuthorizationEngine,
        inventory: RelayInventory,
        identity: IdentityProvider | None = None,
    ) -> None:
        self.engine = engine
        self.inventory = inventory
        self.identity = identity
        self._tiers = TierClassifier(inventory)

    def caller(self, credentials) -> User:
        """Resolve the current caller through the identity provider."""
        if self.identity is None:
            raise ConfigurationError("PermissionService has no identity provider")
        return self.identity.current_user(credentials)

    # ── Any authenticated user ──────────────────────────

    def list_permission_types(self) -> list[dict[str, str]]:
        return [{"type": t.type, "disclaimer": t.disclaimer} for t in self.engine.list_types()]

    def submit_request(self, caller: User, type: str, reason: Optional[str] = None) -> PermissionRequest:
        return self.engine.submit(caller.id, type, reason)

    def my_permissions(self, caller: User) -> MyPermissions:
        return MyPermissions(
            grants=self.engine.grants.list_for_user(caller.id, active_only=True),
            requests=self.engine.requests.list_for_user(caller.id, limit=MY_REQUESTS_LIMIT),
        )

    def accept_disclaimer(self, caller: User, type: str) -> PermissionGrant:
        return self.engine.accept_disclaimer(caller.id, type)

    def access_tier(self, caller: User) -> AccessTier:
        return self._tiers.classify(caller)

    def relay_eligibility(self, caller: User) -> RelayEligibility:
        # Quota checks must not see a stale cached count
        owned = self.inventory.current_relay_counts(caller.id).owned
        return relay_eligibility(self.engine, caller, owned)

    def nip05_eligibility(self, caller: User, nip05_used: int) -> Nip05Eligibility:
        return nip05_eligibility(self.engine, caller, nip05_used)

    # ── Admin only ──────────────────────────────────────

    def list_requests(self, caller: User, status: str | RequestStatus | None = None) -> list[PermissionRequest]:
        require_admin(caller, "list_requests")
        return self.engine.requests.list_by_status(status or RequestStatus.PENDING, limit=ADMIN_REQUESTS_LIMIT)

    def decide_request(
        self,
        caller: User,
        request_id: str,
        decision: str | Decision,
        note: Optional[str] = None,
        *,
        relay_quota: Optional[int] = None,
        nip05_quota: Optional[int] = None,
    ) -> PermissionRequest:
        request = self.engine.decide(
            request_id,
            decision,
            caller,
            note,
            relay_quota=relay_quota,
            nip05_quota=nip05_quota,
        )
        audit.info("Admin decided request", user_id=caller.id, request_id=request.id)
        return request

    def list_grants(self, caller: User) -> list[PermissionGrant]:
        require_admin(caller, "list_grants")
        return self.engine.grants.list_active_grants()

    def revoke_grant(self, caller: User, user_id: str, type: str, notes: Optional[str] = None) -> None:
        require_admin(caller, "revoke_grant")
        self.engine.revoke(user_id, type, notes)
        audit.info("Admin revoked %s from %s", type, user_id, user_id=caller.id)

    def assign_grant(
        self,
        caller: User,
        user_id: str,
        type: str,
        notes: Optional[str] = None,
        *,
        relay_quota: Optional[int] = None,
        nip05_quota: Optional[int] = None,
    ) -> PermissionGrant:
        return self.engine.assign(
            caller,
            user_id,
            type,
            notes=notes,
            relay_quota=relay_quota,
            nip05_quota=nip05_quota,
        )

    def update_quota(
        self,
        caller: User,
        user_id: str,
        type: str,
        *,
        relay_quota: Optional[int] = None,
        nip05_quota: Optional[int] = None,
    ) -> PermissionGrant:
        return self.engine.update_quota(caller, user_id, type, relay_quota=relay_quota, nip05_quota=nip05_quota)


__all__ = [
    "ADMIN_REQUESTS_LIMIT",
    "MY_REQUESTS_LIMIT",
    "MyPermissions",
    "PermissionService",
]
