"""Authorization engine.

The one component external callers use. It composes the permission type
registry with the request and grant ledgers, and holds the only admin
bypass in the codebase (``has_permission`` / ``has_permission_granted``).

Lifecycle of a (user, type) pair::

    NoAccess --submit--> Pending --decide(denied)--> Denied
    NoAccess --submit--> Pending --decide(approved)--> Granted (disclaimer pending)
        --accept_disclaimer--> Granted (active) --revoke--> Revoked --submit--> Pending ...
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional

from .exceptions import ForbiddenError
from .identity import User
from .ledger import GrantLedger, RequestLedger
from .permissions.constants import Decision, PermissionTypes
from .permissions.models import PermissionGrant, PermissionRequest, PermissionType, utcnow
from .permissions.registry import PermissionTypeRegistry
from .store.base import LedgerStore

logger = logging.getLogger(__name__)


def require_admin(user: User, action: str) -> None:
    """Raise ForbiddenError unless ``user`` is a super-admin."""
    if not user.admin:
        logger.warning("Non-admin %s attempted %s", user.id, action, extra={"error_code": "FORBIDDEN"})
        raise ForbiddenError("Admin access required", user_id=user.id, action=action)


class AuthorizationEngine:
    """Decides capability access and executes lifecycle transitions.

    Args:
        registry: Closed set of permission types.
        store: Ledger storage backend (exclusively owned by this engine).
        default_relay_quota: Relay quota for new ``operator`` grants.
        default_nip05_quota: NIP-05 quota for new ``operator``/``nip05_operator`` grants.
        clock: Returns the current UTC time.

    Example::

        engine = AuthorizationEngine(PermissionTypeRegistry.default(), MemoryLedgerStore())
        req = engine.submit("u1", "coinos_admin", reason="need to inspect fees")
        engine.decide(req.id, "approved", User(id="a1", admin=True), note="ok, be careful")
        engine.has_permission(User(id="u1"), "coinos_admin")   # False, disclaimer pending
        engine.accept_disclaimer("u1", "coinos_admin")
        engine.has_permission(User(id="u1"), "coinos_admin")   # True
    """

    def __init__(
        self,
        registry: PermissionTypeRegistry,
        store: LedgerStore,
        *,
        default_relay_quota: int = 5,
        default_nip05_quota: int = 5,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.registry = registry
        self.store = store
        self.default_relay_quota = default_relay_quota
        self.default_nip05_quota = default_nip05_quota
        self.grants = GrantLedger(
            store,
            registry,
            default_relay_quota=default_relay_quota,
            default_nip05_quota=default_nip05_quota,
            clock=clock,
        )
        self.requests = RequestLedger(store, registry, self.grants, clock=clock)

    # ── Access policy ───────────────────────────────────

    def has_permission(self, user: User, type: str) -> bool:
        """True if ``user`` may exercise ``type`` right now.

        Super-admins hold every registered capability. Everyone else needs an
        active grant whose disclaimer has been accepted. ``admin`` is answered
        from the flag alone, even by a registry that does not list it.
        """
        if user.admin and type == PermissionTypes.ADMIN:
            return True
        self.registry.validate(type)
        if user.admin:
            return True
        return self.grants.has_active_grant(user.id, type) and self.grants.has_accepted_disclaimer(user.id, type)

    def has_permission_granted(self, user: User, type: str) -> bool:
        """Like :meth:`has_permission` but ignores the disclaimer gate.

        ``has_permission_granted and not has_permission`` means "show the
        disclaimer screen", not "access denied".
        """
        if user.admin and type == PermissionTypes.ADMIN:
            return True
        self.registry.validate(type)
        if user.admin:
            return True
        return self.grants.has_active_grant(user.id, type)

    def disclaimer_accepted(self, user: User, type: str) -> bool:
        """Raw disclaimer state, no admin bypass."""
        self.registry.validate(type)
        return self.grants.has_accepted_disclaimer(user.id, type)

    # ── Registry ────────────────────────────────────────

    def list_types(self) -> list[PermissionType]:
        return self.registry.list_types()

    def disclaimer_for(self, type: str) -> str:
        return self.registry.disclaimer_for(type)

    # ── Transitions ─────────────────────────────────────

    def submit(self, user_id: str, type: str, reason: Optional[str] = None) -> PermissionRequest:
        return self.requests.submit(user_id, type, reason)

    def decide(
        self,
        request_id: str,
        decision: str | Decision,
        decider: User,
        note: Optional[str] = None,
        *,
        relay_quota: Optional[int] = None,
        nip05_quota: Optional[int] = None,
    ) -> PermissionRequest:
        """Approve or deny a pending request. Admin only."""
        require_admin(decider, "decide")
        return self.requests.decide(
            request_id,
            decision,
            decider.id,
            note,
            relay_quota=relay_quota,
            nip05_quota=nip05_quota,
        )

    def grant(
        self,
        user_id: str,
        type: str,
        granted_by: Optional[str] = None,
        *,
        notes: Optional[str] = None,
        relay_quota: Optional[int] = None,
        nip05_quota: Optional[int] = None,
    ) -> PermissionGrant:
        """Create a grant without a request (system grant when ``granted_by`` is None)."""
        return self.grants.grant(
            user_id,
            type,
            granted_by,
            notes=notes,
            relay_quota=relay_quota,
            nip05_quota=nip05_quota,
        )

    def assign(
        self,
        admin: User,
        user_id: str,
        type: str,
        *,
        notes: Optional[str] = None,
        relay_quota: Optional[int] = None,
        nip05_quota: Optional[int] = None,
    ) -> PermissionGrant:
        """Admin grant bypassing the request flow."""
        require_admin(admin, "assign")
        return self.grant(
            user_id,
            type,
            admin.id,
            notes=notes,
            relay_quota=relay_quota,
            nip05_quota=nip05_quota,
        )

    def accept_disclaimer(self, user_id: str, type: str) -> PermissionGrant:
        return self.grants.accept_disclaimer(user_id, type)

    def revoke(self, user_id: str, type: str, notes: Optional[str] = None) -> None:
        self.grants.revoke(user_id, type, notes)

    def update_quota(
        self,
        admin: User,
        user_id: str,
        type: str,
        *,
        relay_quota: Optional[int] = None,
        nip05_quota: Optional[int] = None,
    ) -> PermissionGrant:
        require_admin(admin, "update_quota")
        return self.grants.update_quota(user_id, type, relay_quota=relay_quota, nip05_quota=nip05_quota)


__all__ = ["AuthorizationEngine", "require_admin"]
