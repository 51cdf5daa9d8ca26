"""Grant ledger.

Creates, gates, and revokes capability grants. Every mutation runs inside
the store's unit of work for the (user_id, type) pair, which is what keeps
the single-active-grant invariant under concurrency.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional

from ..exceptions import ConflictError, NotFoundError, ValidationError
from ..logging import safe_log_value
from ..permissions.constants import PermissionTypes
from ..permissions.models import PermissionGrant, utcnow
from ..permissions.registry import PermissionTypeRegistry
from ..store.base import LedgerStore

logger = logging.getLogger(__name__)


def _check_quota(name: str, value: Optional[int]) -> None:
    if value is not None and value < 0:
        raise ValidationError(f"{name} must be >= 0", **{name: value})


def _check_quotas(type: str, relay_quota: Optional[int], nip05_quota: Optional[int]) -> None:
    _check_quota("relay_quota", relay_quota)
    _check_quota("nip05_quota", nip05_quota)
    if relay_quota is not None and type not in PermissionTypes.RELAY_QUOTA_TYPES:
        raise ValidationError(f"{type!r} grants carry no relay quota", type=type)
    if nip05_quota is not None and type not in PermissionTypes.NIP05_QUOTA_TYPES:
        raise ValidationError(f"{type!r} grants carry no NIP-05 quota", type=type)


class GrantLedger:
    """Active/revoked capability grants per user.

    Args:
        store: Ledger storage backend.
        registry: Permission type registry (disclaimer lookup).
        default_relay_quota: Relay quota for new ``operator`` grants.
        default_nip05_quota: NIP-05 quota for new ``operator``/``nip05_operator`` grants.
        clock: Returns the current UTC time.
    """

    def __init__(
        self,
        store: LedgerStore,
        registry: PermissionTypeRegistry,
        *,
        default_relay_quota: int = 5,
        default_nip05_quota: int = 5,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._registry = registry
        self._default_relay_quota = default_relay_quota
        self._default_nip05_quota = default_nip05_quota
        self._clock = clock

    # ── Transitions ─────────────────────────────────────

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
        """Create an active grant. ConflictError if one is already active."""
        self._registry.validate(type)
        with self._store.unit_of_work(user_id, type):
            return self.grant_locked(
                user_id,
                type,
                granted_by,
                notes=notes,
                relay_quota=relay_quota,
                nip05_quota=nip05_quota,
            )

    def grant_locked(
        self,
        user_id: str,
        type: str,
        granted_by: Optional[str] = None,
        *,
        notes: Optional[str] = None,
        relay_quota: Optional[int] = None,
        nip05_quota: Optional[int] = None,
    ) -> PermissionGrant:
        """:meth:`grant` for callers already inside the (user_id, type) unit of work."""
        _check_quotas(type, relay_quota, nip05_quota)

        if self._store.find_active_grant(user_id, type) is not None:
            logger.warning("Rejected grant of %s to %s: already active", type, user_id, extra={"error_code": "CONFLICT"})
            raise ConflictError("User already has this permission", user_id=user_id, type=type)

        now = self._clock()
        auto_accept = not self._registry.requires_disclaimer(type)
        grant = PermissionGrant(
            user_id=user_id,
            type=type,
            granted_at=now,
            granted_by=granted_by,
            disclaimer_accepted=auto_accept,
            disclaimer_accepted_at=now if auto_accept else None,
            notes=notes or None,
            relay_quota=(
                relay_quota if relay_quota is not None else self._default_relay_quota
            ) if type in PermissionTypes.RELAY_QUOTA_TYPES else None,
            nip05_quota=(
                nip05_quota if nip05_quota is not None else self._default_nip05_quota
            ) if type in PermissionTypes.NIP05_QUOTA_TYPES else None,
        )
        self._store.add_grant(grant)
        logger.info(
            "Granted %s to %s",
            type,
            user_id,
            extra={"grant_id": grant.id, "granted_by": granted_by, "disclaimer_accepted": auto_accept},
        )
        return grant

    def accept_disclaimer(self, user_id: str, type: str) -> PermissionGrant:
        """Mark the active grant's disclaimer accepted. Idempotent."""
        self._registry.validate(type)
        with self._store.unit_of_work(user_id, type):
            grant = self._store.find_active_grant(user_id, type)
            if grant is None:
                raise NotFoundError("Permission not found or revoked", user_id=user_id, type=type)
            if grant.disclaimer_accepted:
                return grant

            grant.disclaimer_accepted = True
            grant.disclaimer_accepted_at = self._clock()
            self._store.save_grant(grant)

        logger.info("Disclaimer accepted for %s by %s", type, user_id, extra={"grant_id": grant.id})
        return grant

    def revoke(self, user_id: str, type: str, notes: Optional[str] = None) -> None:
        """Ensure ``user_id`` holds no active ``type`` grant.

        Succeeds silently when nothing is active.
        """
        self._registry.validate(type)
        with self._store.unit_of_work(user_id, type):
            grant = self._store.find_active_grant(user_id, type)
            if grant is None:
                logger.debug("Revoke %s for %s: nothing active", type, user_id)
                return

            grant.revoked_at = self._clock()
            if notes:
                grant.notes = f"{grant.notes or ''}\nRevoked: {notes}".strip()
            self._store.save_grant(grant)

        logger.info(
            "Revoked %s from %s",
            type,
            user_id,
            extra={"grant_id": grant.id, "notes": safe_log_value(notes)},
        )

    def update_quota(
        self,
        user_id: str,
        type: str,
        *,
        relay_quota: Optional[int] = None,
        nip05_quota: Optional[int] = None,
    ) -> PermissionGrant:
        """Change the quotas on the active grant. Only quota-bearing types accept each field."""
        self._registry.validate(type)
        _check_quotas(type, relay_quota, nip05_quota)

        with self._store.unit_of_work(user_id, type):
            grant = self._store.find_active_grant(user_id, type)
            if grant is None:
                raise NotFoundError("Active permission not found", user_id=user_id, type=type)
            if relay_quota is not None:
                grant.relay_quota = relay_quota
            if nip05_quota is not None:
                grant.nip05_quota = nip05_quota
            self._store.save_grant(grant)

        logger.info(
            "Updated quotas for %s/%s",
            user_id,
            type,
            extra={"relay_quota": grant.relay_quota, "nip05_quota": grant.nip05_quota},
        )
        return grant

    # ── Queries ─────────────────────────────────────────

    def active_grant(self, user_id: str, type: str) -> Optional[PermissionGrant]:
        return self._store.find_active_grant(user_id, type)

    def has_active_grant(self, user_id: str, type: str) -> bool:
        return self._store.find_active_grant(user_id, type) is not None

    def has_accepted_disclaimer(self, user_id: str, type: str) -> bool:
        grant = self._store.find_active_grant(user_id, type)
        return grant is not None and grant.disclaimer_accepted

    def list_active_grants(self) -> list[PermissionGrant]:
        return self._store.list_grants(active_only=True)

    def list_for_user(self, user_id: str, *, active_only: bool = False) -> list[PermissionGrant]:
        return self._store.list_grants(user_id=user_id, active_only=active_only)


__all__ = ["GrantLedger"]
