"""Ledger storage contract.

A store holds the two append-mostly tables (``permission_requests`` and
``permission_grants``) and provides the per-(user, type) serialization
domain the engine runs its check-then-write sequences in.

Backstop uniqueness (at most one pending request and one active grant per
(user, type)) is enforced by every backend and surfaces as ConflictError.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import ContextManager, Optional

from ..permissions.constants import RequestStatus
from ..permissions.models import PermissionGrant, PermissionRequest


class LedgerStore(ABC):
    """Persistence for permission requests and grants."""

    @abstractmethod
    def unit_of_work(self, user_id: str, type: str) -> ContextManager[None]:
        """Serialize on (user_id, type) and make the enclosed writes atomic.

        Everything written inside the block commits together, or not at all
        if the block raises.
        """
        raise NotImplementedError

    # ── Requests ────────────────────────────────────────

    @abstractmethod
    def add_request(self, request: PermissionRequest) -> None:
        raise NotImplementedError

    @abstractmethod
    def save_request(self, request: PermissionRequest) -> None:
        """Persist the decision fields of an existing request."""
        raise NotImplementedError

    @abstractmethod
    def get_request(self, request_id: str) -> Optional[PermissionRequest]:
        raise NotImplementedError

    @abstractmethod
    def find_pending_request(self, user_id: str, type: str) -> Optional[PermissionRequest]:
        raise NotImplementedError

    @abstractmethod
    def list_requests(
        self,
        *,
        user_id: str | None = None,
        status: RequestStatus | None = None,
        limit: int | None = None,
    ) -> list[PermissionRequest]:
        """Requests matching the filters, newest first."""
        raise NotImplementedError

    # ── Grants ──────────────────────────────────────────

    @abstractmethod
    def add_grant(self, grant: PermissionGrant) -> None:
        raise NotImplementedError

    @abstractmethod
    def save_grant(self, grant: PermissionGrant) -> None:
        """Persist the mutable fields (disclaimer, revocation, notes, quotas)."""
        raise NotImplementedError

    @abstractmethod
    def find_active_grant(self, user_id: str, type: str) -> Optional[PermissionGrant]:
        raise NotImplementedError

    @abstractmethod
    def list_grants(
        self,
        *,
        user_id: str | None = None,
        active_only: bool = False,
    ) -> list[PermissionGrant]:
        """Grants matching the filters, newest first."""
        raise NotImplementedError

    def close(self) -> None:
        """Release backend resources."""


__all__ = ["LedgerStore"]
