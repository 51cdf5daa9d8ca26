"""Request ledger.

Permission requests go ``pending`` → ``approved`` | ``denied`` exactly once.
Approval creates the grant inside the same unit of work, so a request is
never approved without its grant (or vice versa).
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional

from ..exceptions import ConflictError, NotFoundError, StateError, ValidationError
from ..logging import safe_log_value
from ..permissions.constants import Decision, RequestStatus
from ..permissions.models import PermissionRequest, utcnow
from ..permissions.registry import PermissionTypeRegistry
from ..store.base import LedgerStore
from .grants import GrantLedger

logger = logging.getLogger(__name__)


def _parse_decision(decision: str | Decision) -> Decision:
    try:
        return Decision(decision)
    except ValueError:
        raise ValidationError("decision must be 'approved' or 'denied'", decision=decision) from None


def _parse_status(status: str | RequestStatus) -> RequestStatus:
    try:
        return RequestStatus(status)
    except ValueError:
        raise ValidationError(
            f"Invalid request status {status!r}. Valid: {', '.join(s.value for s in RequestStatus)}",
            status=status,
        ) from None


class RequestLedger:
    """Permission request lifecycle.

    Args:
        store: Ledger storage backend.
        registry: Permission type registry.
        grants: Grant ledger used for the active-grant check and for approval.
        clock: Returns the current UTC time.
    """

    def __init__(
        self,
        store: LedgerStore,
        registry: PermissionTypeRegistry,
        grants: GrantLedger,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._registry = registry
        self._grants = grants
        self._clock = clock

    def submit(self, user_id: str, type: str, reason: Optional[str] = None) -> PermissionRequest:
        """Open a pending request.

        Raises:
            ValidationError: ``type`` is not registered or ``user_id`` is empty.
            ConflictError: a pending request or an active grant already exists.
        """
        self._registry.validate(type)
        if not user_id:
            raise ValidationError("user_id is required")

        with self._store.unit_of_work(user_id, type):
            if self._store.find_active_grant(user_id, type) is not None:
                logger.warning("Rejected request from %s for %s: already granted", user_id, type, extra={"error_code": "CONFLICT"})
                raise ConflictError("You already have this permission", user_id=user_id, type=type)
            if self._store.find_pending_request(user_id, type) is not None:
                logger.warning("Rejected request from %s for %s: already pending", user_id, type, extra={"error_code": "CONFLICT"})
                raise ConflictError(
                    "You already have a pending request for this permission",
                    user_id=user_id,
                    type=type,
                )

            request = PermissionRequest(
                user_id=user_id,
                type=type,
                reason=reason or None,
                created_at=self._clock(),
            )
            self._store.add_request(request)

        logger.info(
            "Permission request %s: %s asks for %s",
            request.id,
            user_id,
            type,
            extra={"reason": safe_log_value(reason)},
        )
        return request

    def decide(
        self,
        request_id: str,
        decision: str | Decision,
        decider_id: str,
        note: Optional[str] = None,
        *,
        relay_quota: Optional[int] = None,
        nip05_quota: Optional[int] = None,
    ) -> PermissionRequest:
        """Approve or deny a pending request.

        Raises:
            ValidationError: ``decision`` is neither approved nor denied.
            NotFoundError: unknown ``request_id``.
            StateError: the request was already decided.
            ConflictError: approving while the user already holds an active grant;
                the request stays pending.
        """
        outcome = _parse_decision(decision)

        snapshot = self._store.get_request(request_id)
        if snapshot is None:
            raise NotFoundError("Request not found", request_id=request_id)

        with self._store.unit_of_work(snapshot.user_id, snapshot.type):
            # Re-read under the lock; a concurrent decide may have won
            request = self._store.get_request(request_id)
            if request is None:
                raise NotFoundError("Request not found", request_id=request_id)
            if not request.is_pending:
                logger.warning("Request %s already decided", request_id, extra={"error_code": "INVALID_STATE"})
                raise StateError(
                    f"Request already {RequestStatus(request.status).value}",
                    request_id=request_id,
                    status=RequestStatus(request.status).value,
                )

            request.status = RequestStatus(outcome.value)
            request.decided_at = self._clock()
            request.decided_by = decider_id
            request.decision_note = note or None

            if outcome == Decision.APPROVED:
                self._grants.grant_locked(
                    request.user_id,
                    request.type,
                    decider_id,
                    relay_quota=relay_quota,
                    nip05_quota=nip05_quota,
                )
            self._store.save_request(request)

        logger.info(
            "Permission request %s %s by %s",
            request_id,
            outcome.value,
            decider_id,
            extra={"type": request.type, "note": safe_log_value(note)},
        )
        return request

    def get(self, request_id: str) -> PermissionRequest:
        request = self._store.get_request(request_id)
        if request is None:
            raise NotFoundError("Request not found", request_id=request_id)
        return request

    def has_pending(self, user_id: str, type: str) -> bool:
        return self._store.find_pending_request(user_id, type) is not None

    def list_by_status(self, status: str | RequestStatus, limit: int | None = None) -> list[PermissionRequest]:
        return self._store.list_requests(status=_parse_status(status), limit=limit)

    def list_for_user(self, user_id: str, limit: int | None = None) -> list[PermissionRequest]:
        return self._store.list_requests(user_id=user_id, limit=limit)


__all__ = ["RequestLedger"]
