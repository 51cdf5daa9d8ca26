"""In-process ledger store.

Rows live in dictionaries; each (user_id, type) pair gets its own lock so
unrelated pairs never contend. Writes made inside a unit of work are
journaled and undone if the block raises.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Callable, Iterator, Optional

from ..exceptions import ConflictError, NotFoundError
from ..permissions.constants import RequestStatus
from ..permissions.models import PermissionGrant, PermissionRequest
from .base import LedgerStore

logger = logging.getLogger(__name__)


class MemoryLedgerStore(LedgerStore):
    """Dictionary-backed store with sharded per-key locks."""

    def __init__(self) -> None:
        self._requests: dict[str, PermissionRequest] = {}
        self._grants: dict[str, PermissionGrant] = {}
        # Guards the row tables and the lock table; never held while waiting on a key lock
        self._data_lock = threading.RLock()
        self._key_locks: dict[tuple[str, str], threading.RLock] = {}
        self._local = threading.local()

    def _lock_for(self, user_id: str, type: str) -> threading.RLock:
        with self._data_lock:
            lock = self._key_locks.get((user_id, type))
            if lock is None:
                lock = self._key_locks[(user_id, type)] = threading.RLock()
            return lock

    def _journal(self) -> list[Callable[[], None]] | None:
        return getattr(self._local, "journal", None)

    def _record_undo(self, undo: Callable[[], None]) -> None:
        journal = self._journal()
        if journal is not None:
            journal.append(undo)

    @contextmanager
    def unit_of_work(self, user_id: str, type: str) -> Iterator[None]:
        lock = self._lock_for(user_id, type)
        with lock:
            outer = self._journal()
            if outer is not None:
                # Nested block on the same thread joins the outer unit
                yield
                return
            self._local.journal = []
            try:
                yield
            except BaseException:
                with self._data_lock:
                    for undo in reversed(self._local.journal):
                        undo()
                raise
            finally:
                self._local.journal = None

    # ── Requests ────────────────────────────────────────

    def add_request(self, request: PermissionRequest) -> None:
        with self._data_lock:
            if request.id in self._requests:
                raise ConflictError("Duplicate request id", request_id=request.id)
            if request.is_pending and self._pending_for(request.user_id, request.type) is not None:
                raise ConflictError(
                    "You already have a pending request for this permission",
                    user_id=request.user_id,
                    type=request.type,
                )
            self._requests[request.id] = request.model_copy()
            self._record_undo(lambda: self._requests.pop(request.id, None))

    def save_request(self, request: PermissionRequest) -> None:
        with self._data_lock:
            previous = self._requests.get(request.id)
            if previous is None:
                raise NotFoundError("Request not found", request_id=request.id)
            self._requests[request.id] = request.model_copy()
            self._record_undo(lambda: self._requests.__setitem__(request.id, previous))

    def get_request(self, request_id: str) -> Optional[PermissionRequest]:
        with self._data_lock:
            row = self._requests.get(request_id)
            return row.model_copy() if row is not None else None

    def _pending_for(self, user_id: str, type: str) -> Optional[PermissionRequest]:
        for row in self._requests.values():
            if row.user_id == user_id and row.type == type and row.is_pending:
                return row
        return None

    def find_pending_request(self, user_id: str, type: str) -> Optional[PermissionRequest]:
        with self._data_lock:
            row = self._pending_for(user_id, type)
            return row.model_copy() if row is not None else None

    def list_requests(
        self,
        *,
        user_id: str | None = None,
        status: RequestStatus | None = None,
        limit: int | None = None,
    ) -> list[PermissionRequest]:
        with self._data_lock:
            rows = [
                row.model_copy()
                for row in reversed(list(self._requests.values()))
                if (user_id is None or row.user_id == user_id) and (status is None or row.status == status)
            ]
        return rows[:limit] if limit is not None else rows

    # ── Grants ──────────────────────────────────────────

    def add_grant(self, grant: PermissionGrant) -> None:
        with self._data_lock:
            if grant.id in self._grants:
                raise ConflictError("Duplicate grant id", grant_id=grant.id)
            if grant.is_active and self._active_for(grant.user_id, grant.type) is not None:
                raise ConflictError(
                    "User already has this permission",
                    user_id=grant.user_id,
                    type=grant.type,
                )
            self._grants[grant.id] = grant.model_copy()
            self._record_undo(lambda: self._grants.pop(grant.id, None))

    def save_grant(self, grant: PermissionGrant) -> None:
        with self._data_lock:
            previous = self._grants.get(grant.id)
            if previous is None:
                raise NotFoundError("Grant not found", grant_id=grant.id)
            self._grants[grant.id] = grant.model_copy()
            self._record_undo(lambda: self._grants.__setitem__(grant.id, previous))

    def _active_for(self, user_id: str, type: str) -> Optional[PermissionGrant]:
        for row in self._grants.values():
            if row.user_id == user_id and row.type == type and row.is_active:
                return row
        return None

    def find_active_grant(self, user_id: str, type: str) -> Optional[PermissionGrant]:
        with self._data_lock:
            row = self._active_for(user_id, type)
            return row.model_copy() if row is not None else None

    def list_grants(
        self,
        *,
        user_id: str | None = None,
        active_only: bool = False,
    ) -> list[PermissionGrant]:
        with self._data_lock:
            return [
                row.model_copy()
                for row in reversed(list(self._grants.values()))
                if (user_id is None or row.user_id == user_id) and (not active_only or row.is_active)
            ]


__all__ = ["MemoryLedgerStore"]
