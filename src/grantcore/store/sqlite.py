"""SQLite ledger store.

Persists ``permission_requests`` and ``permission_grants`` in a single
SQLite database. Units of work run inside ``BEGIN IMMEDIATE`` transactions
(one writer at a time, also across processes sharing the file), and partial
unique indexes keep at most one pending request and one active grant per
(user_id, type) even if a caller bypasses the engine.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Iterator, Optional

from ..exceptions import ConflictError, NotFoundError, StorageError
from ..permissions.constants import RequestStatus
from ..permissions.models import PermissionGrant, PermissionRequest
from .base import LedgerStore

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

SCHEMA_VERSION = 1

CREATE_REQUESTS_TABLE = """
CREATE TABLE IF NOT EXISTS permission_requests (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    type TEXT NOT NULL,
    reason TEXT,
    status TEXT NOT NULL DEFAULT 'pending',
    created_at TEXT NOT NULL,
    decided_at TEXT,
    decided_by TEXT,
    decision_note TEXT
);
"""

CREATE_GRANTS_TABLE = """
CREATE TABLE IF NOT EXISTS permission_grants (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    type TEXT NOT NULL,
    granted_at TEXT NOT NULL,
    granted_by TEXT,
    disclaimer_accepted INTEGER NOT NULL DEFAULT 0,
    disclaimer_accepted_at TEXT,
    revoked_at TEXT,
    notes TEXT,
    relay_quota INTEGER,
    nip05_quota INTEGER
);
"""

CREATE_SCHEMA_VERSION_TABLE = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL
);
"""

CREATE_INDEXES = [
    # One pending request and one active grant per (user, type)
    "CREATE UNIQUE INDEX IF NOT EXISTS uq_requests_pending "
    "ON permission_requests(user_id, type) WHERE status = 'pending';",
    "CREATE UNIQUE INDEX IF NOT EXISTS uq_grants_active "
    "ON permission_grants(user_id, type) WHERE revoked_at IS NULL;",
    "CREATE INDEX IF NOT EXISTS idx_requests_user ON permission_requests(user_id);",
    "CREATE INDEX IF NOT EXISTS idx_requests_status ON permission_requests(status);",
    "CREATE INDEX IF NOT EXISTS idx_grants_user ON permission_grants(user_id);",
]


def _ts(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat(timespec="microseconds") if value is not None else None


def _row_dict(row: sqlite3.Row) -> dict[str, Any]:
    return {key: row[key] for key in row.keys()}


class SQLiteLedgerStore(LedgerStore):
    """SQLite-backed ledger store.

    A single connection is shared by all threads and guarded by a re-entrant
    lock; ``":memory:"`` gives a throwaway database for tests.
    """

    def __init__(self, db_path: str):
        """Open (and if needed create) the ledger database.

        Args:
            db_path: Path to SQLite database file. Use ":memory:" for testing.
        """
        self.db_path = db_path
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        try:
            # isolation_level=None: transactions are opened explicitly in unit_of_work
            self._conn = sqlite3.connect(db_path, isolation_level=None, check_same_thread=False)
        except sqlite3.Error as e:
            raise StorageError(f"Cannot open ledger database {db_path}: {e}") from e
        self._conn.row_factory = sqlite3.Row
        if db_path != ":memory:":
            self._conn.execute("PRAGMA journal_mode = WAL")

        self._lock = threading.RLock()
        self._depth = 0

        self._init_schema()
        logger.info("SQLiteLedgerStore initialized at %s", db_path)

    def _init_schema(self) -> None:
        with self._lock:
            with self._transaction():
                self._conn.execute(CREATE_SCHEMA_VERSION_TABLE)
                row = self._conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
                current_version = row[0] if row[0] is not None else 0
                if current_version < SCHEMA_VERSION:
                    self._conn.execute(CREATE_REQUESTS_TABLE)
                    self._conn.execute(CREATE_GRANTS_TABLE)
                    for index_sql in CREATE_INDEXES:
                        self._conn.execute(index_sql)
                    self._conn.execute(
                        "INSERT INTO schema_version (version, applied_at) VALUES (?, datetime('now'))",
                        (SCHEMA_VERSION,),
                    )
                    logger.info("Ledger schema migrated from v%d to v%d", current_version, SCHEMA_VERSION)

    @contextmanager
    def _transaction(self) -> Iterator[None]:
        """BEGIN IMMEDIATE ... COMMIT, joining an already open transaction."""
        with self._lock:
            if self._depth:
                self._depth += 1
                try:
                    yield
                finally:
                    self._depth -= 1
                return

            try:
                self._conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as e:
                raise StorageError(f"Cannot start ledger transaction: {e}") from e
            self._depth = 1
            try:
                yield
            except BaseException:
                self._conn.rollback()
                raise
            else:
                self._conn.commit()
            finally:
                self._depth = 0

    def unit_of_work(self, user_id: str, type: str):
        # The database write lock serializes every key; no finer sharding needed
        return self._transaction()

    def _execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        with self._lock:
            try:
                return self._conn.execute(sql, params)
            except sqlite3.IntegrityError as e:
                raise ConflictError(f"Ledger uniqueness violated: {e}") from e
            except sqlite3.Error as e:
                raise StorageError(f"Ledger query failed: {e}") from e

    def _fetchone(self, sql: str, params: tuple = ()) -> Optional[sqlite3.Row]:
        with self._lock:
            return self._execute(sql, params).fetchone()

    def _fetchall(self, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        with self._lock:
            return self._execute(sql, params).fetchall()

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    # ── Requests ────────────────────────────────────────

    def add_request(self, request: PermissionRequest) -> None:
        self._execute(
            """
            INSERT INTO permission_requests
                (id, user_id, type, reason, status, created_at, decided_at, decided_by, decision_note)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                request.id,
                request.user_id,
                request.type,
                request.reason,
                RequestStatus(request.status).value,
                _ts(request.created_at),
                _ts(request.decided_at),
                request.decided_by,
                request.decision_note,
            ),
        )

    def save_request(self, request: PermissionRequest) -> None:
        cursor = self._execute(
            """
            UPDATE permission_requests
            SET status = ?, decided_at = ?, decided_by = ?, decision_note = ?
            WHERE id = ?
            """,
            (
                RequestStatus(request.status).value,
                _ts(request.decided_at),
                request.decided_by,
                request.decision_note,
                request.id,
            ),
        )
        if cursor.rowcount == 0:
            raise NotFoundError("Request not found", request_id=request.id)

    def get_request(self, request_id: str) -> Optional[PermissionRequest]:
        row = self._fetchone("SELECT * FROM permission_requests WHERE id = ?", (request_id,))
        return PermissionRequest.model_validate(_row_dict(row)) if row else None

    def find_pending_request(self, user_id: str, type: str) -> Optional[PermissionRequest]:
        row = self._fetchone(
            "SELECT * FROM permission_requests WHERE user_id = ? AND type = ? AND status = 'pending'",
            (user_id, type),
        )
        return PermissionRequest.model_validate(_row_dict(row)) if row else None

    def list_requests(
        self,
        *,
        user_id: str | None = None,
        status: RequestStatus | None = None,
        limit: int | None = None,
    ) -> list[PermissionRequest]:
        query = "SELECT * FROM permission_requests WHERE 1=1"
        params: list[Any] = []
        if user_id is not None:
            query += " AND user_id = ?"
            params.append(user_id)
        if status is not None:
            query += " AND status = ?"
            params.append(RequestStatus(status).value)
        query += " ORDER BY created_at DESC, rowid DESC"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        rows = self._fetchall(query, tuple(params))
        return [PermissionRequest.model_validate(_row_dict(row)) for row in rows]

    # ── Grants ──────────────────────────────────────────

    def add_grant(self, grant: PermissionGrant) -> None:
        self._execute(
            """
            INSERT INTO permission_grants
                (id, user_id, type, granted_at, granted_by, disclaimer_accepted,
                 disclaimer_accepted_at, revoked_at, notes, relay_quota, nip05_quota)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                grant.id,
                grant.user_id,
                grant.type,
                _ts(grant.granted_at),
                grant.granted_by,
                int(grant.disclaimer_accepted),
                _ts(grant.disclaimer_accepted_at),
                _ts(grant.revoked_at),
                grant.notes,
                grant.relay_quota,
                grant.nip05_quota,
            ),
        )

    def save_grant(self, grant: PermissionGrant) -> None:
        cursor = self._execute(
            """
            UPDATE permission_grants
            SET disclaimer_accepted = ?, disclaimer_accepted_at = ?, revoked_at = ?,
                notes = ?, relay_quota = ?, nip05_quota = ?
            WHERE id = ?
            """,
            (
                int(grant.disclaimer_accepted),
                _ts(grant.disclaimer_accepted_at),
                _ts(grant.revoked_at),
                grant.notes,
                grant.relay_quota,
                grant.nip05_quota,
                grant.id,
            ),
        )
        if cursor.rowcount == 0:
            raise NotFoundError("Grant not found", grant_id=grant.id)

    def find_active_grant(self, user_id: str, type: str) -> Optional[PermissionGrant]:
        row = self._fetchone(
            "SELECT * FROM permission_grants WHERE user_id = ? AND type = ? AND revoked_at IS NULL",
            (user_id, type),
        )
        return PermissionGrant.model_validate(_row_dict(row)) if row else None

    def list_grants(
        self,
        *,
        user_id: str | None = None,
        active_only: bool = False,
    ) -> list[PermissionGrant]:
        query = "SELECT * FROM permission_grants WHERE 1=1"
        params: list[Any] = []
        if user_id is not None:
            query += " AND user_id = ?"
            params.append(user_id)
        if active_only:
            query += " AND revoked_at IS NULL"
        query += " ORDER BY granted_at DESC, rowid DESC"

        rows = self._fetchall(query, tuple(params))
        return [PermissionGrant.model_validate(_row_dict(row)) for row in rows]


__all__ = ["SQLiteLedgerStore"]
