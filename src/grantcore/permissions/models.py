"""Ledger row models.

Pydantic models for the records the engine persists. Rows are never
deleted; only the terminal-transition fields are ever updated.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from .constants import RequestStatus


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid4())


class PermissionType(BaseModel):
    """A registered capability and its disclaimer text.

    An empty disclaimer means the capability has no acknowledgement gate.
    """

    model_config = {"frozen": True}

    type: str
    disclaimer: str = ""

    @property
    def requires_disclaimer(self) -> bool:
        return bool(self.disclaimer.strip())


class PermissionRequest(BaseModel):
    """One submission attempt for a capability.

    Created ``pending``; decided exactly once.
    """

    id: str = Field(default_factory=new_id)
    user_id: str
    type: str
    reason: Optional[str] = None
    status: RequestStatus = RequestStatus.PENDING
    created_at: datetime = Field(default_factory=utcnow)
    decided_at: Optional[datetime] = None
    decided_by: Optional[str] = None
    decision_note: Optional[str] = None

    @property
    def is_pending(self) -> bool:
        return self.status == RequestStatus.PENDING


class PermissionGrant(BaseModel):
    """One grant instance. A user may accumulate several revoked rows per type."""

    id: str = Field(default_factory=new_id)
    user_id: str
    type: str
    granted_at: datetime = Field(default_factory=utcnow)
    granted_by: Optional[str] = None  # None = self-service/system grant
    disclaimer_accepted: bool = False
    disclaimer_accepted_at: Optional[datetime] = None
    revoked_at: Optional[datetime] = None
    notes: Optional[str] = None
    relay_quota: Optional[int] = None
    nip05_quota: Optional[int] = None

    @property
    def is_active(self) -> bool:
        return self.revoked_at is None


__all__ = [
    "PermissionGrant",
    "PermissionRequest",
    "PermissionType",
    "new_id",
    "utcnow",
]
