"""Capability identifiers, lifecycle statuses, and access tiers.

Provides:
- ``PermissionTypes`` — the built-in capability identifiers.
- ``RequestStatus`` — permission request lifecycle states.
- ``Decision`` — the two terminal outcomes an admin may choose.
- ``AccessTier`` — coarse client surface classification.
"""

from __future__ import annotations

from enum import Enum


class PermissionTypes:
    """Built-in capability identifiers.

    The authoritative set at runtime is whatever the
    :class:`~grantcore.permissions.registry.PermissionTypeRegistry` was
    loaded with; these constants name the platform defaults.
    """

    ADMIN = "admin"  # Full platform administration
    COINOS_ADMIN = "coinos_admin"  # Payment backend (funds!) administration
    OPERATOR = "operator"  # Create and manage relays, within relay quota
    NIP05_OPERATOR = "nip05_operator"  # Distribute NIP-05 identities, within quota

    ALL = ("admin", "coinos_admin", "operator", "nip05_operator")

    # Types whose grants carry quotas
    RELAY_QUOTA_TYPES = frozenset({"operator"})
    NIP05_QUOTA_TYPES = frozenset({"operator", "nip05_operator"})


class RequestStatus(str, Enum):
    """Permission request lifecycle. ``pending`` is the only non-terminal state."""

    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"


class Decision(str, Enum):
    """Admin decision on a pending request."""

    APPROVED = "approved"
    DENIED = "denied"


class AccessTier(str, Enum):
    """Derived, never stored."""

    ADMIN = "admin"
    OPERATOR = "operator"
    DEMO = "demo"


__all__ = [
    "AccessTier",
    "Decision",
    "PermissionTypes",
    "RequestStatus",
]
