"""Eligibility checks for quota-limited capabilities.

Answers "may this user create another relay / NIP-05 identity right now"
from the caller's grants, their quotas, and usage counts supplied by the
caller (the relay inventory and NIP-05 directory are external).
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from pydantic import BaseModel

from .constants import PermissionTypes

if TYPE_CHECKING:
    from ..engine import AuthorizationEngine
    from ..identity import User


class RelayEligibility(BaseModel):
    eligible: bool
    reason: Optional[str] = None
    relays_owned: int = 0
    relay_quota: Optional[int] = None  # None = unlimited (admin)
    can_request: bool = False
    has_pending_request: bool = False
    needs_disclaimer: bool = False


class Nip05Eligibility(BaseModel):
    eligible: bool
    can_create: bool = False
    nip05_quota: Optional[int] = None  # None = unlimited (admin)
    nip05_used: int = 0
    can_request: bool = False
    has_pending_request: bool = False
    needs_disclaimer: bool = False


def relay_eligibility(engine: "AuthorizationEngine", user: "User", relays_owned: int) -> RelayEligibility:
    """Whether ``user`` may create another relay.

    Admins are always eligible with no quota. Everyone else needs a usable
    ``operator`` grant and ``relays_owned`` below its relay quota.
    """
    if user.admin:
        return RelayEligibility(eligible=True, relays_owned=relays_owned)

    operator = PermissionTypes.OPERATOR
    grant = engine.grants.active_grant(user.id, operator)
    if grant is None:
        pending = engine.requests.has_pending(user.id, operator)
        return RelayEligibility(
            eligible=False,
            reason="You need operator privileges to create relays on this platform.",
            relays_owned=relays_owned,
            relay_quota=0,
            can_request=not pending,
            has_pending_request=pending,
        )

    quota = grant.relay_quota if grant.relay_quota is not None else engine.default_relay_quota
    if not grant.disclaimer_accepted:
        return RelayEligibility(
            eligible=False,
            reason="Accept the operator disclaimer before creating relays.",
            relays_owned=relays_owned,
            relay_quota=quota,
            needs_disclaimer=True,
        )

    if relays_owned >= quota:
        return RelayEligibility(
            eligible=False,
            reason=(
                f"You've reached your relay limit ({relays_owned}/{quota}). "
                "Contact an administrator to increase your quota."
            ),
            relays_owned=relays_owned,
            relay_quota=quota,
        )

    return RelayEligibility(eligible=True, relays_owned=relays_owned, relay_quota=quota)


def nip05_eligibility(engine: "AuthorizationEngine", user: "User", nip05_used: int) -> Nip05Eligibility:
    """Whether ``user`` may hand out NIP-05 identities.

    A ``nip05_operator`` grant qualifies, as does an ``operator`` grant that
    carries a NIP-05 quota.
    """
    if user.admin:
        return Nip05Eligibility(eligible=True, can_create=True, nip05_used=nip05_used)

    grant = engine.grants.active_grant(user.id, PermissionTypes.NIP05_OPERATOR)
    if grant is None:
        operator = engine.grants.active_grant(user.id, PermissionTypes.OPERATOR)
        if operator is not None and operator.nip05_quota:
            grant = operator

    if grant is None:
        pending = engine.requests.has_pending(user.id, PermissionTypes.NIP05_OPERATOR)
        return Nip05Eligibility(
            eligible=False,
            nip05_quota=0,
            nip05_used=nip05_used,
            can_request=not pending,
            has_pending_request=pending,
        )

    quota = grant.nip05_quota if grant.nip05_quota is not None else engine.default_nip05_quota
    if not grant.disclaimer_accepted:
        return Nip05Eligibility(
            eligible=False,
            nip05_quota=quota,
            nip05_used=nip05_used,
            needs_disclaimer=True,
        )

    return Nip05Eligibility(
        eligible=True,
        can_create=nip05_used < quota,
        nip05_quota=quota,
        nip05_used=nip05_used,
    )


__all__ = [
    "Nip05Eligibility",
    "RelayEligibility",
    "nip05_eligibility",
    "relay_eligibility",
]
