"""Capability registry, ledger row models, access tiers, and eligibility.

Defines:
- PermissionTypes / RequestStatus / Decision / AccessTier: identifiers and enums
- PermissionTypeRegistry: closed set of capability types + disclaimers
- PermissionRequest / PermissionGrant / PermissionType: ledger rows
- compute_tier() / TierClassifier: admin / operator / demo classification
- relay_eligibility() / nip05_eligibility(): quota-aware creation checks
"""

from .constants import AccessTier, Decision, PermissionTypes, RequestStatus
from .eligibility import (
    Nip05Eligibility,
    RelayEligibility,
    nip05_eligibility,
    relay_eligibility,
)
from .models import PermissionGrant, PermissionRequest, PermissionType
from .registry import DEFAULT_DISCLAIMERS, PermissionTypeRegistry
from .tier import TierClassifier, compute_tier

__all__ = [
    "DEFAULT_DISCLAIMERS",
    "AccessTier",
    "Decision",
    "Nip05Eligibility",
    "PermissionGrant",
    "PermissionRequest",
    "PermissionType",
    "PermissionTypeRegistry",
    "PermissionTypes",
    "RelayEligibility",
    "RequestStatus",
    "TierClassifier",
    "compute_tier",
    "nip05_eligibility",
    "relay_eligibility",
]
