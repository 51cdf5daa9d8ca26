"""Access tier classification.

``compute_tier`` is the single source of truth for which feature surface a
client gets (admin panel, operator "my relays" view, or the live demo).
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .constants import AccessTier

if TYPE_CHECKING:
    from ..identity import User
    from ..inventory import RelayInventory

logger = logging.getLogger(__name__)


def compute_tier(user: "User", owned_relay_count: int, moderated_relay_count: int) -> AccessTier:
    """Derive the access tier from the admin flag and relay facts.

    1. ``user.admin`` → ``admin``
    2. owns or moderates at least one relay → ``operator``
    3. otherwise → ``demo``

    Example::

        compute_tier(User(id="a1", admin=True), 0, 0)   # AccessTier.ADMIN
        compute_tier(User(id="u1"), 1, 0)               # AccessTier.OPERATOR
        compute_tier(User(id="u2"), 0, 0)               # AccessTier.DEMO
    """
    if user.admin:
        return AccessTier.ADMIN
    if owned_relay_count > 0 or moderated_relay_count > 0:
        return AccessTier.OPERATOR
    return AccessTier.DEMO


class TierClassifier:
    """Resolves relay counts through a RelayInventory, then applies compute_tier.

    Admins never hit the inventory. An inventory failure degrades a
    non-admin to ``demo``.
    """

    def __init__(self, inventory: "RelayInventory") -> None:
        self._inventory = inventory

    def classify(self, user: "User") -> AccessTier:
        if user.admin:
            return AccessTier.ADMIN
        try:
            counts = self._inventory.relay_counts(user.id)
        except Exception as e:
            logger.warning("Relay inventory lookup failed for %s, falling back to demo: %s", user.id, e)
            return AccessTier.DEMO
        return compute_tier(user, counts.owned, counts.moderated)


__all__ = ["TierClassifier", "compute_tier"]
