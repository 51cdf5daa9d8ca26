"""Relay inventory collaborator and its lookup cache.

The relay inventory service (external) knows how many relays a user owns
and moderates; the Tier Classifier needs those counts on every request.

``CachedRelayInventory`` replaces ad hoc module-level caches with an
explicit component:
- eviction: LRU bounded by ``max_entries`` plus a per-entry TTL
- coalescing: concurrent lookups for the same user share one upstream call
- failures are never cached; every coalesced waiter sees the same error
"""

from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Callable, Optional

logger = logging.getLogger(__name__)

DEFAULT_TTL = 60.0  # seconds
DEFAULT_MAX_ENTRIES = 1024


@dataclass(frozen=True)
class RelayCounts:
    """Relays a user owns and moderates (relays being deleted excluded)."""

    owned: int = 0
    moderated: int = 0


class RelayInventory(ABC):
    """Source of per-user relay counts."""

    @abstractmethod
    def relay_counts(self, user_id: str) -> RelayCounts:
        raise NotImplementedError

    def current_relay_counts(self, user_id: str) -> RelayCounts:
        """Counts read from the source of truth, for quota enforcement."""
        return self.relay_counts(user_id)


class StaticRelayInventory(RelayInventory):
    """Fixed ``user_id -> RelayCounts`` table; unknown users own nothing."""

    def __init__(self, counts: dict[str, RelayCounts] | None = None) -> None:
        self._counts = dict(counts or {})

    def set(self, user_id: str, counts: RelayCounts) -> None:
        self._counts[user_id] = counts

    def relay_counts(self, user_id: str) -> RelayCounts:
        return self._counts.get(user_id, RelayCounts())


class CachedRelayInventory(RelayInventory):
    """LRU + TTL cache with request coalescing in front of another inventory.

    Args:
        source: Upstream inventory.
        ttl_seconds: How long a successful lookup stays fresh.
        max_entries: Maximum cached users; least recently used is evicted first.
        clock: Monotonic clock (seconds).
    """

    def __init__(
        self,
        source: RelayInventory,
        *,
        ttl_seconds: float = DEFAULT_TTL,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be > 0")
        if max_entries <= 0:
            raise ValueError("max_entries must be > 0")
        self._source = source
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, tuple[float, RelayCounts]] = OrderedDict()
        self._inflight: dict[str, Future] = {}
        self._lock = threading.Lock()

    def _cached(self, user_id: str) -> Optional[RelayCounts]:
        entry = self._entries.get(user_id)
        if entry is None:
            return None
        expires_at, counts = entry
        if self._clock() >= expires_at:
            del self._entries[user_id]
            return None
        self._entries.move_to_end(user_id)
        return counts

    def _store(self, user_id: str, counts: RelayCounts) -> None:
        self._entries[user_id] = (self._clock() + self._ttl, counts)
        self._entries.move_to_end(user_id)
        while len(self._entries) > self._max_entries:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("Relay inventory cache evicted %s", evicted)

    def relay_counts(self, user_id: str) -> RelayCounts:
        with self._lock:
            counts = self._cached(user_id)
            if counts is not None:
                return counts
            future = self._inflight.get(user_id)
            leader = future is None
            if leader:
                future = self._inflight[user_id] = Future()

        if not leader:
            return future.result()

        try:
            counts = self._source.relay_counts(user_id)
        except BaseException as e:
            with self._lock:
                self._inflight.pop(user_id, None)
            future.set_exception(e)
            raise

        with self._lock:
            self._store(user_id, counts)
            self._inflight.pop(user_id, None)
        future.set_result(counts)
        return counts

    def current_relay_counts(self, user_id: str) -> RelayCounts:
        """Bypass the cache, then refresh the entry with what the source returned."""
        counts = self._source.current_relay_counts(user_id)
        with self._lock:
            if user_id not in self._inflight:
                self._store(user_id, counts)
        return counts

    def invalidate(self, user_id: str) -> None:
        """Drop one user's cached counts (e.g. after relay creation)."""
        with self._lock:
            self._entries.pop(user_id, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


__all__ = [
    "CachedRelayInventory",
    "RelayCounts",
    "RelayInventory",
    "StaticRelayInventory",
]
