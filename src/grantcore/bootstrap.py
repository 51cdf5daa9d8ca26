"""Wire the engine from configuration.

Usage::

    from grantcore.bootstrap import build_service

    service = build_service(load_config_from_env(), inventory=my_inventory, identity=my_identity)
"""

from __future__ import annotations

import logging
from typing import Optional

from .config import GrantCoreConfig, StoreBackend, load_config_from_env
from .engine import AuthorizationEngine
from .identity import IdentityProvider
from .inventory import CachedRelayInventory, RelayInventory, StaticRelayInventory
from .permissions.registry import PermissionTypeRegistry
from .service import PermissionService
from .store import LedgerStore, MemoryLedgerStore, SQLiteLedgerStore

logger = logging.getLogger(__name__)


def build_registry(config: GrantCoreConfig) -> PermissionTypeRegistry:
    if config.permission_types_path:
        return PermissionTypeRegistry.from_file(config.permission_types_path)
    return PermissionTypeRegistry.default()


def build_store(config: GrantCoreConfig) -> LedgerStore:
    if config.store_backend == StoreBackend.SQLITE:
        return SQLiteLedgerStore(config.database_path)
    return MemoryLedgerStore()


def build_engine(config: Optional[GrantCoreConfig] = None) -> AuthorizationEngine:
    """Registry + store + engine from ``config`` (default: environment)."""
    config = config or load_config_from_env()
    engine = AuthorizationEngine(
        build_registry(config),
        build_store(config),
        default_relay_quota=config.default_relay_quota,
        default_nip05_quota=config.default_nip05_quota,
    )
    logger.info(
        "Authorization engine ready (store=%s, types=%s)",
        config.store_backend,
        ", ".join(engine.registry),
    )
    return engine


def build_service(
    config: Optional[GrantCoreConfig] = None,
    *,
    inventory: Optional[RelayInventory] = None,
    identity: Optional[IdentityProvider] = None,
) -> PermissionService:
    """Full service: engine plus a cached relay inventory.

    Without an ``inventory`` every user owns nothing (tier ``demo`` for non-admins).
    """
    config = config or load_config_from_env()
    cached = CachedRelayInventory(
        inventory or StaticRelayInventory(),
        ttl_seconds=config.inventory_cache_ttl_seconds,
        max_entries=config.inventory_cache_max_entries,
    )
    return PermissionService(build_engine(config), cached, identity)


__all__ = [
    "build_engine",
    "build_registry",
    "build_service",
    "build_store",
]
