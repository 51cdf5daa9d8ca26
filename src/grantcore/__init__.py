from .config import GrantCoreConfig, LogLevel, StoreBackend, load_config_from_env
from .exceptions import (
    ConfigurationError,
    ConflictError,
    ForbiddenError,
    GrantCoreError,
    NotFoundError,
    StateError,
    StorageError,
    ValidationError,
)
from .logging import (
    safe_preview,
    redact_secrets,
    safe_log_value,
    GrantFormatter,
    GrantLoggerAdapter,
    setup_logging,
    get_grant_logger,
)
from .identity import IdentityProvider, StaticIdentityProvider, User
from .permissions import (
    DEFAULT_DISCLAIMERS,
    AccessTier,
    Decision,
    Nip05Eligibility,
    PermissionGrant,
    PermissionRequest,
    PermissionType,
    PermissionTypeRegistry,
    PermissionTypes,
    RelayEligibility,
    RequestStatus,
    TierClassifier,
    compute_tier,
    nip05_eligibility,
    relay_eligibility,
)
from .store import LedgerStore, MemoryLedgerStore, SQLiteLedgerStore
from .engine import AuthorizationEngine
from .inventory import CachedRelayInventory, RelayCounts, RelayInventory, StaticRelayInventory
from .service import MyPermissions, PermissionService
from .bootstrap import build_engine, build_service

__all__ = [
    # Config
    'GrantCoreConfig',
    'LogLevel',
    'StoreBackend',
    'load_config_from_env',
    # Errors
    'GrantCoreError',
    'ValidationError',
    'ConflictError',
    'StateError',
    'NotFoundError',
    'ForbiddenError',
    'ConfigurationError',
    'StorageError',
    # Logging
    'safe_preview',
    'redact_secrets',
    'safe_log_value',
    'GrantFormatter',
    'GrantLoggerAdapter',
    'setup_logging',
    'get_grant_logger',
    # Identity
    'IdentityProvider',
    'StaticIdentityProvider',
    'User',
    # Permissions
    'DEFAULT_DISCLAIMERS',
    'AccessTier',
    'Decision',
    'Nip05Eligibility',
    'PermissionGrant',
    'PermissionRequest',
    'PermissionType',
    'PermissionTypeRegistry',
    'PermissionTypes',
    'RelayEligibility',
    'RequestStatus',
    'TierClassifier',
    'compute_tier',
    'nip05_eligibility',
    'relay_eligibility',
    # Storage
    'LedgerStore',
    'MemoryLedgerStore',
    'SQLiteLedgerStore',
    # Engine + service
    'AuthorizationEngine',
    'CachedRelayInventory',
    'RelayCounts',
    'RelayInventory',
    'StaticRelayInventory',
    'MyPermissions',
    'PermissionService',
    'build_engine',
    'build_service',
]
