"""Configuration contract for the grantcore authorization engine.

Pydantic-validated settings shared by every component (logging, ledger
storage, permission type registry source, grant quotas, inventory cache).

Direct os.environ/os.getenv usage is confined to load_config_from_env();
everything else receives a GrantCoreConfig instance.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class LogLevel(str, Enum):
    """Standard log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class StoreBackend(str, Enum):
    """Supported ledger storage backends.

    - MEMORY: process-local dictionaries with per-key locks (tests, single process)
    - SQLITE: transactional SQLite file with partial unique indexes
    """

    MEMORY = "memory"
    SQLITE = "sqlite"


class GrantCoreConfig(BaseModel):
    """Configuration for the authorization engine.

    Environment variables (see load_config_from_env):
        LOG_LEVEL                        — logging level
        LOG_JSON                         — JSON log format
        GRANTCORE_STORE                  — memory | sqlite
        GRANTCORE_DATABASE_PATH          — SQLite file path (or ":memory:")
        GRANTCORE_PERMISSION_TYPES       — JSON file with permission types
        GRANTCORE_DEFAULT_RELAY_QUOTA    — relay quota for operator grants
        GRANTCORE_DEFAULT_NIP05_QUOTA    — NIP-05 quota for operator/nip05_operator grants
        GRANTCORE_INVENTORY_TTL          — relay inventory cache TTL (seconds)
        GRANTCORE_INVENTORY_MAX_ENTRIES  — relay inventory cache size bound
        SERVICE_NAME                     — service name used as logger name
    """

    # Logging
    log_level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Logging level for the service",
    )
    log_json: bool = Field(
        default=False,
        description="Use JSON log format (default: plain text)",
    )

    # Storage
    store_backend: StoreBackend = Field(
        default=StoreBackend.MEMORY,
        description="Ledger storage backend: memory or sqlite",
    )
    database_path: Optional[str] = Field(
        default=None,
        description="SQLite database path (required for the sqlite backend)",
    )

    # Registry
    permission_types_path: Optional[str] = Field(
        default=None,
        description="JSON file listing permission types and disclaimers. None = built-in set.",
    )

    # Grant quotas
    default_relay_quota: int = Field(
        default=5,
        ge=0,
        description="Relay quota assigned to new operator grants",
    )
    default_nip05_quota: int = Field(
        default=5,
        ge=0,
        description="NIP-05 quota assigned to new operator and nip05_operator grants",
    )

    # Relay inventory cache
    inventory_cache_ttl_seconds: float = Field(
        default=60.0,
        gt=0,
        description="How long relay counts stay cached per user",
    )
    inventory_cache_max_entries: int = Field(
        default=1024,
        gt=0,
        description="Maximum cached users before least-recently-used eviction",
    )

    service_name: Optional[str] = Field(
        default=None,
        description="Service name for logging (e.g. 'relay-admin-api')",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def validate_log_level(cls, v: str | LogLevel) -> LogLevel:
        """Convert string to LogLevel enum."""
        if isinstance(v, LogLevel):
            return v
        if isinstance(v, str):
            try:
                return LogLevel[v.upper()]
            except KeyError:
                raise ValueError(f"Invalid log level: {v}. Must be one of {[e.value for e in LogLevel]}")
        raise ValueError(f"Log level must be string or LogLevel enum, got {type(v)}")

    @model_validator(mode="after")
    def validate_database_path(self) -> "GrantCoreConfig":
        """The sqlite backend needs somewhere to write."""
        if self.store_backend == StoreBackend.SQLITE and not self.database_path:
            raise ValueError("database_path is required when store_backend is 'sqlite'")
        return self

    model_config = {
        "use_enum_values": True,
        "extra": "forbid",
    }


def _env_flag(value: str) -> bool:
    return value.lower() in ("true", "1", "yes", "on")


def load_config_from_env() -> GrantCoreConfig:
    """Load configuration from environment variables.

    This is the ONLY place where os.getenv is allowed.

    Returns:
        GrantCoreConfig instance with values from environment or defaults.
    """
    import os

    return GrantCoreConfig(
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        log_json=_env_flag(os.getenv("LOG_JSON", "false")),
        store_backend=os.getenv("GRANTCORE_STORE", "memory"),
        database_path=os.getenv("GRANTCORE_DATABASE_PATH"),
        permission_types_path=os.getenv("GRANTCORE_PERMISSION_TYPES"),
        default_relay_quota=int(os.getenv("GRANTCORE_DEFAULT_RELAY_QUOTA", "5")),
        default_nip05_quota=int(os.getenv("GRANTCORE_DEFAULT_NIP05_QUOTA", "5")),
        inventory_cache_ttl_seconds=float(os.getenv("GRANTCORE_INVENTORY_TTL", "60")),
        inventory_cache_max_entries=int(os.getenv("GRANTCORE_INVENTORY_MAX_ENTRIES", "1024")),
        service_name=os.getenv("SERVICE_NAME"),
    )


__all__ = [
    "GrantCoreConfig",
    "LogLevel",
    "StoreBackend",
    "load_config_from_env",
]
