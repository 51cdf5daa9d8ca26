"""Permission type registry.

Immutable mapping from capability type to its disclaimer text, populated
once at start-up (built-in defaults or a JSON file) and never mutated.
Any type outside the registry is rejected by the engine.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from types import MappingProxyType
from typing import Iterable, Iterator

from ..exceptions import ConfigurationError, NotFoundError, ValidationError
from .constants import PermissionTypes
from .models import PermissionType

logger = logging.getLogger(__name__)


DEFAULT_DISCLAIMERS: dict[str, str] = {
    PermissionTypes.ADMIN: (
        "You are being granted full administrative access to this relay management platform. "
        "This includes the ability to terminate relays, manage user accounts, modify server configuration, "
        "and access all financial data. Misuse of admin privileges may result in service disruption. "
        "By accepting, you acknowledge full responsibility for actions taken under this permission."
    ),
    PermissionTypes.COINOS_ADMIN: (
        "You are being granted access to the CoinOS banking backend. "
        "This includes the ability to view balances, manage funds, create invoices, and send payments "
        "on behalf of the platform. Unauthorized or careless use of this interface can result in "
        "IRREVERSIBLE LOSS OF FUNDS. By accepting, you acknowledge full financial responsibility "
        "and agree to exercise extreme caution with all monetary operations."
    ),
    PermissionTypes.OPERATOR: (
        "You are being granted relay operator privileges. "
        "This includes the ability to create and manage relays, configure access controls, moderation tools, "
        "and streaming configuration. Your relay creation quota is set by the administrator. "
        "By accepting, you agree to operate relays in accordance with platform policies."
    ),
    PermissionTypes.NIP05_OPERATOR: (
        "You are being granted NIP-05 identity distribution privileges. "
        "This allows you to manage NIP-05 identities for users on your relays, "
        "within the quota set by the administrator. "
        "By accepting, you agree to manage identities responsibly."
    ),
}


class PermissionTypeRegistry:
    """Closed set of capability types.

    Example::

        registry = PermissionTypeRegistry.default()
        registry.validate("coinos_admin")     # "coinos_admin"
        registry.validate("root")             # raises ValidationError
        registry.disclaimer_for("operator")   # "You are being granted relay operator ..."
    """

    __slots__ = ("_types",)

    def __init__(self, types: Iterable[PermissionType]) -> None:
        table: dict[str, PermissionType] = {}
        for entry in types:
            name = entry.type.strip()
            if not name:
                raise ConfigurationError("Permission type identifier must not be blank")
            if name != entry.type:
                raise ConfigurationError(f"Permission type {entry.type!r} has surrounding whitespace")
            if name in table:
                raise ConfigurationError(f"Duplicate permission type: {name!r}", type=name)
            table[name] = entry
        self._types = MappingProxyType(table)

    @classmethod
    def from_mapping(cls, disclaimers: dict[str, str]) -> "PermissionTypeRegistry":
        return cls(PermissionType(type=t, disclaimer=d or "") for t, d in disclaimers.items())

    @classmethod
    def default(cls) -> "PermissionTypeRegistry":
        """Registry with the built-in platform capabilities."""
        return cls.from_mapping(DEFAULT_DISCLAIMERS)

    @classmethod
    def from_file(cls, path: str | Path) -> "PermissionTypeRegistry":
        """Load ``{"types": [{"type": ..., "disclaimer": ...}, ...]}`` from a JSON file."""
        try:
            raw = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise ConfigurationError(f"Cannot read permission types from {path}: {e}") from e

        entries = raw.get("types") if isinstance(raw, dict) else None
        if not isinstance(entries, list):
            raise ConfigurationError(f"{path}: expected an object with a 'types' list")

        types = []
        for item in entries:
            if not isinstance(item, dict) or not isinstance(item.get("type"), str):
                raise ConfigurationError(f"{path}: every entry needs a string 'type'")
            types.append(PermissionType(type=item["type"], disclaimer=item.get("disclaimer") or ""))

        registry = cls(types)
        logger.info("Loaded %d permission types from %s", len(registry), path)
        return registry

    def list_types(self) -> list[PermissionType]:
        return list(self._types.values())

    def get(self, type: str) -> PermissionType:
        try:
            return self._types[type]
        except KeyError:
            raise NotFoundError(f"Unknown permission type: {type!r}", type=type) from None

    def disclaimer_for(self, type: str) -> str:
        """Disclaimer text for ``type`` ("" = no gate). Raises NotFoundError if unknown."""
        return self.get(type).disclaimer

    def requires_disclaimer(self, type: str) -> bool:
        return self.get(type).requires_disclaimer

    def validate(self, type: str | None) -> str:
        """Return ``type`` if registered, else raise ValidationError."""
        if not type or not isinstance(type, str):
            raise ValidationError("Permission type is required", valid=list(self._types))
        if type not in self._types:
            raise ValidationError(
                f"Invalid permission type {type!r}. Valid: {', '.join(self._types)}",
                type=type,
                valid=list(self._types),
            )
        return type

    def __contains__(self, type: object) -> bool:
        return type in self._types

    def __iter__(self) -> Iterator[str]:
        return iter(self._types)

    def __len__(self) -> int:
        return len(self._types)

    def __repr__(self) -> str:
        return f"PermissionTypeRegistry(types={list(self._types)!r})"


__all__ = [
    "DEFAULT_DISCLAIMERS",
    "PermissionTypeRegistry",
]
