"""Tests for the permission type registry."""

from __future__ import annotations

import json

import pytest

from grantcore import (
    DEFAULT_DISCLAIMERS,
    ConfigurationError,
    NotFoundError,
    PermissionType,
    PermissionTypeRegistry,
    PermissionTypes,
    ValidationError,
)


class TestDefaultRegistry:
    """Tests for the built-in capability set."""

    def test_contains_platform_types(self) -> None:
        """All four platform capabilities are registered."""
        registry = PermissionTypeRegistry.default()
        assert list(registry) == list(PermissionTypes.ALL)

    def test_every_default_type_has_disclaimer(self) -> None:
        """Built-in capabilities are all gated."""
        registry = PermissionTypeRegistry.default()
        for entry in registry.list_types():
            assert entry.requires_disclaimer, entry.type
            assert entry.disclaimer == DEFAULT_DISCLAIMERS[entry.type]

    def test_coinos_disclaimer_warns_about_funds(self) -> None:
        registry = PermissionTypeRegistry.default()
        assert "IRREVERSIBLE LOSS OF FUNDS" in registry.disclaimer_for(PermissionTypes.COINOS_ADMIN)


class TestLookup:
    """Tests for validate / disclaimer_for."""

    def test_validate_registered(self) -> None:
        registry = PermissionTypeRegistry.default()
        assert registry.validate("operator") == "operator"

    def test_validate_unregistered(self) -> None:
        """Unknown types are a ValidationError listing the valid ones."""
        registry = PermissionTypeRegistry.default()
        with pytest.raises(ValidationError, match="Invalid permission type") as exc_info:
            registry.validate("root")
        assert exc_info.value.details["valid"] == list(PermissionTypes.ALL)

    @pytest.mark.parametrize("value", [None, ""])
    def test_validate_missing(self, value) -> None:
        registry = PermissionTypeRegistry.default()
        with pytest.raises(ValidationError, match="required"):
            registry.validate(value)

    def test_disclaimer_for_unknown(self) -> None:
        registry = PermissionTypeRegistry.default()
        with pytest.raises(NotFoundError):
            registry.disclaimer_for("root")

    def test_empty_disclaimer_means_no_gate(self) -> None:
        registry = PermissionTypeRegistry([PermissionType(type="beta", disclaimer="")])
        assert registry.disclaimer_for("beta") == ""
        assert registry.requires_disclaimer("beta") is False

    def test_whitespace_disclaimer_means_no_gate(self) -> None:
        registry = PermissionTypeRegistry([PermissionType(type="beta", disclaimer="   ")])
        assert registry.requires_disclaimer("beta") is False

    def test_contains(self) -> None:
        registry = PermissionTypeRegistry.default()
        assert "admin" in registry
        assert "root" not in registry


class TestImmutability:
    """The registry cannot be changed after construction."""

    def test_permission_type_frozen(self) -> None:
        entry = PermissionType(type="beta", disclaimer="x")
        with pytest.raises(Exception):
            entry.disclaimer = "y"  # type: ignore[misc]

    def test_source_mapping_not_shared(self) -> None:
        """Mutating the input mapping after construction has no effect."""
        source = {"beta": "careful"}
        registry = PermissionTypeRegistry.from_mapping(source)
        source["gamma"] = ""
        assert "gamma" not in registry


class TestConfigurationErrors:
    """Invalid registry definitions fail at start-up."""

    def test_duplicate_type(self) -> None:
        with pytest.raises(ConfigurationError, match="Duplicate"):
            PermissionTypeRegistry([PermissionType(type="a"), PermissionType(type="a")])

    def test_blank_type(self) -> None:
        with pytest.raises(ConfigurationError, match="blank"):
            PermissionTypeRegistry([PermissionType(type="  ")])


class TestFromFile:
    """Tests for loading the registry from JSON."""

    def test_load(self, tmp_path) -> None:
        path = tmp_path / "types.json"
        path.write_text(
            json.dumps(
                {
                    "types": [
                        {"type": "operator", "disclaimer": "Operate responsibly."},
                        {"type": "beta_tester"},
                    ]
                }
            )
        )
        registry = PermissionTypeRegistry.from_file(path)
        assert list(registry) == ["operator", "beta_tester"]
        assert registry.disclaimer_for("operator") == "Operate responsibly."
        assert registry.disclaimer_for("beta_tester") == ""

    def test_missing_file(self, tmp_path) -> None:
        with pytest.raises(ConfigurationError, match="Cannot read"):
            PermissionTypeRegistry.from_file(tmp_path / "nope.json")

    def test_invalid_json(self, tmp_path) -> None:
        path = tmp_path / "types.json"
        path.write_text("{not json")
        with pytest.raises(ConfigurationError):
            PermissionTypeRegistry.from_file(path)

    def test_wrong_shape(self, tmp_path) -> None:
        path = tmp_path / "types.json"
        path.write_text(json.dumps(["operator"]))
        with pytest.raises(ConfigurationError, match="'types' list"):
            PermissionTypeRegistry.from_file(path)

    def test_entry_without_type(self, tmp_path) -> None:
        path = tmp_path / "types.json"
        path.write_text(json.dumps({"types": [{"disclaimer": "x"}]}))
        with pytest.raises(ConfigurationError, match="string 'type'"):
            PermissionTypeRegistry.from_file(path)
