"""Shared fixtures: every lifecycle test runs against both ledger stores."""

from __future__ import annotations

import pytest

from grantcore import (
    AuthorizationEngine,
    MemoryLedgerStore,
    PermissionService,
    PermissionTypeRegistry,
    SQLiteLedgerStore,
    StaticRelayInventory,
    User,
)


@pytest.fixture
def registry() -> PermissionTypeRegistry:
    """Built-in types plus one without a disclaimer gate."""
    types = {t.type: t.disclaimer for t in PermissionTypeRegistry.default().list_types()}
    types["beta_tester"] = ""
    return PermissionTypeRegistry.from_mapping(types)


@pytest.fixture(params=["memory", "sqlite"])
def store(request):
    if request.param == "memory":
        yield MemoryLedgerStore()
    else:
        db = SQLiteLedgerStore(":memory:")
        yield db
        db.close()


@pytest.fixture
def engine(registry, store) -> AuthorizationEngine:
    return AuthorizationEngine(registry, store)


@pytest.fixture
def inventory() -> StaticRelayInventory:
    return StaticRelayInventory()


@pytest.fixture
def service(engine, inventory) -> PermissionService:
    return PermissionService(engine, inventory)


@pytest.fixture
def admin() -> User:
    return User(id="a1", admin=True)


@pytest.fixture
def user() -> User:
    return User(id="u1", admin=False)
