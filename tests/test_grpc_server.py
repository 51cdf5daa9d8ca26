"""Tests for the JSON-over-gRPC PermissionServicer."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock

import grpc
import pytest

from grantcore import PermissionService, StaticIdentityProvider, User, ValidationError
from grantcore.grpc_server import (
    RPC_METHODS,
    SERVICE_NAME,
    PermissionServicer,
    add_permission_servicer,
    decode_request,
)


def _context(user_id: str | None = None) -> MagicMock:
    context = MagicMock()
    context.invocation_metadata.return_value = (("x-user-id", user_id),) if user_id else ()
    context.abort = AsyncMock()
    return context


def _body(**fields) -> bytes:
    return json.dumps(fields).encode("utf-8")


@pytest.fixture
def servicer(engine, inventory, admin, user) -> PermissionServicer:
    identity = StaticIdentityProvider({admin.id: admin, user.id: user})
    return PermissionServicer(PermissionService(engine, inventory, identity))


class TestDecodeRequest:
    """Tests for request body parsing."""

    def test_empty_body(self) -> None:
        assert decode_request(b"") == {}

    @pytest.mark.parametrize("raw", [b"{not json", b"[1, 2]", b"\xff\xfe"])
    def test_rejects_non_objects(self, raw) -> None:
        with pytest.raises(ValidationError):
            decode_request(raw)


class TestUserRpcs:
    """RPCs any authenticated caller may use."""

    @pytest.mark.asyncio
    async def test_list_permission_types(self, servicer) -> None:
        response = json.loads(await servicer.ListPermissionTypes(b"", _context()))
        assert [t["type"] for t in response][:4] == ["admin", "coinos_admin", "operator", "nip05_operator"]
        assert {"type": "beta_tester", "disclaimer": ""} in response

    @pytest.mark.asyncio
    async def test_submit_request(self, servicer) -> None:
        context = _context("u1")
        response = json.loads(await servicer.SubmitRequest(_body(type="operator", reason="relay"), context))

        assert response["user_id"] == "u1"
        assert response["status"] == "pending"
        assert response["reason"] == "relay"
        context.abort.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_access_tier(self, servicer) -> None:
        assert json.loads(await servicer.AccessTier(b"", _context("a1"))) == "admin"
        assert json.loads(await servicer.AccessTier(b"", _context("u1"))) == "demo"

    @pytest.mark.asyncio
    async def test_nip05_eligibility(self, servicer) -> None:
        response = json.loads(await servicer.Nip05Eligibility(_body(nip05_used=0), _context("u1")))
        assert response["eligible"] is False
        assert response["can_request"] is True


class TestAdminRpcs:
    """Admin RPCs driving a full request lifecycle."""

    @pytest.mark.asyncio
    async def test_request_to_grant(self, servicer) -> None:
        """Test submit, approve with quotas, accept, then the grant shows in 'mine'."""
        submitted = json.loads(await servicer.SubmitRequest(_body(type="operator"), _context("u1")))

        pending = json.loads(await servicer.ListRequests(b"", _context("a1")))
        assert [r["id"] for r in pending] == [submitted["id"]]

        decided = json.loads(
            await servicer.DecideRequest(
                _body(request_id=submitted["id"], decision="approved", relay_quota=2),
                _context("a1"),
            )
        )
        assert decided["status"] == "approved"
        assert decided["decided_by"] == "a1"

        await servicer.AcceptDisclaimer(_body(type="operator"), _context("u1"))
        mine = json.loads(await servicer.MyPermissions(b"", _context("u1")))
        assert [(g["type"], g["relay_quota"], g["disclaimer_accepted"]) for g in mine["grants"]] == [
            ("operator", 2, True)
        ]

        eligibility = json.loads(await servicer.RelayEligibility(b"", _context("u1")))
        assert eligibility["eligible"] is True
        assert eligibility["relay_quota"] == 2

    @pytest.mark.asyncio
    async def test_assign_update_revoke(self, servicer) -> None:
        context = _context("a1")
        await servicer.AssignGrant(_body(user_id="u2", type="operator", notes="trusted"), context)
        updated = json.loads(await servicer.UpdateQuota(_body(user_id="u2", type="operator", nip05_quota=9), context))
        assert updated["nip05_quota"] == 9

        assert json.loads(await servicer.RevokeGrant(_body(user_id="u2", type="operator"), context)) is None
        assert json.loads(await servicer.ListGrants(b"", context)) == []
        context.abort.assert_not_awaited()


class TestErrorMapping:
    """Engine and input errors surface as gRPC statuses."""

    @pytest.mark.asyncio
    async def test_missing_identity(self, servicer) -> None:
        context = _context()
        await servicer.MyPermissions(b"", context)
        status, message = context.abort.await_args.args
        assert status == grpc.StatusCode.PERMISSION_DENIED
        assert "x-user-id" in message

    @pytest.mark.asyncio
    async def test_unknown_caller(self, servicer) -> None:
        context = _context("ghost")
        await servicer.MyPermissions(b"", context)
        assert context.abort.await_args.args[0] == grpc.StatusCode.NOT_FOUND

    @pytest.mark.asyncio
    async def test_non_admin_forbidden(self, servicer, engine) -> None:
        context = _context("u1")
        await servicer.AssignGrant(_body(user_id="u1", type="operator"), context)

        context.set_trailing_metadata.assert_called_once_with([("error-code", "FORBIDDEN")])
        assert context.abort.await_args.args[0] == grpc.StatusCode.PERMISSION_DENIED
        assert engine.grants.active_grant("u1", "operator") is None

    @pytest.mark.asyncio
    async def test_duplicate_request_conflicts(self, servicer) -> None:
        await servicer.SubmitRequest(_body(type="operator"), _context("u1"))
        context = _context("u1")
        await servicer.SubmitRequest(_body(type="operator"), context)
        assert context.abort.await_args.args[0] == grpc.StatusCode.ALREADY_EXISTS

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "method,body",
        [
            ("SubmitRequest", b"{broken"),
            ("SubmitRequest", _body(reason="no type")),
            ("DecideRequest", _body(request_id="r1")),
            ("AssignGrant", _body(user_id="u2", type="operator", relay_quota="5")),
            ("AssignGrant", _body(user_id="u2", type="operator", relay_quota=True)),
            ("Nip05Eligibility", _body()),
        ],
    )
    async def test_bad_input(self, servicer, method, body) -> None:
        context = _context("a1")
        await getattr(servicer, method)(body, context)
        assert context.abort.await_args.args[0] == grpc.StatusCode.INVALID_ARGUMENT


class TestRegistration:
    """Tests for wiring the servicer into a grpc.aio server."""

    def test_registers_every_rpc(self, servicer) -> None:
        server = MagicMock()
        add_permission_servicer(servicer, server)

        (handlers,), _ = server.add_generic_rpc_handlers.call_args
        (generic,) = handlers
        for name in RPC_METHODS:
            details = MagicMock()
            details.method = f"/{SERVICE_NAME}/{name}"
            handler = generic.service(details)
            assert handler.unary_unary.__name__ == name
            assert handler.request_deserializer is None

    def test_unknown_method(self, servicer) -> None:
        server = MagicMock()
        add_permission_servicer(servicer, server)
        (generic,) = server.add_generic_rpc_handlers.call_args.args[0]

        details = MagicMock()
        details.method = f"/{SERVICE_NAME}/DropTables"
        assert generic.service(details) is None
