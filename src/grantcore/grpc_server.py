"""Async gRPC transport for :class:`~grantcore.service.PermissionService`.

There is no protobuf schema. Every RPC is unary-unary and carries a JSON
object in both directions; the calling user is named by the ``x-user-id``
invocation metadata key and resolved through the service's identity
provider. Engine errors become gRPC statuses via ``grpc_error_handler``.

Usage::

    server = grpc.aio.server()
    add_permission_servicer(PermissionServicer(service), server)
    server.add_insecure_port("[::]:50051")
    await server.start()
"""

from __future__ import annotations

import asyncio
import json
import logging
from enum import Enum
from typing import Any, Callable, Optional

import grpc
import grpc.aio
from pydantic import BaseModel

from .exceptions import ForbiddenError, ValidationError, grpc_error_handler
from .identity import User
from .service import PermissionService

__all__ = [
    "PermissionServicer",
    "RPC_METHODS",
    "SERVICE_NAME",
    "USER_ID_METADATA_KEY",
    "add_permission_servicer",
    "decode_request",
    "encode_response",
]

logger = logging.getLogger(__name__)

SERVICE_NAME = "grantcore.PermissionService"
USER_ID_METADATA_KEY = "x-user-id"

RPC_METHODS = (
    "ListPermissionTypes",
    "SubmitRequest",
    "MyPermissions",
    "AcceptDisclaimer",
    "AccessTier",
    "RelayEligibility",
    "Nip05Eligibility",
    "ListRequests",
    "DecideRequest",
    "ListGrants",
    "RevokeGrant",
    "AssignGrant",
    "UpdateQuota",
)


# ---------------------------------------------------------------------------
# Wire format
# ---------------------------------------------------------------------------


def decode_request(raw: bytes) -> dict[str, Any]:
    """Parse a request body; an empty body is an empty object."""
    if not raw:
        return {}
    try:
        payload = json.loads(raw)
    except ValueError as e:
        raise ValidationError(f"Request body is not valid JSON: {e}") from None
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    return payload


def _jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, list):
        return [_jsonable(v) for v in value]
    return value


def encode_response(value: Any) -> bytes:
    return json.dumps(_jsonable(value)).encode("utf-8")


def _required_str(payload: dict[str, Any], field: str) -> str:
    value = payload.get(field)
    if not isinstance(value, str) or not value:
        raise ValidationError(f"Field {field!r} is required", field=field)
    return value


def _optional_str(payload: dict[str, Any], field: str) -> Optional[str]:
    value = payload.get(field)
    if value is not None and not isinstance(value, str):
        raise ValidationError(f"Field {field!r} must be a string", field=field)
    return value


def _optional_int(payload: dict[str, Any], field: str) -> Optional[int]:
    value = payload.get(field)
    # bool is an int subclass
    if value is not None and (isinstance(value, bool) or not isinstance(value, int)):
        raise ValidationError(f"Field {field!r} must be an integer", field=field)
    return value


# ---------------------------------------------------------------------------
# Servicer
# ---------------------------------------------------------------------------


class PermissionServicer:
    """One async handler per PermissionService operation.

    Service calls are blocking (store locks, SQLite), so they run in the
    default executor via ``asyncio.to_thread``.
    """

    def __init__(self, service: PermissionService) -> None:
        self.service = service

    async def _run(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> bytes:
        return encode_response(await asyncio.to_thread(fn, *args, **kwargs))

    async def _caller(self, context: grpc.aio.ServicerContext) -> User:
        metadata = dict(context.invocation_metadata() or ())
        user_id = metadata.get(USER_ID_METADATA_KEY)
        if not user_id:
            raise ForbiddenError(f"Missing {USER_ID_METADATA_KEY} metadata")
        return await asyncio.to_thread(self.service.caller, user_id)

    # ── Any authenticated user ──────────────────────────

    @grpc_error_handler
    async def ListPermissionTypes(self, request: bytes, context: grpc.aio.ServicerContext) -> bytes:
        return await self._run(self.service.list_permission_types)

    @grpc_error_handler
    async def SubmitRequest(self, request: bytes, context: grpc.aio.ServicerContext) -> bytes:
        payload = decode_request(request)
        caller = await self._caller(context)
        return await self._run(
            self.service.submit_request,
            caller,
            _required_str(payload, "type"),
            _optional_str(payload, "reason"),
        )

    @grpc_error_handler
    async def MyPermissions(self, request: bytes, context: grpc.aio.ServicerContext) -> bytes:
        caller = await self._caller(context)
        return await self._run(self.service.my_permissions, caller)

    @grpc_error_handler
    async def AcceptDisclaimer(self, request: bytes, context: grpc.aio.ServicerContext) -> bytes:
        payload = decode_request(request)
        caller = await self._caller(context)
        return await self._run(self.service.accept_disclaimer, caller, _required_str(payload, "type"))

    @grpc_error_handler
    async def AccessTier(self, request: bytes, context: grpc.aio.ServicerContext) -> bytes:
        caller = await self._caller(context)
        return await self._run(self.service.access_tier, caller)

    @grpc_error_handler
    async def RelayEligibility(self, request: bytes, context: grpc.aio.ServicerContext) -> bytes:
        caller = await self._caller(context)
        return await self._run(self.service.relay_eligibility, caller)

    @grpc_error_handler
    async def Nip05Eligibility(self, request: bytes, context: grpc.aio.ServicerContext) -> bytes:
        payload = decode_request(request)
        nip05_used = _optional_int(payload, "nip05_used")
        if nip05_used is None:
            raise ValidationError("Field 'nip05_used' is required", field="nip05_used")
        caller = await self._caller(context)
        return await self._run(self.service.nip05_eligibility, caller, nip05_used)

    # ── Admin only ──────────────────────────────────────

    @grpc_error_handler
    async def ListRequests(self, request: bytes, context: grpc.aio.ServicerContext) -> bytes:
        payload = decode_request(request)
        caller = await self._caller(context)
        return await self._run(self.service.list_requests, caller, _optional_str(payload, "status"))

    @grpc_error_handler
    async def DecideRequest(self, request: bytes, context: grpc.aio.ServicerContext) -> bytes:
        payload = decode_request(request)
        caller = await self._caller(context)
        return await self._run(
            self.service.decide_request,
            caller,
            _required_str(payload, "request_id"),
            _required_str(payload, "decision"),
            _optional_str(payload, "note"),
            relay_quota=_optional_int(payload, "relay_quota"),
            nip05_quota=_optional_int(payload, "nip05_quota"),
        )

    @grpc_error_handler
    async def ListGrants(self, request: bytes, context: grpc.aio.ServicerContext) -> bytes:
        caller = await self._caller(context)
        return await self._run(self.service.list_grants, caller)

    @grpc_error_handler
    async def RevokeGrant(self, request: bytes, context: grpc.aio.ServicerContext) -> bytes:
        payload = decode_request(request)
        caller = await self._caller(context)
        return await self._run(
            self.service.revoke_grant,
            caller,
            _required_str(payload, "user_id"),
            _required_str(payload, "type"),
            _optional_str(payload, "notes"),
        )

    @grpc_error_handler
    async def AssignGrant(self, request: bytes, context: grpc.aio.ServicerContext) -> bytes:
        payload = decode_request(request)
        caller = await self._caller(context)
        return await self._run(
            self.service.assign_grant,
            caller,
            _required_str(payload, "user_id"),
            _required_str(payload, "type"),
            _optional_str(payload, "notes"),
            relay_quota=_optional_int(payload, "relay_quota"),
            nip05_quota=_optional_int(payload, "nip05_quota"),
        )

    @grpc_error_handler
    async def UpdateQuota(self, request: bytes, context: grpc.aio.ServicerContext) -> bytes:
        payload = decode_request(request)
        caller = await self._caller(context)
        return await self._run(
            self.service.update_quota,
            caller,
            _required_str(payload, "user_id"),
            _required_str(payload, "type"),
            relay_quota=_optional_int(payload, "relay_quota"),
            nip05_quota=_optional_int(payload, "nip05_quota"),
        )


def add_permission_servicer(servicer: PermissionServicer, server: grpc.aio.Server) -> None:
    """Register every RPC of ``servicer`` on ``server`` under SERVICE_NAME.

    No serializers are set, so handlers receive and return raw bytes.
    """
    handlers = {name: grpc.unary_unary_rpc_method_handler(getattr(servicer, name)) for name in RPC_METHODS}
    server.add_generic_rpc_handlers((grpc.method_handlers_generic_handler(SERVICE_NAME, handlers),))
    logger.info("Registered %s (%d methods)", SERVICE_NAME, len(handlers))
