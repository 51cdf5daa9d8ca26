"""Unified exception hierarchy for grantcore.

All errors raised by the engine inherit from GrantCoreError. This module provides:
- Base exception hierarchy with stable error codes
- ErrorRegistry for protocol mapping
- Transport status mapping (gRPC + HTTP) and a gRPC error handler decorator

Usage:
    from grantcore.exceptions import (
        GrantCoreError,
        ConflictError,
        grpc_error_handler,
    )

Callers should surface ConflictError and StateError as actionable messages
("you already have a pending request"), not as generic failures.
"""

from __future__ import annotations

import functools
import logging
from typing import Any, Callable, TypeVar, cast

__all__ = [
    # Base hierarchy
    "GrantCoreError",
    "ValidationError",
    "ConflictError",
    "StateError",
    "NotFoundError",
    "ForbiddenError",
    "ConfigurationError",
    "StorageError",
    # Registry
    "ErrorRegistry",
    "error_registry",
    "register_error",
    # Transport helpers
    "get_grpc_status_code",
    "get_http_status",
    "grpc_error_handler",
]

logger = logging.getLogger(__name__)


# ---- Exception Hierarchy ----------------------------------------------------


class GrantCoreError(Exception):
    """Base exception for the authorization engine.

    Attributes:
        code: Stable error code string for protocol mapping (e.g. "CONFLICT").
        message: Human-readable error description.
        details: Additional context as keyword arguments.
    """

    code: str = "INTERNAL_ERROR"
    message: str = "An internal error occurred"

    def __init__(self, message: str | None = None, code: str | None = None, **kwargs: Any) -> None:
        self.message = message or self.message
        self.code = code or self.code
        self.details = kwargs
        super().__init__(self.message)


class ValidationError(GrantCoreError):
    """Unregistered permission type or missing/invalid field."""

    code: str = "VALIDATION_ERROR"
    message: str = "Invalid input"


class ConflictError(GrantCoreError):
    """Duplicate pending request or duplicate active grant."""

    code: str = "CONFLICT"
    message: str = "Conflicting state"


class StateError(GrantCoreError):
    """Transition attempted from a state that does not allow it."""

    code: str = "INVALID_STATE"
    message: str = "Invalid state transition"


class NotFoundError(GrantCoreError):
    """Unknown request id, or no active grant where one is required."""

    code: str = "NOT_FOUND"
    message: str = "Not found"


class ForbiddenError(GrantCoreError):
    """Non-admin caller invoking an admin-only operation."""

    code: str = "FORBIDDEN"
    message: str = "Admin access required"


class ConfigurationError(GrantCoreError):
    """Invalid or missing configuration."""

    code: str = "CONFIGURATION_ERROR"


class StorageError(GrantCoreError):
    """Ledger store failure (connection, schema, unexpected integrity error)."""

    code: str = "STORAGE_ERROR"


# ---- Error Registry for Protocol Mapping ------------------------------------

_E = TypeVar("_E", bound=type[GrantCoreError])


class ErrorRegistry:
    """Registry for mapping internal errors to external protocol codes."""

    def __init__(self) -> None:
        self._errors: dict[str, type[GrantCoreError]] = {}

    def register(self, code: str, error_cls: type[GrantCoreError]) -> None:
        self._errors[code] = error_cls

    def get(self, code: str) -> type[GrantCoreError] | None:
        return self._errors.get(code)

    def all(self) -> dict[str, type[GrantCoreError]]:
        return dict(self._errors)


error_registry = ErrorRegistry()


def register_error(code: str) -> Callable[[_E], _E]:
    """Decorator to register a custom error type.

    Usage:
        @register_error("QUOTA_EXCEEDED")
        class QuotaExceededError(GrantCoreError):
            code = "QUOTA_EXCEEDED"
    """

    def decorator(cls: _E) -> _E:
        error_registry.register(code, cls)
        return cls

    return cast(Callable[[_E], _E], decorator)


# Register base errors
error_registry.register("INTERNAL_ERROR", GrantCoreError)
error_registry.register("VALIDATION_ERROR", ValidationError)
error_registry.register("CONFLICT", ConflictError)
error_registry.register("INVALID_STATE", StateError)
error_registry.register("NOT_FOUND", NotFoundError)
error_registry.register("FORBIDDEN", ForbiddenError)
error_registry.register("CONFIGURATION_ERROR", ConfigurationError)
error_registry.register("STORAGE_ERROR", StorageError)


# ---- Transport Mapping ------------------------------------------------------

_HTTP_STATUS = {
    "VALIDATION_ERROR": 400,
    "FORBIDDEN": 403,
    "NOT_FOUND": 404,
    "CONFLICT": 409,
    "INVALID_STATE": 409,
    "CONFIGURATION_ERROR": 500,
    "STORAGE_ERROR": 503,
}


def get_http_status(error: GrantCoreError) -> int:
    """Map a GrantCoreError to an HTTP status code (500 for unknown codes)."""
    return _HTTP_STATUS.get(error.code, 500)


def get_grpc_status_code(error: GrantCoreError) -> Any:
    """Map GrantCoreError to gRPC status code.

    Returns grpc.StatusCode value for the given error type.
    Import grpc locally to avoid hard dependency at module level.
    """
    import grpc

    error_to_status = {
        "VALIDATION_ERROR": grpc.StatusCode.INVALID_ARGUMENT,
        "CONFLICT": grpc.StatusCode.ALREADY_EXISTS,
        "INVALID_STATE": grpc.StatusCode.FAILED_PRECONDITION,
        "NOT_FOUND": grpc.StatusCode.NOT_FOUND,
        "FORBIDDEN": grpc.StatusCode.PERMISSION_DENIED,
        "CONFIGURATION_ERROR": grpc.StatusCode.FAILED_PRECONDITION,
        "STORAGE_ERROR": grpc.StatusCode.UNAVAILABLE,
    }
    return error_to_status.get(error.code, grpc.StatusCode.INTERNAL)


def grpc_error_handler(method):
    """Turn errors raised by an async unary servicer method into gRPC aborts.

    GrantCoreError aborts with the mapped status, ``[CODE] message`` as the
    details and ``error-code`` trailing metadata. Anything else aborts with
    INTERNAL; the traceback goes to the log, not to the client.

    Usage:
        @grpc_error_handler
        async def SubmitRequest(self, request, context):
            ...
    """

    @functools.wraps(method)
    async def wrapper(self, request, context):
        try:
            return await method(self, request, context)
        except GrantCoreError as e:
            logger.warning(
                "%s rejected: [%s] %s",
                method.__name__,
                e.code,
                e.message,
                extra={"error_code": e.code, "error_details": e.details},
            )
            context.set_trailing_metadata([("error-code", e.code)])
            await context.abort(get_grpc_status_code(e), f"[{e.code}] {e.message}")
        except Exception:
            import grpc

            logger.exception("%s failed", method.__name__)
            context.set_trailing_metadata([("error-code", "INTERNAL_ERROR")])
            await context.abort(grpc.StatusCode.INTERNAL, f"[INTERNAL_ERROR] {method.__name__} failed")

    return wrapper
