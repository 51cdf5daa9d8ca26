"""Centralized logging utilities for grantcore.

This module provides:
- Logging configuration from GrantCoreConfig
- Safe preview utilities for free-text fields (request reasons, decision notes)
- Secret redaction
- Structured logging with user_id / request_id context
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Optional

from .config import GrantCoreConfig, LogLevel


# Patterns for detecting secrets users paste into free-text fields
SECRET_PATTERNS = [
    r'(?i)(?:password|passwd|pwd|secret|token|key|api[_-]?key|auth[_-]?token)\s*[:=]\s*["\']?([^"\'\s]+)',
    r'(?i)(?:bearer|basic)\s+([a-zA-Z0-9+/=]+)',
    r'(?i)\bnsec1[02-9ac-hj-np-z]{20,}',  # bech32 Nostr private keys
    r'(?i)\blnbc[0-9a-z]{20,}',  # Lightning invoices
    r'[a-f0-9]{64}',  # 32-byte hex keys
]

# LogRecord attributes that are not user-supplied extras
_RESERVED_ATTRS = {
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "message", "pathname", "process", "processName", "relativeCreated",
    "thread", "threadName", "exc_info", "exc_text", "stack_info",
    "taskName", "user_id", "request_id",
}


def safe_preview(value: Any, limit: int = 240) -> str:
    """Create a safe, length-bounded preview of a value for logging.

    Converts any value to a single line, normalizes whitespace and
    truncates to ``limit`` characters (ending with an ellipsis).

    Args:
        value: The value to preview (any type)
        limit: Maximum length of the preview (default: 240)

    Returns:
        A safe, truncated string representation
    """
    if value is None:
        return ""

    if isinstance(value, str):
        s = value
    elif isinstance(value, (dict, list)):
        try:
            s = json.dumps(value, default=str, ensure_ascii=False)
        except (TypeError, ValueError):
            s = str(value)
    else:
        s = str(value)

    s = " ".join(s.split())

    if len(s) > limit:
        return s[: limit - 1] + "…"

    return s


def redact_secrets(text: str, replacement: str = "[REDACTED]") -> str:
    """Redact secret patterns from text.

    Args:
        text: The text to redact
        replacement: String to replace secrets with (default: "[REDACTED]")

    Returns:
        Text with secrets redacted; non-strings are returned unchanged
    """
    if not isinstance(text, str):
        return text

    result = text
    for pattern in SECRET_PATTERNS:
        result = re.sub(pattern, replacement, result, flags=re.IGNORECASE | re.DOTALL)

    return result


def safe_log_value(value: Any, limit: int = 240, redact: bool = True) -> str:
    """Preview + optional redaction. Use this for any user-supplied text."""
    preview = safe_preview(value, limit=limit)
    if redact:
        preview = redact_secrets(preview)
    return preview


class GrantFormatter(logging.Formatter):
    """Formatter that includes user/request context, as JSON or plain text."""

    def __init__(
        self,
        json_format: bool = True,
        redact_secrets: bool = True,
        *args: Any,
        **kwargs: Any,
    ):
        super().__init__(*args, **kwargs)
        self.json_format = json_format
        self.redact_secrets = redact_secrets

    def format(self, record: logging.LogRecord) -> str:
        user_id = getattr(record, "user_id", None)
        request_id = getattr(record, "request_id", None)

        log_data: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if user_id:
            log_data["user_id"] = str(user_id)
        if request_id:
            log_data["request_id"] = str(request_id)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_data[key] = safe_log_value(value, redact=self.redact_secrets)

        if self.redact_secrets:
            log_data["message"] = redact_secrets(log_data["message"])

        if self.json_format:
            return json.dumps(log_data, default=str, ensure_ascii=False)

        parts = [
            f"[{log_data['timestamp']}]",
            f"{log_data['level']}",
            f"{log_data['logger']}",
        ]
        if user_id:
            parts.append(f"user_id={log_data['user_id']}")
        if request_id:
            parts.append(f"request_id={log_data['request_id']}")
        parts.append(f": {log_data['message']}")
        return " ".join(parts)


class GrantLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that adds user_id and request_id to log records.

    Usage:
        logger = get_grant_logger(__name__, user_id=caller.id)
        logger.info("Request submitted", request_id=request.id)
    """

    def __init__(
        self,
        logger: logging.Logger,
        user_id: Optional[str] = None,
        request_id: Optional[str] = None,
    ):
        super().__init__(logger, {})
        self.user_id = user_id
        self.request_id = request_id

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        user_id = kwargs.pop("user_id", self.user_id)
        request_id = kwargs.pop("request_id", self.request_id)

        extra = kwargs.get("extra", {})
        if user_id:
            extra["user_id"] = user_id
        if request_id:
            extra["request_id"] = request_id
        kwargs["extra"] = extra

        return msg, kwargs


def setup_logging(
    config: Optional[GrantCoreConfig] = None,
    json_format: Optional[bool] = None,
    redact_secrets: bool = True,
) -> None:
    """Configure root logging for a process embedding grantcore.

    Args:
        config: GrantCoreConfig instance (if None, loads from environment)
        json_format: Force JSON on/off (default: config.log_json)
        redact_secrets: Whether to redact secrets (default: True)
    """
    if config is None:
        from .config import load_config_from_env
        config = load_config_from_env()

    level_map = {
        LogLevel.DEBUG: logging.DEBUG,
        LogLevel.INFO: logging.INFO,
        LogLevel.WARNING: logging.WARNING,
        LogLevel.ERROR: logging.ERROR,
        LogLevel.CRITICAL: logging.CRITICAL,
    }
    log_level = level_map.get(config.log_level, logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(
        GrantFormatter(
            json_format=config.log_json if json_format is None else json_format,
            redact_secrets=redact_secrets,
        )
    )
    root_logger.addHandler(console_handler)

    if config.service_name:
        logging.getLogger(config.service_name).setLevel(log_level)


def get_grant_logger(
    name: str,
    user_id: Optional[str] = None,
    request_id: Optional[str] = None,
) -> GrantLoggerAdapter:
    """Get a logger adapter carrying user/request context.

    Example:
        logger = get_grant_logger(__name__)
        logger.info("Grant revoked", user_id="u1")
    """
    logger = logging.getLogger(name)
    return GrantLoggerAdapter(logger, user_id=user_id, request_id=request_id)


__all__ = [
    "safe_preview",
    "redact_secrets",
    "safe_log_value",
    "GrantFormatter",
    "GrantLoggerAdapter",
    "setup_logging",
    "get_grant_logger",
]
