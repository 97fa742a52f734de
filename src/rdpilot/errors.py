"""Domain errors for rdpilot.

Orchestration itself reports failure with boolean / ``None`` returns; these
exceptions cover the places where a caller needs a reason:

- ValidationError / CommandShapeError: malformed commands or tool arguments
- NotFoundError: a session, profile or resource reference that resolves to nothing
- LLMError and subclasses: model backend failures, always recovered by the parser
- ConfigurationError: unusable configuration (e.g. Azure without an endpoint)

Every error serializes through ``to_dict()`` into the ``data`` member of a
JSON-RPC error; ``get_error_code`` picks the code.
"""

from __future__ import annotations

import logging
from functools import wraps
from typing import Any, Callable

logger = logging.getLogger(__name__)

_SECRET_MARKERS = ("password", "token", "secret", "key", "auth")
_MAX_VALUE_CHARS = 100


class RdpilotError(Exception):
    """Base class for rdpilot errors.

    ``context`` entries whose value is None are left out of ``to_dict()``.
    """

    def __init__(
        self,
        message: str,
        *,
        recoverable: bool = False,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.recoverable = recoverable
        self.context = context or {}

    @property
    def kind(self) -> str:
        return type(self).__name__.lower().replace("error", "")

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "type": self.kind,
            "message": self.message,
            "recoverable": self.recoverable,
        }
        data.update((k, v) for k, v in self.context.items() if v is not None)
        return data


# =============================================================================
# Input
# =============================================================================


class ValidationError(RdpilotError):
    """A command or argument set failed validation.

    ``missing`` lists every absent required field when a recognized command
    is incomplete; ``field`` names the single offending field otherwise.
    """

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        value: Any = None,
        constraint: str | None = None,
        missing: list[str] | None = None,
    ) -> None:
        context: dict[str, Any] = {
            "field": field,
            "constraint": constraint,
            "missing": list(missing) if missing else None,
        }
        if value is not None and not _looks_secret(field or "") and not _looks_secret(str(value)):
            context["value"] = _clip(str(value))
        super().__init__(message, context=context)
        self.field = field
        self.constraint = constraint
        self.missing = list(missing or [])


class CommandShapeError(ValidationError):
    """A JSON payload does not match the assistant command shape."""

    def __init__(self, message: str, *, field: str | None = None) -> None:
        super().__init__(message, field=field, constraint="command_shape")


class NotFoundError(RdpilotError):
    def __init__(
        self,
        message: str,
        *,
        resource_type: str | None = None,
        resource_id: str | None = None,
    ) -> None:
        super().__init__(message, context={"resource_type": resource_type, "resource_id": resource_id})


class ConfigurationError(RdpilotError):
    """A setting is missing or unusable."""

    def __init__(self, message: str, *, setting: str | None = None, suggestion: str | None = None) -> None:
        super().__init__(message, context={"setting": setting, "suggestion": suggestion})


# =============================================================================
# Model backend
# =============================================================================


class LLMError(RdpilotError):
    """The external model could not produce a usable answer."""

    def __init__(
        self,
        message: str,
        *,
        provider: str | None = None,
        model: str | None = None,
        recoverable: bool = False,
        context: dict[str, Any] | None = None,
    ) -> None:
        merged = {"provider": provider, "model": model, **(context or {})}
        super().__init__(message, recoverable=recoverable, context=merged)
        self.provider = provider
        self.model = model


class LLMConnectionError(LLMError):
    """The endpoint could not be reached."""

    def __init__(self, message: str, *, provider: str | None = None, url: str | None = None) -> None:
        super().__init__(message, provider=provider, recoverable=True, context={"url": url})


class LLMTimeoutError(LLMError):
    def __init__(
        self,
        message: str,
        *,
        provider: str | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        super().__init__(
            message,
            provider=provider,
            recoverable=True,
            context={"timeout_seconds": timeout_seconds},
        )


class LLMResponseError(LLMError):
    """Non-success HTTP status, or a body without usable content."""

    def __init__(
        self,
        message: str,
        *,
        provider: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message, provider=provider, context={"status_code": status_code})


# =============================================================================
# Collaborator I/O
# =============================================================================


def handle_errors(operation: str, *, log_level: str = "error", default: Any = None) -> Callable:
    """Turn unexpected exceptions from ``func`` into a logged ``default``.

    Meant for collaborator I/O (profile files) whose contract is
    ``None`` / ``False`` on failure. ``RdpilotError`` passes through
    untouched.

    Usage:
        @handle_errors("load profile", log_level="warning", default=None)
        def load(self, name: str) -> SessionProfile | None:
            ...
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                return func(*args, **kwargs)
            except RdpilotError:
                raise
            except Exception as e:
                log = getattr(logger, log_level, logger.error)
                log("Failed to %s: %s (function=%s)", operation, e, func.__name__)
                return default

        return wrapper

    return decorator


def _looks_secret(text: str) -> bool:
    lowered = text.lower()
    return any(marker in lowered for marker in _SECRET_MARKERS)


def _clip(text: str) -> str:
    if len(text) <= _MAX_VALUE_CHARS:
        return text
    return text[:_MAX_VALUE_CHARS] + "..."


# =============================================================================
# JSON-RPC codes
# =============================================================================

ERROR_CODES: dict[type[RdpilotError], int] = {
    ValidationError: -32602,
    CommandShapeError: -32602,
    NotFoundError: -32003,
    LLMError: -32010,
    LLMConnectionError: -32011,
    LLMTimeoutError: -32012,
    LLMResponseError: -32013,
    ConfigurationError: -32030,
}


def get_error_code(exc: RdpilotError) -> int:
    """JSON-RPC code for ``exc``; the closest mapped ancestor wins."""
    for cls in type(exc).__mro__:
        if cls in ERROR_CODES:
            return ERROR_CODES[cls]
    return -32603
