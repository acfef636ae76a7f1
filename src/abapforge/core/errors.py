"""
Exception hierarchy for abapforge.

Every error raised by the orchestration core derives from :class:`AbapForgeError`, which carries a
machine-readable ``code`` (matched by retry predicates) and a ``details`` mapping for logging.
"""

from typing import (
    Any,
    Dict,
)

import httpx


class AbapForgeError(Exception):
    """Base class for all abapforge errors."""

    default_code = "ERR_ABAPFORGE"

    def __init__(
        self, message: str, code: str | None = None, details: Dict[str, Any] | None = None
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}


class ConfigurationError(AbapForgeError):
    """Invalid or incomplete configuration (unknown provider, missing API key)."""

    default_code = "ERR_CONFIG"


class TransportError(AbapForgeError):
    """Connection reset / refused / timeout.  Retryable by default."""

    default_code = "ERR_TRANSPORT"


class AuthenticationError(AbapForgeError):
    """Missing or rejected credentials.  Never retried."""

    default_code = "ERR_AUTH"


class CircuitOpenError(AbapForgeError):
    """Raised when the circuit breaker rejects a call without attempting it."""

    default_code = "CIRCUIT_OPEN"


class LLMError(AbapForgeError):
    """Non-success response from an LLM provider."""

    default_code = "ERR_LLM"


class RateLimitError(LLMError):
    """HTTP 429 from an LLM provider; ``retry_after`` is the server hint in seconds."""

    def __init__(self, retry_after: int, details: Dict[str, Any] | None = None) -> None:
        super().__init__(f"Rate limited. Retry after {retry_after}s", details=details)
        self.retry_after = retry_after


class RemoteOperationError(AbapForgeError):
    """Non-success response from the remote ABAP system."""

    default_code = "ERR_REMOTE"


class ToolExecutionError(AbapForgeError):
    """Raised when a requested tool cannot run (bad input) or fails."""

    default_code = "ERR_TOOL"


class UnknownCommandError(AbapForgeError):
    """The command does not resolve to an agent role."""

    default_code = "ERR_COMMAND"


class MockDataError(AbapForgeError):
    """The offline fixture has no entry for the requested key."""

    default_code = "ERR_MOCK_DATA"


def transport_error_from(exc: httpx.TransportError, context: str) -> TransportError:
    """Translate an httpx transport fault into a :class:`TransportError` with a socket-style code."""
    if isinstance(exc, httpx.TimeoutException):
        code = "ETIMEDOUT"
    elif isinstance(exc, httpx.ConnectError):
        code = "ECONNREFUSED"
    else:
        code = "ECONNRESET"
    return TransportError(f"{context}: {exc}", code=code, details={"original": repr(exc)})
