"""Error taxonomy for mcp-testkit.

This module defines the typed failure categories raised by the client, the
transport and the server manager. Every error carries a machine readable
``code``, a human message, an optional ``cause`` and optional structured
``details``.

Two layers exist:

* Transport-level errors (:class:`TransportError`, :class:`RequestAbortedError`,
  :class:`RPCError`) describe what the wire reported. They are raised by the
  transport and are *unclassified*.
* Classified errors (:class:`ConnectionError`, :class:`AuthenticationError`,
  :class:`ToolExecutionError`, :class:`ServerStartError`, :class:`TimeoutError`,
  :class:`ValidationError`) are what callers of the public API see. Classification
  happens once, in :func:`classify_error`, at the client boundary.
"""

import asyncio
from enum import Enum
from typing import Any, Dict, Optional, Type


class MCPTestError(Exception):
    """Base exception for all mcp-testkit errors.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        cause: Optional underlying exception
        details: Additional structured details
    """

    default_code = "UNKNOWN_ERROR"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        cause: Optional[BaseException] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Initialize the error.

        Args:
            message: Human-readable error message
            code: Error code (defaults to the class code)
            cause: Underlying exception, if any
            details: Additional structured details
        """
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.cause = cause
        self.details: Dict[str, Any] = details or {}
        if cause is not None:
            self.__cause__ = cause

    def to_dict(self) -> Dict[str, Any]:
        """Convert the error to a dictionary."""
        result: Dict[str, Any] = {
            "error": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "details": self.details,
        }
        if self.cause is not None:
            result["cause"] = repr(self.cause)
        return result

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(message={self.message!r}, "
            f"code={self.code!r}, details={self.details!r})"
        )


# Classified errors


class ConnectionError(MCPTestError):
    """Transport failure not otherwise classified, including "not found" lookups."""

    default_code = "CONNECTION_ERROR"


class AuthenticationError(MCPTestError):
    """Credentials were rejected by the server (401)."""

    default_code = "AUTHENTICATION_ERROR"


class ToolExecutionError(MCPTestError):
    """Server-side tool invocation failed."""

    default_code = "TOOL_EXECUTION_ERROR"


class ServerStartError(MCPTestError):
    """Subprocess failed to spawn, exited prematurely or failed readiness."""

    default_code = "SERVER_START_ERROR"


class TimeoutError(MCPTestError):
    """A bounded wait exceeded its budget."""

    default_code = "TIMEOUT_ERROR"


class ValidationError(MCPTestError):
    """A JSON-RPC request or reply failed protocol validation."""

    default_code = "VALIDATION_ERROR"


CLASSIFIED_ERRORS = (
    ConnectionError,
    AuthenticationError,
    ToolExecutionError,
    ServerStartError,
    TimeoutError,
    ValidationError,
)


# Transport-level (unclassified) errors


class AbortReason(str, Enum):
    """Why an in-flight request was aborted."""

    TIMEOUT = "timeout"
    CANCELLED = "cancelled"
    CLOSED = "closed"


class TransportError(MCPTestError):
    """Non-success HTTP status returned by the server."""

    default_code = "TRANSPORT_ERROR"

    def __init__(
        self,
        status: int,
        status_text: str = "",
        url: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        details: Dict[str, Any] = {"status": status, "status_text": status_text}
        if url:
            details["url"] = url
        super().__init__(
            f"HTTP error {status}: {status_text}",
            cause=cause,
            details=details,
        )
        self.status = status
        self.status_text = status_text


class RequestAbortedError(MCPTestError):
    """An in-flight request or stream was aborted through its cancellation token."""

    default_code = "REQUEST_ABORTED"

    def __init__(
        self,
        reason: AbortReason,
        url: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        if reason is AbortReason.TIMEOUT:
            message = f"Request timed out after {timeout}s"
        else:
            message = f"Request aborted ({reason.value})"
        details: Dict[str, Any] = {"reason": reason.value}
        if url:
            details["url"] = url
        if timeout is not None:
            details["timeout"] = timeout
        super().__init__(message, details=details)
        self.reason = reason


class RPCError(MCPTestError):
    """JSON-RPC ``error`` member returned by the server."""

    default_code = "RPC_ERROR"

    def __init__(self, rpc_code: int, message: str, data: Any = None) -> None:
        super().__init__(message, details={"rpc_code": rpc_code, "data": data})
        self.rpc_code = rpc_code
        self.data = data


# Classification


def _is_timeout(error: BaseException) -> bool:
    if isinstance(error, (RequestAbortedError, asyncio.TimeoutError)):
        return True
    if type(error).__name__ == "AbortError":
        return True
    return "timeout" in str(error).lower()


def _is_unauthorized(error: BaseException) -> bool:
    if isinstance(error, TransportError):
        return error.status == 401
    text = str(error).lower()
    return "401" in text or "unauthorized" in text


def _is_not_found(error: BaseException) -> bool:
    if isinstance(error, TransportError):
        return error.status == 404
    text = str(error).lower()
    return "404" in text or "not found" in text


def classify_error(
    error: BaseException,
    operation: str,
    fallback: Type[MCPTestError] = ConnectionError,
    timeout: Optional[float] = None,
    details: Optional[Dict[str, Any]] = None,
    not_found: bool = False,
) -> MCPTestError:
    """Map a raw error onto the classified taxonomy.

    The cascade is evaluated in a fixed order:

    1. abort/timeout indicators -> :class:`TimeoutError`
    2. 401/unauthorized indicators -> :class:`AuthenticationError`
    3. (optional) 404/"not found" -> :class:`ConnectionError`
    4. everything else -> ``fallback``

    Structured transport errors are inspected first (abort reason, HTTP
    status). Untyped errors fall back to substring matching on the message,
    which is brittle against localised error text.

    Args:
        error: The raw error
        operation: Verb phrase used in messages, e.g. "call tool echo"
        fallback: Category used when no indicator matches
        timeout: Timeout budget reported in timeout messages
        details: Structured details attached to the classified error
        not_found: Whether to apply the not-found tier

    Returns:
        The classified error. Errors that are already classified are returned
        unchanged.
    """
    if isinstance(error, CLASSIFIED_ERRORS):
        return error

    details = dict(details or {})

    if _is_timeout(error):
        after = f" after {timeout}s" if timeout is not None else ""
        return TimeoutError(
            f"Timed out{after} trying to {operation}", cause=error, details=details
        )

    if _is_unauthorized(error):
        return AuthenticationError(
            f"Authentication failed when trying to {operation}", cause=error, details=details
        )

    if not_found and _is_not_found(error):
        return ConnectionError(str(getattr(error, "message", error)), cause=error, details=details)

    reason = getattr(error, "message", None) or str(error) or type(error).__name__
    return fallback(f"Failed to {operation}: {reason}", cause=error, details=details)


__all__ = [
    "MCPTestError",
    "ConnectionError",
    "AuthenticationError",
    "ToolExecutionError",
    "ServerStartError",
    "TimeoutError",
    "ValidationError",
    "CLASSIFIED_ERRORS",
    "AbortReason",
    "TransportError",
    "RequestAbortedError",
    "RPCError",
    "classify_error",
]
