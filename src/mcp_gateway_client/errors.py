"""Exception hierarchy for the gateway client.

Transport, mapping and invocation failures each get their own branch so
callers can tell a dropped stream from a bad record from a failed request.
Schema parsing never raises; it degrades to ``None``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .invocation import InvocationResult
    from .types import RequestError


class GatewayError(Exception):
    """Base class for all gateway client errors."""


# =============================================================================
# Stream / mapping errors
# =============================================================================


class StreamTransportError(GatewayError):
    """Non-recoverable failure of the push connection."""


class EventMappingError(GatewayError, ValueError):
    """A wire event record could not be mapped to a canonical event."""


# =============================================================================
# REST errors
# =============================================================================


class GatewayRequestError(GatewayError):
    """A management endpoint answered with a non-success status."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        errors: list[RequestError] | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.errors = errors or []


# =============================================================================
# Invocation errors
# =============================================================================


class InvocationError(GatewayError):
    """Base class for create+poll request failures."""

    def __init__(self, message: str, request_id: str | None = None):
        super().__init__(message)
        self.request_id = request_id


class RequestCreationError(InvocationError):
    """The gateway rejected the request-creation call."""

    def __init__(self, message: str, status_code: int | None = None, body: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class InvocationFailedError(InvocationError):
    """The request reached the terminal ``failed`` status."""

    def __init__(
        self,
        message: str,
        request_id: str | None = None,
        errors: list[RequestError] | None = None,
        result: InvocationResult[Any] | None = None,
    ):
        super().__init__(message, request_id)
        self.errors = errors or []
        self.result = result


class InvocationTimeoutError(InvocationError, TimeoutError):
    """The request did not reach a terminal status within the wait budget."""


class ProtocolViolationError(InvocationError):
    """The gateway reported a status this client does not understand."""


class InvocationCancelledError(InvocationError):
    """The caller cancelled the wait for a request."""
