"""Push transport abstraction.

Defines the capability the event stream connector consumes: open a push
connection, be told about open/message/retry/close/fatal-error, close it.
Implementations:
- SSETransport: Server-Sent Events over httpx
- MockStreamTransport: in-memory, driven by tests
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@runtime_checkable
class StreamListener(Protocol):
    """Callbacks a transport handle reports to.

    Callbacks run on the event loop and must not block.
    """

    def on_open(self) -> None:
        """The connection is established (initially or after a retry)."""
        ...

    def on_message(self, name: str, data: str, event_id: str | None) -> None:
        """A named event arrived."""
        ...

    def on_retrying(self) -> None:
        """The connection dropped and the transport is re-establishing it."""
        ...

    def on_closed(self) -> None:
        """The connection ended for good."""
        ...

    def on_fatal_error(self, message: str) -> None:
        """The connection failed and will not be retried."""
        ...


@runtime_checkable
class StreamHandle(Protocol):
    """An open push connection."""

    async def close(self) -> None:
        """Release the connection. Safe to call more than once."""
        ...


@runtime_checkable
class StreamTransport(Protocol):
    """Factory for push connections."""

    async def open(
        self,
        url: str,
        last_event_id: str | None,
        listener: StreamListener,
    ) -> StreamHandle:
        """Open a push connection and start reporting to ``listener``.

        Raises:
            StreamTransportError: If the connection cannot be started
        """
        ...


@dataclass
class StreamConfig:
    """Push transport configuration."""

    # Connection settings
    timeout: float = 30.0
    headers: dict[str, str] | None = None

    # Reconnection settings (for intermittent connectivity)
    reconnect: bool = True
    reconnect_delay: float = 1.0
    max_reconnect_delay: float = 30.0
    reconnect_backoff: float = 2.0
    max_reconnect_attempts: int | None = None
