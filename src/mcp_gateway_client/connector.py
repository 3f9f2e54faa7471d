"""Event stream connector.

Owns one logical subscription to the gateway's push feed:
- Tracks the connection state machine
- Remembers the last seen event id for replay on re-start
- Normalizes raw records into canonical events for a single consumer

The connector never reconnects on its own after a fatal error; callers
re-``start`` with ``last_event_id`` to resume the feed.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import Enum
from typing import Any, Self

from .errors import EventMappingError, StreamTransportError
from .events import McpServerEvent
from .normalizer import EventNormalizer
from .transport.base import StreamHandle, StreamTransport
from .transport.sse import SSETransport
from .urls import with_last_event_id

logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    """Connection state machine."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    ERROR = "error"


# Single-consumer notification channels
EventCallback = Callable[[McpServerEvent], None]
StateCallback = Callable[[ConnectionState], None]
ErrorCallback = Callable[[str], None]


class _Subscription:
    """Listener bound to one ``start`` call.

    Notifications from a superseded subscription are dropped.
    """

    def __init__(self, connector: StreamConsumer, generation: int):
        self._connector = connector
        self._generation = generation

    @property
    def is_current(self) -> bool:
        return self._connector._generation == self._generation

    def on_open(self) -> None:
        if self.is_current:
            self._connector._handle_open()

    def on_message(self, name: str, data: str, event_id: str | None) -> None:
        if self.is_current:
            self._connector._handle_message(name, data, event_id)

    def on_retrying(self) -> None:
        if self.is_current:
            self._connector._handle_retrying()

    def on_closed(self) -> None:
        if self.is_current:
            self._connector._handle_closed()

    def on_fatal_error(self, message: str) -> None:
        if self.is_current:
            self._connector._handle_fatal_error(message)


class StreamConsumer:
    """One logical subscription to a push stream.

    Owns the connection state machine, the current handle and the single
    consumer callbacks. Subclasses decode messages in ``_handle_message``.

    ``start``/``stop`` must be serialized by the caller (one coordinating
    task); notifications arrive on the event loop.
    """

    stream_name = "Stream"

    def __init__(
        self,
        transport: StreamTransport | None = None,
        *,
        on_state_changed: StateCallback | None = None,
        on_error: ErrorCallback | None = None,
    ):
        self._transport = transport or SSETransport()
        self._on_state_changed = on_state_changed
        self._on_error = on_error

        self._state = ConnectionState.DISCONNECTED
        self._handle: StreamHandle | None = None
        self._generation = 0

    @property
    def connection_state(self) -> ConnectionState:
        """Current connection state."""
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED

    async def stop(self) -> None:
        """Close the current subscription. No-op when already stopped."""
        handle, self._handle = self._handle, None
        self._generation += 1

        try:
            if handle is not None:
                await handle.close()
                logger.info(f"{self.stream_name} stopped")
        finally:
            self._set_state(ConnectionState.DISCONNECTED)

    async def _open(self, url: str, last_event_id: str | None) -> None:
        """Open a new subscription; the caller has already stopped the old one."""
        self._generation += 1
        generation = self._generation
        self._set_state(ConnectionState.CONNECTING)

        try:
            handle = await self._transport.open(
                url, last_event_id, _Subscription(self, generation)
            )
        except (StreamTransportError, OSError) as e:
            logger.error(f"Failed to start {self.stream_name.lower()} to {url}: {e}")
            self._report_error(f"Failed to connect: {e}")
            self._set_state(ConnectionState.ERROR)
            return

        if generation != self._generation:
            # Stopped while opening
            await handle.close()
            return

        self._handle = handle

    # Transport notifications

    def _handle_open(self) -> None:
        logger.info(f"{self.stream_name} connected")
        self._set_state(ConnectionState.CONNECTED)

    def _handle_retrying(self) -> None:
        logger.info(f"{self.stream_name} reconnecting")
        self._set_state(ConnectionState.RECONNECTING)

    def _handle_closed(self) -> None:
        logger.info(f"{self.stream_name} closed")
        self._set_state(ConnectionState.DISCONNECTED)

    def _handle_fatal_error(self, message: str) -> None:
        logger.error(f"{self.stream_name} error: {message}")
        self._report_error(message)
        self._set_state(ConnectionState.ERROR)

    def _handle_message(self, name: str, data: str, event_id: str | None) -> None:
        raise NotImplementedError

    # Helpers

    def _set_state(self, state: ConnectionState) -> None:
        if self._state != state:
            self._state = state
            self._notify(self._on_state_changed, state)

    def _report_error(self, message: str) -> None:
        self._notify(self._on_error, message)

    def _notify(self, callback: Callable[[Any], None] | None, value: Any) -> None:
        if callback is None:
            return
        try:
            callback(value)
        except Exception:
            logger.exception(f"Error in {self.stream_name.lower()} subscriber {callback!r}")

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.stop()


class EventStreamConnector(StreamConsumer):
    """Resilient consumer of the gateway event stream.

    Usage:
        connector = EventStreamConnector(
            on_event=handle_event,
            on_state_changed=show_state,
            on_error=log_error,
        )
        await connector.start(event_stream_url(base_url))
        ...
        await connector.start(event_stream_url(base_url), connector.last_event_id)
    """

    stream_name = "Event stream"

    def __init__(
        self,
        transport: StreamTransport | None = None,
        normalizer: EventNormalizer | None = None,
        *,
        on_event: EventCallback | None = None,
        on_state_changed: StateCallback | None = None,
        on_error: ErrorCallback | None = None,
    ):
        super().__init__(transport, on_state_changed=on_state_changed, on_error=on_error)
        self._normalizer = normalizer or EventNormalizer()
        self._on_event = on_event
        self._last_event_id: str | None = None

    @property
    def last_event_id(self) -> str | None:
        """Id of the newest record received, for replay."""
        return self._last_event_id

    async def start(self, stream_endpoint: str, last_event_id: str | None = None) -> None:
        """Subscribe to the stream, replacing any existing subscription.

        Args:
            stream_endpoint: Full URL of the gateway's event stream
            last_event_id: Resume after this id; None starts from now
        """
        await self.stop()

        if last_event_id:
            self._last_event_id = last_event_id
            logger.info(f"Connecting with last event ID: {last_event_id}")

        await self._open(with_last_event_id(stream_endpoint, last_event_id), last_event_id)

    def _handle_message(self, name: str, data: str, event_id: str | None) -> None:
        if event_id:
            self._last_event_id = event_id

        try:
            event = self._normalizer.normalize_json(data, name, event_id)
        except EventMappingError as e:
            logger.warning(f"Failed to map event {event_id or '?'}: {e}")
            self._report_error(f"Failed to map event: {e}")
            return

        self._notify(self._on_event, event)
