"""Mock push transport for testing.

No actual I/O: tests drive each handle's notifications by hand.

Usage:
    transport = MockStreamTransport()
    connector = EventStreamConnector(transport, on_event=events.append)
    await connector.start("http://gateway/v1/events/stream")

    handle = transport.last_handle
    handle.simulate_open()
    handle.simulate_message("mcp-server.created", json.dumps({...}), "42")
"""

from __future__ import annotations

from dataclasses import dataclass

from ..errors import StreamTransportError
from .base import StreamListener


@dataclass
class OpenCall:
    """Arguments of one ``open`` call."""

    url: str
    last_event_id: str | None


class MockStreamHandle:
    """In-memory stream handle."""

    def __init__(self, url: str, last_event_id: str | None, listener: StreamListener):
        self.url = url
        self.last_event_id = last_event_id
        self._listener = listener
        self.close_count = 0

    @property
    def closed(self) -> bool:
        return self.close_count > 0

    async def close(self) -> None:
        self.close_count += 1

    def simulate_open(self) -> None:
        self._listener.on_open()

    def simulate_message(self, name: str, data: str, event_id: str | None = None) -> None:
        self._listener.on_message(name, data, event_id)

    def simulate_retrying(self) -> None:
        self._listener.on_retrying()

    def simulate_closed(self) -> None:
        self._listener.on_closed()

    def simulate_fatal_error(self, message: str) -> None:
        self._listener.on_fatal_error(message)


class MockStreamTransport:
    """Records opened handles; can be told to refuse connections."""

    def __init__(self) -> None:
        self._handles: list[MockStreamHandle] = []
        self._open_calls: list[OpenCall] = []
        self.fail_with: str | None = None

    @property
    def handles(self) -> list[MockStreamHandle]:
        return self._handles.copy()

    @property
    def open_calls(self) -> list[OpenCall]:
        return self._open_calls.copy()

    @property
    def last_handle(self) -> MockStreamHandle:
        if not self._handles:
            raise AssertionError("No stream was opened")
        return self._handles[-1]

    async def open(
        self,
        url: str,
        last_event_id: str | None,
        listener: StreamListener,
    ) -> MockStreamHandle:
        self._open_calls.append(OpenCall(url=url, last_event_id=last_event_id))
        if self.fail_with is not None:
            raise StreamTransportError(self.fail_with)

        handle = MockStreamHandle(url, last_event_id, listener)
        self._handles.append(handle)
        return handle


def create_mock_transport() -> MockStreamTransport:
    """Create a mock transport for testing."""
    return MockStreamTransport()
