"""Unit tests for the event stream connector.

Uses the in-memory mock transport; each test drives the transport
notifications by hand.
"""

from __future__ import annotations

import json
from unittest.mock import MagicMock

import pytest

from mcp_gateway_client.connector import ConnectionState, EventStreamConnector
from mcp_gateway_client.event_types import EventKind
from mcp_gateway_client.events import McpServerEvent
from mcp_gateway_client.transport.mock import MockStreamTransport

STREAM_URL = "http://gateway.test/v1/events/stream"


def event_body(target: str = "mcp-servers/acme/instances/i1") -> str:
    return json.dumps({"target": target, "timestamp": "2025-03-01T12:30:00Z"})


class Recorder:
    """Collects connector notifications."""

    def __init__(self) -> None:
        self.events: list[McpServerEvent] = []
        self.states: list[ConnectionState] = []
        self.errors: list[str] = []

    def connector(self, transport: MockStreamTransport) -> EventStreamConnector:
        return EventStreamConnector(
            transport,
            on_event=self.events.append,
            on_state_changed=self.states.append,
            on_error=self.errors.append,
        )


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


class TestConnectorLifecycle:
    """Test start/stop and the state machine."""

    def test_initial_state(self, transport: MockStreamTransport, recorder: Recorder) -> None:
        connector = recorder.connector(transport)

        assert connector.connection_state == ConnectionState.DISCONNECTED
        assert connector.last_event_id is None
        assert connector.is_connected is False

    @pytest.mark.asyncio
    async def test_start_opens_transport(
        self, transport: MockStreamTransport, recorder: Recorder
    ) -> None:
        connector = recorder.connector(transport)

        await connector.start(STREAM_URL)

        assert transport.open_calls[0].url == STREAM_URL
        assert transport.open_calls[0].last_event_id is None
        assert connector.connection_state == ConnectionState.CONNECTING

    @pytest.mark.asyncio
    async def test_open_then_connected(
        self, transport: MockStreamTransport, recorder: Recorder
    ) -> None:
        connector = recorder.connector(transport)
        await connector.start(STREAM_URL)

        transport.last_handle.simulate_open()

        assert connector.is_connected
        assert recorder.states == [ConnectionState.CONNECTING, ConnectionState.CONNECTED]

    @pytest.mark.asyncio
    async def test_retry_and_recover(
        self, transport: MockStreamTransport, recorder: Recorder
    ) -> None:
        connector = recorder.connector(transport)
        await connector.start(STREAM_URL)
        handle = transport.last_handle

        handle.simulate_open()
        handle.simulate_retrying()
        handle.simulate_open()

        assert recorder.states == [
            ConnectionState.CONNECTING,
            ConnectionState.CONNECTED,
            ConnectionState.RECONNECTING,
            ConnectionState.CONNECTED,
        ]

    @pytest.mark.asyncio
    async def test_state_change_notified_once(
        self, transport: MockStreamTransport, recorder: Recorder
    ) -> None:
        """Repeated notifications for the same state do not re-fire."""
        connector = recorder.connector(transport)
        await connector.start(STREAM_URL)

        transport.last_handle.simulate_open()
        transport.last_handle.simulate_open()

        assert recorder.states.count(ConnectionState.CONNECTED) == 1

    @pytest.mark.asyncio
    async def test_closed_by_transport(
        self, transport: MockStreamTransport, recorder: Recorder
    ) -> None:
        connector = recorder.connector(transport)
        await connector.start(STREAM_URL)
        transport.last_handle.simulate_open()

        transport.last_handle.simulate_closed()

        assert connector.connection_state == ConnectionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_fatal_error(self, transport: MockStreamTransport, recorder: Recorder) -> None:
        connector = recorder.connector(transport)
        await connector.start(STREAM_URL)
        transport.last_handle.simulate_open()

        transport.last_handle.simulate_fatal_error("HTTP 401")

        assert connector.connection_state == ConnectionState.ERROR
        assert recorder.errors == ["HTTP 401"]
        assert len(transport.handles) == 1  # No automatic reconnect

    @pytest.mark.asyncio
    async def test_open_failure(self, transport: MockStreamTransport, recorder: Recorder) -> None:
        transport.fail_with = "connection refused"
        connector = recorder.connector(transport)

        await connector.start(STREAM_URL)

        assert connector.connection_state == ConnectionState.ERROR
        assert recorder.errors == ["Failed to connect: connection refused"]

    @pytest.mark.asyncio
    async def test_stop_releases_handle(
        self, transport: MockStreamTransport, recorder: Recorder
    ) -> None:
        connector = recorder.connector(transport)
        await connector.start(STREAM_URL)
        handle = transport.last_handle
        handle.simulate_open()

        await connector.stop()

        assert handle.close_count == 1
        assert connector.connection_state == ConnectionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_stop_when_stopped_is_noop(
        self, transport: MockStreamTransport, recorder: Recorder
    ) -> None:
        connector = recorder.connector(transport)

        await connector.stop()
        await connector.stop()

        assert recorder.states == []
        assert transport.handles == []

    @pytest.mark.asyncio
    async def test_context_manager_stops(
        self, transport: MockStreamTransport, recorder: Recorder
    ) -> None:
        async with recorder.connector(transport) as connector:
            await connector.start(STREAM_URL)
            handle = transport.last_handle

        assert handle.closed


class TestConnectorRestart:
    """Test replacing a subscription."""

    @pytest.mark.asyncio
    async def test_start_twice_closes_first_handle_once(
        self, transport: MockStreamTransport, recorder: Recorder
    ) -> None:
        connector = recorder.connector(transport)

        await connector.start(STREAM_URL)
        first = transport.last_handle
        first.simulate_open()
        await connector.start(STREAM_URL)
        second = transport.last_handle

        assert first is not second
        assert first.close_count == 1
        assert second.close_count == 0

        second.simulate_open()
        assert connector.is_connected

    @pytest.mark.asyncio
    async def test_superseded_handle_is_ignored(
        self, transport: MockStreamTransport, recorder: Recorder
    ) -> None:
        """Late notifications from the first subscription change nothing."""
        connector = recorder.connector(transport)
        await connector.start(STREAM_URL)
        first = transport.last_handle
        await connector.start(STREAM_URL)
        transport.last_handle.simulate_open()

        first.simulate_fatal_error("stale")
        first.simulate_message("mcp-server.instance.started", event_body(), "99")

        assert connector.is_connected
        assert recorder.errors == []
        assert recorder.events == []
        assert connector.last_event_id is None

    @pytest.mark.asyncio
    async def test_resume_from_last_event_id(
        self, transport: MockStreamTransport, recorder: Recorder
    ) -> None:
        connector = recorder.connector(transport)
        await connector.start(STREAM_URL)
        transport.last_handle.simulate_message("mcp-server.instance.started", event_body(), "17")

        await connector.start(STREAM_URL, connector.last_event_id)

        call = transport.open_calls[-1]
        assert call.url == f"{STREAM_URL}?lastEventId=17"
        assert call.last_event_id == "17"

    @pytest.mark.asyncio
    async def test_start_without_id_starts_from_now(
        self, transport: MockStreamTransport, recorder: Recorder
    ) -> None:
        connector = recorder.connector(transport)
        await connector.start(STREAM_URL)
        transport.last_handle.simulate_message("mcp-server.instance.started", event_body(), "17")

        await connector.start(STREAM_URL)

        assert transport.open_calls[-1].url == STREAM_URL
        assert connector.last_event_id == "17"


class TestConnectorMessages:
    """Test record delivery."""

    @pytest.mark.asyncio
    async def test_event_delivered(
        self, transport: MockStreamTransport, recorder: Recorder
    ) -> None:
        connector = recorder.connector(transport)
        await connector.start(STREAM_URL)

        transport.last_handle.simulate_message("mcp-server.instance.started", event_body(), "5")

        assert len(recorder.events) == 1
        event = recorder.events[0]
        assert event.event_type is EventKind.STARTED
        assert event.server_name == "acme"
        assert event.instance_id == "i1"
        assert connector.last_event_id == "5"

    @pytest.mark.asyncio
    async def test_bad_record_reported_and_stream_continues(
        self, transport: MockStreamTransport, recorder: Recorder
    ) -> None:
        connector = recorder.connector(transport)
        await connector.start(STREAM_URL)
        handle = transport.last_handle

        handle.simulate_message("mcp-server.instance.started", event_body("nonsense"), "6")
        handle.simulate_message("mcp-server.created", event_body("mcp-servers/acme"), "7")

        assert len(recorder.errors) == 1
        assert recorder.errors[0].startswith("Failed to map event")
        assert [e.event_type for e in recorder.events] == [EventKind.SERVER_CREATED]
        assert connector.last_event_id == "7"

    @pytest.mark.asyncio
    async def test_id_recorded_even_when_mapping_fails(
        self, transport: MockStreamTransport, recorder: Recorder
    ) -> None:
        connector = recorder.connector(transport)
        await connector.start(STREAM_URL)

        transport.last_handle.simulate_message("unknown.kind", event_body(), "8")

        assert connector.last_event_id == "8"
        assert recorder.events == []

    @pytest.mark.asyncio
    async def test_message_without_id_keeps_previous(
        self, transport: MockStreamTransport, recorder: Recorder
    ) -> None:
        connector = recorder.connector(transport)
        await connector.start(STREAM_URL)
        handle = transport.last_handle

        handle.simulate_message("mcp-server.instance.started", event_body(), "3")
        handle.simulate_message("mcp-server.instance.stopped", event_body())

        assert connector.last_event_id == "3"
        assert len(recorder.events) == 2

    @pytest.mark.asyncio
    async def test_subscriber_exception_does_not_break_stream(
        self, transport: MockStreamTransport
    ) -> None:
        on_event = MagicMock(side_effect=RuntimeError("subscriber bug"))
        connector = EventStreamConnector(transport, on_event=on_event)
        await connector.start(STREAM_URL)

        transport.last_handle.simulate_message("mcp-server.instance.started", event_body(), "1")
        transport.last_handle.simulate_message("mcp-server.instance.stopped", event_body(), "2")

        assert on_event.call_count == 2
        assert connector.last_event_id == "2"

    @pytest.mark.asyncio
    async def test_deeply_nested_body_reported_and_stream_continues(
        self, transport: MockStreamTransport, recorder: Recorder
    ) -> None:
        """A body too deep to decode is one bad record, not a dead subscription."""
        connector = recorder.connector(transport)
        await connector.start(STREAM_URL)
        handle = transport.last_handle
        handle.simulate_open()

        handle.simulate_message("mcp-server.created", "[" * 100000, "1")
        handle.simulate_message("mcp-server.created", event_body("mcp-servers/acme"), "2")

        assert len(recorder.errors) == 1
        assert recorder.errors[0].startswith("Failed to map event")
        assert [e.event_type for e in recorder.events] == [EventKind.SERVER_CREATED]
        assert connector.is_connected
        assert connector.last_event_id == "2"
