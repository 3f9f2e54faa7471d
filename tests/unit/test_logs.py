"""Unit tests for instance log streaming."""

from __future__ import annotations

import json
from datetime import UTC, datetime

import pytest

from mcp_gateway_client.connector import ConnectionState
from mcp_gateway_client.logs import LOG_EVENT_NAME, InstanceLogEntry, InstanceLogStream
from mcp_gateway_client.transport.mock import MockStreamTransport

BASE_URL = "http://gateway.test"
LOG_URL = "http://gateway.test/v1/mcp-servers/acme/instances/i1/logs/stream"


def log_line(line_number: int, text: str, timestamp: str = "2025-03-01T12:30:00Z") -> str:
    return json.dumps({"lineNumber": line_number, "timestamp": timestamp, "text": text})


class Recorder:
    """Collects log stream notifications."""

    def __init__(self) -> None:
        self.entries: list[InstanceLogEntry] = []
        self.states: list[ConnectionState] = []
        self.errors: list[str] = []

    def stream(self, transport: MockStreamTransport) -> InstanceLogStream:
        return InstanceLogStream(
            transport,
            on_entry=self.entries.append,
            on_state_changed=self.states.append,
            on_error=self.errors.append,
        )


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


class TestInstanceLogEntry:
    """Test log entry parsing."""

    def test_parse(self):
        entry = InstanceLogEntry.model_validate_json(log_line(3, "listening on :8080"))

        assert entry.line_number == 3
        assert entry.text == "listening on :8080"
        assert entry.timestamp == datetime(2025, 3, 1, 12, 30, tzinfo=UTC)

    def test_bad_timestamp_uses_receive_time(self):
        before = datetime.now(UTC)

        entry = InstanceLogEntry.model_validate_json(log_line(1, "x", timestamp="yesterday"))

        assert entry.timestamp >= before


class TestInstanceLogStream:
    """Test the log stream consumer."""

    @pytest.mark.asyncio
    async def test_start_opens_log_url(
        self, transport: MockStreamTransport, recorder: Recorder
    ) -> None:
        stream = recorder.stream(transport)

        await stream.start(BASE_URL, "acme", "i1", after_line=10)

        assert transport.open_calls[0].url == f"{LOG_URL}?afterLine=10"
        assert stream.connection_state == ConnectionState.CONNECTING
        assert stream.last_line_number == 10

    @pytest.mark.asyncio
    async def test_entries_delivered_in_order(
        self, transport: MockStreamTransport, recorder: Recorder
    ) -> None:
        stream = recorder.stream(transport)
        await stream.start(BASE_URL, "acme", "i1")
        handle = transport.last_handle

        handle.simulate_open()
        handle.simulate_message(LOG_EVENT_NAME, log_line(1, "starting"))
        handle.simulate_message(LOG_EVENT_NAME, log_line(2, "ready"))

        assert stream.is_connected
        assert [e.text for e in recorder.entries] == ["starting", "ready"]
        assert stream.last_line_number == 2

    @pytest.mark.asyncio
    async def test_restart_resumes_after_last_line(
        self, transport: MockStreamTransport, recorder: Recorder
    ) -> None:
        stream = recorder.stream(transport)
        await stream.start(BASE_URL, "acme", "i1")
        first = transport.last_handle
        first.simulate_message(LOG_EVENT_NAME, log_line(7, "x"))

        await stream.start(BASE_URL, "acme", "i1", stream.last_line_number)

        assert first.close_count == 1
        assert transport.open_calls[-1].url == f"{LOG_URL}?afterLine=7"

    @pytest.mark.asyncio
    async def test_malformed_entry_skipped(
        self, transport: MockStreamTransport, recorder: Recorder
    ) -> None:
        """Unparseable entries are dropped; the stream keeps going."""
        stream = recorder.stream(transport)
        await stream.start(BASE_URL, "acme", "i1")
        handle = transport.last_handle
        handle.simulate_open()

        handle.simulate_message(LOG_EVENT_NAME, "{not json")
        handle.simulate_message(LOG_EVENT_NAME, "[" * 100000)
        handle.simulate_message(LOG_EVENT_NAME, log_line(1, "ok"))

        assert [e.text for e in recorder.entries] == ["ok"]
        assert recorder.errors == []
        assert stream.is_connected

    @pytest.mark.asyncio
    async def test_other_event_names_ignored(
        self, transport: MockStreamTransport, recorder: Recorder
    ) -> None:
        await recorder.stream(transport).start(BASE_URL, "acme", "i1")

        transport.last_handle.simulate_message("message", log_line(1, "x"))

        assert recorder.entries == []

    @pytest.mark.asyncio
    async def test_fatal_error(self, transport: MockStreamTransport, recorder: Recorder) -> None:
        stream = recorder.stream(transport)
        await stream.start(BASE_URL, "acme", "i1")

        transport.last_handle.simulate_fatal_error("Server rejected event stream: HTTP 404")

        assert stream.connection_state == ConnectionState.ERROR
        assert recorder.errors == ["Server rejected event stream: HTTP 404"]

    @pytest.mark.asyncio
    async def test_stop(self, transport: MockStreamTransport, recorder: Recorder) -> None:
        async with recorder.stream(transport) as stream:
            await stream.start(BASE_URL, "acme", "i1")
            handle = transport.last_handle
            handle.simulate_open()

        assert handle.closed
        assert recorder.states[-1] == ConnectionState.DISCONNECTED
