"""Server-Sent Events (SSE) transport implementation.

Handles:
- Parsing SSE frames (event:/id:/data:/retry:)
- Automatic reconnection with the newest event id
- Backoff for intermittent connectivity
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass

import httpx

from ..errors import StreamTransportError
from ..urls import with_last_event_id
from .base import StreamConfig, StreamListener

logger = logging.getLogger(__name__)

DEFAULT_EVENT_NAME = "message"


@dataclass
class SSEMessage:
    """One dispatched SSE event."""

    event: str
    data: str
    id: str | None = None


class SSEDecoder:
    """Incremental decoder for the text/event-stream format.

    Feed it lines (without line terminators); it returns a message whenever a
    blank line completes one.
    """

    def __init__(self) -> None:
        self._event = ""
        self._data: list[str] = []
        self._last_event_id: str | None = None
        self.retry: int | None = None

    @property
    def last_event_id(self) -> str | None:
        return self._last_event_id

    def decode(self, line: str) -> SSEMessage | None:
        if not line:
            return self._dispatch()

        if line.startswith(":"):
            return None  # Comment / keep-alive

        field_name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]

        if field_name == "event":
            self._event = value
        elif field_name == "data":
            self._data.append(value)
        elif field_name == "id":
            if "\0" not in value:
                self._last_event_id = value or None
        elif field_name == "retry":
            if value.isdigit():
                self.retry = int(value)
        return None

    def _dispatch(self) -> SSEMessage | None:
        if not self._data:
            self._event = ""
            return None

        message = SSEMessage(
            event=self._event or DEFAULT_EVENT_NAME,
            data="\n".join(self._data),
            id=self._last_event_id,
        )
        self._event = ""
        self._data = []
        return message


class SSEStreamHandle:
    """A live SSE subscription driven by a background task."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        url: str,
        last_event_id: str | None,
        listener: StreamListener,
        config: StreamConfig,
        owns_client: bool = False,
    ):
        self._client = client
        self._url = url
        self._last_event_id = last_event_id
        self._listener = listener
        self.config = config
        self._owns_client = owns_client
        self._closed = False
        self._task: asyncio.Task[None] | None = None
        self._reconnect_delay = config.reconnect_delay

    @property
    def last_event_id(self) -> str | None:
        return self._last_event_id

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        self._task = asyncio.create_task(self._run())

    async def close(self) -> None:
        """Stop the background task and release the connection."""
        if self._closed:
            return
        self._closed = True

        if self._task:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None

        if self._owns_client:
            await self._client.aclose()

    def _request_headers(self) -> dict[str, str]:
        headers = {"Accept": "text/event-stream", "Cache-Control": "no-cache"}
        if self.config.headers:
            headers.update(self.config.headers)
        if self._last_event_id:
            headers["Last-Event-ID"] = self._last_event_id
        return headers

    async def _run(self) -> None:
        attempts = 0
        opened = False

        while not self._closed:
            try:
                url = with_last_event_id(self._url, self._last_event_id)
                async with self._client.stream(
                    "GET", url, headers=self._request_headers()
                ) as response:
                    response.raise_for_status()

                    attempts = 0
                    opened = True
                    self._reconnect_delay = self.config.reconnect_delay  # Reset on success
                    logger.info(f"SSE connected: {url}")
                    self._listener.on_open()

                    await self._read_events(response)

                if self._closed:
                    return
                error = "stream ended by server"

            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                if 400 <= status < 500 and status not in (408, 429):
                    self._fail(f"Server rejected event stream: HTTP {status}")
                    return
                error = f"HTTP {status}"

            except (httpx.UnsupportedProtocol, httpx.InvalidURL) as e:
                self._fail(f"Invalid event stream URL: {e}")
                return

            except httpx.ConnectError as e:
                if self._closed:
                    return
                if not opened:
                    self._fail(f"Connection failed: {str(e) or e.__class__.__name__}")
                    return
                error = str(e) or e.__class__.__name__

            except (httpx.RequestError, httpx.StreamError) as e:
                if self._closed:
                    return
                error = str(e) or e.__class__.__name__

            if not self.config.reconnect:
                logger.info(f"SSE connection ended: {error}")
                self._listener.on_closed()
                return

            attempts += 1
            max_attempts = self.config.max_reconnect_attempts
            if max_attempts is not None and attempts > max_attempts:
                self._fail(f"Giving up after {max_attempts} reconnect attempts: {error}")
                return

            logger.warning(
                f"SSE connection lost: {error}. Reconnecting in {self._reconnect_delay}s..."
            )
            self._listener.on_retrying()
            await asyncio.sleep(self._reconnect_delay)
            self._reconnect_delay = min(
                self._reconnect_delay * self.config.reconnect_backoff,
                self.config.max_reconnect_delay,
            )

    async def _read_events(self, response: httpx.Response) -> None:
        decoder = SSEDecoder()
        async for line in response.aiter_lines():
            if self._closed:
                break

            message = decoder.decode(line.rstrip("\r\n"))
            if decoder.retry is not None:
                self._reconnect_delay = decoder.retry / 1000
                decoder.retry = None
            if message is None:
                continue

            if message.id:
                self._last_event_id = message.id
            self._listener.on_message(message.event, message.data, message.id)

    def _fail(self, message: str) -> None:
        logger.error(f"SSE stream failed: {message}")
        self._listener.on_fatal_error(message)


class SSETransport:
    """Factory for SSE stream handles.

    A shared ``httpx.AsyncClient`` may be injected; otherwise each handle
    owns a private client closed with the handle.
    """

    def __init__(
        self,
        config: StreamConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.config = config or StreamConfig()
        self._client = client
        self._closed = False

    async def aclose(self) -> None:
        """Refuse further opens. An injected client is left to its owner."""
        self._closed = True

    async def open(
        self,
        url: str,
        last_event_id: str | None,
        listener: StreamListener,
    ) -> SSEStreamHandle:
        """Open an SSE subscription."""
        if self._closed:
            raise StreamTransportError("Transport is closed")

        owns_client = self._client is None
        client = self._client or httpx.AsyncClient(
            timeout=httpx.Timeout(self.config.timeout, read=None),  # No read timeout for SSE
        )

        handle = SSEStreamHandle(
            client,
            url,
            last_event_id,
            listener,
            self.config,
            owns_client=owns_client,
        )
        handle.start()
        return handle
