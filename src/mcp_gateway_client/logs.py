"""Instance log streaming.

Follows the stderr output of one running server instance. Entries arrive as
``instance-log`` SSE messages; the stream resumes after the newest line number
seen when restarted with ``last_line_number``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError, field_validator

from .connector import ErrorCallback, StateCallback, StreamConsumer
from .errors import EventMappingError
from .normalizer import parse_timestamp
from .transport.base import StreamTransport
from .types import GatewayModel
from .urls import instance_log_url

logger = logging.getLogger(__name__)

LOG_EVENT_NAME = "instance-log"


class InstanceLogEntry(GatewayModel):
    """One stderr line from a server instance."""

    line_number: int
    timestamp: datetime
    text: str = ""

    @field_validator("timestamp", mode="before")
    @classmethod
    def lenient_timestamp(cls, value: Any) -> Any:
        # Unparseable timestamps are replaced with the receive time
        if isinstance(value, datetime):
            return value
        try:
            return parse_timestamp(value)
        except EventMappingError:
            return datetime.now(UTC)


LogEntryCallback = Callable[[InstanceLogEntry], None]


class InstanceLogStream(StreamConsumer):
    """Consumer of one instance's stderr log stream.

    Usage:
        logs = InstanceLogStream(on_entry=lambda entry: print(entry.text))
        await logs.start(base_url, "acme", instance_id)
        ...
        await logs.start(base_url, "acme", instance_id, logs.last_line_number)
    """

    stream_name = "Instance log stream"

    def __init__(
        self,
        transport: StreamTransport | None = None,
        *,
        on_entry: LogEntryCallback | None = None,
        on_state_changed: StateCallback | None = None,
        on_error: ErrorCallback | None = None,
    ):
        super().__init__(transport, on_state_changed=on_state_changed, on_error=on_error)
        self._on_entry = on_entry
        self._last_line_number = 0

    @property
    def last_line_number(self) -> int:
        """Line number of the newest entry received."""
        return self._last_line_number

    async def start(
        self,
        gateway_url: str,
        server_name: str,
        instance_id: str,
        after_line: int = 0,
    ) -> None:
        """Follow an instance's log, replacing any existing subscription.

        Args:
            gateway_url: Gateway base URL
            server_name: Server the instance belongs to
            instance_id: Instance to follow
            after_line: Skip lines up to and including this number
        """
        await self.stop()

        self._last_line_number = after_line
        url = instance_log_url(gateway_url, server_name, instance_id, after_line)
        logger.info(f"Starting instance log stream: {url}")
        await self._open(url, None)

    def _handle_message(self, name: str, data: str, event_id: str | None) -> None:
        if name != LOG_EVENT_NAME:
            logger.debug(f"Ignoring {name!r} message on instance log stream")
            return

        try:
            entry = InstanceLogEntry.model_validate_json(data)
        except ValidationError as e:
            logger.warning(f"Failed to parse instance log entry: {data!r} ({e})")
            return

        self._last_line_number = max(self._last_line_number, entry.line_number)
        self._notify(self._on_entry, entry)
