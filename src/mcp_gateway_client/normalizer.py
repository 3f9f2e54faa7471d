"""Event normalization.

Maps wire event records from the push stream to canonical ``McpServerEvent``
values. Pure: no I/O, no mutable state.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError

from .errors import EventMappingError
from .event_types import DEFAULT_REGISTRY, EventTypeRegistry
from .events import EventConfiguration, EventError, McpServerEvent, WireEvent
from .targets import split_target


class EventNormalizer:
    """Converts wire records into canonical events.

    Usage:
        normalizer = EventNormalizer()
        event = normalizer.normalize(WireEvent(eventType=..., target=..., timestamp=...))
    """

    def __init__(self, registry: EventTypeRegistry = DEFAULT_REGISTRY):
        self._registry = registry

    @property
    def registry(self) -> EventTypeRegistry:
        return self._registry

    def normalize(self, record: WireEvent) -> McpServerEvent:
        """Map one wire record to a canonical event.

        Raises:
            EventMappingError: If the event type, target or timestamp is invalid
        """
        kind = self._registry.try_resolve(record.event_type)
        if kind is None:
            raise EventMappingError(f"Unknown event type: {record.event_type!r}")

        try:
            server_name, instance_id = split_target(record.target)
        except ValueError as e:
            raise EventMappingError(str(e)) from e

        timestamp = parse_timestamp(record.timestamp)
        payload = record.payload or {}

        try:
            return McpServerEvent(
                server_name=server_name,
                event_type=kind,
                timestamp=timestamp,
                errors=_errors(payload.get("errors")),
                instance_id=instance_id,
                request_id=record.request_id,
                old_configuration=_configuration(payload.get("oldConfiguration")),
                configuration=_configuration(
                    payload.get("configuration") or payload.get("newConfiguration")
                ),
            )
        except ValidationError as e:
            raise EventMappingError(f"Invalid payload for {record.event_type}: {e}") from e

    def normalize_json(
        self,
        data: str,
        event_name: str | None = None,
        event_id: str | None = None,
    ) -> McpServerEvent:
        """Decode an SSE data body and normalize it.

        A known SSE event name is the event type. Generic names ("message")
        defer to the body's ``eventType`` field when it has one.

        Raises:
            EventMappingError: If the body is not a valid wire record
        """
        try:
            body = json.loads(data)
        except (ValueError, RecursionError) as e:
            raise EventMappingError(f"Event body is not valid JSON: {e}") from e

        if not isinstance(body, dict):
            raise EventMappingError("Event body must be a JSON object")

        if event_name and (event_name in self._registry or "eventType" not in body):
            body["eventType"] = event_name
        if event_id and "id" not in body:
            body["id"] = event_id

        try:
            record = WireEvent.model_validate(body)
        except ValidationError as e:
            raise EventMappingError(f"Malformed event record: {e}") from e

        return self.normalize(record)


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 instant; naive values are taken as UTC.

    Raises:
        EventMappingError: If the value is not an ISO-8601 timestamp
    """
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (ValueError, AttributeError) as e:
        raise EventMappingError(f"Invalid timestamp: {value!r}") from e

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _errors(value: Any) -> tuple[EventError, ...] | None:
    if not isinstance(value, list):
        return None
    return tuple(EventError.model_validate(item) for item in value)


def _configuration(value: Any) -> EventConfiguration | None:
    if not isinstance(value, Mapping):
        return None
    return EventConfiguration.model_validate(value)
