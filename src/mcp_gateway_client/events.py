"""Event data models.

``WireEvent`` mirrors the JSON body the gateway pushes on the event stream
(target + payload envelope). ``McpServerEvent`` is the canonical, validated
form handed to stream consumers.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .event_types import EventKind

# =============================================================================
# Canonical event
# =============================================================================


class EventError(BaseModel):
    """An error reported in an event."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str


class EventConfiguration(BaseModel):
    """Server configuration captured in an event."""

    model_config = ConfigDict(frozen=True)

    command: str
    args: tuple[str, ...] = ()
    env: dict[str, str] = Field(default_factory=dict)


class McpServerEvent(BaseModel):
    """A lifecycle event for an MCP server or one of its instances."""

    model_config = ConfigDict(frozen=True)

    server_name: str
    event_type: EventKind
    timestamp: datetime
    errors: tuple[EventError, ...] | None = None
    instance_id: str | None = None
    request_id: str | None = None
    old_configuration: EventConfiguration | None = None
    configuration: EventConfiguration | None = None

    def is_instance_event(self) -> bool:
        """Check if the event targets a specific instance."""
        return self.instance_id is not None

    def has_errors(self) -> bool:
        """Check if the event carries any errors."""
        return bool(self.errors)


# =============================================================================
# Wire record
# =============================================================================


class WireEvent(BaseModel):
    """Event record as received from the gateway's push stream."""

    model_config = ConfigDict(populate_by_name=True)

    event_type: str = Field(alias="eventType")
    target: str = ""
    timestamp: str
    payload: dict[str, Any] | None = None
    request_id: str | None = Field(default=None, alias="requestId")
    id: str | None = None
