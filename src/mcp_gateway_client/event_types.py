"""MCP Server Event Taxonomy.

Defines the closed set of lifecycle events the gateway publishes and the
bidirectional mapping between them and their dot-separated wire names.

Events are categorized by domain:
- mcp-server.instance.*        - Instance start/stop lifecycle
- mcp-server.configuration.*   - Configuration changes
- mcp-server.metadata.*        - Tools/prompts/resources retrieval
- mcp-server.tool-invocation.* - Tool invocation progress
- mcp-server.created/deleted   - Server registration
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from enum import Enum
from types import MappingProxyType


class EventKind(str, Enum):
    """Canonical MCP server event kinds."""

    STARTING = "starting"
    STARTED = "started"
    START_FAILED = "start_failed"
    STOPPING = "stopping"
    STOPPED = "stopped"
    STOP_FAILED = "stop_failed"
    CONFIGURATION_CREATED = "configuration_created"
    CONFIGURATION_UPDATED = "configuration_updated"
    CONFIGURATION_DELETED = "configuration_deleted"
    TOOLS_RETRIEVING = "tools_retrieving"
    TOOLS_RETRIEVED = "tools_retrieved"
    TOOLS_RETRIEVAL_FAILED = "tools_retrieval_failed"
    PROMPTS_RETRIEVING = "prompts_retrieving"
    PROMPTS_RETRIEVED = "prompts_retrieved"
    PROMPTS_RETRIEVAL_FAILED = "prompts_retrieval_failed"
    RESOURCES_RETRIEVING = "resources_retrieving"
    RESOURCES_RETRIEVED = "resources_retrieved"
    RESOURCES_RETRIEVAL_FAILED = "resources_retrieval_failed"
    TOOL_INVOCATION_ACCEPTED = "tool_invocation_accepted"
    TOOL_INVOKING = "tool_invoking"
    TOOL_INVOKED = "tool_invoked"
    TOOL_INVOCATION_FAILED = "tool_invocation_failed"
    SERVER_CREATED = "server_created"
    SERVER_DELETED = "server_deleted"


class EventCategory(str, Enum):
    """Event categories for filtering and routing."""

    INSTANCE = "instance"
    CONFIGURATION = "configuration"
    METADATA = "metadata"
    TOOL_INVOCATION = "tool-invocation"
    SERVER = "server"


# ============================================================================
# Canonical wire names
# ============================================================================

WIRE_PREFIX = "mcp-server"

# Instance lifecycle
INSTANCE_STARTING = "mcp-server.instance.starting"
INSTANCE_STARTED = "mcp-server.instance.started"
INSTANCE_START_FAILED = "mcp-server.instance.start-failed"
INSTANCE_STOPPING = "mcp-server.instance.stopping"
INSTANCE_STOPPED = "mcp-server.instance.stopped"
INSTANCE_STOP_FAILED = "mcp-server.instance.stop-failed"

# Configuration
CONFIGURATION_CREATED = "mcp-server.configuration.created"
CONFIGURATION_UPDATED = "mcp-server.configuration.updated"
CONFIGURATION_DELETED = "mcp-server.configuration.deleted"

# Metadata retrieval
TOOLS_RETRIEVING = "mcp-server.metadata.tools.retrieving"
TOOLS_RETRIEVED = "mcp-server.metadata.tools.retrieved"
TOOLS_RETRIEVAL_FAILED = "mcp-server.metadata.tools.retrieval-failed"
PROMPTS_RETRIEVING = "mcp-server.metadata.prompts.retrieving"
PROMPTS_RETRIEVED = "mcp-server.metadata.prompts.retrieved"
PROMPTS_RETRIEVAL_FAILED = "mcp-server.metadata.prompts.retrieval-failed"
RESOURCES_RETRIEVING = "mcp-server.metadata.resources.retrieving"
RESOURCES_RETRIEVED = "mcp-server.metadata.resources.retrieved"
RESOURCES_RETRIEVAL_FAILED = "mcp-server.metadata.resources.retrieval-failed"

# Tool invocation
TOOL_INVOCATION_ACCEPTED = "mcp-server.tool-invocation.accepted"
TOOL_INVOKING = "mcp-server.tool-invocation.invoking"
TOOL_INVOKED = "mcp-server.tool-invocation.invoked"
TOOL_INVOCATION_FAILED = "mcp-server.tool-invocation.failed"

# Server registration
SERVER_CREATED = "mcp-server.created"
SERVER_DELETED = "mcp-server.deleted"


WIRE_NAMES: tuple[tuple[str, EventKind], ...] = (
    (INSTANCE_STARTING, EventKind.STARTING),
    (INSTANCE_STARTED, EventKind.STARTED),
    (INSTANCE_START_FAILED, EventKind.START_FAILED),
    (INSTANCE_STOPPING, EventKind.STOPPING),
    (INSTANCE_STOPPED, EventKind.STOPPED),
    (INSTANCE_STOP_FAILED, EventKind.STOP_FAILED),
    (CONFIGURATION_CREATED, EventKind.CONFIGURATION_CREATED),
    (CONFIGURATION_UPDATED, EventKind.CONFIGURATION_UPDATED),
    (CONFIGURATION_DELETED, EventKind.CONFIGURATION_DELETED),
    (TOOLS_RETRIEVING, EventKind.TOOLS_RETRIEVING),
    (TOOLS_RETRIEVED, EventKind.TOOLS_RETRIEVED),
    (TOOLS_RETRIEVAL_FAILED, EventKind.TOOLS_RETRIEVAL_FAILED),
    (PROMPTS_RETRIEVING, EventKind.PROMPTS_RETRIEVING),
    (PROMPTS_RETRIEVED, EventKind.PROMPTS_RETRIEVED),
    (PROMPTS_RETRIEVAL_FAILED, EventKind.PROMPTS_RETRIEVAL_FAILED),
    (RESOURCES_RETRIEVING, EventKind.RESOURCES_RETRIEVING),
    (RESOURCES_RETRIEVED, EventKind.RESOURCES_RETRIEVED),
    (RESOURCES_RETRIEVAL_FAILED, EventKind.RESOURCES_RETRIEVAL_FAILED),
    (TOOL_INVOCATION_ACCEPTED, EventKind.TOOL_INVOCATION_ACCEPTED),
    (TOOL_INVOKING, EventKind.TOOL_INVOKING),
    (TOOL_INVOKED, EventKind.TOOL_INVOKED),
    (TOOL_INVOCATION_FAILED, EventKind.TOOL_INVOCATION_FAILED),
    (SERVER_CREATED, EventKind.SERVER_CREATED),
    (SERVER_DELETED, EventKind.SERVER_DELETED),
)


# ============================================================================
# Registry
# ============================================================================


class EventTypeRegistry:
    """Immutable bidirectional lookup between wire names and event kinds.

    Build once and share by reference; lookups never mutate state.

    Usage:
        kind = DEFAULT_REGISTRY.resolve("mcp-server.instance.started")
        name = DEFAULT_REGISTRY.name_of(EventKind.STARTED)
    """

    __slots__ = ("_by_name", "_by_kind")

    def __init__(self, entries: Iterable[tuple[str, EventKind]]):
        by_name: dict[str, EventKind] = {}
        by_kind: dict[EventKind, str] = {}
        for name, kind in entries:
            if name in by_name:
                raise ValueError(f"Duplicate wire name: {name}")
            if kind in by_kind:
                raise ValueError(f"Event kind mapped twice: {kind.name}")
            by_name[name] = kind
            by_kind[kind] = name
        self._by_name: Mapping[str, EventKind] = MappingProxyType(by_name)
        self._by_kind: Mapping[EventKind, str] = MappingProxyType(by_kind)

    def __len__(self) -> int:
        return len(self._by_name)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def resolve(self, name: str) -> EventKind:
        """Map a wire name to its event kind.

        Raises:
            KeyError: If the name is not part of the vocabulary
        """
        try:
            return self._by_name[name]
        except KeyError:
            raise KeyError(f"Unknown event type: {name}") from None

    def try_resolve(self, name: str) -> EventKind | None:
        """Map a wire name to its event kind, or None if unknown."""
        return self._by_name.get(name)

    def name_of(self, kind: EventKind) -> str:
        """Map an event kind to its wire name."""
        try:
            return self._by_kind[kind]
        except KeyError:
            raise KeyError(f"Unmapped event kind: {kind}") from None

    def all_names(self) -> list[str]:
        """All known wire names, in registration order."""
        return list(self._by_name)

    def category_of(self, kind: EventKind) -> EventCategory:
        """Get the category for an event kind."""
        segments = self.name_of(kind).split(".")
        if len(segments) == 2:
            return EventCategory.SERVER
        return EventCategory(segments[1])


DEFAULT_REGISTRY = EventTypeRegistry(WIRE_NAMES)


def filter_names(
    names: Iterable[str],
    categories: Iterable[EventCategory] | None = None,
    registry: EventTypeRegistry = DEFAULT_REGISTRY,
) -> list[str]:
    """Filter wire names by category, dropping names outside the vocabulary."""
    wanted = set(categories) if categories is not None else None
    result = []
    for name in names:
        kind = registry.try_resolve(name)
        if kind is None:
            continue
        if wanted is None or registry.category_of(kind) in wanted:
            result.append(name)
    return result
