"""MCP gateway client.

Consumes an MCP gateway's event stream and drives its asynchronous
request API (tool calls, prompts, resource reads, instance lifecycle).
"""

from .config import GatewayConfig, InvocationConfig
from .connector import ConnectionState, EventStreamConnector
from .errors import (
    EventMappingError,
    GatewayError,
    GatewayRequestError,
    InvocationCancelledError,
    InvocationError,
    InvocationFailedError,
    InvocationTimeoutError,
    ProtocolViolationError,
    RequestCreationError,
    StreamTransportError,
)
from .event_types import DEFAULT_REGISTRY, EventCategory, EventKind, EventTypeRegistry
from .events import EventConfiguration, EventError, McpServerEvent, WireEvent
from .gateway import GatewayClient, create_client
from .invocation import (
    InvocationClient,
    InvocationRequest,
    InvocationResult,
    InvocationVariant,
    prompt_call,
    resource_read,
    tool_call,
)
from .logs import InstanceLogEntry, InstanceLogStream
from .normalizer import EventNormalizer
from .schema import ParameterDescriptor, parse_input_schema
from .targets import build_instance_target, build_server_target, parse_target

__version__ = "0.1.0"

__all__ = [
    # Clients
    "GatewayClient",
    "create_client",
    "EventStreamConnector",
    "ConnectionState",
    "InvocationClient",
    "InvocationRequest",
    "InvocationResult",
    "InvocationVariant",
    "tool_call",
    "prompt_call",
    "resource_read",
    "InstanceLogStream",
    "InstanceLogEntry",
    # Events
    "EventKind",
    "EventCategory",
    "EventTypeRegistry",
    "DEFAULT_REGISTRY",
    "EventNormalizer",
    "McpServerEvent",
    "WireEvent",
    "EventError",
    "EventConfiguration",
    # Schema
    "ParameterDescriptor",
    "parse_input_schema",
    # Targets
    "build_server_target",
    "build_instance_target",
    "parse_target",
    # Config
    "GatewayConfig",
    "InvocationConfig",
    # Errors
    "GatewayError",
    "StreamTransportError",
    "EventMappingError",
    "GatewayRequestError",
    "InvocationError",
    "RequestCreationError",
    "InvocationFailedError",
    "InvocationTimeoutError",
    "ProtocolViolationError",
    "InvocationCancelledError",
]
