"""Gateway REST type definitions.

Wire models use camelCase aliases; Python code reads snake_case attributes.
"""

from __future__ import annotations

from typing import Any, Generic, TypeVar

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .schema import ParameterDescriptor

T = TypeVar("T")


class GatewayModel(BaseModel):
    """Base for gateway wire models."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RequestError(GatewayModel):
    """An error entry reported by the gateway."""

    code: str
    message: str


# =============================================================================
# Request lifecycle
# =============================================================================


class RequestResponse(GatewayModel):
    """State of an asynchronous request (create response and poll response)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    request_id: str = Field(validation_alias=AliasChoices("requestId", "request_id", "id"))
    status: str
    server_name: str | None = None
    action: str | None = None
    created_at: str | None = None
    completed_at: str | None = None
    target_instance_id: str | None = None
    result_instance_id: str | None = None
    errors: list[RequestError] | None = None
    output: Any = None
    prompt_output: Any = None

    def first_error_message(self) -> str | None:
        """Message of the first reported error, if any."""
        if self.errors:
            return self.errors[0].message
        return None


class ToolContentBlock(GatewayModel):
    """A content block in a tool invocation result."""

    type: str
    text: str | None = None
    mime_type: str | None = None
    data: str | None = None
    uri: str | None = None


class ToolInvocationOutput(GatewayModel):
    """Result of a tool invocation."""

    content: list[ToolContentBlock] = Field(default_factory=list)
    structured_content: Any = None
    is_error: bool = False


class PromptMessageContent(GatewayModel):
    """Content of a prompt message."""

    type: str
    text: str | None = None
    mime_type: str | None = None
    data: str | None = None
    uri: str | None = None


class PromptMessage(GatewayModel):
    """A message in a prompt result."""

    role: str
    content: PromptMessageContent


class PromptOutput(GatewayModel):
    """Result of a prompt invocation."""

    messages: list[PromptMessage] = Field(default_factory=list)
    description: str | None = None


class ResourceContent(GatewayModel):
    """Content of a resource read from an MCP server."""

    uri: str
    mime_type: str | None = None
    text: str | None = None
    blob: str | None = None


class ResourceReadOutput(GatewayModel):
    """Result of reading a resource."""

    contents: list[ResourceContent] = Field(default_factory=list)


class StartInstanceResult(BaseModel):
    """Outcome of starting a server instance.

    Start failures still carry the instance's stderr, so this is returned
    rather than raised.
    """

    instance_id: str | None = None
    stderr_lines: list[str] = Field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.instance_id is not None and self.error is None


# =============================================================================
# Server management
# =============================================================================


class ServerConfiguration(GatewayModel):
    """Launch configuration of an MCP server."""

    command: str
    args: list[str] = Field(default_factory=list)
    env: dict[str, str] = Field(default_factory=dict)


class ServerInfo(GatewayModel):
    """Entry of the server list."""

    name: str
    status: str = "unknown"
    updated_at: str | None = None


class ServerInstance(GatewayModel):
    """A running instance of an MCP server."""

    instance_id: str
    server_name: str
    started_at: str | None = None


class ServerDetails(ServerInfo):
    """Server details, optionally including its instances."""

    instances: list[ServerInstance] = Field(default_factory=list)


class ToolInfo(GatewayModel):
    """A tool exposed by an MCP server."""

    name: str
    title: str | None = None
    description: str | None = None
    input_schema: dict[str, Any] | None = None
    parameters: tuple[ParameterDescriptor, ...] | None = None


class PromptArgument(GatewayModel):
    """An argument accepted by a prompt."""

    name: str
    description: str | None = None
    required: bool = False


class PromptInfo(GatewayModel):
    """A prompt exposed by an MCP server."""

    name: str
    title: str | None = None
    description: str | None = None
    arguments: list[PromptArgument] = Field(default_factory=list)


class ResourceInfo(GatewayModel):
    """A resource exposed by an MCP server."""

    name: str
    uri: str
    title: str | None = None
    description: str | None = None
    mime_type: str | None = None


class MetadataList(GatewayModel, Generic[T]):
    """Tools/prompts/resources list with retrieval metadata."""

    items: list[T] = Field(default_factory=list)
    retrieved_at: str | None = None
    errors: list[RequestError] | None = None


class EventTypeInfo(GatewayModel):
    """An event type advertised by the gateway."""

    name: str
    category: str
    description: str = ""
