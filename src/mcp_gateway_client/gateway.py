"""Gateway client - REST management endpoints plus the two protocol clients.

One ``httpx.AsyncClient`` is shared by the management calls and the
create+poll invocation client; the event and instance log streams each get
their own long-lived connection through the SSE transport.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import httpx
from pydantic import ValidationError

from .config import GatewayConfig
from .connector import ErrorCallback, EventCallback, EventStreamConnector, StateCallback
from .errors import GatewayRequestError
from .event_types import DEFAULT_REGISTRY
from .invocation import InvocationClient
from .logs import InstanceLogStream, LogEntryCallback
from .normalizer import EventNormalizer
from .schema import parse_input_schema
from .transport.base import StreamTransport
from .transport.sse import SSETransport
from .types import (
    EventTypeInfo,
    MetadataList,
    PromptInfo,
    RequestError,
    ResourceInfo,
    ServerConfiguration,
    ServerDetails,
    ServerInfo,
    ServerInstance,
    ToolInfo,
)
from .urls import EVENT_TYPES_PATH, SERVERS_PATH, event_stream_url, server_path

logger = logging.getLogger(__name__)

CONNECTION_TEST_TIMEOUT = 5.0


@dataclass
class ServerAPI:
    """MCP server management operations."""

    _client: GatewayClient

    async def list(self) -> list[ServerInfo]:
        """List all servers."""
        response = await self._client._fetch("GET", SERVERS_PATH)
        return [ServerInfo.model_validate(s) for s in response.json()]

    async def get(self, name: str, include_instances: bool = True) -> ServerDetails:
        """Get a server, optionally with its running instances."""
        params = {"include": "instances"} if include_instances else None
        response = await self._client._fetch("GET", server_path(name), params=params)
        return ServerDetails.model_validate(response.json())

    async def create(
        self,
        name: str,
        command: str,
        args: list[str] | None = None,
        env: Mapping[str, str] | None = None,
    ) -> None:
        """Register a new server."""
        body = {
            "name": name,
            "configuration": _configuration_body(command, args, env),
        }
        await self._client._fetch("POST", SERVERS_PATH, json=body)

    async def delete(self, name: str) -> None:
        """Delete a server."""
        await self._client._fetch("DELETE", server_path(name))

    async def get_configuration(self, name: str) -> ServerConfiguration:
        response = await self._client._fetch("GET", server_path(name, "configuration"))
        return ServerConfiguration.model_validate(response.json())

    async def update_configuration(
        self,
        name: str,
        command: str,
        args: list[str] | None = None,
        env: Mapping[str, str] | None = None,
    ) -> None:
        await self._client._fetch(
            "PUT",
            server_path(name, "configuration"),
            json=_configuration_body(command, args, env),
        )

    async def instances(self, name: str) -> list[ServerInstance]:
        """List running instances of a server."""
        response = await self._client._fetch("GET", server_path(name, "instances"))
        items = response.json().get("items") or []
        return [ServerInstance.model_validate(i) for i in items]

    async def tools(self, name: str) -> MetadataList[ToolInfo]:
        """List tools, with each input schema parsed into parameters."""
        response = await self._client._fetch("GET", server_path(name, "tools"))
        tools = MetadataList[ToolInfo].model_validate(response.json())
        tools.items = [
            tool.model_copy(update={"parameters": parse_input_schema(tool.input_schema)})
            for tool in tools.items
        ]
        return tools

    async def prompts(self, name: str) -> MetadataList[PromptInfo]:
        response = await self._client._fetch("GET", server_path(name, "prompts"))
        return MetadataList[PromptInfo].model_validate(response.json())

    async def resources(self, name: str) -> MetadataList[ResourceInfo]:
        response = await self._client._fetch("GET", server_path(name, "resources"))
        return MetadataList[ResourceInfo].model_validate(response.json())

    def log_stream(
        self,
        *,
        transport: StreamTransport | None = None,
        on_entry: LogEntryCallback | None = None,
        on_state_changed: StateCallback | None = None,
        on_error: ErrorCallback | None = None,
    ) -> InstanceLogStream:
        """Create a follower for instance stderr logs.

        Usage:
            logs = client.server.log_stream(on_entry=print)
            await logs.start(client.base_url, "acme", instance_id)
        """
        return InstanceLogStream(
            transport or SSETransport(self._client.config.stream),
            on_entry=on_entry,
            on_state_changed=on_state_changed,
            on_error=on_error,
        )


@dataclass
class EventAPI:
    """Event stream operations."""

    _client: GatewayClient

    @property
    def stream_url(self) -> str:
        return event_stream_url(self._client.base_url)

    async def types(self) -> list[EventTypeInfo]:
        """Event types advertised by the gateway."""
        response = await self._client._fetch("GET", EVENT_TYPES_PATH)
        items = response.json().get("eventTypes") or []
        return [EventTypeInfo.model_validate(t) for t in items]

    def connector(
        self,
        *,
        transport: StreamTransport | None = None,
        on_event: EventCallback | None = None,
        on_state_changed: StateCallback | None = None,
        on_error: ErrorCallback | None = None,
    ) -> EventStreamConnector:
        """Create a connector for this gateway's stream.

        Usage:
            connector = client.event.connector(on_event=print)
            await connector.start(client.event.stream_url)
        """
        return EventStreamConnector(
            transport or SSETransport(self._client.config.stream),
            EventNormalizer(DEFAULT_REGISTRY),
            on_event=on_event,
            on_state_changed=on_state_changed,
            on_error=on_error,
        )


class GatewayClient:
    """Client for one gateway.

    Usage:
        async with create_client("http://localhost:5000") as client:
            servers = await client.server.list()
            output = await client.requests.call_tool(
                client.base_url, "acme", "i-1", "search", {"q": "x"}
            )
    """

    def __init__(
        self,
        base_url: str | None = None,
        config: GatewayConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.config = config or GatewayConfig()
        self.base_url = (base_url or self.config.base_url).rstrip("/")
        self._http_client = http_client
        self._owns_client = http_client is None
        self._requests: InvocationClient | None = None

    @property
    def server(self) -> ServerAPI:
        """Server management operations."""
        return ServerAPI(_client=self)

    @property
    def event(self) -> EventAPI:
        """Event stream operations."""
        return EventAPI(_client=self)

    @property
    def requests(self) -> InvocationClient:
        """Create+poll client sharing this client's HTTP connection pool."""
        if self._requests is None:
            self._requests = InvocationClient(
                self._client(), self.config.invocation, timeout=self.config.timeout
            )
        return self._requests

    async def test_connection(self) -> tuple[bool, str | None]:
        """Probe the event stream endpoint.

        Returns:
            ``(True, None)`` on success, otherwise ``(False, reason)``
        """
        url = event_stream_url(self.base_url)
        try:
            async with self._client().stream(
                "GET",
                url,
                headers={"Accept": "text/event-stream"},
                timeout=CONNECTION_TEST_TIMEOUT,
            ) as response:
                if response.is_success:
                    return True, None
                return False, f"Server returned {response.status_code} {response.reason_phrase}"
        except httpx.TimeoutException:
            return False, "Connection timed out"
        except httpx.HTTPError as e:
            logger.warning(f"Connection test to {url} failed: {e}")
            return False, str(e) or e.__class__.__name__

    def _client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.config.timeout)
        return self._http_client

    async def _fetch(
        self,
        method: str,
        path: str,
        json: dict[str, Any] | None = None,
        params: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Execute a management request; non-2xx raises GatewayRequestError."""
        url = self.base_url + path
        try:
            response = await self._client().request(method, url, json=json, params=params)
        except httpx.ConnectError as e:
            raise GatewayRequestError(f"Cannot connect to gateway at {self.base_url}") from e
        except httpx.RequestError as e:
            raise GatewayRequestError(f"{method} {path} failed: {e}") from e

        if not response.is_success:
            logger.warning(
                f"{method} {path} failed with status {response.status_code}: {response.text}"
            )
            raise GatewayRequestError(
                f"{method} {path} failed: {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
                errors=_decode_errors(response),
            )
        return response

    async def close(self) -> None:
        """Close the client."""
        if self._owns_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None
            self._requests = None

    async def __aenter__(self) -> GatewayClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()


def create_client(base_url: str | None = None, config: GatewayConfig | None = None) -> GatewayClient:
    """Create a gateway client.

    Args:
        base_url: Gateway URL (default: ``MCP_GATEWAY_URL`` or http://localhost:5000)
        config: Explicit configuration; read from the environment when omitted

    Returns:
        GatewayClient for the gateway
    """
    config = config or GatewayConfig.from_env(base_url)
    return GatewayClient(base_url, config)


def _configuration_body(
    command: str,
    args: list[str] | None,
    env: Mapping[str, str] | None,
) -> dict[str, Any]:
    return {"command": command, "args": list(args or []), "env": dict(env or {})}


def _decode_errors(response: httpx.Response) -> list[RequestError]:
    try:
        body = response.json()
    except ValueError:
        return []
    if not isinstance(body, dict) or not isinstance(body.get("errors"), list):
        return []
    try:
        return [RequestError.model_validate(e) for e in body["errors"]]
    except ValidationError:
        return []
