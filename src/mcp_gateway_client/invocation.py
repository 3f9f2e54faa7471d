"""Asynchronous request invocation.

Tool calls, prompt calls and resource reads all follow the same protocol:

1. POST /v1/mcp-servers/{server}/requests  - create, returns a request id
2. GET  /v1/mcp-servers/{server}/requests/{id} - poll until terminal

Variants differ only in the request parameters and in how the output is
extracted from the terminal response, so they share one create+poll core.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar

import httpx
from pydantic import ValidationError

from .config import InvocationConfig
from .errors import (
    InvocationCancelledError,
    InvocationError,
    InvocationFailedError,
    InvocationTimeoutError,
    ProtocolViolationError,
    RequestCreationError,
)
from .types import (
    PromptOutput,
    RequestError,
    RequestResponse,
    ResourceReadOutput,
    StartInstanceResult,
    ToolInvocationOutput,
)
from .urls import request_url, requests_url

logger = logging.getLogger(__name__)

T = TypeVar("T")

STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"
NON_TERMINAL_STATUSES = frozenset({"pending", "running"})

DEFAULT_FAILURE_MESSAGE = "Request failed"


class Action(str, Enum):
    """Request actions understood by the gateway."""

    INVOKE_TOOL = "mcp-server.instance.invoke-tool"
    GET_PROMPT = "mcp-server.instance.get-prompt"
    READ_RESOURCE = "mcp-server.instance.read-resource"
    START = "mcp-server.start"
    STOP_INSTANCE = "mcp-server.instance.stop"
    REFRESH_METADATA = "mcp-server.instance.refresh-metadata"


# =============================================================================
# Variants and requests
# =============================================================================


@dataclass(frozen=True)
class InvocationVariant(Generic[T]):
    """What differs between request kinds.

    ``output_fields`` are tried in order on the terminal response; the first
    non-null value is passed to ``extract``.
    """

    action: Action
    extract: Callable[[Any], T]
    output_fields: tuple[str, ...] = ("output",)
    requires_output: bool = True


def _passthrough(value: Any) -> Any:
    return value


TOOL_CALL: InvocationVariant[ToolInvocationOutput] = InvocationVariant(
    Action.INVOKE_TOOL, ToolInvocationOutput.model_validate
)
PROMPT_CALL: InvocationVariant[PromptOutput] = InvocationVariant(
    Action.GET_PROMPT, PromptOutput.model_validate, ("prompt_output", "output")
)
RESOURCE_READ: InvocationVariant[ResourceReadOutput] = InvocationVariant(
    Action.READ_RESOURCE, ResourceReadOutput.model_validate
)
START_SERVER: InvocationVariant[Any] = InvocationVariant(
    Action.START, _passthrough, requires_output=False
)
STOP_INSTANCE: InvocationVariant[Any] = InvocationVariant(
    Action.STOP_INSTANCE, _passthrough, requires_output=False
)
REFRESH_METADATA: InvocationVariant[Any] = InvocationVariant(
    Action.REFRESH_METADATA, _passthrough, requires_output=False
)


@dataclass(frozen=True)
class InvocationRequest(Generic[T]):
    """A request to submit; never modified after submission."""

    variant: InvocationVariant[T]
    instance_id: str | None = None
    parameters: Mapping[str, Any] = field(default_factory=dict)

    def to_body(self) -> dict[str, Any]:
        """Request-creation body."""
        body: dict[str, Any] = {"action": self.variant.action.value}
        if self.instance_id:
            body["instanceId"] = self.instance_id
        body.update(self.parameters)
        return body


def tool_call(
    instance_id: str,
    tool_name: str,
    tool_input: Mapping[str, Any] | None = None,
) -> InvocationRequest[ToolInvocationOutput]:
    parameters: dict[str, Any] = {"toolName": tool_name}
    if tool_input:
        parameters["input"] = dict(tool_input)
    return InvocationRequest(TOOL_CALL, instance_id, parameters)


def prompt_call(
    instance_id: str,
    prompt_name: str,
    arguments: Mapping[str, str | None] | None = None,
) -> InvocationRequest[PromptOutput]:
    parameters: dict[str, Any] = {"promptName": prompt_name}
    if arguments:
        parameters["arguments"] = dict(arguments)
    return InvocationRequest(PROMPT_CALL, instance_id, parameters)


def resource_read(instance_id: str, resource_uri: str) -> InvocationRequest[ResourceReadOutput]:
    return InvocationRequest(RESOURCE_READ, instance_id, {"resourceUri": resource_uri})


@dataclass
class InvocationResult(Generic[T]):
    """Terminal outcome of a request."""

    request_id: str
    status: str
    output: T | None = None
    errors: list[RequestError] = field(default_factory=list)
    response: RequestResponse | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == STATUS_COMPLETED


# =============================================================================
# Client
# =============================================================================


class InvocationClient:
    """Create+poll client for gateway requests.

    Stateless between calls; concurrent ``invoke`` calls are safe.

    Usage:
        client = InvocationClient()
        result = await client.invoke(
            "http://localhost:5000", "acme", tool_call("i-1", "search", {"q": "x"})
        )
        print(result.output.content)
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        config: InvocationConfig | None = None,
        *,
        timeout: float = 30.0,
        sleep: Callable[[float], Awaitable[None]] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or InvocationConfig()
        self._http_client = client
        self._owns_client = client is None
        self._timeout = timeout
        self._sleep = sleep or asyncio.sleep
        self._clock = clock

    async def invoke(
        self,
        gateway_url: str,
        server_name: str,
        request: InvocationRequest[T],
        cancel_event: asyncio.Event | None = None,
    ) -> InvocationResult[T]:
        """Submit a request and wait for its terminal status.

        Args:
            gateway_url: Gateway base URL
            server_name: Server the request is addressed to
            request: What to run
            cancel_event: Set to abandon the wait

        Returns:
            The completed result with its extracted output

        Raises:
            RequestCreationError: The gateway rejected the request
            InvocationFailedError: The request ended in ``failed``
            InvocationTimeoutError: No terminal status within the wait budget
            ProtocolViolationError: Unknown status or unreadable response
            InvocationCancelledError: ``cancel_event`` was set
        """
        created = await self._create(gateway_url, server_name, request)
        logger.debug(
            f"Created request {created.request_id} ({request.variant.action.value}) "
            f"on {server_name}: {created.status}"
        )

        response = await self._poll(gateway_url, server_name, created.request_id, cancel_event)
        return self._to_result(request.variant, response)

    # Convenience wrappers

    async def call_tool(
        self,
        gateway_url: str,
        server_name: str,
        instance_id: str,
        tool_name: str,
        tool_input: Mapping[str, Any] | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> ToolInvocationOutput:
        """Invoke a tool on a running instance."""
        request = tool_call(instance_id, tool_name, tool_input)
        result = await self.invoke(gateway_url, server_name, request, cancel_event)
        return result.output  # type: ignore[return-value]

    async def get_prompt(
        self,
        gateway_url: str,
        server_name: str,
        instance_id: str,
        prompt_name: str,
        arguments: Mapping[str, str | None] | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> PromptOutput:
        """Render a prompt on a running instance."""
        request = prompt_call(instance_id, prompt_name, arguments)
        result = await self.invoke(gateway_url, server_name, request, cancel_event)
        return result.output  # type: ignore[return-value]

    async def read_resource(
        self,
        gateway_url: str,
        server_name: str,
        instance_id: str,
        resource_uri: str,
        cancel_event: asyncio.Event | None = None,
    ) -> ResourceReadOutput:
        """Read a resource from a running instance."""
        request = resource_read(instance_id, resource_uri)
        result = await self.invoke(gateway_url, server_name, request, cancel_event)
        return result.output  # type: ignore[return-value]

    async def start_server(
        self,
        gateway_url: str,
        server_name: str,
        cancel_event: asyncio.Event | None = None,
    ) -> StartInstanceResult:
        """Start a new instance of a server.

        A failed start is returned, not raised, so its stderr is available.
        """
        try:
            result = await self.invoke(
                gateway_url, server_name, InvocationRequest(START_SERVER), cancel_event
            )
        except InvocationFailedError as e:
            response = e.result.response if e.result else None
            return StartInstanceResult(stderr_lines=_stderr_lines(response), error=str(e))

        output = result.output if isinstance(result.output, Mapping) else {}
        instance_id = output.get("instanceId")
        if not instance_id:
            return StartInstanceResult(
                stderr_lines=_stderr_lines(result.response), error="No instance ID returned"
            )
        return StartInstanceResult(
            instance_id=instance_id, stderr_lines=_stderr_lines(result.response)
        )

    async def stop_instance(
        self,
        gateway_url: str,
        server_name: str,
        instance_id: str,
        cancel_event: asyncio.Event | None = None,
    ) -> None:
        """Stop a running instance."""
        await self.invoke(
            gateway_url,
            server_name,
            InvocationRequest(STOP_INSTANCE, instance_id),
            cancel_event,
        )

    async def refresh_metadata(
        self,
        gateway_url: str,
        server_name: str,
        instance_id: str,
        cancel_event: asyncio.Event | None = None,
    ) -> None:
        """Ask an instance to re-read its tools, prompts and resources."""
        await self.invoke(
            gateway_url,
            server_name,
            InvocationRequest(REFRESH_METADATA, instance_id),
            cancel_event,
        )

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    # Protocol steps

    def _client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
        return self._http_client

    async def _create(
        self,
        gateway_url: str,
        server_name: str,
        request: InvocationRequest[Any],
    ) -> RequestResponse:
        url = requests_url(gateway_url, server_name)
        try:
            response = await self._client().post(url, json=request.to_body())
        except httpx.RequestError as e:
            raise RequestCreationError(f"Request failed: {e}") from e

        if not response.is_success:
            logger.warning(
                f"Request creation failed with status {response.status_code}: {response.text}"
            )
            raise RequestCreationError(
                f"Request failed: {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
                body=_json_or_text(response),
            )

        return _parse_response(response)

    async def _poll(
        self,
        gateway_url: str,
        server_name: str,
        request_id: str,
        cancel_event: asyncio.Event | None,
    ) -> RequestResponse:
        url = request_url(gateway_url, server_name, request_id)
        started = self._clock()

        while True:
            _check_cancelled(cancel_event, request_id)

            if self._clock() - started > self.config.max_wait:
                raise InvocationTimeoutError(
                    f"Request timed out after {self.config.max_wait}s", request_id
                )

            response = await self._fetch_status(url, request_id)
            status = response.status

            if status in (STATUS_COMPLETED, STATUS_FAILED):
                logger.debug(f"Request {request_id} finished: {status}")
                return response

            if status not in NON_TERMINAL_STATUSES:
                raise ProtocolViolationError(f"Unknown status: {status}", request_id)

            _check_cancelled(cancel_event, request_id)
            await self._delay(cancel_event, request_id)

    async def _fetch_status(self, url: str, request_id: str) -> RequestResponse:
        try:
            response = await self._client().get(url)
        except httpx.RequestError as e:
            raise InvocationError(f"Polling request failed: {e}", request_id) from e

        if not response.is_success:
            logger.warning(f"Polling {request_id} failed with status {response.status_code}")
            raise InvocationError(
                f"Polling request failed: {response.status_code} {response.reason_phrase}",
                request_id,
            )
        return _parse_response(response)

    async def _delay(self, cancel_event: asyncio.Event | None, request_id: str) -> None:
        if cancel_event is None:
            await self._sleep(self.config.poll_interval)
            return

        sleeper = asyncio.ensure_future(self._sleep(self.config.poll_interval))
        waiter = asyncio.ensure_future(cancel_event.wait())
        try:
            await asyncio.wait({sleeper, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (sleeper, waiter):
                task.cancel()
            await asyncio.gather(sleeper, waiter, return_exceptions=True)
        _check_cancelled(cancel_event, request_id)

    def _to_result(
        self, variant: InvocationVariant[T], response: RequestResponse
    ) -> InvocationResult[T]:
        errors = list(response.errors or [])

        if response.status == STATUS_FAILED:
            message = response.first_error_message() or DEFAULT_FAILURE_MESSAGE
            result: InvocationResult[Any] = InvocationResult(
                request_id=response.request_id,
                status=response.status,
                output=response.output,
                errors=errors,
                response=response,
            )
            raise InvocationFailedError(message, response.request_id, errors, result)

        raw = next(
            (getattr(response, name) for name in variant.output_fields
             if getattr(response, name, None) is not None),
            None,
        )
        if raw is None and variant.requires_output:
            raise ProtocolViolationError("No output in response", response.request_id)

        try:
            output = variant.extract(raw) if raw is not None else None
        except ValidationError as e:
            raise ProtocolViolationError(
                f"Failed to parse output: {e}", response.request_id
            ) from e

        return InvocationResult(
            request_id=response.request_id,
            status=response.status,
            output=output,
            errors=errors,
            response=response,
        )

    async def __aenter__(self) -> InvocationClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()


def _check_cancelled(cancel_event: asyncio.Event | None, request_id: str) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise InvocationCancelledError("Request wait cancelled", request_id)


def _parse_response(response: httpx.Response) -> RequestResponse:
    try:
        return RequestResponse.model_validate(response.json())
    except (ValueError, ValidationError) as e:
        raise ProtocolViolationError(f"Invalid response from server: {e}") from e


def _json_or_text(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


def _stderr_lines(response: RequestResponse | None) -> list[str]:
    if response is None or not isinstance(response.output, Mapping):
        return []
    stderr = response.output.get("stderr")
    if not isinstance(stderr, list):
        return []
    return [line if isinstance(line, str) else "" for line in stderr]
