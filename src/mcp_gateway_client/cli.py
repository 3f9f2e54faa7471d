"""MCP gateway command line.

Usage:
    mcp-gateway health                          # Test the connection
    mcp-gateway events                          # Tail the event stream
    mcp-gateway events --last-event-id 42       # Replay after event 42
    mcp-gateway event-types                     # List event types
    mcp-gateway logs <server> <instance>        # Follow instance stderr

    mcp-gateway servers                         # List servers
    mcp-gateway tools <server>                  # List tools with parameters
    mcp-gateway call-tool <server> <instance> <tool> --input '{"q": "x"}'
    mcp-gateway get-prompt <server> <instance> <prompt> -a topic=rust
    mcp-gateway read-resource <server> <instance> <uri>

    mcp-gateway schema schema.json              # Parse a tool input schema
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sys
from collections.abc import Awaitable, Callable, Iterable
from datetime import datetime
from typing import Any, TypeVar

import click

from .config import ENV_LOG_LEVEL, GatewayConfig
from .connector import ConnectionState
from .errors import GatewayError
from .event_types import DEFAULT_REGISTRY
from .events import McpServerEvent
from .gateway import GatewayClient
from .schema import ParameterDescriptor, parse_input_schema

T = TypeVar("T")

FORMAT_TABLE = "table"
FORMAT_JSON = "json"

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


def format_datetime(dt: datetime | str | None) -> str:
    """Format datetime for display."""
    if dt is None:
        return "N/A"
    if isinstance(dt, str):
        try:
            dt = datetime.fromisoformat(dt.replace("Z", "+00:00"))
        except ValueError:
            return dt
    return dt.strftime("%Y-%m-%d %H:%M:%S")


def truncate(text: str | None, max_len: int = 50) -> str:
    """Truncate text for display."""
    if not text:
        return ""
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."


def format_event(event: McpServerEvent) -> str:
    """One-line rendering of an event."""
    parts = [
        format_datetime(event.timestamp),
        DEFAULT_REGISTRY.name_of(event.event_type),
        event.server_name,
    ]
    if event.instance_id:
        parts.append(event.instance_id)
    line = "  ".join(parts)
    if event.errors:
        line += "  " + "; ".join(f"{e.code}: {e.message}" for e in event.errors)
    return line


def format_parameters(parameters: Iterable[ParameterDescriptor], indent: int = 0) -> list[str]:
    """Render a descriptor tree, one parameter per line."""
    lines = []
    pad = "  " * indent
    for param in parameters:
        type_name = param.type
        if param.items_type:
            type_name += f"[{param.items_type}]"
        if param.additional_properties_type:
            type_name += f"{{str: {param.additional_properties_type}}}"

        line = f"{pad}{param.name}: {type_name}"
        if param.required:
            line += " (required)"
        if param.enum_values:
            line += f" one of {', '.join(param.enum_values)}"
        if param.default is not None:
            line += f" = {json.dumps(param.default)}"
        if param.description:
            line += f"  - {param.description}"
        lines.append(line)

        if param.nested_schema:
            lines.extend(format_parameters(param.nested_schema, indent + 1))
    return lines


def _dump(value: Any) -> str:
    if hasattr(value, "model_dump"):
        value = value.model_dump(mode="json", by_alias=True, exclude_none=True)
    return json.dumps(value, indent=2, ensure_ascii=False, default=str)


def _run(ctx: click.Context, action: Callable[[GatewayClient], Awaitable[T]]) -> T:
    """Run an async action against a fresh client, mapping errors to exit 1."""
    config: GatewayConfig = ctx.obj["config"]

    async def run() -> T:
        async with GatewayClient(config=config) as client:
            return await action(client)

    try:
        return asyncio.run(run())
    except GatewayError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


def _until_closed(
    finished: asyncio.Event, echo: bool = False
) -> Callable[[ConnectionState], None]:
    """State callback that sets ``finished`` on error, or on close once connected."""
    connected = False

    def on_state_changed(state: ConnectionState) -> None:
        nonlocal connected
        if echo:
            click.echo(f"[{state.value}]", err=True)
        if state == ConnectionState.CONNECTED:
            connected = True
        elif state == ConnectionState.ERROR or (
            state == ConnectionState.DISCONNECTED and connected
        ):
            finished.set()

    return on_state_changed


@click.group()
@click.option(
    "--url",
    envvar="MCP_GATEWAY_URL",
    default=None,
    help="Gateway base URL (default: http://localhost:5000)",
)
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default=lambda: os.getenv(ENV_LOG_LEVEL, "WARNING"),
    help="Logging level",
)
@click.pass_context
def main(ctx: click.Context, url: str | None, log_level: str) -> None:
    """Client for an MCP gateway."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )
    try:
        config = GatewayConfig.from_env(url)
    except ValueError as e:
        raise click.UsageError(str(e)) from e
    ctx.ensure_object(dict)
    ctx.obj["config"] = config


# =============================================================================
# Connection and events
# =============================================================================


@main.command()
@click.pass_context
def health(ctx: click.Context) -> None:
    """Test the connection to the gateway."""
    config: GatewayConfig = ctx.obj["config"]
    ok, message = _run(ctx, lambda client: client.test_connection())
    if ok:
        click.echo(f"Gateway is reachable: {config.base_url}")
    else:
        click.echo(f"Cannot connect to gateway at {config.base_url}: {message}", err=True)
        sys.exit(1)


@main.command()
@click.option("--last-event-id", default=None, help="Replay events after this id")
@click.option("--json", "as_json", is_flag=True, help="Print events as JSON lines")
@click.pass_context
def events(ctx: click.Context, last_event_id: str | None, as_json: bool) -> None:
    """Tail the gateway event stream until interrupted or closed."""

    def on_event(event: McpServerEvent) -> None:
        if as_json:
            click.echo(event.model_dump_json())
        else:
            click.echo(format_event(event))

    async def tail(client: GatewayClient) -> ConnectionState:
        finished = asyncio.Event()
        connector = client.event.connector(
            on_event=on_event,
            on_state_changed=_until_closed(finished, echo=True),
            on_error=lambda message: click.echo(f"Error: {message}", err=True),
        )
        async with connector:
            await connector.start(client.event.stream_url, last_event_id)
            await finished.wait()
            if connector.last_event_id:
                click.echo(f"Last event id: {connector.last_event_id}", err=True)
            return connector.connection_state

    try:
        state = _run(ctx, tail)
    except KeyboardInterrupt:
        click.echo("\nStopped", err=True)
        return

    if state == ConnectionState.ERROR:
        sys.exit(1)


@main.command()
@click.argument("server")
@click.argument("instance_id")
@click.option("--after-line", type=int, default=0, help="Skip lines up to this number")
@click.pass_context
def logs(ctx: click.Context, server: str, instance_id: str, after_line: int) -> None:
    """Follow an instance's stderr log."""

    async def follow(client: GatewayClient) -> ConnectionState:
        finished = asyncio.Event()
        stream = client.server.log_stream(
            on_entry=lambda entry: click.echo(f"{entry.line_number:>6}  {entry.text}"),
            on_state_changed=_until_closed(finished),
            on_error=lambda message: click.echo(f"Error: {message}", err=True),
        )
        async with stream:
            await stream.start(client.base_url, server, instance_id, after_line)
            await finished.wait()
            return stream.connection_state

    try:
        state = _run(ctx, follow)
    except KeyboardInterrupt:
        click.echo("\nStopped", err=True)
        return

    if state == ConnectionState.ERROR:
        sys.exit(1)


@main.command("event-types")
@click.option("--remote", is_flag=True, help="Ask the gateway instead of the built-in registry")
@click.pass_context
def event_types(ctx: click.Context, remote: bool) -> None:
    """List event types and their categories."""
    if remote:
        types = _run(ctx, lambda client: client.event.types())
        rows = [(t.name, t.category) for t in types]
    else:
        rows = [
            (name, DEFAULT_REGISTRY.category_of(DEFAULT_REGISTRY.resolve(name)).value)
            for name in DEFAULT_REGISTRY.all_names()
        ]

    click.echo(f"{'Name':<40} {'Category':<16}")
    click.echo("-" * 57)
    for name, category in rows:
        click.echo(f"{name:<40} {category:<16}")


# =============================================================================
# Servers and metadata
# =============================================================================


@main.command()
@click.option(
    "--format",
    "-f",
    "output_format",
    type=click.Choice([FORMAT_TABLE, FORMAT_JSON]),
    default=FORMAT_TABLE,
    help="Output format",
)
@click.pass_context
def servers(ctx: click.Context, output_format: str) -> None:
    """List MCP servers."""
    items = _run(ctx, lambda client: client.server.list())

    if output_format == FORMAT_JSON:
        click.echo(_dump([s.model_dump(mode="json", by_alias=True) for s in items]))
        return

    if not items:
        click.echo("No servers found.")
        return

    click.echo(f"{'Name':<30} {'Status':<12} {'Updated':<19}")
    click.echo("-" * 63)
    for server in items:
        click.echo(
            f"{truncate(server.name, 30):<30} {server.status:<12} "
            f"{format_datetime(server.updated_at):<19}"
        )
    click.echo(f"\nTotal: {len(items)} server(s)")


@main.command()
@click.argument("server")
@click.pass_context
def tools(ctx: click.Context, server: str) -> None:
    """List a server's tools and their parameters."""
    result = _run(ctx, lambda client: client.server.tools(server))

    for error in result.errors or []:
        click.echo(f"Warning: {error.code}: {error.message}", err=True)

    if not result.items:
        click.echo("No tools found.")
        return

    for tool in result.items:
        click.echo(tool.name)
        if tool.description:
            click.echo(f"  {truncate(tool.description, 76)}")
        for line in format_parameters(tool.parameters or (), indent=2):
            click.echo(line)


# =============================================================================
# Invocations
# =============================================================================


def _parse_pairs(pairs: tuple[str, ...]) -> dict[str, str]:
    result = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"Expected KEY=VALUE, got {pair!r}")
        result[key] = value
    return result


@main.command("call-tool")
@click.argument("server")
@click.argument("instance")
@click.argument("tool")
@click.option("--input", "input_json", default=None, help="Tool input as a JSON object")
@click.pass_context
def call_tool(
    ctx: click.Context, server: str, instance: str, tool: str, input_json: str | None
) -> None:
    """Invoke a tool on a running instance."""
    tool_input = None
    if input_json:
        try:
            tool_input = json.loads(input_json)
        except json.JSONDecodeError as e:
            raise click.BadParameter(f"Invalid JSON: {e}", param_hint="--input") from e
        if not isinstance(tool_input, dict):
            raise click.BadParameter("Input must be a JSON object", param_hint="--input")

    output = _run(
        ctx,
        lambda client: client.requests.call_tool(
            client.base_url, server, instance, tool, tool_input
        ),
    )
    click.echo(_dump(output))
    if output.is_error:
        sys.exit(1)


@main.command("get-prompt")
@click.argument("server")
@click.argument("instance")
@click.argument("prompt")
@click.option("--arg", "-a", "args", multiple=True, help="Prompt argument as KEY=VALUE")
@click.pass_context
def get_prompt(
    ctx: click.Context, server: str, instance: str, prompt: str, args: tuple[str, ...]
) -> None:
    """Render a prompt on a running instance."""
    arguments = _parse_pairs(args)
    output = _run(
        ctx,
        lambda client: client.requests.get_prompt(
            client.base_url, server, instance, prompt, arguments
        ),
    )
    click.echo(_dump(output))


@main.command("read-resource")
@click.argument("server")
@click.argument("instance")
@click.argument("uri")
@click.pass_context
def read_resource(ctx: click.Context, server: str, instance: str, uri: str) -> None:
    """Read a resource from a running instance."""
    output = _run(
        ctx,
        lambda client: client.requests.read_resource(client.base_url, server, instance, uri),
    )
    for content in output.contents:
        if content.text is not None:
            click.echo(content.text)
        else:
            click.echo(f"<{content.mime_type or 'binary'} {content.uri}>")


# =============================================================================
# Offline helpers
# =============================================================================


@main.command()
@click.argument("schema_file", type=click.File("r"))
@click.option("--json", "as_json", is_flag=True, help="Print descriptors as JSON")
def schema(schema_file: Any, as_json: bool) -> None:
    """Parse a tool input schema into parameter descriptors."""
    parameters = parse_input_schema(schema_file.read())
    if parameters is None:
        click.echo("No parameters.", err=True)
        sys.exit(1)

    if as_json:
        click.echo(_dump([p.model_dump(mode="json", exclude_none=True) for p in parameters]))
        return

    for line in format_parameters(parameters):
        click.echo(line)


if __name__ == "__main__":
    main()
