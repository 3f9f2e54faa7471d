"""Target locator helpers.

The gateway addresses servers and instances with path-like targets:
``mcp-servers/<name>`` and ``mcp-servers/<name>/instances/<id>``.
"""

from __future__ import annotations

SERVERS_SEGMENT = "mcp-servers"
INSTANCES_SEGMENT = "instances"


def build_server_target(server_name: str) -> str:
    """Build the target for a server (e.g. ``mcp-servers/my-server``)."""
    return f"{SERVERS_SEGMENT}/{server_name}"


def build_instance_target(server_name: str, instance_id: str) -> str:
    """Build the target for an instance (e.g. ``mcp-servers/my-server/instances/abc``)."""
    return f"{SERVERS_SEGMENT}/{server_name}/{INSTANCES_SEGMENT}/{instance_id}"


def parse_target(target: str | None) -> tuple[str | None, str | None]:
    """Extract server name and instance id from a target, positionally.

    Lenient: missing segments come back as None. Use ``split_target`` when
    the shape must be validated.
    """
    if not target:
        return None, None

    segments = target.split("/")
    server_name = segments[1] if len(segments) >= 2 else None
    instance_id = segments[3] if len(segments) >= 4 else None
    return server_name, instance_id


def split_target(target: str) -> tuple[str, str | None]:
    """Strictly parse a target into server name and optional instance id.

    Raises:
        ValueError: If the target is not a server or instance locator
    """
    segments = target.split("/")
    if any(not segment for segment in segments) or segments[0] != SERVERS_SEGMENT:
        raise ValueError(f"Malformed target: {target!r}")

    if len(segments) == 2:
        return segments[1], None
    if len(segments) == 4 and segments[2] == INSTANCES_SEGMENT:
        return segments[1], segments[3]
    raise ValueError(f"Malformed target: {target!r}")
