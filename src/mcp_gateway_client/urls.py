"""Gateway endpoint URLs."""

from __future__ import annotations

from urllib.parse import quote

import httpx

EVENT_STREAM_PATH = "/v1/events/stream"
EVENT_TYPES_PATH = "/v1/events/types"
SERVERS_PATH = "/v1/mcp-servers"
LAST_EVENT_ID_PARAM = "lastEventId"


def join_url(base_url: str, path: str) -> str:
    """Append an absolute path to a base URL."""
    return base_url.rstrip("/") + path


def escape(segment: str) -> str:
    """Escape a value for use as a single path segment."""
    return quote(segment, safe="")


def server_path(server_name: str, *parts: str) -> str:
    """Path of a server resource, e.g. ``/v1/mcp-servers/acme/tools``."""
    return "/".join([SERVERS_PATH, escape(server_name), *parts])


def event_stream_url(base_url: str) -> str:
    return join_url(base_url, EVENT_STREAM_PATH)


def with_last_event_id(url: str, last_event_id: str | None) -> str:
    """Set (or replace) the replay cursor on a stream URL."""
    if not last_event_id:
        return url
    return str(httpx.URL(url).copy_set_param(LAST_EVENT_ID_PARAM, last_event_id))


def requests_url(base_url: str, server_name: str) -> str:
    return join_url(base_url, server_path(server_name, "requests"))


def request_url(base_url: str, server_name: str, request_id: str) -> str:
    return join_url(base_url, server_path(server_name, "requests", escape(request_id)))


def instance_log_url(base_url: str, server_name: str, instance_id: str, after_line: int = 0) -> str:
    """URL of an instance's stderr log stream."""
    path = server_path(server_name, "instances", escape(instance_id), "logs", "stream")
    return f"{join_url(base_url, path)}?afterLine={after_line}"
