"""Client configuration.

Plain dataclasses with defaults; ``GatewayConfig.from_env`` overlays
``MCP_GATEWAY_*`` environment variables.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from .transport.base import StreamConfig

DEFAULT_BASE_URL = "http://localhost:5000"

ENV_BASE_URL = "MCP_GATEWAY_URL"
ENV_TIMEOUT = "MCP_GATEWAY_TIMEOUT"
ENV_POLL_INTERVAL = "MCP_GATEWAY_POLL_INTERVAL"
ENV_MAX_WAIT = "MCP_GATEWAY_MAX_WAIT"
ENV_LOG_LEVEL = "MCP_GATEWAY_LOG_LEVEL"


@dataclass
class InvocationConfig:
    """Create+poll settings."""

    poll_interval: float = 0.5
    max_wait: float = 300.0


@dataclass
class GatewayConfig:
    """Configuration for talking to one gateway."""

    base_url: str = DEFAULT_BASE_URL
    timeout: float = 30.0
    invocation: InvocationConfig = field(default_factory=InvocationConfig)
    stream: StreamConfig = field(default_factory=StreamConfig)

    @classmethod
    def from_env(cls, base_url: str | None = None) -> GatewayConfig:
        """Build a config from ``MCP_GATEWAY_*`` environment variables.

        Args:
            base_url: Overrides ``MCP_GATEWAY_URL`` when given

        Raises:
            ValueError: If a numeric variable cannot be parsed
        """
        config = cls(base_url=base_url or os.getenv(ENV_BASE_URL, DEFAULT_BASE_URL))

        timeout = _float_env(ENV_TIMEOUT)
        if timeout is not None:
            config.timeout = timeout
            config.stream.timeout = timeout

        poll_interval = _float_env(ENV_POLL_INTERVAL)
        if poll_interval is not None:
            config.invocation.poll_interval = poll_interval

        max_wait = _float_env(ENV_MAX_WAIT)
        if max_wait is not None:
            config.invocation.max_wait = max_wait

        return config


def _float_env(name: str) -> float | None:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    try:
        return float(value)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {value!r}") from e
