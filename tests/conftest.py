"""Pytest configuration and shared fixtures."""

import pytest

from mcp_gateway_client.transport.mock import MockStreamTransport


@pytest.fixture
def transport() -> MockStreamTransport:
    """In-memory push transport driven by the test."""
    return MockStreamTransport()
