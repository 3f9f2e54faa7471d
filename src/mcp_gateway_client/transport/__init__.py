"""Transport abstraction layer.

Provides the push-connection capability consumed by the event stream
connector. SSE over httpx is the default implementation.
"""

from .base import StreamConfig, StreamHandle, StreamListener, StreamTransport
from .mock import MockStreamHandle, MockStreamTransport, create_mock_transport
from .sse import SSEDecoder, SSEMessage, SSEStreamHandle, SSETransport

__all__ = [
    "StreamConfig",
    "StreamHandle",
    "StreamListener",
    "StreamTransport",
    "SSEDecoder",
    "SSEMessage",
    "SSEStreamHandle",
    "SSETransport",
    "MockStreamHandle",
    "MockStreamTransport",
    "create_mock_transport",
]
