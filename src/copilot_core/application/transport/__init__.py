"""Chat transport abstractions."""

from copilot_core.application.transport.chat_transport import (
    ChatRequest,
    ChatTransport,
    ChatTransportError,
    TransportConfig,
    TransportConnectionError,
    TransportHttpError,
    TransportProtocolError,
    TransportResult,
    TransportTimeoutError,
)
from copilot_core.domain.models import ChatResponse

__all__ = [
    "ChatRequest",
    "ChatResponse",
    "ChatTransport",
    "ChatTransportError",
    "TransportConfig",
    "TransportConnectionError",
    "TransportHttpError",
    "TransportProtocolError",
    "TransportResult",
    "TransportTimeoutError",
]
