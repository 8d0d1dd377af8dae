"""Infrastructure adapters."""

from copilot_core.infrastructure.adapters.http_chat_transport import HttpChatTransport

__all__ = ["HttpChatTransport"]
