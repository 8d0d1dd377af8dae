"""Chat transport interface.

Defines the abstract base class for transports that carry chat requests to
the runtime, together with the request/config types and the transport
error hierarchy.
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from copilot_core.domain.models import ChatResponse, Message, StreamChunk

if TYPE_CHECKING:
    from copilot_core.application.settings import Settings


class ChatTransportError(Exception):
    """Base exception for chat transport errors.

    Attributes:
        message: Human-readable error message
        error_code: Categorized error code for programmatic handling
        is_retryable: Whether the request might succeed on retry
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        error_code: str = "transport_error",
        is_retryable: bool = False,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.is_retryable = is_retryable
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API response."""
        return {
            "message": self.message,
            "error_code": self.error_code,
            "is_retryable": self.is_retryable,
            "details": self.details,
        }


class TransportHttpError(ChatTransportError):
    """The runtime answered with a non-2xx status."""

    def __init__(self, status_code: int, body: str) -> None:
        super().__init__(
            message=f"HTTP {status_code}: {body}",
            error_code="http_error",
            is_retryable=status_code == 429 or status_code >= 500,
            details={"status_code": status_code},
        )
        self.status_code = status_code


class TransportConnectionError(ChatTransportError):
    """Error establishing the connection to the runtime."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, error_code="connection_error", is_retryable=True, details=details)


class TransportTimeoutError(ChatTransportError):
    """Timeout waiting for the runtime."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, error_code="timeout", is_retryable=True, details=details)


class TransportProtocolError(ChatTransportError):
    """The runtime sent a response that could not be interpreted."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, error_code="protocol_error", is_retryable=False, details=details)


@dataclass
class TransportConfig:
    """Configuration of an HTTP chat transport.

    Attributes:
        url: Runtime endpoint receiving chat requests
        headers: Extra request headers
        streaming: Whether to request an SSE stream
        timeout: Request timeout in seconds
    """

    url: str
    headers: dict[str, str] = field(default_factory=dict)
    streaming: bool = True
    timeout: float = 60.0

    @classmethod
    def from_settings(cls, settings: "Settings") -> "TransportConfig":
        return cls(
            url=settings.runtime_url,
            headers=dict(settings.runtime_headers),
            streaming=settings.streaming,
            timeout=settings.request_timeout_seconds,
        )


@dataclass
class ChatRequest:
    """An outgoing chat request.

    Attributes:
        messages: Conversation messages, already transformed for the model
        thread_id: Optional conversation thread identifier
        system_prompt: Effective system prompt, including app context
        llm: Optional model configuration passed through to the runtime
        tools: Tool definitions in wire format
        actions: Optional host actions passed through to the runtime
    """

    messages: list[Message]
    thread_id: str | None = None
    system_prompt: str | None = None
    llm: dict[str, Any] | None = None
    tools: list[dict[str, Any]] | None = None
    actions: list[dict[str, Any]] | None = None

    def to_wire(self) -> dict[str, Any]:
        """Convert to the POST body sent to the runtime."""
        body: dict[str, Any] = {"messages": [m.to_wire() for m in self.messages]}
        if self.thread_id:
            body["threadId"] = self.thread_id
        if self.system_prompt:
            body["systemPrompt"] = self.system_prompt
        if self.llm:
            body["llm"] = self.llm
        if self.tools:
            body["tools"] = self.tools
        if self.actions:
            body["actions"] = self.actions
        return body


TransportResult = AsyncIterator[StreamChunk] | ChatResponse


class ChatTransport(ABC):
    """Abstract base class for chat transports.

    A transport sends one chat request and returns either an async iterator
    of stream chunks or a single JSON response.

    Implementations:
        - HttpChatTransport: HTTP POST with SSE reassembly (httpx)

    Usage:
        result = await transport.send(request)
        if isinstance(result, ChatResponse):
            handle(result.messages)
        else:
            async for chunk in result:
                handle(chunk)

    Thread Safety:
        Transport instances are NOT thread-safe and carry one in-flight
        request at a time.
    """

    @abstractmethod
    async def send(self, request: ChatRequest) -> TransportResult:
        """Send a chat request.

        Returns:
            An async iterator of chunks (streaming) or a ChatResponse

        Raises:
            TransportHttpError: If the runtime answers with a non-2xx status
            TransportConnectionError: If the runtime cannot be reached
            TransportTimeoutError: If the runtime does not answer in time
        """
        ...

    @abstractmethod
    def abort(self) -> None:
        """Cancel the in-flight request.

        Pending reads end quietly instead of raising. Safe to call when
        nothing is in flight.
        """
        ...

    @abstractmethod
    def is_streaming(self) -> bool:
        """Whether a stream is currently being consumed."""
        ...
