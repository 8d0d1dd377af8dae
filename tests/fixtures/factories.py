"""Test data factories and builders.

Provides reusable factory classes for creating test data with sensible defaults
and easy customization, plus a scripted transport that replays canned
responses turn by turn.
"""

import json
from collections.abc import AsyncIterator
from typing import Any

from copilot_core.application.transport import ChatRequest, ChatTransport, TransportResult
from copilot_core.domain.models import ChatResponse, ChunkType, FunctionCall, Message, MessageRole, StreamChunk, ToolCall, ToolDefinition

# ============================================================================
# TOOL CALL FACTORY
# ============================================================================


class ToolCallFactory:
    """Factory for creating ToolCall values."""

    @staticmethod
    def create(call_id: str = "t1", name: str = "get_weather", args: dict[str, Any] | None = None) -> ToolCall:
        return ToolCall(id=call_id, function=FunctionCall(name=name, arguments=json.dumps(args if args is not None else {"city": "Paris"})))

    @staticmethod
    def create_many(count: int, name: str = "get_weather") -> list[ToolCall]:
        return [ToolCallFactory.create(call_id=f"t{i+1}", name=name, args={"index": i}) for i in range(count)]


# ============================================================================
# MESSAGE FACTORY
# ============================================================================


class MessageFactory:
    """Factory for creating Message values."""

    @staticmethod
    def user(content: str = "Hello", message_id: str = "u1") -> Message:
        return Message(id=message_id, role=MessageRole.USER, content=content)

    @staticmethod
    def assistant(content: str = "", message_id: str = "a1", tool_calls: list[ToolCall] | None = None) -> Message:
        return Message(id=message_id, role=MessageRole.ASSISTANT, content=content, tool_calls=tool_calls)

    @staticmethod
    def tool(tool_call_id: str = "t1", content: Any = None, message_id: str = "tool1") -> Message:
        body = content if isinstance(content, str) else json.dumps(content if content is not None else {"success": True})
        return Message(id=message_id, role=MessageRole.TOOL, content=body, tool_call_id=tool_call_id)


# ============================================================================
# TOOL DEFINITION FACTORY
# ============================================================================


class ToolDefinitionFactory:
    """Factory for creating ToolDefinition values."""

    @staticmethod
    def create(name: str = "get_weather", result: Any = None, **kwargs: Any) -> ToolDefinition:
        """Create a tool whose handler returns ``result`` (default: a weather reading)."""
        payload = result if result is not None else {"success": True, "result": {"tempC": 18}}

        async def handler(args: dict[str, Any], context: Any) -> Any:
            return payload

        kwargs.setdefault("handler", handler)
        return ToolDefinition(name=name, description=f"{name} tool", **kwargs)


# ============================================================================
# STREAM SCRIPTS
# ============================================================================


class StreamScript:
    """Builders for common chunk sequences."""

    @staticmethod
    def text(content: str, message_id: str | None = None) -> list[StreamChunk]:
        chunks: list[StreamChunk] = []
        if message_id:
            chunks.append(StreamChunk(type=ChunkType.MESSAGE_START, id=message_id))
        chunks.append(StreamChunk.delta(content))
        chunks.append(StreamChunk(type=ChunkType.MESSAGE_END))
        chunks.append(StreamChunk.done())
        return chunks

    @staticmethod
    def tool_calls(tool_calls: list[ToolCall], preamble: str = "") -> list[StreamChunk]:
        chunks: list[StreamChunk] = []
        if preamble:
            chunks.append(StreamChunk.delta(preamble))
        chunks.append(StreamChunk(type=ChunkType.TOOL_CALLS, tool_calls=tool_calls))
        chunks.append(StreamChunk.done(requires_action=True))
        return chunks


# ============================================================================
# SCRIPTED TRANSPORT
# ============================================================================


class ScriptedTransport(ChatTransport):
    """Transport that answers each request with the next scripted response.

    Each script entry is either a list of chunks (streamed), a ChatResponse
    (JSON path) or an exception instance (raised from ``send``).
    """

    def __init__(self, *responses: list[StreamChunk] | ChatResponse | Exception) -> None:
        self.responses = list(responses)
        self.requests: list[ChatRequest] = []
        self.aborted = False
        self._streaming = False

    async def send(self, request: ChatRequest) -> TransportResult:
        self.requests.append(request)
        self.aborted = False
        if not self.responses:
            raise AssertionError("ScriptedTransport has no response left")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        if isinstance(response, ChatResponse):
            return response
        return self._stream(response)

    async def _stream(self, chunks: list[StreamChunk]) -> AsyncIterator[StreamChunk]:
        self._streaming = True
        try:
            for chunk in chunks:
                if self.aborted:
                    return
                yield chunk
        finally:
            self._streaming = False

    def abort(self) -> None:
        self.aborted = True

    def is_streaming(self) -> bool:
        return self._streaming
