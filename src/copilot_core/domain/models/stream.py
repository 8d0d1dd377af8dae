"""Stream chunk and streaming accumulator models.

A streamed assistant turn arrives as a sequence of typed chunks. The chunk
``type`` discriminates which payload fields are meaningful:

- ``message:start``  -> ``id``
- ``message:delta``  -> ``content``
- ``message:end``    -> (none)
- ``thinking:delta`` -> ``content``
- ``tool_calls``     -> ``tool_calls``, ``assistant_message``
- ``source:add``     -> ``source``
- ``error``          -> ``message``
- ``done``           -> ``messages``, ``requires_action``
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from copilot_core.domain.models.message import Message, Source, ToolCall


class ChunkType(str, Enum):
    """Discriminator of a stream chunk."""

    MESSAGE_START = "message:start"
    MESSAGE_DELTA = "message:delta"
    MESSAGE_END = "message:end"
    THINKING_DELTA = "thinking:delta"
    TOOL_CALLS = "tool_calls"
    SOURCE_ADD = "source:add"
    ERROR = "error"
    DONE = "done"


@dataclass(frozen=True)
class StreamChunk:
    """A single typed event of a streamed response.

    Attributes:
        type: Chunk discriminator
        id: Server message id (message:start)
        content: Text fragment (message:delta, thinking:delta)
        tool_calls: Requested tool calls (tool_calls)
        assistant_message: Raw assistant message that carried the tool calls
        source: Cited source (source:add)
        message: Error description (error)
        messages: Final messages reported by the server (done)
        requires_action: Whether the client must execute tools (done)
    """

    type: ChunkType
    id: str | None = None
    content: str | None = None
    tool_calls: list[ToolCall] | None = None
    assistant_message: dict[str, Any] | None = None
    source: Source | None = None
    message: str | None = None
    messages: list[Message] | None = None
    requires_action: bool | None = None

    @classmethod
    def done(cls, requires_action: bool | None = None, messages: list[Message] | None = None) -> "StreamChunk":
        return cls(type=ChunkType.DONE, requires_action=requires_action, messages=messages)

    @classmethod
    def error(cls, message: str) -> "StreamChunk":
        return cls(type=ChunkType.ERROR, message=message)

    @classmethod
    def delta(cls, content: str) -> "StreamChunk":
        return cls(type=ChunkType.MESSAGE_DELTA, content=content)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StreamChunk":
        """Build a chunk from its decoded JSON payload.

        Raises:
            ValueError: If ``type`` is missing or unknown
            AttributeError: If a nested payload is not an object
        """
        chunk_type = ChunkType(data.get("type"))

        if chunk_type == ChunkType.MESSAGE_START:
            return cls(type=chunk_type, id=str(data.get("id") or ""))
        if chunk_type in (ChunkType.MESSAGE_DELTA, ChunkType.THINKING_DELTA):
            return cls(type=chunk_type, content=str(data.get("content", "")))
        if chunk_type == ChunkType.TOOL_CALLS:
            raw_calls = data.get("toolCalls") or []
            return cls(
                type=chunk_type,
                tool_calls=[ToolCall.from_dict(tc) for tc in raw_calls],
                assistant_message=data.get("assistantMessage"),
            )
        if chunk_type == ChunkType.SOURCE_ADD:
            return cls(type=chunk_type, source=Source.from_dict(data.get("source") or {}))
        if chunk_type == ChunkType.ERROR:
            message = data.get("message")
            return cls(type=chunk_type, message=str(message) if message is not None else None)
        if chunk_type == ChunkType.DONE:
            raw_messages = data.get("messages")
            return cls(
                type=chunk_type,
                messages=[Message.from_dict(m) for m in raw_messages] if raw_messages is not None else None,
                requires_action=data.get("requiresAction"),
            )
        return cls(type=chunk_type)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the wire JSON payload."""
        result: dict[str, Any] = {"type": self.type.value}
        if self.type == ChunkType.MESSAGE_START:
            result["id"] = self.id or ""
        elif self.type in (ChunkType.MESSAGE_DELTA, ChunkType.THINKING_DELTA):
            result["content"] = self.content or ""
        elif self.type == ChunkType.TOOL_CALLS:
            result["toolCalls"] = [tc.to_dict() for tc in self.tool_calls or []]
            if self.assistant_message is not None:
                result["assistantMessage"] = self.assistant_message
        elif self.type == ChunkType.SOURCE_ADD and self.source is not None:
            result["source"] = self.source.to_dict()
        elif self.type == ChunkType.ERROR and self.message is not None:
            result["message"] = self.message
        elif self.type == ChunkType.DONE:
            if self.messages is not None:
                result["messages"] = [m.to_dict() for m in self.messages]
            if self.requires_action is not None:
                result["requiresAction"] = self.requires_action
        return result


@dataclass(frozen=True)
class StreamingMessageState:
    """Accumulator for one streamed assistant turn.

    Instances are immutable; the reducer returns a new state per chunk.
    """

    message_id: str
    content: str = ""
    thinking: str = ""
    tool_calls: tuple[ToolCall, ...] = ()
    sources: tuple[Source, ...] = ()
    requires_action: bool = False
    finish_reason: str | None = None

    def evolve(self, **changes: Any) -> "StreamingMessageState":
        return replace(self, **changes)


@dataclass
class ChatResponse:
    """Single JSON response returned by the non-streaming path."""

    messages: list[Message] = field(default_factory=list)
    requires_action: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ChatResponse":
        return cls(
            messages=[Message.from_dict(m) for m in data.get("messages") or []],
            requires_action=bool(data.get("requiresAction", False)),
        )
