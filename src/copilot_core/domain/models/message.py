"""Message model representing a single message in a conversation."""

import json
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class MessageRole(str, Enum):
    """Role of the message sender."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class ChatStatus(str, Enum):
    """Request-cycle status of a chat orchestrator."""

    READY = "ready"
    SUBMITTED = "submitted"
    STREAMING = "streaming"
    ERROR = "error"


class AttachmentType(str, Enum):
    """Kind of content carried by a message attachment."""

    IMAGE = "image"
    FILE = "file"
    AUDIO = "audio"
    VIDEO = "video"


@dataclass
class FunctionCall:
    """Function name and JSON-encoded arguments of a tool call."""

    name: str
    arguments: str = "{}"


@dataclass
class ToolCall:
    """Represents a tool call request from the model.

    Attributes:
        id: Identifier that the matching tool message must reference
        function: Function name and JSON-encoded arguments
        type: Always "function" on the wire
    """

    id: str
    function: FunctionCall
    type: str = "function"

    @property
    def name(self) -> str:
        return self.function.name

    def parsed_arguments(self) -> dict[str, Any]:
        """Decode the arguments string, degrading to an empty dict on bad JSON."""
        try:
            parsed = json.loads(self.function.arguments) if self.function.arguments else {}
        except (json.JSONDecodeError, TypeError):
            return {}
        return parsed if isinstance(parsed, dict) else {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "function": {"name": self.function.name, "arguments": self.function.arguments},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ToolCall":
        """Create a tool call from either the nested or the flat wire shape."""
        function = data.get("function")
        if isinstance(function, dict):
            name = function.get("name", "")
            arguments = function.get("arguments", "{}")
        else:
            name = data.get("name", "")
            arguments = data.get("args", data.get("arguments", {}))
        if not isinstance(arguments, str):
            arguments = json.dumps(arguments)
        return cls(id=data.get("id", ""), function=FunctionCall(name=name, arguments=arguments), type=data.get("type", "function"))


@dataclass
class MessageAttachment:
    """Binary or referenced content attached to a message."""

    type: AttachmentType
    mime_type: str
    data: str | None = None
    url: str | None = None
    filename: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"type": self.type.value, "mimeType": self.mime_type}
        if self.data is not None:
            result["data"] = self.data
        if self.url is not None:
            result["url"] = self.url
        if self.filename is not None:
            result["filename"] = self.filename
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MessageAttachment":
        return cls(
            type=AttachmentType(data.get("type", "file")),
            mime_type=data.get("mimeType") or data.get("mime_type") or "application/octet-stream",
            data=data.get("data"),
            url=data.get("url"),
            filename=data.get("filename"),
        )


@dataclass
class Source:
    """A knowledge-base source cited by the assistant."""

    id: str
    title: str
    content: str
    url: str | None = None
    score: float | None = None
    metadata: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"id": self.id, "title": self.title, "content": self.content}
        if self.url is not None:
            result["url"] = self.url
        if self.score is not None:
            result["score"] = self.score
        if self.metadata is not None:
            result["metadata"] = self.metadata
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Source":
        return cls(
            id=data.get("id", ""),
            title=data.get("title", ""),
            content=data.get("content", ""),
            url=data.get("url"),
            score=data.get("score"),
            metadata=data.get("metadata"),
        )


@dataclass
class Message:
    """
    Represents a single message in a conversation.

    Messages can be from users, the assistant, the system, or tool results.
    Tool messages reference the assistant tool call they answer through
    ``tool_call_id``.
    """

    id: str
    role: MessageRole
    content: str
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    thinking: str | None = None
    attachments: list[MessageAttachment] | None = None
    tool_calls: list[ToolCall] | None = None
    tool_call_id: str | None = None
    sources: list[Source] | None = None
    metadata: dict[str, Any] | None = None

    @property
    def is_synthetic(self) -> bool:
        """Whether the message was injected by the client rather than produced by the model."""
        return bool(self.metadata and self.metadata.get("synthetic"))

    def to_wire(self) -> dict[str, Any]:
        """Convert message to the request wire format."""
        msg: dict[str, Any] = {"role": self.role.value, "content": self.content}
        if self.tool_calls:
            msg["tool_calls"] = [tc.to_dict() for tc in self.tool_calls]
        if self.tool_call_id:
            msg["tool_call_id"] = self.tool_call_id
        if self.attachments:
            msg["attachments"] = [a.to_dict() for a in self.attachments]
        return msg

    def to_dict(self) -> dict[str, Any]:
        """Convert message to dictionary for serialization."""
        result = self.to_wire()
        result["id"] = self.id
        result["created_at"] = self.created_at.isoformat()
        if self.thinking:
            result["thinking"] = self.thinking
        if self.sources:
            result["sources"] = [s.to_dict() for s in self.sources]
        if self.metadata:
            result["metadata"] = self.metadata
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Message":
        """Create message from dictionary.

        Accepts both the camelCase keys used by the runtime and the
        snake_case keys produced by ``to_dict``.
        """
        tool_calls = data.get("tool_calls") or data.get("toolCalls")
        created_at = data.get("created_at") or data.get("createdAt")
        if isinstance(created_at, str):
            created = datetime.fromisoformat(created_at)
        elif isinstance(created_at, (int, float)):
            created = datetime.fromtimestamp(created_at / 1000, UTC)
        else:
            created = datetime.now(UTC)

        attachments = data.get("attachments")
        sources = data.get("sources")
        content = data.get("content")
        return cls(
            id=data.get("id") or "",
            role=MessageRole(data["role"]),
            content=content if isinstance(content, str) else ("" if content is None else json.dumps(content)),
            created_at=created,
            thinking=data.get("thinking"),
            attachments=[MessageAttachment.from_dict(a) for a in attachments] if attachments else None,
            tool_calls=[ToolCall.from_dict(tc) for tc in tool_calls] if tool_calls else None,
            tool_call_id=data.get("tool_call_id") or data.get("toolCallId"),
            sources=[Source.from_dict(s) for s in sources] if sources else None,
            metadata=data.get("metadata"),
        )
