"""Message creation and lookup helpers."""

import json
import secrets
import string
import time
from typing import Any

from copilot_core.domain.models import Message, MessageAttachment, MessageRole, Source, StreamingMessageState, ToolCall

_ID_ALPHABET = string.ascii_lowercase + string.digits


def generate_message_id() -> str:
    """Generate a message id of the form ``msg-<epoch ms>-<random>``."""
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"msg-{int(time.time() * 1000)}-{suffix}"


def serialize_content(value: Any) -> str:
    """Serialize a tool result or payload into message content."""
    if isinstance(value, str):
        return value
    return json.dumps(value, default=str)


def create_user_message(content: str, attachments: list[MessageAttachment] | None = None) -> Message:
    return Message(
        id=generate_message_id(),
        role=MessageRole.USER,
        content=content,
        attachments=attachments or None,
    )


def create_assistant_message(
    content: str,
    tool_calls: list[ToolCall] | None = None,
    thinking: str | None = None,
    sources: list[Source] | None = None,
    message_id: str | None = None,
) -> Message:
    return Message(
        id=message_id or generate_message_id(),
        role=MessageRole.ASSISTANT,
        content=content,
        thinking=thinking or None,
        tool_calls=tool_calls or None,
        sources=sources or None,
    )


def create_tool_message(tool_call_id: str, result: Any, metadata: dict[str, Any] | None = None) -> Message:
    """Create a tool message answering ``tool_call_id``; non-string results are JSON-encoded."""
    return Message(
        id=generate_message_id(),
        role=MessageRole.TOOL,
        content=serialize_content(result),
        tool_call_id=tool_call_id,
        metadata=metadata,
    )


def create_system_message(content: str) -> Message:
    return Message(id=generate_message_id(), role=MessageRole.SYSTEM, content=content)


def stream_state_to_message(state: StreamingMessageState) -> Message:
    """Fold a finished streaming accumulator into an assistant message."""
    return create_assistant_message(
        content=state.content,
        tool_calls=list(state.tool_calls),
        thinking=state.thinking,
        sources=list(state.sources),
        message_id=state.message_id,
    )


def find_message(messages: list[Message], message_id: str) -> Message | None:
    return next((m for m in messages if m.id == message_id), None)


def get_last_assistant_message(messages: list[Message]) -> Message | None:
    for message in reversed(messages):
        if message.role == MessageRole.ASSISTANT:
            return message
    return None


def find_unresolved_tool_calls(messages: list[Message]) -> list[ToolCall]:
    """Return assistant tool calls that no tool message answers, in emission order."""
    resolved = {m.tool_call_id for m in messages if m.role == MessageRole.TOOL and m.tool_call_id}
    seen: set[str] = set()
    unresolved: list[ToolCall] = []
    for message in messages:
        if message.role != MessageRole.ASSISTANT or not message.tool_calls:
            continue
        for tc in message.tool_calls:
            if tc.id in resolved or tc.id in seen:
                continue
            seen.add(tc.id)
            unresolved.append(tc)
    return unresolved


def has_pending_tool_calls(messages: list[Message]) -> bool:
    """Whether the last assistant message has tool calls that are not yet answered."""
    last = get_last_assistant_message(messages)
    if last is None or not last.tool_calls:
        return False
    resolved = {m.tool_call_id for m in messages if m.role == MessageRole.TOOL}
    return any(tc.id not in resolved for tc in last.tool_calls)
