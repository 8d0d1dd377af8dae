"""Tests for message creation and lookup helpers."""

import json
import re

from copilot_core.application.services.message_factory import (
    create_assistant_message,
    create_system_message,
    create_tool_message,
    create_user_message,
    find_message,
    find_unresolved_tool_calls,
    generate_message_id,
    get_last_assistant_message,
    has_pending_tool_calls,
    serialize_content,
    stream_state_to_message,
)
from copilot_core.domain.models import MessageRole, StreamingMessageState
from tests.fixtures.factories import MessageFactory, ToolCallFactory


class TestMessageCreation:
    """Test message factory functions."""

    def test_generate_message_id_format(self) -> None:
        """Test the msg-<millis>-<random> id format."""
        message_id = generate_message_id()

        assert re.fullmatch(r"msg-\d+-[a-z0-9]{9}", message_id)
        assert generate_message_id() != message_id

    def test_create_user_message(self) -> None:
        message = create_user_message("Hello")

        assert message.role == MessageRole.USER
        assert message.content == "Hello"
        assert message.attachments is None

    def test_create_assistant_message_drops_empty_collections(self) -> None:
        """Test that empty tool calls and sources are stored as None."""
        message = create_assistant_message("Hi", tool_calls=[], sources=[], message_id="a1")

        assert message.id == "a1"
        assert message.tool_calls is None
        assert message.sources is None

    def test_create_tool_message_serializes_result(self) -> None:
        """Test that structured results are JSON-encoded."""
        message = create_tool_message("t1", {"success": True, "result": 1}, metadata={"synthetic": True})

        assert message.role == MessageRole.TOOL
        assert message.tool_call_id == "t1"
        assert json.loads(message.content) == {"success": True, "result": 1}
        assert message.is_synthetic

    def test_create_system_message(self) -> None:
        assert create_system_message("Be brief").role == MessageRole.SYSTEM

    def test_serialize_content_keeps_strings(self) -> None:
        assert serialize_content("plain") == "plain"
        assert serialize_content([1, 2]) == "[1, 2]"

    def test_stream_state_to_message(self) -> None:
        """Test folding a finished accumulator into an assistant message."""
        state = StreamingMessageState(message_id="m1", content="Hi", thinking="hmm", tool_calls=(ToolCallFactory.create(),))

        message = stream_state_to_message(state)

        assert message.id == "m1"
        assert message.role == MessageRole.ASSISTANT
        assert message.thinking == "hmm"
        assert message.tool_calls is not None and message.tool_calls[0].id == "t1"


class TestMessageLookups:
    """Test message lookup helpers."""

    def test_find_message(self) -> None:
        messages = [MessageFactory.user(message_id="u1"), MessageFactory.assistant(message_id="a1")]

        assert find_message(messages, "a1") is messages[1]
        assert find_message(messages, "missing") is None

    def test_get_last_assistant_message(self) -> None:
        messages = [MessageFactory.assistant("first", message_id="a1"), MessageFactory.user(), MessageFactory.assistant("second", message_id="a2")]

        last = get_last_assistant_message(messages)

        assert last is not None and last.id == "a2"
        assert get_last_assistant_message([MessageFactory.user()]) is None

    def test_find_unresolved_tool_calls(self) -> None:
        """Test that only calls without a tool message are returned, in order."""
        messages = [
            MessageFactory.user(),
            MessageFactory.assistant(tool_calls=ToolCallFactory.create_many(3)),
            MessageFactory.tool(tool_call_id="t2"),
        ]

        assert [tc.id for tc in find_unresolved_tool_calls(messages)] == ["t1", "t3"]

    def test_find_unresolved_tool_calls_reports_repeated_id_once(self) -> None:
        """Test that a tool-call id repeated by the model is reported a single time."""
        repeated = ToolCallFactory.create("t1")
        messages = [MessageFactory.assistant(tool_calls=[repeated, ToolCallFactory.create("t1")])]

        assert [tc.id for tc in find_unresolved_tool_calls(messages)] == ["t1"]

    def test_has_pending_tool_calls(self) -> None:
        pending = [MessageFactory.assistant(tool_calls=[ToolCallFactory.create()])]
        answered = pending + [MessageFactory.tool(tool_call_id="t1")]

        assert has_pending_tool_calls(pending)
        assert not has_pending_tool_calls(answered)
        assert not has_pending_tool_calls([MessageFactory.assistant("plain")])
