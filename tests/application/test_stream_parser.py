"""Tests for SSE line parsing and stream state reduction."""

import json

import pytest

from copilot_core.application.services.stream_parser import (
    create_stream_state,
    format_sse_line,
    is_done,
    parse_line,
    parse_text,
    reduce_chunk,
    requires_tool_execution,
)
from copilot_core.domain.models import ChunkType, Source, StreamChunk
from tests.fixtures.factories import MessageFactory, ToolCallFactory


class TestParseLine:
    """Test parsing single SSE lines."""

    def test_delta_line(self) -> None:
        """Test a data line with a message delta."""
        chunk = parse_line('data: {"type":"message:delta","content":"Hi"}')

        assert chunk == StreamChunk(type=ChunkType.MESSAGE_DELTA, content="Hi")

    def test_done_sentinel(self) -> None:
        """Test the [DONE] sentinel."""
        chunk = parse_line("data: [DONE]")

        assert chunk is not None
        assert chunk.type == ChunkType.DONE

    @pytest.mark.parametrize(
        "line",
        [
            "",
            ": keep-alive",
            "event: message",
            "id: 42",
            "data: {not json",
            'data: {"type":"message:del',
            "data: [1, 2]",
            'data: {"type":"unknown"}',
            'data: {"type":"tool_calls","toolCalls":[1]}',
            'data: {"type":"tool_calls","toolCalls":"abc"}',
            'data: {"type":"source:add","source":"x"}',
            'data: {"type":"done","messages":["x"]}',
        ],
    )
    def test_lines_without_chunk(self, line: str) -> None:
        """Test that comments, other fields and undecodable payloads are skipped."""
        assert parse_line(line) is None

    def test_trailing_carriage_return(self) -> None:
        """Test that CRLF line endings are tolerated."""
        chunk = parse_line('data: {"type":"message:end"}\r\n')

        assert chunk is not None
        assert chunk.type == ChunkType.MESSAGE_END


class TestParseText:
    """Test parsing a complete SSE body."""

    def test_parses_all_chunks(self) -> None:
        """Test that every data line becomes a chunk in order."""
        body = 'data: {"type":"message:start","id":"m1"}\n\n' 'data: {"type":"message:delta","content":"He"}\n' ": ping\n" 'data: {"type":"message:delta","content":"llo"}\n' "data: [DONE]\n"

        chunks = parse_text(body)

        assert [c.type for c in chunks] == [ChunkType.MESSAGE_START, ChunkType.MESSAGE_DELTA, ChunkType.MESSAGE_DELTA, ChunkType.DONE]


class TestFormatSseLine:
    """Test serializing chunks back into SSE lines."""

    def test_bare_done_uses_sentinel(self) -> None:
        assert format_sse_line(StreamChunk.done()) == "data: [DONE]\n"

    def test_chunk_line_parses_back(self) -> None:
        """Test that a formatted line parses back to the same chunk."""
        chunk = StreamChunk(type=ChunkType.TOOL_CALLS, tool_calls=[ToolCallFactory.create()])

        line = format_sse_line(chunk)

        assert line.startswith("data: ")
        assert json.loads(line[len("data: ") :])["type"] == "tool_calls"
        assert parse_line(line) == chunk

    @pytest.mark.parametrize(
        "chunk",
        [
            StreamChunk(type=ChunkType.MESSAGE_START, id="m1"),
            StreamChunk.delta("Hello"),
            StreamChunk(type=ChunkType.MESSAGE_END),
            StreamChunk(type=ChunkType.THINKING_DELTA, content="hmm"),
            StreamChunk(type=ChunkType.TOOL_CALLS, tool_calls=[ToolCallFactory.create()], assistant_message={"role": "assistant", "content": ""}),
            StreamChunk(type=ChunkType.SOURCE_ADD, source=Source(id="s1", title="Doc", content="text", url="https://example.com", score=0.5)),
            StreamChunk.error("boom"),
            StreamChunk(type=ChunkType.ERROR),
            StreamChunk.done(),
            StreamChunk.done(requires_action=True),
            StreamChunk.done(messages=[MessageFactory.user(), MessageFactory.assistant("Hi", tool_calls=[ToolCallFactory.create()])]),
        ],
        ids=lambda chunk: chunk.type.value,
    )
    def test_every_chunk_type_parses_back(self, chunk: StreamChunk) -> None:
        """Test that formatting then parsing yields an equivalent chunk."""
        assert parse_line(format_sse_line(chunk)) == chunk

    def test_error_without_message_omits_field(self) -> None:
        assert json.loads(format_sse_line(StreamChunk(type=ChunkType.ERROR))[len("data: ") :]) == {"type": "error"}


class TestReduceChunk:
    """Test folding chunks into the streaming state."""

    def test_deltas_append(self) -> None:
        """Test that content and thinking deltas accumulate."""
        state = create_stream_state("m1")
        for chunk in [
            StreamChunk.delta("Hel"),
            StreamChunk(type=ChunkType.THINKING_DELTA, content="hmm"),
            StreamChunk.delta("lo"),
        ]:
            state = reduce_chunk(chunk, state)

        assert state.content == "Hello"
        assert state.thinking == "hmm"

    def test_reducer_does_not_mutate_input(self) -> None:
        """Test that the prior state is left unchanged."""
        state = create_stream_state("m1")

        reduce_chunk(StreamChunk.delta("x"), state)

        assert state.content == ""

    def test_message_start_replaces_id(self) -> None:
        """Test that message:start adopts the server id."""
        state = reduce_chunk(StreamChunk(type=ChunkType.MESSAGE_START, id="srv-1"), create_stream_state("local"))

        assert state.message_id == "srv-1"

    def test_tool_calls_last_write_wins(self) -> None:
        """Test that a later tool_calls chunk replaces the earlier list."""
        state = create_stream_state("m1")
        state = reduce_chunk(StreamChunk(type=ChunkType.TOOL_CALLS, tool_calls=ToolCallFactory.create_many(2)), state)
        state = reduce_chunk(StreamChunk(type=ChunkType.TOOL_CALLS, tool_calls=[ToolCallFactory.create("t9")]), state)

        assert [tc.id for tc in state.tool_calls] == ["t9"]
        assert state.requires_action

    def test_sources_accumulate(self) -> None:
        """Test that source:add appends sources."""
        state = create_stream_state("m1")
        state = reduce_chunk(StreamChunk(type=ChunkType.SOURCE_ADD, source=Source(id="s1", title="A", content="a")), state)
        state = reduce_chunk(StreamChunk(type=ChunkType.SOURCE_ADD, source=Source(id="s2", title="B", content="b")), state)

        assert [s.id for s in state.sources] == ["s1", "s2"]

    def test_done_sets_finish_reason(self) -> None:
        """Test that done finishes the turn and carries requiresAction."""
        state = reduce_chunk(StreamChunk.done(requires_action=True), create_stream_state("m1"))

        assert state.finish_reason == "stop"
        assert state.requires_action


class TestChunkPredicates:
    """Test chunk classification helpers."""

    def test_is_done(self) -> None:
        assert is_done(StreamChunk.done())
        assert is_done(StreamChunk.error("boom"))
        assert not is_done(StreamChunk.delta("x"))

    def test_requires_tool_execution(self) -> None:
        """Test both the explicit tool_calls chunk and the flagged done chunk."""
        assert requires_tool_execution(StreamChunk(type=ChunkType.TOOL_CALLS, tool_calls=[]))
        assert requires_tool_execution(StreamChunk.done(requires_action=True))
        assert not requires_tool_execution(StreamChunk.done())
        assert not requires_tool_execution(StreamChunk.delta("x"))
