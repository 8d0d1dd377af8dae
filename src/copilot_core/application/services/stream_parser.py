"""Server-Sent-Event parsing and stream state reduction.

Pure functions only: turning raw SSE lines into typed chunks, and folding
chunks into an in-progress :class:`StreamingMessageState`.
"""

import json
import logging

from copilot_core.domain.models import ChunkType, StreamChunk, StreamingMessageState

logger = logging.getLogger(__name__)

DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"


def parse_line(line: str) -> StreamChunk | None:
    """Parse a single SSE line into a stream chunk.

    Comments, non-``data`` fields, undecodable payloads and payloads of the
    wrong shape return None; this function never raises. A payload split
    across two network reads is simply skipped here and the transport is
    responsible for buffering complete lines.

    Args:
        line: One SSE line, with or without its trailing newline

    Returns:
        The decoded chunk, or None when the line carries no chunk
    """
    line = line.rstrip("\r\n")
    if not line:
        return None
    if line.startswith(":"):
        return None
    if not line.startswith(DATA_PREFIX):
        return None

    payload = line[len(DATA_PREFIX) :]
    if payload.strip() == DONE_SENTINEL:
        return StreamChunk.done()

    try:
        data = json.loads(payload)
    except json.JSONDecodeError:
        logger.debug(f"Skipping undecodable SSE payload: {payload[:100]}")
        return None

    if not isinstance(data, dict):
        return None

    try:
        return StreamChunk.from_dict(data)
    except Exception as e:
        logger.debug(f"Skipping unrecognized SSE chunk: {e}")
        return None


def parse_text(text: str) -> list[StreamChunk]:
    """Parse a complete SSE body into its chunks."""
    chunks = []
    for line in text.split("\n"):
        chunk = parse_line(line)
        if chunk is not None:
            chunks.append(chunk)
    return chunks


def format_sse_line(chunk: StreamChunk) -> str:
    """Serialize a chunk back into an SSE ``data:`` line."""
    if chunk.type == ChunkType.DONE and chunk.messages is None and chunk.requires_action is None:
        return f"{DATA_PREFIX}{DONE_SENTINEL}\n"
    return f"{DATA_PREFIX}{json.dumps(chunk.to_dict())}\n"


def create_stream_state(message_id: str = "") -> StreamingMessageState:
    """Create an empty accumulator for a new streamed turn."""
    return StreamingMessageState(message_id=message_id)


def reduce_chunk(chunk: StreamChunk, state: StreamingMessageState) -> StreamingMessageState:
    """Fold a chunk into the streaming state.

    Content and thinking deltas append; ``tool_calls`` replaces the call list
    (last write wins). The prior state is never mutated.
    """
    match chunk.type:
        case ChunkType.MESSAGE_START:
            return state.evolve(message_id=chunk.id or state.message_id)
        case ChunkType.MESSAGE_DELTA:
            return state.evolve(content=state.content + (chunk.content or ""))
        case ChunkType.THINKING_DELTA:
            return state.evolve(thinking=state.thinking + (chunk.content or ""))
        case ChunkType.SOURCE_ADD:
            if chunk.source is None:
                return state
            return state.evolve(sources=(*state.sources, chunk.source))
        case ChunkType.TOOL_CALLS:
            return state.evolve(tool_calls=tuple(chunk.tool_calls or ()), requires_action=True)
        case ChunkType.MESSAGE_END:
            return state.evolve(finish_reason="stop")
        case ChunkType.DONE:
            return state.evolve(
                requires_action=state.requires_action or bool(chunk.requires_action),
                finish_reason="stop",
            )
        case ChunkType.ERROR:
            return state.evolve(finish_reason="error")
    return state


def is_done(chunk: StreamChunk) -> bool:
    """Whether the chunk terminates the stream."""
    return chunk.type in (ChunkType.DONE, ChunkType.ERROR)


def requires_tool_execution(chunk: StreamChunk) -> bool:
    """Whether the chunk signals that the client must execute tools.

    Providers either emit an explicit ``tool_calls`` chunk or only flag
    ``requiresAction`` on the final ``done`` chunk.
    """
    if chunk.type == ChunkType.TOOL_CALLS:
        return True
    return chunk.type == ChunkType.DONE and bool(chunk.requires_action)
