"""Domain models for the chat core.

Value objects shared by the parser, transport, orchestrator and agent loop.
"""

from copilot_core.domain.models.message import (
    AttachmentType,
    ChatStatus,
    FunctionCall,
    Message,
    MessageAttachment,
    MessageRole,
    Source,
    ToolCall,
)
from copilot_core.domain.models.stream import ChatResponse, ChunkType, StreamChunk, StreamingMessageState
from copilot_core.domain.models.tool import (
    AiResponseMode,
    PermissionLevel,
    ToolApprovalStatus,
    ToolContext,
    ToolDefinition,
    ToolExecution,
    ToolExecutionStatus,
    ToolPermission,
    ToolResponse,
)

__all__ = [
    "AiResponseMode",
    "AttachmentType",
    "ChatResponse",
    "ChatStatus",
    "ChunkType",
    "FunctionCall",
    "Message",
    "MessageAttachment",
    "MessageRole",
    "PermissionLevel",
    "Source",
    "StreamChunk",
    "StreamingMessageState",
    "ToolApprovalStatus",
    "ToolCall",
    "ToolContext",
    "ToolDefinition",
    "ToolExecution",
    "ToolExecutionStatus",
    "ToolPermission",
    "ToolResponse",
]
