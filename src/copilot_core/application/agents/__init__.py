"""Agent loop and its configuration."""

from copilot_core.application.agents.agent_config import AgentLoopConfig
from copilot_core.application.agents.agent_loop import (
    CANCELLED_BY_USER,
    REJECTED_BY_USER,
    AgentLoop,
    AgentLoopCallbacks,
    AgentLoopError,
    ApprovalDecision,
    ToolCallRequest,
    ToolExecutionResponse,
)

__all__ = [
    "CANCELLED_BY_USER",
    "REJECTED_BY_USER",
    "AgentLoop",
    "AgentLoopCallbacks",
    "AgentLoopConfig",
    "AgentLoopError",
    "ApprovalDecision",
    "ToolCallRequest",
    "ToolExecutionResponse",
]
