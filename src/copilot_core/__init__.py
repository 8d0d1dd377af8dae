"""Orchestration core for agentic chat clients.

Streams model turns from a chat runtime, executes the client-side tools the
model requests (optionally behind user approval) and resumes the
conversation with their results.
"""

from copilot_core.application.agents import AgentLoop, AgentLoopCallbacks, AgentLoopConfig
from copilot_core.application.services import ChatCallbacks, ChatOrchestrator, LoopCoordinator, SimpleChatState
from copilot_core.application.transport import ChatRequest, ChatTransport, TransportConfig
from copilot_core.domain.models import ChatStatus, Message, MessageRole, ToolDefinition
from copilot_core.infrastructure.adapters import HttpChatTransport

__version__ = "1.0.0"

__all__ = [
    "AgentLoop",
    "AgentLoopCallbacks",
    "AgentLoopConfig",
    "ChatCallbacks",
    "ChatOrchestrator",
    "ChatRequest",
    "ChatStatus",
    "ChatTransport",
    "HttpChatTransport",
    "LoopCoordinator",
    "Message",
    "MessageRole",
    "SimpleChatState",
    "ToolDefinition",
    "TransportConfig",
]
