"""Application services for the chat core."""

from copilot_core.application.services.chat_state import ChatState, SimpleChatState
from copilot_core.application.services.permission_storage import InMemoryPermissionStorage, PermissionStorageAdapter
from copilot_core.application.services.chat_orchestrator import ChatCallbacks, ChatOrchestrator, ChatStreamError, ToolResultInput
from copilot_core.application.services.loop_coordinator import LoopCoordinator, normalize_tool_call

__all__ = [
    "ChatCallbacks",
    "ChatOrchestrator",
    "ChatState",
    "ChatStreamError",
    "InMemoryPermissionStorage",
    "LoopCoordinator",
    "PermissionStorageAdapter",
    "SimpleChatState",
    "ToolResultInput",
    "normalize_tool_call",
]
