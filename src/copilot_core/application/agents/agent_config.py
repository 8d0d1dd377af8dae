"""Agent loop configuration.

This module defines the configuration dataclass for the agent loop,
including iteration limits, history bounds and approval behavior.
"""

from dataclasses import dataclass, fields
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from copilot_core.application.services.permission_storage import PermissionStorageAdapter
    from copilot_core.application.settings import Settings


@dataclass
class AgentLoopConfig:
    """Configuration for an AgentLoop.

    Attributes:
        max_iterations: Maximum consecutive tool turns before execution pauses
        max_execution_history: Tool executions retained (oldest pruned first)
        auto_approve: Run tools that need approval without asking
        permission_storage: Optional store of persisted approval decisions
    """

    # Iteration limits (safety bounds)
    max_iterations: int = 20
    max_execution_history: int = 100

    # Approval behavior
    auto_approve: bool = False
    permission_storage: "PermissionStorageAdapter | None" = None

    @classmethod
    def default(cls) -> "AgentLoopConfig":
        return cls()

    @classmethod
    def from_settings(cls, settings: "Settings") -> "AgentLoopConfig":
        """Build a config from application settings."""
        return cls(
            max_iterations=settings.agent_max_iterations,
            max_execution_history=settings.agent_max_execution_history,
            auto_approve=settings.agent_auto_approve,
        )

    def with_changes(self, **changes: Any) -> "AgentLoopConfig":
        """Create a copy with some fields replaced.

        Raises:
            ValueError: If a change names an unknown field
        """
        known = {f.name for f in fields(self)}
        unknown = set(changes) - known
        if unknown:
            raise ValueError(f"Unknown agent loop config fields: {sorted(unknown)}")
        values = {f.name: getattr(self, f.name) for f in fields(self)}
        values.update(changes)
        return AgentLoopConfig(**values)
