"""Permission storage for tools that need user approval."""

from abc import ABC, abstractmethod
from datetime import UTC, datetime

from copilot_core.domain.models import PermissionLevel, ToolPermission


class PermissionStorageAdapter(ABC):
    """Abstract base class for tool permission storage.

    Hosts persist ``allow_always``/``deny_always`` decisions here (e.g. in a
    database); the agent loop consults it before asking for approval.
    """

    @abstractmethod
    async def get_permission(self, tool_name: str) -> ToolPermission | None:
        """Retrieve the stored permission for a tool.

        Args:
            tool_name: The tool name

        Returns:
            The permission, or None if no decision is stored
        """
        pass

    @abstractmethod
    async def set_permission(self, permission: ToolPermission) -> None:
        """Store or replace the permission for ``permission.tool_name``."""
        pass

    @abstractmethod
    async def remove_permission(self, tool_name: str) -> None:
        pass

    @abstractmethod
    async def get_all_permissions(self) -> list[ToolPermission]:
        pass

    @abstractmethod
    async def clear_all(self) -> None:
        pass


class InMemoryPermissionStorage(PermissionStorageAdapter):
    """Simple in-memory permission storage.

    Warning: Permissions are lost when the process exits. Hosts that need
    ``allow_always`` to survive restarts provide their own adapter.
    """

    def __init__(self) -> None:
        self._permissions: dict[str, ToolPermission] = {}

    async def get_permission(self, tool_name: str) -> ToolPermission | None:
        permission = self._permissions.get(tool_name)
        if permission is not None:
            permission.last_used_at = datetime.now(UTC)
        return permission

    async def set_permission(self, permission: ToolPermission) -> None:
        self._permissions[permission.tool_name] = permission

    async def remove_permission(self, tool_name: str) -> None:
        self._permissions.pop(tool_name, None)

    async def get_all_permissions(self) -> list[ToolPermission]:
        return list(self._permissions.values())

    async def clear_all(self) -> None:
        self._permissions.clear()

    async def clear_session_permissions(self) -> None:
        """Drop permissions granted only for the current session."""
        self._permissions = {name: p for name, p in self._permissions.items() if p.level != PermissionLevel.SESSION}
