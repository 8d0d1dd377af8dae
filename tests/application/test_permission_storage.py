"""Tests for the in-memory tool permission storage."""

import pytest

from copilot_core.application.services import InMemoryPermissionStorage
from copilot_core.domain.models import PermissionLevel, ToolPermission


class TestInMemoryPermissionStorage:
    """Test permission persistence operations."""

    @pytest.mark.asyncio
    async def test_set_and_get(self, permission_storage: InMemoryPermissionStorage) -> None:
        """Test storing a permission and reading it back."""
        await permission_storage.set_permission(ToolPermission(tool_name="delete_file", level=PermissionLevel.DENY_ALWAYS))

        permission = await permission_storage.get_permission("delete_file")

        assert permission is not None
        assert permission.level == PermissionLevel.DENY_ALWAYS
        assert permission.last_used_at is not None

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, permission_storage: InMemoryPermissionStorage) -> None:
        assert await permission_storage.get_permission("unknown") is None

    @pytest.mark.asyncio
    async def test_set_replaces_existing(self, permission_storage: InMemoryPermissionStorage) -> None:
        await permission_storage.set_permission(ToolPermission(tool_name="x", level=PermissionLevel.ALLOW_ALWAYS))
        await permission_storage.set_permission(ToolPermission(tool_name="x", level=PermissionLevel.ASK))

        permissions = await permission_storage.get_all_permissions()

        assert len(permissions) == 1
        assert permissions[0].level == PermissionLevel.ASK

    @pytest.mark.asyncio
    async def test_remove_and_clear(self, permission_storage: InMemoryPermissionStorage) -> None:
        await permission_storage.set_permission(ToolPermission(tool_name="a", level=PermissionLevel.ALLOW_ALWAYS))
        await permission_storage.set_permission(ToolPermission(tool_name="b", level=PermissionLevel.ALLOW_ALWAYS))

        await permission_storage.remove_permission("a")
        await permission_storage.remove_permission("never-stored")
        assert [p.tool_name for p in await permission_storage.get_all_permissions()] == ["b"]

        await permission_storage.clear_all()
        assert await permission_storage.get_all_permissions() == []

    @pytest.mark.asyncio
    async def test_clear_session_permissions(self, permission_storage: InMemoryPermissionStorage) -> None:
        """Test that only session-scoped permissions are dropped."""
        await permission_storage.set_permission(ToolPermission(tool_name="a", level=PermissionLevel.SESSION))
        await permission_storage.set_permission(ToolPermission(tool_name="b", level=PermissionLevel.ALLOW_ALWAYS))

        await permission_storage.clear_session_permissions()

        assert [p.tool_name for p in await permission_storage.get_all_permissions()] == ["b"]
