"""Pytest configuration and shared fixtures for all tests.

This module provides:
- Test configuration and markers
- Shared fixtures for core components (transport, orchestrator, agent loop)
"""

import pytest
from _pytest.config import Config

from copilot_core.application.agents import AgentLoop, AgentLoopConfig
from copilot_core.application.services import InMemoryPermissionStorage, SimpleChatState
from copilot_core.domain.models import ToolDefinition
from tests.fixtures.factories import ScriptedTransport, ToolDefinitionFactory

# ============================================================================
# PYTEST CONFIGURATION
# ============================================================================


def pytest_configure(config: Config) -> None:
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests (fast, no external dependencies)")
    config.addinivalue_line("markers", "integration: Integration tests (several components wired together)")
    config.addinivalue_line("markers", "transport: HTTP transport tests")


# ============================================================================
# STATE FIXTURES
# ============================================================================


@pytest.fixture
def chat_state() -> SimpleChatState:
    """Provide an empty in-memory chat state."""
    return SimpleChatState()


@pytest.fixture
def permission_storage() -> InMemoryPermissionStorage:
    """Provide an in-memory permission store."""
    return InMemoryPermissionStorage()


# ============================================================================
# TOOL FIXTURES
# ============================================================================


@pytest.fixture
def weather_tool() -> ToolDefinition:
    """A tool returning a fixed weather reading."""
    return ToolDefinitionFactory.create("get_weather")


@pytest.fixture
def agent_loop(weather_tool: ToolDefinition) -> AgentLoop:
    """Provide an agent loop with the weather tool registered."""
    return AgentLoop(AgentLoopConfig(), tools=[weather_tool])


# ============================================================================
# TRANSPORT FIXTURES
# ============================================================================


@pytest.fixture
def empty_transport() -> ScriptedTransport:
    """A scripted transport with no responses queued."""
    return ScriptedTransport()
