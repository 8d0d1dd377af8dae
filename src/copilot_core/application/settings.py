"""Application settings configuration for the chat core."""

import logging
import sys

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Chat core settings, overridable through ``COPILOT_*`` environment variables."""

    # Debugging Configuration
    log_level: str = "INFO"

    # Runtime Configuration
    runtime_url: str = "http://localhost:3000/api/chat"
    # Set via COPILOT_RUNTIME_HEADERS env var as JSON: {"Authorization": "Bearer ..."}
    runtime_headers: dict[str, str] = {}
    streaming: bool = True  # Request SSE streams instead of single JSON responses
    request_timeout_seconds: float = 60.0

    # Agent Configuration
    agent_max_iterations: int = 20  # Max consecutive tool turns before pausing
    agent_max_execution_history: int = 100  # Tool executions retained for display
    agent_auto_approve: bool = False  # Skip approval prompts for tools that need approval
    max_iterations_message: str = "Tool execution paused: iteration limit reached. User can say 'continue' to resume."

    # System Prompt
    default_system_prompt: str = "You are a helpful assistant."

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="COPILOT_",  # All env vars prefixed with COPILOT_
        case_sensitive=False,
        extra="ignore",
    )


def configure_logging(log_level: str = "INFO") -> None:
    """
    Configure application-wide logging.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    # Reduce noise from third-party loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
