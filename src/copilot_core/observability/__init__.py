"""Observability utilities and metrics for the chat core."""

from .metrics import (
    chat_errors,
    chat_request_time,
    chat_requests,
    chat_stream_chunks,
    iteration_limit_hits,
    tool_approvals_requested,
    tool_execution_count,
    tool_execution_errors,
    tool_execution_time,
)

__all__ = [
    # Chat metrics
    "chat_errors",
    "chat_request_time",
    "chat_requests",
    "chat_stream_chunks",
    # Tool metrics
    "tool_execution_count",
    "tool_execution_errors",
    "tool_execution_time",
    # Agent loop metrics
    "tool_approvals_requested",
    "iteration_limit_hits",
]
