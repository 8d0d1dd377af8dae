"""Agent loop: tool registry and tool execution lifecycle.

The agent loop executes the tool calls of one assistant turn, strictly in
the order the model emitted them, and tracks each invocation as a
ToolExecution:

    pending -> (approval: required -> approved | rejected) -> executing -> completed | failed | rejected

Approval waits are explicit futures keyed by execution id, resolved by
``approve_tool_execution`` / ``reject_tool_execution`` from the host UI.
The loop never raises tool errors to its caller; every outcome becomes a
ToolExecutionResponse.
"""

import asyncio
import inspect
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from opentelemetry import trace

from copilot_core.application.agents.agent_config import AgentLoopConfig
from copilot_core.domain.models import (
    PermissionLevel,
    ToolApprovalStatus,
    ToolContext,
    ToolDefinition,
    ToolExecution,
    ToolExecutionStatus,
    ToolPermission,
)
from copilot_core.observability import (
    iteration_limit_hits,
    tool_approvals_requested,
    tool_execution_count,
    tool_execution_errors,
    tool_execution_time,
)

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

REJECTED_BY_USER = "Tool execution was rejected by user"
CANCELLED_BY_USER = "Tool execution was cancelled"


class AgentLoopError(Exception):
    """Error raised by the agent loop for invalid host requests.

    Attributes:
        message: Human-readable error message
        error_code: Categorized error code
        details: Additional error details
    """

    def __init__(self, message: str, error_code: str = "agent_loop_error", details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API response."""
        return {
            "message": self.message,
            "error_code": self.error_code,
            "details": self.details,
        }


@dataclass
class ToolCallRequest:
    """A normalized tool call handed to the agent loop.

    Attributes:
        id: Tool call id (also used as the execution id)
        name: Name of the tool to call
        args: Decoded arguments
    """

    id: str
    name: str
    args: dict[str, Any]


@dataclass
class ToolExecutionResponse:
    """Outcome of one tool call.

    Attributes:
        tool_call_id: ID of the tool call this result is for
        success: Whether the handler ran and returned
        result: Handler return value (on success)
        error: Error message (on failure or rejection)
    """

    tool_call_id: str
    success: bool
    result: Any | None = None
    error: str | None = None


@dataclass
class ApprovalDecision:
    """Verdict delivered to a waiting tool execution."""

    approved: bool
    extra_data: dict[str, Any] | None = None
    reason: str | None = None


@dataclass
class AgentLoopCallbacks:
    """Optional host callbacks invoked by the agent loop."""

    on_executions_change: Callable[[list[ToolExecution]], None] | None = None
    on_execution_start: Callable[[ToolExecution], None] | None = None
    on_execution_complete: Callable[[ToolExecution], None] | None = None
    on_approval_required: Callable[[ToolExecution], None] | None = None
    on_max_iterations_reached: Callable[[], None] | None = None


class AgentLoop:
    """Executes tool calls and tracks their lifecycle.

    Usage:
        loop = AgentLoop(AgentLoopConfig(max_iterations=10))
        loop.register_tool(ToolDefinition(name="get_weather", handler=get_weather))
        responses = await loop.execute_tool_calls([ToolCallRequest(id="t1", name="get_weather", args={"city": "Paris"})])
    """

    def __init__(
        self,
        config: AgentLoopConfig | None = None,
        tools: list[ToolDefinition] | None = None,
        callbacks: AgentLoopCallbacks | None = None,
    ) -> None:
        """Initialize the agent loop.

        Args:
            config: Loop configuration (uses defaults if None)
            tools: Tools to register up front
            callbacks: Optional host callbacks
        """
        self._config = config or AgentLoopConfig.default()
        self._callbacks = callbacks or AgentLoopCallbacks()
        self._tools: dict[str, ToolDefinition] = {}
        self._executions: list[ToolExecution] = []
        self._pending_approvals: dict[str, asyncio.Future[ApprovalDecision]] = {}
        self._iteration = 0
        self._max_iterations_reached = False
        self._processing = False
        self._background_tasks: set[asyncio.Task[None]] = set()

        for tool in tools or []:
            self.register_tool(tool)

    # =========================================================================
    # State
    # =========================================================================

    @property
    def config(self) -> AgentLoopConfig:
        return self._config

    @property
    def iteration(self) -> int:
        return self._iteration

    @property
    def max_iterations(self) -> int:
        return self._config.max_iterations

    @property
    def max_iterations_reached(self) -> bool:
        return self._max_iterations_reached

    @property
    def is_processing(self) -> bool:
        return self._processing

    @property
    def tool_executions(self) -> list[ToolExecution]:
        return list(self._executions)

    @property
    def pending_approvals(self) -> list[ToolExecution]:
        return [e for e in self._executions if e.approval_status == ToolApprovalStatus.REQUIRED]

    @property
    def tools(self) -> list[ToolDefinition]:
        return list(self._tools.values())

    # =========================================================================
    # Registry
    # =========================================================================

    def register_tool(self, tool: ToolDefinition) -> None:
        self._tools[tool.name] = tool

    def unregister_tool(self, name: str) -> None:
        self._tools.pop(name, None)

    def get_tool(self, name: str) -> ToolDefinition | None:
        return self._tools.get(name)

    def set_tools(self, tools: list[ToolDefinition]) -> None:
        self._tools = {tool.name: tool for tool in tools}

    # =========================================================================
    # Execution
    # =========================================================================

    async def execute_tool_calls(self, calls: list[ToolCallRequest]) -> list[ToolExecutionResponse]:
        """Execute the tool calls of one assistant turn, in order.

        Returns an empty list without executing anything once the iteration
        limit is reached; ``max_iterations_reached`` tells that case apart from
        an empty call list.
        """
        if self._iteration >= self._config.max_iterations:
            logger.warning(f"Max iterations reached ({self._config.max_iterations}); skipping {len(calls)} tool call(s)")
            self._max_iterations_reached = True
            iteration_limit_hits.add(1)
            if self._callbacks.on_max_iterations_reached:
                self._callbacks.on_max_iterations_reached()
            return []

        self._iteration += 1
        self._processing = True
        responses: list[ToolExecutionResponse] = []
        try:
            for call in calls:
                responses.append(await self.execute_single_tool(call))
        finally:
            self._processing = False
        return responses

    async def execute_single_tool(self, call: ToolCallRequest) -> ToolExecutionResponse:
        """Run one tool call through the approval and execution state machine."""
        tool = self._tools.get(call.name)
        execution = ToolExecution(id=call.id, tool_call_id=call.id, name=call.name, args=call.args)
        self._add_execution(execution)

        with tracer.start_as_current_span("agent_loop.execute_tool") as span:
            span.set_attribute("tool.name", call.name)
            span.set_attribute("tool.call_id", call.id)

            if tool is None:
                span.set_attribute("error", True)
                return self._fail(execution, f'Tool "{call.name}" not found')

            approval_data: dict[str, Any] | None = None
            if tool.needs_approval and not self._config.auto_approve:
                decision = await self._stored_decision(tool)
                if decision is None:
                    decision = await self._wait_for_approval(execution, tool)

                if not decision.approved:
                    span.set_attribute("tool.rejected", True)
                    return self._reject(execution, decision.reason)

                approval_data = decision.extra_data
                execution.approval_status = ToolApprovalStatus.APPROVED
                execution.approval_data = approval_data

            if tool.handler is None:
                span.set_attribute("error", True)
                return self._fail(execution, f'Tool "{call.name}" has no handler')

            execution.status = ToolExecutionStatus.EXECUTING
            self._notify_executions()
            if self._callbacks.on_execution_start:
                self._callbacks.on_execution_start(execution)

            start_time = time.time()
            logger.info(f"Executing tool: {call.name}({call.args})")
            try:
                result = tool.handler(call.args, ToolContext(tool_call_id=call.id, approval_data=approval_data))
                if inspect.isawaitable(result):
                    result = await result
            except Exception as e:
                span.set_attribute("error", True)
                logger.error(f"Tool execution error: {call.name} - {e}")
                return self._fail(execution, str(e) or type(e).__name__)
            finally:
                execution_time_ms = (time.time() - start_time) * 1000
                tool_execution_time.record(execution_time_ms, {"tool_name": call.name})
                span.set_attribute("tool.execution_time_ms", execution_time_ms)

            logger.info(f"Tool executed successfully: {call.name} in {execution_time_ms:.2f}ms")
            tool_execution_count.add(1, {"tool_name": call.name, "status": "completed"})
            execution.status = ToolExecutionStatus.COMPLETED
            execution.result = result
            execution.completed_at = datetime.now(UTC)
            self._complete(execution)
            return ToolExecutionResponse(tool_call_id=call.id, success=True, result=result)

    async def _stored_decision(self, tool: ToolDefinition) -> ApprovalDecision | None:
        storage = self._config.permission_storage
        if storage is None:
            return None
        permission = await storage.get_permission(tool.name)
        if permission is None:
            return None
        if permission.level in (PermissionLevel.ALLOW_ALWAYS, PermissionLevel.SESSION):
            logger.debug(f"Tool {tool.name} auto-approved by stored permission ({permission.level.value})")
            return ApprovalDecision(approved=True)
        if permission.level == PermissionLevel.DENY_ALWAYS:
            logger.debug(f"Tool {tool.name} auto-rejected by stored permission")
            return ApprovalDecision(approved=False)
        return None

    async def _wait_for_approval(self, execution: ToolExecution, tool: ToolDefinition) -> ApprovalDecision:
        execution.approval_status = ToolApprovalStatus.REQUIRED
        execution.approval_message = tool.resolve_approval_message(execution.args)

        future: asyncio.Future[ApprovalDecision] = asyncio.get_running_loop().create_future()
        self._pending_approvals[execution.id] = future
        tool_approvals_requested.add(1, {"tool_name": tool.name})
        logger.info(f"Tool {tool.name} awaiting approval (execution {execution.id})")

        self._notify_executions()
        if self._callbacks.on_approval_required:
            self._callbacks.on_approval_required(execution)

        try:
            return await future
        finally:
            self._pending_approvals.pop(execution.id, None)

    # =========================================================================
    # Approval actions
    # =========================================================================

    def approve_tool_execution(
        self,
        execution_id: str,
        extra_data: dict[str, Any] | None = None,
        permission_level: PermissionLevel | None = None,
    ) -> bool:
        """Approve a waiting tool execution.

        Args:
            execution_id: Id of the waiting execution
            extra_data: Data collected in the approval UI, passed to the handler
            permission_level: Optional decision to persist for future calls

        Returns:
            False if no execution with that id is waiting
        """
        future = self._pending_approvals.get(execution_id)
        if future is None or future.done():
            logger.warning(f"No pending approval for execution {execution_id}")
            return False

        execution = self._find_execution(execution_id)
        if execution is not None:
            execution.approval_status = ToolApprovalStatus.APPROVED
            execution.approval_data = extra_data
            if permission_level in (PermissionLevel.ALLOW_ALWAYS, PermissionLevel.SESSION):
                self._persist_permission(execution.name, permission_level)

        future.set_result(ApprovalDecision(approved=True, extra_data=extra_data))
        return True

    def reject_tool_execution(
        self,
        execution_id: str,
        reason: str | None = None,
        permission_level: PermissionLevel | None = None,
    ) -> bool:
        """Reject a waiting tool execution.

        Returns:
            False if no execution with that id is waiting
        """
        future = self._pending_approvals.get(execution_id)
        if future is None or future.done():
            logger.warning(f"No pending approval for execution {execution_id}")
            return False

        execution = self._find_execution(execution_id)
        if execution is not None and permission_level == PermissionLevel.DENY_ALWAYS:
            self._persist_permission(execution.name, permission_level)

        future.set_result(ApprovalDecision(approved=False, reason=reason))
        return True

    def _persist_permission(self, tool_name: str, level: PermissionLevel) -> None:
        storage = self._config.permission_storage
        if storage is None:
            return
        task = asyncio.get_running_loop().create_task(storage.set_permission(ToolPermission(tool_name=tool_name, level=level)))
        self._background_tasks.add(task)
        task.add_done_callback(self._on_persist_done)

    def _on_persist_done(self, task: "asyncio.Task[None]") -> None:
        self._background_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Failed to persist tool permission: {task.exception()}")

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def reset_iterations(self) -> None:
        """Start a fresh tool-turn budget (called when the user sends a message)."""
        self._iteration = 0
        self._max_iterations_reached = False

    def clear_tool_executions(self) -> None:
        self._executions = []
        self._iteration = 0
        self._max_iterations_reached = False
        self._notify_executions()

    def reset(self) -> None:
        """Reset for a new conversation."""
        self.cancel()
        self.clear_tool_executions()

    def update_config(self, **changes: Any) -> None:
        """Replace configuration fields, e.g. ``update_config(max_iterations=5)``.

        Raises:
            AgentLoopError: If a change names an unknown field
        """
        try:
            self._config = self._config.with_changes(**changes)
        except ValueError as e:
            raise AgentLoopError(str(e), error_code="invalid_config", details={"fields": sorted(changes)}) from e
        self._prune_history()

    def cancel(self) -> None:
        """Reject every waiting approval. Running handlers are left to finish."""
        for future in list(self._pending_approvals.values()):
            if not future.done():
                future.set_result(ApprovalDecision(approved=False, reason=CANCELLED_BY_USER))
        self._pending_approvals.clear()

    def dispose(self) -> None:
        self.cancel()
        self._tools.clear()

    # =========================================================================
    # Helpers
    # =========================================================================

    def _fail(self, execution: ToolExecution, error: str) -> ToolExecutionResponse:
        logger.warning(f"Tool execution failed: {execution.name} - {error}")
        tool_execution_count.add(1, {"tool_name": execution.name, "status": "failed"})
        tool_execution_errors.add(1, {"tool_name": execution.name})
        execution.status = ToolExecutionStatus.FAILED
        execution.error = error
        execution.completed_at = datetime.now(UTC)
        self._complete(execution)
        return ToolExecutionResponse(tool_call_id=execution.tool_call_id, success=False, error=error)

    def _reject(self, execution: ToolExecution, reason: str | None) -> ToolExecutionResponse:
        logger.info(f"Tool execution rejected: {execution.name}")
        tool_execution_count.add(1, {"tool_name": execution.name, "status": "rejected"})
        tool_execution_errors.add(1, {"tool_name": execution.name})
        execution.status = ToolExecutionStatus.REJECTED
        execution.approval_status = ToolApprovalStatus.REJECTED
        execution.error = reason or REJECTED_BY_USER
        execution.completed_at = datetime.now(UTC)
        self._complete(execution)
        return ToolExecutionResponse(tool_call_id=execution.tool_call_id, success=False, error=REJECTED_BY_USER)

    def _complete(self, execution: ToolExecution) -> None:
        self._notify_executions()
        if self._callbacks.on_execution_complete:
            self._callbacks.on_execution_complete(execution)

    def _add_execution(self, execution: ToolExecution) -> None:
        self._executions.append(execution)
        self._prune_history()
        self._notify_executions()

    def _prune_history(self) -> None:
        overflow = len(self._executions) - self._config.max_execution_history
        if overflow > 0:
            del self._executions[:overflow]

    def _find_execution(self, execution_id: str) -> ToolExecution | None:
        # Newest first: tool call ids may repeat across long sessions
        for execution in reversed(self._executions):
            if execution.id == execution_id:
                return execution
        return None

    def _notify_executions(self) -> None:
        if self._callbacks.on_executions_change:
            self._callbacks.on_executions_change(list(self._executions))
