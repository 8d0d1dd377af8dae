"""Tool definition, execution and permission models.

These types describe client-side tools the model may invoke, the lifecycle
record of each invocation, and the per-tool permission a user may persist.
"""

import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

# A tool result is whatever the handler returns; dict results may carry the
# ``success``/``error``/``data`` convention and ``_ai*`` response overrides.
ToolResponse = Any

ToolHandler = Callable[[dict[str, Any], "ToolContext"], "Awaitable[ToolResponse] | ToolResponse"]
ApprovalMessageFactory = Callable[[dict[str, Any]], str]
AiContextFactory = Callable[[ToolResponse, dict[str, Any]], str]


class ToolExecutionStatus(str, Enum):
    """Lifecycle status of a tool execution."""

    PENDING = "pending"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"
    REJECTED = "rejected"


class ToolApprovalStatus(str, Enum):
    """Approval sub-state of a tool execution."""

    NONE = "none"
    REQUIRED = "required"
    APPROVED = "approved"
    REJECTED = "rejected"


class AiResponseMode(str, Enum):
    """How much of a tool result is sent back to the model.

    - FULL: the complete JSON result
    - BRIEF: a static acknowledgement (or the AI context, if any)
    - NONE: only the AI context, falling back to a placeholder
    """

    FULL = "full"
    BRIEF = "brief"
    NONE = "none"


class PermissionLevel(str, Enum):
    """Persisted user decision for a tool that needs approval."""

    ASK = "ask"
    ALLOW_ALWAYS = "allow_always"
    DENY_ALWAYS = "deny_always"
    SESSION = "session"


@dataclass
class ToolContext:
    """Context passed to a tool handler alongside its arguments.

    Attributes:
        tool_call_id: Id of the tool call being answered
        approval_data: Extra data the user supplied while approving
        data: Free-form context data (always contains ``toolCallId``)
    """

    tool_call_id: str
    approval_data: dict[str, Any] | None = None
    data: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.data.setdefault("toolCallId", self.tool_call_id)


@dataclass
class ToolDefinition:
    """A client-side tool the model may call.

    Attributes:
        name: Unique tool name
        description: Description sent to the model
        input_schema: JSON schema of the arguments
        handler: Sync or async callable invoked as ``handler(args, context)``
        needs_approval: Whether the user must approve each call
        approval_message: Static text or factory building it from the arguments
        ai_response_mode: Default response mode for results of this tool
        ai_context: Static text or factory ``(result, args) -> str`` describing the result to the model
        available: Tools marked unavailable are not advertised to the model
    """

    name: str
    description: str = ""
    input_schema: dict[str, Any] = field(default_factory=lambda: {"type": "object", "properties": {}})
    handler: ToolHandler | None = None
    needs_approval: bool = False
    approval_message: str | ApprovalMessageFactory | None = None
    ai_response_mode: AiResponseMode | None = None
    ai_context: str | AiContextFactory | None = None
    available: bool = True

    def to_wire(self) -> dict[str, Any]:
        """Convert to the request wire format."""
        return {"name": self.name, "description": self.description, "inputSchema": self.input_schema}

    def resolve_approval_message(self, args: dict[str, Any]) -> str | None:
        if callable(self.approval_message):
            return self.approval_message(args)
        return self.approval_message


@dataclass
class ToolExecution:
    """Lifecycle record of one dispatched tool call."""

    tool_call_id: str
    name: str
    args: dict[str, Any]
    id: str = field(default_factory=lambda: f"exec-{uuid.uuid4().hex[:12]}")
    status: ToolExecutionStatus = ToolExecutionStatus.PENDING
    approval_status: ToolApprovalStatus = ToolApprovalStatus.NONE
    result: ToolResponse | None = None
    error: str | None = None
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    completed_at: datetime | None = None
    approval_message: str | None = None
    approval_data: dict[str, Any] | None = None

    @property
    def is_finished(self) -> bool:
        return self.status in (ToolExecutionStatus.COMPLETED, ToolExecutionStatus.FAILED, ToolExecutionStatus.REJECTED)

    @property
    def succeeded(self) -> bool:
        return self.status == ToolExecutionStatus.COMPLETED

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "tool_call_id": self.tool_call_id,
            "name": self.name,
            "args": self.args,
            "status": self.status.value,
            "approval_status": self.approval_status.value,
            "result": self.result,
            "error": self.error,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "approval_message": self.approval_message,
            "approval_data": self.approval_data,
        }


@dataclass
class ToolPermission:
    """A persisted permission for a single tool."""

    tool_name: str
    level: PermissionLevel
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    last_used_at: datetime | None = None
