"""Loop coordination between the chat orchestrator and the agent loop.

The LoopCoordinator owns both state machines and is the only place that
references both. It subscribes to the orchestrator's ``TOOL_CALLS`` event,
runs the requested tools through the agent loop and feeds the results back
with ``continue_with_tool_results``, until the model stops requesting tools
or the iteration limit pauses execution.
"""

import json
import logging
from typing import Any

from copilot_core.application.agents import AgentLoop, AgentLoopCallbacks, AgentLoopConfig, ToolCallRequest, ToolExecutionResponse
from copilot_core.application.events import ChatEvent, ChatEventType, EventChannel
from copilot_core.application.services.chat_orchestrator import ChatCallbacks, ChatOrchestrator, ToolResultInput
from copilot_core.application.services.chat_state import ChatState
from copilot_core.application.settings import Settings
from copilot_core.application.transport import ChatTransport
from copilot_core.domain.models import ChatStatus, Message, MessageAttachment, PermissionLevel, ToolCall, ToolDefinition, ToolExecution

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS_MESSAGE = "Tool execution paused: iteration limit reached. User can say 'continue' to resume."


def normalize_tool_call(raw: ToolCall | dict[str, Any]) -> ToolCallRequest:
    """Normalize a raw tool call into a ToolCallRequest.

    Accepts a ToolCall, the nested ``{"id", "function": {"name", "arguments"}}``
    shape (arguments as a JSON string or a dict) and the flat
    ``{"id", "name", "args"}`` shape. Malformed JSON arguments become ``{}``.
    """
    if isinstance(raw, ToolCall):
        return ToolCallRequest(id=raw.id, name=raw.name, args=raw.parsed_arguments())

    function = raw.get("function") if isinstance(raw.get("function"), dict) else None
    name = (function or {}).get("name") or raw.get("name") or ""
    args: Any = {}

    arguments = (function or {}).get("arguments")
    if arguments:
        if isinstance(arguments, str):
            try:
                args = json.loads(arguments)
            except json.JSONDecodeError:
                logger.warning(f"Malformed arguments for tool call {raw.get('id')}; using empty args")
                args = {}
        else:
            args = arguments
    elif raw.get("args"):
        args = raw["args"]

    return ToolCallRequest(id=raw.get("id", ""), name=name, args=args if isinstance(args, dict) else {})


class LoopCoordinator:
    """Drives the agentic loop: model turn, tool execution, resumed model turn.

    Usage:
        coordinator = LoopCoordinator(transport, system_prompt="...", tools=[weather_tool])
        await coordinator.send_message("What's the weather in Paris?")
        coordinator.messages  # user, assistant(tool call), tool, assistant
    """

    def __init__(
        self,
        transport: ChatTransport,
        state: ChatState | None = None,
        initial_messages: list[Message] | None = None,
        system_prompt: str | None = None,
        thread_id: str | None = None,
        llm: dict[str, Any] | None = None,
        tools: list[ToolDefinition] | None = None,
        loop_config: AgentLoopConfig | None = None,
        max_iterations_message: str | None = None,
        chat_callbacks: ChatCallbacks | None = None,
        loop_callbacks: AgentLoopCallbacks | None = None,
    ) -> None:
        """Initialize the coordinator and wire its collaborators.

        Args:
            transport: Transport used by the chat orchestrator
            state: Optional chat state store
            initial_messages: Messages to seed the conversation with
            system_prompt: Base system prompt
            thread_id: Optional thread identifier
            llm: Optional model configuration passed to the runtime
            tools: Tools to register
            loop_config: Agent loop configuration
            max_iterations_message: Tool result sent when the iteration limit pauses execution
            chat_callbacks: Optional orchestrator callbacks
            loop_callbacks: Optional agent loop callbacks
        """
        self._events = EventChannel()
        self._agent_loop = AgentLoop(config=loop_config, tools=tools, callbacks=loop_callbacks)
        self._chat = ChatOrchestrator(
            transport=transport,
            state=state,
            initial_messages=initial_messages,
            system_prompt=system_prompt,
            thread_id=thread_id,
            llm=llm,
            tools=self._agent_loop.tools,
            events=self._events,
            callbacks=chat_callbacks,
        )
        self._max_iterations_message = max_iterations_message or DEFAULT_MAX_ITERATIONS_MESSAGE
        self._turn_generation = 0
        self._unsubscribe = self._events.subscribe(ChatEventType.TOOL_CALLS, self._handle_tool_calls)

    @classmethod
    def from_settings(cls, transport: ChatTransport, settings: Settings | None = None, **kwargs: Any) -> "LoopCoordinator":
        """Create a coordinator configured from application settings.

        The agent loop limits, the iteration-limit message and the default
        system prompt come from ``settings``; explicit keyword arguments win.
        """
        settings = settings or Settings()
        kwargs.setdefault("loop_config", AgentLoopConfig.from_settings(settings))
        kwargs.setdefault("max_iterations_message", settings.max_iterations_message)
        kwargs.setdefault("system_prompt", settings.default_system_prompt)
        return cls(transport, **kwargs)

    # =========================================================================
    # Read-only state
    # =========================================================================

    @property
    def chat(self) -> ChatOrchestrator:
        return self._chat

    @property
    def agent_loop(self) -> AgentLoop:
        return self._agent_loop

    @property
    def events(self) -> EventChannel:
        return self._events

    @property
    def messages(self) -> list[Message]:
        return self._chat.messages

    @property
    def status(self) -> ChatStatus:
        return self._chat.status

    @property
    def error(self) -> Exception | None:
        return self._chat.error

    @property
    def tool_executions(self) -> list[ToolExecution]:
        return self._agent_loop.tool_executions

    @property
    def is_busy(self) -> bool:
        """Chat request or tool execution in progress (pending approvals excluded)."""
        return self._chat.is_busy or self._agent_loop.is_processing

    @property
    def is_loading(self) -> bool:
        """Any activity in progress, including approvals waiting on the user."""
        return self.is_busy or bool(self._agent_loop.pending_approvals)

    # =========================================================================
    # Chat actions
    # =========================================================================

    async def send_message(self, content: str, attachments: list[MessageAttachment] | None = None) -> bool:
        """Send a user message, starting a fresh tool-turn budget.

        Returns:
            False if a request, tool execution or approval is in progress
        """
        if self.is_loading:
            logger.debug("send_message blocked: request already in progress")
            return False
        self._agent_loop.reset_iterations()
        return await self._chat.send_message(content, attachments)

    def stop(self) -> None:
        """Reject waiting approvals and abort the stream."""
        self._turn_generation += 1
        self._agent_loop.cancel()
        self._chat.stop()

    async def regenerate(self, message_id: str | None = None) -> bool:
        if self.is_loading:
            return False
        self._agent_loop.reset_iterations()
        return await self._chat.regenerate(message_id)

    def clear_messages(self) -> None:
        self._chat.clear_messages()
        self._agent_loop.clear_tool_executions()

    def set_messages(self, messages: list[Message]) -> None:
        self._chat.set_messages(messages)

    def set_context(self, context: str) -> None:
        self._chat.set_context(context)

    def set_system_prompt(self, prompt: str) -> None:
        self._chat.set_system_prompt(prompt)

    # =========================================================================
    # Tool actions
    # =========================================================================

    def register_tool(self, tool: ToolDefinition) -> None:
        self._agent_loop.register_tool(tool)
        self._chat.set_tools(self._agent_loop.tools)

    def unregister_tool(self, name: str) -> None:
        self._agent_loop.unregister_tool(name)
        self._chat.set_tools(self._agent_loop.tools)

    def set_tools(self, tools: list[ToolDefinition]) -> None:
        self._agent_loop.set_tools(tools)
        self._chat.set_tools(self._agent_loop.tools)

    def approve_tool_execution(
        self,
        execution_id: str,
        extra_data: dict[str, Any] | None = None,
        permission_level: PermissionLevel | None = None,
    ) -> bool:
        return self._agent_loop.approve_tool_execution(execution_id, extra_data, permission_level)

    def reject_tool_execution(
        self,
        execution_id: str,
        reason: str | None = None,
        permission_level: PermissionLevel | None = None,
    ) -> bool:
        return self._agent_loop.reject_tool_execution(execution_id, reason, permission_level)

    def clear_tool_executions(self) -> None:
        self._agent_loop.clear_tool_executions()

    def dispose(self) -> None:
        self._unsubscribe()
        self._agent_loop.dispose()
        self._chat.dispose()

    # =========================================================================
    # Event wiring
    # =========================================================================

    async def _handle_tool_calls(self, event: ChatEvent) -> None:
        raw_calls = event.data.get("tool_calls") or []
        if not raw_calls:
            logger.debug("No tool calls in event")
            self._chat.mark_ready()
            return

        generation = self._turn_generation
        calls = [normalize_tool_call(tc) for tc in raw_calls]
        logger.info(f"Executing {len(calls)} tool call(s): {[c.name for c in calls]}")

        try:
            responses = await self._agent_loop.execute_tool_calls(calls)
        except Exception as e:
            logger.error(f"Tool execution error: {e}", exc_info=True)
            self._chat.mark_ready()
            return

        if generation != self._turn_generation:
            # Stopped while tools ran; the next send reconciles the unanswered calls
            logger.info("Turn stopped during tool execution; not continuing")
            return

        if responses:
            await self._chat.continue_with_tool_results([self._to_result_input(r) for r in responses])
        elif self._agent_loop.max_iterations_reached:
            logger.warning(f"Iteration limit reached; answering {len(calls)} tool call(s) with a pause notice")
            blocked = [
                ToolResultInput(
                    tool_call_id=call.id,
                    result={"success": False, "error": self._max_iterations_message},
                    metadata={"synthetic": True, "reason": "max_iterations"},
                )
                for call in calls
            ]
            await self._chat.continue_with_tool_results(blocked)
        else:
            self._chat.mark_ready()

    @staticmethod
    def _to_result_input(response: ToolExecutionResponse) -> ToolResultInput:
        result = response.result if response.success else {"success": False, "error": response.error}
        return ToolResultInput(tool_call_id=response.tool_call_id, result=result)
