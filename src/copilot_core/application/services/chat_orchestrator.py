"""Chat orchestration for the agentic chat core.

This module provides the ChatOrchestrator, which owns the conversation
state, builds outgoing requests, drives the transport and folds incoming
stream chunks into messages.

Design Principles:
- One request cycle in flight per orchestrator
- The actively streaming message is always addressed by id, never by position
- Tool results are stored in full and reduced for the model only at send time
- Tool calls are announced through the event channel; the orchestrator never
  executes tools itself
"""

import asyncio
import json
import logging
import time
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, replace
from typing import Any

from opentelemetry import trace

from copilot_core.application.events import ChatEvent, ChatEventType, EventChannel
from copilot_core.application.services.chat_state import ChatState, SimpleChatState
from copilot_core.application.services.message_factory import (
    create_tool_message,
    create_user_message,
    find_unresolved_tool_calls,
    generate_message_id,
    get_last_assistant_message,
    stream_state_to_message,
)
from copilot_core.application.services.stream_parser import create_stream_state, is_done, reduce_chunk, requires_tool_execution
from copilot_core.application.transport import ChatRequest, ChatResponse, ChatTransport
from copilot_core.domain.models import (
    AiResponseMode,
    AttachmentType,
    ChatStatus,
    ChunkType,
    Message,
    MessageAttachment,
    MessageRole,
    StreamChunk,
    ToolCall,
    ToolDefinition,
)
from copilot_core.observability import chat_errors, chat_request_time, chat_requests

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

INTERRUPTED_TOOL_ERROR = "Tool execution was interrupted. Please try again."
SHARED_CONTENT_ACK = "Content shared in conversation."
ATTACHMENT_USER_PROMPT = "Here's my screen:"
RESULT_DISPLAYED_PLACEHOLDER = "[Result displayed to user]"
TOOL_SUCCESS_PLACEHOLDER = "[Tool executed successfully]"
CONTROL_FIELDS = ("_aiResponseMode", "_aiContext", "_aiContent")


class ChatStreamError(Exception):
    """An ``error`` chunk was received from the runtime."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


@dataclass
class ChatCallbacks:
    """Optional host callbacks invoked by the orchestrator.

    Attributes:
        on_messages_change: Called with the full message list after it changes
        on_status_change: Called with the new ChatStatus
        on_error: Called with the exception that ended a request cycle
        on_message_start: Called with the id of a new streamed assistant message
        on_message_delta: Called with (message_id, content_fragment)
        on_message_finish: Called with the final streamed assistant message
        on_tool_calls: Called with the tool calls an assistant turn requested
        on_finish: Called with the message list when a turn ends without tool calls
    """

    on_messages_change: Callable[[list[Message]], None] | None = None
    on_status_change: Callable[[ChatStatus], None] | None = None
    on_error: Callable[[Exception], None] | None = None
    on_message_start: Callable[[str], None] | None = None
    on_message_delta: Callable[[str, str], None] | None = None
    on_message_finish: Callable[[Message], None] | None = None
    on_tool_calls: Callable[[list[ToolCall]], None] | None = None
    on_finish: Callable[[list[Message]], None] | None = None


@dataclass
class ToolResultInput:
    """A tool result handed back to the orchestrator.

    Attributes:
        tool_call_id: Id of the assistant tool call this result answers
        result: The tool's result payload (any JSON-serialisable value)
        metadata: Optional metadata stored on the tool message
    """

    tool_call_id: str
    result: Any
    metadata: dict[str, Any] | None = None


def strip_control_fields(result: Any) -> Any:
    """Remove the ``_ai*`` control keys from a dict result; other values pass through."""
    if not isinstance(result, dict):
        return result
    return {k: v for k, v in result.items() if k not in CONTROL_FIELDS}


def build_tool_result_content_for_ai(result: Any, tool: ToolDefinition | None = None, args: dict[str, Any] | None = None) -> str:
    """Reduce a stored tool result to what the model should see.

    Response mode priority: ``result["_aiResponseMode"]`` > ``tool.ai_response_mode`` > full.
    AI context priority: ``result["_aiContext"]`` > ``tool.ai_context`` (text or factory).
    """
    if isinstance(result, str):
        return result

    control = result if isinstance(result, dict) else {}

    mode_value = control.get("_aiResponseMode") or (tool.ai_response_mode if tool else None) or AiResponseMode.FULL
    try:
        mode = AiResponseMode(mode_value)
    except ValueError:
        mode = AiResponseMode.FULL

    if control.get("_aiContent"):
        return json.dumps(control["_aiContent"])

    ai_context: str | None = control.get("_aiContext")
    if not ai_context and tool is not None and tool.ai_context:
        ai_context = tool.ai_context(result, args or {}) if callable(tool.ai_context) else tool.ai_context

    if mode == AiResponseMode.NONE:
        return ai_context or RESULT_DISPLAYED_PLACEHOLDER
    if mode == AiResponseMode.BRIEF:
        return ai_context or TOOL_SUCCESS_PLACEHOLDER
    if ai_context:
        return f"{ai_context}\n\nFull data: {json.dumps(strip_control_fields(result))}"
    return json.dumps(result)


def _extract_attachment(result: Any) -> MessageAttachment | None:
    """Return the user-visible attachment of a result flagged ``addAsUserMessage``."""
    if not isinstance(result, dict) or not result.get("addAsUserMessage"):
        return None
    data = result.get("data")
    if not isinstance(data, dict):
        return None
    attachment = data.get("attachment")
    if isinstance(attachment, MessageAttachment):
        return attachment
    if isinstance(attachment, dict):
        try:
            return MessageAttachment.from_dict(attachment)
        except ValueError:
            return MessageAttachment(
                type=AttachmentType.FILE,
                mime_type=attachment.get("mimeType", "application/octet-stream"),
                data=attachment.get("data"),
                url=attachment.get("url"),
                filename=attachment.get("filename"),
            )
    return None


class ChatOrchestrator:
    """Owns one conversation and drives its request cycles.

    Usage:
        chat = ChatOrchestrator(transport=HttpChatTransport(config), system_prompt="...")
        channel.subscribe(ChatEventType.TOOL_CALLS, handle_tool_calls)
        await chat.send_message("What's the weather in Paris?")
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
        actions: list[dict[str, Any]] | None = None,
        events: EventChannel | None = None,
        callbacks: ChatCallbacks | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            transport: Transport used to reach the runtime
            state: Message/status store (defaults to an in-memory store)
            initial_messages: Messages to seed the conversation with
            system_prompt: Base system prompt
            thread_id: Optional thread identifier passed to the runtime
            llm: Optional model configuration passed to the runtime
            tools: Tool definitions advertised to the model
            actions: Optional host actions passed to the runtime
            events: Event channel to publish on (a private one is created if None)
            callbacks: Optional host callbacks
        """
        self._transport = transport
        self._state = state or SimpleChatState()
        if initial_messages:
            self._state.set_messages([self._ensure_id(m) for m in initial_messages])
        self._system_prompt = system_prompt
        self._thread_id = thread_id
        self._llm = llm
        self._tools: list[ToolDefinition] = list(tools or [])
        self._actions = actions
        self._events = events or EventChannel()
        self._callbacks = callbacks or ChatCallbacks()
        self._dynamic_context = ""
        self._in_flight = False
        self._abort_requested = False
        self._disposed = False

    # =========================================================================
    # Read-only state
    # =========================================================================

    @property
    def events(self) -> EventChannel:
        return self._events

    @property
    def messages(self) -> list[Message]:
        return self._state.messages

    @property
    def status(self) -> ChatStatus:
        return self._state.status

    @property
    def error(self) -> Exception | None:
        return self._state.error

    @property
    def is_streaming(self) -> bool:
        return self._transport.is_streaming()

    @property
    def is_busy(self) -> bool:
        return self._state.status in (ChatStatus.SUBMITTED, ChatStatus.STREAMING)

    @property
    def is_loading(self) -> bool:
        return self.is_busy

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    @property
    def tools(self) -> list[ToolDefinition]:
        return list(self._tools)

    # =========================================================================
    # Public actions
    # =========================================================================

    async def send_message(self, content: str, attachments: list[MessageAttachment] | None = None) -> bool:
        """Append a user message and run a request cycle.

        Returns:
            False (with no state change) if a request is already in progress
        """
        if self._disposed:
            logger.warning("send_message called on a disposed chat")
            return False
        if self.is_busy or self._in_flight:
            logger.debug("send_message blocked: request already in progress")
            return False

        self._resolve_unresolved_tool_calls()

        self._state.push_message(create_user_message(content, attachments))
        self._state.error = None
        self._set_status(ChatStatus.SUBMITTED)
        self._notify_messages()

        # Let the host render the submitted state before the request starts
        await asyncio.sleep(0)

        await self._run_request_cycle()
        return True

    async def continue_with_tool_results(self, results: list[ToolResultInput]) -> bool:
        """Store tool results and resume the conversation.

        Results flagged ``addAsUserMessage`` with ``data.attachment`` keep only
        an acknowledgement in the tool message; the attachments are re-sent in
        one synthetic user message so the model can see them.

        Returns:
            False if a request cycle is still in flight or the chat is disposed
        """
        if self._disposed:
            return False
        if self._in_flight:
            logger.debug("continue_with_tool_results blocked: request already in progress")
            return False

        attachments: list[MessageAttachment] = []
        for item in results:
            result = item.result
            attachment = _extract_attachment(result)
            if attachment is not None:
                attachments.append(attachment)
                result = {"success": True, "message": result.get("message") or SHARED_CONTENT_ACK}
            self._state.push_message(create_tool_message(item.tool_call_id, result, metadata=item.metadata))

        if attachments:
            logger.debug(f"Adding user message with {len(attachments)} attachments")
            self._state.push_message(create_user_message(ATTACHMENT_USER_PROMPT, attachments))

        self._set_status(ChatStatus.SUBMITTED)
        self._notify_messages()

        await asyncio.sleep(0)

        await self._run_request_cycle()
        return True

    def stop(self) -> None:
        """Abort the in-flight request and return to ready."""
        self._abort_requested = True
        self._transport.abort()
        self._set_status(ChatStatus.READY)

    async def regenerate(self, message_id: str | None = None) -> bool:
        """Drop the target message and everything after it, then resend.

        The target is ``message_id`` or else the most recent assistant message.

        Returns:
            False if there is nothing to regenerate or a request is in progress
        """
        if self._disposed or self._in_flight:
            return False

        messages = self._state.messages
        if message_id is not None:
            target_index = next((i for i, m in enumerate(messages) if m.id == message_id), -1)
        else:
            target_index = next((i for i in range(len(messages) - 1, -1, -1) if messages[i].role == MessageRole.ASSISTANT), -1)

        if target_index <= 0:
            return False

        self._state.set_messages(messages[:target_index])
        self._notify_messages()
        self._set_status(ChatStatus.SUBMITTED)
        await self._run_request_cycle()
        return True

    def set_tools(self, tools: list[ToolDefinition]) -> None:
        self._tools = list(tools)

    def set_context(self, context: str) -> None:
        """Set the dynamic app context appended to the system prompt."""
        self._dynamic_context = context
        logger.debug(f"Context updated: {len(context)} chars")

    def set_system_prompt(self, prompt: str) -> None:
        self._system_prompt = prompt

    def set_messages(self, messages: list[Message]) -> None:
        self._state.set_messages([self._ensure_id(m) for m in messages])
        self._notify_messages()

    def clear_messages(self) -> None:
        self._state.set_messages([])
        self._notify_messages()

    def dispose(self) -> None:
        """Abort any request and stop accepting new ones."""
        self._disposed = True
        self._abort_requested = True
        self._transport.abort()
        self._events.clear()

    def revive(self) -> None:
        """Accept requests again after ``dispose``."""
        self._disposed = False

    def mark_ready(self) -> None:
        """Return a tool-pending turn to ready without sending anything."""
        if self.is_busy and not self._in_flight:
            self._set_status(ChatStatus.READY)

    # =========================================================================
    # Request building
    # =========================================================================

    def build_request(self) -> ChatRequest:
        """Build the outgoing request from the current conversation."""
        tools = [tool.to_wire() for tool in self._tools if tool.available is not False]
        tool_defs = {tool.name: tool for tool in self._tools}

        messages = self._state.messages
        tool_call_map: dict[str, tuple[str, dict[str, Any]]] = {}
        for message in messages:
            if message.role == MessageRole.ASSISTANT and message.tool_calls:
                for tc in message.tool_calls:
                    tool_call_map[tc.id] = (tc.name, tc.parsed_arguments())

        outgoing = [self._transform_for_model(m, tool_call_map, tool_defs) for m in messages]

        return ChatRequest(
            messages=outgoing,
            thread_id=self._thread_id,
            system_prompt=self._effective_system_prompt(),
            llm=self._llm,
            tools=tools or None,
            actions=self._actions,
        )

    def _effective_system_prompt(self) -> str | None:
        if not self._dynamic_context:
            return self._system_prompt
        return f"{self._system_prompt or ''}\n\n## Current App Context:\n{self._dynamic_context}".strip()

    def _transform_for_model(
        self,
        message: Message,
        tool_call_map: dict[str, tuple[str, dict[str, Any]]],
        tool_defs: dict[str, ToolDefinition],
    ) -> Message:
        if message.role != MessageRole.TOOL or not message.content or not message.tool_call_id:
            return message
        try:
            full_result = json.loads(message.content)
        except json.JSONDecodeError:
            return message

        tool_def = None
        args: dict[str, Any] = {}
        call_info = tool_call_map.get(message.tool_call_id)
        if call_info is not None:
            tool_name, args = call_info
            tool_def = tool_defs.get(tool_name)

        return replace(message, content=build_tool_result_content_for_ai(full_result, tool_def, args))

    # =========================================================================
    # Request cycle
    # =========================================================================

    async def _run_request_cycle(self) -> None:
        """Send one request and fold its response; announce tool calls afterwards."""
        self._in_flight = True
        self._abort_requested = False
        pending_tool_calls: list[ToolCall] | None = None
        start_time = time.time()
        chat_requests.add(1)

        with tracer.start_as_current_span("chat.request_cycle") as span:
            span.set_attribute("chat.message_count", len(self._state.messages))
            try:
                request = self.build_request()
                response = await self._transport.send(request)
                if isinstance(response, ChatResponse):
                    span.set_attribute("chat.response_mode", "json")
                    pending_tool_calls = self._handle_json_response(response)
                else:
                    span.set_attribute("chat.response_mode", "stream")
                    pending_tool_calls = await self._handle_stream_response(response)
                span.set_attribute("chat.tool_call_count", len(pending_tool_calls or []))
            except Exception as e:
                span.set_attribute("error", True)
                if self._abort_requested:
                    logger.info(f"Request ended after stop: {e}")
                else:
                    self._handle_error(e)
                    self._in_flight = False
                    await self._events.publish(ChatEvent(type=ChatEventType.ERROR, data={"error": str(e)}))
                    return
            finally:
                self._in_flight = False
                chat_request_time.record((time.time() - start_time) * 1000)

        if pending_tool_calls and not self._abort_requested:
            await self._announce_tool_calls(pending_tool_calls)
        await self._events.publish(ChatEvent(type=ChatEventType.DONE))

    async def _handle_stream_response(self, stream: AsyncIterator[StreamChunk]) -> list[ToolCall] | None:
        self._set_status(ChatStatus.STREAMING)

        stream_state = create_stream_state(generate_message_id())
        stored_id = stream_state.message_id
        self._state.push_message(stream_state_to_message(stream_state))
        if self._callbacks.on_message_start:
            self._callbacks.on_message_start(stored_id)

        tool_calls_signalled = False
        done_messages: list[Message] | None = None
        chunk_count = 0

        try:
            async for chunk in stream:
                chunk_count += 1

                if chunk.type == ChunkType.ERROR:
                    raise ChatStreamError(chunk.message or "Stream error")

                stream_state = reduce_chunk(chunk, stream_state)
                if chunk.type == ChunkType.DONE and chunk.messages:
                    done_messages = chunk.messages

                updated = stream_state_to_message(stream_state)
                self._state.update_message_by_id(stored_id, lambda _, m=updated: m)
                stored_id = updated.id

                if chunk.type == ChunkType.MESSAGE_DELTA and self._callbacks.on_message_delta:
                    self._callbacks.on_message_delta(stored_id, chunk.content or "")

                if requires_tool_execution(chunk):
                    tool_calls_signalled = True

                if is_done(chunk):
                    break
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()

        logger.debug(f"Processed {chunk_count} stream chunks")

        final_message = stream_state_to_message(stream_state)
        if tool_calls_signalled and not final_message.tool_calls and done_messages:
            reported = get_last_assistant_message(done_messages)
            if reported and reported.tool_calls:
                final_message = replace(final_message, tool_calls=reported.tool_calls)
        self._state.update_message_by_id(stored_id, lambda _: final_message)

        if not final_message.content and not final_message.tool_calls:
            logger.warning("Empty response: no content and no tool calls")

        if self._callbacks.on_message_finish:
            self._callbacks.on_message_finish(final_message)
        self._notify_messages()

        if self._abort_requested:
            return None
        if tool_calls_signalled and final_message.tool_calls:
            return final_message.tool_calls

        self._finish_turn()
        return None

    def _handle_json_response(self, response: ChatResponse) -> list[ToolCall] | None:
        for message in response.messages:
            self._state.push_message(replace(message, id=generate_message_id()))
        self._notify_messages()

        messages = self._state.messages
        last = messages[-1] if messages else None
        if response.requires_action and last is not None and last.tool_calls:
            return last.tool_calls

        self._finish_turn()
        return None

    async def _announce_tool_calls(self, tool_calls: list[ToolCall]) -> None:
        logger.info(f"Assistant requested {len(tool_calls)} tool call(s): {[tc.name for tc in tool_calls]}")
        if self._callbacks.on_tool_calls:
            self._callbacks.on_tool_calls(tool_calls)
        if not self._events.has_subscribers(ChatEventType.TOOL_CALLS):
            logger.debug("No tool call subscribers; returning to ready")
            self._finish_turn()
            return
        await self._events.publish(ChatEvent(type=ChatEventType.TOOL_CALLS, data={"tool_calls": tool_calls}))

    def _finish_turn(self) -> None:
        self._set_status(ChatStatus.READY)
        if self._callbacks.on_finish:
            self._callbacks.on_finish(self._state.messages)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _resolve_unresolved_tool_calls(self) -> None:
        """Answer dangling assistant tool calls with a synthetic failure result."""
        unresolved = find_unresolved_tool_calls(self._state.messages)
        if not unresolved:
            return
        logger.warning(f"Resolving {len(unresolved)} unresolved tool call(s) before sending")
        for tool_call in unresolved:
            self._state.push_message(
                create_tool_message(
                    tool_call.id,
                    {"success": False, "error": INTERRUPTED_TOOL_ERROR},
                    metadata={"synthetic": True, "reason": "interrupted"},
                )
            )

    def _handle_error(self, error: Exception) -> None:
        logger.error(f"Chat request failed: {error}")
        chat_errors.add(1, {"error_type": type(error).__name__})
        self._state.error = error
        self._set_status(ChatStatus.ERROR)
        if self._callbacks.on_error:
            self._callbacks.on_error(error)

    def _set_status(self, status: ChatStatus) -> None:
        if self._state.status == status:
            return
        self._state.status = status
        if self._callbacks.on_status_change:
            self._callbacks.on_status_change(status)
        self._events.notify(ChatEvent(type=ChatEventType.STATUS_CHANGED, data={"status": status}))

    def _notify_messages(self) -> None:
        if self._callbacks.on_messages_change:
            self._callbacks.on_messages_change(self._state.messages)
        self._events.notify(ChatEvent(type=ChatEventType.MESSAGES_CHANGED, data={"message_count": len(self._state.messages)}))

    @staticmethod
    def _ensure_id(message: Message) -> Message:
        return message if message.id else replace(message, id=generate_message_id())


__all__ = [
    "ChatCallbacks",
    "ChatOrchestrator",
    "ChatStreamError",
    "ToolResultInput",
    "build_tool_result_content_for_ai",
]
