"""Typed publish/subscribe channel between the chat orchestrator and its observers.

The orchestrator publishes events without knowing who listens; the loop
coordinator subscribes to ``TOOL_CALLS`` to drive the agent loop.
"""

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class ChatEventType(str, Enum):
    """Types of events published by a chat orchestrator."""

    TOOL_CALLS = "tool_calls"
    DONE = "done"
    ERROR = "error"
    STATUS_CHANGED = "status_changed"
    MESSAGES_CHANGED = "messages_changed"


@dataclass
class ChatEvent:
    """An event published by a chat orchestrator.

    Attributes:
        type: Type of the event
        data: Event-specific data payload
        timestamp: When the event occurred
    """

    type: ChatEventType
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "event": self.type.value,
            "data": self.data,
            "timestamp": self.timestamp.isoformat(),
        }


EventHandler = Callable[[ChatEvent], Awaitable[None] | None]


class EventChannel:
    """In-process typed publish/subscribe channel.

    Handlers run sequentially in subscription order. A failing handler is
    logged and does not prevent the remaining handlers from running.
    """

    def __init__(self) -> None:
        self._handlers: dict[ChatEventType, list[EventHandler]] = {}
        self._pending: set[asyncio.Future[None]] = set()

    def subscribe(self, event_type: ChatEventType, handler: EventHandler) -> Callable[[], None]:
        """Register a handler for one event type.

        Returns:
            A callable that removes the handler
        """
        self._handlers.setdefault(event_type, []).append(handler)

        def unsubscribe() -> None:
            handlers = self._handlers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    async def publish(self, event: ChatEvent) -> None:
        """Deliver an event to every handler subscribed to its type."""
        for handler in list(self._handlers.get(event.type, [])):
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Event handler for {event.type.value} failed: {e}", exc_info=True)

    def notify(self, event: ChatEvent) -> None:
        """Deliver an event from synchronous code.

        Sync handlers run immediately; coroutine handlers are scheduled on the
        running loop and their failures are logged.
        """
        for handler in list(self._handlers.get(event.type, [])):
            try:
                result = handler(event)
            except Exception as e:
                logger.error(f"Event handler for {event.type.value} failed: {e}", exc_info=True)
                continue
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._pending.add(task)
                task.add_done_callback(self._on_handler_done)

    def has_subscribers(self, event_type: ChatEventType) -> bool:
        return bool(self._handlers.get(event_type))

    def clear(self) -> None:
        self._handlers.clear()

    def _on_handler_done(self, task: "asyncio.Future[None]") -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Event handler task failed: {task.exception()}")
