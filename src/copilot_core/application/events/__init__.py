"""Application events."""

from copilot_core.application.events.event_channel import ChatEvent, ChatEventType, EventChannel, EventHandler

__all__ = ["ChatEvent", "ChatEventType", "EventChannel", "EventHandler"]
