"""Chat state storage for conversation messages and status."""

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable

from copilot_core.domain.models import ChatStatus, Message

logger = logging.getLogger(__name__)

StateListener = Callable[[], None]


class ChatState(ABC):
    """Abstract base class for chat state storage.

    The orchestrator is the only writer. Hosts observe changes through
    ``subscribe`` (e.g. to mirror messages into a UI store).
    """

    @property
    @abstractmethod
    def messages(self) -> list[Message]:
        """Snapshot of the conversation messages, oldest first."""
        pass

    @property
    @abstractmethod
    def status(self) -> ChatStatus:
        pass

    @status.setter
    @abstractmethod
    def status(self, value: ChatStatus) -> None:
        pass

    @property
    @abstractmethod
    def error(self) -> Exception | None:
        pass

    @error.setter
    @abstractmethod
    def error(self, value: Exception | None) -> None:
        pass

    @abstractmethod
    def push_message(self, message: Message) -> None:
        """Append a message to the conversation."""
        pass

    @abstractmethod
    def update_message_by_id(self, message_id: str, updater: Callable[[Message], Message]) -> bool:
        """Replace the message with ``message_id`` by ``updater(message)``.

        Returns:
            True if a message with that id existed
        """
        pass

    @abstractmethod
    def set_messages(self, messages: list[Message]) -> None:
        """Replace the whole conversation."""
        pass

    @abstractmethod
    def clear(self) -> None:
        """Remove all messages and reset status and error."""
        pass

    @abstractmethod
    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register a change listener.

        Returns:
            A callable that removes the listener
        """
        pass


class SimpleChatState(ChatState):
    """In-memory chat state.

    Warning: Messages are lost when the process exits. Hosts that persist
    conversations provide their own ChatState.
    """

    def __init__(self, messages: list[Message] | None = None) -> None:
        self._messages: list[Message] = list(messages or [])
        self._status = ChatStatus.READY
        self._error: Exception | None = None
        self._listeners: list[StateListener] = []

    @property
    def messages(self) -> list[Message]:
        return list(self._messages)

    @property
    def status(self) -> ChatStatus:
        return self._status

    @status.setter
    def status(self, value: ChatStatus) -> None:
        self._status = value
        self._notify()

    @property
    def error(self) -> Exception | None:
        return self._error

    @error.setter
    def error(self, value: Exception | None) -> None:
        self._error = value
        self._notify()

    def push_message(self, message: Message) -> None:
        self._messages.append(message)
        self._notify()

    def update_message_by_id(self, message_id: str, updater: Callable[[Message], Message]) -> bool:
        for index, message in enumerate(self._messages):
            if message.id == message_id:
                self._messages[index] = updater(message)
                self._notify()
                return True
        return False

    def set_messages(self, messages: list[Message]) -> None:
        self._messages = list(messages)
        self._notify()

    def clear(self) -> None:
        self._messages = []
        self._status = ChatStatus.READY
        self._error = None
        self._notify()

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception as e:
                logger.warning(f"Chat state listener failed: {e}")
