"""Bounded conversation history.

Messages are kept in chronological order.  When the bound is exceeded
the oldest messages are evicted first.  Readers only ever see an
immutable snapshot.
"""

from __future__ import annotations

import threading
from collections import deque

from jmeter_copilot.chat.message import ChatMessage, Role

DEFAULT_MAX_MESSAGES = 100


class ConversationHistory:
    """Ordered, size-bounded store of :class:`ChatMessage` objects."""

    def __init__(self, max_messages: int = DEFAULT_MAX_MESSAGES):
        if max_messages < 1:
            raise ValueError(f"max_messages must be at least 1, got {max_messages}")
        self._max_messages = max_messages
        self._messages: deque[ChatMessage] = deque(maxlen=max_messages)
        self._lock = threading.Lock()

    @property
    def max_messages(self) -> int:
        return self._max_messages

    @property
    def messages(self) -> tuple[ChatMessage, ...]:
        """Snapshot of all messages, oldest first."""
        with self._lock:
            return tuple(self._messages)

    def add_message(self, message: ChatMessage) -> None:
        """Append *message*, evicting the oldest entry if the bound is hit."""
        with self._lock:
            self._messages.append(message)

    def size(self) -> int:
        with self._lock:
            return len(self._messages)

    def __len__(self) -> int:
        return self.size()

    def clear(self) -> None:
        with self._lock:
            self._messages.clear()

    def last_message(self) -> ChatMessage | None:
        with self._lock:
            return self._messages[-1] if self._messages else None

    def last_assistant_message(self) -> ChatMessage | None:
        with self._lock:
            for message in reversed(self._messages):
                if message.is_from_assistant:
                    return message
        return None

    def messages_by_role(self, role: Role) -> list[ChatMessage]:
        with self._lock:
            return [m for m in self._messages if m.role == role]
