"""A single turn in a Copilot conversation."""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Any


class Role(str, Enum):
    """Who authored a message."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


def _now_millis() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class ChatMessage:
    """Immutable chat message.

    ``timestamp`` is epoch milliseconds.  It defaults to the creation
    time (also when passed as *None*) but may be given explicitly for
    deterministic ordering.
    """

    role: Role
    content: str
    timestamp: int | None = None

    def __post_init__(self):
        if self.timestamp is None:
            object.__setattr__(self, "timestamp", _now_millis())

    @property
    def is_from_user(self) -> bool:
        return self.role == Role.USER

    @property
    def is_from_assistant(self) -> bool:
        return self.role == Role.ASSISTANT

    def to_dict(self) -> dict[str, Any]:
        return {"role": self.role.value, "content": self.content, "timestamp": self.timestamp}

    def __str__(self) -> str:
        return f"ChatMessage[{self.role.name}] {self.content}"
