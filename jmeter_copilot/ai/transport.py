"""Chat transport interface.

The chat service only depends on the shapes declared here, so any
backend (the Copilot HTTP API, a test double, a future SDK) can be
plugged in.  Every operation that may take time returns a
:class:`concurrent.futures.Future`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from concurrent.futures import Future
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from jmeter_copilot.ai.events import MessageEvent, SessionEvent


class CopilotModel(str, Enum):
    """Models selectable for a Copilot chat session."""

    CLAUDE_SONNET_4_5 = "claude-sonnet-4.5"
    CLAUDE_SONNET_4 = "claude-sonnet-4"
    CLAUDE_OPUS_4_5 = "claude-opus-4.5"
    GPT_5 = "gpt-5"
    GPT_5_MINI = "gpt-5-mini"
    GPT_4_1 = "gpt-4.1"
    GEMINI_2_5_PRO = "gemini-2.5-pro"

    @classmethod
    def from_value(cls, value: str | CopilotModel) -> CopilotModel:
        """Look up a model by its API identifier (case-insensitive)."""
        if isinstance(value, CopilotModel):
            return value
        wanted = str(value).strip().lower()
        for model in cls:
            if model.value == wanted:
                return model
        raise ValueError(
            f"Unknown model: '{value}'. Available: {', '.join(m.value for m in cls)}"
        )


DEFAULT_MODEL = CopilotModel.CLAUDE_SONNET_4_5


def available_models() -> list[CopilotModel]:
    """All models a session can be created with."""
    return list(CopilotModel)


class SystemMessageMode(str, Enum):
    """How the session's system message combines with the transport's own."""

    APPEND = "append"
    REPLACE = "replace"


@dataclass(frozen=True)
class SystemMessage:
    mode: SystemMessageMode = SystemMessageMode.APPEND
    content: str = ""


@dataclass(frozen=True)
class SessionConfig:
    """Fixed configuration a session is created with."""

    model: str = DEFAULT_MODEL.value
    streaming: bool = True
    system_message: SystemMessage = field(default_factory=SystemMessage)


EventHandler = Callable[[SessionEvent], None]


class Subscription(ABC):
    """Handle returned by :meth:`ChatSession.on`; closing it unsubscribes."""

    @abstractmethod
    def close(self) -> None:
        """Stop delivering events to the handler."""


class ChatSession(ABC):
    """A conversation with its own server-side (or in-process) context."""

    @property
    def last_response_id(self) -> str | None:
        """Id of the most recently dispatched request, if known at dispatch.

        Read right after :meth:`send` or :meth:`send_and_wait` returns, it
        names the response that call started.
        """
        return None

    @abstractmethod
    def send(self, prompt: str) -> Future[str]:
        """Send *prompt*; resolves with the response id once dispatched.

        Response content arrives through the event subscription.
        """

    @abstractmethod
    def send_and_wait(self, prompt: str) -> Future[MessageEvent | None]:
        """Send *prompt*; resolves with the final message event."""

    @abstractmethod
    def abort(self) -> Future[None]:
        """Request cancellation of the in-flight response."""

    @abstractmethod
    def on(self, handler: EventHandler) -> Subscription:
        """Subscribe *handler* to this session's events."""

    @abstractmethod
    def close(self) -> None:
        """Release the session."""


class ChatTransport(ABC):
    """Factory and lifecycle owner for chat sessions."""

    @abstractmethod
    def start(self) -> Future[None]:
        """Prepare the transport (authenticate, spawn workers, ...)."""

    @abstractmethod
    def create_session(self, config: SessionConfig) -> Future[ChatSession]:
        """Open a new session with *config*."""

    @abstractmethod
    def close(self) -> None:
        """Shut the transport down."""


# ----------------------------------------------------------------------
# Future helpers for implementers
# ----------------------------------------------------------------------


def completed_future(value: Any = None) -> Future:
    """A future already resolved with *value*."""
    future: Future = Future()
    future.set_result(value)
    return future


def failed_future(exc: BaseException) -> Future:
    """A future already failed with *exc*."""
    future: Future = Future()
    future.set_exception(exc)
    return future
