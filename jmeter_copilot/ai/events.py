"""Inbound session events delivered by a chat transport.

The set is closed: a session emits only these three event types, and
the chat service dispatches on them exhaustively.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class DeltaEvent:
    """An incremental chunk of an in-progress assistant response."""

    delta_content: str
    response_id: str | None = None


@dataclass(frozen=True)
class MessageEvent:
    """A complete assistant message; the last event for its response."""

    content: str
    response_id: str | None = None


@dataclass(frozen=True)
class SessionErrorEvent:
    """The transport failed while producing a response."""

    message: str
    response_id: str | None = None


SessionEvent = Union[DeltaEvent, MessageEvent, SessionErrorEvent]
