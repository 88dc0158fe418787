"""Chat transport abstraction and the Copilot HTTP implementation."""

from jmeter_copilot.ai.copilot_transport import CopilotSession, CopilotTransport
from jmeter_copilot.ai.events import DeltaEvent, MessageEvent, SessionErrorEvent, SessionEvent
from jmeter_copilot.ai.transport import (
    DEFAULT_MODEL,
    ChatSession,
    ChatTransport,
    CopilotModel,
    SessionConfig,
    Subscription,
    SystemMessage,
    SystemMessageMode,
    available_models,
)

__all__ = [
    "ChatTransport",
    "ChatSession",
    "Subscription",
    "SessionConfig",
    "SystemMessage",
    "SystemMessageMode",
    "CopilotModel",
    "DEFAULT_MODEL",
    "available_models",
    "CopilotTransport",
    "CopilotSession",
    "DeltaEvent",
    "MessageEvent",
    "SessionErrorEvent",
    "SessionEvent",
]
