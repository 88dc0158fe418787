"""Conversation model and the Copilot chat session service."""

from jmeter_copilot.chat.history import DEFAULT_MAX_MESSAGES, ConversationHistory
from jmeter_copilot.chat.message import ChatMessage, Role
from jmeter_copilot.chat.service import CopilotChatService, SessionState

__all__ = [
    "ChatMessage",
    "Role",
    "ConversationHistory",
    "DEFAULT_MAX_MESSAGES",
    "CopilotChatService",
    "SessionState",
]
