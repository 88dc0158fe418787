"""JMeter Copilot: generate Apache JMeter test plans through GitHub Copilot chat."""

from jmeter_copilot.assistant import TestPlanAssistant, TestPlanConsumer
from jmeter_copilot.chat import ChatMessage, ConversationHistory, CopilotChatService, Role, SessionState
from jmeter_copilot.parsers import ParseFailure, ParseResult, ParseSuccess, parse_xml, parse_xml_file

__version__ = "0.1.0b1"

__all__ = [
    "CopilotChatService",
    "SessionState",
    "ChatMessage",
    "Role",
    "ConversationHistory",
    "TestPlanAssistant",
    "TestPlanConsumer",
    "ParseResult",
    "ParseSuccess",
    "ParseFailure",
    "parse_xml",
    "parse_xml_file",
]
