"""Error types raised (or carried in failed futures) by the chat core.

All errors derive from ``knack.util.CLIError`` so callers that already
catch CLI errors get a readable message without special handling.
"""

from knack.util import CLIError


class CopilotChatError(CLIError):
    """Base class for chat-core errors."""


class NotConnectedError(CopilotChatError):
    """An operation needs a ready session but none is connected."""

    def __init__(self, message: str = "Not connected. Call connect() first."):
        super().__init__(message)


class SessionBusyError(CopilotChatError):
    """A response is still streaming; the session cannot accept a new prompt."""

    def __init__(self, message: str = "A response is already in progress. Wait for it or abort it first."):
        super().__init__(message)


class TransportError(CopilotChatError):
    """The chat transport failed to start, open a session, send, or abort."""


class TestPlanFormatError(CopilotChatError):
    """The structural parser rejected a JMeter document."""

    __test__ = False  # keep pytest from collecting this class
