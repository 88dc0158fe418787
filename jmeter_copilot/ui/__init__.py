"""Terminal output for chat sessions."""

from jmeter_copilot.ui.console import THEME, ConsoleChatView

__all__ = [
    "ConsoleChatView",
    "THEME",
]
