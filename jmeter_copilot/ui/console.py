"""Rich-based terminal view for a Copilot chat session.

Streams response chunks as they arrive, renders complete replies as
markdown, and prints state changes and errors as styled status lines.
"""

from __future__ import annotations

import re
import threading

from rich.console import Console as RichConsole
from rich.markdown import Markdown
from rich.markup import escape
from rich.theme import Theme

from jmeter_copilot.chat.message import ChatMessage
from jmeter_copilot.chat.service import CopilotChatService, SessionState

# -------------------------------------------------------------------- #
# Color scheme
# -------------------------------------------------------------------- #

THEME = Theme({
    "dim": "#888888",
    "muted": "#666666",
    "content": "bright_white",

    "success": "bright_green",
    "error": "bright_red",
    "warning": "bright_yellow",
    "info": "bright_cyan",
    "accent": "bright_magenta",

    # Markdown: coloured headers, green code so XML stands out from prose
    "markdown.paragraph": "white",
    "markdown.h1": "bright_magenta bold underline",
    "markdown.h2": "bright_magenta bold",
    "markdown.h3": "bright_cyan bold",
    "markdown.bold": "bright_white bold",
    "markdown.code": "bright_green",
    "markdown.code_block": "bright_green",
    "markdown.item.bullet": "bright_cyan",
    "markdown.item.number": "bright_cyan",
    "markdown.link": "bright_cyan underline",
})

_STATE_STYLES = {
    SessionState.DISCONNECTED: ("muted", "Disconnected"),
    SessionState.CONNECTING: ("info", "Connecting to Copilot..."),
    SessionState.READY: ("success", "Ready"),
    SessionState.STREAMING: ("accent", "Generating..."),
    SessionState.ABORTING: ("warning", "Aborting..."),
    SessionState.ERROR: ("error", "Error"),
}

_ORDERED_LIST_RE = re.compile(r"^(\s*)(\d+)\.\s", re.MULTILINE)


def _preprocess_markdown(content: str) -> str:
    """Keep the period on ordered-list numbers (``1. x`` → ``**1.** x``).

    Rich drops it when rendering lists.
    """
    return _ORDERED_LIST_RE.sub(r"**\2.** ", content)


class ConsoleChatView:
    """Print a chat session to the terminal.

    Chunks from the streaming handler are written as plain text with no
    newline.  When the complete message arrives the streamed line is
    closed; if nothing was streamed (non-streaming sessions) the message
    is rendered as markdown instead.
    """

    def __init__(self, console: RichConsole | None = None, show_states: bool = False):
        self._console = console or RichConsole(theme=THEME, highlight=False)
        self._show_states = show_states
        self._lock = threading.Lock()
        self._streamed = False

    @property
    def raw(self) -> RichConsole:
        return self._console

    def attach(self, service: CopilotChatService):
        """Register this view's handlers on *service*."""
        service.set_streaming_handler(self.on_delta)
        service.set_message_handler(self.on_message)
        service.set_error_handler(self.on_error)
        service.set_state_handler(self.on_state)

    # ------------------------------------------------------------------ #
    # Handlers
    # ------------------------------------------------------------------ #

    def on_delta(self, chunk: str):
        with self._lock:
            self._streamed = True
            self._console.print(chunk, end="", markup=False, highlight=False, soft_wrap=True)

    def on_message(self, message: ChatMessage):
        with self._lock:
            streamed, self._streamed = self._streamed, False
            if streamed:
                self._console.print()
                return
            self._console.print()
            self._console.print(Markdown(_preprocess_markdown(message.content)))
            self._console.print()

    def on_error(self, error: str):
        with self._lock:
            if self._streamed:
                self._console.print()
                self._streamed = False
            self._console.print(f"[error]✗[/error] {escape(error)}")

    def on_state(self, state: SessionState):
        if state is SessionState.ABORTING:
            with self._lock:
                if self._streamed:
                    self._console.print()
                    self._streamed = False
        if not self._show_states:
            return
        style, label = _STATE_STYLES.get(state, ("dim", str(state)))
        self._console.print(f"[{style}]●[/{style}] [dim]{label}[/dim]")

    # ------------------------------------------------------------------ #
    # Status helpers
    # ------------------------------------------------------------------ #

    def print_success(self, message: str):
        self._console.print(f"[success]✓[/success] {message}")

    def print_info(self, message: str):
        self._console.print(f"[info]→[/info] {message}")

    def print_warning(self, message: str):
        self._console.print(f"[warning]![/warning] {message}")
