"""Copilot chat service: session state machine for test-plan generation.

Owns the conversation history and the transport session, and turns the
transport's inbound events into handler callbacks:

    DISCONNECTED -> CONNECTING -> READY -> STREAMING -> READY
                        |                     |   \\
                        v                     |    ABORTING -> READY
                      ERROR -> DISCONNECTED   v
                                            ERROR -> READY

Every operation that can take time returns a
:class:`concurrent.futures.Future`.  Failures travel inside the future;
no public method raises for a transport problem.

Inbound events may arrive on a transport worker thread.  All state
(current state, delta buffer, history writes) is mutated under a single
re-entrant lock, and handlers are invoked under that lock so deltas
reach the streaming handler in arrival order.

Usage::

    service = CopilotChatService()
    service.set_streaming_handler(lambda chunk: print(chunk, end=""))
    service.set_message_handler(on_complete)
    service.connect().result()
    service.send_message("Create a 10-user HTTP load test for example.com")
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable

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
    completed_future,
    failed_future,
)
from jmeter_copilot.chat.history import DEFAULT_MAX_MESSAGES, ConversationHistory
from jmeter_copilot.chat.message import ChatMessage, Role
from jmeter_copilot.errors import CopilotChatError, NotConnectedError, SessionBusyError, TransportError

logger = logging.getLogger(__name__)

JMETER_SYSTEM_PROMPT = """\
You are an expert Apache JMeter engineer. You help users build JMeter test
plans and always answer with valid JMeter XML in the .jmx format.

When asked for a test plan or a test component:
1. Produce a complete document that JMeter can open directly, starting with
   the XML declaration and wrapped in a <jmeterTestPlan> element that carries
   version, properties and jmeter attributes.
2. Follow JMeter's layout: every test element is followed by a <hashTree>
   holding its children.
3. Use real JMeter element types and include every required property.
4. Put the XML in a single fenced code block marked ```xml.

Elements you can use include: TestPlan, ThreadGroup, HTTPSamplerProxy,
ConstantTimer, GaussianRandomTimer, UniformRandomTimer, ResponseAssertion,
DurationAssertion, SizeAssertion, JSONPathAssertion, XPathAssertion,
HeaderManager, Arguments, CSVDataSet, JSR223PreProcessor, JSR223PostProcessor,
RegexExtractor, JSONPostProcessor, LoopController, IfController,
WhileController, TransactionController, RandomController and ResultCollector
listeners (View Results Tree, Summary Report, Aggregate Report).

Listeners must display results in the GUI only: leave the ResultCollector
filename empty (<stringProp name="filename"></stringProp>) so running the plan
never prompts about existing result files.
"""


class SessionState(str, Enum):
    """Lifecycle states of a chat session."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    READY = "ready"
    STREAMING = "streaming"
    ABORTING = "aborting"
    ERROR = "error"


_CONNECTED_STATES = frozenset({SessionState.READY, SessionState.STREAMING, SessionState.ABORTING})


class CopilotChatService:
    """Multi-turn Copilot chat tailored to JMeter test-plan generation.

    Parameters
    ----------
    transport:
        Chat backend.  Defaults to :class:`~jmeter_copilot.ai.CopilotTransport`.
    history:
        Conversation store.  Defaults to a new bounded history sized from
        ``config["chat"]["max_messages"]``.
    model:
        Model for new sessions; overrides ``config["ai"]["model"]``.
    config:
        Configuration dict as produced by
        :class:`~jmeter_copilot.config.ChatConfig`.
    """

    def __init__(
        self,
        transport: ChatTransport | None = None,
        *,
        history: ConversationHistory | None = None,
        model: CopilotModel | str | None = None,
        config: dict[str, Any] | None = None,
    ):
        config = config or {}
        ai_config = config.get("ai", {})
        chat_config = config.get("chat", {})

        if transport is None:
            from jmeter_copilot.ai.copilot_transport import CopilotTransport

            transport = CopilotTransport(timeout=ai_config.get("timeout"))
        self._transport = transport
        self._history = history if history is not None else ConversationHistory(
            chat_config.get("max_messages", DEFAULT_MAX_MESSAGES)
        )
        self._model = CopilotModel.from_value(model or ai_config.get("model") or DEFAULT_MODEL)
        self._streaming = bool(ai_config.get("streaming", True))
        self._system_mode = SystemMessageMode(ai_config.get("system_message_mode", SystemMessageMode.APPEND.value))

        self._lock = threading.RLock()
        self._state = SessionState.DISCONNECTED
        self._state_history: list[dict[str, str]] = []
        self._executor: ThreadPoolExecutor | None = None
        self._pending_connect: Future | None = None
        self._transport_started = False

        self._session: ChatSession | None = None
        self._subscription: Subscription | None = None

        # In-flight response bookkeeping
        self._buffer: list[str] = []
        self._turn = 0
        self._active_response_id: str | None = None
        self._discarded_responses: set[str] = set()

        self._streaming_handler: Callable[[str], None] | None = None
        self._message_handler: Callable[[ChatMessage], None] | None = None
        self._error_handler: Callable[[str], None] | None = None
        self._state_handler: Callable[[SessionState], None] | None = None

    # ------------------------------------------------------------------ #
    # Properties
    # ------------------------------------------------------------------ #

    @property
    def state(self) -> SessionState:
        with self._lock:
            return self._state

    @property
    def state_history(self) -> list[dict[str, str]]:
        with self._lock:
            return list(self._state_history)

    @property
    def is_connected(self) -> bool:
        with self._lock:
            return self._state in _CONNECTED_STATES

    @property
    def history(self) -> ConversationHistory:
        return self._history

    @property
    def streaming_content(self) -> str:
        """Text received so far for the in-flight response."""
        with self._lock:
            return "".join(self._buffer)

    @property
    def model(self) -> CopilotModel:
        return self._model

    @model.setter
    def model(self, value: CopilotModel | str):
        """Select the model for the next session; the current one is unaffected."""
        self._model = CopilotModel.from_value(value)

    @staticmethod
    def available_models() -> list[CopilotModel]:
        return available_models()

    # ------------------------------------------------------------------ #
    # Handler registration
    # ------------------------------------------------------------------ #

    def set_streaming_handler(self, handler: Callable[[str], None] | None):
        """Receive each response chunk, in arrival order."""
        self._streaming_handler = handler

    def set_message_handler(self, handler: Callable[[ChatMessage], None] | None):
        """Receive each complete assistant message once."""
        self._message_handler = handler

    def set_error_handler(self, handler: Callable[[str], None] | None):
        """Receive session error messages."""
        self._error_handler = handler

    def set_state_handler(self, handler: Callable[[SessionState], None] | None):
        """Receive every state transition."""
        self._state_handler = handler

    # ------------------------------------------------------------------ #
    # Operations
    # ------------------------------------------------------------------ #

    def connect(self) -> Future[None]:
        """Start the transport and open a session.

        Resolves once the session is ready.  On failure the future carries
        a :class:`TransportError` and the service is back in
        ``DISCONNECTED`` so the caller can retry.
        """
        with self._lock:
            if self._state is SessionState.CONNECTING and self._pending_connect is not None:
                return self._pending_connect
            if self._state in _CONNECTED_STATES:
                return completed_future(None)
            self._set_state(SessionState.CONNECTING)
            future = self._submit(self._do_connect)
            self._pending_connect = future
            return future

    def send_message(self, prompt: str) -> Future[str]:
        """Send *prompt*; resolves with the transport's response id.

        The reply arrives through the streaming and message handlers.
        """
        return self._begin_turn(prompt, wait=False)

    def send_message_and_wait(self, prompt: str) -> Future[str | None]:
        """Send *prompt*; resolves with the complete reply text."""
        return self._begin_turn(prompt, wait=True)

    def abort(self) -> Future[None]:
        """Cancel the in-flight response.

        Locally this is unconditional: the service is back in ``READY``
        and the partial response is dropped before this method returns.
        The transport cancellation is best-effort; its failure is reported
        through the returned future.  With nothing in flight this is a
        no-op.
        """
        with self._lock:
            if self._state is not SessionState.STREAMING or self._session is None:
                logger.debug("abort() ignored in state %s", self._state.value)
                return completed_future(None)
            self._set_state(SessionState.ABORTING)
            self._discard_in_flight()
            session = self._session
            self._set_state(SessionState.READY)

        try:
            pending = session.abort()
        except Exception as exc:  # noqa: BLE001
            return failed_future(TransportError(f"Failed to abort request: {exc}"))
        return self._relay(pending, "Failed to abort request", transform=lambda _: None)

    def clear_conversation(self) -> Future[None]:
        """Wipe history and replace the session.

        A replacement session is opened only when currently connected;
        otherwise the service stays disconnected with an empty history.
        """
        with self._lock:
            self._history.clear()
            self._discard_in_flight()
            was_connected = self._state in _CONNECTED_STATES
            self._detach()
            if not was_connected:
                return completed_future(None)
            self._set_state(SessionState.CONNECTING)
            return self._submit(self._do_recreate_session)

    def close(self):
        """Release the session and transport.  Idempotent; never raises."""
        with self._lock:
            self._detach()
            self._discard_in_flight()
            self._set_state(SessionState.DISCONNECTED)
            self._pending_connect = None
            executor, self._executor = self._executor, None
            close_transport, self._transport_started = self._transport_started, False

        if close_transport:
            try:
                self._transport.close()
            except Exception:  # noqa: BLE001
                logger.debug("Error closing transport", exc_info=True)
        if executor is not None:
            executor.shutdown(wait=False)

    def __enter__(self) -> CopilotChatService:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ------------------------------------------------------------------ #
    # Connection internals (run on the command worker)
    # ------------------------------------------------------------------ #

    def _session_config(self) -> SessionConfig:
        return SessionConfig(
            model=self._model.value,
            streaming=self._streaming,
            system_message=SystemMessage(mode=self._system_mode, content=JMETER_SYSTEM_PROMPT),
        )

    def _do_connect(self) -> None:
        try:
            self._transport.start().result()
            with self._lock:
                closed = self._state is not SessionState.CONNECTING
                if not closed:
                    self._transport_started = True
            if closed:
                self._transport.close()
                raise TransportError("Connection was closed before the session became ready.")
            session = self._transport.create_session(self._session_config()).result()
        except Exception as exc:
            with self._lock:
                if self._state is SessionState.CONNECTING:
                    self._set_state(SessionState.ERROR)
                    self._set_state(SessionState.DISCONNECTED)
                self._pending_connect = None
            logger.warning("Failed to connect to Copilot: %s", exc)
            raise TransportError(f"Failed to connect to Copilot: {exc}") from exc

        self._install_session(session)

    def _do_recreate_session(self) -> None:
        try:
            session = self._transport.create_session(self._session_config()).result()
        except Exception as exc:
            with self._lock:
                if self._state is SessionState.CONNECTING:
                    self._set_state(SessionState.ERROR)
                    self._set_state(SessionState.DISCONNECTED)
            logger.warning("Failed to create new session after clear: %s", exc)
            raise TransportError(f"Failed to create a new session: {exc}") from exc

        self._install_session(session)

    def _install_session(self, session: ChatSession) -> None:
        with self._lock:
            self._pending_connect = None
            if self._state is not SessionState.CONNECTING:
                # close() won the race; don't resurrect the session.
                logger.debug("Discarding session created after close")
                self._close_quietly(session)
                raise TransportError("Connection was closed before the session became ready.")
            self._session = session
            self._subscription = session.on(lambda event: self._handle_event(event, session))
            self._set_state(SessionState.READY)
        logger.info("Copilot session ready (model=%s)", self._model.value)

    def _detach(self) -> None:
        if self._subscription is not None:
            try:
                self._subscription.close()
            except Exception:  # noqa: BLE001
                logger.debug("Error closing event subscription", exc_info=True)
            self._subscription = None
        if self._session is not None:
            self._close_quietly(self._session)
            self._session = None

    @staticmethod
    def _close_quietly(session: ChatSession) -> None:
        try:
            session.close()
        except Exception:  # noqa: BLE001
            logger.debug("Error closing session", exc_info=True)

    def _submit(self, fn: Callable[[], Any]) -> Future:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="copilot-chat")
        return self._executor.submit(fn)

    # ------------------------------------------------------------------ #
    # Turn handling
    # ------------------------------------------------------------------ #

    def _begin_turn(self, prompt: str, *, wait: bool) -> Future:
        if prompt is None or not prompt.strip():
            return failed_future(ValueError("Prompt must not be empty."))

        with self._lock:
            if self._state in (SessionState.STREAMING, SessionState.ABORTING):
                return failed_future(SessionBusyError())
            if self._state is not SessionState.READY or self._session is None:
                return failed_future(NotConnectedError())

            self._history.add_message(ChatMessage(Role.USER, prompt))
            self._buffer.clear()
            self._active_response_id = None
            self._turn += 1
            turn = self._turn
            session = self._session
            self._set_state(SessionState.STREAMING)

            try:
                pending = session.send_and_wait(prompt) if wait else session.send(prompt)
            except Exception as exc:  # noqa: BLE001
                self._end_turn_after_send_failure(turn, session)
                return failed_future(TransportError(f"Failed to send message: {exc}"))

            # send_and_wait only reports the id with the final message, so
            # claim it now or an abort before the first chunk can't discard it.
            dispatched = session.last_response_id
            if dispatched:
                self._active_response_id = dispatched

        result: Future = Future()
        pending.add_done_callback(lambda f: self._on_sent(f, result, turn, session, wait))
        return result

    def _on_sent(self, sent: Future, result: Future, turn: int, session: ChatSession, wait: bool) -> None:
        try:
            value = sent.result()
        except Exception as exc:  # noqa: BLE001
            self._end_turn_after_send_failure(turn, session)
            error = exc if isinstance(exc, CopilotChatError) else TransportError(f"Failed to send message: {exc}")
            result.set_exception(error)
            return

        response_id = value.response_id if isinstance(value, MessageEvent) else value
        if response_id:
            with self._lock:
                current = self._turn == turn and self._state is SessionState.STREAMING
                if current and self._active_response_id is None:
                    self._active_response_id = response_id
                elif not current and response_id != self._active_response_id:
                    self._discarded_responses.add(response_id)

        if wait:
            result.set_result(value.content if isinstance(value, MessageEvent) else None)
        else:
            result.set_result(value)

    def _end_turn_after_send_failure(self, turn: int, session: ChatSession) -> None:
        with self._lock:
            if self._turn == turn and self._session is session and self._state is SessionState.STREAMING:
                self._buffer.clear()
                self._active_response_id = None
                self._set_state(SessionState.READY)

    def _discard_in_flight(self) -> None:
        if self._active_response_id is not None:
            self._discarded_responses.add(self._active_response_id)
        self._active_response_id = None
        self._buffer.clear()

    # ------------------------------------------------------------------ #
    # Inbound events (transport threads)
    # ------------------------------------------------------------------ #

    def _handle_event(self, event: SessionEvent, session: ChatSession) -> None:
        try:
            with self._lock:
                if session is not self._session:
                    logger.debug("Ignoring event from a replaced session: %r", event)
                    return
                if isinstance(event, DeltaEvent):
                    self._on_delta(event)
                elif isinstance(event, MessageEvent):
                    self._on_message(event)
                elif isinstance(event, SessionErrorEvent):
                    self._on_session_error(event)
                else:
                    logger.warning("Ignoring unexpected session event: %r", event)
        except Exception:  # noqa: BLE001
            logger.exception("Error handling session event")

    def _accepts(self, event: SessionEvent) -> bool:
        response_id = event.response_id
        if response_id is not None and response_id in self._discarded_responses:
            logger.debug("Discarding %s for aborted response %s", type(event).__name__, response_id)
            return False
        if self._state is not SessionState.STREAMING:
            logger.debug("Discarding %s with no response in flight", type(event).__name__)
            return False
        if response_id is not None:
            if self._active_response_id is None:
                self._active_response_id = response_id
            elif response_id != self._active_response_id:
                logger.debug("Discarding %s for stale response %s", type(event).__name__, response_id)
                return False
        return True

    def _on_delta(self, event: DeltaEvent) -> None:
        if not isinstance(event.delta_content, str):
            logger.warning("Ignoring delta without text: %r", event)
            return
        if not self._accepts(event):
            return
        self._buffer.append(event.delta_content)
        self._notify(self._streaming_handler, event.delta_content)

    def _on_message(self, event: MessageEvent) -> None:
        if not self._accepts(event):
            return
        self._buffer.clear()
        self._active_response_id = None
        content = event.content if isinstance(event.content, str) else ""
        if not content.strip():
            logger.debug("Complete message with no content; nothing recorded")
            self._set_state(SessionState.READY)
            return
        message = ChatMessage(Role.ASSISTANT, content)
        self._history.add_message(message)
        self._set_state(SessionState.READY)
        self._notify(self._message_handler, message)

    def _on_session_error(self, event: SessionErrorEvent) -> None:
        message = event.message or "Unknown error"
        logger.warning("Session error: %s", message)
        if not self._accepts(event):
            return
        self._buffer.clear()
        self._active_response_id = None
        self._set_state(SessionState.ERROR)
        self._set_state(SessionState.READY)
        self._notify(self._error_handler, message)

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    def _set_state(self, state: SessionState) -> None:
        if state is self._state:
            return
        logger.debug("Chat session %s -> %s", self._state.value, state.value)
        self._state = state
        self._state_history.append({
            "state": state.value,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        })
        self._notify(self._state_handler, state)

    @staticmethod
    def _notify(handler: Callable[[Any], None] | None, value: Any) -> None:
        if handler is None:
            return
        try:
            handler(value)
        except Exception:  # noqa: BLE001
            logger.exception("Chat handler failed")

    @staticmethod
    def _relay(pending: Future, failure: str, transform: Callable[[Any], Any]) -> Future:
        result: Future = Future()

        def _done(f: Future) -> None:
            try:
                value = f.result()
            except Exception as exc:  # noqa: BLE001
                result.set_exception(TransportError(f"{failure}: {exc}"))
                return
            result.set_result(transform(value))

        pending.add_done_callback(_done)
        return result
