"""GitHub Copilot chat transport — direct HTTP calls.

Implements :class:`~jmeter_copilot.ai.transport.ChatTransport` on top of
the Copilot chat-completions endpoint.  Authentication uses the raw
OAuth token resolved by ``copilot_auth``, sent as ``Bearer`` alongside
editor-identification headers.

Each :class:`CopilotSession` keeps its own multi-turn message list and
replays it on every request.  Requests run on the transport's worker
pool; streamed chunks are published as :class:`DeltaEvent` objects, in
order, followed by exactly one :class:`MessageEvent` (or a
:class:`SessionErrorEvent` on failure).
"""

from __future__ import annotations

import json
import logging
import os
import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable

import requests

from jmeter_copilot.ai.copilot_auth import get_copilot_token
from jmeter_copilot.ai.events import DeltaEvent, MessageEvent, SessionErrorEvent, SessionEvent
from jmeter_copilot.ai.transport import (
    ChatSession,
    ChatTransport,
    EventHandler,
    SessionConfig,
    Subscription,
    SystemMessageMode,
    completed_future,
    failed_future,
)
from jmeter_copilot.errors import TransportError

logger = logging.getLogger(__name__)

_DEFAULT_BASE_URL = "https://api.enterprise.githubcopilot.com"

# Large test plans can take minutes to generate.
_DEFAULT_TIMEOUT = 300

_BASE_SYSTEM_PROMPT = (
    "You are GitHub Copilot, an AI programming assistant. "
    "Answer accurately and concisely, and use markdown for code."
)


class CopilotTransport(ChatTransport):
    """Copilot completions API transport.

    Parameters
    ----------
    base_url:
        API root.  Defaults to ``COPILOT_BASE_URL`` or the enterprise
        endpoint, which exposes the full model catalogue.
    timeout:
        Per-request timeout in seconds (``COPILOT_TIMEOUT``, default 300).
    token_provider:
        Callable returning a GitHub token.  Defaults to
        :func:`~jmeter_copilot.ai.copilot_auth.get_copilot_token`.
    max_workers:
        Size of the request worker pool.
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: int | None = None,
        token_provider: Callable[[], str] | None = None,
        max_workers: int = 4,
    ):
        self._base_url = (base_url or os.environ.get("COPILOT_BASE_URL", _DEFAULT_BASE_URL)).rstrip("/")
        self._timeout = timeout or int(os.environ.get("COPILOT_TIMEOUT", str(_DEFAULT_TIMEOUT)))
        self._token_provider = token_provider or get_copilot_token
        self._max_workers = max_workers
        self._executor: ThreadPoolExecutor | None = None
        self._token: str | None = None
        self._sessions: list[CopilotSession] = []
        self._lock = threading.Lock()

    @property
    def completions_url(self) -> str:
        return f"{self._base_url}/chat/completions"

    @property
    def timeout(self) -> int:
        return self._timeout

    @property
    def started(self) -> bool:
        return self._token is not None

    # ------------------------------------------------------------------
    # ChatTransport interface
    # ------------------------------------------------------------------

    def start(self) -> Future[None]:
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self._max_workers, thread_name_prefix="copilot-transport"
                )
            executor = self._executor
        return executor.submit(self._authenticate)

    def create_session(self, config: SessionConfig) -> Future[ChatSession]:
        if not self.started:
            return failed_future(TransportError("Copilot transport is not started. Call start() first."))
        session = CopilotSession(self, config)
        with self._lock:
            self._sessions.append(session)
        logger.debug("Created Copilot session (model=%s, streaming=%s)", config.model, config.streaming)
        return completed_future(session)

    def close(self) -> None:
        with self._lock:
            sessions, self._sessions = self._sessions, []
            executor, self._executor = self._executor, None
            self._token = None
        for session in sessions:
            session.close()
        if executor is not None:
            executor.shutdown(wait=False, cancel_futures=True)

    # ------------------------------------------------------------------
    # Internal helpers used by sessions
    # ------------------------------------------------------------------

    def _authenticate(self) -> None:
        try:
            token = self._token_provider()
        except Exception as exc:
            raise TransportError(f"Failed to authenticate with Copilot: {exc}") from exc
        self._token = token
        logger.debug("Copilot transport started")

    def _submit(self, fn: Callable[..., Any], *args: Any) -> Future | None:
        with self._lock:
            executor = self._executor
        if executor is None:
            return None
        return executor.submit(fn, *args)

    def _forget(self, session: CopilotSession) -> None:
        with self._lock:
            if session in self._sessions:
                self._sessions.remove(session)

    def _headers(self, *, stream: bool) -> dict[str, str]:
        """Build HTTP headers for the Copilot completions API."""
        return {
            "Authorization": f"Bearer {self._token}",
            "Content-Type": "application/json",
            "Accept": "text/event-stream" if stream else "application/json",
            "User-Agent": "jmeter-copilot/0.1.0",
            "Copilot-Integration-Id": "copilot-developer-cli",
            "Editor-Version": "jmeter-copilot/0.1.0",
            "Editor-Plugin-Version": "jmeter-copilot/0.1.0",
            "X-Request-Id": str(uuid.uuid4()),
        }

    def _post(self, payload: dict[str, Any], *, stream: bool) -> requests.Response:
        try:
            resp = requests.post(
                self.completions_url,
                headers=self._headers(stream=stream),
                json=payload,
                timeout=self._timeout,
                stream=stream,
            )
        except requests.Timeout as exc:
            raise TransportError(
                f"Copilot API timed out after {self._timeout}s.\n"
                "For very large test plans, increase the timeout:\n"
                "  export COPILOT_TIMEOUT=600"
            ) from exc
        except requests.RequestException as exc:
            raise TransportError(f"Failed to reach Copilot API: {exc}") from exc

        if resp.status_code != 200:
            body = ""
            try:
                body = resp.text[:500]
            except Exception:  # noqa: BLE001
                pass
            resp.close()
            raise TransportError(
                f"Copilot API error (HTTP {resp.status_code}):\n{body}\n\n"
                "Ensure your account has an active GitHub Copilot subscription."
            )
        return resp


class _HandlerSubscription(Subscription):
    def __init__(self, session: CopilotSession, handler: EventHandler):
        self._session = session
        self._handler = handler

    def close(self) -> None:
        self._session._remove_handler(self._handler)


class CopilotSession(ChatSession):
    """One Copilot conversation.

    The session owns the message list sent with each request.  Only one
    response is produced at a time; :meth:`abort` cancels it between
    chunks and drops the HTTP connection.
    """

    def __init__(self, transport: CopilotTransport, config: SessionConfig):
        self._transport = transport
        self._config = config
        self._messages: list[dict[str, str]] = []
        system_prompt = self._system_prompt(config)
        if system_prompt:
            self._messages.append({"role": "system", "content": system_prompt})
        self._handlers: list[EventHandler] = []
        self._lock = threading.Lock()
        self._cancel: threading.Event | None = None
        self._response: requests.Response | None = None
        self._closed = False
        self._last_response_id: str | None = None

    @property
    def config(self) -> SessionConfig:
        return self._config

    @property
    def last_response_id(self) -> str | None:
        with self._lock:
            return self._last_response_id

    @property
    def messages(self) -> list[dict[str, str]]:
        with self._lock:
            return [dict(m) for m in self._messages]

    @staticmethod
    def _system_prompt(config: SessionConfig) -> str:
        content = config.system_message.content.strip()
        if config.system_message.mode is SystemMessageMode.REPLACE:
            return content
        return f"{_BASE_SYSTEM_PROMPT}\n\n{content}" if content else _BASE_SYSTEM_PROMPT

    # ------------------------------------------------------------------
    # ChatSession interface
    # ------------------------------------------------------------------

    def on(self, handler: EventHandler) -> Subscription:
        with self._lock:
            self._handlers.append(handler)
        return _HandlerSubscription(self, handler)

    def send(self, prompt: str) -> Future[str]:
        response_id, worker = self._dispatch(prompt)
        if response_id is None:
            return worker
        return completed_future(response_id)

    def send_and_wait(self, prompt: str) -> Future[MessageEvent | None]:
        _, worker = self._dispatch(prompt)
        return worker

    def abort(self) -> Future[None]:
        with self._lock:
            cancel, response = self._cancel, self._response
        if cancel is not None:
            cancel.set()
        if response is not None:
            try:
                response.close()
            except Exception:  # noqa: BLE001
                logger.debug("Error closing aborted response", exc_info=True)
        return completed_future(None)

    def close(self) -> None:
        self.abort()
        with self._lock:
            self._closed = True
            self._handlers.clear()
        self._transport._forget(self)

    # ------------------------------------------------------------------
    # Request execution
    # ------------------------------------------------------------------

    def _dispatch(self, prompt: str) -> tuple[str | None, Future]:
        with self._lock:
            if self._closed:
                return None, failed_future(TransportError("Copilot session is closed."))
            response_id = uuid.uuid4().hex
            self._last_response_id = response_id
            cancel = threading.Event()
            self._cancel = cancel
            self._messages.append({"role": "user", "content": prompt})
            payload_messages = [dict(m) for m in self._messages]
        worker = self._transport._submit(self._run, response_id, payload_messages, cancel)
        if worker is None:
            return None, failed_future(TransportError("Copilot transport is closed."))
        return response_id, worker

    def _run(
        self,
        response_id: str,
        messages: list[dict[str, str]],
        cancel: threading.Event,
    ) -> MessageEvent | None:
        payload: dict[str, Any] = {
            "model": self._config.model,
            "messages": messages,
            "stream": self._config.streaming,
        }
        logger.debug(
            "Copilot request %s: model=%s, msgs=%d", response_id, self._config.model, len(messages)
        )
        try:
            if self._config.streaming:
                content = self._stream(payload, response_id, cancel)
            else:
                content = self._complete(payload)
        except TransportError as exc:
            if cancel.is_set():
                return None
            self._emit(SessionErrorEvent(str(exc), response_id))
            raise
        except requests.RequestException as exc:
            if cancel.is_set():
                logger.debug("Response %s aborted", response_id)
                return None
            error = TransportError(f"Copilot stream failed: {exc}")
            self._emit(SessionErrorEvent(str(error), response_id))
            raise error from exc
        finally:
            with self._lock:
                if self._cancel is cancel:
                    self._cancel = None
                    self._response = None

        if cancel.is_set():
            logger.debug("Response %s aborted", response_id)
            return None

        with self._lock:
            self._messages.append({"role": "assistant", "content": content})
        event = MessageEvent(content, response_id)
        self._emit(event)
        return event

    def _stream(self, payload: dict[str, Any], response_id: str, cancel: threading.Event) -> str:
        resp = self._transport._post(payload, stream=True)
        with self._lock:
            self._response = resp
        chunks: list[str] = []
        try:
            for line in resp.iter_lines(decode_unicode=True):
                if cancel.is_set():
                    break
                if not line or not line.startswith("data: "):
                    continue
                data_str = line[6:]
                if data_str.strip() == "[DONE]":
                    break
                try:
                    chunk = json.loads(data_str)
                    text = chunk["choices"][0].get("delta", {}).get("content")
                except (json.JSONDecodeError, IndexError, KeyError, TypeError):
                    logger.debug("Skipping malformed stream chunk: %.200s", data_str)
                    continue
                if text:
                    chunks.append(text)
                    self._emit(DeltaEvent(text, response_id))
        finally:
            resp.close()
        return "".join(chunks)

    def _complete(self, payload: dict[str, Any]) -> str:
        resp = self._transport._post(payload, stream=False)
        try:
            data = resp.json()
        except ValueError as exc:
            raise TransportError("Copilot API returned invalid JSON.") from exc
        try:
            return data["choices"][0]["message"].get("content") or ""
        except (KeyError, IndexError, TypeError):
            logger.warning("Copilot response had no content: %s", data)
            return ""

    # ------------------------------------------------------------------
    # Event fan-out
    # ------------------------------------------------------------------

    def _emit(self, event: SessionEvent) -> None:
        with self._lock:
            handlers = list(self._handlers)
        for handler in handlers:
            try:
                handler(event)
            except Exception:  # noqa: BLE001
                logger.exception("Session event handler failed")

    def _remove_handler(self, handler: EventHandler) -> None:
        with self._lock:
            if handler in self._handlers:
                self._handlers.remove(handler)
