"""Test-plan assistant: turns complete Copilot replies into loaded plans.

Sits between :class:`~jmeter_copilot.chat.CopilotChatService` and the host
application.  Every complete assistant message is inspected for either an
inline JMeter document or a reference to a ``.jmx`` file on disk; the most
recent artifact can then be loaded into the host or saved next to the
project.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Callable, Protocol

from jmeter_copilot.chat.message import ChatMessage, Role
from jmeter_copilot.chat.service import CopilotChatService
from jmeter_copilot.parsers.loader import (
    NO_DOCUMENT_MESSAGE,
    FailureKind,
    ParseFailure,
    ParseResult,
    TestPlanLoader,
    save_test_plan,
)
from jmeter_copilot.parsers.plan_tree import HashTree
from jmeter_copilot.parsers.reference import find_jmx_reference
from jmeter_copilot.parsers.xml_extractor import extract_xml

logger = logging.getLogger(__name__)

LOADED_MESSAGE = "Test plan loaded successfully!"


class TestPlanConsumer(Protocol):
    """Host-side receiver for a parsed test plan."""

    __test__ = False  # keep pytest from collecting this class

    def load_test_plan(self, tree: HashTree) -> None:
        ...


class TestPlanAssistant:
    """Track the latest generated test plan and hand it to the host.

    Parameters
    ----------
    service:
        The chat service whose complete messages are inspected.  The
        assistant installs itself as the service's message handler and
        forwards to *on_message* afterwards.
    loader:
        Document loader; defaults to a plain :class:`TestPlanLoader`.
    consumer:
        Receives the parsed tree on a successful load.
    output_dir:
        Directory for :meth:`save_last_plan`, and the base directory for
        relative ``.jmx`` references.  Defaults to the working directory.
    on_message:
        Optional downstream message handler (e.g. a console view).
    """

    __test__ = False  # keep pytest from collecting this class

    def __init__(
        self,
        service: CopilotChatService,
        loader: TestPlanLoader | None = None,
        consumer: TestPlanConsumer | None = None,
        output_dir: str | Path | None = None,
        on_message: Callable[[ChatMessage], None] | None = None,
    ):
        self._service = service
        self._loader = loader or TestPlanLoader()
        self._consumer = consumer
        self._output_dir = Path(output_dir) if output_dir else Path.cwd()
        self._on_message = on_message
        self._lock = threading.Lock()
        self._executor: ThreadPoolExecutor | None = None
        self._last_xml: str | None = None
        self._last_path: str | None = None

        service.set_message_handler(self._handle_message)

    # ------------------------------------------------------------------ #
    # State
    # ------------------------------------------------------------------ #

    @property
    def last_xml(self) -> str | None:
        with self._lock:
            return self._last_xml

    @property
    def last_path(self) -> str | None:
        with self._lock:
            return self._last_path

    @property
    def can_load(self) -> bool:
        """True when a document or file reference is waiting to be loaded."""
        with self._lock:
            return self._last_xml is not None or self._last_path is not None

    # ------------------------------------------------------------------ #
    # Operations
    # ------------------------------------------------------------------ #

    def send(self, prompt: str) -> Future[str]:
        """Forget the previous artifact and send *prompt* to the service."""
        self._reset()
        return self._service.send_message(prompt)

    def load_test_plan(self) -> Future[ParseResult]:
        """Parse the pending artifact on a worker and hand it to the consumer.

        The outcome is also recorded in the conversation as a system
        message.  The future never fails; problems are in the result.
        """
        with self._lock:
            xml, path = self._last_xml, self._last_path

        if xml is None and path is None:
            future: Future = Future()
            future.set_result(ParseFailure(NO_DOCUMENT_MESSAGE, FailureKind.EXTRACTION))
            return future

        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="jmx-loader")
        return self._executor.submit(self._load, xml, path)

    def save_last_plan(self, filename: str | None = None) -> Path | None:
        """Write the latest XML document under the output directory.

        Returns the written path, or *None* when there is no document.
        Raises :class:`FileExistsError` if *filename* already exists.
        """
        xml = self.last_xml
        if xml is None:
            logger.debug("No generated test plan to save")
            return None
        return save_test_plan(xml, self._output_dir, filename)

    def close(self):
        """Stop the loader worker.  The service is left untouched."""
        executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=False)

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _reset(self):
        with self._lock:
            self._last_xml = None
            self._last_path = None

    def _handle_message(self, message: ChatMessage):
        if message.is_from_assistant:
            self._inspect(message.content)
        if self._on_message is not None:
            self._on_message(message)

    def _inspect(self, content: str):
        xml = extract_xml(content)
        if xml is not None:
            with self._lock:
                self._last_xml = xml
                self._last_path = None
            logger.info("Response contains a JMeter test plan")
            return

        path = find_jmx_reference(content, self._output_dir)
        if path is not None:
            with self._lock:
                self._last_xml = None
                self._last_path = path
            logger.info("Response references test plan file %s", path)

    def _load(self, xml: str | None, path: str | None) -> ParseResult:
        if path is not None:
            result = self._loader.parse_xml_file(path)
        else:
            result = self._loader.parse_xml(xml)

        if result.is_success:
            if self._consumer is not None:
                try:
                    self._consumer.load_test_plan(result.tree)
                except Exception as exc:  # noqa: BLE001
                    logger.exception("Host failed to load test plan")
                    failure = ParseFailure(f"Failed to load test plan: {exc}", FailureKind.PARSE)
                    self._record(f"Error loading test plan: {failure.error_message}")
                    return failure
            self._record(LOADED_MESSAGE)
        else:
            logger.warning("Could not load test plan: %s", result.error_message)
            self._record(f"Error loading test plan: {result.error_message}")
        return result

    def _record(self, text: str):
        self._service.history.add_message(ChatMessage(Role.SYSTEM, text))
