"""Tests for jmeter_copilot.assistant -- response post-processing."""

from unittest.mock import MagicMock

import pytest

from jmeter_copilot.assistant import LOADED_MESSAGE, TestPlanAssistant
from jmeter_copilot.chat.message import Role
from jmeter_copilot.parsers.loader import NO_DOCUMENT_MESSAGE, FailureKind, ParseFailure, ParseSuccess
from tests.conftest import MINIMAL_JMX, fenced


@pytest.fixture
def consumer():
    return MagicMock()


@pytest.fixture
def assistant(service, consumer, tmp_path):
    a = TestPlanAssistant(service, consumer=consumer, output_dir=tmp_path)
    yield a
    a.close()


def _reply(service, fake_transport, content):
    service.send_message("make me a plan").result(timeout=5)
    fake_transport.session.reply(content)


class TestArtifactTracking:

    def test_initial_state(self, assistant):
        assert not assistant.can_load
        assert assistant.last_xml is None
        assert assistant.last_path is None

    def test_reply_with_xml(self, assistant, service, fake_transport):
        text = fenced(MINIMAL_JMX)
        _reply(service, fake_transport, text)

        assert assistant.can_load
        assert assistant.last_xml == MINIMAL_JMX
        assert assistant.last_path is None

    def test_reply_with_file_reference(self, assistant, service, fake_transport, tmp_path):
        (tmp_path / "checkout.jmx").write_text(MINIMAL_JMX, encoding="utf-8")
        _reply(service, fake_transport, "I wrote the plan to `checkout.jmx`.")

        assert assistant.can_load
        assert assistant.last_path == str(tmp_path / "checkout.jmx")
        assert assistant.last_xml is None

    def test_xml_replaces_earlier_reference(self, assistant, service, fake_transport, tmp_path):
        (tmp_path / "old.jmx").write_text(MINIMAL_JMX, encoding="utf-8")
        _reply(service, fake_transport, "See old.jmx")
        _reply(service, fake_transport, fenced(MINIMAL_JMX))

        assert assistant.last_path is None
        assert assistant.last_xml is not None

    def test_plain_reply(self, assistant, service, fake_transport):
        _reply(service, fake_transport, "Which endpoint should I test?")
        assert not assistant.can_load

    def test_send_resets_artifact(self, assistant, service, fake_transport):
        _reply(service, fake_transport, fenced(MINIMAL_JMX))

        assistant.send("now add a timer").result(timeout=5)

        assert not assistant.can_load
        assert fake_transport.session.sent[-1] == "now add a timer"

    def test_downstream_message_handler(self, service, fake_transport, tmp_path):
        downstream = MagicMock()
        TestPlanAssistant(service, output_dir=tmp_path, on_message=downstream)
        _reply(service, fake_transport, "hello")

        downstream.assert_called_once()
        assert downstream.call_args.args[0].content == "hello"


class TestLoadTestPlan:

    def test_nothing_to_load(self, assistant, consumer):
        result = assistant.load_test_plan().result(timeout=5)

        assert isinstance(result, ParseFailure)
        assert result.kind is FailureKind.EXTRACTION
        assert result.error_message == NO_DOCUMENT_MESSAGE
        consumer.load_test_plan.assert_not_called()

    def test_load_from_xml(self, assistant, service, fake_transport, consumer):
        _reply(service, fake_transport, fenced(MINIMAL_JMX))

        result = assistant.load_test_plan().result(timeout=5)

        assert isinstance(result, ParseSuccess)
        consumer.load_test_plan.assert_called_once_with(result.tree)
        last = service.history.last_message()
        assert last.role is Role.SYSTEM
        assert last.content == LOADED_MESSAGE

    def test_load_from_file(self, assistant, service, fake_transport, consumer, tmp_path):
        (tmp_path / "plan.jmx").write_text(MINIMAL_JMX, encoding="utf-8")
        _reply(service, fake_transport, "Saved as plan.jmx")

        result = assistant.load_test_plan().result(timeout=5)

        assert result.is_success
        assert result.xml == MINIMAL_JMX
        consumer.load_test_plan.assert_called_once()

    def test_parse_failure_recorded(self, assistant, service, fake_transport, consumer):
        _reply(service, fake_transport, fenced("<jmeterTestPlan><hashTree><TestPlan></jmeterTestPlan>"))

        result = assistant.load_test_plan().result(timeout=5)

        assert not result.is_success
        consumer.load_test_plan.assert_not_called()
        last = service.history.last_message()
        assert last.role is Role.SYSTEM
        assert last.content.startswith("Error loading test plan: Failed to parse JMeter XML")

    def test_consumer_failure(self, assistant, service, fake_transport, consumer):
        consumer.load_test_plan.side_effect = RuntimeError("GUI busy")
        _reply(service, fake_transport, fenced(MINIMAL_JMX))

        result = assistant.load_test_plan().result(timeout=5)

        assert not result.is_success
        assert "GUI busy" in result.error_message
        assert service.history.last_message().role is Role.SYSTEM

    def test_without_consumer(self, service, fake_transport, tmp_path):
        assistant = TestPlanAssistant(service, output_dir=tmp_path)
        _reply(service, fake_transport, fenced(MINIMAL_JMX))
        assert assistant.load_test_plan().result(timeout=5).is_success
        assistant.close()


class TestSaveLastPlan:

    def test_nothing_to_save(self, assistant):
        assert assistant.save_last_plan() is None

    def test_saves_response_document(self, assistant, service, fake_transport, tmp_path):
        _reply(service, fake_transport, fenced(MINIMAL_JMX))

        path = assistant.save_last_plan("checkout")

        assert path == tmp_path / "checkout.jmx"
        assert path.read_text(encoding="utf-8") == MINIMAL_JMX
