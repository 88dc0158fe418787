"""Shared test fixtures for jmeter_copilot tests."""

import copy
from concurrent.futures import Future

import pytest
import yaml

from jmeter_copilot.ai.events import MessageEvent
from jmeter_copilot.ai.transport import ChatSession, ChatTransport, Subscription, completed_future, failed_future
from jmeter_copilot.config import DEFAULT_CONFIG


# ------------------------------------------------------------------
# Sample documents
# ------------------------------------------------------------------

MINIMAL_JMX = """<?xml version="1.0" encoding="UTF-8"?>
<jmeterTestPlan version="1.2" properties="5.0" jmeter="5.6.3">
  <hashTree>
    <TestPlan guiclass="TestPlanGui" testclass="TestPlan" testname="Checkout Load Test" enabled="true">
      <stringProp name="TestPlan.comments">Generated</stringProp>
      <boolProp name="TestPlan.functional_mode">false</boolProp>
    </TestPlan>
    <hashTree>
      <ThreadGroup guiclass="ThreadGroupGui" testclass="ThreadGroup" testname="Users" enabled="true">
        <stringProp name="ThreadGroup.num_threads">10</stringProp>
        <intProp name="ThreadGroup.ramp_time">5</intProp>
        <elementProp name="ThreadGroup.main_controller" elementType="LoopController">
          <stringProp name="LoopController.loops">1</stringProp>
        </elementProp>
      </ThreadGroup>
      <hashTree>
        <HTTPSamplerProxy guiclass="HttpTestSampleGui" testclass="HTTPSamplerProxy" testname="Home" enabled="true">
          <stringProp name="HTTPSampler.domain">example.com</stringProp>
          <stringProp name="HTTPSampler.method">GET</stringProp>
        </HTTPSamplerProxy>
        <hashTree/>
        <ConstantTimer guiclass="ConstantTimerGui" testclass="ConstantTimer" testname="Think" enabled="false">
          <stringProp name="ConstantTimer.delay">300</stringProp>
        </ConstantTimer>
        <hashTree/>
      </hashTree>
      <ResultCollector guiclass="ViewResultsFullVisualizer" testclass="ResultCollector" testname="View Results Tree" enabled="true">
        <stringProp name="filename"></stringProp>
      </ResultCollector>
      <hashTree/>
    </hashTree>
  </hashTree>
</jmeterTestPlan>"""


def fenced(body, hint="xml"):
    """Wrap *body* in a markdown code fence."""
    return f"Here is your plan:\n\n```{hint}\n{body}\n```\n\nLet me know if you need changes."


@pytest.fixture
def minimal_jmx():
    return MINIMAL_JMX


@pytest.fixture
def jmx_file(tmp_path):
    path = tmp_path / "plan.jmx"
    path.write_text(MINIMAL_JMX, encoding="utf-8")
    return path


# ------------------------------------------------------------------
# Fake transport
# ------------------------------------------------------------------

class _FakeSubscription(Subscription):
    def __init__(self, session, handler):
        self._session = session
        self._handler = handler
        self.closed = False

    def close(self):
        self.closed = True
        if self._handler in self._session.handlers:
            self._session.handlers.remove(self._handler)


class FakeSession(ChatSession):
    """Session that records calls and lets tests push events.

    ``send`` resolves immediately with ``resp-<n>``.  ``send_and_wait``
    returns a pending future kept in ``pending`` for the test to resolve.
    Both record ``resp-<n>`` as ``last_response_id`` at dispatch.
    """

    def __init__(self, config):
        self.config = config
        self.handlers = []
        self.sent = []
        self.pending = []
        self.abort_calls = 0
        self.abort_result = None
        self.send_error = None
        self.closed = False

    @property
    def last_response_id(self):
        return f"resp-{len(self.sent)}"

    def on(self, handler):
        self.handlers.append(handler)
        return _FakeSubscription(self, handler)

    def send(self, prompt):
        if self.send_error is not None:
            return failed_future(self.send_error)
        self.sent.append(prompt)
        return completed_future(self.last_response_id)

    def send_and_wait(self, prompt):
        self.sent.append(prompt)
        future = Future()
        self.pending.append(future)
        return future

    def abort(self):
        self.abort_calls += 1
        return self.abort_result or completed_future(None)

    def close(self):
        self.closed = True

    def emit(self, event):
        for handler in list(self.handlers):
            handler(event)

    def reply(self, content, response_id=None):
        """Emit a complete message for the latest request."""
        self.emit(MessageEvent(content, response_id or self.last_response_id))


class FakeTransport(ChatTransport):
    """Transport whose start/session outcomes are controlled by the test."""

    def __init__(self):
        self.start_calls = 0
        self.start_error = None
        self.session_error = None
        self.sessions = []
        self.configs = []
        self.closed = 0

    @property
    def session(self):
        return self.sessions[-1] if self.sessions else None

    def start(self):
        self.start_calls += 1
        if self.start_error is not None:
            return failed_future(self.start_error)
        return completed_future(None)

    def create_session(self, config):
        self.configs.append(config)
        if self.session_error is not None:
            return failed_future(self.session_error)
        session = FakeSession(config)
        self.sessions.append(session)
        return completed_future(session)

    def close(self):
        self.closed += 1


@pytest.fixture
def fake_transport():
    return FakeTransport()


@pytest.fixture
def service(fake_transport):
    """A connected CopilotChatService over the fake transport."""
    from jmeter_copilot.chat.service import CopilotChatService

    svc = CopilotChatService(fake_transport)
    svc.connect().result(timeout=5)
    yield svc
    svc.close()


# ------------------------------------------------------------------
# Configuration
# ------------------------------------------------------------------

@pytest.fixture
def sample_config():
    """Return a deep copy of the default config with test values."""
    config = copy.deepcopy(DEFAULT_CONFIG)
    config["ai"]["model"] = "gpt-4.1"
    config["chat"]["max_messages"] = 10
    return config


@pytest.fixture
def project_with_config(tmp_path, sample_config):
    """Create a project directory with a populated jmeter-copilot.yaml."""
    project_dir = tmp_path / "load-tests"
    project_dir.mkdir()
    with open(project_dir / "jmeter-copilot.yaml", "w", encoding="utf-8") as f:
        yaml.dump(sample_config, f, default_flow_style=False)
    return project_dir
