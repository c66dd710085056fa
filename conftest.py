"""Shared fixtures: a throwaway SQLite database, a recording Slack client
and a scripted model client. Environment is set before any application
module is imported because config and the engine are read at import.
"""

import json
import os
import tempfile

_tmpdir = tempfile.mkdtemp(prefix='support-bot-tests-')
os.environ['DATABASE_URL'] = f"sqlite:///{os.path.join(_tmpdir, 'test.db')}"
os.environ['FOUNDER_SLACK_ID'] = 'UFOUNDER'
os.environ['SLACK_BOT_TOKEN'] = 'xoxb-test'
os.environ['SLACK_SIGNING_SECRET'] = ''
os.environ['OPENAI_API_KEY'] = 'test-key'
os.environ['TIMEZONE'] = 'Asia/Karachi'
os.environ['QUIET_WINDOWS'] = ''
os.environ['QUIET_FRIDAY_WINDOW'] = ''

import pytest  # noqa: E402

from db import Base, engine, upsert_team_member, upsert_channel_config  # noqa: E402
from core import scheduling  # noqa: E402
from core.errors import SlackAPIError  # noqa: E402
from core.slack import SlackClient, set_slack  # noqa: E402
from core.storage import get_session  # noqa: E402
from agents.llm import LLMResponse, ToolCallRequest, Usage, set_llm, reset_model  # noqa: E402


class FakeSlack(SlackClient):
    """Records every Web API call instead of sending it."""

    def __init__(self):
        super().__init__(token='xoxb-test')
        self.calls = []
        self.history = {}
        self.fail_methods = set()
        self.fail_channels = set()
        self.channel_names = {}
        self.channel_pages = []
        self.join_errors = {}
        self._counter = 0

    def _call(self, method, payload, http_method='POST'):
        channel = payload.get('channel')
        if method in self.fail_methods or (channel and channel in self.fail_channels):
            raise SlackAPIError(method, 'channel_not_found')
        self.calls.append((method, dict(payload)))
        self._counter += 1
        if method == 'auth.test':
            return {'ok': True, 'user_id': 'UBOT'}
        if method == 'conversations.info':
            return {'ok': True, 'channel': {'id': channel, 'name': self.channel_names.get(channel)}}
        if method == 'conversations.join' and channel in self.join_errors:
            raise SlackAPIError(method, self.join_errors[channel])
        if method == 'conversations.list':
            page = int(payload.get('cursor') or 0)
            more = page + 1 < len(self.channel_pages)
            return {'ok': True, 'channels': self.channel_pages[page] if self.channel_pages else [],
                    'response_metadata': {'next_cursor': str(page + 1) if more else ''}}
        if method == 'conversations.history':
            return {'ok': True, 'messages': self.history.get(channel, [])}
        if method == 'chat.scheduleMessage':
            return {'ok': True, 'scheduled_message_id': f"Q{self._counter:04d}"}
        return {'ok': True, 'ts': f"1700000000.{self._counter:06d}"}

    def calls_to(self, method):
        return [payload for name, payload in self.calls if name == method]

    @property
    def posts(self):
        return self.calls_to('chat.postMessage')

    @property
    def updates(self):
        return self.calls_to('chat.update')

    @property
    def scheduled(self):
        return self.calls_to('chat.scheduleMessage')

    @property
    def views(self):
        return self.calls_to('views.open')


class FakeLLM:
    """Plays back queued responses; a queued exception is raised instead."""

    def __init__(self, responses=None):
        self.responses = list(responses or [])
        self.requests = []

    def queue(self, *responses):
        self.responses.extend(responses)

    def complete(self, system, messages, tools=None, tool_choice=None, max_tokens=4096,
                 temperature=0.3, model=None):
        self.requests.append({
            'system': system,
            'messages': list(messages),
            'tools': tools,
            'tool_choice': tool_choice,
            'max_tokens': max_tokens,
        })
        if not self.responses:
            raise AssertionError('FakeLLM has no queued response')
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def chat(self, system, messages, max_tokens=1024):
        return self.complete(system, messages, max_tokens=max_tokens).text


def tool_call(name, arguments, call_id=None):
    return ToolCallRequest(id=call_id or f"call_{name}", name=name, arguments=arguments,
                           raw_arguments=json.dumps(arguments))


def tool_response(*calls, text=''):
    return LLMResponse(text=text, tool_calls=list(calls), stop_reason='tool_use',
                       usage=Usage(input_tokens=10, output_tokens=5))


def text_response(text):
    return LLMResponse(text=text, stop_reason='end_turn', usage=Usage(input_tokens=10, output_tokens=5))


def classification(intent, confidence=0.9, **params):
    return tool_response(tool_call('classify_intent', {'intent': intent, 'confidence': confidence,
                                                       'params': params}))


@pytest.fixture(autouse=True)
def fresh_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture(autouse=True)
def slack():
    fake = FakeSlack()
    set_slack(fake)
    yield fake
    set_slack(None)


@pytest.fixture(autouse=True)
def enqueued(monkeypatch):
    """Reminder jobs handed to the queue, as (payload, eta) pairs."""
    jobs = []

    def fake_enqueue(payload, eta):
        jobs.append((payload, eta))
        return f"job-{len(jobs)}"

    monkeypatch.setattr(scheduling, 'enqueue_reminder', fake_enqueue)
    return jobs


@pytest.fixture(autouse=True)
def model_state():
    reset_model()
    yield
    reset_model()


@pytest.fixture
def llm():
    fake = FakeLLM()
    set_llm(fake)
    yield fake
    set_llm(None)


@pytest.fixture
def team():
    """Founder Moe, Sarah, one client channel and one internal channel."""
    with get_session() as session:
        founder = upsert_team_member(session, 'Moe', 'UFOUNDER', role='founder', is_founder=True)
        sarah = upsert_team_member(session, 'Sarah', 'USARAH', role='designer')
        client = upsert_channel_config(session, 'CCLIENT', 'client_atmos-foundation', channel_type='client',
                                       client_name='Atmos Foundation', requires_approval=True)
        internal = upsert_channel_config(session, 'CTEAM', 'team-general', channel_type='internal')
    return {'founder': founder, 'sarah': sarah, 'client': client, 'internal': internal}
