"""Capability client: response parsing, retries and model fallback."""

import json
from types import SimpleNamespace

import httpx
import openai
import pytest

from agents import llm as llm_state
from agents.llm import LLMClient
from core.errors import CapabilityError


def completion(content='', tool_calls=None, finish_reason='stop'):
    message = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(choices=[SimpleNamespace(message=message, finish_reason=finish_reason)],
                           usage=SimpleNamespace(prompt_tokens=12, completion_tokens=3))


def function_call(name, arguments, call_id='call_1'):
    return SimpleNamespace(id=call_id, function=SimpleNamespace(name=name, arguments=arguments))


def connection_error():
    return openai.APIConnectionError(request=httpx.Request('POST', 'https://api.openai.com/v1/chat/completions'))


class FakeCompletions:
    def __init__(self, outcomes):
        self.outcomes = {model: list(items) for model, items in outcomes.items()}
        self.calls = []

    def create(self, model, **request):
        self.calls.append((model, request))
        outcome = self.outcomes[model].pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeOpenAI:
    def __init__(self, outcomes):
        self.chat = SimpleNamespace(completions=FakeCompletions(outcomes))

    @property
    def models_called(self):
        return [model for model, _ in self.chat.completions.calls]


def make_client(outcomes):
    fake = FakeOpenAI(outcomes)
    return LLMClient(client=fake, max_attempts=2, fallback_models=['gpt-4o-mini'], backoff=0), fake


def test_text_response():
    client, _ = make_client({'gpt-4o': [completion('Hello!')]})
    response = client.complete('system', [{'role': 'user', 'content': 'hi'}])

    assert response.text == 'Hello!'
    assert response.stop_reason == 'end_turn'
    assert response.tool_calls == []
    assert (response.usage.input_tokens, response.usage.output_tokens) == (12, 3)
    assert response.model == 'gpt-4o'


def test_tool_calls_are_parsed():
    calls = [
        function_call('get_tasks', json.dumps({'scope': 'overdue'}), 'c1'),
        function_call('get_tasks', '{not json', 'c2'),
        function_call('get_tasks', '[1, 2]', 'c3'),
    ]
    client, _ = make_client({'gpt-4o': [completion(tool_calls=calls, finish_reason='tool_calls')]})
    response = client.complete('system', [])

    assert response.stop_reason == 'tool_use'
    assert [c.arguments for c in response.tool_calls] == [{'scope': 'overdue'}, None, None]
    message = response.as_message()
    assert message['role'] == 'assistant'
    assert message['tool_calls'][1]['function']['arguments'] == '{not json'


def test_length_finish_is_max_tokens():
    client, _ = make_client({'gpt-4o': [completion('cut', finish_reason='length')]})
    assert client.complete('system', []).stop_reason == 'max_tokens'


def test_request_carries_system_tools_and_choice():
    client, fake = make_client({'gpt-4o': [completion('ok')]})
    tools = [{'name': 'classify_intent', 'description': 'Classify', 'input_schema': {'type': 'object'}}]
    client.complete('be brief', [{'role': 'user', 'content': 'hi'}], tools=tools,
                    tool_choice='classify_intent', max_tokens=512)

    _, request = fake.chat.completions.calls[0]
    assert request['messages'][0] == {'role': 'system', 'content': 'be brief'}
    assert request['tools'][0]['function']['name'] == 'classify_intent'
    assert request['tool_choice'] == {'type': 'function', 'function': {'name': 'classify_intent'}}
    assert request['max_tokens'] == 512


def test_transient_errors_retry_then_fall_back():
    client, fake = make_client({
        'gpt-4o': [connection_error(), connection_error()],
        'gpt-4o-mini': [completion('from mini')],
    })
    response = client.complete('system', [])

    assert response.text == 'from mini'
    assert response.model == 'gpt-4o-mini'
    assert fake.models_called == ['gpt-4o', 'gpt-4o', 'gpt-4o-mini']


def test_non_transient_error_skips_to_next_tier():
    client, fake = make_client({
        'gpt-4o': [ValueError('bad request')],
        'gpt-4o-mini': [completion('ok')],
    })
    assert client.complete('system', []).text == 'ok'
    assert fake.models_called == ['gpt-4o', 'gpt-4o-mini']


def test_all_tiers_failing_raises_capability_error():
    client, _ = make_client({
        'gpt-4o': [connection_error(), connection_error()],
        'gpt-4o-mini': [ValueError('still broken')],
    })
    with pytest.raises(CapabilityError) as excinfo:
        client.complete('system', [])
    assert isinstance(excinfo.value.last_error, ValueError)


def test_active_model_is_used_and_not_repeated_as_fallback():
    llm_state.set_model('mini')
    client, fake = make_client({'gpt-4o-mini': [connection_error(), connection_error()]})

    with pytest.raises(CapabilityError):
        client.complete('system', [])
    assert fake.models_called == ['gpt-4o-mini', 'gpt-4o-mini']


def test_chat_returns_text():
    client, _ = make_client({'gpt-4o': [completion('plain answer')]})
    assert client.chat('system', [{'role': 'user', 'content': 'q'}]) == 'plain answer'
