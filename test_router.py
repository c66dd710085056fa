"""Intent classification and its fallbacks to GENERAL_QUERY."""

from agents.router import classify
from agents.schemas import AgentContext, Intent, CLASSIFY_TOOL_NAME
from core.errors import CapabilityError
from conftest import FakeLLM, classification, tool_call, tool_response, text_response

CONTEXT = AgentContext(channel_id='DFOUNDER', user_id='UFOUNDER')


def test_forced_classification():
    llm = FakeLLM([classification('TASK_ASSIGN', 0.95, assignee='Sarah', deadline='Friday')])
    result = classify('Sarah should do the logo by Friday', CONTEXT, llm=llm)

    assert result.intent == Intent.TASK_ASSIGN
    assert result.confidence == 0.95
    assert result.params == {'assignee': 'Sarah', 'deadline': 'Friday'}
    assert llm.requests[0]['tool_choice'] == CLASSIFY_TOOL_NAME
    assert llm.requests[0]['max_tokens'] == 512


def test_model_failure_falls_back():
    llm = FakeLLM([CapabilityError('All models failed')])
    result = classify('hello there', CONTEXT, llm=llm)
    assert result.intent == Intent.GENERAL_QUERY
    assert result.confidence == 0.3
    assert result.params == {'topic': 'hello there'}


def test_missing_classification_falls_back():
    result = classify('hello', CONTEXT, llm=FakeLLM([text_response('I think this is a task')]))
    assert result.intent == Intent.GENERAL_QUERY
    assert result.confidence == 0.3


def test_unknown_intent_falls_back_with_medium_confidence():
    llm = FakeLLM([classification('ORDER_PIZZA', 0.99)])
    result = classify('get pizza', CONTEXT, llm=llm)
    assert result.intent == Intent.GENERAL_QUERY
    assert result.confidence == 0.5


def test_malformed_classification_falls_back():
    llm = FakeLLM([tool_response(tool_call(CLASSIFY_TOOL_NAME, {'intent': 'TASK_STATUS', 'confidence': 7}))])
    result = classify('status?', CONTEXT, llm=llm)
    assert result.intent == Intent.GENERAL_QUERY
    assert result.confidence == 0.3


def test_unparsable_arguments_fall_back():
    call = tool_call(CLASSIFY_TOOL_NAME, None)
    result = classify('status?', CONTEXT, llm=FakeLLM([tool_response(call)]))
    assert result.intent == Intent.GENERAL_QUERY
