"""Routing of operator instructions, meta-commands and Slack delivery."""

from agents import handler
from agents import llm as llm_state
from agents.agent import AgentResponse, ResponseAction
from agents.handler import build_context, deliver_response, process_operator_message
from agents.instructions import TASK_INSTRUCTIONS
from agents.orchestrator import Orchestrator, enrich_message, handle_meta_command
from agents.schemas import AgentContext
from core.errors import CapabilityError, FALLBACK_MESSAGE
from core.storage import get_approval_by_id
from conftest import FakeLLM, classification, tool_call, tool_response, text_response

CONTEXT = AgentContext(channel_id='DFOUNDER', user_id='UFOUNDER', thread_ts='111.222')


def test_switch_model_command():
    response = handle_meta_command('switch to mini')
    assert 'gpt-4o-mini' in response.text
    assert llm_state.get_active_model() == 'gpt-4o-mini'

    handle_meta_command('use gpt4o')
    assert llm_state.get_active_model() == 'gpt-4o'


def test_unknown_model_keeps_current():
    before = llm_state.get_active_model()
    response = handle_meta_command('switch to claude')
    assert 'Unknown model "claude"' in response.text
    assert llm_state.get_active_model() == before


def test_model_status_command():
    response = handle_meta_command('What model')
    assert response.text.startswith('Currently using *gpt4o*')
    assert handle_meta_command('assign the logo to Sarah') is None


def test_meta_command_skips_the_model():
    llm = FakeLLM()
    response = Orchestrator(llm).handle('switch to mini', CONTEXT)
    assert 'mini' in response.text
    assert llm.requests == []


def test_enrich_message_keeps_original_first():
    enriched = enrich_message('Sarah: logo by Friday', {'assignee': 'Sarah', 'deadline': None})
    assert enriched.startswith('Sarah: logo by Friday\n\n[Router extracted parameters:')
    assert 'assignee: "Sarah"' in enriched
    assert 'deadline' not in enriched
    assert enrich_message('hi', {}) == 'hi'


def test_task_intent_goes_to_task_agent(team):
    llm = FakeLLM([
        classification('TASK_STATUS', assignee='Sarah'),
        tool_response(tool_call('get_tasks', {'person_name': 'Sarah'})),
        text_response('Sarah has nothing due.'),
    ])
    response = Orchestrator(llm).handle("what's Sarah working on?", CONTEXT)

    assert response.text == 'Sarah has nothing due.'
    agent_request = llm.requests[1]
    assert agent_request['system'] == TASK_INSTRUCTIONS
    assert '[Router extracted parameters:' in agent_request['messages'][0]['content']


def test_escalation_is_rewritten_for_communication_agent(team, slack):
    llm = FakeLLM([
        classification('ESCALATION', summary='Client furious about delay', urgency='critical'),
        tool_response(tool_call('dm_founder', {'message': 'Client furious about delay', 'urgency': 'critical'})),
        text_response('Alerted the founder.'),
    ])
    response = Orchestrator(llm).handle('Atmos is furious about the delay', CONTEXT)

    assert response.text == 'Alerted the founder.'
    content = llm.requests[1]['messages'][0]['content']
    assert 'ESCALATION detected' in content
    assert 'Urgency: critical' in content
    assert slack.posts[0]['channel'] == 'UFOUNDER'


def test_general_query_uses_thread_history():
    context = AgentContext(channel_id='DFOUNDER', user_id='UFOUNDER',
                           thread_history=[{'role': 'user', 'content': 'earlier question'},
                                           {'role': 'assistant', 'content': 'earlier answer'}])
    llm = FakeLLM([classification('GENERAL_QUERY', topic='hours'), text_response('We open at nine.')])
    response = Orchestrator(llm).handle('when do we open?', context)

    assert response.text == 'We open at nine.'
    assert response.action == ResponseAction.NONE
    assert [m['content'] for m in llm.requests[1]['messages']] == [
        'earlier question', 'earlier answer', 'when do we open?']


def test_total_failure_returns_fallback_message(team):
    llm = FakeLLM([classification('TASK_STATUS'), CapabilityError('All models failed')])
    response = Orchestrator(llm).handle('status', CONTEXT)
    assert response.text == FALLBACK_MESSAGE
    assert response.action == ResponseAction.NONE


def test_build_context_fails_closed(monkeypatch, team):
    assert build_context('CCLIENT', 'UFOUNDER').is_client_channel
    assert not build_context('CTEAM', 'UFOUNDER').is_client_channel

    def broken(channel_id):
        raise RuntimeError('db down')

    monkeypatch.setattr(handler, 'is_client_channel', broken)
    assert build_context('CTEAM', 'UFOUNDER').is_client_channel


def test_deliver_approval_stores_draft_and_request_message(team, slack):
    from core.approvals import create_approval
    approval = create_approval('UFOUNDER', 'CCLIENT', 'report is late')
    response = AgentResponse(text='Hi Atmos team, the report lands Monday.',
                             action=ResponseAction.CREATE_APPROVAL,
                             metadata={'approval_id': approval.id, 'target_channel': 'CCLIENT'},
                             blocks=[{'type': 'section', 'text': {'type': 'mrkdwn', 'text': 'draft'}}])

    ts = deliver_response(response, CONTEXT)

    stored = get_approval_by_id(approval.id)
    assert stored.payload['draft_message'] == 'Hi Atmos team, the report lands Monday.'
    assert stored.slack_message_ts == ts
    assert stored.request_channel_id == 'DFOUNDER'
    assert slack.posts[0]['thread_ts'] == '111.222'
    assert stored.status == 'pending'


def test_process_operator_message_replies_in_thread(monkeypatch, team, slack):
    class StubOrchestrator:
        def handle(self, message, context):
            assert context.thread_ts == '999.000'
            return AgentResponse(text=f"echo: {message}")

    monkeypatch.setattr(handler, 'get_orchestrator', lambda: StubOrchestrator())
    response = process_operator_message({'text': 'ping', 'channel': 'DFOUNDER', 'user': 'UFOUNDER',
                                         'ts': '999.000'})

    assert response.text == 'echo: ping'
    assert slack.posts == [{'channel': 'DFOUNDER', 'text': 'echo: ping', 'thread_ts': '999.000'}]
