"""Glue between an incoming operator message and the orchestrator.

Runs the orchestrator, posts the reply in the operator's thread, and for
draft approvals stores the generated text as the draft and remembers
where the approval request was posted so the buttons can update it.
"""

import logging
from typing import Any, Dict, List, Optional

from core.approvals import set_draft, record_request_message
from core.errors import ApprovalError
from core.slack import get_slack
from core.team import is_client_channel
from .agent import AgentResponse, ResponseAction
from .orchestrator import get_orchestrator
from .schemas import AgentContext

logger = logging.getLogger('agent.handler')


def build_context(channel_id: str, user_id: str, channel_type: str = 'im',
                  thread_ts: Optional[str] = None,
                  thread_history: Optional[List[Dict[str, Any]]] = None) -> AgentContext:
    try:
        client_channel = is_client_channel(channel_id)
    except Exception:
        logger.exception(f"Channel lookup failed for {channel_id}; treating it as a client channel")
        client_channel = True
    return AgentContext(
        channel_id=channel_id,
        user_id=user_id,
        channel_type=channel_type,
        is_client_channel=client_channel,
        thread_ts=thread_ts,
        thread_history=list(thread_history or []),
    )


def deliver_response(response: AgentResponse, context: AgentContext) -> Optional[str]:
    """Post the reply in the operator's thread and return its ts."""
    slack = get_slack()
    text = response.text or 'Done.'

    approval_id = response.metadata.get('approval_id')
    if response.action == ResponseAction.CREATE_APPROVAL and approval_id:
        try:
            set_draft(approval_id, response.text)
        except ApprovalError as e:
            logger.warning(f"Could not store draft for approval {approval_id}: {e.message}")
        ts = slack.post_message(context.channel_id, text, blocks=response.blocks, thread_ts=context.thread_ts)
        record_request_message(approval_id, context.channel_id, ts)
        logger.info(f"Approval {approval_id} request posted to {context.channel_id}")
        return ts

    return slack.post_message(context.channel_id, text, blocks=response.blocks, thread_ts=context.thread_ts)


def process_operator_message(payload: Dict[str, Any]) -> AgentResponse:
    """Handle one operator message from the Slack events endpoint.

    Args:
        payload: {'text', 'channel', 'user', 'ts', 'thread_ts'?, 'channel_type'?,
            'thread_history'?}

    Returns:
        The response that was posted
    """
    context = build_context(
        channel_id=payload['channel'],
        user_id=payload['user'],
        channel_type=payload.get('channel_type') or 'im',
        thread_ts=payload.get('thread_ts') or payload.get('ts'),
        thread_history=payload.get('thread_history'),
    )
    logger.info(f"Processing message from {context.user_id} in {context.channel_id}: "
                f"{payload['text'][:100]!r}")

    response = get_orchestrator().handle(payload['text'], context)
    deliver_response(response, context)
    return response
