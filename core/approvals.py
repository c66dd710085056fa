"""Approval workflow for messages bound for client channels.

An approval starts pending with an empty draft. The draft is filled from
the agent's generated text, then the operator approves, edits then
approves, or rejects it. Every transition is a conditional single-row
update on status='pending', so a terminal approval can never move again
and a double click can never deliver twice.
"""

import logging
from typing import Any, Dict, Optional

from db import Approval, utcnow
from .approval import ApprovalStatus, ApprovalType, can_transition
from .storage import (
    create_approval as storage_create_approval,
    get_approval_by_id, update_pending_approval, set_approval_request_message,
)
from .errors import ApprovalNotFound, ApprovalStateError, EmptyDraftError
from .slack import get_slack, notify_update
from .blocks import build_approval_result_blocks
from .audit import log_audit, AuditAction

logger = logging.getLogger(__name__)


def create_approval(requested_by: str, target_channel: str, original_instruction: str,
                    tone: str = 'warm', extra: Optional[Dict[str, Any]] = None) -> Approval:
    """Create a pending client-message approval with an empty draft."""
    payload = {
        'draft_message': '',
        'target_channel': target_channel,
        'original_instruction': original_instruction,
        'tone': tone,
        'type': str(ApprovalType.CLIENT_MESSAGE),
    }
    if extra:
        payload.update(extra)
    approval = storage_create_approval(requested_by, payload, target_channel)
    log_audit(AuditAction.APPROVAL_REQUESTED, actor=requested_by,
              details={'approval_id': approval.id, 'target_channel': target_channel},
              channel_id=target_channel)
    logger.info(f"Created approval {approval.id} for channel {target_channel}")
    return approval


def _load(approval_id: int) -> Approval:
    approval = get_approval_by_id(approval_id)
    if approval is None:
        raise ApprovalNotFound(str(approval_id))
    return approval


def _require_pending(approval: Approval, to_status: Optional[ApprovalStatus] = None) -> None:
    status = ApprovalStatus.from_string(approval.status)
    allowed = not status.is_terminal if to_status is None else can_transition(status, to_status)
    if not allowed:
        raise ApprovalStateError(str(approval.id), str(status))


def _state_error(approval_id: int) -> ApprovalStateError:
    # The conditional update lost: someone else moved it first.
    current = get_approval_by_id(approval_id)
    status = current.status if current else 'missing'
    return ApprovalStateError(str(approval_id), status)


def set_draft(approval_id: int, draft_message: str) -> Approval:
    """Store the draft text on a pending approval."""
    approval = _load(approval_id)
    _require_pending(approval)
    payload = dict(approval.payload or {})
    payload['draft_message'] = draft_message
    if not update_pending_approval(approval_id, {'payload': payload}):
        raise _state_error(approval_id)
    approval.payload = payload
    return approval


def record_request_message(approval_id: int, channel_id: str, message_ts: str) -> Optional[Approval]:
    """Remember where the approval request was posted so it can be updated later."""
    return set_approval_request_message(approval_id, channel_id, message_ts)


def _update_request_message(approval: Approval, status: ApprovalStatus, text: str,
                            message: Optional[str] = None,
                            channel_id: Optional[str] = None) -> None:
    channel = approval.request_channel_id or channel_id
    if not (approval.slack_message_ts and channel):
        return
    blocks = build_approval_result_blocks(approval.target_channel or '', str(status), message)
    outcome = notify_update(channel, approval.slack_message_ts, text, blocks=blocks)
    if not outcome.delivered:
        logger.warning(f"Approval {approval.id} resolved but request message not updated: {outcome.error}")


def _approve(approval: Approval, actor: Optional[str], action: AuditAction,
             channel_id: Optional[str]) -> Approval:
    payload = approval.payload or {}
    draft = (payload.get('draft_message') or '').strip()
    if not draft:
        raise EmptyDraftError(str(approval.id))

    target = payload.get('target_channel') or approval.target_channel
    approved_at = utcnow()
    if not update_pending_approval(approval.id, {
        'status': str(ApprovalStatus.APPROVED),
        'approver': actor,
        'approved_at': approved_at,
    }):
        raise _state_error(approval.id)
    approval.status = str(ApprovalStatus.APPROVED)
    approval.approver = actor
    approval.approved_at = approved_at

    message = payload['draft_message']
    try:
        get_slack().post_message(target, message)
    except Exception as e:
        logger.exception(f"Approval {approval.id} approved but delivery to {target} failed")
        log_audit(AuditAction.APPROVAL_DELIVERY_FAILED, actor=actor,
                  details={'approval_id': approval.id, 'error': str(e)}, channel_id=target)
        raise

    _update_request_message(approval, ApprovalStatus.APPROVED, 'Approved and sent', message, channel_id)
    log_audit(action, actor=actor, details={
        'approval_id': approval.id, 'target_channel': target, 'message_preview': message[:100],
    }, channel_id=target)
    logger.info(f"Approval {approval.id} approved and sent to {target}")
    return approval


def approve(approval_id: int, actor: Optional[str] = None, channel_id: Optional[str] = None) -> Approval:
    """Approve a pending approval and deliver its draft verbatim.

    Args:
        approval_id: Approval ID
        actor: Slack user id of the approver
        channel_id: Channel holding the request message, if not recorded

    Returns:
        The approved Approval

    Raises:
        ApprovalNotFound: No such approval
        ApprovalStateError: Approval is already approved or rejected
        EmptyDraftError: The draft message is empty
        SlackAPIError: Delivery failed after the approval was claimed
    """
    approval = _load(approval_id)
    _require_pending(approval, ApprovalStatus.APPROVED)
    return _approve(approval, actor, AuditAction.MESSAGE_APPROVED, channel_id)


def edit_then_approve(approval_id: int, edited_message: str, actor: Optional[str] = None,
                      channel_id: Optional[str] = None) -> Approval:
    """Replace the draft with operator text, then approve it."""
    if not (edited_message or '').strip():
        raise EmptyDraftError(str(approval_id))
    approval = set_draft(approval_id, edited_message)
    return _approve(approval, actor, AuditAction.MESSAGE_EDITED_AND_APPROVED, channel_id)


def reject(approval_id: int, actor: Optional[str] = None, reason: Optional[str] = None,
           channel_id: Optional[str] = None) -> Approval:
    """Reject a pending approval. Nothing is delivered."""
    approval = _load(approval_id)
    _require_pending(approval, ApprovalStatus.REJECTED)
    rejected_at = utcnow()
    if not update_pending_approval(approval_id, {
        'status': str(ApprovalStatus.REJECTED),
        'approver': actor,
        'rejected_at': rejected_at,
        'rejection_reason': reason,
    }):
        raise _state_error(approval_id)
    approval.status = str(ApprovalStatus.REJECTED)
    approval.rejected_at = rejected_at
    approval.rejection_reason = reason

    _update_request_message(approval, ApprovalStatus.REJECTED, 'Rejected', channel_id=channel_id)
    log_audit(AuditAction.MESSAGE_REJECTED, actor=actor, details={
        'approval_id': approval_id, 'reason': reason,
    }, channel_id=approval.target_channel)
    logger.info(f"Approval {approval_id} rejected")
    return approval
