"""Client-message approvals: one terminal transition, one delivery."""

import pytest

from core import approvals
from core.approval import ApprovalStatus, can_transition
from core.audit import AuditAction, list_audit_entries
from core.errors import ApprovalNotFound, ApprovalStateError, EmptyDraftError, SlackAPIError
from core.storage import get_approval_by_id

DRAFT = 'Hi Atmos team, the report will be with you on Monday.'


def pending_approval(draft=DRAFT, posted=True):
    approval = approvals.create_approval('UFOUNDER', 'CCLIENT', 'tell them the report is late')
    if draft:
        approvals.set_draft(approval.id, draft)
    if posted:
        approvals.record_request_message(approval.id, 'DFOUNDER', '1700000000.000100')
    return approval


def test_approve_delivers_draft_verbatim(team, slack):
    approval = pending_approval()
    approvals.approve(approval.id, actor='UFOUNDER')

    assert slack.posts == [{'channel': 'CCLIENT', 'text': DRAFT}]
    stored = get_approval_by_id(approval.id)
    assert stored.status == 'approved'
    assert stored.approver == 'UFOUNDER'
    assert stored.approved_at is not None
    assert slack.updates[0]['ts'] == '1700000000.000100'
    assert len(list_audit_entries(AuditAction.MESSAGE_APPROVED)) == 1


def test_double_approve_delivers_once(team, slack):
    approval = pending_approval()
    approvals.approve(approval.id, actor='UFOUNDER')

    with pytest.raises(ApprovalStateError):
        approvals.approve(approval.id, actor='UFOUNDER')
    with pytest.raises(ApprovalStateError):
        approvals.reject(approval.id, actor='UFOUNDER')
    assert len(slack.posts) == 1


def test_reject_sends_nothing(team, slack):
    approval = pending_approval()
    approvals.reject(approval.id, actor='UFOUNDER', reason='wrong tone')

    stored = get_approval_by_id(approval.id)
    assert stored.status == 'rejected'
    assert stored.rejection_reason == 'wrong tone'
    assert slack.posts == []
    with pytest.raises(ApprovalStateError):
        approvals.approve(approval.id)


def test_empty_draft_cannot_be_approved(team, slack):
    approval = pending_approval(draft=None)
    with pytest.raises(EmptyDraftError):
        approvals.approve(approval.id)
    assert get_approval_by_id(approval.id).status == 'pending'
    assert slack.posts == []


def test_edit_then_approve_sends_edited_text(team, slack):
    approval = pending_approval()
    approvals.edit_then_approve(approval.id, 'Hello! Report arrives Monday.', actor='UFOUNDER')

    assert slack.posts == [{'channel': 'CCLIENT', 'text': 'Hello! Report arrives Monday.'}]
    stored = get_approval_by_id(approval.id)
    assert stored.payload['draft_message'] == 'Hello! Report arrives Monday.'
    assert len(list_audit_entries(AuditAction.MESSAGE_EDITED_AND_APPROVED)) == 1

    with pytest.raises(EmptyDraftError):
        approvals.edit_then_approve(pending_approval().id, '   ')


def test_unknown_approval():
    with pytest.raises(ApprovalNotFound):
        approvals.approve(4242)


def test_delivery_failure_after_claim(team, slack):
    """The approval stays approved and the failure is audited."""
    approval = pending_approval()
    slack.fail_channels.add('CCLIENT')

    with pytest.raises(SlackAPIError):
        approvals.approve(approval.id, actor='UFOUNDER')

    assert get_approval_by_id(approval.id).status == 'approved'
    assert len(list_audit_entries(AuditAction.APPROVAL_DELIVERY_FAILED)) == 1
    with pytest.raises(ApprovalStateError):
        approvals.approve(approval.id, actor='UFOUNDER')


def test_approval_status_transitions():
    assert can_transition(ApprovalStatus.PENDING, ApprovalStatus.APPROVED)
    assert can_transition(ApprovalStatus.PENDING, ApprovalStatus.REJECTED)
    assert not can_transition(ApprovalStatus.APPROVED, ApprovalStatus.REJECTED)
    assert not can_transition(ApprovalStatus.REJECTED, ApprovalStatus.REJECTED)
    assert ApprovalStatus.from_string('sent') == ApprovalStatus.APPROVED
