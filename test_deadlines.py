"""Overdue sweep: flag once, one digest per run."""

from datetime import timedelta

import pytest

from celery_app import check_deadlines
from core.audit import AuditAction, list_audit_entries
from core.deadlines import run_deadline_sweep
from core.errors import SlackAPIError
from core.scheduling import complete_task
from core.storage import create_task, get_task_by_id
from db import utcnow


def test_sweep_flags_once_and_sends_one_digest(team, slack):
    now = utcnow()
    late = create_task('Invoice Atmos', assigned_to=team['sarah'].id, deadline=now - timedelta(hours=2))
    later = create_task('Update deck', assigned_to=team['sarah'].id, deadline=now - timedelta(hours=1))
    create_task('Future work', assigned_to=team['sarah'].id, deadline=now + timedelta(days=1))

    result = run_deadline_sweep()

    assert result.flagged_task_ids == [late.id, later.id]
    assert result.digest_sent
    assert len(slack.posts) == 1
    assert slack.posts[0]['channel'] == 'UFOUNDER'
    assert '2 overdue task(s)' in slack.posts[0]['text']
    assert get_task_by_id(late.id).status == 'overdue'
    assert get_task_by_id(late.id).overdue_flagged

    second = run_deadline_sweep()
    assert second.flagged_task_ids == []
    assert not second.digest_sent
    assert len(slack.posts) == 1
    assert len(list_audit_entries(AuditAction.OVERDUE_DIGEST_SENT)) == 1


def test_completed_tasks_are_not_flagged(team, slack):
    task = create_task('Done already', assigned_to=team['sarah'].id, deadline=utcnow() - timedelta(hours=3))
    complete_task(task.id)

    assert run_deadline_sweep().flagged_task_ids == []
    assert slack.posts == []


def test_failed_digest_keeps_tasks_flagged(team, slack):
    task = create_task('Invoice Atmos', assigned_to=team['sarah'].id, deadline=utcnow() - timedelta(hours=2))
    slack.fail_methods.add('chat.postMessage')

    with pytest.raises(SlackAPIError):
        run_deadline_sweep()

    assert get_task_by_id(task.id).overdue_flagged
    slack.fail_methods.clear()
    assert run_deadline_sweep().flagged_task_ids == []
    assert slack.posts == []


def test_sweep_task_summary(team, slack):
    task = create_task('Invoice Atmos', assigned_to=team['sarah'].id, deadline=utcnow() - timedelta(hours=2))
    assert check_deadlines.apply().get() == {'flagged': [task.id], 'digest_sent': True}
