"""Reminder scheduling and task completion."""

from datetime import timedelta

from core.audit import AuditAction, list_audit_entries
from core.scheduling import create_reminders_for_task, complete_task, reminder_payload
from core.storage import create_task, get_task_by_id, list_reminders_for_task
from core.task import TaskStatus, can_transition
from db import utcnow


def make_task(team, hours):
    return create_task('Quarterly report', assigned_to=team['sarah'].id, assigned_by='UFOUNDER',
                       deadline=utcnow() + timedelta(hours=hours))


def test_long_deadline_gets_both_reminders(team, enqueued):
    task = make_task(team, 96)
    reminders = create_reminders_for_task(task)

    assert [r.reminder_type for r in reminders] == ['50_percent', '24_hour']
    assert enqueued[0][0] == reminder_payload(reminders[0])
    assert enqueued[1][1] == task.deadline - timedelta(hours=24)
    assert [r.job_id for r in list_reminders_for_task(task.id)] == ['job-1', 'job-2']


def test_short_deadline_skips_past_reminder(team, enqueued):
    task = make_task(team, 10)
    reminders = create_reminders_for_task(task)
    assert [r.reminder_type for r in reminders] == ['50_percent']
    assert len(enqueued) == 1


def test_no_deadline_no_reminders(team, enqueued):
    task = create_task('Open-ended', assigned_to=team['sarah'].id)
    assert create_reminders_for_task(task) == []
    assert enqueued == []


def test_complete_task_is_idempotent(team):
    task = make_task(team, 96)
    create_reminders_for_task(task)

    completed, changed = complete_task(task.id, actor='UFOUNDER')
    assert changed
    assert completed.status == 'completed'
    assert get_task_by_id(task.id).completed_at is not None
    assert all(r.sent for r in list_reminders_for_task(task.id))

    again, changed_again = complete_task(task.id, actor='UFOUNDER')
    assert again is not None
    assert not changed_again
    assert len(list_audit_entries(AuditAction.TASK_COMPLETED)) == 1


def test_complete_missing_task():
    assert complete_task(12345) == (None, False)


def test_task_status_transitions():
    assert can_transition(TaskStatus.PENDING, TaskStatus.COMPLETED)
    assert can_transition(TaskStatus.OVERDUE, TaskStatus.COMPLETED)
    assert not can_transition(TaskStatus.COMPLETED, TaskStatus.COMPLETED)
    assert not can_transition(TaskStatus.CANCELLED, TaskStatus.PENDING)
    assert TaskStatus.from_string('Done') == TaskStatus.COMPLETED
    assert TaskStatus.from_string('in progress') == TaskStatus.IN_PROGRESS
