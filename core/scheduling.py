"""Reminder scheduling and task completion.

Reminders are persisted first, then handed to the Celery reminders queue
with an ETA; the Celery task id is stored on the reminder row. Completing
a task cancels its reminders in bulk by marking them sent, so a job that
still fires later finds nothing to deliver.
"""

import logging
from typing import Optional, List, Dict, Any, Tuple
from datetime import datetime, timedelta, timezone

from db import Task, Reminder, utcnow
from .storage import (
    get_task_by_id, create_reminder, set_reminder_job_id,
    cancel_reminders_for_task as storage_cancel_reminders,
    update_task_status,
)
from .task import TaskStatus, can_transition
from .due_dates import compute_reminder_times
from .audit import log_audit, AuditAction

logger = logging.getLogger(__name__)


def reminder_payload(reminder: Reminder) -> Dict[str, Any]:
    return {
        'reminder_id': reminder.id,
        'task_id': reminder.task_id,
        'reminder_type': reminder.reminder_type,
    }


def enqueue_reminder(payload: Dict[str, Any], eta: datetime) -> str:
    """Enqueue a reminder job to fire at `eta` (naive UTC).

    Returns:
        Celery task id
    """
    from celery_app import send_reminder
    result = send_reminder.apply_async(args=[payload], eta=eta.replace(tzinfo=timezone.utc))
    return result.id


def requeue_reminder(payload: Dict[str, Any], delay: timedelta) -> str:
    """Enqueue a fresh job for the same reminder after `delay`.

    A fresh job starts with a full retry budget, unlike Task.retry. The
    reminder's stored job id is moved to the new job.
    """
    from celery_app import send_reminder
    result = send_reminder.apply_async(args=[payload], countdown=int(delay.total_seconds()))
    set_reminder_job_id(payload['reminder_id'], result.id)
    return result.id


def create_reminders_for_task(task: Task, now: Optional[datetime] = None) -> List[Reminder]:
    """Persist and enqueue the halfway and 24-hour reminders for a task.

    Fire times that are not strictly in the future are dropped.

    Args:
        task: Task with a deadline
        now: Reference time, defaults to utcnow

    Returns:
        Reminders that were created
    """
    if task.deadline is None:
        return []

    created = []
    for reminder_type, fire_at in compute_reminder_times(task.created_at, task.deadline, now=now):
        reminder = create_reminder(task.id, reminder_type, fire_at)
        job_id = enqueue_reminder(reminder_payload(reminder), fire_at)
        set_reminder_job_id(reminder.id, job_id)
        reminder.job_id = job_id
        created.append(reminder)
        logger.info(f"Scheduled {reminder_type} reminder {reminder.id} for task {task.id} at {fire_at}")

    return created


def cancel_reminders_for_task(task_id: int) -> int:
    """Mark all unsent reminders of a task as sent without delivering them."""
    count = storage_cancel_reminders(task_id)
    if count:
        logger.info(f"Cancelled {count} reminder(s) for task {task_id}")
    return count


def complete_task(task_id: int, actor: Optional[str] = None) -> Tuple[Optional[Task], bool]:
    """Complete a task and cancel its reminders.

    Idempotent: completing an already-completed task only re-applies the
    reminder cancellation and writes no audit record.

    Args:
        task_id: Task ID
        actor: Slack user id recorded in the audit trail

    Returns:
        (task, changed) where changed is False if the task was missing or
        already terminal
    """
    task = get_task_by_id(task_id)
    if not task:
        logger.error(f"Task {task_id} not found")
        return None, False

    status = TaskStatus.from_string(task.status)
    if not can_transition(status, TaskStatus.COMPLETED):
        cancel_reminders_for_task(task_id)
        logger.info(f"Task {task_id} already {status}, nothing to complete")
        return task, False

    update_task_status(task_id, TaskStatus.COMPLETED)
    cancel_reminders_for_task(task_id)
    log_audit(AuditAction.TASK_COMPLETED, actor=actor, details={'task_id': task_id, 'title': task.title})
    logger.info(f"Completed task {task_id}")

    task.status = str(TaskStatus.COMPLETED)
    task.completed_at = utcnow()
    return task, True
