"""Reminder delivery.

Runs inside the Celery reminders worker, once per job. The task state is
re-read before sending, so a reminder whose task completed after the job
was enqueued is closed without delivery.
"""

import logging
from enum import Enum
from typing import Any, Callable, Dict, Optional
from datetime import datetime, timedelta

from db import utcnow
from .storage import get_task_by_id, get_reminder_by_id, mark_reminder_sent, set_task_flag
from .task import TaskStatus, ReminderType
from .quiet_hours import QuietWindowPolicy
from .slack import get_slack
from .blocks import build_reminder_blocks
from .audit import log_audit, AuditAction
from .scheduling import requeue_reminder

logger = logging.getLogger(__name__)

TASK_FLAGS = {
    ReminderType.FIFTY_PERCENT: 'reminder_50_sent',
    ReminderType.TWENTY_FOUR_HOUR: 'reminder_24h_sent',
}


class ReminderOutcome(str, Enum):
    SENT = "sent"
    DEFERRED = "deferred"
    SKIPPED_MISSING_TASK = "skipped_missing_task"
    SKIPPED_ALREADY_SENT = "skipped_already_sent"
    SKIPPED_TERMINAL = "skipped_terminal"
    SKIPPED_NO_ASSIGNEE = "skipped_no_assignee"

    def __str__(self):
        return self.value


def deliver_reminder(payload: Dict[str, Any],
                     requeue: Callable[[Dict[str, Any], timedelta], Any] = requeue_reminder,
                     now: Optional[datetime] = None,
                     policy: Optional[QuietWindowPolicy] = None) -> ReminderOutcome:
    """Deliver one reminder job.

    Steps: defer inside a quiet window, skip a missing task, close out a
    terminal task without sending, skip a task with no assignee, then post
    to the task's channel (or the assignee's DM), mark sent and set the
    per-type flag on the task.

    Args:
        payload: {'reminder_id', 'task_id', 'reminder_type'}
        requeue: Called with (payload, delay) to defer the job
        now: Reference time, defaults to utcnow
        policy: Quiet-window policy, defaults to the configured one

    Returns:
        What happened to the reminder

    Raises:
        SlackAPIError: Delivery failed; the reminder stays unsent so the
            queue can retry it
    """
    now = now or utcnow()
    policy = policy or QuietWindowPolicy.from_config()
    reminder_id = payload['reminder_id']
    task_id = payload['task_id']
    reminder_type = ReminderType(payload['reminder_type'])

    if policy.should_defer(now):
        logger.info(f"Deferring reminder {reminder_id}: quiet window until {policy.next_available(now)}, "
                    f"retrying in {policy.defer_minutes} min")
        requeue(payload, policy.defer_delay)
        return ReminderOutcome.DEFERRED

    task = get_task_by_id(task_id)
    if not task:
        logger.warning(f"Task {task_id} not found for reminder {reminder_id}, skipping")
        return ReminderOutcome.SKIPPED_MISSING_TASK

    status = TaskStatus.from_string(task.status)
    if status.is_terminal:
        logger.info(f"Task {task_id} already {status}, closing reminder {reminder_id} without sending")
        mark_reminder_sent(reminder_id)
        return ReminderOutcome.SKIPPED_TERMINAL

    reminder = get_reminder_by_id(reminder_id)
    if reminder is not None and reminder.sent:
        logger.info(f"Reminder {reminder_id} already sent, skipping")
        return ReminderOutcome.SKIPPED_ALREADY_SENT

    assignee = task.assignee
    if assignee is None:
        logger.warning(f"Task {task_id} has no assignee, skipping reminder {reminder_id}")
        return ReminderOutcome.SKIPPED_NO_ASSIGNEE

    channel = task.channel_id or assignee.slack_user_id
    blocks = build_reminder_blocks(task, assignee, str(reminder_type))
    try:
        get_slack().post_message(channel, f'Reminder: "{task.title}" ({reminder_type.label})', blocks=blocks)
    except Exception:
        logger.exception(f"Failed to send reminder {reminder_id} for task {task_id}")
        raise

    mark_reminder_sent(reminder_id)
    flag = TASK_FLAGS.get(reminder_type)
    if flag:
        set_task_flag(task_id, flag)

    log_audit(AuditAction.REMINDER_SENT, details={
        'task_id': task_id, 'reminder_id': reminder_id,
        'reminder_type': str(reminder_type), 'assignee': assignee.name,
    }, channel_id=channel)
    logger.info(f"Reminder {reminder_id} ({reminder_type}) sent to {assignee.name} for task {task_id}")
    return ReminderOutcome.SENT
