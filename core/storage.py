"""Storage layer with filtered query operations.

Wraps the CRUD helpers from db.py in short-lived sessions and returns
detached objects, so agents, workers and Slack handlers never hold a
session across a network call.
"""

from typing import List, Optional, Generator, Dict, Any
from contextlib import contextmanager
from datetime import datetime, timedelta

from sqlalchemy.orm import joinedload

from db import (
    SessionLocal, Task, Reminder, Approval, TeamMember, ChannelConfig, utcnow,
    create_task as db_create_task,
    update_task_status as db_update_task_status,
    set_task_flag as db_set_task_flag,
    mark_task_overdue_flagged as db_mark_task_overdue_flagged,
    create_reminder as db_create_reminder,
    get_reminder as db_get_reminder,
    set_reminder_job as db_set_reminder_job,
    mark_reminder_sent as db_mark_reminder_sent,
    cancel_task_reminders as db_cancel_task_reminders,
    create_approval as db_create_approval,
    get_approval as db_get_approval,
    update_pending_approval as db_update_pending_approval,
    get_all_team_members as db_get_all_team_members,
    get_all_channel_configs as db_get_all_channel_configs,
    get_channel_config as db_get_channel_config,
    upsert_channel_config as db_upsert_channel_config,
)
from .task import TaskStatus, TaskPriority, ACTIVE_STATUSES, TERMINAL_STATUSES


@contextmanager
def get_session() -> Generator:
    """Context manager for database sessions.

    Objects loaded inside the block are expunged on exit so callers can
    keep reading them after the session closes.
    """
    session = SessionLocal()
    try:
        yield session
        session.expunge_all()
    finally:
        session.close()


_ACTIVE = [str(s) for s in ACTIVE_STATUSES]
_TERMINAL = [str(s) for s in TERMINAL_STATUSES]


# ===== Task Operations =====

def create_task(title: str, description: Optional[str] = None, assigned_to: Optional[int] = None,
                assigned_by: Optional[str] = None, channel_id: Optional[str] = None,
                priority: TaskPriority = TaskPriority.NORMAL,
                deadline: Optional[datetime] = None) -> Task:
    """Create a new task in the pending state.

    Args:
        title: Task title
        description: Free-text details
        assigned_to: TeamMember id of the assignee
        assigned_by: Slack user id of whoever asked for the task
        channel_id: Channel the task is bound to, if any
        priority: Task priority
        deadline: Naive UTC deadline

    Returns:
        Created Task object with its assignee loaded
    """
    with get_session() as session:
        task = db_create_task(session, title, description, assigned_to, assigned_by,
                              channel_id, str(priority), deadline)
        return session.query(Task).options(joinedload(Task.assignee)).populate_existing().filter(
            Task.id == task.id).first()


def get_task_by_id(task_id: int) -> Optional[Task]:
    """Fetch a single task by ID with its assignee loaded."""
    with get_session() as session:
        return session.query(Task).options(joinedload(Task.assignee)).filter(Task.id == task_id).first()


def list_tasks(scope: str = 'active', assigned_to: Optional[int] = None,
               now: Optional[datetime] = None) -> List[Task]:
    """List tasks for a status view.

    Args:
        scope: 'active' (non-terminal), 'overdue', 'this_week' (active, due
            within 7 days) or 'all'
        assigned_to: Restrict to one TeamMember id
        now: Reference time for date scopes (defaults to utcnow)

    Returns:
        Tasks sorted by deadline ascending, tasks without a deadline last
    """
    now = now or utcnow()
    with get_session() as session:
        query = session.query(Task).options(joinedload(Task.assignee))

        if scope == 'active':
            query = query.filter(Task.status.in_(_ACTIVE))
        elif scope == 'overdue':
            query = query.filter(Task.status.in_(_ACTIVE), Task.deadline != None, Task.deadline < now)
        elif scope == 'this_week':
            query = query.filter(Task.status.in_(_ACTIVE), Task.deadline != None,
                                 Task.deadline <= now + timedelta(days=7))

        if assigned_to is not None:
            query = query.filter(Task.assigned_to == assigned_to)

        query = query.order_by(Task.deadline.asc().nullslast(), Task.created_at.asc())
        return query.all()


def find_active_tasks(search: str, assigned_to: Optional[int] = None) -> List[Task]:
    """Non-terminal tasks whose title contains `search`, newest first."""
    with get_session() as session:
        query = session.query(Task).options(joinedload(Task.assignee)).filter(
            Task.status.notin_(_TERMINAL),
            Task.title.ilike(f"%{search}%"),
        )
        if assigned_to is not None:
            query = query.filter(Task.assigned_to == assigned_to)
        return query.order_by(Task.created_at.desc()).all()


def update_task_status(task_id: int, new_status: TaskStatus) -> Optional[Task]:
    """Update task status.

    Args:
        task_id: Task ID
        new_status: New status to set

    Returns:
        Updated Task object or None if not found
    """
    with get_session() as session:
        return db_update_task_status(session, task_id, str(new_status))


def set_task_flag(task_id: int, flag: str) -> Optional[Task]:
    with get_session() as session:
        return db_set_task_flag(session, task_id, flag)


def get_overdue_unflagged_tasks(now: Optional[datetime] = None) -> List[Task]:
    """Active tasks past their deadline that the sweep has not flagged yet."""
    now = now or utcnow()
    with get_session() as session:
        return session.query(Task).options(joinedload(Task.assignee)).filter(
            Task.status.in_([str(TaskStatus.PENDING), str(TaskStatus.IN_PROGRESS)]),
            Task.deadline != None,
            Task.deadline < now,
            Task.overdue_flagged == False,
        ).order_by(Task.deadline.asc()).all()


def mark_task_overdue_flagged(task_id: int) -> bool:
    """Flag a task overdue. False when another sweep already flagged it."""
    with get_session() as session:
        return db_mark_task_overdue_flagged(session, task_id) == 1


# ===== Reminder Operations =====

def create_reminder(task_id: int, reminder_type: str, scheduled_for: datetime) -> Reminder:
    with get_session() as session:
        return db_create_reminder(session, task_id, str(reminder_type), scheduled_for)


def get_reminder_by_id(reminder_id: int) -> Optional[Reminder]:
    with get_session() as session:
        return db_get_reminder(session, reminder_id)


def set_reminder_job_id(reminder_id: int, job_id: str) -> Optional[Reminder]:
    with get_session() as session:
        return db_set_reminder_job(session, reminder_id, job_id)


def mark_reminder_sent(reminder_id: int) -> Optional[Reminder]:
    with get_session() as session:
        return db_mark_reminder_sent(session, reminder_id)


def cancel_reminders_for_task(task_id: int) -> int:
    """Mark every unsent reminder for a task as sent without delivering it.

    Returns:
        Number of reminders cancelled
    """
    with get_session() as session:
        return db_cancel_task_reminders(session, task_id)


def list_reminders_for_task(task_id: int) -> List[Reminder]:
    with get_session() as session:
        return session.query(Reminder).filter(Reminder.task_id == task_id).order_by(
            Reminder.scheduled_for.asc()).all()


# ===== Approval Operations =====

def create_approval(requested_by: str, payload: Dict[str, Any], target_channel: str) -> Approval:
    with get_session() as session:
        return db_create_approval(session, requested_by, payload, target_channel)


def get_approval_by_id(approval_id: int) -> Optional[Approval]:
    with get_session() as session:
        return db_get_approval(session, approval_id)


def update_pending_approval(approval_id: int, values: Dict[str, Any]) -> bool:
    """Apply `values` only if the approval is still pending.

    Returns:
        True if the row was updated, False if it was missing or terminal
    """
    with get_session() as session:
        return db_update_pending_approval(session, approval_id, values) == 1


def set_approval_request_message(approval_id: int, channel_id: str, message_ts: str) -> Optional[Approval]:
    with get_session() as session:
        approval = db_get_approval(session, approval_id)
        if approval:
            approval.request_channel_id = channel_id
            approval.slack_message_ts = message_ts
            session.commit()
        return approval


# ===== Reference Data =====

def list_team_members() -> List[TeamMember]:
    with get_session() as session:
        return db_get_all_team_members(session)


def list_channel_configs(channel_type: Optional[str] = None) -> List[ChannelConfig]:
    with get_session() as session:
        channels = db_get_all_channel_configs(session)
        if channel_type:
            channels = [c for c in channels if c.channel_type == channel_type]
        return channels


def get_channel_config(channel_id: str) -> Optional[ChannelConfig]:
    with get_session() as session:
        return db_get_channel_config(session, channel_id)


def save_channel_config(channel_id: str, channel_name: str, channel_type: str,
                        client_name: Optional[str] = None, requires_approval: bool = False) -> ChannelConfig:
    """Insert or update a channel configuration by Slack channel id."""
    with get_session() as session:
        return db_upsert_channel_config(session, channel_id, channel_name, channel_type=channel_type,
                                        client_name=client_name, requires_approval=requires_approval)
