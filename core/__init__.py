"""Core domain modules for the support bot.

This package provides clean abstractions for:
- Task and approval status management (task.py, approval.py)
- Storage operations with status filtering (storage.py)
- Slack transport and Block Kit payloads (slack.py, blocks.py)
- Reminder scheduling, delivery and the deadline sweep (scheduling.py, reminders.py, deadlines.py)
- Due date parsing and quiet windows (due_dates.py, quiet_hours.py)
- The client-message approval workflow (approvals.py)
"""

from .task import TaskStatus, TaskPriority, ReminderType
from .approval import ApprovalStatus, ApprovalType

__all__ = ['TaskStatus', 'TaskPriority', 'ReminderType', 'ApprovalStatus', 'ApprovalType']
