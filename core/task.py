"""Task status management and lifecycle.

Defines canonical task statuses, priorities and reminder types.
"""

from enum import Enum


class TaskStatus(str, Enum):
    """Canonical task statuses.

    COMPLETED and CANCELLED are terminal: a task never leaves them and
    must not carry unsent reminders.
    """
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"

    @classmethod
    def from_string(cls, value: str):
        """Parse a status string, handling alternate spellings."""
        if not value:
            return cls.PENDING

        normalized = value.strip().lower().replace('-', '_').replace(' ', '_')
        mapping = {
            'pending': cls.PENDING,
            'todo': cls.PENDING,
            'in_progress': cls.IN_PROGRESS,
            'active': cls.IN_PROGRESS,
            'completed': cls.COMPLETED,
            'done': cls.COMPLETED,
            'overdue': cls.OVERDUE,
            'cancelled': cls.CANCELLED,
            'canceled': cls.CANCELLED,
        }
        return mapping.get(normalized, cls.PENDING)

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    def __str__(self):
        return self.value


TERMINAL_STATUSES = frozenset({TaskStatus.COMPLETED, TaskStatus.CANCELLED})
ACTIVE_STATUSES = frozenset(set(TaskStatus) - TERMINAL_STATUSES)


class TaskPriority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"

    @classmethod
    def from_string(cls, value: str):
        if not value:
            return cls.NORMAL
        try:
            return cls(value.strip().lower())
        except ValueError:
            return cls.NORMAL

    def __str__(self):
        return self.value


class ReminderType(str, Enum):
    FIFTY_PERCENT = "50_percent"
    TWENTY_FOUR_HOUR = "24_hour"
    OVERDUE = "overdue"
    CUSTOM = "custom"

    @property
    def label(self) -> str:
        return {
            ReminderType.FIFTY_PERCENT: 'Halfway through the deadline',
            ReminderType.TWENTY_FOUR_HOUR: 'Due in 24 hours',
            ReminderType.OVERDUE: 'Overdue!',
            ReminderType.CUSTOM: 'Reminder',
        }[self]

    def __str__(self):
        return self.value


def can_transition(from_status: TaskStatus, to_status: TaskStatus) -> bool:
    """Check if a task status transition is valid.

    Active statuses may move to any other status. Terminal statuses never
    move, so completing a completed task is a no-op rather than a transition.
    """
    if from_status in TERMINAL_STATUSES:
        return False

    return from_status != to_status
