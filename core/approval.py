"""Approval status management and lifecycle.

Defines canonical approval statuses and validation logic.
"""

from enum import Enum


class ApprovalStatus(str, Enum):
    """Canonical approval statuses."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

    @classmethod
    def from_string(cls, value: str):
        """Parse a status string, handling alternate values."""
        if not value:
            return cls.PENDING

        normalized = value.strip().lower()
        mapping = {
            'pending': cls.PENDING,
            'approved': cls.APPROVED,
            'sent': cls.APPROVED,
            'rejected': cls.REJECTED,
            'declined': cls.REJECTED,
        }
        return mapping.get(normalized, cls.PENDING)

    @property
    def is_terminal(self) -> bool:
        return self != ApprovalStatus.PENDING

    def __str__(self):
        return self.value


class ApprovalType(str, Enum):
    CLIENT_MESSAGE = "client_message"

    def __str__(self):
        return self.value


def can_transition(from_status: ApprovalStatus, to_status: ApprovalStatus) -> bool:
    """Check if an approval status transition is valid.

    Valid transitions:
    - PENDING -> APPROVED
    - PENDING -> REJECTED

    Terminal states never change, not even to themselves.
    """
    valid_transitions = {
        ApprovalStatus.PENDING: {ApprovalStatus.APPROVED, ApprovalStatus.REJECTED},
    }

    return to_status in valid_transitions.get(from_status, set())
