"""Append-only audit trail of what the bot did and when."""

import logging
from enum import Enum
from typing import Any, Dict, Optional

from db import AuditLog, add_audit_log
from .storage import get_session

logger = logging.getLogger(__name__)


class AuditAction(str, Enum):
    TASK_CREATED = "task_created"
    TASK_COMPLETED = "task_completed"
    REMINDER_SENT = "reminder_sent"
    OVERDUE_DIGEST_SENT = "overdue_digest_sent"
    APPROVAL_REQUESTED = "approval_requested"
    MESSAGE_APPROVED = "message_approved"
    MESSAGE_EDITED_AND_APPROVED = "message_edited_and_approved"
    MESSAGE_REJECTED = "message_rejected"
    APPROVAL_DELIVERY_FAILED = "approval_delivery_failed"
    MESSAGE_SENT = "message_sent"
    MESSAGE_SCHEDULED = "message_scheduled"
    FOUNDER_NOTIFIED = "founder_notified"

    def __str__(self):
        return self.value


def log_audit(action: AuditAction, actor: Optional[str] = None,
              details: Optional[Dict[str, Any]] = None, channel_id: Optional[str] = None) -> AuditLog:
    """Write one audit record. Records are never updated or deleted."""
    with get_session() as session:
        entry = add_audit_log(session, str(action), actor, details, channel_id)
    logger.info(f"Audit: {action} actor={actor} channel={channel_id}")
    return entry


def list_audit_entries(action: Optional[AuditAction] = None) -> list:
    with get_session() as session:
        query = session.query(AuditLog)
        if action:
            query = query.filter(AuditLog.action == str(action))
        return query.order_by(AuditLog.id.asc()).all()
