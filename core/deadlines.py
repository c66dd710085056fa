"""Periodic sweep for tasks past their deadline."""

import logging
from dataclasses import dataclass, field
from typing import List, Optional
from datetime import datetime

from . import config
from .storage import get_overdue_unflagged_tasks, mark_task_overdue_flagged
from .slack import get_slack
from .blocks import build_overdue_digest_blocks
from .audit import log_audit, AuditAction

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    flagged_task_ids: List[int] = field(default_factory=list)
    digest_sent: bool = False


def run_deadline_sweep(now: Optional[datetime] = None) -> SweepResult:
    """Flag overdue tasks, then send the operator one digest covering them.

    Every task is flagged before the digest is attempted, so a failed
    digest never causes the same tasks to be flagged again next run.

    Raises:
        SlackAPIError: The digest could not be delivered (tasks stay flagged)
    """
    result = SweepResult()
    overdue = get_overdue_unflagged_tasks(now)
    if not overdue:
        logger.debug("No overdue tasks found")
        return result

    flagged = []
    for task in overdue:
        if mark_task_overdue_flagged(task.id):
            flagged.append(task)
            result.flagged_task_ids.append(task.id)

    if not flagged:
        return result

    logger.info(f"Flagged {len(flagged)} overdue task(s): {result.flagged_task_ids}")

    blocks = build_overdue_digest_blocks(flagged)
    get_slack().post_message(
        config.FOUNDER_SLACK_ID,
        f"You have {len(flagged)} overdue task(s) that need attention.",
        blocks=blocks,
    )
    result.digest_sent = True

    log_audit(AuditAction.OVERDUE_DIGEST_SENT, details={
        'task_count': len(flagged), 'task_ids': result.flagged_task_ids,
    })
    return result
