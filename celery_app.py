import logging
from celery import Celery
from typing import Dict, Any

from core import config
from core.reminders import deliver_reminder
from core.deadlines import run_deadline_sweep

app = Celery('support_bot', broker=config.CELERY_BROKER_URL)

# Run one worker per queue:
#   celery -A celery_app worker -Q operator -c 1
#   celery -A celery_app worker -Q reminders -c 5
#   celery -A celery_app worker -Q deadlines -c 1
app.conf.task_routes = {
    'celery_app.process_operator_message': {'queue': 'operator'},
    'celery_app.send_reminder': {'queue': 'reminders'},
    'celery_app.check_deadlines': {'queue': 'deadlines'},
}
app.conf.task_acks_late = True
app.conf.worker_prefetch_multiplier = 1

logging.basicConfig(level=config.LOG_LEVEL, format=config.LOG_FORMAT)
logger = logging.getLogger(__name__)


@app.task(bind=True, max_retries=config.REMINDER_MAX_ATTEMPTS - 1)
def send_reminder(self, payload: Dict[str, Any]) -> str:
    """
    Deliver one reminder. Any delivery failure (Slack, database) is retried with
    exponential backoff up to REMINDER_MAX_ATTEMPTS attempts in total;
    quiet-window deferral enqueues a fresh job instead and never uses a retry.
    """
    try:
        outcome = deliver_reminder(payload)
    except Exception as exc:
        if self.request.retries >= self.max_retries:
            logger.error(f"Reminder {payload.get('reminder_id')} failed after "
                         f"{self.request.retries + 1} attempts; it stays unsent: {exc}")
            raise
        countdown = config.REMINDER_RETRY_BACKOFF * 2 ** self.request.retries
        logger.warning(f"Reminder {payload.get('reminder_id')} failed, retrying in {countdown}s: {exc}")
        raise self.retry(exc=exc, countdown=countdown)
    return str(outcome)


@app.task
def check_deadlines() -> Dict[str, Any]:
    """Flag overdue tasks and send the operator one digest."""
    try:
        result = run_deadline_sweep()
        return {'flagged': result.flagged_task_ids, 'digest_sent': result.digest_sent}
    except Exception as e:
        logger.exception(f"Error in check_deadlines: {e}")
        raise


@app.task
def process_operator_message(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Run one operator instruction through the orchestrator and reply in Slack."""
    from agents.handler import process_operator_message as handle_message
    response = handle_message(payload)
    return {'action': str(response.action), 'metadata': response.metadata}
