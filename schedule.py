import time
import logging
from datetime import datetime

from apscheduler.schedulers.background import BackgroundScheduler

from core import config
from celery_app import check_deadlines

logging.basicConfig(level=config.LOG_LEVEL, format=config.LOG_FORMAT)
logger = logging.getLogger(__name__)


def enqueue_deadline_sweep():
    # Runs in the scheduler process; the sweep itself runs on the deadlines queue.
    logger.info(f"[Scheduler] Queueing deadline sweep at {datetime.now().isoformat()}")
    check_deadlines.delay()


def build_scheduler() -> BackgroundScheduler:
    scheduler = BackgroundScheduler()
    scheduler.add_job(enqueue_deadline_sweep, 'interval', minutes=config.DEADLINE_CHECK_INTERVAL_MINUTES,
                      id='deadline_sweep', max_instances=1, coalesce=True)
    return scheduler


if __name__ == "__main__":
    scheduler = build_scheduler()
    scheduler.start()
    logger.info(f"Scheduler started. Deadline sweep every {config.DEADLINE_CHECK_INTERVAL_MINUTES} minutes.")
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        scheduler.shutdown()
        logger.info("Scheduler shutdown.")
