import logging
from datetime import datetime, timedelta

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler

logger = logging.getLogger(__name__)


def start_scheduler():
    scheduler = BackgroundScheduler()
    scheduler.start()
    logger.info(f"[Scheduler] Started at {datetime.now()}")
    return scheduler


def schedule_once(scheduler, func, delay_ms, job_id):
    """(Re)arm a one-shot job; an existing job with the same id is replaced."""
    run_date = datetime.now() + timedelta(milliseconds=delay_ms)
    return scheduler.add_job(func, "date", run_date=run_date, id=job_id, replace_existing=True)


def cancel_job(scheduler, job_id):
    try:
        scheduler.remove_job(job_id)
    except JobLookupError:
        pass
