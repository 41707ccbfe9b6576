"""Celery app and beat schedule for the portal's recurring jobs."""

import logging
from dataclasses import asdict

from celery import Celery
from celery.schedules import crontab

from .config import SessionLocal, settings
from .services import jobs

logger = logging.getLogger(__name__)

app = Celery("summit_portal", broker=settings.celery_broker_url)
app.conf.timezone = settings.celery_timezone
app.conf.enable_utc = False

app.conf.beat_schedule = {
    "close-expired-surveys": {
        "task": "summit_portal.worker.close_expired_surveys",
        "schedule": crontab(hour="0", minute="0"),
    },
    "publish-scheduled-announcements": {
        "task": "summit_portal.worker.publish_scheduled_announcements",
        "schedule": crontab(hour="0", minute="0"),
    },
    "recalculate-voting-rights": {
        "task": "summit_portal.worker.recalculate_voting_rights",
        "schedule": crontab(hour="0", minute="0"),
    },
    "send-past-due-reminders": {
        "task": "summit_portal.worker.send_past_due_reminders",
        "schedule": crontab(day_of_week="monday", hour="9", minute="0"),
    },
    "issue-yearly-assessments": {
        "task": "summit_portal.worker.issue_yearly_assessments",
        "schedule": crontab(month_of_year="1", day_of_month="1", hour="0", minute="1"),
    },
}


def run_job(name: str, **kwargs) -> dict:
    """Run one job in its own session and return its stats as a dict."""
    job = jobs.JOBS[name]
    with SessionLocal() as session:
        try:
            stats = job(session, **kwargs)
        except Exception:
            session.rollback()
            logger.exception("Scheduled job %s failed.", name)
            raise
    logger.info("Scheduled job %s finished: %s", name, stats)
    return asdict(stats)


@app.task(name="summit_portal.worker.close_expired_surveys")
def close_expired_surveys() -> dict:
    return run_job("close-surveys")


@app.task(name="summit_portal.worker.publish_scheduled_announcements")
def publish_scheduled_announcements() -> dict:
    return run_job("publish-announcements")


@app.task(name="summit_portal.worker.recalculate_voting_rights")
def recalculate_voting_rights() -> dict:
    return run_job("voting-rights")


@app.task(name="summit_portal.worker.send_past_due_reminders")
def send_past_due_reminders() -> dict:
    return run_job("past-due-reminders")


@app.task(name="summit_portal.worker.issue_yearly_assessments")
def issue_yearly_assessments() -> dict:
    return run_job("yearly-assessments")
