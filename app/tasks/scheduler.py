"""
Scheduler module - APScheduler setup for background jobs
"""
import logging
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from app.tasks.booking_jobs import job_expire_memberships, job_mark_no_shows, job_purge_rate_limits

logger = logging.getLogger(__name__)

scheduler = BackgroundScheduler(timezone="UTC")


def start_scheduler():
    """Register all jobs and start the scheduler."""

    # 1) Close out bookings for sessions that have ended
    #    Every 15 minutes
    scheduler.add_job(
        job_mark_no_shows,
        trigger=IntervalTrigger(minutes=15),
        id="mark_no_shows",
        name="Mark no-show bookings",
        replace_existing=True,
    )

    # 2) Memberships past end_date become expired
    #    Daily at 00:05
    scheduler.add_job(
        job_expire_memberships,
        trigger=CronTrigger(hour=0, minute=5),
        id="expire_memberships",
        name="Expire ended memberships",
        replace_existing=True,
    )

    # 3) Forget rate limit windows that have run out
    #    Every 10 minutes
    scheduler.add_job(
        job_purge_rate_limits,
        trigger=IntervalTrigger(minutes=10),
        id="purge_rate_limits",
        name="Purge expired rate limit windows",
        replace_existing=True,
    )

    scheduler.start()
    logger.info("Scheduler started with %d jobs", len(scheduler.get_jobs()))


def stop_scheduler():
    """Shutdown the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
