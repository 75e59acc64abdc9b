"""
Scheduled tasks for the record shop.
Runs the daily delta reconciliation inside the FastAPI process.
"""

import logging
from datetime import datetime
from typing import Optional
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.events import EVENT_JOB_EXECUTED, EVENT_JOB_ERROR

from recordshop.core.config import get_settings
from recordshop.core.enums import SyncMode
from recordshop.core.exceptions import ReconciliationInProgressError
from recordshop.database import async_session
from recordshop.services.discogs.client import DiscogsClient
from recordshop.services.reconciler import CatalogReconciler
from recordshop.services.sync_lock import is_reconciliation_running

logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler: Optional[AsyncIOScheduler] = None

DELTA_SYNC_JOB_ID = "daily_delta_sync"


async def delta_sync_task():
    """Task to run the daily delta reconciliation"""
    logger.info("=== SCHEDULED DELTA SYNC STARTING ===")
    gateway = DiscogsClient.from_settings(get_settings())
    async with async_session() as db:
        try:
            report = await CatalogReconciler(db, gateway).reconcile(SyncMode.DELTA, trigger="scheduler")
        except ReconciliationInProgressError:
            logger.warning("Skipping scheduled sync: another reconciliation run is in progress")
            return None
    logger.info(f"Scheduled sync completed: {report.summary()}")
    return report


def job_listener(event):
    """Listen to job events for logging"""
    if event.exception:
        logger.error(f"Job {event.job_id} crashed: {event.exception}")
    else:
        logger.info(f"Job {event.job_id} executed successfully at {datetime.now()}")


def create_scheduler() -> AsyncIOScheduler:
    """Create and configure the scheduler"""
    global scheduler

    if scheduler is not None:
        return scheduler

    settings = get_settings()
    scheduler = AsyncIOScheduler(timezone=settings.SYNC_TIMEZONE)
    scheduler.add_listener(job_listener, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR)

    if settings.SYNC_SCHEDULE_ENABLED:
        scheduler.add_job(
            delta_sync_task,
            CronTrigger(
                hour=settings.SYNC_CRON_HOUR,
                minute=settings.SYNC_CRON_MINUTE,
                timezone=settings.SYNC_TIMEZONE,
            ),
            id=DELTA_SYNC_JOB_ID,
            name="Daily Discogs Delta Sync",
            replace_existing=True,
            max_instances=1,  # Only one sync at a time
            coalesce=True,
            misfire_grace_time=3600
        )
        logger.info(
            f"Scheduled delta sync daily at {settings.SYNC_CRON_HOUR:02d}:{settings.SYNC_CRON_MINUTE:02d} "
            f"{settings.SYNC_TIMEZONE}"
        )
    else:
        logger.info("Scheduled sync is disabled. Set SYNC_SCHEDULE_ENABLED=true to enable")

    return scheduler


async def start_scheduler():
    """Start the scheduler"""
    global scheduler

    if scheduler is None:
        scheduler = create_scheduler()

    if not scheduler.running:
        scheduler.start()
        logger.info("Scheduler started successfully")

        jobs = scheduler.get_jobs()
        if jobs:
            logger.info(f"Active scheduled jobs: {len(jobs)}")
            for job in jobs:
                logger.info(f"  - {job.name}: {job.trigger}")
        else:
            logger.info("No scheduled jobs configured")


async def stop_scheduler():
    """Stop the scheduler gracefully"""
    global scheduler

    if scheduler and scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped successfully")
    scheduler = None


async def get_scheduler_status():
    """Get current scheduler status and job information"""
    global scheduler

    if scheduler is None:
        return {"status": "not_initialized", "jobs": [], "reconciliation_running": is_reconciliation_running()}

    jobs_info = []
    for job in scheduler.get_jobs():
        next_run = getattr(job, "next_run_time", None)
        jobs_info.append({
            "id": job.id,
            "name": job.name,
            "next_run": next_run.isoformat() if next_run else None,
            "trigger": str(job.trigger)
        })

    return {
        "status": "running" if scheduler.running else "stopped",
        "jobs": jobs_info,
        "reconciliation_running": is_reconciliation_running(),
    }
