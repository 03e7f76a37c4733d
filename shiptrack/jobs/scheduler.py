"""
APScheduler Configuration

Runs the shipment sweeps in-process at configured intervals.
Each sweep commits per shipment, so a sweep that is cut short leaves the
shipments it already processed committed.
"""

import logging
from typing import Any, Awaitable, Callable, Dict

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.executors.asyncio import AsyncIOExecutor

from shiptrack.config import settings
from shiptrack.jobs.tracking_jobs import sync_shipment_status, check_delivery_alerts

logger = logging.getLogger(__name__)

# Job stores
jobstores = {
    'default': MemoryJobStore()
}

# Executors
executors = {
    'default': AsyncIOExecutor(),
}

# Job defaults
job_defaults = {
    'coalesce': True,  # Combine multiple pending executions into one
    'max_instances': 1,  # A sweep never overlaps itself
    'misfire_grace_time': 60,  # Allow 60 seconds grace time for misfires
}

# Create scheduler
scheduler = AsyncIOScheduler(
    jobstores=jobstores,
    executors=executors,
    job_defaults=job_defaults,
    timezone=settings.SCHEDULER_TIMEZONE
)

JOBS: Dict[str, Callable[[], Awaitable[Dict[str, Any]]]] = {
    'sync_shipment_status': sync_shipment_status,
    'check_delivery_alerts': check_delivery_alerts,
}


async def run_job(job_name: str):
    """
    Wrapper to run a sweep from the scheduler.

    Sweeps report per-item failures in their results; anything raised
    here is a sweep-level failure and is logged, not re-raised.
    """
    try:
        result = await JOBS[job_name]()
        logger.info(f"Job '{job_name}' completed: {_summary(result)}")
    except Exception as e:
        logger.error(f"Job '{job_name}' failed: {e}", exc_info=True)


def _summary(result: Dict[str, Any]) -> str:
    return ", ".join(f"{k}={v}" for k, v in result.items() if isinstance(v, int))


def start_scheduler():
    """Start the background job scheduler."""
    if not scheduler.running:
        # Reconcile shipment status with the tracking source
        scheduler.add_job(
            run_job,
            'interval',
            minutes=settings.STATUS_SYNC_INTERVAL_MINUTES,
            args=['sync_shipment_status'],
            id='sync_shipment_status',
            name='Sync Shipment Status',
            replace_existing=True,
        )

        # Reclassify delivery alerts
        scheduler.add_job(
            run_job,
            'interval',
            minutes=settings.DELIVERY_ALERT_INTERVAL_MINUTES,
            args=['check_delivery_alerts'],
            id='check_delivery_alerts',
            name='Check Delivery Alerts',
            replace_existing=True,
        )

        scheduler.start()
        logger.info("Background job scheduler started")

        # Log all scheduled jobs
        jobs = scheduler.get_jobs()
        for job in jobs:
            logger.info(f"Scheduled job: {job.name} - Next run: {job.next_run_time}")


def shutdown_scheduler():
    """Shutdown the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=True)
        logger.info("Background job scheduler stopped")


def get_job_status():
    """Get status of all scheduled jobs."""
    jobs = scheduler.get_jobs()
    return [
        {
            'id': job.id,
            'name': job.name,
            'next_run_time': str(job.next_run_time) if job.next_run_time else None,
            'trigger': str(job.trigger),
        }
        for job in jobs
    ]
