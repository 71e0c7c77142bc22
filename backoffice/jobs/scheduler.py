"""
APScheduler Configuration

Background job scheduler. Jobs open their own database session and run
across all active companies.
"""

import logging
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.executors.asyncio import AsyncIOExecutor
from sqlalchemy.exc import SQLAlchemyError

from backoffice.config import settings
from backoffice.core.errors import BackofficeError

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
    'max_instances': 1,  # Only one instance of each job at a time
    'misfire_grace_time': 300,
}

# Create scheduler
scheduler = AsyncIOScheduler(
    jobstores=jobstores,
    executors=executors,
    job_defaults=job_defaults,
    timezone=settings.BUSINESS_TIMEZONE
)


async def warranty_expiry_digest():
    """Scheduler entry point for the daily expiring-warranty digest."""
    from backoffice.database import get_db_session
    from backoffice.jobs.warranty_jobs import run_warranty_expiry_digest

    try:
        async with get_db_session() as db:
            result = await run_warranty_expiry_digest(db)
        logger.info(
            f"Job 'warranty_expiry_digest' completed: {result['companies']} companies, "
            f"{len(result['errors'])} errors"
        )
    except (BackofficeError, SQLAlchemyError) as e:
        logger.error(f"Job 'warranty_expiry_digest' failed: {e}")


def start_scheduler():
    """Start the background job scheduler."""
    if not scheduler.running:
        scheduler.add_job(
            warranty_expiry_digest,
            'cron',
            hour=settings.WARRANTY_DIGEST_HOUR,
            minute=0,
            id='warranty_expiry_digest',
            name='Warranty Expiry Digest',
            replace_existing=True,
        )

        scheduler.start()
        logger.info("Background job scheduler started")

        for job in scheduler.get_jobs():
            logger.info(f"Scheduled job: {job.name} - Next run: {job.next_run_time}")


def shutdown_scheduler():
    """Shutdown the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
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
