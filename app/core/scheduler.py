"""
APScheduler Setup for Background Jobs

Keeps stored contest bookkeeping consistent:
- Status refresh: Every minute
- Rank finalization: Every 5 minutes
- Rollup reconciliation: Every 10 minutes

Note: Jobs run with database connection from app context.
"""
import logging
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from datetime import datetime

logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler = AsyncIOScheduler()

# Job status tracking
job_status = {
    "last_run": None,
    "refresh_statuses": {"runs": 0, "last_result": None},
    "finalize_ranks": {"runs": 0, "last_result": None},
    "reconcile_rollups": {"runs": 0, "last_result": None}
}


async def _run_job(name: str, method: str):
    from app.database import Database
    from app.services.scheduler.contest_scheduler import ContestScheduler

    db = Database.get_db()
    if db is None:
        logger.warning(f"[SCHEDULER] Database not connected, skipping {name}")
        return

    try:
        scheduler_service = ContestScheduler(db)
        result = await getattr(scheduler_service, method)()
    except Exception:
        # Keep the scheduler alive; the next run retries
        logger.exception(f"[ERROR] {name} job failed")
        return

    job_status[name]["runs"] += 1
    job_status[name]["last_result"] = result
    job_status["last_run"] = datetime.utcnow().isoformat()
    return result


async def run_refresh_statuses():
    """Job: Write the time-derived status into the cached field."""
    await _run_job("refresh_statuses", "refresh_statuses")


async def run_finalize_ranks():
    """Job: Reconcile and persist final ranks of ended contests."""
    result = await _run_job("finalize_ranks", "finalize_ended_contests")
    if result and result.get("processed", 0) > 0:
        logger.info(f"[SCHEDULER] finalize_ranks: {result['processed']} contests finalized")


async def run_reconcile_rollups():
    """Job: Repair participation rollups and participant counters."""
    await _run_job("reconcile_rollups", "reconcile_rollups")


def setup_scheduler():
    """
    Configure and setup all scheduled jobs.

    Job Schedule:
    - refresh_statuses: Every 1 minute
    - finalize_ranks: Every 5 minutes
    - reconcile_rollups: Every 10 minutes
    """
    # Clear any existing jobs
    scheduler.remove_all_jobs()

    scheduler.add_job(
        run_refresh_statuses,
        IntervalTrigger(minutes=1),
        id="contest_refresh_statuses",
        name="Refresh cached contest status",
        replace_existing=True,
        max_instances=1,
        coalesce=True
    )

    scheduler.add_job(
        run_finalize_ranks,
        IntervalTrigger(minutes=5),
        id="contest_finalize_ranks",
        name="Finalize ranks of ended contests",
        replace_existing=True,
        max_instances=1,
        coalesce=True
    )

    scheduler.add_job(
        run_reconcile_rollups,
        IntervalTrigger(minutes=10),
        id="contest_reconcile_rollups",
        name="Reconcile participation rollups",
        replace_existing=True,
        max_instances=1,
        coalesce=True
    )

    logger.info("[SCHEDULER] Contest scheduler configured with 3 jobs")


def start_scheduler():
    """Start the scheduler if not already running."""
    if not scheduler.running:
        scheduler.start()
        logger.info("[SCHEDULER] Background scheduler started")


def stop_scheduler():
    """Stop the scheduler."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("[SCHEDULER] Background scheduler stopped")


def get_scheduler_status() -> dict:
    """Get current scheduler status for monitoring."""
    return {
        "running": scheduler.running,
        "jobs": [
            {
                "id": job.id,
                "name": job.name,
                "next_run": job.next_run_time.isoformat() if job.next_run_time else None
            }
            for job in scheduler.get_jobs()
        ],
        "job_status": job_status
    }
