"""
Periodic Jobs

Runs the two time-triggered processes inside the API process:
- Notification poll: top of every hour (or every NOTIFICATION_POLL_MINUTES)
- Expiration sweep: every EXPIRATION_SWEEP_MINUTES

Uses APScheduler's BackgroundScheduler; both jobs do blocking database work.
max_instances=1 + coalesce=True means an overrunning run is skipped, never
queued behind itself.
"""

import logging
from dataclasses import asdict
from datetime import datetime
from typing import Dict, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from ..config import settings
from ..database import SessionLocal
from .expiration_sweeper import ExpirationSweeper
from .notification_scheduler import NotificationScheduler
from .notifications import LoggingNotifier, Notifier, PlainTextRenderer, TemplateRenderer

logger = logging.getLogger(__name__)

NOTIFICATION_JOB_ID = "notification_poll"
EXPIRATION_JOB_ID = "expiration_sweep"

# Global scheduler instance
_scheduler: Optional[BackgroundScheduler] = None
_notifier: Notifier = LoggingNotifier()
_renderer: TemplateRenderer = PlainTextRenderer()
_last_runs: Dict[str, Dict] = {}


def run_notification_job(now: Optional[datetime] = None) -> Dict:
    """Open a session, poll every scheduled kind, close the session."""
    db = SessionLocal()
    try:
        results = NotificationScheduler(db, _notifier, _renderer).run(now)
        summary = {kind: asdict(result) for kind, result in results.items()}
        _last_runs[NOTIFICATION_JOB_ID] = {"at": datetime.utcnow().isoformat(), "result": summary}
        return summary
    except Exception as e:
        logger.error(f"Notification poll job failed: {e}")
        _last_runs[NOTIFICATION_JOB_ID] = {"at": datetime.utcnow().isoformat(), "error": str(e)}
        return {"error": str(e)}
    finally:
        db.close()


def run_expiration_job(now: Optional[datetime] = None) -> Dict:
    """Open a session, run one expiration sweep, close the session."""
    db = SessionLocal()
    try:
        result = asdict(ExpirationSweeper(db, _notifier, _renderer).run(now))
        _last_runs[EXPIRATION_JOB_ID] = {"at": datetime.utcnow().isoformat(), "result": result}
        return result
    except Exception as e:
        logger.error(f"Expiration sweep job failed: {e}")
        _last_runs[EXPIRATION_JOB_ID] = {"at": datetime.utcnow().isoformat(), "error": str(e)}
        return {"error": str(e)}
    finally:
        db.close()


def _notification_trigger() -> CronTrigger:
    minutes = settings.notification_poll_minutes
    if minutes >= 60:
        return CronTrigger(minute=0, timezone=settings.business_timezone)
    return CronTrigger(minute=f"*/{minutes}", timezone=settings.business_timezone)


def start_scheduler(
    notifier: Optional[Notifier] = None,
    renderer: Optional[TemplateRenderer] = None
) -> bool:
    """
    Start both periodic jobs.

    Returns:
        True if scheduler started successfully, False otherwise
    """
    global _scheduler, _notifier, _renderer

    if notifier is not None:
        _notifier = notifier
    if renderer is not None:
        _renderer = renderer

    if _scheduler is not None and _scheduler.running:
        logger.warning("Scheduler is already running")
        return True

    try:
        _scheduler = BackgroundScheduler(timezone=settings.business_timezone)

        _scheduler.add_job(
            run_notification_job,
            _notification_trigger(),
            id=NOTIFICATION_JOB_ID,
            name="Scheduled guest notifications",
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )

        _scheduler.add_job(
            run_expiration_job,
            IntervalTrigger(minutes=settings.expiration_sweep_minutes, timezone=settings.business_timezone),
            id=EXPIRATION_JOB_ID,
            name="Unpaid reservation expiry",
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )

        _scheduler.start()

        logger.info(
            f"Scheduler started (notifications every {settings.notification_poll_minutes} min, "
            f"expiry every {settings.expiration_sweep_minutes} min, {settings.business_timezone})"
        )
        return True

    except Exception as e:
        logger.error(f"Failed to start scheduler: {e}")
        return False


def stop_scheduler() -> bool:
    """
    Stop the scheduler gracefully.

    Returns:
        True if scheduler stopped successfully, False otherwise
    """
    global _scheduler

    if _scheduler is None:
        logger.warning("Scheduler is not running")
        return True

    try:
        _scheduler.shutdown(wait=False)
        _scheduler = None
        logger.info("Scheduler stopped")
        return True
    except Exception as e:
        logger.error(f"Failed to stop scheduler: {e}")
        return False


def get_scheduler_status() -> Dict:
    status = {
        "running": False,
        "timezone": settings.business_timezone,
        "jobs": [],
        "last_runs": dict(_last_runs),
    }

    if _scheduler is not None and _scheduler.running:
        status["running"] = True
        for job in _scheduler.get_jobs():
            status["jobs"].append({
                "id": job.id,
                "name": job.name,
                "next_run": job.next_run_time.isoformat() if job.next_run_time else None
            })

    return status


def trigger_job_now(job_id: str) -> Dict:
    """
    Run a job synchronously, outside its schedule.

    Raises:
        ValueError: Unknown job id
    """
    if job_id == NOTIFICATION_JOB_ID:
        return run_notification_job()
    if job_id == EXPIRATION_JOB_ID:
        return run_expiration_job()
    raise ValueError(f"Unknown job: {job_id}")
