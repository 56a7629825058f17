"""Background job scheduler for calendar poll sync."""
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlmodel import Session

from consult_sync.calendar.client import CalendlyClient
from consult_sync.calendar.reconciler import EventReconciler
from consult_sync.calendar.sync import PollSyncer, run_poll_sync
from consult_sync.core.config import settings
from consult_sync.core.database import engine
from consult_sync.core.errors import SyncInProgressError

logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler()


def sync_job():
    """Background sync job."""
    try:
        with Session(engine) as session, CalendlyClient.from_settings(settings) as client:
            syncer = PollSyncer(
                client,
                EventReconciler(session),
                max_errors=settings.sync_max_reported_errors,
                lookback_days=settings.sync_lookback_days,
                lookahead_days=settings.sync_lookahead_days,
            )
            report = run_poll_sync(syncer)
            logger.info(f"Background sync completed: {report.as_dict()}")
    except SyncInProgressError:
        logger.info("Background sync skipped, another sync is running")
    except Exception as e:
        logger.error(f"Background sync failed: {e}")


def start_scheduler():
    """Start the background scheduler."""
    scheduler.add_job(
        sync_job,
        trigger=IntervalTrigger(minutes=settings.sync_interval_minutes),
        id="calendar_poll_sync",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    scheduler.start()
    logger.info(
        f"Scheduler started, syncing every {settings.sync_interval_minutes} minutes"
    )


def shutdown_scheduler():
    """Graceful shutdown."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler shut down")
