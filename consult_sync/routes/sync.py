"""Sync routes for triggering and monitoring calendar poll sync."""
import json

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlmodel import Session

from consult_sync.calendar import audit as actions
from consult_sync.calendar.audit import AuditLogger
from consult_sync.calendar.client import CalendlyClient, get_calendly_client
from consult_sync.calendar.reconciler import EventReconciler
from consult_sync.calendar.sync import PollSyncer, run_poll_sync, sync_in_progress
from consult_sync.core.config import Settings, get_settings
from consult_sync.core.database import get_session
from consult_sync.core.errors import ProviderError, SyncInProgressError

router = APIRouter(prefix="/calendar/sync", tags=["sync"])


@router.post("")
def trigger_sync(
    session: Session = Depends(get_session),
    client: CalendlyClient = Depends(get_calendly_client),
    app_settings: Settings = Depends(get_settings),
):
    """
    Manually trigger calendar sync.

    Pulls events from yesterday through the configured look-ahead and feeds
    every invitee through the same reconciliation path as webhooks. Returns
    a summary; individual event failures are listed, not raised.
    """
    syncer = PollSyncer(
        client,
        EventReconciler(session),
        max_errors=app_settings.sync_max_reported_errors,
        lookback_days=app_settings.sync_lookback_days,
        lookahead_days=app_settings.sync_lookahead_days,
    )
    try:
        report = run_poll_sync(syncer)
    except SyncInProgressError:
        return JSONResponse(
            status_code=409,
            content={
                "success": False,
                "syncedCount": 0,
                "message": "A calendar sync is already running",
            },
        )
    except ProviderError:
        return JSONResponse(
            status_code=502,
            content={
                "success": False,
                "syncedCount": 0,
                "message": "Failed to fetch events from the calendar provider",
            },
        )

    return {
        "success": True,
        "syncedCount": report.synced_count,
        "message": (
            f"Calendar sync completed. Imported {report.synced_count} events, "
            f"skipped {report.skipped_count} existing, {report.error_count} failed."
        ),
        "errors": report.errors,
    }


@router.get("/status")
async def sync_status(
    session: Session = Depends(get_session),
    app_settings: Settings = Depends(get_settings),
):
    """
    Get current sync status.

    Returns configuration flags, whether a sync is running right now, and
    the outcome of the last completed sync from the audit trail.
    """
    last = AuditLogger(session).latest(actions.SYNC_COMPLETED)

    return {
        "apiKeyConfigured": bool(app_settings.calendly_api_key),
        "webhookSecretConfigured": bool(app_settings.calendly_webhook_secret),
        "syncEnabled": app_settings.sync_enabled,
        "syncIntervalMinutes": app_settings.sync_interval_minutes,
        "syncInProgress": sync_in_progress(),
        "lastSync": (
            {
                "time": last.created_at.isoformat(),
                "success": last.success,
                "details": json.loads(last.details),
            }
            if last
            else None
        ),
    }
