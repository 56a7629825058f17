#!/usr/bin/env python3
"""
Backfill consultations from the scheduling provider for a custom window.

Runs the same poll sync as the background job, but over any date range,
e.g. after an outage during which webhooks were not delivered.

Usage:
    python scripts/sync_window.py [--days-back N] [--days-ahead N]

Options:
    --days-back N     Start the window N days ago (default: 1)
    --days-ahead N    End the window N days from now (default: 7)
"""
import argparse
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlmodel import Session

from consult_sync.calendar.client import CalendlyClient
from consult_sync.calendar.reconciler import EventReconciler
from consult_sync.calendar.sync import PollSyncer, default_window, run_poll_sync
from consult_sync.core.config import settings
from consult_sync.core.database import create_db_and_tables, engine
from consult_sync.core.errors import CalendarSyncError


def main(days_back: int, days_ahead: int) -> int:
    """Sync the window and print a summary. Returns the process exit code."""
    if not settings.calendly_api_key:
        print("Error: CALENDLY_API_KEY is not set.")
        return 1

    start, end = default_window(days_back, days_ahead)
    print(f"Syncing events from {start:%Y-%m-%d %H:%M} to {end:%Y-%m-%d %H:%M} UTC\n")

    create_db_and_tables()
    with Session(engine) as session, CalendlyClient.from_settings(settings) as client:
        syncer = PollSyncer(
            client,
            EventReconciler(session),
            max_errors=settings.sync_max_reported_errors,
        )
        try:
            report = run_poll_sync(syncer, start, end)
        except CalendarSyncError as e:
            print(f"Sync failed: {e}")
            return 1

    print(f"Imported: {report.synced_count}")
    print(f"Already present: {report.skipped_count}")
    print(f"Failed: {report.error_count}")
    for error in report.errors:
        print(f"  - {error}")
    return 0 if report.error_count == 0 else 2


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Backfill consultations from the calendar")
    parser.add_argument("--days-back", type=int, default=settings.sync_lookback_days)
    parser.add_argument("--days-ahead", type=int, default=settings.sync_lookahead_days)
    args = parser.parse_args()
    sys.exit(main(args.days_back, args.days_ahead))
