"""Pull-based calendar synchronization service."""
import logging
import threading
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any, Protocol

from pydantic import ValidationError

from consult_sync.calendar import audit as actions
from consult_sync.calendar.parser import (
    Invitee,
    ProviderUser,
    ScheduledEvent,
    external_event_from_scheduled,
)
from consult_sync.calendar.reconciler import EventReconciler, Outcome
from consult_sync.core.errors import SyncInProgressError

logger = logging.getLogger(__name__)

# Single-flight guard: overlapping polls would widen the duplicate-create race.
_sync_lock = threading.Lock()


class ProviderClient(Protocol):
    def get_current_user(self) -> ProviderUser: ...

    def iter_scheduled_events(self, user_uri, min_start_time=None, max_start_time=None,
                              status="active"): ...  # yields raw event dicts

    def list_event_invitees(self, event_uuid: str) -> list[Invitee]: ...


@dataclass
class SyncReport:
    synced_count: int = 0
    skipped_count: int = 0
    error_count: int = 0
    errors: list[str] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "synced": self.synced_count,
            "skipped": self.skipped_count,
            "errorCount": self.error_count,
            "errors": self.errors,
        }


def default_window(
    lookback_days: int = 1, lookahead_days: int = 7, now: datetime | None = None
) -> tuple[datetime, datetime]:
    """Window from yesterday through a week ahead (by default)."""
    now = now or datetime.now(UTC)
    return now - timedelta(days=lookback_days), now + timedelta(days=lookahead_days)


class PollSyncer:
    """Fetch a window of provider events and reconcile each invitee.

    Every invitee goes through EventReconciler.handle_created, the same path
    webhooks use, so re-running a window never duplicates consultations. A
    failure on one event or invitee is recorded and the batch carries on.
    """

    def __init__(
        self,
        client: ProviderClient,
        reconciler: EventReconciler,
        max_errors: int = 20,
        lookback_days: int = 1,
        lookahead_days: int = 7,
    ):
        self.client = client
        self.reconciler = reconciler
        self.max_errors = max_errors
        self.lookback_days = lookback_days
        self.lookahead_days = lookahead_days

    def _record_error(self, report: SyncReport, where: str, error: Exception) -> None:
        report.error_count += 1
        if len(report.errors) < self.max_errors:
            report.errors.append(f"{where}: {error}")

    def sync_window(
        self, start: datetime | None = None, end: datetime | None = None
    ) -> SyncReport:
        """
        Reconcile all active events starting within [start, end].

        Returns a SyncReport. Errors fetching the user or the event list
        propagate; errors on individual events are counted in the report.
        """
        if start is None or end is None:
            default_start, default_end = default_window(self.lookback_days, self.lookahead_days)
            start = start or default_start
            end = end or default_end

        report = SyncReport()
        user = self.client.get_current_user()
        logger.info(f"Poll sync for {user.uri} from {start.isoformat()} to {end.isoformat()}")

        for item in self.client.iter_scheduled_events(user.uri, start, end, status="active"):
            self._sync_event(item, report)

        self.reconciler.audit.record(
            actions.SYNC_COMPLETED,
            success=report.error_count == 0,
            details={
                "windowStart": start,
                "windowEnd": end,
                **report.as_dict(),
            },
            commit=True,
        )
        logger.info(
            f"Poll sync completed: synced={report.synced_count} "
            f"skipped={report.skipped_count} errors={report.error_count}"
        )
        return report

    def _sync_event(self, item: dict[str, Any], report: SyncReport) -> None:
        try:
            event = ScheduledEvent.model_validate(item)
        except ValidationError as e:
            where = str((item.get("uri") if isinstance(item, dict) else None) or "<no uri>")
            logger.error(f"Skipping malformed event {where}: {e}")
            self._record_error(report, where, e)
            return

        try:
            invitees = self.client.list_event_invitees(event.uuid)
        except Exception as e:
            logger.error(f"Could not fetch invitees for {event.uri}: {e}")
            self._record_error(report, event.uri, e)
            return

        for invitee in invitees:
            if invitee.status and invitee.status != "active":
                continue
            try:
                external_event = external_event_from_scheduled(event, invitee)
                result = self.reconciler.handle_created(external_event)
            except Exception as e:
                logger.error(f"Failed to sync {event.uri} invitee {invitee.email}: {e}")
                self._record_error(report, event.uri, e)
                continue

            if result.outcome is Outcome.CREATED:
                report.synced_count += 1
            else:
                report.skipped_count += 1


def run_poll_sync(syncer: PollSyncer, start=None, end=None) -> SyncReport:
    """Run syncer.sync_window unless another sync is already running."""
    if not _sync_lock.acquire(blocking=False):
        raise SyncInProgressError("A calendar sync is already running")
    try:
        return syncer.sync_window(start, end)
    finally:
        _sync_lock.release()


def sync_in_progress() -> bool:
    return _sync_lock.locked()
