"""Audit trail for the calendar integration."""
import json
import logging
from typing import Any

from sqlmodel import Session, select

from consult_sync.models import AuditEntry

logger = logging.getLogger(__name__)

# Actions recorded by the integration
MEETING_CREATED = "CALENDAR_MEETING_CREATED"
MEETING_CANCELED = "CALENDAR_MEETING_CANCELED"
MEETING_RESCHEDULED = "CALENDAR_MEETING_RESCHEDULED"
MEETING_SKIPPED = "CALENDAR_MEETING_SKIPPED"
WEBHOOK_INVALID_SIGNATURE = "CALENDAR_WEBHOOK_INVALID_SIGNATURE"
WEBHOOK_MALFORMED = "CALENDAR_WEBHOOK_MALFORMED"
WEBHOOK_ERROR = "CALENDAR_WEBHOOK_ERROR"
WEBHOOK_CONFIGURED = "CALENDAR_WEBHOOK_CONFIGURED"
SYNC_COMPLETED = "CALENDAR_SYNC_COMPLETED"


class AuditLogger:
    """Write audit entries to the log and to the audit table.

    Entries join the caller's unit of work unless ``commit=True`` is passed,
    so an audit row for a reconciliation is committed together with the
    change it describes.
    """

    def __init__(self, session: Session, resource: str = "calendar"):
        self.session = session
        self.resource = resource

    def record(
        self,
        action: str,
        success: bool = True,
        details: dict[str, Any] | None = None,
        commit: bool = False,
    ) -> AuditEntry:
        payload = json.dumps(details or {}, default=str, sort_keys=True)
        log = logger.info if success else logger.warning
        log(f"AUDIT: {action} success={success} {payload}")

        entry = AuditEntry(
            action=action, resource=self.resource, success=success, details=payload
        )
        self.session.add(entry)
        if commit:
            self.session.commit()
        return entry

    def latest(self, action: str) -> AuditEntry | None:
        """Return the most recent entry for an action."""
        statement = (
            select(AuditEntry)
            .where(AuditEntry.action == action)
            .order_by(AuditEntry.created_at.desc())
        )
        return self.session.exec(statement).first()
