"""Reconcile provider lifecycle events into consultation records.

The ``plan_*`` functions are pure: they look at an ExternalEvent (and the
current consultation, if any) and return the data to write, or raise
ReconciliationSkip when nothing should change. EventReconciler does the
store I/O around them and audits every attempt. Webhooks and the poll sync
both come through here, so a booking is handled the same way whichever
channel delivers it.

Calendar-driven status changes follow a small state machine:

    scheduled --canceled-->    cancelled
    scheduled --rescheduled--> scheduled   (new time, new external id)

``attended`` and ``no-show`` are set by staff and are never overridden by
a late calendar event. ``cancelled`` is terminal for calendar changes.
A group event maps to one consultation owned by the first invitee; cancels
and reschedules from other invitees of that event are skipped.
"""
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from sqlmodel import Session

from consult_sync.calendar import audit as actions
from consult_sync.calendar.audit import AuditLogger
from consult_sync.calendar.parser import EventKind, ExternalEvent, split_display_name
from consult_sync.calendar.stores import AlreadyExists, ConsultationStore, StudentStore
from consult_sync.core.errors import ReconciliationSkip
from consult_sync.models import Consultation, ConsultationStatus, Student

logger = logging.getLogger(__name__)

DEFAULT_CONSULTATION_TYPE = "General"

# Set by staff after the meeting; calendar events must not undo them.
STICKY_STATUSES = {ConsultationStatus.ATTENDED, ConsultationStatus.NO_SHOW}


class Outcome(str, Enum):
    CREATED = "created"
    ALREADY_EXISTS = "already_exists"
    UPDATED = "updated"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class ReconcileResult:
    outcome: Outcome
    consultation_id: UUID | None = None
    student_id: UUID | None = None
    reason: str | None = None


def _fmt(value: datetime | None) -> str:
    return value.isoformat() if value else "unknown"


def append_note(existing: str | None, line: str) -> str:
    """Append a provenance line to the notes trail."""
    return f"{existing}\n\n{line}" if existing else line


def plan_student(event: ExternalEvent) -> dict[str, Any]:
    """Minimal student record for an invitee we have never seen."""
    first_name, last_name = split_display_name(event.invitee_name)
    return {
        "email": event.invitee_email,
        "first_name": first_name,
        "last_name": last_name,
        "source": "calendar",
    }


def plan_consultation(event: ExternalEvent, student_id: UUID) -> dict[str, Any]:
    label = event.event_type or DEFAULT_CONSULTATION_TYPE
    return {
        "student_id": student_id,
        "type": label,
        "scheduled_at": event.start_time,
        "duration": event.duration_minutes,
        "status": ConsultationStatus.SCHEDULED,
        "external_event_id": event.external_event_id,
        "notes": f"Created via external calendar, event type: {label}",
        "location": event.location,
        "meeting_link": event.meeting_link,
        "needs_review": True,
    }


def check_calendar_transition(consultation: Consultation) -> None:
    """Raise ReconciliationSkip unless the calendar may still change this row."""
    status = ConsultationStatus(consultation.status)
    if status in STICKY_STATUSES:
        raise ReconciliationSkip(
            f"consultation already marked {status.value} by staff", consultation.id
        )
    if status is ConsultationStatus.CANCELLED:
        raise ReconciliationSkip("consultation already cancelled", consultation.id)


def plan_cancel(consultation: Consultation, event: ExternalEvent) -> dict[str, Any]:
    check_calendar_transition(consultation)
    reason = event.reason or "Not specified"
    return {
        "status": ConsultationStatus.CANCELLED,
        "notes": append_note(
            consultation.notes, f"Cancelled via external calendar. Reason: {reason}"
        ),
    }


def plan_reschedule(consultation: Consultation, event: ExternalEvent) -> dict[str, Any]:
    check_calendar_transition(consultation)
    old_start = event.previous_start_time or consultation.scheduled_at
    patch = {
        "scheduled_at": event.start_time,
        "duration": event.duration_minutes,
        "external_event_id": event.external_event_id,
        "notes": append_note(
            consultation.notes,
            f"Rescheduled via external calendar from {_fmt(old_start)} to "
            f"{_fmt(event.start_time)} (previous event id {consultation.external_event_id})",
        ),
    }
    if event.location:
        patch["location"] = event.location
    if event.meeting_link:
        patch["meeting_link"] = event.meeting_link
    return patch


def plan_superseded(consultation: Consultation, replacement: Consultation) -> dict[str, Any]:
    """The new booking already has its own row; retire the old one."""
    check_calendar_transition(consultation)
    return {
        "status": ConsultationStatus.CANCELLED,
        "notes": append_note(
            consultation.notes,
            f"Rescheduled via external calendar; superseded by consultation {replacement.id}",
        ),
    }


class EventReconciler:
    """Apply ExternalEvents to the consultation and student stores.

    Each handler is one unit of work: it commits on success and rolls back
    and re-raises on failure, so a caller processing a batch can carry on
    with the next event on the same session.
    """

    def __init__(self, session: Session, audit: AuditLogger | None = None):
        self.session = session
        self.audit = audit or AuditLogger(session)
        self.consultations = ConsultationStore(session)
        self.students = StudentStore(session)

    @contextmanager
    def _unit_of_work(self) -> Iterator[None]:
        try:
            yield
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

    def handle(self, event: ExternalEvent) -> ReconcileResult:
        if event.kind is EventKind.CREATED:
            return self.handle_created(event)
        if event.kind is EventKind.CANCELED:
            return self.handle_canceled(event)
        return self.handle_rescheduled(event)

    def _skip(
        self,
        event: ExternalEvent,
        reason: str,
        outcome: Outcome = Outcome.SKIPPED,
        consultation_id: UUID | None = None,
    ) -> ReconcileResult:
        logger.warning(
            f"Skipped {event.kind.value} for external event {event.external_event_id}: {reason}"
        )
        self.audit.record(
            actions.MEETING_SKIPPED,
            details={
                "kind": event.kind.value,
                "externalEventId": event.external_event_id,
                "consultationId": consultation_id,
                "reason": reason,
            },
        )
        return ReconcileResult(outcome, consultation_id=consultation_id, reason=reason)

    def _find_or_create_student(self, event: ExternalEvent) -> Student:
        student = self.students.find_by_email(event.invitee_email)
        if student:
            return student
        student = self.students.create(plan_student(event))
        logger.info(f"Created student {student.id} for invitee {event.invitee_email}")
        return student

    def _is_owner(self, consultation: Consultation, event: ExternalEvent) -> bool:
        """
        Whether the invitee behind event owns consultation.

        Group events share one consultation but the provider sends cancels
        and reschedules per invitee. Events without an email are trusted.
        """
        if not event.invitee_email:
            return True
        student = self.students.find_by_email(event.invitee_email)
        return student is not None and student.id == consultation.student_id

    def handle_created(self, event: ExternalEvent) -> ReconcileResult:
        with self._unit_of_work():
            existing = self.consultations.find_by_external_id(event.external_event_id)
            if existing:
                return self._skip(
                    event, "already processed", Outcome.ALREADY_EXISTS, existing.id
                )

            student = self._find_or_create_student(event)
            result = self.consultations.create(plan_consultation(event, student.id))
            if isinstance(result, AlreadyExists):
                return self._skip(
                    event, "already processed", Outcome.ALREADY_EXISTS, result.record.id
                )

            consultation = result.record
            self.audit.record(
                actions.MEETING_CREATED,
                details={
                    "studentId": student.id,
                    "consultationId": consultation.id,
                    "externalEventId": event.external_event_id,
                    "scheduledAt": consultation.scheduled_at,
                },
            )
            logger.info(
                f"Created consultation {consultation.id} for external event "
                f"{event.external_event_id}"
            )
            return ReconcileResult(Outcome.CREATED, consultation.id, student.id)

    def handle_canceled(self, event: ExternalEvent) -> ReconcileResult:
        with self._unit_of_work():
            consultation = self.consultations.find_by_external_id(event.external_event_id)
            if consultation is None:
                return self._skip(event, "no matching consultation for cancel")

            if not self._is_owner(consultation, event):
                return self._skip(
                    event, "cancel by non-owner invitee", consultation_id=consultation.id
                )

            try:
                patch = plan_cancel(consultation, event)
            except ReconciliationSkip as skip:
                return self._skip(event, skip.reason, consultation_id=skip.consultation_id)

            self.consultations.update(consultation.id, patch)
            self.audit.record(
                actions.MEETING_CANCELED,
                details={
                    "consultationId": consultation.id,
                    "externalEventId": event.external_event_id,
                    "reason": event.reason,
                },
            )
            return ReconcileResult(Outcome.UPDATED, consultation.id, consultation.student_id)

    def handle_rescheduled(self, event: ExternalEvent) -> ReconcileResult:
        with self._unit_of_work():
            old_id = event.previous_event_id
            consultation = self.consultations.find_by_external_id(old_id) if old_id else None
            replacement = self.consultations.find_by_external_id(event.external_event_id)

            if consultation is None:
                if replacement is not None:
                    return self._skip(
                        event,
                        "reschedule already applied",
                        Outcome.ALREADY_EXISTS,
                        replacement.id,
                    )
                return self._skip(event, "no matching consultation for reschedule")

            if not self._is_owner(consultation, event):
                return self._skip(
                    event, "reschedule by non-owner invitee", consultation_id=consultation.id
                )

            try:
                if replacement is not None and replacement.id != consultation.id:
                    patch = plan_superseded(consultation, replacement)
                else:
                    patch = plan_reschedule(consultation, event)
            except ReconciliationSkip as skip:
                return self._skip(event, skip.reason, consultation_id=skip.consultation_id)

            self.consultations.update(consultation.id, patch)
            self.audit.record(
                actions.MEETING_RESCHEDULED,
                details={
                    "consultationId": consultation.id,
                    "previousEventId": old_id,
                    "externalEventId": event.external_event_id,
                    "oldTime": event.previous_start_time,
                    "newTime": event.start_time,
                },
            )
            return ReconcileResult(Outcome.UPDATED, consultation.id, consultation.student_id)
