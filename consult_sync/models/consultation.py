"""Consultation model for advising sessions.

A consultation is one booked meeting between an advisor and a student.
Consultations booked through the external scheduling provider carry the
provider's event id, which is the idempotency key for every later webhook
or poll delivery about the same booking.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Optional
from uuid import UUID, uuid4

from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from consult_sync.models.student import Student


class ConsultationStatus(str, Enum):
    """Lifecycle states of a consultation.

    ``scheduled`` is the initial state. ``attended`` and ``no-show`` are set
    by staff after the meeting. ``cancelled`` is terminal for changes coming
    from the calendar.
    """
    SCHEDULED = "scheduled"
    ATTENDED = "attended"
    NO_SHOW = "no-show"
    CANCELLED = "cancelled"


class Consultation(SQLModel, table=True):
    """An advising session, optionally linked to an external calendar event.

    Attributes:
        id: Unique identifier (UUID).
        student_id: Foreign key to the owning Student.
        type: Consultation type label, e.g. "Career Counseling".
        scheduled_at: Start of the session.
        duration: Length of the session in whole minutes.
        status: Current ConsultationStatus.
        external_event_id: Provider event id (unique when present). Null for
            consultations entered by hand.
        notes: Append-only trail of changes made by the calendar integration,
            followed by any staff notes.
        follow_up_required: Whether staff flagged a follow-up.
        location: Where the session takes place.
        meeting_link: Video call URL, if any.
        needs_review: Set for calendar-created rows until staff confirm the
            type and details.
        created_at: When the record was created.
        updated_at: When the record was last modified.
        student: Reference to the owning Student.
    """
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    student_id: UUID = Field(foreign_key="student.id", index=True)
    type: str = Field(default="General")
    scheduled_at: datetime = Field(index=True)
    duration: int = Field(default=30)
    status: ConsultationStatus = Field(default=ConsultationStatus.SCHEDULED)
    external_event_id: str | None = Field(default=None, index=True, unique=True)
    notes: str = Field(default="")
    follow_up_required: bool = Field(default=False)
    location: str | None = None
    meeting_link: str | None = None
    needs_review: bool = Field(default=False)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    # Relationship
    student: Optional["Student"] = Relationship(back_populates="consultations")
