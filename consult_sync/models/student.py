"""Student model for people who book consultations.

Students are normally created by staff with their academic details filled
in. When a booking arrives from the scheduling provider for an email we do
not know yet, a minimal record is created and an operator completes it later.
"""

from datetime import UTC, datetime
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from consult_sync.models.consultation import Consultation


class Student(SQLModel, table=True):
    """A student advised by the career services team.

    Attributes:
        id: Unique identifier (UUID).
        email: Natural key used to match calendar invitees (unique, stored
            lower-cased).
        first_name: Given name.
        last_name: Family name, may be empty for single-word display names.
        phone: Contact number, if known.
        program: Academic program, filled in by staff.
        graduation_year: Expected graduation year, filled in by staff.
        job_search_status: Free-form job search stage, filled in by staff.
        source: How the record was created, e.g. "manual" or "calendar".
        created_at: When the record was created.
        updated_at: When the record was last modified.
        consultations: Consultations booked by this student.
    """
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    email: str = Field(index=True, unique=True)
    first_name: str
    last_name: str = ""
    phone: str | None = None
    program: str | None = None
    graduation_year: int | None = None
    job_search_status: str | None = None
    source: str = Field(default="manual")
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    consultations: list["Consultation"] = Relationship(back_populates="student")
