"""Audit entry model for the calendar integration trail.

Every reconciliation attempt, rejected webhook and poll sync run leaves an
immutable AuditEntry so operators can see what the integration did and why.
"""

from datetime import UTC, datetime
from uuid import UUID, uuid4

from sqlmodel import Field, SQLModel


class AuditEntry(SQLModel, table=True):
    """A record of one action taken (or refused) by the integration.

    Attributes:
        id: Unique identifier (UUID).
        action: Action name, e.g. "CALENDAR_MEETING_CREATED".
        resource: Subsystem the action belongs to.
        success: Whether the action succeeded.
        details: JSON-encoded context (ids, times, error messages).
        created_at: When the entry was recorded.
    """
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    action: str = Field(index=True)
    resource: str = Field(default="calendar")
    success: bool = Field(default=True)
    details: str = Field(default="{}")
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC), index=True)
