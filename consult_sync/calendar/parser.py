"""Parse scheduling-provider payloads into typed DTOs."""
import math
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator


class EventKind(str, Enum):
    """Webhook event kinds the reconciler acts on."""
    CREATED = "invitee.created"
    CANCELED = "invitee.canceled"
    RESCHEDULED = "invitee.rescheduled"


class ProviderModel(BaseModel):
    """Base for provider resources; unknown keys are ignored."""
    model_config = ConfigDict(extra="ignore")


class ProviderLocation(ProviderModel):
    type: str | None = None
    location: str | None = None
    join_url: str | None = None


class ProviderUser(ProviderModel):
    uri: str
    name: str | None = None
    email: str | None = None
    current_organization: str | None = None


class ScheduledEvent(ProviderModel):
    """A provider event. Times stay optional so one bad item can't sink a page."""
    uri: str
    name: str | None = None
    status: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    location: ProviderLocation | None = None
    event_type: str | dict[str, Any] | None = None

    @field_validator("start_time", "end_time", mode="wrap")
    @classmethod
    def _unparseable_time_is_missing(cls, value, handler):
        try:
            return handler(value)
        except ValidationError:
            return None

    @property
    def uuid(self) -> str:
        return event_id_from_uri(self.uri)


class Invitee(ProviderModel):
    uri: str | None = None
    email: str | None = None
    name: str | None = None
    status: str | None = None


class WebhookSubscription(ProviderModel):
    uri: str
    callback_url: str
    events: list[str] = Field(default_factory=list)
    state: str | None = None


class WebhookEnvelope(ProviderModel):
    event: str
    payload: dict[str, Any] = Field(default_factory=dict)


class ExternalEvent(BaseModel):
    """One provider lifecycle event, ready for reconciliation."""
    model_config = ConfigDict(frozen=True)

    kind: EventKind
    external_event_id: str
    start_time: datetime | None = None
    end_time: datetime | None = None
    invitee_email: str | None = None
    invitee_name: str | None = None
    event_type: str | None = None
    location: str | None = None
    meeting_link: str | None = None
    reason: str | None = None
    previous_event_id: str | None = None
    previous_start_time: datetime | None = None

    @property
    def duration_minutes(self) -> int:
        return duration_minutes(self.start_time, self.end_time)


def event_id_from_uri(uri: str) -> str:
    """Return the trailing identifier of a provider resource URI."""
    event_id = (uri or "").rstrip("/").rsplit("/", 1)[-1]
    if not event_id:
        raise ValueError(f"Cannot derive event id from uri {uri!r}")
    return event_id


def duration_minutes(start: datetime | None, end: datetime | None) -> int:
    """Whole minutes between start and end, halves rounded up."""
    if start is None or end is None:
        raise ValueError("Event is missing a start or end time")
    seconds = (end - start).total_seconds()
    if seconds < 0:
        raise ValueError(f"Event ends before it starts ({start} > {end})")
    return math.floor(seconds / 60 + 0.5)


def split_display_name(name: str | None) -> tuple[str, str]:
    """
    Split an invitee display name into first and last name.

    "Jane Doe" -> ("Jane", "Doe"), "Mary Ann de Vries" -> ("Mary", "Ann de Vries").
    """
    parts = (name or "").split()
    if not parts:
        return "Unknown", ""
    return parts[0], " ".join(parts[1:])


def parse_envelope(raw_body: bytes) -> WebhookEnvelope:
    """Parse the {event, payload} webhook envelope. Raises ValueError if malformed."""
    return WebhookEnvelope.model_validate_json(raw_body)


def _event_type_label(event: ScheduledEvent) -> str | None:
    if isinstance(event.event_type, dict) and event.event_type.get("name"):
        return event.event_type["name"]
    return event.name


def _location_fields(location: ProviderLocation | None) -> tuple[str | None, str | None]:
    if location is None:
        return None, None
    meeting_link = location.join_url
    place = location.location
    if not place and meeting_link:
        place = "Online"
    return place, meeting_link


def _require_times(event: ScheduledEvent) -> None:
    # Computing the duration validates both times and their order.
    duration_minutes(event.start_time, event.end_time)


def _require_email(email: Any) -> str:
    if not isinstance(email, str) or "@" not in email:
        raise ValueError(f"Invitee email is missing or invalid: {email!r}")
    return email.strip().lower()


def _optional_email(email: Any) -> str | None:
    """Normalise an email that is allowed to be absent (cancels, reschedules)."""
    if email is None or email == "":
        return None
    return _require_email(email)


def _section(payload: dict[str, Any], key: str) -> dict[str, Any]:
    """Return payload[key] as a dict; absent means empty, any other shape is malformed."""
    value = payload.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"Expected an object for {key!r}, got {type(value).__name__}")
    return value


def _build(kind: EventKind, event: ScheduledEvent, email, name, **extra) -> ExternalEvent:
    location, meeting_link = _location_fields(event.location)
    return ExternalEvent(
        kind=kind,
        external_event_id=event.uuid,
        start_time=event.start_time,
        end_time=event.end_time,
        invitee_email=email,
        invitee_name=name,
        event_type=_event_type_label(event),
        location=location,
        meeting_link=meeting_link,
        **extra,
    )


def external_event_from_webhook(kind: EventKind, payload: dict[str, Any]) -> ExternalEvent:
    """
    Build an ExternalEvent from a webhook payload.

    Expected payloads:
        invitee.created / invitee.canceled:
            {"email", "name", "scheduled_event": {...}, "cancellation": {"reason"}}
        invitee.rescheduled:
            {"old_invitee": {"scheduled_event": {...}},
             "new_invitee": {"email", "name", "scheduled_event": {...}}}

    Raises ValueError when required fields are missing.
    """
    if kind is EventKind.RESCHEDULED:
        old = ScheduledEvent.model_validate(
            _section(_section(payload, "old_invitee"), "scheduled_event")
        )
        new_invitee = _section(payload, "new_invitee")
        new = ScheduledEvent.model_validate(_section(new_invitee, "scheduled_event"))
        _require_times(new)
        return _build(
            kind,
            new,
            _optional_email(new_invitee.get("email")),
            new_invitee.get("name"),
            previous_event_id=old.uuid,
            previous_start_time=old.start_time,
        )

    event = ScheduledEvent.model_validate(_section(payload, "scheduled_event"))

    if kind is EventKind.CANCELED:
        reason = payload.get("reason") or _section(payload, "cancellation").get("reason")
        return _build(
            kind, event, _optional_email(payload.get("email")), payload.get("name"), reason=reason
        )

    _require_times(event)
    return _build(kind, event, _require_email(payload.get("email")), payload.get("name"))


def external_event_from_scheduled(event: ScheduledEvent, invitee: Invitee) -> ExternalEvent:
    """Build a created-kind ExternalEvent from a polled event and one invitee."""
    _require_times(event)
    return _build(EventKind.CREATED, event, _require_email(invitee.email), invitee.name)
