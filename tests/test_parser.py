"""Tests for provider payload parsing."""

from datetime import UTC, datetime

import pytest

from consult_sync.calendar.parser import (
    EventKind,
    Invitee,
    ScheduledEvent,
    duration_minutes,
    event_id_from_uri,
    external_event_from_scheduled,
    external_event_from_webhook,
    parse_envelope,
    split_display_name,
)


class TestEventIdFromUri:
    """Tests for deriving the external event id."""

    def test_trailing_segment(self):
        """Test the id is the last path segment."""
        assert event_id_from_uri("https://api.calendly.com/scheduled_events/ABC123") == "ABC123"

    def test_trailing_slash(self):
        """Test a trailing slash is ignored."""
        assert event_id_from_uri("https://api.calendly.com/scheduled_events/ABC123/") == "ABC123"

    def test_empty_uri(self):
        """Test an empty uri is rejected."""
        with pytest.raises(ValueError):
            event_id_from_uri("")


class TestDurationMinutes:
    """Tests for duration computation."""

    def test_half_hour(self):
        """Test a 14:00 to 14:30 meeting lasts 30 minutes."""
        start = datetime(2024, 1, 10, 14, 0, tzinfo=UTC)
        end = datetime(2024, 1, 10, 14, 30, tzinfo=UTC)
        assert duration_minutes(start, end) == 30

    def test_rounds_half_up(self):
        """Test 29.5 minutes rounds to 30 and 29m29s rounds to 29."""
        start = datetime(2024, 1, 10, 14, 0, 0, tzinfo=UTC)
        assert duration_minutes(start, datetime(2024, 1, 10, 14, 29, 30, tzinfo=UTC)) == 30
        assert duration_minutes(start, datetime(2024, 1, 10, 14, 29, 29, tzinfo=UTC)) == 29

    def test_zero_length(self):
        """Test an instant event has zero duration."""
        start = datetime(2024, 1, 10, 14, 0, tzinfo=UTC)
        assert duration_minutes(start, start) == 0

    def test_end_before_start(self):
        """Test an event ending before it starts is rejected."""
        with pytest.raises(ValueError):
            duration_minutes(
                datetime(2024, 1, 10, 15, 0, tzinfo=UTC),
                datetime(2024, 1, 10, 14, 0, tzinfo=UTC),
            )

    def test_missing_time(self):
        """Test a missing time is rejected."""
        with pytest.raises(ValueError):
            duration_minutes(datetime(2024, 1, 10, 14, 0, tzinfo=UTC), None)


class TestSplitDisplayName:
    """Tests for invitee name splitting."""

    @pytest.mark.parametrize(
        "name,expected",
        [
            ("Jane Doe", ("Jane", "Doe")),
            ("Mary Ann de Vries", ("Mary", "Ann de Vries")),
            ("Prince", ("Prince", "")),
            ("  Jane   Doe  ", ("Jane", "Doe")),
            ("", ("Unknown", "")),
            (None, ("Unknown", "")),
        ],
    )
    def test_split(self, name, expected):
        assert split_display_name(name) == expected


class TestParseEnvelope:
    """Tests for the webhook envelope."""

    def test_valid_envelope(self, payloads):
        """Test event and payload are read from the body."""
        envelope = parse_envelope(payloads.envelope("invitee.created", {"email": "a@b.c"}))
        assert envelope.event == "invitee.created"
        assert envelope.payload == {"email": "a@b.c"}

    def test_not_json(self):
        """Test a non-JSON body raises ValueError."""
        with pytest.raises(ValueError):
            parse_envelope(b"not json at all")

    def test_missing_event(self):
        """Test an envelope without an event name raises ValueError."""
        with pytest.raises(ValueError):
            parse_envelope(b'{"payload": {}}')


class TestExternalEventFromWebhook:
    """Tests for building ExternalEvents from webhook payloads."""

    def test_created(self, payloads):
        """Test a created payload maps every field."""
        event = external_event_from_webhook(
            EventKind.CREATED, payloads.created(email="Jane.Doe@Example.EDU")
        )

        assert event.kind is EventKind.CREATED
        assert event.external_event_id == "EVT-1"
        assert event.invitee_email == "jane.doe@example.edu"
        assert event.invitee_name == "Jane Doe"
        assert event.start_time == datetime(2024, 1, 10, 14, 0, tzinfo=UTC)
        assert event.duration_minutes == 30
        assert event.event_type == "Career Counseling"
        assert event.location == "Online"
        assert event.meeting_link == "https://zoom.example.com/j/123"

    def test_created_prefers_event_type_name(self, payloads):
        """Test an expanded event_type object supplies the label."""
        payload = payloads.created()
        payload["scheduled_event"]["event_type"] = {"name": "Resume Review", "uri": "x"}

        event = external_event_from_webhook(EventKind.CREATED, payload)
        assert event.event_type == "Resume Review"

    def test_created_physical_location(self, payloads):
        """Test a physical location is kept as is."""
        payload = payloads.created()
        payload["scheduled_event"]["location"] = {"type": "physical", "location": "Room 204"}

        event = external_event_from_webhook(EventKind.CREATED, payload)
        assert event.location == "Room 204"
        assert event.meeting_link is None

    def test_created_missing_email(self, payloads):
        """Test a created payload without a usable email is rejected."""
        with pytest.raises(ValueError):
            external_event_from_webhook(EventKind.CREATED, payloads.created(email="not-an-email"))

    @pytest.mark.parametrize(
        "email", [12345, ["jane@example.edu"], {"address": "jane@example.edu"}]
    )
    def test_created_non_string_email(self, payloads, email):
        """Test a wrongly typed email is a ValueError, not a TypeError."""
        payload = payloads.created()
        payload["email"] = email
        with pytest.raises(ValueError):
            external_event_from_webhook(EventKind.CREATED, payload)

    def test_created_missing_times(self, payloads):
        """Test a created payload without times is rejected."""
        payload = payloads.created()
        del payload["scheduled_event"]["end_time"]
        with pytest.raises(ValueError):
            external_event_from_webhook(EventKind.CREATED, payload)

    def test_created_unparseable_time(self, payloads):
        """Test a garbage start time is rejected."""
        with pytest.raises(ValueError):
            external_event_from_webhook(EventKind.CREATED, payloads.created(start="yesterday"))

    def test_created_missing_scheduled_event(self):
        """Test a payload without a scheduled event is rejected."""
        with pytest.raises(ValueError):
            external_event_from_webhook(EventKind.CREATED, {"email": "jane@example.edu"})

    def test_canceled_reason_from_cancellation(self, payloads):
        """Test the cancel reason is read from the cancellation object."""
        event = external_event_from_webhook(EventKind.CANCELED, payloads.canceled(reason="Sick"))
        assert event.kind is EventKind.CANCELED
        assert event.external_event_id == "EVT-1"
        assert event.reason == "Sick"

    def test_canceled_reason_at_top_level(self, payloads):
        """Test a top-level reason wins."""
        payload = payloads.canceled(reason="Sick")
        payload["reason"] = "Moved abroad"
        event = external_event_from_webhook(EventKind.CANCELED, payload)
        assert event.reason == "Moved abroad"

    def test_canceled_cancellation_not_an_object(self, payloads):
        payload = payloads.canceled()
        payload["cancellation"] = "changed my mind"
        with pytest.raises(ValueError):
            external_event_from_webhook(EventKind.CANCELED, payload)

    def test_canceled_email_is_normalised(self, payloads):
        payload = payloads.canceled()
        payload["email"] = " Jane@Example.EDU "
        event = external_event_from_webhook(EventKind.CANCELED, payload)
        assert event.invitee_email == "jane@example.edu"

    def test_canceled_without_times(self, payloads):
        """Test a cancel does not need event times."""
        payload = payloads.canceled()
        del payload["scheduled_event"]["start_time"]
        del payload["scheduled_event"]["end_time"]
        event = external_event_from_webhook(EventKind.CANCELED, payload)
        assert event.start_time is None

    def test_rescheduled(self, payloads):
        """Test a reschedule carries both the old and new event."""
        event = external_event_from_webhook(EventKind.RESCHEDULED, payloads.rescheduled())

        assert event.kind is EventKind.RESCHEDULED
        assert event.previous_event_id == "EVT-1"
        assert event.previous_start_time == datetime(2024, 1, 10, 14, 0, tzinfo=UTC)
        assert event.external_event_id == "EVT-2"
        assert event.start_time == datetime(2024, 1, 12, 9, 0, tzinfo=UTC)
        assert event.duration_minutes == 60

    @pytest.mark.parametrize("key", ["old_invitee", "new_invitee"])
    def test_rescheduled_invitee_not_an_object(self, payloads, key):
        payload = payloads.rescheduled()
        payload[key] = ["EVT-1"]
        with pytest.raises(ValueError):
            external_event_from_webhook(EventKind.RESCHEDULED, payload)

    def test_rescheduled_missing_new_event(self, payloads):
        """Test a reschedule without the new event is rejected."""
        payload = payloads.rescheduled()
        del payload["new_invitee"]
        with pytest.raises(ValueError):
            external_event_from_webhook(EventKind.RESCHEDULED, payload)


class TestExternalEventFromScheduled:
    """Tests for building ExternalEvents from polled events."""

    def test_polled_event(self, payloads):
        """Test a polled event and invitee become a created event."""
        event = external_event_from_scheduled(
            ScheduledEvent.model_validate(payloads.scheduled_event("EVT-9")),
            Invitee.model_validate(payloads.invitee("Sam@Example.edu", "Sam Lee")),
        )
        assert event.kind is EventKind.CREATED
        assert event.external_event_id == "EVT-9"
        assert event.invitee_email == "sam@example.edu"

    def test_unparseable_time_does_not_break_model(self, payloads):
        """Test a bad time parses to None and fails only when building."""
        scheduled = ScheduledEvent.model_validate(payloads.scheduled_event(start="garbage"))
        assert scheduled.start_time is None
        with pytest.raises(ValueError):
            external_event_from_scheduled(
                scheduled, Invitee.model_validate(payloads.invitee())
            )
