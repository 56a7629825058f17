"""Shared test fixtures."""

import json
from datetime import UTC, datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel, create_engine
from sqlmodel.pool import StaticPool

from consult_sync.calendar.client import get_calendly_client
from consult_sync.calendar.parser import (
    Invitee,
    ProviderUser,
    WebhookSubscription,
)
from consult_sync.calendar.signature import sign
from consult_sync.calendar.webhooks import SIGNATURE_HEADER
from consult_sync.core.config import Settings, get_settings
from consult_sync.core.database import get_session
from consult_sync.core.errors import ProviderError
from consult_sync.main import app
from consult_sync.models import Consultation, ConsultationStatus, Student

WEBHOOK_SECRET = "test-webhook-secret"
EVENTS_BASE = "https://api.calendly.com/scheduled_events"


class Payloads:
    """Builders for provider-shaped payloads."""

    @staticmethod
    def scheduled_event(
        uuid="EVT-1",
        start="2024-01-10T14:00:00Z",
        end="2024-01-10T14:30:00Z",
        name="Career Counseling",
        join_url="https://zoom.example.com/j/123",
    ) -> dict:
        return {
            "uri": f"{EVENTS_BASE}/{uuid}",
            "name": name,
            "status": "active",
            "start_time": start,
            "end_time": end,
            "event_type": "https://api.calendly.com/event_types/ET-1",
            "location": {"type": "zoom", "join_url": join_url},
        }

    @staticmethod
    def invitee(email="jane@example.edu", name="Jane Doe", status="active") -> dict:
        return {
            "uri": f"{EVENTS_BASE}/EVT/invitees/{email}",
            "email": email,
            "name": name,
            "status": status,
        }

    @classmethod
    def created(cls, uuid="EVT-1", email="jane@example.edu", name="Jane Doe", **event) -> dict:
        return {
            **cls.invitee(email, name),
            "scheduled_event": cls.scheduled_event(uuid, **event),
        }

    @classmethod
    def canceled(cls, uuid="EVT-1", reason="Conflict with class", **event) -> dict:
        return {
            **cls.invitee(),
            "status": "canceled",
            "cancellation": {"reason": reason, "canceler_type": "invitee"},
            "scheduled_event": cls.scheduled_event(uuid, **event),
        }

    @classmethod
    def rescheduled(
        cls,
        old_uuid="EVT-1",
        new_uuid="EVT-2",
        new_start="2024-01-12T09:00:00Z",
        new_end="2024-01-12T10:00:00Z",
    ) -> dict:
        return {
            "old_invitee": {"scheduled_event": cls.scheduled_event(old_uuid)},
            "new_invitee": {
                **cls.invitee(),
                "scheduled_event": cls.scheduled_event(new_uuid, new_start, new_end),
            },
        }

    @staticmethod
    def envelope(event: str, payload: dict) -> bytes:
        return json.dumps({"event": event, "payload": payload}).encode()


class FakeProvider:
    """In-memory stand-in for CalendlyClient."""

    def __init__(self):
        self.user = ProviderUser(
            uri="https://api.calendly.com/users/ADVISOR",
            name="Career Services",
            current_organization="https://api.calendly.com/organizations/ORG",
        )
        self.events: list[dict] = []
        self.invitees: dict[str, list[dict]] = {}
        self.failing_events: set[str] = set()
        self.user_error: Exception | None = None
        self.windows: list[tuple] = []
        self.subscriptions: list[WebhookSubscription] = []
        self.created_subscriptions: list[tuple[WebhookSubscription, str]] = []
        self.deleted_subscriptions: list[str] = []

    def add_event(self, uuid: str, invitees: list[dict] | None = None, **event) -> None:
        self.events.append(Payloads.scheduled_event(uuid, **event))
        self.invitees[uuid] = invitees if invitees is not None else [Payloads.invitee()]

    def get_current_user(self) -> ProviderUser:
        if self.user_error:
            raise self.user_error
        return self.user

    def iter_scheduled_events(
        self, user_uri, min_start_time=None, max_start_time=None, status="active"
    ):
        self.windows.append((min_start_time, max_start_time))
        yield from self.events

    def list_event_invitees(self, event_uuid: str) -> list[Invitee]:
        if event_uuid in self.failing_events:
            raise ProviderError(f"Provider returned 500 for invitees of {event_uuid}")
        return [Invitee.model_validate(i) for i in self.invitees.get(event_uuid, [])]

    def list_webhook_subscriptions(self, organization_uri: str) -> list[WebhookSubscription]:
        return list(self.subscriptions)

    def create_webhook_subscription(
        self, url, events, organization_uri, signing_key, scope="organization", user_uri=None
    ) -> WebhookSubscription:
        subscription = WebhookSubscription(
            uri="https://api.calendly.com/webhook_subscriptions/SUB-NEW",
            callback_url=url,
            events=events,
            state="active",
        )
        self.created_subscriptions.append((subscription, signing_key))
        return subscription

    def delete_webhook_subscription(self, subscription_uri: str) -> None:
        self.deleted_subscriptions.append(subscription_uri)


@pytest.fixture(name="engine")
def engine_fixture():
    """Create an in-memory SQLite database for testing."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="session")
def session_fixture(engine):
    """Create a new database session for each test."""
    with Session(engine) as session:
        yield session


@pytest.fixture(name="payloads")
def payloads_fixture() -> type[Payloads]:
    return Payloads


@pytest.fixture(name="provider")
def provider_fixture() -> FakeProvider:
    return FakeProvider()


@pytest.fixture(name="test_settings")
def test_settings_fixture() -> Settings:
    return Settings(
        calendly_api_key="test-api-key",
        calendly_webhook_secret=WEBHOOK_SECRET,
        sync_enabled=False,
    )


@pytest.fixture(name="client")
def client_fixture(session: Session, provider: FakeProvider, test_settings: Settings):
    """Create a test client with the test database, settings and provider."""

    def get_session_override():
        return session

    app.dependency_overrides[get_session] = get_session_override
    app.dependency_overrides[get_settings] = lambda: test_settings
    app.dependency_overrides[get_calendly_client] = lambda: provider
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture(name="post_webhook")
def post_webhook_fixture(client: TestClient):
    """POST a raw body to the webhook endpoint, signed unless told otherwise."""

    def post(raw_body: bytes, secret: str = WEBHOOK_SECRET, signature: str | None = None):
        headers = {"Content-Type": "application/json"}
        headers[SIGNATURE_HEADER] = signature if signature is not None else sign(raw_body, secret)
        return client.post("/calendar/webhook/calendly", content=raw_body, headers=headers)

    return post


@pytest.fixture(name="sample_student")
def sample_student_fixture(session: Session) -> Student:
    """Create a student with academic details filled in by staff."""
    student = Student(
        email="jane@example.edu",
        first_name="Jane",
        last_name="Doe-Smith",
        program="Computer Science",
        graduation_year=2025,
        source="manual",
    )
    session.add(student)
    session.commit()
    session.refresh(student)
    return student


@pytest.fixture(name="scheduled_consultation")
def scheduled_consultation_fixture(session: Session, sample_student: Student) -> Consultation:
    """Create a calendar-linked consultation for external event EVT-1."""
    consultation = Consultation(
        student_id=sample_student.id,
        type="Career Counseling",
        scheduled_at=datetime(2024, 1, 10, 14, 0, tzinfo=UTC),
        duration=30,
        status=ConsultationStatus.SCHEDULED,
        external_event_id="EVT-1",
        notes="Created via external calendar, event type: Career Counseling",
    )
    session.add(consultation)
    session.commit()
    session.refresh(consultation)
    return consultation


@pytest.fixture(name="attended_consultation")
def attended_consultation_fixture(session: Session, sample_student: Student) -> Consultation:
    """Create a consultation staff already marked as attended."""
    consultation = Consultation(
        student_id=sample_student.id,
        type="Resume Review",
        scheduled_at=datetime.now(UTC) - timedelta(days=1),
        duration=45,
        status=ConsultationStatus.ATTENDED,
        external_event_id="EVT-1",
    )
    session.add(consultation)
    session.commit()
    session.refresh(consultation)
    return consultation
