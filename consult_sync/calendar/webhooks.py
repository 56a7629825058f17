"""Inbound webhook handling: verify, parse, dispatch, pick a status code."""
import logging
from dataclasses import dataclass, field
from typing import Any

from consult_sync.calendar import audit as actions
from consult_sync.calendar.audit import AuditLogger
from consult_sync.calendar.parser import (
    EventKind,
    WebhookSubscription,
    external_event_from_webhook,
    parse_envelope,
)
from consult_sync.calendar.reconciler import EventReconciler
from consult_sync.calendar.signature import verify
from consult_sync.core.errors import AuthenticityError, ConfigurationError

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "Calendly-Webhook-Signature"
SUBSCRIBED_EVENTS = ["invitee.created", "invitee.canceled", "invitee_no_show.created"]


@dataclass(frozen=True)
class WebhookResponse:
    status_code: int
    body: dict[str, Any] = field(default_factory=dict)


class WebhookReceiver:
    """Turn one signed webhook delivery into a reconciliation.

    Status codes tell the provider what to do next: 200 means "done or
    deliberately ignored", 401 and 400 mean "retrying will not help", and 500
    asks for a retry. Handlers are idempotent, so retries are safe.
    """

    def __init__(self, secret: str | None, reconciler: EventReconciler, audit: AuditLogger):
        self.secret = secret
        self.reconciler = reconciler
        self.audit = audit

    def _authenticate(self, raw_body: bytes, signature: str | None) -> None:
        if not self.secret:
            raise ConfigurationError("Webhook signing secret is not configured")
        if not verify(raw_body, signature, self.secret):
            raise AuthenticityError("Invalid webhook signature")

    def receive(self, raw_body: bytes, signature: str | None) -> WebhookResponse:
        try:
            self._authenticate(raw_body, signature)
        except ConfigurationError as e:
            logger.error(f"Rejecting webhook: {e}")
            return WebhookResponse(500, {"detail": "Webhook configuration error"})
        except AuthenticityError:
            logger.warning("Rejecting webhook with invalid signature")
            self.audit.record(
                actions.WEBHOOK_INVALID_SIGNATURE,
                success=False,
                details={"reason": "invalid signature"},
                commit=True,
            )
            return WebhookResponse(401, {"detail": "Invalid signature"})

        try:
            envelope = parse_envelope(raw_body)
        except ValueError as e:
            return self._malformed(None, e)

        try:
            kind = EventKind(envelope.event)
        except ValueError:
            logger.info(f"Ignoring unhandled webhook event: {envelope.event}")
            return WebhookResponse(200, {"status": "ignored", "event": envelope.event})

        try:
            event = external_event_from_webhook(kind, envelope.payload)
        except ValueError as e:
            return self._malformed(kind.value, e)

        try:
            result = self.reconciler.handle(event)
        except Exception as e:
            logger.exception(f"Webhook processing failed for {kind.value}")
            self.reconciler.session.rollback()
            self.audit.record(
                actions.WEBHOOK_ERROR,
                success=False,
                details={
                    "event": kind.value,
                    "externalEventId": event.external_event_id,
                    "error": str(e),
                },
                commit=True,
            )
            return WebhookResponse(500, {"detail": "Webhook processing failed"})

        return WebhookResponse(
            200,
            {
                "status": "ok",
                "outcome": result.outcome.value,
                "consultationId": str(result.consultation_id) if result.consultation_id else None,
            },
        )

    def _malformed(self, event: str | None, error: Exception) -> WebhookResponse:
        logger.warning(f"Malformed webhook payload ({event or 'no event'}): {error}")
        self.audit.record(
            actions.WEBHOOK_MALFORMED,
            success=False,
            details={"event": event, "error": str(error)[:500]},
            commit=True,
        )
        return WebhookResponse(400, {"detail": "Malformed payload"})


def register_webhook(client, callback_url: str, signing_key: str) -> WebhookSubscription:
    """
    Create (or replace) the organization webhook subscription for callback_url.

    Existing subscriptions pointing at the same URL are deleted first so the
    provider only ever signs deliveries with the newest key.
    """
    user = client.get_current_user()
    if not user.current_organization:
        raise ConfigurationError("Provider user has no organization")

    for subscription in client.list_webhook_subscriptions(user.current_organization):
        if subscription.callback_url == callback_url:
            logger.info(f"Removing existing webhook subscription {subscription.uri}")
            client.delete_webhook_subscription(subscription.uri)

    subscription = client.create_webhook_subscription(
        callback_url,
        SUBSCRIBED_EVENTS,
        user.current_organization,
        signing_key=signing_key,
    )
    logger.info(f"Created webhook subscription {subscription.uri} for {callback_url}")
    return subscription
