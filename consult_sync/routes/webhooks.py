"""Webhook routes for receiving provider events and managing subscriptions."""
import secrets

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from sqlmodel import Session

from consult_sync.calendar import audit as actions
from consult_sync.calendar.audit import AuditLogger
from consult_sync.calendar.client import CalendlyClient, get_calendly_client
from consult_sync.calendar.reconciler import EventReconciler
from consult_sync.calendar.webhooks import SIGNATURE_HEADER, WebhookReceiver, register_webhook
from consult_sync.core.config import Settings, get_settings
from consult_sync.core.database import get_session
from consult_sync.core.errors import ConfigurationError, ProviderError

router = APIRouter(prefix="/calendar", tags=["calendar"])

SUPPORTED_PROVIDERS = {"calendly"}


class SubscriptionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    webhook_url: str | None = Field(default=None, alias="webhookUrl")


@router.post("/subscriptions")
def configure_subscription(
    body: SubscriptionRequest,
    session: Session = Depends(get_session),
    client: CalendlyClient = Depends(get_calendly_client),
):
    """
    Register the callback URL with the provider.

    Generates a fresh signing secret, replaces any subscription already
    pointing at the same URL, and returns the secret once so the operator
    can store it as CALENDLY_WEBHOOK_SECRET.
    """
    if not body.webhook_url:
        return JSONResponse(
            status_code=400,
            content={"success": False, "message": "Webhook URL is required"},
        )

    webhook_secret = secrets.token_hex(32)
    try:
        subscription = register_webhook(client, body.webhook_url, webhook_secret)
    except (ProviderError, ConfigurationError) as e:
        return JSONResponse(
            status_code=502,
            content={
                "success": False,
                "message": "Failed to set up calendar webhook",
                "error": str(e),
            },
        )

    AuditLogger(session).record(
        actions.WEBHOOK_CONFIGURED,
        details={"webhookUri": subscription.uri, "callbackUrl": subscription.callback_url},
        commit=True,
    )
    return {
        "success": True,
        "message": "Calendar webhook configured successfully",
        "data": {
            "webhookUri": subscription.uri,
            "webhookSecret": webhook_secret,
            "callbackUrl": subscription.callback_url,
            "events": subscription.events,
        },
    }


@router.post("/webhook/{provider}")
async def receive_webhook(
    provider: str,
    request: Request,
    session: Session = Depends(get_session),
    app_settings: Settings = Depends(get_settings),
):
    """
    Receive one provider webhook delivery.

    Responds 200 when the event was processed or deliberately ignored, 400
    for a signed but malformed payload, 401 for a bad signature and 500 when
    processing failed or the signing secret is not configured.
    """
    if provider not in SUPPORTED_PROVIDERS:
        raise HTTPException(status_code=404, detail="Unknown calendar provider")

    raw_body = await request.body()
    audit = AuditLogger(session)
    receiver = WebhookReceiver(
        app_settings.calendly_webhook_secret,
        EventReconciler(session, audit),
        audit,
    )
    response = receiver.receive(raw_body, request.headers.get(SIGNATURE_HEADER))
    return JSONResponse(status_code=response.status_code, content=response.body)
