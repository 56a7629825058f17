"""Scheduling provider API client using a personal access token."""
import logging
from collections.abc import Iterator
from datetime import datetime
from typing import Any

import httpx

from consult_sync.calendar.parser import (
    Invitee,
    ProviderUser,
    WebhookSubscription,
    event_id_from_uri,
)
from consult_sync.core.config import Settings, settings
from consult_sync.core.errors import ConfigurationError, ProviderError

logger = logging.getLogger(__name__)

PAGE_SIZE = 100


def _format_time(value: datetime) -> str:
    return value.isoformat().replace("+00:00", "Z")


class CalendlyClient:
    """Thin wrapper over the provider REST API.

    Responses come wrapped as ``{"resource": {...}}`` or
    ``{"collection": [...], "pagination": {...}}``; methods unwrap them into
    the DTOs from ``consult_sync.calendar.parser``. Every request has its own
    timeout so one stuck call cannot stall a whole poll window.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.calendly.com",
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ):
        if not api_key:
            raise ConfigurationError("Provider API key is not configured")
        self._http = httpx.Client(
            base_url=base_url,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_settings(cls, config: Settings) -> "CalendlyClient":
        return cls(
            config.calendly_api_key,
            base_url=config.calendly_api_base,
            timeout=config.provider_timeout_seconds,
        )

    def close(self) -> None:
        self._http.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def _request(self, method: str, url: str, **kwargs) -> dict[str, Any]:
        try:
            response = self._http.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(
                f"Provider {method} {url} failed: {e.response.status_code} {e.response.text[:200]}"
            )
            raise ProviderError(
                f"Provider returned {e.response.status_code} for {method} {url}"
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"Provider {method} {url} failed: {e}")
            raise ProviderError(f"Provider request failed: {method} {url}") from e

        if response.status_code == 204 or not response.content:
            return {}
        return response.json()

    def get_current_user(self) -> ProviderUser:
        """Get the user that owns the API key."""
        data = self._request("GET", "/users/me")
        return ProviderUser.model_validate(data["resource"])

    def iter_scheduled_events(
        self,
        user_uri: str,
        min_start_time: datetime | None = None,
        max_start_time: datetime | None = None,
        status: str | None = "active",
    ) -> Iterator[dict[str, Any]]:
        """
        Yield raw scheduled-event resources for a user, following pagination.

        Items are not validated here; one badly shaped event must not end
        the iteration. Callers validate with ScheduledEvent per item.
        """
        params: dict[str, Any] = {
            "user": user_uri,
            "count": PAGE_SIZE,
            "sort": "start_time:asc",
        }
        if min_start_time:
            params["min_start_time"] = _format_time(min_start_time)
        if max_start_time:
            params["max_start_time"] = _format_time(max_start_time)
        if status:
            params["status"] = status

        while True:
            data = self._request("GET", "/scheduled_events", params=params)
            for item in data.get("collection", []):
                yield item

            page_token = (data.get("pagination") or {}).get("next_page_token")
            if not page_token:
                break
            params = {**params, "page_token": page_token}

    def list_event_invitees(self, event_uuid: str) -> list[Invitee]:
        """List invitees of one scheduled event."""
        data = self._request(
            "GET",
            f"/scheduled_events/{event_uuid}/invitees",
            params={"count": PAGE_SIZE},
        )
        return [Invitee.model_validate(item) for item in data.get("collection", [])]

    def list_webhook_subscriptions(self, organization_uri: str) -> list[WebhookSubscription]:
        """List organization-scoped webhook subscriptions."""
        data = self._request(
            "GET",
            "/webhook_subscriptions",
            params={"organization": organization_uri, "scope": "organization"},
        )
        return [WebhookSubscription.model_validate(item) for item in data.get("collection", [])]

    def create_webhook_subscription(
        self,
        url: str,
        events: list[str],
        organization_uri: str,
        signing_key: str,
        scope: str = "organization",
        user_uri: str | None = None,
    ) -> WebhookSubscription:
        """Create a webhook subscription signed with signing_key."""
        body: dict[str, Any] = {
            "url": url,
            "events": events,
            "organization": organization_uri,
            "scope": scope,
            "signing_key": signing_key,
        }
        if scope == "user":
            body["user"] = user_uri
        data = self._request("POST", "/webhook_subscriptions", json=body)
        return WebhookSubscription.model_validate(data["resource"])

    def delete_webhook_subscription(self, subscription_uri: str) -> None:
        """Delete a webhook subscription by its URI."""
        self._request(
            "DELETE", f"/webhook_subscriptions/{event_id_from_uri(subscription_uri)}"
        )


def get_calendly_client():
    """Dependency for getting a provider client built from settings."""
    with CalendlyClient.from_settings(settings) as client:
        yield client
