#!/usr/bin/env python3
"""
Register this deployment's webhook URL with the scheduling provider.

Prints the generated signing secret once; copy it to CALENDLY_WEBHOOK_SECRET
in your .env file and restart the application.

Usage:
    python scripts/register_webhook.py https://crm.example.edu/calendar/webhook/calendly
"""
import argparse
import secrets
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from consult_sync.calendar.client import CalendlyClient
from consult_sync.calendar.webhooks import register_webhook
from consult_sync.core.config import settings
from consult_sync.core.errors import CalendarSyncError


def main():
    parser = argparse.ArgumentParser(description="Register the calendar webhook")
    parser.add_argument("callback_url", help="Public URL of /calendar/webhook/calendly")
    args = parser.parse_args()

    if not settings.calendly_api_key:
        print("Error: CALENDLY_API_KEY is not set.")
        sys.exit(1)

    signing_key = secrets.token_hex(32)
    try:
        with CalendlyClient.from_settings(settings) as client:
            subscription = register_webhook(client, args.callback_url, signing_key)
    except CalendarSyncError as e:
        print(f"Failed to register webhook: {e}")
        sys.exit(1)

    print("Webhook registered.")
    print(f"  Subscription: {subscription.uri}")
    print(f"  Events:       {', '.join(subscription.events)}")
    print()
    print("Add this to your .env file:")
    print(f"CALENDLY_WEBHOOK_SECRET={signing_key}")


if __name__ == "__main__":
    main()
