"""Pub/sub subscription handlers and trigger webhooks."""

from .trigger_events import handle_trigger_event
from .webhooks import (
    WebhookPayloadError,
    normalize_google_form_submission,
    normalize_telegram_update,
)

__all__ = [
    "handle_trigger_event",
    "WebhookPayloadError",
    "normalize_google_form_submission",
    "normalize_telegram_update",
]
