"""Node status channels and publishers."""

from .status import (
    Channel,
    MANUAL_TRIGGER_CHANNEL,
    GOOGLE_FORM_TRIGGER_CHANNEL,
    TELEGRAM_TRIGGER_CHANNEL,
    HTTP_REQUEST_CHANNEL,
    OPENROUTER_NODE_CHANNEL,
    OPEN_AGENT_CHANNEL,
    FILE_UPLOAD_CHANNEL,
    WALRUS_NODE_CHANNEL,
)
from .publishers import ALL_TOPICS, InMemoryEventBus, StatusPublisher

__all__ = [
    "Channel",
    "MANUAL_TRIGGER_CHANNEL",
    "GOOGLE_FORM_TRIGGER_CHANNEL",
    "TELEGRAM_TRIGGER_CHANNEL",
    "HTTP_REQUEST_CHANNEL",
    "OPENROUTER_NODE_CHANNEL",
    "OPEN_AGENT_CHANNEL",
    "FILE_UPLOAD_CHANNEL",
    "WALRUS_NODE_CHANNEL",
    "ALL_TOPICS",
    "InMemoryEventBus",
    "StatusPublisher",
]
