"""
Trigger node executors.

Trigger nodes start the graph. Manual and Google Form triggers only hand on
the initial data their trigger placed in the context; the Telegram trigger
normalizes the webhook payload (seeded under `telegram`) into a
`telegramNode` output and resolves a download URL for attached media.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

import requests

from activities.step_runner import StepRunner
from channels.publishers import StatusPublisher
from channels.status import (
    GOOGLE_FORM_TRIGGER_CHANNEL,
    MANUAL_TRIGGER_CHANNEL,
    TELEGRAM_TRIGGER_CHANNEL,
)
from core.config import config
from core.context import ExecutionContext
from core.errors import NodeExecutionError, NodeValidationError, RetriableError
from executors.base import node_status, passthrough_executor

logger = logging.getLogger(__name__)

# Context key the Telegram webhook seeds, and the key this node writes
TELEGRAM_INITIAL_KEY = "telegram"
TELEGRAM_OUTPUT_KEY = "telegramNode"

# Context key the Google Forms webhook seeds
GOOGLE_FORM_INITIAL_KEY = "googleForm"

manual_trigger_executor = passthrough_executor(MANUAL_TRIGGER_CHANNEL, "manual-trigger")
google_form_trigger_executor = passthrough_executor(
    GOOGLE_FORM_TRIGGER_CHANNEL, "google-form-trigger"
)


def _resolve_telegram_file(bot_token: str, file_id: str) -> dict[str, Any]:
    """Ask the Bot API for the file path and build its public download URL."""
    base = config.TELEGRAM_API_BASE_URL.rstrip("/")
    try:
        response = requests.get(
            f"{base}/bot{bot_token}/getFile",
            params={"file_id": file_id},
            timeout=config.HTTP_TIMEOUT_SECONDS,
        )
    except (requests.ConnectionError, requests.Timeout) as e:
        raise RetriableError(f"Telegram API unreachable: {e}") from e

    if response.status_code == 429 or response.status_code >= 500:
        raise RetriableError(f"Telegram API Error: HTTP {response.status_code}")

    telegram_data = response.json()
    if not response.ok or not telegram_data.get("ok"):
        raise NodeExecutionError(
            f"Telegram API Error: {telegram_data.get('description') or 'Unknown error'}"
        )

    result = telegram_data.get("result") or {}
    file_path = result.get("file_path", "")
    return {
        "url": f"{base}/file/bot{bot_token}/{file_path}",
        "fileId": file_id,
        "filePath": file_path,
        "extension": file_path.rsplit(".", 1)[-1] if "." in file_path else "",
        "size": result.get("file_size"),
    }


def telegram_trigger_executor(
    *,
    node_id: str,
    data: dict[str, Any],
    context: ExecutionContext,
    step: StepRunner,
    publish: StatusPublisher,
) -> ExecutionContext:
    with node_status(publish, TELEGRAM_TRIGGER_CHANNEL, node_id):
        message = context.get(TELEGRAM_INITIAL_KEY)
        if not isinstance(message, dict):
            raise NodeValidationError(
                "Telegram trigger requires a Telegram webhook payload in the context"
            )
        bot_token = data.get("botToken")

        def process_payload() -> dict[str, Any]:
            file_id = message.get("fileId")
            file_info = None
            if file_id and bot_token:
                file_info = _resolve_telegram_file(bot_token, file_id)
            elif file_id:
                logger.warning(
                    f"[Telegram Trigger] Node {node_id} has media but no botToken; "
                    "skipping file resolution"
                )

            # Downstream nodes branch on mediaType / isMedia
            return {
                "chatId": message.get("chatId"),
                "username": message.get("username"),
                "sentAt": datetime.now(timezone.utc).isoformat(),
                "mediaType": message.get("mediaType") or "text",
                "isMedia": file_info is not None,
                "text": message.get("content"),
                "file": file_info,
            }

        telegram_node = step.run("process-telegram-payload", process_payload)
        return context.with_output(TELEGRAM_OUTPUT_KEY, telegram_node)
