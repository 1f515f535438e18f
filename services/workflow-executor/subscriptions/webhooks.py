"""
Trigger Webhook Normalization

Turns third-party webhook payloads into the initial data of a trigger
event. Telegram updates land under `initialData.telegram` and Google Forms
submissions under `initialData.googleForm`; the matching trigger nodes read
them from there.
"""

from __future__ import annotations

import logging
from typing import Any

from executors.triggers import GOOGLE_FORM_INITIAL_KEY, TELEGRAM_INITIAL_KEY

logger = logging.getLogger(__name__)


class WebhookPayloadError(ValueError):
    """The webhook body is not a payload this trigger understands."""


def normalize_telegram_update(body: dict[str, Any]) -> dict[str, Any]:
    """
    Normalize a Telegram Bot API update.

    Media handling:
    - photo: the largest size is used; content is the caption
    - voice: content stays the message text (usually empty)
    - document: content is the caption, else the file name

    Returns:
        {"telegram": {content, chatId, username, fileId, mediaType, raw}}
    """
    message = body.get("message") or body.get("edited_message")
    if not isinstance(message, dict):
        raise WebhookPayloadError("Telegram update has no message")

    media_type = "text"
    content = message.get("text") or ""
    file_id = None

    if message.get("photo"):
        media_type = "image"
        # Telegram sends every size; the last one is the largest
        file_id = message["photo"][-1].get("file_id")
        content = message.get("caption") or ""
    elif message.get("voice"):
        media_type = "voice"
        file_id = message["voice"].get("file_id")
    elif message.get("document"):
        media_type = "document"
        document = message["document"]
        file_id = document.get("file_id")
        content = message.get("caption") or document.get("file_name") or ""

    chat = message.get("chat") or {}
    sender = message.get("from") or {}
    if "id" not in chat:
        raise WebhookPayloadError("Telegram message has no chat id")

    return {
        TELEGRAM_INITIAL_KEY: {
            "content": content,
            "chatId": chat["id"],
            "username": sender.get("username"),
            "fileId": file_id,
            "mediaType": media_type,
            "raw": body,
        }
    }


def normalize_google_form_submission(body: dict[str, Any]) -> dict[str, Any]:
    """
    Normalize a Google Forms submission posted by an Apps Script trigger.

    Accepts `responses` either as a {question: answer} mapping or as a list of
    {"question"/"title", "answer"/"response"} items.

    Returns:
        {"googleForm": {formId, formTitle, responseId, timestamp,
                        respondentEmail, responses, raw}}
    """
    raw_responses = body.get("responses")
    if raw_responses is None:
        raise WebhookPayloadError("Google Form submission has no responses")

    if isinstance(raw_responses, dict):
        responses = dict(raw_responses)
    elif isinstance(raw_responses, list):
        responses = {}
        for item in raw_responses:
            if not isinstance(item, dict):
                continue
            question = item.get("question") or item.get("title")
            if not question:
                continue
            responses[question] = item.get("answer", item.get("response"))
    else:
        raise WebhookPayloadError("Google Form responses must be an object or a list")

    return {
        GOOGLE_FORM_INITIAL_KEY: {
            "formId": body.get("formId"),
            "formTitle": body.get("formTitle"),
            "responseId": body.get("responseId"),
            "timestamp": body.get("timestamp"),
            "respondentEmail": body.get("respondentEmail"),
            "responses": responses,
            "raw": body,
        }
    }
