from __future__ import annotations

import pytest

from subscriptions.webhooks import (
    WebhookPayloadError,
    normalize_google_form_submission,
    normalize_telegram_update,
)


def _update(**message):
    base = {"chat": {"id": 555}, "from": {"username": "ada"}}
    base.update(message)
    return {"update_id": 1, "message": base}


def test_telegram_text_message():
    body = _update(text="hello")
    assert normalize_telegram_update(body) == {
        "telegram": {
            "content": "hello",
            "chatId": 555,
            "username": "ada",
            "fileId": None,
            "mediaType": "text",
            "raw": body,
        }
    }


def test_telegram_photo_uses_largest_size_and_caption():
    body = _update(
        photo=[{"file_id": "small"}, {"file_id": "medium"}, {"file_id": "large"}],
        caption="look",
    )
    telegram = normalize_telegram_update(body)["telegram"]
    assert telegram["mediaType"] == "image"
    assert telegram["fileId"] == "large"
    assert telegram["content"] == "look"


def test_telegram_voice_note():
    telegram = normalize_telegram_update(_update(voice={"file_id": "v1"}))["telegram"]
    assert telegram["mediaType"] == "voice"
    assert telegram["fileId"] == "v1"
    assert telegram["content"] == ""


def test_telegram_document_falls_back_to_file_name():
    telegram = normalize_telegram_update(
        _update(document={"file_id": "d1", "file_name": "report.pdf"})
    )["telegram"]
    assert telegram["mediaType"] == "document"
    assert telegram["content"] == "report.pdf"


def test_telegram_update_without_message_rejected():
    with pytest.raises(WebhookPayloadError):
        normalize_telegram_update({"update_id": 1, "callback_query": {}})


def test_google_form_mapping_responses():
    body = {
        "formId": "f1",
        "formTitle": "Signup",
        "responseId": "r1",
        "respondentEmail": "ada@example.com",
        "responses": {"Name": "Ada"},
    }
    form = normalize_google_form_submission(body)["googleForm"]
    assert form["formId"] == "f1"
    assert form["formTitle"] == "Signup"
    assert form["respondentEmail"] == "ada@example.com"
    assert form["responses"] == {"Name": "Ada"}
    assert form["raw"] == body


def test_google_form_list_responses():
    body = {
        "responses": [
            {"question": "Name", "answer": "Ada"},
            {"title": "Colour", "response": "green"},
            {"answer": "orphan"},
        ]
    }
    form = normalize_google_form_submission(body)["googleForm"]
    assert form["responses"] == {"Name": "Ada", "Colour": "green"}


def test_google_form_without_responses_rejected():
    with pytest.raises(WebhookPayloadError):
        normalize_google_form_submission({"formId": "f1"})
