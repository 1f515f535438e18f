from __future__ import annotations

import json

import httpx
import openai
import pytest
import requests

from activities.credentials import InMemoryCredentialStore
from core.context import ExecutionContext
from core.errors import (
    NodeExecutionError,
    NodeValidationError,
    RetriableError,
    StepRetriesExhaustedError,
)
from executors import http_request, openrouter, triggers
from executors.open_agent import open_agent_executor
from executors.storage import file_upload_executor, walrus_storage_executor


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text="", reason="OK", content_type="application/json"):
        self.status_code = status_code
        self.reason = reason
        self.headers = {"content-type": content_type}
        self._payload = payload
        self.text = text if payload is None else json.dumps(payload)

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        return self._payload


@pytest.fixture
def fake_http(monkeypatch):
    """Queue of responses (or exceptions) returned by requests.request."""
    calls = []
    responses = []

    def fake_request(method, url, data=None, headers=None, timeout=None):
        calls.append({"method": method, "url": url, "data": data, "headers": headers})
        item = responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    monkeypatch.setattr(http_request.requests, "request", fake_request)
    return calls, responses


def _run(executor, data, context, step, bus, node_id="node-1"):
    return executor(node_id=node_id, data=data, context=context, step=step, publish=bus)


# --- HTTP Request ---

def test_http_get_writes_response_under_variable_name(fake_http, step, bus):
    calls, responses = fake_http
    responses.append(FakeResponse(payload={"id": 7}))

    context = _run(
        http_request.http_request_executor,
        {"endpoint": "https://x/{{user.id}}", "method": "GET", "variableName": "resp"},
        ExecutionContext({"user": {"id": 3}}),
        step,
        bus,
    )

    assert calls[0]["url"] == "https://x/3"
    assert calls[0]["data"] is None
    assert context["resp"] == {"httpResponse": {"status": 200, "statusText": "OK", "data": {"id": 7}}}
    assert context["user"] == {"id": 3}
    assert bus.events == [
        ("http-request-execution", "node-1", "loading"),
        ("http-request-execution", "node-1", "success"),
    ]


def test_http_post_renders_json_body(fake_http, step, bus):
    calls, responses = fake_http
    responses.append(FakeResponse(status_code=201, reason="Created", payload={"saved": True}))

    _run(
        http_request.http_request_executor,
        {
            "endpoint": "https://x",
            "method": "post",
            "variableName": "created",
            "body": '{"message": {{json msg}}}',
        },
        ExecutionContext({"msg": {"text": "hi"}}),
        step,
        bus,
    )

    assert calls[0]["method"] == "POST"
    assert json.loads(calls[0]["data"]) == {"message": {"text": "hi"}}
    assert calls[0]["headers"] == {"Content-Type": "application/json"}


def test_http_post_defaults_to_empty_object_body(fake_http, step, bus):
    calls, responses = fake_http
    responses.append(FakeResponse(payload={}))

    _run(
        http_request.http_request_executor,
        {"endpoint": "https://x", "method": "PUT", "variableName": "r"},
        ExecutionContext(),
        step,
        bus,
    )
    assert calls[0]["data"] == "{}"


def test_http_text_response(fake_http, step, bus):
    _, responses = fake_http
    responses.append(FakeResponse(text="pong", content_type="text/plain"))

    context = _run(
        http_request.http_request_executor,
        {"endpoint": "https://x", "method": "GET", "variableName": "r"},
        ExecutionContext(),
        step,
        bus,
    )
    assert context["r"]["httpResponse"]["data"] == "pong"


@pytest.mark.parametrize("missing,message", [
    ("endpoint", "Endpoint is required"),
    ("method", "Method is required"),
    ("variableName", "Variable name is required"),
])
def test_http_missing_config(missing, message, fake_http, step, bus):
    data = {"endpoint": "https://x", "method": "GET", "variableName": "r"}
    del data[missing]

    with pytest.raises(NodeValidationError, match=message):
        _run(http_request.http_request_executor, data, ExecutionContext(), step, bus)

    assert fake_http[0] == []
    assert bus.statuses_for("node-1") == ["loading", "error"]


def test_http_invalid_json_body(fake_http, step, bus):
    with pytest.raises(NodeValidationError):
        _run(
            http_request.http_request_executor,
            {"endpoint": "https://x", "method": "POST", "variableName": "r", "body": "{not json"},
            ExecutionContext(),
            step,
            bus,
        )
    assert fake_http[0] == []


def test_http_4xx_is_not_retried(fake_http, step, bus):
    calls, responses = fake_http
    responses.append(FakeResponse(status_code=404, reason="Not Found", payload={}))

    with pytest.raises(NodeExecutionError, match="404"):
        _run(
            http_request.http_request_executor,
            {"endpoint": "https://x", "method": "GET", "variableName": "r"},
            ExecutionContext(),
            step,
            bus,
        )
    assert len(calls) == 1
    assert bus.statuses_for("node-1") == ["loading", "error"]


def test_http_5xx_and_timeouts_are_retried(fake_http, step, bus):
    calls, responses = fake_http
    responses.extend([
        FakeResponse(status_code=503, reason="Service Unavailable", payload={}),
        requests.Timeout("slow"),
        FakeResponse(payload={"ok": True}),
    ])

    context = _run(
        http_request.http_request_executor,
        {"endpoint": "https://x", "method": "GET", "variableName": "r"},
        ExecutionContext(),
        step,
        bus,
    )
    assert len(calls) == 3
    assert context["r"]["httpResponse"]["data"] == {"ok": True}


def test_http_retries_exhausted(fake_http, step, bus):
    calls, responses = fake_http
    responses.extend([requests.ConnectionError("refused")] * 3)

    with pytest.raises(StepRetriesExhaustedError):
        _run(
            http_request.http_request_executor,
            {"endpoint": "https://x", "method": "GET", "variableName": "r"},
            ExecutionContext(),
            step,
            bus,
        )
    assert len(calls) == 3


def test_send_http_request_classifies_rate_limit(fake_http):
    _, responses = fake_http
    responses.append(FakeResponse(status_code=429, reason="Too Many Requests", payload={}))
    with pytest.raises(RetriableError):
        http_request.send_http_request("https://x", "GET", None)


# --- Open Agent ---

def test_open_agent_posts_and_reports_on_its_channel(fake_http, step, bus):
    calls, responses = fake_http
    responses.append(FakeResponse(payload={"answer": 42}))

    context = _run(
        open_agent_executor,
        {"endpoint": "https://agent", "variableName": "agent", "body": '{"q": "{{question}}"}'},
        ExecutionContext({"question": "why"}),
        step,
        bus,
    )

    assert calls[0]["method"] == "POST"
    assert json.loads(calls[0]["data"]) == {"q": "why"}
    assert context["agent"] == {"httpResponse": {"status": 200, "statusText": "OK", "body": {"answer": 42}}}
    assert {topic for topic, _, _ in bus.events} == {"open-agent-execution"}


# --- OpenRouter ---

def test_openrouter_renders_prompts_and_stores_text(monkeypatch, step, bus):
    seen = {}

    def fake_generate_text(api_key, model, system_prompt, user_prompt):
        seen.update(api_key=api_key, model=model, system=system_prompt, user=user_prompt)
        return "Hello Ada"

    monkeypatch.setattr(openrouter, "generate_text", fake_generate_text)
    executor = openrouter.make_openrouter_executor(InMemoryCredentialStore({"cred-1": "sk-or"}))

    context = _run(
        executor,
        {
            "variableName": "greeting",
            "credentialId": "cred-1",
            "model": "openai/gpt-4o-mini",
            "systemPrompt": "Be brief.",
            "userPrompt": "Greet {{user.name}}",
        },
        ExecutionContext({"user": {"name": "Ada"}}),
        step,
        bus,
    )

    assert seen == {"api_key": "sk-or", "model": "openai/gpt-4o-mini", "system": "Be brief.", "user": "Greet Ada"}
    assert context["greeting"] == {"aiResponse": "Hello Ada"}
    assert bus.statuses_for("node-1") == ["loading", "success"]


@pytest.mark.parametrize("data,message", [
    ({"credentialId": "cred-1", "model": "m"}, "Variable name is required"),
    ({"variableName": "v", "model": "m"}, "Credential ID is required"),
    ({"variableName": "v", "credentialId": "cred-1"}, "Model is required"),
    ({"variableName": "v", "credentialId": "missing", "model": "m"}, "Credential not found"),
])
def test_openrouter_validation(data, message, step, bus):
    executor = openrouter.make_openrouter_executor(InMemoryCredentialStore({"cred-1": "sk-or"}))
    with pytest.raises(NodeValidationError, match=message):
        _run(executor, data, ExecutionContext(), step, bus)
    assert bus.statuses_for("node-1") == ["loading", "error"]


def test_openrouter_connection_error_is_retriable(monkeypatch):
    class FakeCompletions:
        def create(self, **kwargs):
            raise openai.APIConnectionError(request=httpx.Request("POST", "https://openrouter.ai"))

    class FakeClient:
        def __init__(self, **kwargs):
            self.chat = type("Chat", (), {"completions": FakeCompletions()})()

    monkeypatch.setattr(openrouter.openai, "OpenAI", FakeClient)
    with pytest.raises(RetriableError):
        openrouter.generate_text("sk", "model", "", "hi")


def test_openrouter_retries_flaky_credential_lookup(monkeypatch, step, step_store, bus):
    class FlakyCredentials:
        def __init__(self):
            self.calls = 0

        def get(self, credential_id):
            self.calls += 1
            if self.calls == 1:
                raise RetriableError("Secret store unavailable")
            return "sk-or"

    credentials = FlakyCredentials()
    monkeypatch.setattr(openrouter, "generate_text", lambda api_key, *_: f"key={api_key}")
    executor = openrouter.make_openrouter_executor(credentials)

    context = _run(
        executor,
        {"variableName": "v", "credentialId": "cred-1", "model": "m", "userPrompt": "hi"},
        ExecutionContext(),
        step,
        bus,
    )

    assert credentials.calls == 2
    assert context["v"] == {"aiResponse": "key=sk-or"}
    assert step_store.get(step.step_key("openrouter-generate-text")) == (True, "key=sk-or")


# --- Triggers and storage ---

def test_manual_trigger_passes_context_through(step, bus):
    context = ExecutionContext({"seed": 1})
    result = _run(triggers.manual_trigger_executor, {}, context, step, bus)
    assert result is context
    assert bus.events == [
        ("manual-trigger-execution", "node-1", "loading"),
        ("manual-trigger-execution", "node-1", "success"),
    ]


@pytest.mark.parametrize("executor,topic", [
    (triggers.google_form_trigger_executor, "google-form-trigger-execution"),
    (file_upload_executor, "file-upload-execution"),
    (walrus_storage_executor, "walrus-node-execution"),
])
def test_passthrough_nodes_report_on_their_channel(executor, topic, step, bus):
    _run(executor, {}, ExecutionContext(), step, bus)
    assert bus.events == [(topic, "node-1", "loading"), (topic, "node-1", "success")]


def test_telegram_trigger_text_message(step, bus):
    context = _run(
        triggers.telegram_trigger_executor,
        {},
        ExecutionContext({"telegram": {"content": "hello", "chatId": 9, "username": "ada", "mediaType": "text", "fileId": None}}),
        step,
        bus,
    )
    node = context["telegramNode"]
    assert node["chatId"] == 9
    assert node["username"] == "ada"
    assert node["text"] == "hello"
    assert node["mediaType"] == "text"
    assert node["isMedia"] is False
    assert node["file"] is None


def test_telegram_trigger_resolves_file(monkeypatch, step, bus):
    def fake_get(url, params=None, timeout=None):
        assert url.endswith("/botTOKEN/getFile")
        assert params == {"file_id": "F1"}
        return FakeResponse(payload={"ok": True, "result": {"file_path": "photos/p.jpg", "file_size": 10}})

    monkeypatch.setattr(triggers.requests, "get", fake_get)

    context = _run(
        triggers.telegram_trigger_executor,
        {"botToken": "TOKEN"},
        ExecutionContext({"telegram": {"content": "", "chatId": 9, "mediaType": "image", "fileId": "F1"}}),
        step,
        bus,
    )
    node = context["telegramNode"]
    assert node["isMedia"] is True
    assert node["mediaType"] == "image"
    assert node["file"]["url"].endswith("/file/botTOKEN/photos/p.jpg")
    assert node["file"]["extension"] == "jpg"


def test_telegram_trigger_requires_payload(step, bus):
    with pytest.raises(NodeValidationError):
        _run(triggers.telegram_trigger_executor, {}, ExecutionContext(), step, bus)
    assert bus.statuses_for("node-1") == ["loading", "error"]
