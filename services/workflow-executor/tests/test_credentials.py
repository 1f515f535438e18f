from __future__ import annotations

import pytest
import requests

from activities import credentials
from activities.credentials import DaprSecretCredentialStore
from core.errors import NodeExecutionError, RetriableError


class FakeSecretResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload or {}

    def json(self):
        return self._payload


@pytest.fixture
def secret_get(monkeypatch):
    calls = {"response": FakeSecretResponse(), "urls": []}

    def fake_get(url, timeout=None):
        calls["urls"].append(url)
        response = calls["response"]
        if isinstance(response, Exception):
            raise response
        return response

    monkeypatch.setattr(credentials.requests, "get", fake_get)
    return calls


def test_reads_value_key(secret_get):
    secret_get["response"] = FakeSecretResponse(payload={"value": "sk-or"})
    store = DaprSecretCredentialStore(store_name="secrets")

    assert store.get("cred-1") == "sk-or"
    assert secret_get["urls"][0].endswith("/v1.0/secrets/secrets/cred-1")


def test_single_key_secret_uses_its_only_value(secret_get):
    secret_get["response"] = FakeSecretResponse(payload={"cred-1": "sk-single"})
    assert DaprSecretCredentialStore(store_name="secrets").get("cred-1") == "sk-single"


def test_missing_secret_is_none(secret_get):
    secret_get["response"] = FakeSecretResponse(status_code=404)
    assert DaprSecretCredentialStore(store_name="secrets").get("cred-1") is None


@pytest.mark.parametrize("response", [
    requests.ConnectionError("sidecar down"),
    requests.Timeout("slow"),
    FakeSecretResponse(status_code=500),
    FakeSecretResponse(status_code=503),
])
def test_transient_secret_store_failures_are_retriable(secret_get, response):
    secret_get["response"] = response
    with pytest.raises(RetriableError):
        DaprSecretCredentialStore(store_name="secrets").get("cred-1")


def test_forbidden_secret_is_not_retriable(secret_get):
    secret_get["response"] = FakeSecretResponse(status_code=403)
    with pytest.raises(NodeExecutionError, match="HTTP 403"):
        DaprSecretCredentialStore(store_name="secrets").get("cred-1")
