"""
Credential lookup.

Node configurations reference credentials by id (e.g. an OpenRouter API
key). The decrypted secret value lives in the Dapr secret store under the
credential id; storage and encryption are owned by the secret store, not by
the executor.
"""

from __future__ import annotations

import logging
from typing import Protocol

import requests

from core.config import config
from core.errors import NodeExecutionError, RetriableError

logger = logging.getLogger(__name__)

# Key inside each credential secret that holds the value
CREDENTIAL_VALUE_KEY = "value"


class CredentialStore(Protocol):
    def get(self, credential_id: str) -> str | None:
        """Return the decrypted credential value, or None if it does not exist."""
        ...


class DaprSecretCredentialStore:
    """Credentials resolved through the Dapr secrets HTTP API."""

    def __init__(self, store_name: str | None = None, timeout: float = 10):
        self.store_name = store_name or config.SECRET_STORE_NAME
        self.timeout = timeout

    def get(self, credential_id: str) -> str | None:
        """
        Raises:
            RetriableError: secret store unreachable, timed out or returned 5xx
            NodeExecutionError: any other secret store failure
        """
        url = (
            f"http://{config.DAPR_HOST}:{config.DAPR_HTTP_PORT}"
            f"/v1.0/secrets/{self.store_name}/{credential_id}"
        )
        try:
            response = requests.get(url, timeout=self.timeout)
        except (requests.ConnectionError, requests.Timeout) as e:
            raise RetriableError(f"Secret store {self.store_name} unavailable: {e}") from e
        except requests.RequestException as e:
            raise NodeExecutionError(f"Secret store {self.store_name} request failed: {e}") from e

        if response.status_code in (204, 404):
            logger.warning(f"[Credentials] Credential not found: {credential_id}")
            return None
        if response.status_code >= 500:
            raise RetriableError(
                f"Secret store {self.store_name} returned HTTP {response.status_code}"
            )
        if response.status_code >= 400:
            raise NodeExecutionError(
                f"Secret store {self.store_name} returned HTTP {response.status_code}"
            )

        secret = response.json()
        value = secret.get(CREDENTIAL_VALUE_KEY)
        if value is None and len(secret) == 1:
            # Single-key secrets store the value under the secret name
            value = next(iter(secret.values()))
        return value


class InMemoryCredentialStore:
    def __init__(self, credentials: dict[str, str] | None = None):
        self._credentials = dict(credentials or {})

    def get(self, credential_id: str) -> str | None:
        return self._credentials.get(credential_id)
