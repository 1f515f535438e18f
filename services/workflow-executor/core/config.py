"""
Centralized Configuration Module

One dataclass holds every setting of the executor. Each field is resolved
once, at import time:

1. Dapr Configuration store (only when DAPR_CONFIG_STORE names one)
2. Environment variable (the field name, unless aliased below)
3. The dataclass default

Usage:
    from core.config import config

    topic = config.TRIGGER_TOPIC
    attempts = config.STEP_MAX_ATTEMPTS
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields

from dapr.clients import DaprClient

logger = logging.getLogger(__name__)

# Dapr Configuration store component name (unset = env vars only)
CONFIG_STORE_NAME = os.environ.get("DAPR_CONFIG_STORE", "")

# Fields read from an env var with a different name
_ENV_ALIASES = {"SECRET_STORE_NAME": "DAPR_SECRETS_STORE"}

# Fields operators may change centrally through the Dapr Configuration store
_DAPR_KEYS = (
    "PUBSUB_NAME",
    "STATE_STORE_NAME",
    "SECRET_STORE_NAME",
    "TRIGGER_TOPIC",
    "STEP_MAX_ATTEMPTS",
    "STEP_RETRY_BASE_DELAY_SECONDS",
    "STEP_RETRY_MAX_DELAY_SECONDS",
    "HTTP_TIMEOUT_SECONDS",
    "OPENROUTER_BASE_URL",
)


@dataclass
class EngineConfig:
    """Settings for the workflow executor service."""

    # HTTP server
    PORT: int = 8080
    HOST: str = "0.0.0.0"
    LOG_LEVEL: str = "INFO"

    # Dapr sidecar
    DAPR_HOST: str = "localhost"
    DAPR_HTTP_PORT: str = "3500"
    PUBSUB_NAME: str = "pubsub"
    STATE_STORE_NAME: str = "workflowstatestore"
    SECRET_STORE_NAME: str = "kubernetes-secrets"
    DATABASE_SECRET_NAME: str = "workflow-builder-secrets"

    # Direct database URL (skips the secret store lookup when set)
    DATABASE_URL: str = ""

    # Topic carrying {eventId, workflowId, initialData} trigger events
    TRIGGER_TOPIC: str = "workflows.execute"

    # "postgres" for production, "memory" for local runs without a database
    EXECUTION_BACKEND: str = "postgres"

    # Durable step retry budget (transient errors only)
    STEP_MAX_ATTEMPTS: int = 3
    STEP_RETRY_BASE_DELAY_SECONDS: float = 1.0
    STEP_RETRY_MAX_DELAY_SECONDS: float = 30.0

    # Node executors
    HTTP_TIMEOUT_SECONDS: float = 30.0
    OPENROUTER_BASE_URL: str = "https://openrouter.ai/api/v1"
    TELEGRAM_API_BASE_URL: str = "https://api.telegram.org"

    _loaded_from_dapr: bool = field(default=False, repr=False)

    def load(self) -> None:
        """Resolve every setting from Dapr Configuration, env vars, then defaults."""
        overrides = self._load_from_dapr() if CONFIG_STORE_NAME else {}

        for f in fields(self):
            if f.name.startswith("_"):
                continue
            raw = overrides.get(f.name) or os.environ.get(_ENV_ALIASES.get(f.name, f.name))
            if raw is None or raw == "":
                continue
            try:
                setattr(self, f.name, self._coerce(f.default, raw))
            except ValueError:
                logger.warning(f"[Config] Ignoring invalid {f.name}={raw!r}; using {f.default!r}")

        logger.info(
            f"[Config] Loaded (dapr={self._loaded_from_dapr}): "
            f"PUBSUB_NAME={self.PUBSUB_NAME}, "
            f"TRIGGER_TOPIC={self.TRIGGER_TOPIC}, "
            f"EXECUTION_BACKEND={self.EXECUTION_BACKEND}, "
            f"STEP_MAX_ATTEMPTS={self.STEP_MAX_ATTEMPTS}"
        )

    @staticmethod
    def _coerce(default: object, raw: str) -> object:
        # Field type follows its default; bool is never used here
        if isinstance(default, int):
            return int(raw)
        if isinstance(default, float):
            return float(raw)
        return raw

    def _load_from_dapr(self) -> dict[str, str]:
        """Read overrides from the Dapr Configuration store; {} if unreachable."""
        try:
            with DaprClient() as client:
                resp = client.get_configuration(
                    store_name=CONFIG_STORE_NAME,
                    keys=list(_DAPR_KEYS),
                )
        except Exception as e:
            logger.warning(f"[Config] Dapr Configuration store {CONFIG_STORE_NAME} unavailable: {e}")
            return {}

        items = (resp.items if resp else None) or {}
        values = {key: item.value for key, item in items.items() if item.value}
        if values:
            self._loaded_from_dapr = True
            logger.info(f"[Config] {len(values)} values from Dapr Configuration store")
        return values


# Singleton instance - loaded once at import time
config = EngineConfig()
config.load()
