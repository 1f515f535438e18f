"""
Persist State Activity

Saves memoized step results to the Dapr state store so that a re-delivered
trigger event replays completed steps instead of re-running their side
effects.

Values are stored as a JSON envelope {"value": ...} so that a step which
legitimately returned None is still distinguishable from a missing key.
"""

from __future__ import annotations

import copy
import json
import logging
import threading
from typing import Any, Protocol

from dapr.clients import DaprClient

from core.config import config

logger = logging.getLogger(__name__)


class StepStore(Protocol):
    def get(self, key: str) -> tuple[bool, Any]:
        """Return (found, value) for a memoized step."""
        ...

    def save(self, key: str, value: Any) -> None:
        ...


class DaprStateStepStore:
    """Step memoization backed by a Dapr state store component."""

    def __init__(self, store_name: str | None = None):
        self.store_name = store_name or config.STATE_STORE_NAME

    def get(self, key: str) -> tuple[bool, Any]:
        logger.debug(f"[Persist State] Retrieving state with key: {key}")

        with DaprClient() as client:
            result = client.get_state(store_name=self.store_name, key=key)

        if not result.data:
            return False, None

        envelope = json.loads(result.data)
        return True, envelope.get("value")

    def save(self, key: str, value: Any) -> None:
        logger.info(f"[Persist State] Saving state with key: {key}")

        # Dapr state store requires string values - JSON-serialize the envelope
        payload = json.dumps({"value": value})

        with DaprClient() as client:
            client.save_state(
                store_name=self.store_name,
                key=key,
                value=payload,
            )

        logger.info(f"[Persist State] Successfully saved state: {key}")


class InMemoryStepStore:
    """Process-local step memoization; survives re-delivery within one process."""

    def __init__(self) -> None:
        self._values: dict[str, Any] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> tuple[bool, Any]:
        with self._lock:
            if key not in self._values:
                return False, None
            return True, copy.deepcopy(self._values[key])

    def save(self, key: str, value: Any) -> None:
        with self._lock:
            self._values[key] = copy.deepcopy(value)

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._values)
