"""
Execution Context

The accumulating key/value record threaded through a run. Each node reads
the keys written upstream and contributes its own named output. Contexts
are immutable: writing a key returns a new context, so a failing executor
can never corrupt the context its retries (or later nodes) observe.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Mapping
from typing import Any, Iterator

logger = logging.getLogger(__name__)


class ExecutionContext(Mapping):
    """Immutable, append-biased mapping of output keys to values."""

    __slots__ = ("_data",)

    def __init__(self, data: Mapping[str, Any] | None = None):
        self._data: dict[str, Any] = dict(data or {})

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"ExecutionContext({self._data!r})"

    def with_output(self, key: str, value: Any) -> ExecutionContext:
        """
        Return a new context with key set to value.

        Overwriting an existing key is allowed (last write wins) but logged,
        since two nodes sharing an output name usually means a config typo.
        """
        if key in self._data:
            logger.warning(f"[Context] Output key '{key}' overwritten by a later node")
        updated = dict(self._data)
        updated[key] = value
        return ExecutionContext(updated)

    def to_dict(self) -> dict[str, Any]:
        """Deep copy of the context as a plain dict (safe to serialize or mutate)."""
        return copy.deepcopy(self._data)
