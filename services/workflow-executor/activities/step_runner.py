"""
Durable Step Runner

Wraps each side effect of a node as one named, memoized step:

- the first successful result of a step is saved under
  `step:{run_id}:{node_id}:{step_name}`;
- when the trigger event is re-delivered (crash, redeploy, Dapr retry), the
  run starts over but every completed step returns its saved result without
  running again;
- RetriableError failures are retried with exponential backoff up to the
  configured attempt budget; every other error fails the step at once.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Protocol, TypeVar

from activities.persist_state import StepStore
from core.config import config
from core.errors import RetriableError, StepRetriesExhaustedError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class StepRunner(Protocol):
    def run(self, name: str, fn: Callable[[], T]) -> T:
        ...


@dataclass(frozen=True)
class RetryPolicy:
    """Retry budget for transient step failures."""
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    exponential_base: float = 2.0

    @classmethod
    def from_config(cls) -> RetryPolicy:
        return cls(
            max_attempts=max(1, config.STEP_MAX_ATTEMPTS),
            base_delay=config.STEP_RETRY_BASE_DELAY_SECONDS,
            max_delay=config.STEP_RETRY_MAX_DELAY_SECONDS,
        )

    def delay_for(self, attempt: int) -> float:
        """Delay before retrying after the given (1-based) failed attempt."""
        return min(self.base_delay * (self.exponential_base ** (attempt - 1)), self.max_delay)


class DurableStepRunner:
    """Memoizing, retrying step runner scoped to one run (and optionally one node)."""

    def __init__(
        self,
        store: StepStore,
        run_id: str,
        retry_policy: RetryPolicy | None = None,
        scope: str = "",
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.store = store
        self.run_id = run_id
        self.retry_policy = retry_policy or RetryPolicy.from_config()
        self.scope = scope
        self._sleep = sleep
        self._names_used: set[str] = set()

    def for_node(self, node_id: str) -> DurableStepRunner:
        """A runner whose step names only need to be unique within node_id."""
        return DurableStepRunner(
            store=self.store,
            run_id=self.run_id,
            retry_policy=self.retry_policy,
            scope=node_id,
            sleep=self._sleep,
        )

    def step_key(self, name: str) -> str:
        return f"step:{self.run_id}:{self.scope}:{name}"

    def run(self, name: str, fn: Callable[[], T]) -> T:
        """
        Run fn once per (run, node, step name) and memoize its result.

        Raises:
            ValueError: if the same step name is used twice in one scope
            StepRetriesExhaustedError: if transient failures use up the budget
            Exception: any non-retriable error raised by fn, unchanged
        """
        if name in self._names_used:
            raise ValueError(f"Step name '{name}' already used in scope '{self.scope}'")
        self._names_used.add(name)

        key = self.step_key(name)
        found, memoized = self.store.get(key)
        if found:
            logger.info(f"[Step Runner] Replaying memoized step: {key}")
            return memoized

        policy = self.retry_policy
        attempt = 0
        while True:
            attempt += 1
            try:
                result = fn()
                break
            except RetriableError as e:
                if attempt >= policy.max_attempts:
                    logger.error(
                        f"[Step Runner] Step {key} failed after {attempt} attempts: {e}"
                    )
                    raise StepRetriesExhaustedError(key, attempt, e) from e
                delay = policy.delay_for(attempt)
                logger.warning(
                    f"[Step Runner] Step {key} retry {attempt}/{policy.max_attempts - 1} "
                    f"after {delay:.1f}s: {e}"
                )
                self._sleep(delay)

        self.store.save(key, result)
        logger.info(f"[Step Runner] Completed step: {key} (attempts={attempt})")
        return result
