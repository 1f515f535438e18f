"""
Status publishers.

The run only needs a `publish(topic, event)` capability. Transports plug in
behind the StatusPublisher protocol:

- InMemoryEventBus: synchronous observer bus for in-process subscribers
  (local runs, tests, server-sent event bridges).
- DaprStatusPublisher (activities.publish_event): Dapr pub/sub, consumed
  by the editor's realtime layer.
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from typing import Callable, Protocol

from core.types import NodeStatusEvent

logger = logging.getLogger(__name__)

Subscriber = Callable[[str, NodeStatusEvent], None]

ALL_TOPICS = "*"


class StatusPublisher(Protocol):
    def publish(self, topic: str, event: NodeStatusEvent) -> None:
        ...


class InMemoryEventBus:
    """Observer bus: every publish is delivered to the topic's subscribers in order."""

    def __init__(self) -> None:
        self._subscribers: dict[str, list[Subscriber]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, topic: str, callback: Subscriber) -> Callable[[], None]:
        """
        Register a callback for a topic (or ALL_TOPICS).

        Returns:
            A function that removes the subscription
        """
        with self._lock:
            self._subscribers[topic].append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers[topic]:
                    self._subscribers[topic].remove(callback)

        return unsubscribe

    def publish(self, topic: str, event: NodeStatusEvent) -> None:
        with self._lock:
            callbacks = list(self._subscribers.get(topic, ())) + list(
                self._subscribers.get(ALL_TOPICS, ())
            )

        for callback in callbacks:
            try:
                callback(topic, event)
            except Exception as e:
                # A broken UI subscriber must not fail the run
                logger.error(
                    f"[Event Bus] Subscriber failed for {topic} "
                    f"(nodeId={event.nodeId}, status={event.status.value}): {e}"
                )
