"""
Node Executor Contract

Every node type implements one function:

    executor(*, node_id, data, context, step, publish) -> ExecutionContext

Rules every executor follows:
1. publish `loading` for node_id before any side effect;
2. run side effects inside `step.run(name, fn)`, with names unique per node;
3. on success publish `success` and return the new context;
4. on failure publish `error` and re-raise;
5. never mutate `context`; return `context.with_output(...)` instead;
6. raise NodeValidationError for missing or malformed configuration.

`node_status` implements rules 1, 3 and 4.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator, Protocol

from activities.step_runner import StepRunner
from channels.publishers import StatusPublisher
from channels.status import Channel
from core.context import ExecutionContext
from core.errors import NodeValidationError
from core.types import NodeStatus

logger = logging.getLogger(__name__)


class NodeExecutor(Protocol):
    def __call__(
        self,
        *,
        node_id: str,
        data: dict[str, Any],
        context: ExecutionContext,
        step: StepRunner,
        publish: StatusPublisher,
    ) -> ExecutionContext:
        ...


@contextmanager
def node_status(publish: StatusPublisher, channel: Channel, node_id: str) -> Iterator[None]:
    """Publish loading on entry, then success or error (re-raising) on exit."""
    publish.publish(channel.name, channel.status(node_id, NodeStatus.LOADING))
    try:
        yield
    except BaseException:
        publish.publish(channel.name, channel.status(node_id, NodeStatus.ERROR))
        raise
    publish.publish(channel.name, channel.status(node_id, NodeStatus.SUCCESS))


def require(data: dict[str, Any], field: str, label: str | None = None) -> Any:
    """Return data[field] or raise NodeValidationError when it is missing/blank."""
    value = data.get(field)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise NodeValidationError(f"{label or field} is required")
    return value


def passthrough_executor(channel: Channel, step_name: str) -> NodeExecutor:
    """Executor for nodes whose only job is to hand the context on (triggers, placeholders)."""

    def execute(
        *,
        node_id: str,
        data: dict[str, Any],
        context: ExecutionContext,
        step: StepRunner,
        publish: StatusPublisher,
    ) -> ExecutionContext:
        with node_status(publish, channel, node_id):
            step.run(step_name, lambda: None)
            return context

    execute.__name__ = f"{step_name.replace('-', '_')}_executor"
    return execute
