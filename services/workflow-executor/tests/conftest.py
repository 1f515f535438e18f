from __future__ import annotations

from pathlib import Path
import sys

import pytest

SERVICE_ROOT = Path(__file__).resolve().parent.parent
if str(SERVICE_ROOT) not in sys.path:
    sys.path.insert(0, str(SERVICE_ROOT))

from activities.persist_state import InMemoryStepStore  # noqa: E402
from activities.step_runner import DurableStepRunner, RetryPolicy  # noqa: E402
from channels.publishers import ALL_TOPICS, InMemoryEventBus  # noqa: E402
from core.types import Connection, Node, Workflow  # noqa: E402


def make_workflow(workflow_id: str, nodes: list[tuple], edges: list[tuple[str, str]]) -> Workflow:
    """nodes: (id, type) or (id, type, data); edges: (source, target)."""
    return Workflow(
        id=workflow_id,
        name=f"Workflow {workflow_id}",
        nodes=[
            Node(id=n[0], type=n[1], name=n[0], data=n[2] if len(n) > 2 else {})
            for n in nodes
        ],
        connections=[
            Connection(id=f"{s}->{t}", source=s, target=t) for s, t in edges
        ],
    )


class RecordingBus(InMemoryEventBus):
    """Event bus that also keeps every (topic, nodeId, status) it delivered."""

    def __init__(self) -> None:
        super().__init__()
        self.events: list[tuple[str, str, str]] = []
        self.subscribe(ALL_TOPICS, self._record)

    def _record(self, topic, event) -> None:
        self.events.append((topic, event.nodeId, event.status.value))

    def statuses_for(self, node_id: str) -> list[str]:
        return [status for _, n, status in self.events if n == node_id]


@pytest.fixture
def bus() -> RecordingBus:
    return RecordingBus()


@pytest.fixture
def step_store() -> InMemoryStepStore:
    return InMemoryStepStore()


@pytest.fixture
def no_wait_policy() -> RetryPolicy:
    return RetryPolicy(max_attempts=3, base_delay=0.0, max_delay=0.0)


@pytest.fixture
def step(step_store, no_wait_policy) -> DurableStepRunner:
    return DurableStepRunner(
        step_store, "run-1", no_wait_policy, sleep=lambda _: None
    ).for_node("node-1")
