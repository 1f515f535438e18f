"""
Core Types for the Workflow Executor

These types define the persisted workflow graph, the trigger events that
start a run, the execution record written per run, and the transient
node status events broadcast to the editor UI.
"""

from __future__ import annotations

import secrets
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

DEFAULT_HANDLE = "main"


class NodeType(str, Enum):
    """Node type tags supported by the executor registry."""
    INITIAL = "INITIAL"
    MANUAL_TRIGGER = "MANUAL_TRIGGER"
    GOOGLE_FORM_TRIGGER = "GOOGLE_FORM_TRIGGER"
    TELEGRAM_TRIGGER = "TELEGRAM_TRIGGER"
    HTTP_REQUEST = "HTTP_REQUEST"
    OPENROUTER_NODE = "OPENROUTER_NODE"
    OPEN_AGENT_NODE = "OPEN_AGENT_NODE"
    FILE_UPLOAD = "FILE_UPLOAD"
    WALRUS_NODE_STORAGE = "WALRUS_NODE_STORAGE"


# Node types that start a workflow
TRIGGER_NODE_TYPES = frozenset({
    NodeType.INITIAL.value,
    NodeType.MANUAL_TRIGGER.value,
    NodeType.GOOGLE_FORM_TRIGGER.value,
    NodeType.TELEGRAM_TRIGGER.value,
})


class Node(BaseModel):
    """One unit of work in a workflow graph."""
    id: str
    type: str  # NodeType as string; unknown tags fail at resolve time
    name: str = ""
    position: dict[str, float] = Field(default_factory=lambda: {"x": 0, "y": 0})
    data: dict[str, Any] = Field(default_factory=dict)

    class Config:
        extra = "allow"


class Connection(BaseModel):
    """Directed link from one node's output handle to another node's input."""
    id: str = ""
    source: str
    target: str
    sourceHandle: str = DEFAULT_HANDLE
    targetHandle: str = DEFAULT_HANDLE

    class Config:
        extra = "allow"


class Workflow(BaseModel):
    """Persisted workflow, read once at run start."""
    id: str
    name: str
    userId: str | None = None
    # Signing material for on-chain nodes; the core never interprets it
    wallet: Any = None
    nodes: list[Node] = Field(default_factory=list)
    connections: list[Connection] = Field(default_factory=list)


class ExecutionStatus(str, Enum):
    """Execution record lifecycle."""
    RUNNING = "RUNNING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self is not ExecutionStatus.RUNNING


class NodeStatus(str, Enum):
    """Per-node status broadcast on the node type's channel."""
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


class NodeStatusEvent(BaseModel):
    """Transient status event; broadcast only, never persisted."""
    nodeId: str
    status: NodeStatus


def generate_event_id() -> str:
    """Generate a 21-char lowercase/digit id (matches app conventions)."""
    alphabet = "0123456789abcdefghijklmnopqrstuvwxyz"
    return "".join(secrets.choice(alphabet) for _ in range(21))


class TriggerEvent(BaseModel):
    """Event that starts one run of a workflow."""
    eventId: str = Field(
        default_factory=generate_event_id,
        description="Idempotency key; re-delivery with the same id never re-runs nodes",
    )
    workflowId: str
    initialData: dict[str, Any] = Field(default_factory=dict)


class ExecutionRecord(BaseModel):
    """One row per run; created at start and finalized exactly once."""
    id: str
    workflowId: str
    triggerEventId: str
    status: ExecutionStatus = ExecutionStatus.RUNNING
    startedAt: datetime
    completedAt: datetime | None = None
    output: dict[str, Any] | None = None
    error: str | None = None
    errorStack: str | None = None
