"""Core types and utilities for the workflow executor."""

from .types import (
    NodeType,
    Node,
    Connection,
    Workflow,
    ExecutionStatus,
    ExecutionRecord,
    NodeStatus,
    NodeStatusEvent,
    TriggerEvent,
)
from .context import ExecutionContext
from .template_resolver import render_template
from .topological_sort import topological_sort

__all__ = [
    "NodeType",
    "Node",
    "Connection",
    "Workflow",
    "ExecutionStatus",
    "ExecutionRecord",
    "NodeStatus",
    "NodeStatusEvent",
    "TriggerEvent",
    "ExecutionContext",
    "render_template",
    "topological_sort",
]
