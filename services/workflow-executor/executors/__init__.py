"""Node executors and the executor registry."""

from .base import NodeExecutor, node_status, passthrough_executor, require
from .registry import ExecutorRegistry, NodeDefinition, build_default_registry

__all__ = [
    "NodeExecutor",
    "node_status",
    "passthrough_executor",
    "require",
    "ExecutorRegistry",
    "NodeDefinition",
    "build_default_registry",
]
