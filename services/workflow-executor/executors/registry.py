"""
Executor Registry

Maps node type tags to their executor and metadata. The registry is built
once at process start by `build_default_registry()`, frozen, and handed to
the run driver; nothing is registered at import time.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

from activities.credentials import CredentialStore
from channels.status import (
    FILE_UPLOAD_CHANNEL,
    GOOGLE_FORM_TRIGGER_CHANNEL,
    HTTP_REQUEST_CHANNEL,
    MANUAL_TRIGGER_CHANNEL,
    OPEN_AGENT_CHANNEL,
    OPENROUTER_NODE_CHANNEL,
    TELEGRAM_TRIGGER_CHANNEL,
    WALRUS_NODE_CHANNEL,
    Channel,
)
from core.errors import UnknownNodeTypeError
from core.types import Node, NodeType
from executors.base import NodeExecutor
from executors.http_request import http_request_executor
from executors.open_agent import open_agent_executor
from executors.openrouter import make_openrouter_executor
from executors.storage import file_upload_executor, walrus_storage_executor
from executors.triggers import (
    GOOGLE_FORM_INITIAL_KEY,
    TELEGRAM_INITIAL_KEY,
    TELEGRAM_OUTPUT_KEY,
    google_form_trigger_executor,
    manual_trigger_executor,
    telegram_trigger_executor,
)

logger = logging.getLogger(__name__)

OutputKeys = Callable[[dict[str, Any]], Iterable[str]]


def _no_outputs(data: dict[str, Any]) -> list[str]:
    return []


def _variable_name_output(data: dict[str, Any]) -> list[str]:
    name = data.get("variableName")
    return [name] if isinstance(name, str) and name else []


@dataclass(frozen=True)
class NodeDefinition:
    """
    Registry entry for one node type.

    Attributes:
        node_type: Tag stored on persisted nodes
        executor: Function that runs the node
        channel: Status channel the executor reports on
        output_keys: Context keys the node writes, given its config
        seeded_keys: Keys the node's trigger places in the initial data
    """
    node_type: str
    executor: NodeExecutor
    channel: Channel
    output_keys: OutputKeys = _no_outputs
    seeded_keys: tuple[str, ...] = field(default_factory=tuple)


class ExecutorRegistry:
    def __init__(self) -> None:
        self._definitions: dict[str, NodeDefinition] = {}
        self._frozen = False

    def register(self, definition: NodeDefinition) -> None:
        if self._frozen:
            raise RuntimeError("Executor registry is frozen")
        if definition.node_type in self._definitions:
            raise ValueError(f"Executor already registered for type {definition.node_type}")
        self._definitions[definition.node_type] = definition

    def freeze(self) -> "ExecutorRegistry":
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def node_types(self) -> list[str]:
        return list(self._definitions)

    def definition(self, node_type: str) -> NodeDefinition:
        key = node_type.value if isinstance(node_type, NodeType) else node_type
        try:
            return self._definitions[key]
        except KeyError:
            raise UnknownNodeTypeError(key) from None

    def resolve(self, node_type: str) -> NodeExecutor:
        """Return the executor for a node type; raises UnknownNodeTypeError."""
        return self.definition(node_type).executor

    def output_keys_for(self, node: Node) -> list[str]:
        return list(self.definition(node.type).output_keys(node.data))

    def seeded_keys_for(self, node: Node) -> list[str]:
        return list(self.definition(node.type).seeded_keys)


def build_default_registry(credentials: CredentialStore) -> ExecutorRegistry:
    """Register every built-in node type and freeze the registry."""
    registry = ExecutorRegistry()

    for node_type in (NodeType.INITIAL, NodeType.MANUAL_TRIGGER):
        registry.register(NodeDefinition(
            node_type=node_type.value,
            executor=manual_trigger_executor,
            channel=MANUAL_TRIGGER_CHANNEL,
        ))

    registry.register(NodeDefinition(
        node_type=NodeType.GOOGLE_FORM_TRIGGER.value,
        executor=google_form_trigger_executor,
        channel=GOOGLE_FORM_TRIGGER_CHANNEL,
        seeded_keys=(GOOGLE_FORM_INITIAL_KEY,),
    ))
    registry.register(NodeDefinition(
        node_type=NodeType.TELEGRAM_TRIGGER.value,
        executor=telegram_trigger_executor,
        channel=TELEGRAM_TRIGGER_CHANNEL,
        output_keys=lambda data: [TELEGRAM_OUTPUT_KEY],
        seeded_keys=(TELEGRAM_INITIAL_KEY,),
    ))
    registry.register(NodeDefinition(
        node_type=NodeType.HTTP_REQUEST.value,
        executor=http_request_executor,
        channel=HTTP_REQUEST_CHANNEL,
        output_keys=_variable_name_output,
    ))
    registry.register(NodeDefinition(
        node_type=NodeType.OPENROUTER_NODE.value,
        executor=make_openrouter_executor(credentials),
        channel=OPENROUTER_NODE_CHANNEL,
        output_keys=_variable_name_output,
    ))
    registry.register(NodeDefinition(
        node_type=NodeType.OPEN_AGENT_NODE.value,
        executor=open_agent_executor,
        channel=OPEN_AGENT_CHANNEL,
        output_keys=_variable_name_output,
    ))
    registry.register(NodeDefinition(
        node_type=NodeType.FILE_UPLOAD.value,
        executor=file_upload_executor,
        channel=FILE_UPLOAD_CHANNEL,
    ))
    registry.register(NodeDefinition(
        node_type=NodeType.WALRUS_NODE_STORAGE.value,
        executor=walrus_storage_executor,
        channel=WALRUS_NODE_CHANNEL,
    ))

    logger.info(f"[Registry] Registered {len(registry.node_types())} node types")
    return registry.freeze()
