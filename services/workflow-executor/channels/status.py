"""
Node status channels.

Each node type reports its live status on its own channel so the editor UI
can subscribe to exactly the node kinds on the canvas. A channel's name is
the topic its status events are published to.
"""

from __future__ import annotations

from dataclasses import dataclass

from core.types import NodeStatus, NodeStatusEvent


@dataclass(frozen=True)
class Channel:
    name: str

    def status(self, node_id: str, status: NodeStatus) -> NodeStatusEvent:
        return NodeStatusEvent(nodeId=node_id, status=status)


MANUAL_TRIGGER_CHANNEL = Channel("manual-trigger-execution")
GOOGLE_FORM_TRIGGER_CHANNEL = Channel("google-form-trigger-execution")
TELEGRAM_TRIGGER_CHANNEL = Channel("telegram-trigger-execution")
HTTP_REQUEST_CHANNEL = Channel("http-request-execution")
OPENROUTER_NODE_CHANNEL = Channel("openrouter-node-execution")
OPEN_AGENT_CHANNEL = Channel("open-agent-execution")
FILE_UPLOAD_CHANNEL = Channel("file-upload-execution")
WALRUS_NODE_CHANNEL = Channel("walrus-node-execution")
