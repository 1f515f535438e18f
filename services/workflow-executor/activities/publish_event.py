"""
Publish Event Activity

Publishes events to Dapr pub/sub:

- trigger events ({eventId, workflowId, initialData}) on the trigger topic,
  consumed by this service's own subscription to start runs;
- node status events ({nodeId, status}) on one topic per node type channel,
  consumed by the editor UI's realtime layer.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

from dapr.clients import DaprClient

from core.config import config
from core.types import NodeStatusEvent, TriggerEvent
from tracing import inject_current_context

logger = logging.getLogger(__name__)

EVENT_SOURCE = "workflow-executor"


class WorkflowEventTypes:
    """Event type constants."""
    WORKFLOW_EXECUTE = "workflows.execute.workflow"
    NODE_STATUS = "workflows.node.status"


def _cloud_event(event_type: str, data: dict[str, Any], event_id: str | None = None) -> dict[str, Any]:
    # Propagate trace context via CloudEvent extensions so downstream
    # consumers can join traces even if they are not HTTP-invoked.
    trace_ctx = inject_current_context()
    payload = {
        "type": event_type,
        "source": EVENT_SOURCE,
        "data": data,
        "time": datetime.now(timezone.utc).isoformat(),
        "specversion": "1.0",
        "datacontenttype": "application/json",
        **(trace_ctx or {}),
    }
    if event_id:
        payload["id"] = event_id
    return payload


def publish_trigger_event(event: TriggerEvent, pubsub_name: str | None = None) -> str:
    """
    Publish a trigger event that starts one workflow run.

    Returns:
        The trigger event id (the run's idempotency key)

    Raises:
        Exception: if Dapr rejects the publish; the caller decides the response
    """
    topic = config.TRIGGER_TOPIC
    pubsub = pubsub_name or config.PUBSUB_NAME

    logger.info(
        f"[Publish Event] Publishing trigger {event.eventId} "
        f"for workflow {event.workflowId} to topic: {topic}"
    )

    with DaprClient() as client:
        client.publish_event(
            pubsub_name=pubsub,
            topic_name=topic,
            data=json.dumps(
                _cloud_event(WorkflowEventTypes.WORKFLOW_EXECUTE, event.model_dump(), event.eventId)
            ),
            data_content_type="application/cloudevents+json",
        )

    logger.info(f"[Publish Event] Successfully published trigger {event.eventId}")
    return event.eventId


class DaprStatusPublisher:
    """StatusPublisher that forwards node status events to Dapr pub/sub."""

    def __init__(self, pubsub_name: str | None = None):
        self.pubsub_name = pubsub_name or config.PUBSUB_NAME

    def publish(self, topic: str, event: NodeStatusEvent) -> None:
        try:
            with DaprClient() as client:
                client.publish_event(
                    pubsub_name=self.pubsub_name,
                    topic_name=topic,
                    data=json.dumps(
                        _cloud_event(WorkflowEventTypes.NODE_STATUS, event.model_dump(mode="json"))
                    ),
                    data_content_type="application/cloudevents+json",
                )
            logger.debug(
                f"[Publish Event] {topic}: node {event.nodeId} -> {event.status.value}"
            )
        except Exception as e:
            # Live status is best-effort; the execution record stays authoritative
            logger.error(
                f"[Publish Event] Failed to publish status {event.status.value} "
                f"for node {event.nodeId} to {topic}: {e}"
            )
