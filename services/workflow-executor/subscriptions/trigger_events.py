"""
Trigger Events Subscription Handler

Receives `workflows.execute` CloudEvents from Dapr pub/sub and runs the
workflow they name.

Dapr reads the returned status:
- SUCCESS: the run reached a terminal record (including FAILED runs and
  re-deliveries of finished events)
- RETRY: infrastructure failed (record store, database); Dapr re-delivers
  and the run resumes from its memoized steps
- DROP: the payload is not a trigger event and never will be
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from core.types import TriggerEvent
from workflows.run_driver import WorkflowRunDriver

logger = logging.getLogger(__name__)

SUCCESS = "SUCCESS"
RETRY = "RETRY"
DROP = "DROP"


def handle_trigger_event(driver: WorkflowRunDriver, envelope: dict[str, Any]) -> dict[str, Any]:
    """
    Run the workflow for one delivered CloudEvent.

    Args:
        driver: Run driver for this process
        envelope: CloudEvent as delivered by Dapr (data holds the trigger event)

    Returns:
        Dapr subscription response body
    """
    data = envelope.get("data", envelope)
    if not isinstance(data, dict):
        logger.error(f"[Trigger Events] Unexpected event data: {type(data).__name__}")
        return {"status": DROP}

    if envelope is not data and "eventId" not in data and envelope.get("id"):
        # Re-deliveries keep the CloudEvent id, so it stands in as the idempotency key
        data = {**data, "eventId": envelope["id"]}

    try:
        event = TriggerEvent.model_validate(data)
    except ValidationError as e:
        logger.error(f"[Trigger Events] Invalid trigger event: {e}")
        return {"status": DROP}

    carrier = {
        k: envelope[k] for k in ("traceparent", "tracestate") if isinstance(envelope.get(k), str)
    }
    logger.info(
        f"[Trigger Events] Received trigger {event.eventId} for workflow {event.workflowId}"
    )

    try:
        record = driver.run(event, trace_carrier=carrier or None)
    except Exception as e:
        logger.exception(f"[Trigger Events] Run {event.eventId} interrupted, requesting retry: {e}")
        return {"status": RETRY}

    return {
        "status": SUCCESS,
        "triggerEventId": record.triggerEventId,
        "executionStatus": record.status.value,
    }
