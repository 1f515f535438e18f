"""
Open Agent node executor.

Sends the rendered request body to an agent endpoint and stores the reply
under `variableName` as {"httpResponse": {"status", "statusText", "body"}}.
Method defaults to POST. Transport and retry rules are shared with the HTTP
Request node.
"""

from __future__ import annotations

import logging
from typing import Any

from activities.step_runner import StepRunner
from channels.publishers import StatusPublisher
from channels.status import OPEN_AGENT_CHANNEL
from core.context import ExecutionContext
from core.errors import NodeValidationError
from core.template_resolver import render_template
from executors.base import node_status, require
from executors.http_request import (
    BODY_METHODS,
    SUPPORTED_METHODS,
    render_json_body,
    send_http_request,
)

logger = logging.getLogger(__name__)


def open_agent_executor(
    *,
    node_id: str,
    data: dict[str, Any],
    context: ExecutionContext,
    step: StepRunner,
    publish: StatusPublisher,
) -> ExecutionContext:
    with node_status(publish, OPEN_AGENT_CHANNEL, node_id):
        endpoint_template = require(data, "endpoint", "Endpoint")
        variable_name = require(data, "variableName", "Variable name")
        method = str(data.get("method") or "POST").upper()
        if method not in SUPPORTED_METHODS:
            raise NodeValidationError(f"Unsupported HTTP method: {method}")

        endpoint = render_template(endpoint_template, context)
        body = render_json_body(data.get("body"), context) if method in BODY_METHODS else None

        logger.info(f"[Open Agent] Node {node_id}: {method} {endpoint}")

        def call_agent() -> dict[str, Any]:
            response = send_http_request(endpoint, method, body)
            return {
                "status": response["status"],
                "statusText": response["statusText"],
                "body": response["data"],
            }

        http_response = step.run("open-agent", call_agent)
        return context.with_output(variable_name, {"httpResponse": http_response})
