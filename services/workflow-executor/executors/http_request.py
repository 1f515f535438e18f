"""
HTTP Request node executor.

Config:
    endpoint      URL, may contain templates (required)
    method        GET | POST | PUT | PATCH | DELETE (required)
    body          JSON text for POST/PUT/PATCH, may contain templates
    variableName  context key the response is written under (required)

Output:
    {variableName: {"httpResponse": {"status", "statusText", "data"}}}

Connection errors, timeouts, 408, 429 and 5xx responses are transient and
retried by the step runner; any other 4xx fails the node permanently.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import requests

from activities.step_runner import StepRunner
from channels.publishers import StatusPublisher
from channels.status import HTTP_REQUEST_CHANNEL
from core.config import config
from core.context import ExecutionContext
from core.errors import NodeExecutionError, NodeValidationError, RetriableError
from core.template_resolver import render_template
from executors.base import node_status, require

logger = logging.getLogger(__name__)

SUPPORTED_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE")
BODY_METHODS = ("POST", "PUT", "PATCH")
RETRIABLE_STATUS_CODES = (408, 429)


def render_json_body(body_template: str | None, context: ExecutionContext) -> str:
    """Render a JSON body template; raises NodeValidationError if the result is not JSON."""
    rendered = render_template(body_template or "{}", context)
    try:
        json.loads(rendered)
    except ValueError as e:
        raise NodeValidationError(f"Request body must be valid JSON: {e}") from e
    return rendered


def send_http_request(endpoint: str, method: str, body: str | None) -> dict[str, Any]:
    """
    Perform the request and return {"status", "statusText", "data"}.

    Raises:
        RetriableError: network failure, timeout, 408/429/5xx
        NodeExecutionError: any other non-2xx response
    """
    headers = {"Content-Type": "application/json"} if body is not None else {}
    try:
        response = requests.request(
            method,
            endpoint,
            data=body,
            headers=headers,
            timeout=config.HTTP_TIMEOUT_SECONDS,
        )
    except (requests.ConnectionError, requests.Timeout) as e:
        raise RetriableError(f"{method} {endpoint} failed: {e}") from e
    except requests.RequestException as e:
        raise NodeExecutionError(f"{method} {endpoint} failed: {e}") from e

    status = response.status_code
    if status in RETRIABLE_STATUS_CODES or status >= 500:
        raise RetriableError(f"{method} {endpoint} returned HTTP {status} {response.reason}")
    if status >= 400:
        raise NodeExecutionError(f"{method} {endpoint} returned HTTP {status} {response.reason}")

    content_type = response.headers.get("content-type", "")
    if "application/json" in content_type:
        data: Any = response.json()
    else:
        data = response.text

    return {"status": status, "statusText": response.reason or "", "data": data}


def http_request_executor(
    *,
    node_id: str,
    data: dict[str, Any],
    context: ExecutionContext,
    step: StepRunner,
    publish: StatusPublisher,
) -> ExecutionContext:
    with node_status(publish, HTTP_REQUEST_CHANNEL, node_id):
        endpoint_template = require(data, "endpoint", "Endpoint")
        variable_name = require(data, "variableName", "Variable name")
        method = str(require(data, "method", "Method")).upper()
        if method not in SUPPORTED_METHODS:
            raise NodeValidationError(f"Unsupported HTTP method: {method}")

        endpoint = render_template(endpoint_template, context)
        if not endpoint.strip():
            raise NodeValidationError("Endpoint resolved to an empty URL")
        body = render_json_body(data.get("body"), context) if method in BODY_METHODS else None

        logger.info(f"[HTTP Request] Node {node_id}: {method} {endpoint}")

        http_response = step.run(
            "http-request", lambda: send_http_request(endpoint, method, body)
        )
        return context.with_output(variable_name, {"httpResponse": http_response})
