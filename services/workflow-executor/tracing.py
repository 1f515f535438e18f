"""
OpenTelemetry setup for the workflow executor.

Tracing is opt-in: nothing is exported unless OTEL_EXPORTER_OTLP_ENDPOINT is
set. When enabled, each run gets a `workflow.run` span, each node a
`node.execute` span, outgoing `requests` calls and FastAPI routes are
instrumented, and logs switch to JSON lines carrying trace/span ids.
"""

from __future__ import annotations

import json
import logging
import os
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator

from opentelemetry import trace
from opentelemetry.propagate import extract, inject

logger = logging.getLogger(__name__)

TRACER_NAME = "workflow-executor"

_TRACING_INITIALIZED = False


def _parse_key_values(value: str | None) -> dict[str, str]:
    """Parse `k1=v1,k2=v2` (OTEL_EXPORTER_OTLP_HEADERS / OTEL_RESOURCE_ATTRIBUTES)."""
    out: dict[str, str] = {}
    for part in (value or "").split(","):
        if "=" not in part:
            continue
        k, v = part.split("=", 1)
        if k.strip():
            out[k.strip()] = v.strip()
    return out


def _otlp_endpoint_for(signal: str) -> str:
    base = (os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT") or "").strip().rstrip("/")
    if not base or base.endswith(f"/v1/{signal}"):
        return base
    return f"{base}/v1/{signal}"


class JsonTraceFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }

        span_ctx = trace.get_current_span().get_span_context()
        if span_ctx and span_ctx.trace_id:
            payload["trace_id"] = f"{span_ctx.trace_id:032x}"
            payload["span_id"] = f"{span_ctx.span_id:016x}"

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=True)


def setup_logging_json() -> None:
    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonTraceFormatter())
    root.addHandler(handler)


def setup_tracing(service_name: str, app: Any | None = None) -> bool:
    """
    Initialize OpenTelemetry traces and enable log/trace correlation.

    Returns:
        True if an exporter was configured, False if tracing stays disabled
    """
    global _TRACING_INITIALIZED
    if _TRACING_INITIALIZED:
        return True

    if not _otlp_endpoint_for("traces"):
        logger.info("[Tracing] OTEL_EXPORTER_OTLP_ENDPOINT not set; tracing disabled")
        _TRACING_INITIALIZED = True
        return False

    from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
    from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
    from opentelemetry.instrumentation.requests import RequestsInstrumentor
    from opentelemetry.sdk.resources import Resource
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import BatchSpanProcessor

    name = (os.getenv("OTEL_SERVICE_NAME") or service_name).strip()
    resource_attrs = _parse_key_values(os.getenv("OTEL_RESOURCE_ATTRIBUTES"))
    resource_attrs.setdefault("service.name", name)

    tracer_provider = TracerProvider(resource=Resource.create(resource_attrs))
    tracer_provider.add_span_processor(
        BatchSpanProcessor(
            OTLPSpanExporter(
                endpoint=_otlp_endpoint_for("traces"),
                headers=_parse_key_values(os.getenv("OTEL_EXPORTER_OTLP_HEADERS")) or None,
            )
        )
    )
    trace.set_tracer_provider(tracer_provider)

    RequestsInstrumentor().instrument()
    if app is not None:
        FastAPIInstrumentor.instrument_app(app)

    setup_logging_json()
    _TRACING_INITIALIZED = True
    logger.info("[Tracing] OpenTelemetry enabled (OTLP HTTP)")
    return True


def inject_current_context() -> dict[str, str]:
    """W3C trace headers for the current span, for CloudEvent extensions."""
    carrier: dict[str, str] = {}
    inject(carrier)
    return {k: v for k, v in carrier.items() if k in ("traceparent", "tracestate")}


@contextmanager
def start_span(
    name: str,
    attributes: dict[str, Any] | None = None,
    carrier: dict[str, str] | None = None,
) -> Iterator[trace.Span]:
    """
    Start a span, optionally continuing a trace from `carrier` headers.

    Exceptions raised in the body are recorded on the span and re-raised.
    Without a configured provider the span is a no-op.
    """
    tracer = trace.get_tracer(TRACER_NAME)
    parent_ctx = extract(carrier) if carrier else None
    with tracer.start_as_current_span(name, context=parent_ctx) as span:
        for k, v in (attributes or {}).items():
            if v is not None:
                span.set_attribute(k, v)
        yield span
