"""
Workflow Executor Service

A Python microservice that executes visual-builder workflows: a trigger
event names a stored workflow, the graph is ordered topologically and every
node runs sequentially through its registered executor.

Architecture:
- FastAPI HTTP server for execute/validate APIs and trigger webhooks
- Dapr pub/sub for trigger events (`workflows.execute`) and node status
- Dapr state store for durable step memoization
- Dapr secret store for credentials and the database URL
- PostgreSQL for workflow graphs and execution records

Set EXECUTION_BACKEND=memory to run without Dapr or PostgreSQL: triggers run
inline and everything is kept in process memory.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Callable

from fastapi import Body, Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from activities.credentials import DaprSecretCredentialStore, InMemoryCredentialStore
from activities.execution_records import (
    ExecutionRecordStore,
    InMemoryExecutionRecordStore,
    PostgresExecutionRecordStore,
)
from activities.load_workflow import (
    InMemoryWorkflowRepository,
    PostgresWorkflowRepository,
    WorkflowRepository,
)
from activities.persist_state import DaprStateStepStore, InMemoryStepStore
from activities.publish_event import DaprStatusPublisher, publish_trigger_event
from activities.step_runner import RetryPolicy
from channels.publishers import InMemoryEventBus
from core.config import config
from core.errors import StructuralError
from core.template_validation import check_template_references
from core.topological_sort import topological_sort
from core.types import TRIGGER_NODE_TYPES, ExecutionRecord, TriggerEvent
from executors.registry import ExecutorRegistry, build_default_registry
from subscriptions.trigger_events import handle_trigger_event
from subscriptions.webhooks import (
    WebhookPayloadError,
    normalize_google_form_submission,
    normalize_telegram_update,
)
from workflows.run_driver import WorkflowRunDriver

# OpenTelemetry
from tracing import setup_tracing

# Configuration from centralized config module
PORT = config.PORT
HOST = config.HOST
LOG_LEVEL = config.LOG_LEVEL

# Configure logging
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

SERVICE_NAME = "workflow-executor"


# --- Services ---

@dataclass
class Services:
    """Collaborators shared by every request."""
    repository: WorkflowRepository
    records: ExecutionRecordStore
    registry: ExecutorRegistry
    driver: WorkflowRunDriver
    # Starts a run for a trigger event; returns the event id
    dispatch: Callable[[TriggerEvent], str]


def build_services(backend: str | None = None) -> Services:
    """
    Wire the run driver for the configured backend.

    postgres: PostgreSQL graphs/records, Dapr state/secrets/pubsub
    memory:   in-process stores; triggers run inline
    """
    backend = (backend or config.EXECUTION_BACKEND).lower()
    retry_policy = RetryPolicy.from_config()

    if backend == "memory":
        repository: WorkflowRepository = InMemoryWorkflowRepository()
        records: ExecutionRecordStore = InMemoryExecutionRecordStore()
        registry = build_default_registry(InMemoryCredentialStore())
        driver = WorkflowRunDriver(
            repository=repository,
            registry=registry,
            records=records,
            step_store=InMemoryStepStore(),
            publisher=InMemoryEventBus(),
            retry_policy=retry_policy,
        )

        def dispatch(event: TriggerEvent) -> str:
            driver.run(event)
            return event.eventId

        return Services(repository, records, registry, driver, dispatch)

    if backend != "postgres":
        raise ValueError(f"Unknown EXECUTION_BACKEND: {backend}")

    repository = PostgresWorkflowRepository()
    records = PostgresExecutionRecordStore()
    registry = build_default_registry(DaprSecretCredentialStore())
    driver = WorkflowRunDriver(
        repository=repository,
        registry=registry,
        records=records,
        step_store=DaprStateStepStore(),
        publisher=DaprStatusPublisher(),
        retry_policy=retry_policy,
    )
    return Services(repository, records, registry, driver, publish_trigger_event)


@lru_cache(maxsize=1)
def get_services() -> Services:
    services = build_services()
    logger.info(f"[Workflow Executor] Services ready (backend={config.EXECUTION_BACKEND})")
    return services


# --- Lifecycle ---

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("=== Workflow Executor Service (Python) ===")
    logger.info(f"Log Level: {LOG_LEVEL}")
    logger.info(f"Execution backend: {config.EXECUTION_BACKEND}")

    # Initialize OpenTelemetry (opt-in via OTEL_EXPORTER_OTLP_ENDPOINT).
    setup_tracing(SERVICE_NAME, app)

    yield

    logger.info("[Workflow Executor] Shutting down")


# Create FastAPI app
app = FastAPI(
    title="Workflow Executor",
    description="Executes visual-builder workflows node by node with durable steps",
    version="1.0.0",
    lifespan=lifespan,
)

# Enable CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)


# --- Request / Response Models ---

class ExecuteWorkflowRequest(BaseModel):
    """Request to execute a stored workflow (manual trigger)."""
    initialData: dict[str, Any] = Field(default_factory=dict)
    eventId: str | None = Field(
        default=None,
        description="Optional idempotency key; generated when omitted"
    )


class CloudEvent(BaseModel):
    """CloudEvent envelope delivered by Dapr pub/sub."""
    type: str = ""
    source: str = ""
    specversion: str = "1.0"
    data: Any = None
    id: str | None = None
    time: str | None = None
    datacontenttype: str = "application/json"

    class Config:
        extra = "allow"  # traceparent/tracestate and bare trigger fields


class ExecuteWorkflowResponse(BaseModel):
    """Response from triggering a workflow."""
    success: bool = True
    workflowId: str
    triggerEventId: str


class ValidationIssue(BaseModel):
    nodeId: str
    kind: str
    key: str
    message: str


class ValidateWorkflowResponse(BaseModel):
    """Static analysis of a stored workflow."""
    workflowId: str
    valid: bool
    executionOrder: list[str] = Field(default_factory=list)
    triggers: list[str] = Field(default_factory=list)
    error: str | None = None
    warnings: list[ValidationIssue] = Field(default_factory=list)


def _dispatch(services: Services, event: TriggerEvent) -> ExecuteWorkflowResponse:
    try:
        event_id = services.dispatch(event)
    except Exception as e:
        logger.error(f"[Workflow Executor] Failed to dispatch trigger for {event.workflowId}: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    return ExecuteWorkflowResponse(workflowId=event.workflowId, triggerEventId=event_id)


# --- Workflow Routes ---

@app.post("/api/v1/workflows/{workflow_id}/execute", response_model=ExecuteWorkflowResponse)
def execute_workflow(
    workflow_id: str,
    request: ExecuteWorkflowRequest | None = None,
    services: Services = Depends(get_services),
):
    """Publish a trigger event that runs the workflow once."""
    request = request or ExecuteWorkflowRequest()
    fields: dict[str, Any] = {"workflowId": workflow_id, "initialData": request.initialData}
    if request.eventId:
        fields["eventId"] = request.eventId
    event = TriggerEvent(**fields)

    logger.info(f"[Workflow Executor] Manual trigger for workflow {workflow_id}")
    return _dispatch(services, event)


@app.post("/api/v1/workflows/{workflow_id}/validate", response_model=ValidateWorkflowResponse)
def validate_workflow(workflow_id: str, services: Services = Depends(get_services)):
    """Sort the stored graph and report template problems without running it."""
    try:
        workflow = services.repository.get(workflow_id)
    except StructuralError as e:
        raise HTTPException(status_code=404, detail=str(e))

    try:
        ordered = topological_sort(workflow.nodes, workflow.connections)
        for node in ordered:
            services.registry.resolve(node.type)
    except StructuralError as e:
        return ValidateWorkflowResponse(workflowId=workflow_id, valid=False, error=str(e))

    issues = check_template_references(
        ordered,
        workflow.connections,
        output_keys_for=services.registry.output_keys_for,
        seeded_keys_for=services.registry.seeded_keys_for,
    )
    return ValidateWorkflowResponse(
        workflowId=workflow_id,
        valid=True,
        executionOrder=[node.id for node in ordered],
        triggers=[node.id for node in ordered if node.type in TRIGGER_NODE_TYPES],
        warnings=[ValidationIssue(**issue.as_dict()) for issue in issues],
    )


@app.get("/api/v1/executions/{trigger_event_id}", response_model=ExecutionRecord)
def get_execution(trigger_event_id: str, services: Services = Depends(get_services)):
    """Execution record for a trigger event."""
    record = services.records.get(trigger_event_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Execution not found")
    return record


# --- Trigger Webhooks ---

@app.post("/api/webhooks/telegram", response_model=ExecuteWorkflowResponse)
def telegram_webhook(
    update: dict[str, Any] = Body(...),
    workflow_id: str = Query(..., alias="workflowId"),
    services: Services = Depends(get_services),
):
    """Telegram Bot API webhook; starts the workflow with the message."""
    try:
        initial_data = normalize_telegram_update(update)
    except WebhookPayloadError as e:
        raise HTTPException(status_code=400, detail=str(e))

    logger.info(f"[Webhooks] Telegram update for workflow {workflow_id}")
    return _dispatch(services, TriggerEvent(workflowId=workflow_id, initialData=initial_data))


@app.post("/api/webhooks/google-form", response_model=ExecuteWorkflowResponse)
def google_form_webhook(
    submission: dict[str, Any] = Body(...),
    workflow_id: str = Query(..., alias="workflowId"),
    services: Services = Depends(get_services),
):
    """Google Forms submission webhook; starts the workflow with the responses."""
    try:
        initial_data = normalize_google_form_submission(submission)
    except WebhookPayloadError as e:
        raise HTTPException(status_code=400, detail=str(e))

    logger.info(f"[Webhooks] Google Form submission for workflow {workflow_id}")
    return _dispatch(services, TriggerEvent(workflowId=workflow_id, initialData=initial_data))


# --- Dapr Subscription Routes ---

@app.post("/subscriptions/workflow-execute")
def workflow_execute_subscription(event: CloudEvent, services: Services = Depends(get_services)):
    """Dapr delivery of a trigger event; runs the workflow to a terminal record."""
    envelope = event.model_dump()
    if event.data is None:
        # Bare trigger event published without a CloudEvent wrapper
        envelope.pop("data")
    return handle_trigger_event(services.driver, envelope)


PUBSUB_NAME = config.PUBSUB_NAME

@app.get("/dapr/subscribe")
def subscribe():
    """
    Declare pub/sub subscriptions for Dapr.

    This endpoint tells Dapr which topics this service subscribes to.
    """
    return [
        {
            "pubsubname": PUBSUB_NAME,
            "topic": config.TRIGGER_TOPIC,
            "route": "/subscriptions/workflow-execute",
        }
    ]


# --- Health Routes ---

@app.get("/healthz")
def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": SERVICE_NAME}


@app.get("/readyz")
def readiness_check():
    """Readiness check endpoint."""
    return {"status": "ready", "service": SERVICE_NAME}


@app.get("/config")
def get_config():
    """Get executor configuration."""
    return {
        "service": SERVICE_NAME,
        "version": "1.0.0",
        "runtime": "python-durable-steps",
        "backend": config.EXECUTION_BACKEND,
        "triggerTopic": config.TRIGGER_TOPIC,
        "stepMaxAttempts": config.STEP_MAX_ATTEMPTS,
        "features": [
            "topological-execution",
            "durable-steps",
            "idempotent-triggers",
            "node-status-channels",
            "template-validation",
            "telegram-webhook",
            "google-form-webhook",
        ],
    }


# Entry point for uvicorn
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=HOST, port=PORT)
