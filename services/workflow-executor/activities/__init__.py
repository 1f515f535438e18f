"""Side-effecting collaborators of the workflow executor (Dapr, PostgreSQL)."""

from .persist_state import StepStore, DaprStateStepStore, InMemoryStepStore
from .step_runner import StepRunner, DurableStepRunner, RetryPolicy
from .execution_records import (
    ExecutionRecordStore,
    InMemoryExecutionRecordStore,
    PostgresExecutionRecordStore,
)
from .load_workflow import (
    WorkflowRepository,
    InMemoryWorkflowRepository,
    PostgresWorkflowRepository,
)
from .credentials import CredentialStore, DaprSecretCredentialStore, InMemoryCredentialStore
from .publish_event import DaprStatusPublisher, publish_trigger_event

__all__ = [
    "StepStore",
    "DaprStateStepStore",
    "InMemoryStepStore",
    "StepRunner",
    "DurableStepRunner",
    "RetryPolicy",
    "ExecutionRecordStore",
    "InMemoryExecutionRecordStore",
    "PostgresExecutionRecordStore",
    "WorkflowRepository",
    "InMemoryWorkflowRepository",
    "PostgresWorkflowRepository",
    "CredentialStore",
    "DaprSecretCredentialStore",
    "InMemoryCredentialStore",
    "DaprStatusPublisher",
    "publish_trigger_event",
]
