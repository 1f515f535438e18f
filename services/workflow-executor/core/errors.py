"""
Error taxonomy for workflow execution.

Every failure raised inside a run is classified by its base class:

- NonRetriableError: the durable step runner must not retry it.
    - StructuralError: the graph itself cannot run (cycle, unknown node
      type, duplicate node id, missing workflow). Raised before any node
      executes.
    - NodeValidationError: a node's configuration is missing or malformed.
    - NodeExecutionError: a permanent upstream failure (e.g. HTTP 404).
- RetriableError: a transient failure (network, rate limit, 5xx) that the
  step runner retries up to its budget.

Anything else is an unexpected error and is treated as non-retriable.
"""

from __future__ import annotations


class WorkflowEngineError(Exception):
    """Base class for all workflow engine errors."""


class NonRetriableError(WorkflowEngineError):
    """A failure that retrying cannot fix."""


class RetriableError(WorkflowEngineError):
    """A transient failure eligible for step retries."""


class StructuralError(NonRetriableError):
    """The workflow graph cannot be executed as stored."""


class CycleError(StructuralError):
    """The connection graph contains at least one cycle."""

    def __init__(self, unresolved_node_ids: list[str]):
        self.unresolved_node_ids = unresolved_node_ids
        super().__init__(
            f"Workflow contains a cycle involving nodes: {', '.join(unresolved_node_ids)}"
        )


class DuplicateNodeError(StructuralError):
    """Two nodes share the same id within one workflow."""

    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__(f"Duplicate node id in workflow: {node_id}")


class UnknownNodeTypeError(StructuralError):
    """No executor is registered for a node type tag."""

    def __init__(self, node_type: str):
        self.node_type = node_type
        super().__init__(f"Executor not found for type {node_type}")


class WorkflowNotFoundError(StructuralError):
    """The trigger event references a workflow that does not exist."""

    def __init__(self, workflow_id: str):
        self.workflow_id = workflow_id
        super().__init__(f"Workflow {workflow_id} not found")


class NodeValidationError(NonRetriableError):
    """A node's required configuration is missing or malformed."""


class NodeExecutionError(NonRetriableError):
    """A node's side effect failed permanently."""


class StepRetriesExhaustedError(NonRetriableError):
    """A durable step kept failing with transient errors until the budget ran out."""

    def __init__(self, step_id: str, attempts: int, last_error: BaseException):
        self.step_id = step_id
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"Step {step_id} failed after {attempts} attempts: {last_error}"
        )
