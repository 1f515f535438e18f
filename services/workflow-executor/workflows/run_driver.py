"""
Workflow Run Driver

Executes one run of a workflow for one trigger event:

    create record (RUNNING) -> load graph -> topological sort
        -> resolve every executor -> check template references
        -> run nodes sequentially -> finalize record (SUCCESS | FAILED)

The trigger event id is the idempotency key. A re-delivered event whose
record is already terminal returns that record without running anything.
A re-delivered event whose record is still RUNNING (the earlier delivery
crashed) runs again, and every step that completed before the crash is
replayed from the step store instead of re-executing its side effect.

Structural problems (missing workflow, cycle, duplicate ids, unknown node
types) fail the run before any node executes. The first node failure aborts
the run; completed side effects are not rolled back.

Errors raised by the record store, or by the repository while loading the
graph, propagate to the caller so the trigger can be re-delivered.
"""

from __future__ import annotations

import logging
import time
import traceback

from activities.execution_records import ExecutionRecordStore
from activities.load_workflow import WorkflowRepository
from activities.persist_state import StepStore
from activities.step_runner import DurableStepRunner, RetryPolicy
from channels.publishers import StatusPublisher
from core.context import ExecutionContext
from core.errors import WorkflowEngineError
from core.template_validation import check_template_references
from core.topological_sort import topological_sort
from core.types import ExecutionRecord, Node, TriggerEvent, Workflow
from executors.base import NodeExecutor
from executors.registry import ExecutorRegistry
from tracing import start_span

logger = logging.getLogger(__name__)


class WorkflowRunDriver:
    def __init__(
        self,
        repository: WorkflowRepository,
        registry: ExecutorRegistry,
        records: ExecutionRecordStore,
        step_store: StepStore,
        publisher: StatusPublisher,
        retry_policy: RetryPolicy | None = None,
    ):
        self.repository = repository
        self.registry = registry
        self.records = records
        self.step_store = step_store
        self.publisher = publisher
        self.retry_policy = retry_policy

    def run(
        self, event: TriggerEvent, trace_carrier: dict[str, str] | None = None
    ) -> ExecutionRecord:
        """
        Run the workflow named by `event` to a terminal execution record.

        Args:
            event: Trigger event; eventId is the idempotency key
            trace_carrier: W3C trace headers to continue, if any

        Returns:
            The terminal execution record for event.eventId
        """
        record, created = self.records.create_if_absent(event.eventId, event.workflowId)
        if record.status.is_terminal:
            logger.info(
                f"[Run Driver] Event {event.eventId} already finished with "
                f"{record.status.value}; skipping"
            )
            return record
        if not created:
            logger.warning(
                f"[Run Driver] Event {event.eventId} has a RUNNING record; "
                "resuming with memoized steps"
            )

        started = time.monotonic()
        attributes = {"workflow.id": event.workflowId, "workflow.trigger_event_id": event.eventId}
        with start_span("workflow.run", attributes, carrier=trace_carrier):
            # Database outages while loading propagate; only engine errors fail the run here
            try:
                workflow, plan = self._prepare(event)
            except WorkflowEngineError as e:
                self._fail(event, e)
                return self._final_record(event)

            try:
                context = self._execute(event, workflow, plan)
            except Exception as e:
                self._fail(event, e)
            else:
                duration_ms = int((time.monotonic() - started) * 1000)
                logger.info(
                    f"[Run Driver] Completed workflow: {workflow.name} "
                    f"({event.eventId}, {duration_ms}ms)"
                )
                self.records.mark_succeeded(event.eventId, context.to_dict())

        return self._final_record(event)

    def _fail(self, event: TriggerEvent, error: Exception) -> None:
        logger.error(f"[Run Driver] Workflow {event.workflowId} failed: {error}")
        if not self.records.mark_failed(event.eventId, str(error), traceback.format_exc()):
            logger.warning(f"[Run Driver] Record {event.eventId} was already finalized")

    def _final_record(self, event: TriggerEvent) -> ExecutionRecord:
        final = self.records.get(event.eventId)
        if final is None:
            raise RuntimeError(f"Execution record {event.eventId} disappeared")
        return final

    def _prepare(self, event: TriggerEvent) -> tuple[Workflow, list[tuple[Node, NodeExecutor]]]:
        """Load, sort and resolve; raises before any node runs."""
        workflow = self.repository.get(event.workflowId)
        ordered = topological_sort(workflow.nodes, workflow.connections)
        plan = [(node, self.registry.resolve(node.type)) for node in ordered]

        for issue in check_template_references(
            ordered,
            workflow.connections,
            output_keys_for=self.registry.output_keys_for,
            seeded_keys_for=self.registry.seeded_keys_for,
            initial_keys=event.initialData.keys(),
        ):
            logger.warning(f"[Run Driver] {workflow.id}/{issue.nodeId}: {issue.message}")

        logger.info(
            f"[Run Driver] Starting workflow: {workflow.name} ({event.eventId}), "
            f"{len(plan)} nodes"
        )
        return workflow, plan

    def _execute(
        self,
        event: TriggerEvent,
        workflow: Workflow,
        plan: list[tuple[Node, NodeExecutor]],
    ) -> ExecutionContext:
        steps = DurableStepRunner(self.step_store, event.eventId, self.retry_policy)
        context = ExecutionContext(event.initialData)

        for index, (node, executor) in enumerate(plan, start=1):
            logger.info(
                f"[Run Driver] Processing node {index}/{len(plan)}: "
                f"{node.name or node.id} ({node.type})"
            )
            with start_span("node.execute", {"node.id": node.id, "node.type": node.type}):
                context = executor(
                    node_id=node.id,
                    data=node.data,
                    context=context,
                    step=steps.for_node(node.id),
                    publish=self.publisher,
                )
        return context
