"""
Execution Record Store

One row per run, keyed by the trigger event id so duplicate deliveries of
the same event never create a second execution. A record is written twice:
once at run start (RUNNING) and once at its terminal state (SUCCESS or
FAILED). The terminal update only applies while the row is still RUNNING,
so it happens exactly once even when the enclosing delivery is retried.

SCHEMA (run once via migration):

    CREATE TABLE workflow_executions (
        id               VARCHAR(32) PRIMARY KEY,
        workflow_id      VARCHAR(64) NOT NULL,
        trigger_event_id VARCHAR(128) NOT NULL UNIQUE,
        status           VARCHAR(16) NOT NULL,
        started_at       TIMESTAMPTZ NOT NULL,
        completed_at     TIMESTAMPTZ,
        output           JSONB,
        error            TEXT,
        error_stack      TEXT
    );
"""

from __future__ import annotations

import json
import logging
import threading
from datetime import datetime, timezone
from typing import Any, Protocol

from activities import database
from core.types import ExecutionRecord, ExecutionStatus, generate_event_id

logger = logging.getLogger(__name__)


class ExecutionRecordStore(Protocol):
    def create_if_absent(
        self, trigger_event_id: str, workflow_id: str
    ) -> tuple[ExecutionRecord, bool]:
        """Return (record, created); an existing record is returned untouched."""
        ...

    def mark_succeeded(self, trigger_event_id: str, output: dict[str, Any]) -> bool:
        """Finalize as SUCCESS; False if the record was already terminal."""
        ...

    def mark_failed(
        self, trigger_event_id: str, error: str, error_stack: str | None
    ) -> bool:
        """Finalize as FAILED; False if the record was already terminal."""
        ...

    def get(self, trigger_event_id: str) -> ExecutionRecord | None:
        ...


class InMemoryExecutionRecordStore:
    """Execution records kept in process memory (local runs and tests)."""

    def __init__(self) -> None:
        self._records: dict[str, ExecutionRecord] = {}
        self._lock = threading.Lock()

    def create_if_absent(
        self, trigger_event_id: str, workflow_id: str
    ) -> tuple[ExecutionRecord, bool]:
        with self._lock:
            existing = self._records.get(trigger_event_id)
            if existing is not None:
                return existing.model_copy(deep=True), False
            record = ExecutionRecord(
                id=generate_event_id(),
                workflowId=workflow_id,
                triggerEventId=trigger_event_id,
                status=ExecutionStatus.RUNNING,
                startedAt=datetime.now(timezone.utc),
            )
            self._records[trigger_event_id] = record
            return record.model_copy(deep=True), True

    def _finalize(self, trigger_event_id: str, **changes: Any) -> bool:
        with self._lock:
            record = self._records.get(trigger_event_id)
            if record is None or record.status.is_terminal:
                return False
            self._records[trigger_event_id] = record.model_copy(
                update={"completedAt": datetime.now(timezone.utc), **changes}
            )
            return True

    def mark_succeeded(self, trigger_event_id: str, output: dict[str, Any]) -> bool:
        return self._finalize(
            trigger_event_id, status=ExecutionStatus.SUCCESS, output=output
        )

    def mark_failed(
        self, trigger_event_id: str, error: str, error_stack: str | None
    ) -> bool:
        return self._finalize(
            trigger_event_id,
            status=ExecutionStatus.FAILED,
            error=error,
            errorStack=error_stack,
        )

    def get(self, trigger_event_id: str) -> ExecutionRecord | None:
        with self._lock:
            record = self._records.get(trigger_event_id)
            return record.model_copy(deep=True) if record else None

    def all(self) -> list[ExecutionRecord]:
        with self._lock:
            return [r.model_copy(deep=True) for r in self._records.values()]


_SELECT_COLUMNS = (
    "id, workflow_id, trigger_event_id, status, started_at, "
    "completed_at, output, error, error_stack"
)


def _row_to_record(row: tuple) -> ExecutionRecord:
    (
        record_id,
        workflow_id,
        trigger_event_id,
        status,
        started_at,
        completed_at,
        output,
        error,
        error_stack,
    ) = row
    # JSONB columns may already be dicts, or may need parsing
    if isinstance(output, str):
        output = json.loads(output)
    if started_at is not None and getattr(started_at, "tzinfo", None) is None:
        started_at = started_at.replace(tzinfo=timezone.utc)
    return ExecutionRecord(
        id=record_id,
        workflowId=workflow_id,
        triggerEventId=trigger_event_id,
        status=ExecutionStatus(status),
        startedAt=started_at,
        completedAt=completed_at,
        output=output,
        error=error,
        errorStack=error_stack,
    )


class PostgresExecutionRecordStore:
    """Execution records in the workflow_executions table."""

    def create_if_absent(
        self, trigger_event_id: str, workflow_id: str
    ) -> tuple[ExecutionRecord, bool]:
        execution_id = generate_event_id()
        with database.connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    INSERT INTO workflow_executions (
                        id, workflow_id, trigger_event_id, status, started_at
                    )
                    VALUES (%s, %s, %s, %s, %s)
                    ON CONFLICT (trigger_event_id) DO NOTHING
                    RETURNING {_SELECT_COLUMNS}
                    """,
                    (
                        execution_id,
                        workflow_id,
                        trigger_event_id,
                        ExecutionStatus.RUNNING.value,
                        datetime.now(timezone.utc),
                    ),
                )
                row = cur.fetchone()
                if row is not None:
                    logger.info(
                        f"[Execution Records] Created execution {execution_id} "
                        f"for event {trigger_event_id}"
                    )
                    return _row_to_record(row), True

                cur.execute(
                    f"SELECT {_SELECT_COLUMNS} FROM workflow_executions "
                    "WHERE trigger_event_id = %s",
                    (trigger_event_id,),
                )
                existing = cur.fetchone()

        if existing is None:
            raise RuntimeError(
                f"Execution for event {trigger_event_id} vanished during creation"
            )
        return _row_to_record(existing), False

    def _finalize(
        self,
        trigger_event_id: str,
        status: ExecutionStatus,
        output: dict[str, Any] | None,
        error: str | None,
        error_stack: str | None,
    ) -> bool:
        with database.connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE workflow_executions
                    SET status = %s,
                        output = %s,
                        error = %s,
                        error_stack = %s,
                        completed_at = %s
                    WHERE trigger_event_id = %s AND status = %s
                    """,
                    (
                        status.value,
                        json.dumps(output) if output is not None else None,
                        error,
                        error_stack,
                        datetime.now(timezone.utc),
                        trigger_event_id,
                        ExecutionStatus.RUNNING.value,
                    ),
                )
                updated = cur.rowcount == 1

        if updated:
            logger.info(
                f"[Execution Records] Finalized event {trigger_event_id} as {status.value}"
            )
        else:
            logger.warning(
                f"[Execution Records] Event {trigger_event_id} already terminal; "
                f"ignoring {status.value}"
            )
        return updated

    def mark_succeeded(self, trigger_event_id: str, output: dict[str, Any]) -> bool:
        return self._finalize(trigger_event_id, ExecutionStatus.SUCCESS, output, None, None)

    def mark_failed(
        self, trigger_event_id: str, error: str, error_stack: str | None
    ) -> bool:
        return self._finalize(
            trigger_event_id, ExecutionStatus.FAILED, None, error, error_stack
        )

    def get(self, trigger_event_id: str) -> ExecutionRecord | None:
        with database.connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"SELECT {_SELECT_COLUMNS} FROM workflow_executions "
                    "WHERE trigger_event_id = %s",
                    (trigger_event_id,),
                )
                row = cur.fetchone()
        return _row_to_record(row) if row else None
