"""
Load Workflow Activity

Reads a workflow graph (the workflow row, its nodes and its connections)
once at run start. The graph is treated as read-only for the rest of the run.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol

from activities import database
from core.errors import WorkflowNotFoundError
from core.types import DEFAULT_HANDLE, Connection, Node, Workflow

logger = logging.getLogger(__name__)


class WorkflowRepository(Protocol):
    def get(self, workflow_id: str) -> Workflow:
        """Raises WorkflowNotFoundError if the workflow does not exist."""
        ...


class InMemoryWorkflowRepository:
    def __init__(self, workflows: list[Workflow] | None = None):
        self._workflows: dict[str, Workflow] = {}
        for wf in workflows or []:
            self.add(wf)

    def add(self, workflow: Workflow) -> None:
        self._workflows[workflow.id] = workflow

    def get(self, workflow_id: str) -> Workflow:
        workflow = self._workflows.get(workflow_id)
        if workflow is None:
            raise WorkflowNotFoundError(workflow_id)
        return workflow.model_copy(deep=True)


def _json_column(value: Any) -> Any:
    # JSONB columns may already be dicts/lists, or may need parsing
    return json.loads(value) if isinstance(value, str) else value


class PostgresWorkflowRepository:
    """Workflow graphs stored in the workflows / nodes / connections tables."""

    def get(self, workflow_id: str) -> Workflow:
        with database.connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "SELECT id, name, user_id, wallet FROM workflows WHERE id = %s",
                    (workflow_id,),
                )
                row = cur.fetchone()
                if not row:
                    raise WorkflowNotFoundError(workflow_id)
                wf_id, wf_name, user_id, wallet = row

                cur.execute(
                    """
                    SELECT id, type, name, position, data
                    FROM nodes
                    WHERE workflow_id = %s
                    ORDER BY created_at, id
                    """,
                    (workflow_id,),
                )
                node_rows = cur.fetchall()

                cur.execute(
                    """
                    SELECT id, from_node_id, to_node_id, from_output, to_input
                    FROM connections
                    WHERE workflow_id = %s
                    ORDER BY created_at, id
                    """,
                    (workflow_id,),
                )
                connection_rows = cur.fetchall()

        nodes = [
            Node(
                id=node_id,
                type=node_type,
                name=name or "",
                position=_json_column(position) or {"x": 0, "y": 0},
                data=_json_column(data) or {},
            )
            for node_id, node_type, name, position, data in node_rows
        ]
        connections = [
            Connection(
                id=conn_id,
                source=source,
                target=target,
                sourceHandle=from_output or DEFAULT_HANDLE,
                targetHandle=to_input or DEFAULT_HANDLE,
            )
            for conn_id, source, target, from_output, to_input in connection_rows
        ]

        logger.info(
            f"[Load Workflow] Loaded {wf_name} ({wf_id}): "
            f"{len(nodes)} nodes, {len(connections)} connections"
        )

        return Workflow(
            id=wf_id,
            name=wf_name,
            userId=user_id,
            wallet=_json_column(wallet),
            nodes=nodes,
            connections=connections,
        )
