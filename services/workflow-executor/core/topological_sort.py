"""
Topological Sorter

Turns a workflow's nodes and connections into one linear execution order
using Kahn's algorithm. Ties between nodes that become ready at the same
time are broken by input order, so the same graph always yields the same
order.
"""

from __future__ import annotations

import logging
from collections import defaultdict, deque
from typing import Iterable

from core.errors import CycleError, DuplicateNodeError
from core.types import Connection, Node

logger = logging.getLogger(__name__)


def _adjacency(
    node_ids: list[str],
    connections: Iterable[Connection],
) -> tuple[dict[str, int], dict[str, list[str]]]:
    known = set(node_ids)
    in_degree: dict[str, int] = {node_id: 0 for node_id in node_ids}
    successors: dict[str, list[str]] = defaultdict(list)

    for conn in connections:
        if conn.source not in known or conn.target not in known:
            logger.warning(
                f"[Topological Sort] Ignoring connection {conn.id or '?'} "
                f"with unknown endpoint: {conn.source} -> {conn.target}"
            )
            continue
        successors[conn.source].append(conn.target)
        in_degree[conn.target] += 1

    return in_degree, successors


def topological_sort(
    nodes: list[Node],
    connections: list[Connection],
) -> list[Node]:
    """
    Return the nodes in an order where every node follows all its predecessors.

    Raises:
        DuplicateNodeError: if two nodes share an id
        CycleError: if the graph is not a DAG; no partial order is returned
    """
    node_map: dict[str, Node] = {}
    for node in nodes:
        if node.id in node_map:
            raise DuplicateNodeError(node.id)
        node_map[node.id] = node

    node_ids = [node.id for node in nodes]
    in_degree, successors = _adjacency(node_ids, connections)

    queue = deque(node_id for node_id in node_ids if in_degree[node_id] == 0)
    ordered: list[Node] = []

    while queue:
        current = queue.popleft()
        ordered.append(node_map[current])

        for neighbor in successors[current]:
            in_degree[neighbor] -= 1
            if in_degree[neighbor] == 0:
                queue.append(neighbor)

    if len(ordered) != len(nodes):
        emitted = {node.id for node in ordered}
        raise CycleError([node_id for node_id in node_ids if node_id not in emitted])

    return ordered


def ancestors(node_id: str, connections: Iterable[Connection]) -> set[str]:
    """All nodes with a path to node_id (excluding node_id itself)."""
    predecessors: dict[str, list[str]] = defaultdict(list)
    for conn in connections:
        predecessors[conn.target].append(conn.source)

    seen: set[str] = set()
    stack = list(predecessors.get(node_id, []))
    while stack:
        current = stack.pop()
        if current in seen:
            continue
        seen.add(current)
        stack.extend(predecessors.get(current, []))

    seen.discard(node_id)
    return seen
