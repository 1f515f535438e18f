"""
Template Reference Validation

Static checks over a workflow graph, using the output keys each node type
declares:

- unresolved_reference: a template like {{resp.data}} whose root key
  (`resp`) is neither produced by an ancestor node nor seeded by the
  trigger's initial data. At run time such a template renders as an empty
  string, so this is reported rather than enforced.
- output_key_collision: two nodes write the same context key; the later
  one silently wins.

Both are warnings: the engine still runs the workflow.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable, Literal

from core.topological_sort import ancestors
from core.template_resolver import root_key, template_paths
from core.types import Connection, Node

IssueKind = Literal["unresolved_reference", "output_key_collision"]

# node -> context keys it writes
OutputKeysFn = Callable[[Node], Iterable[str]]


@dataclass(frozen=True)
class TemplateIssue:
    nodeId: str
    kind: IssueKind
    key: str
    message: str

    def as_dict(self) -> dict[str, str]:
        return {
            "nodeId": self.nodeId,
            "kind": self.kind,
            "key": self.key,
            "message": self.message,
        }


def check_template_references(
    ordered_nodes: list[Node],
    connections: list[Connection],
    output_keys_for: OutputKeysFn,
    seeded_keys_for: OutputKeysFn | None = None,
    initial_keys: Iterable[str] = (),
) -> list[TemplateIssue]:
    """
    Report templates that cannot resolve and output keys that collide.

    Args:
        ordered_nodes: Nodes in execution order
        connections: Workflow connections (used for ancestry)
        output_keys_for: Keys a node writes into the context
        seeded_keys_for: Keys a trigger node expects in the initial data
        initial_keys: Keys actually present in the trigger's initial data

    Returns:
        List of issues, in execution order
    """
    issues: list[TemplateIssue] = []
    node_map = {node.id: node for node in ordered_nodes}
    initial = set(initial_keys)
    written_by: dict[str, str] = {}

    for node in ordered_nodes:
        available = set(initial)
        for ancestor_id in ancestors(node.id, connections):
            ancestor = node_map.get(ancestor_id)
            if ancestor is None:
                continue
            available.update(k for k in output_keys_for(ancestor) if k)
            if seeded_keys_for is not None:
                available.update(k for k in seeded_keys_for(ancestor) if k)
        if seeded_keys_for is not None:
            available.update(k for k in seeded_keys_for(node) if k)

        for path in template_paths(node.data):
            key = root_key(path)
            if key and key not in available:
                issues.append(TemplateIssue(
                    nodeId=node.id,
                    kind="unresolved_reference",
                    key=key,
                    message=(
                        f"Template '{{{{{path}}}}}' references '{key}', "
                        f"which no upstream node produces"
                    ),
                ))

        for key in output_keys_for(node):
            if not key:
                continue
            previous = written_by.get(key)
            if previous is not None:
                issues.append(TemplateIssue(
                    nodeId=node.id,
                    kind="output_key_collision",
                    key=key,
                    message=f"Output key '{key}' is also written by node {previous}",
                ))
            written_by[key] = node.id

    return issues
