"""
Template Resolver

Resolves template expressions inside node configuration strings against the
current execution context.

Supported syntaxes:
- {{path.to.value}}        dotted path lookup, `[index]` for arrays
- {{json path.to.value}}   the value serialized as pretty-printed JSON, for
                           embedding objects in textual fields (request bodies)
- {{{path.to.value}}}      accepted as an alias of {{path.to.value}}

Values are rendered without HTML escaping. Unresolvable paths render as an
empty string rather than raising.
"""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from typing import Any

# {{{expr}}} or {{expr}}; braces must balance so `{"a": {{x}}}` keeps its last brace
TEMPLATE_REGEX = re.compile(
    r"\{\{\{\s*(?P<triple>[^{}]+?)\s*\}\}\}|\{\{\s*(?P<double>[^{}]+?)\s*\}\}"
)

ARRAY_ACCESS_PATTERN = re.compile(r"^([^\[\]]+)\[(\d+)\]$")

JSON_HELPER = "json"


def _expression(match: re.Match) -> str:
    return match.group("triple") or match.group("double")


def get_nested_value(obj: Any, path: str) -> Any:
    """Get a nested value from an object using dot notation + `[index]` arrays."""
    parts = [p.strip() for p in path.split(".") if p.strip()]
    current: Any = obj

    for part in parts:
        if current is None:
            return None
        if isinstance(current, Mapping):
            m = ARRAY_ACCESS_PATTERN.match(part)
            if m:
                field, index_s = m.group(1), m.group(2)
                arr = current.get(field)
                if isinstance(arr, list):
                    idx = int(index_s)
                    current = arr[idx] if 0 <= idx < len(arr) else None
                else:
                    return None
            else:
                current = current.get(part)
        elif isinstance(current, list):
            if part.isdigit():
                idx = int(part)
                current = current[idx] if idx < len(current) else None
            elif part == "length":
                current = len(current)
            else:
                return None
        else:
            return None

    return current


def parse_expression(expr: str) -> tuple[str | None, str]:
    """Split an expression into (helper, path); helper is None for plain lookups."""
    tokens = expr.split(None, 1)
    if len(tokens) == 2 and tokens[0] == JSON_HELPER:
        return JSON_HELPER, tokens[1].strip()
    return None, expr.strip()


def _stringify(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return value
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)


def render_expression(expr: str, context: Mapping[str, Any]) -> str:
    """Render the inside of one {{...}} expression."""
    helper, path = parse_expression(expr)
    value = get_nested_value(context, path)

    if helper == JSON_HELPER:
        if value is None:
            return ""
        return json.dumps(value, indent=2)

    return _stringify(value)


def render_template(template: str, context: Mapping[str, Any]) -> str:
    """
    Resolve all template expressions in a string.

    Args:
        template: The string containing templates
        context: Current execution context

    Returns:
        The string with all templates resolved
    """
    def replace_match(match: re.Match) -> str:
        return render_expression(_expression(match), context)

    return TEMPLATE_REGEX.sub(replace_match, template)


def template_paths(value: Any) -> list[str]:
    """Collect every path referenced by templates in a (nested) config value."""
    paths: list[str] = []
    if isinstance(value, str):
        for match in TEMPLATE_REGEX.finditer(value):
            _, path = parse_expression(_expression(match))
            if path:
                paths.append(path)
    elif isinstance(value, list):
        for item in value:
            paths.extend(template_paths(item))
    elif isinstance(value, dict):
        for item in value.values():
            paths.extend(template_paths(item))
    return paths


def root_key(path: str) -> str:
    """First segment of a path: `resp.httpResponse.data` -> `resp`."""
    head = path.split(".", 1)[0].strip()
    m = ARRAY_ACCESS_PATTERN.match(head)
    return m.group(1) if m else head
