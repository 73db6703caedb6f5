"""
Variable resolution: ``{{path}}`` interpolation and node input assembly.

Interpolation never raises. A placeholder whose path is missing, or that runs
through a non-mapping value, resolves to the empty string.
"""

import json
import re
from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from nodeflow.graph.context import NodeExecutionResult
    from nodeflow.graph.model import EdgeSpec

TEMPLATE_PATTERN = re.compile(r"\{\{([^}]+)\}\}")

# Target port used when an edge does not name one.
DEFAULT_PORT = "input"

_MISSING = object()


def get_path(obj: Any, path: str, default: Any = None) -> Any:
    """
    Dot-path lookup (``"a.b.0.c"``) through mappings and lists.

    Returns ``default`` when any segment is missing.
    """
    current = obj
    for part in path.split("."):
        part = part.strip()
        if isinstance(current, Mapping):
            if part not in current:
                return default
            current = current[part]
        elif isinstance(current, list | tuple) and part.lstrip("-").isdigit():
            index = int(part)
            if not -len(current) <= index < len(current):
                return default
            current = current[index]
        else:
            return default
    return current


def stringify(value: Any) -> str:
    """Text form of a value as it appears inside an interpolated template."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, Mapping | list | tuple):
        return json.dumps(value, ensure_ascii=False, default=str)
    return str(value)


def interpolate(template: Any, context: Mapping[str, Any]) -> str:
    """
    Replace every ``{{path}}`` in ``template`` with the stringified value at ``path``.

    >>> interpolate("{{a.b}}", {"a": {"b": 5}})
    '5'
    >>> interpolate("{{missing}}", {})
    ''
    """
    if template is None:
        return ""
    if not isinstance(template, str):
        return stringify(template)

    def _replace(match: re.Match) -> str:
        value = get_path(context, match.group(1).strip(), _MISSING)
        return "" if value is _MISSING else stringify(value)

    return TEMPLATE_PATTERN.sub(_replace, template)


def template_reference(template: Any) -> str | None:
    """Path of a template that is exactly one placeholder (``"{{items}}"`` -> ``"items"``)."""
    if not isinstance(template, str):
        return None
    match = TEMPLATE_PATTERN.fullmatch(template.strip())
    return match.group(1).strip() if match else None


def build_input(
    node_id: str,
    edges: Iterable["EdgeSpec"],
    results: Mapping[str, "NodeExecutionResult"],
) -> dict[str, Any]:
    """
    Assemble a node's input map from the recorded outputs of its upstream nodes.

    For each edge into ``node_id`` (in edge-list order): when the source output
    is a mapping containing the edge's source handle, that field is projected;
    otherwise the whole output is copied. The value lands on the edge's target
    handle (``"input"`` by default). A later edge into the same port overwrites
    an earlier one.
    """
    node_input: dict[str, Any] = {}
    for edge in edges:
        if edge.target != node_id:
            continue
        source_result = results.get(edge.source)
        if source_result is None or source_result.output is None:
            continue

        output = source_result.output
        if isinstance(output, Mapping) and edge.source_handle and edge.source_handle in output:
            value = output[edge.source_handle]
        else:
            value = output

        node_input[edge.target_handle or DEFAULT_PORT] = value
    return node_input
