"""
Topological scheduling of a workflow graph.

Kahn's algorithm with node-list order as the tie-break, so the same graph
always yields the same order. Nodes caught in a cycle never reach in-degree
zero and are left out of the order; ``find_unscheduled`` reports them.

Scheduling is scoped: the top level schedules nodes without a parent, a Loop
node schedules its direct children. Edges that touch a node nested deeper
inside the scope are lifted to the scope member that contains it, so a node
consuming a loop body's output runs after the whole loop.
"""

from collections import deque
from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from nodeflow.graph.model import WorkflowGraph


def topological_order(node_ids: Sequence[str], edges: Iterable[tuple[str, str]]) -> list[str]:
    """
    Kahn's algorithm over plain ids.

    Edges whose endpoints are not both in ``node_ids`` are ignored. Ties are
    broken by position in ``node_ids``.
    """
    members = set(node_ids)
    in_degree = {node_id: 0 for node_id in node_ids}
    adjacency: dict[str, list[str]] = {node_id: [] for node_id in node_ids}

    for source, target in edges:
        if source not in members or target not in members:
            continue
        adjacency[source].append(target)
        in_degree[target] += 1

    queue = deque(node_id for node_id in node_ids if in_degree[node_id] == 0)
    order: list[str] = []

    while queue:
        current = queue.popleft()
        order.append(current)
        for neighbor in adjacency[current]:
            in_degree[neighbor] -= 1
            if in_degree[neighbor] == 0:
                queue.append(neighbor)

    return order


def _lift(node_id: str, scope: str | None, parents: dict[str, str | None]) -> str | None:
    """Walk up the parent chain until reaching a node whose parent is ``scope``."""
    current: str | None = node_id
    seen: set[str] = set()
    while current is not None and current not in seen:
        seen.add(current)
        parent = parents.get(current)
        if parent == scope:
            return current
        current = parent
    return None


def scope_edges(graph: "WorkflowGraph", scope: str | None) -> list[tuple[str, str]]:
    """Edges between members of ``scope`` after lifting nested endpoints."""
    parents = {node.id: node.parent_id for node in graph.nodes}
    lifted = []
    for edge in graph.edges:
        if edge.source not in parents or edge.target not in parents:
            continue
        source = _lift(edge.source, scope, parents)
        target = _lift(edge.target, scope, parents)
        if source is None or target is None or source == target:
            continue
        lifted.append((source, target))
    return lifted


def scope_members(graph: "WorkflowGraph", scope: str | None) -> list[str]:
    return [node.id for node in graph.nodes if node.parent_id == scope]


def execution_order(graph: "WorkflowGraph", scope: str | None = None) -> list[str]:
    """
    Run order for one scope.

    Args:
        graph: The workflow graph
        scope: None for top-level nodes, or a Loop node id for its body

    Returns:
        Node ids in a valid topological order (cyclic nodes omitted)
    """
    return topological_order(scope_members(graph, scope), scope_edges(graph, scope))


def find_unscheduled(graph: "WorkflowGraph", scope: str | None = None) -> list[str]:
    """Members of ``scope`` that ``execution_order`` leaves out (they sit on or behind a cycle)."""
    members = scope_members(graph, scope)
    scheduled = set(execution_order(graph, scope))
    missing = [node_id for node_id in members if node_id not in scheduled]

    # Loop bodies are scheduled separately; check them as well.
    for node in graph.nodes:
        if node.parent_id == scope and node.type == "loop":
            missing.extend(find_unscheduled(graph, node.id))
    return missing


def has_cycle(graph: "WorkflowGraph") -> bool:
    return bool(find_unscheduled(graph))
