"""
Loop sub-graph runner.

A Loop node owns the nodes whose ``parentId`` is the loop's id. For every
iteration the children run in their own restricted topological order, with a
local variable overlay exposing the current item and index.
"""

import json
import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from nodeflow.errors import NodeExecutionError
from nodeflow.graph.context import ExecutionContext, LogLevel
from nodeflow.graph.model import NodeSpec
from nodeflow.graph.resolver import get_path, interpolate, template_reference
from nodeflow.graph.safe_eval import evaluate_condition
from nodeflow.graph.scheduler import execution_order, find_unscheduled

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 1000
MAX_ITERATIONS_CAP = 10_000
DEFAULT_CONDITION = "{{index}} < 10"


class LoopMode(StrEnum):
    COUNT = "count"
    ARRAY = "array"
    CONDITION = "condition"


@dataclass
class LoopIteration:
    index: int
    item: Any

    def to_dict(self) -> dict[str, Any]:
        return {"index": self.index, "item": self.item}


def max_iterations_for(node: NodeSpec) -> int:
    try:
        configured = int(node.get_config("maxIterations", DEFAULT_MAX_ITERATIONS))
    except (TypeError, ValueError):
        configured = DEFAULT_MAX_ITERATIONS
    if configured <= 0:
        configured = DEFAULT_MAX_ITERATIONS
    return min(configured, MAX_ITERATIONS_CAP)


def _parse_array(value: Any) -> list[Any] | None:
    if isinstance(value, list):
        return value
    if isinstance(value, str) and value.strip():
        try:
            parsed = json.loads(value)
        except (json.JSONDecodeError, ValueError):
            return None
        if isinstance(parsed, list):
            return parsed
    return None


def resolve_array_source(
    node: NodeSpec, node_input: dict[str, Any], context: ExecutionContext
) -> list[Any]:
    """
    Array to iterate, by priority: the bound ``array`` input, a variable the
    ``arraySource`` template names, then a JSON literal of the interpolated
    source. An unusable source iterates over nothing.
    """
    bound = _parse_array(node_input.get("array"))
    if bound is not None:
        return bound

    source = node.get_config("arraySource", "")
    reference = template_reference(source)
    if reference is not None:
        found = get_path(context.template_context(node_input), reference)
        if isinstance(found, list):
            return found

    parsed = _parse_array(context.interpolate(source, node_input))
    if parsed is not None:
        return parsed

    upstream = node_input.get("input")
    if isinstance(upstream, list):
        return upstream

    context.log(LogLevel.WARN, f"Array source '{source}' did not resolve to an array", node)
    return []


def compute_iterations(
    node: NodeSpec, node_input: dict[str, Any], context: ExecutionContext
) -> list[LoopIteration]:
    """The iteration sequence for one execution of a Loop node."""
    limit = max_iterations_for(node)
    mode = node.get_config("loopMode", LoopMode.COUNT)

    if mode == LoopMode.COUNT:
        try:
            count = int(node.get_config("count", 1))
        except (TypeError, ValueError):
            count = 0
        return [LoopIteration(index=i, item=i) for i in range(max(0, min(count, limit)))]

    if mode == LoopMode.ARRAY:
        items = resolve_array_source(node, node_input, context)[:limit]
        return [LoopIteration(index=i, item=item) for i, item in enumerate(items)]

    if mode == LoopMode.CONDITION:
        expression = node.get_config("conditionExpression") or DEFAULT_CONDITION
        iterations = []
        for index in range(limit):
            scope = {**context.template_context(node_input), "index": index, "iteration": index}
            if not evaluate_condition(interpolate(expression, scope), scope):
                break
            iterations.append(LoopIteration(index=index, item=index))
        else:
            context.log(LogLevel.WARN, f"Condition loop stopped at maxIterations ({limit})", node)
        return iterations

    raise NodeExecutionError(f"Unknown loopMode '{mode}'", node_id=node.id)


def iteration_overlay(node: NodeSpec, iteration: LoopIteration, count: int) -> dict[str, Any]:
    """Local variables visible to the loop body during one iteration."""
    overlay = {
        "item": iteration.item,
        "index": iteration.index,
        "iteration": iteration.index,
        "isFirst": iteration.index == 0,
        "isLast": iteration.index == count - 1,
        "count": count,
    }
    overlay[node.get_config("loopVariable", "item")] = iteration.item
    overlay[node.get_config("indexVariable", "index")] = iteration.index
    return overlay


async def run_loop(
    node: NodeSpec, node_input: dict[str, Any], context: ExecutionContext
) -> dict[str, Any]:
    """
    Run the loop body once per iteration and build the Loop node's output.

    ``completed`` holds the body outputs of the last collected iteration, so it
    is None when ``collectResults`` is false or the loop has no body.
    """
    iterations = compute_iterations(node, node_input, context)
    count = len(iterations)
    order = execution_order(context.graph, node.id)
    collect = node.get_config("collectResults", True) is not False

    cyclic = find_unscheduled(context.graph, node.id)
    if cyclic:
        context.log(LogLevel.WARN, f"Loop body nodes in a cycle will not run: {cyclic}", node)
    if order and context.dispatch is None:
        raise NodeExecutionError("Loop body cannot run without a dispatcher", node_id=node.id)

    context.log(
        LogLevel.INFO,
        f"Running {count} iterations over {len(order)} body nodes",
        node,
        data={"loopMode": node.get_config("loopMode", LoopMode.COUNT)},
    )

    results: list[Any] = []
    completed: dict[str, Any] | None = None
    for iteration in iterations:
        scoped = context.scoped(iteration_overlay(node, iteration, count), iteration.index)
        outputs: list[Any] = []
        for child_id in order:
            await context.checkpoint()
            child = context.graph.get_node(child_id)
            result = await context.dispatch(child, scoped)
            outputs.append(result.output)

        if not order or not collect:
            continue
        completed = {"results": outputs, "lastOutput": outputs[-1]}
        results.append(outputs[-1])

    last = iterations[-1] if iterations else None
    return {
        "item": last.item if last else None,
        "index": last.index if last else 0,
        "results": results,
        "iterations": [it.to_dict() for it in iterations],
        "count": count,
        "completed": completed,
        node.get_config("loopVariable", "item"): last.item if last else None,
        node.get_config("indexVariable", "index"): last.index if last else 0,
    }
