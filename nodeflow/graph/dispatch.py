"""Running one node: input assembly, executor lookup, result record and status."""

import logging

from nodeflow.errors import ExecutionCancelled, NodeExecutionError
from nodeflow.graph.context import (
    ExecutionContext,
    LogLevel,
    NodeExecutionResult,
)
from nodeflow.graph.model import NodeSpec, NodeStatus
from nodeflow.graph.resolver import build_input
from nodeflow.nodes.registry import get_executor
from nodeflow.observability import get_trace_context, set_trace_context

logger = logging.getLogger(__name__)


async def dispatch_node(node: NodeSpec, context: ExecutionContext) -> NodeExecutionResult:
    """
    Execute ``node`` within ``context`` and record its result.

    The result is stored in ``context.results`` (replacing any result from an
    earlier loop iteration). Node failures are recorded, mirrored onto the
    node and re-raised as NodeExecutionError; cancellation propagates as is.
    """
    node_input = build_input(node.id, context.graph.edges, context.results)
    result = NodeExecutionResult(node_id=node.id, iteration=context.iteration)
    context.results[node.id] = result

    parent_node = get_trace_context().get("node_id")
    set_trace_context(node_id=node.id)
    try:
        result.start(node_input)
        node.mark(NodeStatus.RUNNING)
        context.log(LogLevel.INFO, f"▶ Executing {node.name} ({node.type})", node)

        try:
            output = await get_executor(node.type).execute(node, node_input, context)
        except ExecutionCancelled:
            result.skip()
            node.mark(NodeStatus.IDLE)
            raise
        except Exception as e:
            message = str(e) or type(e).__name__
            result.fail(message)
            node.mark(NodeStatus.ERROR, message)
            context.log(LogLevel.ERROR, f"✗ {node.name} failed: {message}", node)
            if isinstance(e, NodeExecutionError):
                if e.node_id is None:
                    e.node_id = node.id
                raise
            logger.debug("Unexpected error in node %s", node.id, exc_info=True)
            raise NodeExecutionError(message, node_id=node.id) from e

        result.succeed(output)
        node.mark(NodeStatus.SUCCESS)
        context.log(
            LogLevel.INFO,
            f"✓ {node.name} completed in {result.duration_ms:.0f}ms",
            node,
            data={"iteration": context.iteration} if context.iteration is not None else None,
        )
        return result
    finally:
        set_trace_context(node_id=parent_node)
