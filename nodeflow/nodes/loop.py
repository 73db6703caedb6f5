"""Loop node."""

from typing import Any

from nodeflow.graph.context import ExecutionContext
from nodeflow.graph.loop_runner import run_loop
from nodeflow.graph.model import NodeSpec, NodeType
from nodeflow.nodes.base import NodeExecutor


class LoopNodeExecutor(NodeExecutor):
    node_type = NodeType.LOOP

    async def execute(self, node: NodeSpec, node_input: dict[str, Any], context: ExecutionContext):
        return await run_loop(node, node_input, context)
