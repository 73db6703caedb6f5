"""Executor contract shared by every node type."""

from abc import ABC, abstractmethod
from typing import Any, ClassVar

from nodeflow.graph.context import ExecutionContext
from nodeflow.graph.model import NodeSpec, NodeType


class NodeExecutor(ABC):
    """
    Runs one node type.

    ``execute`` receives the node, its resolved input map and the run's
    context, and returns the node's output. Allowed side effects: reading and
    writing ``context.variables``, emitting log records and stream chunks,
    and calling the host collaborators on ``context.host``. Node-fatal
    problems are raised as NodeExecutionError.
    """

    node_type: ClassVar[NodeType]

    @abstractmethod
    async def execute(
        self,
        node: NodeSpec,
        node_input: dict[str, Any],
        context: ExecutionContext,
    ) -> Any:
        pass
