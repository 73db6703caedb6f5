"""Graph model, scheduling, templating and the per-run execution context."""

from nodeflow.graph.context import (
    ExecutionContext,
    ExecutionLog,
    LogLevel,
    NodeExecutionResult,
    NodeResultStatus,
    OutputEvent,
    RunControl,
    RunStatus,
)
from nodeflow.graph.model import (
    EdgeSpec,
    NodeSpec,
    NodeStatus,
    NodeType,
    PortSpec,
    WorkflowDocument,
    WorkflowGraph,
    WorkflowMetadata,
)
from nodeflow.graph.resolver import build_input, get_path, interpolate
from nodeflow.graph.safe_eval import SafeEvalError, evaluate, evaluate_condition
from nodeflow.graph.scheduler import execution_order, find_unscheduled, has_cycle, topological_order

__all__ = [
    "EdgeSpec",
    "ExecutionContext",
    "ExecutionLog",
    "LogLevel",
    "NodeExecutionResult",
    "NodeResultStatus",
    "NodeSpec",
    "NodeStatus",
    "NodeType",
    "OutputEvent",
    "PortSpec",
    "RunControl",
    "RunStatus",
    "SafeEvalError",
    "WorkflowDocument",
    "WorkflowGraph",
    "WorkflowMetadata",
    "build_input",
    "evaluate",
    "evaluate_condition",
    "execution_order",
    "find_unscheduled",
    "get_path",
    "has_cycle",
    "interpolate",
    "topological_order",
]
