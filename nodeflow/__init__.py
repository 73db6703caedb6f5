"""
nodeflow - run graphs of typed processing nodes against a local LLM.

A workflow is a directed graph of nodes (inputs, LLM chat, conditionals,
loops, file I/O, shell commands, a tool-using agent). ``WorkflowExecutor``
schedules it topologically and runs each node through the node registry.
"""

from nodeflow.errors import (
    ExecutionCancelled,
    GraphValidationError,
    NodeExecutionError,
    NodeflowError,
)
from nodeflow.graph.executor import ExecutionResult, WorkflowExecutor
from nodeflow.graph.model import EdgeSpec, NodeSpec, NodeType, WorkflowDocument, WorkflowGraph
from nodeflow.host import HostServices

__version__ = "0.1.0"

__all__ = [
    "EdgeSpec",
    "ExecutionCancelled",
    "ExecutionResult",
    "GraphValidationError",
    "HostServices",
    "NodeExecutionError",
    "NodeSpec",
    "NodeType",
    "NodeflowError",
    "WorkflowDocument",
    "WorkflowExecutor",
    "WorkflowGraph",
]
