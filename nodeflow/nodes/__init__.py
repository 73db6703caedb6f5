"""Node executors, one per node type."""

from nodeflow.nodes.base import NodeExecutor
from nodeflow.nodes.registry import EXECUTORS, get_executor

__all__ = ["EXECUTORS", "NodeExecutor", "get_executor"]
