"""Tool execution layer for agent nodes."""

from nodeflow.tools.catalog import (
    AVAILABLE_TOOLS,
    TOOL_PARAMETERS,
    ToolDefinition,
    ToolKind,
    resolve_tools,
)
from nodeflow.tools.executor import ToolExecutor
from nodeflow.tools.result import ToolResult
from nodeflow.tools.todos import TodoItem, TodosManager

__all__ = [
    "AVAILABLE_TOOLS",
    "TOOL_PARAMETERS",
    "TodoItem",
    "TodosManager",
    "ToolDefinition",
    "ToolExecutor",
    "ToolKind",
    "ToolResult",
    "resolve_tools",
]
