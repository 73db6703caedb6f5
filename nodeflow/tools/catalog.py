"""Tool definitions available to agent nodes."""

import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from nodeflow.llm.provider import Tool

logger = logging.getLogger(__name__)


class ToolKind(StrEnum):
    READ_FILE = "readFile"
    WRITE_FILE = "writeFile"
    EXECUTE_COMMAND = "executeCommand"
    HTTP_REQUEST = "httpRequest"
    TODOS = "todos"


TOOL_PARAMETERS: dict[ToolKind, dict[str, Any]] = {
    ToolKind.TODOS: {
        "type": "object",
        "properties": {
            "action": {
                "type": "string",
                "enum": ["init", "add", "complete", "list", "remove", "clear"],
                "description": "Operation to perform on the task list",
            },
            "content": {
                "type": "string",
                "description": "Task text (add), or task id / text to match (complete, remove)",
            },
            "taskId": {
                "type": "string",
                "description": "Task id for complete/remove",
            },
            "tasks": {
                "type": "array",
                "items": {"type": "string"},
                "description": "All tasks at once (init)",
            },
        },
        "required": ["action"],
    },
    ToolKind.READ_FILE: {
        "type": "object",
        "properties": {
            "filePath": {"type": "string", "description": "Path relative to the workspace"},
        },
        "required": ["filePath"],
    },
    ToolKind.WRITE_FILE: {
        "type": "object",
        "properties": {
            "filename": {"type": "string", "description": "Path relative to the workspace"},
            "content": {"type": "string", "description": "Full file content"},
        },
        "required": ["filename", "content"],
    },
    ToolKind.EXECUTE_COMMAND: {
        "type": "object",
        "properties": {
            "command": {"type": "string", "description": "Shell command to run"},
        },
        "required": ["command"],
    },
    ToolKind.HTTP_REQUEST: {
        "type": "object",
        "properties": {
            "url": {"type": "string", "description": "Absolute URL"},
            "method": {"type": "string", "description": "HTTP method, GET by default"},
            "headers": {"type": "object", "description": "Extra request headers"},
            "body": {"type": "string", "description": "Request body"},
        },
        "required": ["url"],
    },
}

TOOL_DESCRIPTIONS: dict[ToolKind, str] = {
    ToolKind.TODOS: (
        "Track a short task list for this run. Call once with action 'init' and 2-3 tasks, "
        "then 'complete' each task when it is done. 'list' shows progress."
    ),
    ToolKind.READ_FILE: "Read a text file from the workspace.",
    ToolKind.WRITE_FILE: (
        "Write a file in the workspace, creating parent directories. "
        "Overwrites an existing file."
    ),
    ToolKind.EXECUTE_COMMAND: "Run a shell command in the workspace and return its output.",
    ToolKind.HTTP_REQUEST: "Make an HTTP request and return the response body.",
}


@dataclass
class ToolDefinition:
    """A tool as configured on an agent node."""

    id: str
    name: str
    description: str
    kind: ToolKind
    config: dict[str, Any] = field(default_factory=dict)
    enabled: bool = True

    def to_llm_tool(self) -> Tool:
        return Tool(
            name=self.name,
            description=self.description,
            parameters=TOOL_PARAMETERS[self.kind],
        )


def default_tool(kind: ToolKind, config: dict[str, Any] | None = None) -> ToolDefinition:
    return ToolDefinition(
        id=str(kind),
        name=str(kind),
        description=TOOL_DESCRIPTIONS[kind],
        kind=kind,
        config=dict(config or {}),
    )


AVAILABLE_TOOLS: tuple[ToolDefinition, ...] = tuple(default_tool(kind) for kind in ToolKind)

KNOWN_KINDS = frozenset(str(kind) for kind in ToolKind)


def resolve_tools(
    configured: list[Any] | None,
    tool_configs: dict[str, dict[str, Any]] | None = None,
) -> list[ToolDefinition]:
    """
    Build the tool list for one agent node.

    ``configured`` holds tool kinds as strings (``["readFile", "executeCommand"]``)
    or full definitions as mappings. The todos tool is always present and
    always first.

    Entries naming an unknown tool kind are skipped with a warning.
    """
    tool_configs = tool_configs or {}
    tools: list[ToolDefinition] = []

    for entry in configured or []:
        raw_kind = entry if isinstance(entry, str) else (
            entry.get("kind") or entry.get("type") or entry.get("id")
        )
        if raw_kind not in KNOWN_KINDS:
            logger.warning(f"Skipping unknown tool '{raw_kind}'")
            continue
        kind = ToolKind(raw_kind)

        if isinstance(entry, str):
            tools.append(default_tool(kind, tool_configs.get(entry)))
            continue

        if entry.get("enabled", True) is False:
            continue
        tools.append(
            ToolDefinition(
                id=entry.get("id") or str(kind),
                name=entry.get("name") or str(kind),
                description=entry.get("description") or TOOL_DESCRIPTIONS[kind],
                kind=kind,
                config={**tool_configs.get(str(kind), {}), **(entry.get("config") or {})},
            )
        )

    tools = [t for t in tools if t.kind != ToolKind.TODOS]
    return [default_tool(ToolKind.TODOS, tool_configs.get(ToolKind.TODOS)), *tools]
