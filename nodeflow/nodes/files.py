"""ReadFile and WriteFile nodes."""

import json
from typing import Any

from nodeflow.errors import NodeExecutionError
from nodeflow.graph.context import ExecutionContext, LogLevel
from nodeflow.graph.model import NodeSpec, NodeType
from nodeflow.graph.resolver import stringify
from nodeflow.nodes.base import NodeExecutor

WRITE_MODES = ("overwrite", "append")


def _content_from_input(node_input: dict[str, Any]) -> str:
    """Text to write from the upstream input map."""
    for key in ("content", "data", "response", "input"):
        value = node_input.get(key)
        if value is None:
            continue
        if isinstance(value, dict):
            for inner in ("content", "response", "data", "stdout", "text", "value"):
                if isinstance(value.get(inner), str):
                    return value[inner]
            return json.dumps(value, indent=2, ensure_ascii=False)
        return stringify(value)
    return ""


class ReadFileNodeExecutor(NodeExecutor):
    node_type = NodeType.READ_FILE

    async def execute(self, node: NodeSpec, node_input: dict[str, Any], context: ExecutionContext):
        bound = node_input.get("path")
        path = str(bound) if isinstance(bound, str) and bound else context.interpolate(
            node.get_config("filePath", ""), node_input
        )
        path = path.strip()
        if not path:
            raise NodeExecutionError("No file path specified", node_id=node.id)

        result = await context.host.filesystem.read(context.workspace_path, path)
        if result.success:
            content = result.content or ""
            context.log(LogLevel.INFO, f"Read {len(content)} characters from {path}", node)
            return {"content": content, "exists": True, "path": path}

        error = result.error or f"File not found: {path}"
        if node.get_config("errorIfNotFound", True):
            raise NodeExecutionError(error, node_id=node.id)

        context.log(LogLevel.WARN, f"{error}, continuing with empty content", node)
        return {"content": "", "exists": False, "path": path}


class WriteFileNodeExecutor(NodeExecutor):
    """
    Writes text to a workspace file.

    ``contentSource`` is ``input`` (upstream data) or ``direct`` (the
    interpolated ``directContent`` template). In ``append`` mode the existing
    file content is read first and the new text is added after it.
    """

    node_type = NodeType.WRITE_FILE

    async def execute(self, node: NodeSpec, node_input: dict[str, Any], context: ExecutionContext):
        path = context.interpolate(node.get_config("filePath", ""), node_input).strip()
        if not path:
            raise NodeExecutionError("No file path specified", node_id=node.id)

        write_mode = node.get_config("writeMode", "overwrite")
        if write_mode not in WRITE_MODES:
            raise NodeExecutionError(f"Unknown writeMode '{write_mode}'", node_id=node.id)

        if node.get_config("contentSource", "input") == "direct":
            content = context.interpolate(node.get_config("directContent", ""), node_input)
            if not content:
                context.log(LogLevel.WARN, "Direct content is empty", node)
        else:
            content = _content_from_input(node_input)
            if not content:
                context.log(LogLevel.WARN, "No input content to write", node)

        if write_mode == "append":
            existing = await context.host.filesystem.read(context.workspace_path, path)
            if existing.success and existing.content:
                content = existing.content + content

        result = await context.host.filesystem.write(context.workspace_path, path, content)
        if not result.success:
            raise NodeExecutionError(result.error or f"Could not write {path}", node_id=node.id)

        bytes_written = len(content.encode("utf-8"))
        context.log(LogLevel.INFO, f"Wrote {bytes_written} bytes to {path} ({write_mode})", node)
        return {"success": True, "path": path, "bytesWritten": bytes_written}
