"""Dispatch of agent tool calls to the host collaborators."""

import json
import logging
from typing import TYPE_CHECKING, Any

from nodeflow.errors import ExecutionCancelled
from nodeflow.host.base import CommandRequest, HttpRequest
from nodeflow.tools.catalog import ToolDefinition, ToolKind
from nodeflow.tools.parsing import (
    parse_arguments,
    salvage_command,
    salvage_http_request,
    salvage_read_file,
    salvage_todos,
    salvage_write_file,
)
from nodeflow.tools.result import ToolResult
from nodeflow.tools.todos import TodosManager

if TYPE_CHECKING:
    from nodeflow.graph.context import RunControl
    from nodeflow.host import HostServices

logger = logging.getLogger(__name__)

DEFAULT_WRITE_FILENAME = "output.txt"


class ToolExecutor:
    """
    Runs tool calls for one agent run.

    ``execute`` turns every failure into an unsuccessful ToolResult so the
    agent can show it to the model. Only ExecutionCancelled propagates.
    """

    def __init__(
        self,
        host: "HostServices",
        workspace_path: str,
        todos: TodosManager | None = None,
        control: "RunControl | None" = None,
    ):
        self.host = host
        self.workspace_path = workspace_path
        self.todos = todos or TodosManager()
        self.control = control
        self._handlers = {
            ToolKind.TODOS: self._run_todos,
            ToolKind.READ_FILE: self._run_read_file,
            ToolKind.WRITE_FILE: self._run_write_file,
            ToolKind.EXECUTE_COMMAND: self._run_command,
            ToolKind.HTTP_REQUEST: self._run_http_request,
        }

    async def execute(self, tool: ToolDefinition, raw_input: Any) -> ToolResult:
        handler = self._handlers.get(tool.kind)
        if handler is None:
            return ToolResult(success=False, error=f"Unsupported tool kind: {tool.kind}")
        try:
            return await handler(tool, raw_input)
        except ExecutionCancelled:
            raise
        except Exception as e:
            logger.warning(f"Tool '{tool.name}' raised: {e}", exc_info=True)
            return ToolResult(success=False, error=f"{tool.name} failed: {e}")

    async def _run_todos(self, tool: ToolDefinition, raw_input: Any) -> ToolResult:
        return self.todos.handle(parse_arguments(raw_input, salvage_todos))

    async def _run_read_file(self, tool: ToolDefinition, raw_input: Any) -> ToolResult:
        args = parse_arguments(raw_input, salvage_read_file)
        path = args.get("filePath") or args.get("path") or args.get("filename")
        if not path:
            return ToolResult(success=False, error="filePath is required")

        result = await self.host.filesystem.read(self.workspace_path, str(path))
        if not result.success:
            return ToolResult(success=False, error=result.error or f"Could not read {path}")
        return ToolResult(success=True, output=result.content or "")

    async def _run_write_file(self, tool: ToolDefinition, raw_input: Any) -> ToolResult:
        args = parse_arguments(raw_input, salvage_write_file)
        filename = (
            args.get("filename")
            or args.get("filePath")
            or args.get("path")
            or tool.config.get("filePath")
            or DEFAULT_WRITE_FILENAME
        )
        content = args.get("content", "")
        if not isinstance(content, str):
            content = json.dumps(content, indent=2, ensure_ascii=False)

        result = await self.host.filesystem.write(self.workspace_path, str(filename), content)
        if not result.success:
            return ToolResult(success=False, error=result.error or f"Could not write {filename}")
        return ToolResult(
            success=True,
            output=f"File saved: {filename} ({len(content.encode('utf-8'))} bytes written)",
        )

    async def _run_command(self, tool: ToolDefinition, raw_input: Any) -> ToolResult:
        args = parse_arguments(raw_input, salvage_command)
        command = str(args.get("command") or "").strip()
        if not command:
            return ToolResult(success=False, error="command is required")

        timeout_ms = int(tool.config.get("timeout") or self.host.config.command_timeout_ms)
        request = CommandRequest(command=command, cwd=tool.config.get("cwd"), timeout_ms=timeout_ms)
        result = await self.host.process.execute(self.workspace_path, request, self.control)
        if result.cancelled:
            raise ExecutionCancelled("Execution cancelled")

        if result.timed_out:
            return ToolResult(
                success=False,
                output=result.stdout,
                error=f"Command timed out after {timeout_ms}ms",
            )
        if not result.success:
            detail = (result.stderr or result.stdout).strip()
            return ToolResult(
                success=False,
                output=result.stdout,
                error=f"Command failed (exit code {result.exit_code}): {detail}",
            )

        output = result.stdout.strip() or "(command completed with no output)"
        if result.stderr.strip():
            output = f"{output}\nstderr:\n{result.stderr.strip()}"
        return ToolResult(success=True, output=output)

    async def _run_http_request(self, tool: ToolDefinition, raw_input: Any) -> ToolResult:
        args = parse_arguments(raw_input, salvage_http_request)
        url = str(args.get("url") or tool.config.get("url") or "").strip()
        if not url:
            return ToolResult(success=False, error="url is required")

        headers = {**(tool.config.get("headers") or {}), **(args.get("headers") or {})}
        body = args.get("body", tool.config.get("body"))
        if body is not None and not isinstance(body, str):
            body = json.dumps(body)
            headers.setdefault("Content-Type", "application/json")

        request = HttpRequest(
            url=url,
            method=str(args.get("method") or tool.config.get("method") or "GET"),
            headers={str(k): str(v) for k, v in headers.items()},
            body=body,
            timeout_ms=int(tool.config.get("timeout") or self.host.config.http_timeout_ms),
        )
        response = await self.host.http.fetch(request)

        if response.error:
            return ToolResult(success=False, error=response.error)
        if not response.success:
            return ToolResult(
                success=False,
                output=response.body,
                error=f"HTTP {response.status}: {response.status_text}",
            )
        return ToolResult(success=True, output=response.body)
