"""ExecuteCommand node."""

from typing import Any

from nodeflow.errors import ExecutionCancelled, NodeExecutionError
from nodeflow.graph.context import ExecutionContext, LogLevel
from nodeflow.graph.model import NodeSpec, NodeType
from nodeflow.host.base import CommandRequest
from nodeflow.nodes.base import NodeExecutor


def command_from_input(value: Any) -> str:
    """Command text carried by a bound ``command`` input, or "" when there is none."""
    if isinstance(value, str):
        return "" if value.strip().lower() in ("true", "false") else value
    if isinstance(value, dict):
        for key in ("value", "content", "stdout", "text"):
            if isinstance(value.get(key), str):
                return value[key]
    return ""


class ExecuteCommandNodeExecutor(NodeExecutor):
    node_type = NodeType.EXECUTE_COMMAND

    async def execute(self, node: NodeSpec, node_input: dict[str, Any], context: ExecutionContext):
        command = context.interpolate(node.get_config("command", ""), node_input).strip()
        if not command:
            command = command_from_input(node_input.get("command")).strip()
        if not command:
            raise NodeExecutionError("No command specified", node_id=node.id)

        cwd = context.interpolate(node.get_config("cwd", ""), node_input).strip() or None
        timeout_ms = int(node.get_config("timeout") or context.host.config.command_timeout_ms)

        context.log(LogLevel.INFO, f"$ {command}", node, data={"cwd": cwd, "timeout": timeout_ms})
        result = await context.host.process.execute(
            context.workspace_path,
            CommandRequest(command=command, cwd=cwd, timeout_ms=timeout_ms),
            context.control,
        )
        if result.cancelled:
            raise ExecutionCancelled("Execution cancelled")

        output = {
            "stdout": result.stdout,
            "stderr": result.stderr,
            "exitCode": result.exit_code,
            "success": result.success,
            "timedOut": result.timed_out,
        }

        if result.timed_out:
            message = f"Command timed out after {timeout_ms}ms"
        elif not result.success:
            message = f"Command failed with exit code {result.exit_code}"
            if result.stderr.strip():
                message = f"{message}: {result.stderr.strip()}"
        else:
            context.log(LogLevel.INFO, "Command completed", node)
            return output

        if node.get_config("continueOnError", False):
            context.log(LogLevel.WARN, f"{message} (continuing)", node)
            return output
        raise NodeExecutionError(message, node_id=node.id)
