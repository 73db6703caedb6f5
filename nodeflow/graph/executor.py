"""
Workflow executor: runs one graph to completion, failure or cancellation.

Nodes run one at a time in scheduler order. Before each dispatch the run
control is checked, so a cancellation requested while node N runs means node
N+1 never starts, and a pause holds the run between two nodes.
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any

from nodeflow.errors import ExecutionCancelled, NodeExecutionError
from nodeflow.graph.context import (
    ExecutionContext,
    LogLevel,
    LogSink,
    NodeExecutionResult,
    NodeResultStatus,
    OutputSink,
    RunControl,
    RunStatus,
    StreamSink,
)
from nodeflow.graph.dispatch import dispatch_node
from nodeflow.graph.model import NodeStatus, WorkflowGraph
from nodeflow.graph.scheduler import execution_order, find_unscheduled
from nodeflow.host import HostServices
from nodeflow.observability import clear_trace_context, set_trace_context


@dataclass
class ExecutionResult:
    """Result of one workflow run."""

    run_id: str
    status: RunStatus
    results: dict[str, NodeExecutionResult] = field(default_factory=dict)
    variables: dict[str, Any] = field(default_factory=dict)
    order: list[str] = field(default_factory=list)  # top-level schedule
    unscheduled: list[str] = field(default_factory=list)  # nodes on or behind a cycle
    error: str | None = None
    failed_node: str | None = None
    duration_ms: float = 0.0

    @property
    def success(self) -> bool:
        return self.status == RunStatus.COMPLETED

    def output_of(self, node_id: str) -> Any:
        result = self.results.get(node_id)
        return result.output if result else None


class WorkflowExecutor:
    """
    Executes workflow graphs.

    Example:
        executor = WorkflowExecutor(
            graph=document.to_graph(),
            host=HostServices.local(),
            workspace_path="/path/to/project",
            on_log=print,
        )
        result = await executor.execute(user_inputs={"topic": "owls"})

    ``pause()``, ``resume()`` and ``cancel()`` may be called from another task
    while ``execute()`` is running.
    """

    def __init__(
        self,
        graph: WorkflowGraph,
        host: HostServices,
        workspace_path: str = ".",
        on_log: LogSink | None = None,
        on_stream: StreamSink | None = None,
        on_output: OutputSink | None = None,
        workflow_id: str | None = None,
    ):
        self.graph = graph
        self.host = host
        self.workspace_path = workspace_path
        self.on_log = on_log
        self.on_stream = on_stream
        self.on_output = on_output
        self.workflow_id = workflow_id
        self.status = RunStatus.IDLE
        self.context: ExecutionContext | None = None
        self.logger = logging.getLogger(__name__)
        self._control = RunControl()

    @property
    def is_running(self) -> bool:
        return self.status in (RunStatus.RUNNING, RunStatus.PAUSED)

    def pause(self) -> None:
        """Hold the run before the next node dispatch."""
        if self.status != RunStatus.RUNNING:
            return
        self._control.pause()
        self.status = RunStatus.PAUSED
        self._log(LogLevel.INFO, "⏸ Execution paused")

    def resume(self) -> None:
        if self.status != RunStatus.PAUSED:
            return
        self._control.resume()
        self.status = RunStatus.RUNNING
        self._log(LogLevel.INFO, "▶ Execution resumed")

    def cancel(self) -> None:
        """Request cancellation; observed before the next dispatch or agent iteration."""
        if not self.is_running:
            return
        self._control.cancel()
        self._log(LogLevel.WARN, "Cancellation requested")

    def _log(self, level: LogLevel, message: str) -> None:
        if self.context is not None:
            self.context.log(level, message)
        else:
            self.logger.info(message)

    async def execute(
        self,
        user_inputs: dict[str, str] | None = None,
        variables: dict[str, Any] | None = None,
    ) -> ExecutionResult:
        """
        Run the graph once. Never raises: failures become a failed result.

        Args:
            user_inputs: Values for Input nodes, keyed by node id
            variables: Initial global variables

        Returns:
            ExecutionResult with per-node results and final variables
        """
        if self.is_running:
            raise RuntimeError("Workflow is already running")

        run_id = uuid.uuid4().hex[:12]
        self._control = RunControl()
        self.context = context = ExecutionContext(
            run_id=run_id,
            graph=self.graph,
            host=self.host,
            workspace_path=self.workspace_path,
            control=self._control,
            variables=dict(variables or {}),
            user_inputs=dict(user_inputs or {}),
            on_log=self.on_log,
            on_stream=self.on_stream,
            on_output=self.on_output,
            dispatch=dispatch_node,
        )
        set_trace_context(run_id=run_id, workflow_id=self.workflow_id)
        started = time.perf_counter()

        for node in self.graph.nodes:
            node.mark(NodeStatus.IDLE)

        order = execution_order(self.graph)
        unscheduled = find_unscheduled(self.graph)
        if unscheduled:
            context.log(
                LogLevel.WARN,
                f"{len(unscheduled)} nodes are part of a cycle and will not run: "
                f"{', '.join(unscheduled)}",
            )

        self.status = RunStatus.RUNNING
        context.log(LogLevel.INFO, f"🚀 Starting workflow execution ({len(order)} nodes)")
        error: str | None = None
        failed_node: str | None = None

        try:
            for node_id in order:
                await self._control.checkpoint()
                node = self.graph.get_node(node_id)
                result = await dispatch_node(node, context)
                if isinstance(result.output, dict):
                    context.variables.update(result.output)
            self.status = RunStatus.COMPLETED
            context.log(LogLevel.INFO, "✅ Workflow completed")
        except ExecutionCancelled:
            self.status = RunStatus.CANCELLED
            context.log(LogLevel.WARN, "⏹ Execution cancelled")
        except NodeExecutionError as e:
            self.status = RunStatus.FAILED
            error = str(e)
            failed_node = e.node_id
            context.log(LogLevel.ERROR, f"❌ Workflow failed: {error}")
        except Exception as e:
            self.status = RunStatus.FAILED
            error = str(e) or type(e).__name__
            self.logger.exception("Unexpected error during workflow execution")
            context.log(LogLevel.ERROR, f"❌ Workflow failed: {error}")
        finally:
            clear_trace_context()

        for node_id in order:
            if node_id not in context.results:
                skipped = NodeExecutionResult(node_id=node_id)
                skipped.skip()
                context.results[node_id] = skipped

        return ExecutionResult(
            run_id=run_id,
            status=self.status,
            results=dict(context.results),
            variables=dict(context.variables),
            order=order,
            unscheduled=unscheduled,
            error=error,
            failed_node=failed_node,
            duration_ms=(time.perf_counter() - started) * 1000,
        )


def count_by_status(result: ExecutionResult) -> dict[str, int]:
    """Number of node results per status, for summaries."""
    counts = {str(status): 0 for status in NodeResultStatus}
    for node_result in result.results.values():
        counts[str(node_result.status)] += 1
    return counts
