"""
Per-run execution state: node results, log records, sinks and run control.

One ``ExecutionContext`` is created by the orchestrator at run start and
passed explicitly to every executor. Loop bodies get a scoped copy that shares
the results and variables of the run but adds a local variable overlay.
"""

import asyncio
import logging
import time
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass, field, replace
from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from nodeflow.errors import ExecutionCancelled
from nodeflow.graph.resolver import interpolate

if TYPE_CHECKING:
    from nodeflow.agent.state import ReActExecutionState
    from nodeflow.graph.model import NodeSpec, WorkflowGraph
    from nodeflow.host import HostServices

logger = logging.getLogger(__name__)


class RunStatus(StrEnum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class NodeResultStatus(StrEnum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"
    SKIPPED = "skipped"


# pending -> skipped is used for nodes that never started (run halted first).
_ALLOWED_TRANSITIONS = {
    NodeResultStatus.PENDING: {NodeResultStatus.RUNNING, NodeResultStatus.SKIPPED},
    NodeResultStatus.RUNNING: {
        NodeResultStatus.SUCCESS,
        NodeResultStatus.ERROR,
        NodeResultStatus.SKIPPED,
    },
}


@dataclass
class NodeExecutionResult:
    """Outcome of one node execution (one per loop iteration for loop bodies)."""

    node_id: str
    status: NodeResultStatus = NodeResultStatus.PENDING
    input: dict[str, Any] = field(default_factory=dict)
    output: Any = None
    error: str | None = None
    duration_ms: float = 0.0
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    iteration: int | None = None
    _started_at: float = field(default=0.0, repr=False)

    def _transition(self, status: NodeResultStatus) -> None:
        if status not in _ALLOWED_TRANSITIONS.get(self.status, set()):
            raise ValueError(
                f"Invalid result transition for node '{self.node_id}': "
                f"{self.status} -> {status}"
            )
        self.status = status

    def start(self, node_input: dict[str, Any]) -> None:
        self._transition(NodeResultStatus.RUNNING)
        self.input = node_input
        self._started_at = time.perf_counter()
        self.timestamp = datetime.now(UTC)

    def _stop_clock(self) -> None:
        if self._started_at:
            self.duration_ms = (time.perf_counter() - self._started_at) * 1000

    def succeed(self, output: Any) -> None:
        self._transition(NodeResultStatus.SUCCESS)
        self.output = output
        self._stop_clock()

    def fail(self, error: str) -> None:
        self._transition(NodeResultStatus.ERROR)
        self.error = error
        self._stop_clock()

    def skip(self) -> None:
        self._transition(NodeResultStatus.SKIPPED)
        self._stop_clock()

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data.pop("_started_at")
        data["timestamp"] = self.timestamp.isoformat()
        return data


class LogLevel(StrEnum):
    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


_PY_LEVELS = {
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.INFO: logging.INFO,
    LogLevel.WARN: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
}


@dataclass
class ExecutionLog:
    """Log record delivered to the run's log sink."""

    run_id: str
    level: LogLevel
    message: str
    node_id: str | None = None
    node_name: str | None = None
    data: Any = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass
class OutputEvent:
    """Value handed to the host by an Output node."""

    node_id: str
    output_type: str  # display | copy | download
    text: str
    data: Any = None


LogSink = Callable[[ExecutionLog], None]
StreamSink = Callable[[str, str], None]
OutputSink = Callable[[OutputEvent], None]
NodeDispatcher = Callable[["NodeSpec", "ExecutionContext"], Awaitable[NodeExecutionResult]]


class RunControl:
    """
    Pause gate and cancellation flag shared by everything in one run.

    ``checkpoint()`` is awaited between node dispatches and agent iterations:
    it blocks while paused and raises ExecutionCancelled once cancelled.
    """

    def __init__(self) -> None:
        self._resume = asyncio.Event()
        self._resume.set()
        self._cancelled = asyncio.Event()

    @property
    def paused(self) -> bool:
        return not self._resume.is_set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def pause(self) -> None:
        if not self.cancelled:
            self._resume.clear()

    def resume(self) -> None:
        self._resume.set()

    def cancel(self) -> None:
        self._cancelled.set()
        # A paused run must wake up to observe the cancellation.
        self._resume.set()

    async def wait_cancelled(self) -> None:
        await self._cancelled.wait()

    async def checkpoint(self) -> None:
        if self.cancelled:
            raise ExecutionCancelled("Execution cancelled")
        if self.paused:
            await self._resume.wait()
        if self.cancelled:
            raise ExecutionCancelled("Execution cancelled")


@dataclass
class ExecutionContext:
    """Everything an executor may read or touch during a run."""

    run_id: str
    graph: "WorkflowGraph"
    host: "HostServices"
    workspace_path: str = "."
    control: RunControl = field(default_factory=RunControl)
    results: dict[str, NodeExecutionResult] = field(default_factory=dict)
    variables: dict[str, Any] = field(default_factory=dict)
    local_vars: dict[str, Any] = field(default_factory=dict)
    user_inputs: dict[str, str] = field(default_factory=dict)
    agent_states: dict[str, "ReActExecutionState"] = field(default_factory=dict)
    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    iteration: int | None = None
    on_log: LogSink | None = None
    on_stream: StreamSink | None = None
    on_output: OutputSink | None = None
    dispatch: NodeDispatcher | None = None

    def scoped(self, overlay: dict[str, Any], iteration: int | None = None) -> "ExecutionContext":
        """Child context for a loop body: shared results/variables, extra locals."""
        return replace(self, local_vars={**self.local_vars, **overlay}, iteration=iteration)

    def template_context(self, node_input: dict[str, Any] | None = None) -> dict[str, Any]:
        """Merged lookup context: globals, then loop locals, then the node's input."""
        return {**self.variables, **self.local_vars, **(node_input or {})}

    def interpolate(self, template: Any, node_input: dict[str, Any] | None = None) -> str:
        return interpolate(template, self.template_context(node_input))

    def log(
        self,
        level: LogLevel,
        message: str,
        node: "NodeSpec | None" = None,
        data: Any = None,
    ) -> None:
        record = ExecutionLog(
            run_id=self.run_id,
            level=level,
            message=message,
            node_id=node.id if node else None,
            node_name=node.name if node else None,
            data=data,
        )
        logger.log(
            _PY_LEVELS[level],
            message,
            extra={"node_id": record.node_id, "event": "execution_log"},
        )
        if self.on_log is None:
            return
        try:
            self.on_log(record)
        except Exception as e:
            logger.error(f"Log sink error: {e}")

    def emit_stream(self, node_id: str, chunk: str) -> None:
        if self.on_stream is None or not chunk:
            return
        try:
            self.on_stream(node_id, chunk)
        except Exception as e:
            logger.error(f"Stream sink error: {e}")

    def emit_output(self, event: OutputEvent) -> None:
        if self.on_output is None:
            return
        try:
            self.on_output(event)
        except Exception as e:
            logger.error(f"Output sink error: {e}")

    async def checkpoint(self) -> None:
        await self.control.checkpoint()
