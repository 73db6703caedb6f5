"""
Structured logging with run/node trace context.

Engine code logs through plain ``logger.info()`` calls. A handler filter copies
the current run, workflow and node ids from a ContextVar onto every record, so
each line can be traced back to the workflow run that produced it.

    WorkflowExecutor.execute() → sets run_id, workflow_id
        ↓ (ContextVar propagation)
    dispatch_node()            → sets node_id for the node being run
        ↓
    executor / tool code       → logger.info("...") carries both
"""

import json
import logging
import os
import re
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

trace_context: ContextVar[dict[str, Any] | None] = ContextVar("trace_context", default=None)

TRACE_FIELDS = ("run_id", "workflow_id", "node_id")

# Extra attributes copied into JSON entries when a log call passes them.
EXTRA_FIELDS = ("event", "node_type", "tool_name", "iteration", "latency_ms", "model")

_ANSI = re.compile(r"\x1b\[[0-9;]*m")


class TraceContextFilter(logging.Filter):
    """Stamp the trace ids onto each record. Ids passed via ``extra`` win."""

    def filter(self, record: logging.LogRecord) -> bool:
        context = trace_context.get() or {}
        for name in TRACE_FIELDS:
            if getattr(record, name, None) is None:
                setattr(record, name, context.get(name))
        return True


class StructuredFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": _ANSI.sub("", record.getMessage()),
        }
        for name in (*TRACE_FIELDS, *EXTRA_FIELDS):
            value = getattr(record, name, None)
            if value is not None:
                entry[name] = value
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """Single coloured line: level, short trace prefix, message."""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, color: bool = True):
        super().__init__()
        self.color = color

    def _prefix(self, record: logging.LogRecord) -> str:
        parts = []
        run_id = getattr(record, "run_id", None)
        if run_id:
            parts.append(f"run:{run_id[-8:]}")
        for label, name in (("wf", "workflow_id"), ("node", "node_id")):
            value = getattr(record, name, None)
            if value:
                parts.append(f"{label}:{value}")
        return f"[{' | '.join(parts)}] " if parts else ""

    def format(self, record: logging.LogRecord) -> str:
        level = f"[{record.levelname:<8}]"
        if self.color:
            level = f"{self.LEVEL_COLORS.get(record.levelno, '')}{level}{self.RESET}"
        line = f"{level} {self._prefix(record)}{record.getMessage()}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _resolve_format(format: str) -> str:
    if format != "auto":
        return format
    if os.getenv("LOG_FORMAT", "").lower() == "json":
        return "json"
    return "json" if os.getenv("ENV", "").lower() == "production" else "human"


def configure_logging(level: str = "INFO", format: str = "auto") -> None:
    """
    Install a single stderr handler on the root logger. The CLI calls this once.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR)
        format: "json", "human", or "auto" (JSON when LOG_FORMAT=json or
            ENV=production)
    """
    handler = logging.StreamHandler()
    handler.addFilter(TraceContextFilter())
    if _resolve_format(format) == "json":
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(HumanReadableFormatter(color=not os.getenv("NO_COLOR")))

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level.upper())

    # httpx and httpcore log every request at INFO.
    for name in ("httpx", "httpcore"):
        logging.getLogger(name).setLevel(max(root.level, logging.WARNING))


def set_trace_context(**kwargs: Any) -> None:
    """
    Merge ids (run_id, workflow_id, node_id) into the current trace context.

    The ContextVar follows the awaiting task, so concurrent runs keep their
    own ids.
    """
    trace_context.set({**(trace_context.get() or {}), **kwargs})


def get_trace_context() -> dict[str, Any]:
    return dict(trace_context.get() or {})


def clear_trace_context() -> None:
    trace_context.set(None)
