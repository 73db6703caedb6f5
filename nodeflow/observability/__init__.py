"""
Observability: structured logging with run/node trace correlation.

- Trace context propagated through a ContextVar
- JSON output for machines, colourised output for terminals
"""

from nodeflow.observability.logging import (
    clear_trace_context,
    configure_logging,
    get_trace_context,
    set_trace_context,
)

__all__ = [
    "configure_logging",
    "get_trace_context",
    "set_trace_context",
    "clear_trace_context",
]
