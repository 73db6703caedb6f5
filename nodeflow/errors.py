"""Exception hierarchy shared by the engine, the hosts and the LLM layer."""


class NodeflowError(Exception):
    """Base class for all nodeflow errors."""


class GraphValidationError(NodeflowError):
    """A workflow document or graph violates a structural invariant."""

    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__("; ".join(errors) if errors else "invalid graph")


class NodeExecutionError(NodeflowError):
    """A node failed; the run stops at this node."""

    def __init__(self, message: str, node_id: str | None = None):
        self.node_id = node_id
        super().__init__(message)


class UnknownNodeTypeError(NodeExecutionError):
    """No executor is registered for the node's type tag."""


class ExecutionCancelled(NodeflowError):
    """Raised at a checkpoint once cancellation has been requested."""


class LLMError(NodeflowError):
    """The LLM endpoint could not be reached or answered with an error."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class ToolCallParseError(LLMError):
    """The model emitted a tool call the server could not parse as JSON."""


class SafeEvalError(NodeflowError):
    """An expression could not be parsed or evaluated. Never escapes ``evaluate_condition``."""
