"""ReAct agent: reasoning loop, loop detection and observable step state."""

from nodeflow.agent.loop_detector import LoopDetection, ToolCallRecord, detect_loop, extract_history
from nodeflow.agent.state import ReActExecutionState, ReActStep, ReActStepStatus
from nodeflow.agent.react import AgentConfig, AgentResult, ReActAgent

__all__ = [
    "AgentConfig",
    "AgentResult",
    "LoopDetection",
    "ReActAgent",
    "ReActExecutionState",
    "ReActStep",
    "ReActStepStatus",
    "ToolCallRecord",
    "detect_loop",
    "extract_history",
]
