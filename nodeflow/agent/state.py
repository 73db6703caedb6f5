"""Observable state of a ReAct agent run."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any


class ReActStepStatus(StrEnum):
    THINKING = "thinking"
    ACTING = "acting"
    OBSERVING = "observing"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass
class ReActStep:
    """
    One reasoning turn.

    A turn that ends in a tool call stays ``observing`` once its observation is
    in (``finished_at`` is set); only the turn that produces the final answer
    becomes ``completed``.
    """

    id: str
    iteration: int
    status: ReActStepStatus = ReActStepStatus.THINKING
    thought: str = ""
    action: str | None = None
    action_input: Any = None
    observation: str | None = None
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    finished_at: datetime | None = None

    def finish(self, status: ReActStepStatus | None = None) -> None:
        if status is not None:
            self.status = status
        self.finished_at = datetime.now(UTC)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "iteration": self.iteration,
            "status": str(self.status),
            "thought": self.thought,
            "action": self.action,
            "actionInput": self.action_input,
            "observation": self.observation,
            "startedAt": self.started_at.isoformat(),
            "finishedAt": self.finished_at.isoformat() if self.finished_at else None,
        }


@dataclass
class ReActExecutionState:
    """Live view of one agent node's run, published on the execution context."""

    node_id: str
    max_iterations: int
    current_iteration: int = 0
    steps: list[ReActStep] = field(default_factory=list)
    todos: list[dict[str, Any]] = field(default_factory=list)
    final_answer: str | None = None
    exhausted: bool = False
    is_running: bool = True

    def new_step(self, iteration: int) -> ReActStep:
        step = ReActStep(id=f"{self.node_id}-step-{len(self.steps) + 1}", iteration=iteration)
        self.steps.append(step)
        return step

    @property
    def completed_steps(self) -> list[ReActStep]:
        return [s for s in self.steps if s.status == ReActStepStatus.COMPLETED]
