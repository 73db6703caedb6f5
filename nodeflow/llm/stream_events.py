"""
Events yielded by ``LLMProvider.stream()``.

Ollama streams NDJSON chunks; the provider turns each chunk into one or more
of these events. A stream always ends with ``TextEndEvent`` then ``FinishEvent``
unless it raises first.
"""

from dataclasses import dataclass, field
from typing import Any, Literal


@dataclass(frozen=True, slots=True)
class TextDeltaEvent:
    content: str = ""
    snapshot: str = ""  # text accumulated up to and including this delta
    type: Literal["text_delta"] = "text_delta"


@dataclass(frozen=True, slots=True)
class TextEndEvent:
    full_text: str = ""
    type: Literal["text_end"] = "text_end"


@dataclass(frozen=True, slots=True)
class ToolCallEvent:
    """A complete tool call. ``tool_input`` stays a string when the model sent unparsable JSON."""

    tool_use_id: str = ""
    tool_name: str = ""
    tool_input: dict[str, Any] | str = field(default_factory=dict)
    type: Literal["tool_call"] = "tool_call"


@dataclass(frozen=True, slots=True)
class ReasoningDeltaEvent:
    """``message.thinking`` text from reasoning models."""

    content: str = ""
    type: Literal["reasoning_delta"] = "reasoning_delta"


@dataclass(frozen=True, slots=True)
class FinishEvent:
    stop_reason: str = ""
    model: str = ""
    input_tokens: int = 0  # prompt_eval_count
    output_tokens: int = 0  # eval_count
    type: Literal["finish"] = "finish"


@dataclass(frozen=True, slots=True)
class StreamErrorEvent:
    """Error reported mid-stream by a provider that does not raise."""

    error: str = ""
    recoverable: bool = False
    type: Literal["error"] = "error"


StreamEvent = (
    TextDeltaEvent
    | TextEndEvent
    | ToolCallEvent
    | ReasoningDeltaEvent
    | FinishEvent
    | StreamErrorEvent
)
