"""LLM provider abstraction and the Ollama backend."""

from nodeflow.llm.ollama import OllamaProvider
from nodeflow.llm.provider import ChatOptions, LLMProvider, LLMResponse, Tool, ToolUse
from nodeflow.llm.stream_events import (
    FinishEvent,
    ReasoningDeltaEvent,
    StreamErrorEvent,
    StreamEvent,
    TextDeltaEvent,
    TextEndEvent,
    ToolCallEvent,
)

__all__ = [
    "ChatOptions",
    "LLMProvider",
    "LLMResponse",
    "OllamaProvider",
    "Tool",
    "ToolUse",
    "StreamEvent",
    "TextDeltaEvent",
    "TextEndEvent",
    "ToolCallEvent",
    "ReasoningDeltaEvent",
    "FinishEvent",
    "StreamErrorEvent",
]
