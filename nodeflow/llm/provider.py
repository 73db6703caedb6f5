"""LLM provider abstraction for pluggable chat backends."""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

from nodeflow.config import DEFAULT_MAX_TOKENS
from nodeflow.llm.stream_events import (
    FinishEvent,
    StreamEvent,
    TextDeltaEvent,
    TextEndEvent,
    ToolCallEvent,
)


@dataclass
class ChatOptions:
    """Sampling options sent with every chat call."""

    temperature: float = 0.7
    top_p: float = 0.9
    max_tokens: int = DEFAULT_MAX_TOKENS


@dataclass
class Tool:
    """Function schema offered to the model."""

    name: str
    description: str
    parameters: dict[str, Any] = field(default_factory=dict)


@dataclass
class ToolUse:
    """
    A tool call requested by the LLM.

    ``input`` is normally a mapping; some models send the arguments as a JSON
    string, which the tool layer parses.
    """

    id: str
    name: str
    input: dict[str, Any] | str


@dataclass
class LLMResponse:
    """Result of one non-streaming chat call."""

    content: str
    model: str
    tool_calls: list[ToolUse] = field(default_factory=list)
    input_tokens: int = 0
    output_tokens: int = 0
    stop_reason: str = ""
    thinking: str = ""
    raw_response: Any = None


class LLMProvider(ABC):
    """
    Abstract chat backend.

    Messages use the ``{"role", "content"}`` shape; assistant messages may
    carry ``tool_calls`` and tool results use ``{"role": "tool", "tool_name", "content"}``.
    """

    @abstractmethod
    async def chat(
        self,
        messages: list[dict[str, Any]],
        model: str | None = None,
        options: ChatOptions | None = None,
        tools: list[Tool] | None = None,
    ) -> LLMResponse:
        """
        Run one chat completion.

        Raises:
            LLMError: The endpoint failed or was unreachable
            ToolCallParseError: The model produced a malformed tool call
        """

    async def stream(
        self,
        messages: list[dict[str, Any]],
        model: str | None = None,
        options: ChatOptions | None = None,
        tools: list[Tool] | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """
        Stream a completion as StreamEvents.

        This fallback makes one chat() call and replays the whole response as
        a single delta. Backends with a native stream override it.
        """
        response = await self.chat(messages, model=model, options=options, tools=tools)
        if response.content:
            yield TextDeltaEvent(content=response.content, snapshot=response.content)
        for call in response.tool_calls:
            yield ToolCallEvent(tool_use_id=call.id, tool_name=call.name, tool_input=call.input)
        yield TextEndEvent(full_text=response.content)
        yield FinishEvent(
            stop_reason=response.stop_reason,
            input_tokens=response.input_tokens,
            output_tokens=response.output_tokens,
            model=response.model,
        )
