"""Ollama chat provider over the HTTP API (``POST {host}/api/chat``).

Non-streaming calls return the whole message. Streaming calls read the NDJSON
line protocol: one JSON object per line, each carrying a ``message`` fragment,
the last one flagged ``"done": true`` with token counts.
"""

import json
import logging
from collections.abc import AsyncIterator
from typing import Any

import httpx

from nodeflow.config import DEFAULT_MODEL, DEFAULT_OLLAMA_HOST
from nodeflow.errors import LLMError, ToolCallParseError
from nodeflow.llm.provider import ChatOptions, LLMProvider, LLMResponse, Tool, ToolUse
from nodeflow.llm.stream_events import (
    FinishEvent,
    ReasoningDeltaEvent,
    StreamEvent,
    TextDeltaEvent,
    TextEndEvent,
    ToolCallEvent,
)

logger = logging.getLogger(__name__)

# Server-side messages Ollama returns when the model's tool-call JSON is malformed.
TOOL_CALL_PARSE_MARKERS = ("error parsing tool call", "invalid character")


def _format_tool(tool: Tool) -> dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": tool.name,
            "description": tool.description,
            "parameters": tool.parameters,
        },
    }


def _parse_tool_calls(message: dict[str, Any], offset: int = 0) -> list[ToolUse]:
    calls = []
    for i, raw in enumerate(message.get("tool_calls") or []):
        function = raw.get("function") or {}
        name = function.get("name")
        if not name:
            continue
        calls.append(
            ToolUse(
                id=raw.get("id") or f"call_{offset + i}",
                name=name,
                input=function.get("arguments") or {},
            )
        )
    return calls


def _error_for(status_code: int | None, body: str) -> LLMError:
    """Turn an Ollama error body into the matching exception."""
    message = body
    try:
        payload = json.loads(body)
        if isinstance(payload, dict) and payload.get("error"):
            message = str(payload["error"])
    except (json.JSONDecodeError, TypeError):
        pass

    lowered = message.lower()
    if any(marker in lowered for marker in TOOL_CALL_PARSE_MARKERS):
        return ToolCallParseError(message, status_code=status_code)
    if status_code is not None:
        return LLMError(f"Ollama returned HTTP {status_code}: {message}", status_code=status_code)
    return LLMError(message)


class OllamaProvider(LLMProvider):
    """
    Chat provider for a local Ollama server.

    Args:
        host: Base URL of the server
        default_model: Model used when a call does not name one
        timeout: Read timeout in seconds (generation can be slow)
        transport: Optional httpx transport (tests pass a MockTransport)
    """

    def __init__(
        self,
        host: str = DEFAULT_OLLAMA_HOST,
        default_model: str = DEFAULT_MODEL,
        timeout: float = 600.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.host = host.rstrip("/")
        self.default_model = default_model
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.host,
            timeout=httpx.Timeout(self.timeout, connect=10.0),
            transport=self._transport,
        )

    def _payload(
        self,
        messages: list[dict[str, Any]],
        model: str | None,
        options: ChatOptions | None,
        tools: list[Tool] | None,
        stream: bool,
    ) -> dict[str, Any]:
        options = options or ChatOptions()
        payload: dict[str, Any] = {
            "model": model or self.default_model,
            "messages": messages,
            "stream": stream,
            "options": {
                "temperature": options.temperature,
                "top_p": options.top_p,
                "num_predict": options.max_tokens,
            },
        }
        if tools:
            payload["tools"] = [_format_tool(t) for t in tools]
        return payload

    async def chat(
        self,
        messages: list[dict[str, Any]],
        model: str | None = None,
        options: ChatOptions | None = None,
        tools: list[Tool] | None = None,
    ) -> LLMResponse:
        payload = self._payload(messages, model, options, tools, stream=False)
        async with self._client() as client:
            try:
                response = await client.post("/api/chat", json=payload)
            except httpx.HTTPError as e:
                raise LLMError(f"Failed to reach Ollama at {self.host}: {e}") from e

        if response.status_code >= 400:
            raise _error_for(response.status_code, response.text)

        try:
            data = response.json()
        except json.JSONDecodeError as e:
            raise LLMError(f"Invalid JSON from Ollama: {e}") from e
        if data.get("error"):
            raise _error_for(None, json.dumps(data))

        message = data.get("message") or {}
        return LLMResponse(
            content=message.get("content") or "",
            model=data.get("model", payload["model"]),
            tool_calls=_parse_tool_calls(message),
            input_tokens=data.get("prompt_eval_count", 0),
            output_tokens=data.get("eval_count", 0),
            stop_reason=data.get("done_reason", ""),
            thinking=message.get("thinking") or "",
            raw_response=data,
        )

    async def stream(
        self,
        messages: list[dict[str, Any]],
        model: str | None = None,
        options: ChatOptions | None = None,
        tools: list[Tool] | None = None,
    ) -> AsyncIterator[StreamEvent]:
        payload = self._payload(messages, model, options, tools, stream=True)
        snapshot = ""
        tool_call_count = 0

        async with self._client() as client:
            try:
                async with client.stream("POST", "/api/chat", json=payload) as response:
                    if response.status_code >= 400:
                        body = (await response.aread()).decode("utf-8", errors="replace")
                        raise _error_for(response.status_code, body)

                    async for line in response.aiter_lines():
                        if not line.strip():
                            continue
                        try:
                            chunk = json.loads(line)
                        except json.JSONDecodeError:
                            logger.debug(f"Skipping malformed stream line: {line[:200]}")
                            continue
                        if chunk.get("error"):
                            raise _error_for(None, json.dumps(chunk))

                        message = chunk.get("message") or {}
                        if message.get("thinking"):
                            yield ReasoningDeltaEvent(content=message["thinking"])
                        if message.get("content"):
                            snapshot += message["content"]
                            yield TextDeltaEvent(content=message["content"], snapshot=snapshot)
                        for call in _parse_tool_calls(message, offset=tool_call_count):
                            tool_call_count += 1
                            yield ToolCallEvent(
                                tool_use_id=call.id, tool_name=call.name, tool_input=call.input
                            )

                        if chunk.get("done"):
                            yield TextEndEvent(full_text=snapshot)
                            yield FinishEvent(
                                stop_reason=chunk.get("done_reason", ""),
                                input_tokens=chunk.get("prompt_eval_count", 0),
                                output_tokens=chunk.get("eval_count", 0),
                                model=chunk.get("model", payload["model"]),
                            )
                            return
            except httpx.HTTPError as e:
                raise LLMError(f"Failed to reach Ollama at {self.host}: {e}") from e

        # Connection closed without a done marker.
        yield TextEndEvent(full_text=snapshot)
        yield FinishEvent(stop_reason="incomplete", model=payload["model"])
