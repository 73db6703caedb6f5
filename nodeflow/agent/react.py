"""
ReAct agent loop: think, act, observe, repeat.

Each iteration runs the loop detector over the tool-call history, asks the
model for the next turn, and either returns its text as the final answer (no
tool calls) or executes the requested tools and feeds the observations back.
"""

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from nodeflow.agent.loop_detector import (
    SUCCESS_KEYWORDS,
    LoopDetection,
    detect_loop,
    extract_history,
)
from nodeflow.agent.prompts import (
    ALL_TODOS_DONE_HINT,
    TASK_COMPLETE_HINT,
    TOOL_CALL_RETRY_PROMPT,
    build_system_prompt,
    run_script_hint,
)
from nodeflow.agent.state import ReActExecutionState, ReActStep, ReActStepStatus
from nodeflow.errors import ToolCallParseError
from nodeflow.llm.provider import ChatOptions, LLMProvider, LLMResponse, ToolUse
from nodeflow.llm.stream_events import FinishEvent, TextDeltaEvent, ToolCallEvent
from nodeflow.tools.catalog import ToolDefinition, ToolKind
from nodeflow.tools.executor import ToolExecutor
from nodeflow.tools.parsing import parse_strict
from nodeflow.tools.result import ToolResult

if TYPE_CHECKING:
    from nodeflow.graph.context import RunControl

logger = logging.getLogger(__name__)


@dataclass
class AgentConfig:
    """Settings for one agent run."""

    user_message: str
    system_prompt: str | None = None
    model: str | None = None
    options: ChatOptions = field(default_factory=ChatOptions)
    max_iterations: int = 10
    stream: bool = False
    max_parse_retries: int = 2
    max_observation_chars: int = 8_000


@dataclass
class AgentResult:
    final_answer: str
    exhausted: bool
    iterations: int
    state: ReActExecutionState

    def to_output(self) -> dict[str, Any]:
        return {
            "response": self.final_answer,
            "exhausted": self.exhausted,
            "iterations": self.iterations,
            "steps": [step.to_dict() for step in self.state.steps],
            "todos": list(self.state.todos),
        }


def _format_tool_call(call: ToolUse) -> dict[str, Any]:
    return {"id": call.id, "function": {"name": call.name, "arguments": call.input}}


def _brief(value: Any, limit: int = 200) -> str:
    text = value if isinstance(value, str) else json.dumps(value, ensure_ascii=False, default=str)
    return text if len(text) <= limit else f"{text[:limit]}..."


class ReActAgent:
    """
    Iterative tool-using agent.

    Args:
        llm: Chat backend
        tools: Tools offered to the model (todos first)
        tool_executor: Runs the tool calls
        config: Prompts, model options and limits
        node_id: Owning agent node, used for step ids and stream output
        control: Run control; checked before every iteration
        on_stream: Receives thought/action/observation text as it happens
        on_update: Called with the state after every change observers care about
    """

    def __init__(
        self,
        llm: LLMProvider,
        tools: list[ToolDefinition],
        tool_executor: ToolExecutor,
        config: AgentConfig,
        node_id: str = "agent",
        control: "RunControl | None" = None,
        on_stream: Callable[[str], None] | None = None,
        on_update: Callable[[ReActExecutionState], None] | None = None,
    ):
        self.llm = llm
        self.tools = tools
        self.tool_executor = tool_executor
        self.config = config
        self.node_id = node_id
        self.control = control
        self._on_stream = on_stream
        self._on_update = on_update
        self._llm_tools = [tool.to_llm_tool() for tool in tools]
        self._tool_kinds = {tool.name: str(tool.kind) for tool in tools}

        self.state = ReActExecutionState(node_id=node_id, max_iterations=config.max_iterations)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def run(self) -> AgentResult:
        messages: list[dict[str, Any]] = [
            {"role": "system", "content": build_system_prompt(self.config.system_prompt, self.tools)},
            {"role": "user", "content": self.config.user_message},
        ]
        last_suggestion = ""
        self._notify()

        try:
            for iteration in range(1, self.config.max_iterations + 1):
                if self.control is not None:
                    await self.control.checkpoint()
                self.state.current_iteration = iteration

                detection = detect_loop(extract_history(messages, self._tool_kinds))
                if detection.is_loop:
                    logger.warning(
                        "[%s] iter=%d: loop detected (%s), blocking %s",
                        self.node_id,
                        iteration,
                        detection.loop_type,
                        sorted(detection.blocked_actions),
                    )
                    if detection.suggestion != last_suggestion:
                        messages.append({"role": "user", "content": detection.suggestion})
                        last_suggestion = detection.suggestion

                step = self.state.new_step(iteration)
                self._notify()

                response = await self._call_llm(messages)
                step.thought = response.content.strip()
                if step.thought:
                    self._emit(f"\n💭 {step.thought}\n")

                if not response.tool_calls:
                    final_answer = step.thought or "Task complete."
                    step.finish(ReActStepStatus.COMPLETED)
                    self.state.final_answer = final_answer
                    logger.info("[%s] iter=%d: final answer", self.node_id, iteration)
                    return self._finish(final_answer, exhausted=False, iterations=iteration)

                messages.append(
                    {
                        "role": "assistant",
                        "content": response.content,
                        "tool_calls": [_format_tool_call(c) for c in response.tool_calls],
                    }
                )
                await self._act(step, response.tool_calls, detection, messages)

            final_answer = (
                f"No final answer reached after {self.config.max_iterations} iterations."
            )
            logger.warning("[%s] %s", self.node_id, final_answer)
            self.state.final_answer = final_answer
            return self._finish(
                final_answer, exhausted=True, iterations=self.config.max_iterations
            )
        finally:
            self.state.is_running = False
            self._notify()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _finish(self, final_answer: str, exhausted: bool, iterations: int) -> AgentResult:
        self.state.exhausted = exhausted
        return AgentResult(
            final_answer=final_answer,
            exhausted=exhausted,
            iterations=iterations,
            state=self.state,
        )

    def _emit(self, text: str) -> None:
        if self._on_stream is not None:
            self._on_stream(text)

    def _notify(self) -> None:
        if self._on_update is not None:
            self._on_update(self.state)

    def _sync_todos(self) -> None:
        self.state.todos = [item.to_dict() for item in self.tool_executor.todos.items]
        self._notify()

    async def _call_llm(self, messages: list[dict[str, Any]]) -> LLMResponse:
        """One model turn, retrying with a corrective message on malformed tool-call JSON."""
        retries = 0
        while True:
            try:
                if self.config.stream:
                    return await self._stream_turn(messages)
                return await self.llm.chat(
                    messages,
                    model=self.config.model,
                    options=self.config.options,
                    tools=self._llm_tools,
                )
            except ToolCallParseError as e:
                if retries >= self.config.max_parse_retries:
                    raise
                retries += 1
                logger.warning(
                    "[%s] tool call JSON rejected (%s), retry %d/%d",
                    self.node_id,
                    e,
                    retries,
                    self.config.max_parse_retries,
                )
                messages.append({"role": "user", "content": TOOL_CALL_RETRY_PROMPT})

    async def _stream_turn(self, messages: list[dict[str, Any]]) -> LLMResponse:
        content = ""
        tool_calls: list[ToolUse] = []
        response = LLMResponse(content="", model=self.config.model or "")

        async for event in self.llm.stream(
            messages,
            model=self.config.model,
            options=self.config.options,
            tools=self._llm_tools,
        ):
            if isinstance(event, TextDeltaEvent):
                content += event.content
                self._emit(event.content)
            elif isinstance(event, ToolCallEvent):
                tool_calls.append(
                    ToolUse(id=event.tool_use_id, name=event.tool_name, input=event.tool_input)
                )
            elif isinstance(event, FinishEvent):
                response.model = event.model or response.model
                response.stop_reason = event.stop_reason
                response.input_tokens = event.input_tokens
                response.output_tokens = event.output_tokens

        response.content = content
        response.tool_calls = tool_calls
        return response

    def _find_tool(self, name: str) -> ToolDefinition | None:
        for tool in self.tools:
            if tool.name == name:
                return tool
        lowered = name.lower()
        for tool in self.tools:
            if tool.name.lower() == lowered or str(tool.kind).lower() == lowered:
                return tool
        return None

    async def _act(
        self,
        step: ReActStep,
        tool_calls: list[ToolUse],
        detection: LoopDetection,
        messages: list[dict[str, Any]],
    ) -> None:
        step.status = ReActStepStatus.ACTING
        observations: list[str] = []
        hints: list[str] = []
        failed = False

        for call in tool_calls:
            step.action = call.name
            step.action_input = call.input
            self._notify()
            logger.info("[%s] tool_call: %s(%s)", self.node_id, call.name, _brief(call.input))
            self._emit(f"\n🔧 {call.name}({_brief(call.input)})\n")

            tool = self._find_tool(call.name)
            if detection.is_blocked(call.name):
                result = ToolResult(
                    success=False,
                    error=(
                        f"Action '{call.name}' is temporarily blocked "
                        f"({detection.loop_type}). {detection.suggestion}"
                    ),
                )
            elif tool is None:
                available = ", ".join(t.name for t in self.tools)
                result = ToolResult(
                    success=False,
                    error=f"Unknown tool '{call.name}'. Available tools: {available}",
                )
            else:
                result = await self.tool_executor.execute(tool, call.input)
                hint = self._hint_for(tool, call, result)
                if hint and hint not in hints:
                    hints.append(hint)

            observation = self._truncate(result.observation())
            failed = failed or not result.success
            observations.append(observation)
            messages.append({"role": "tool", "tool_name": call.name, "content": observation})

            step.status = ReActStepStatus.OBSERVING
            step.observation = "\n".join(observations)
            self._emit(f"👁 {_brief(observation, 500)}\n")
            self._sync_todos()

        if hints:
            messages.append({"role": "user", "content": "\n".join(hints)})
        step.finish(ReActStepStatus.ERROR if failed else None)
        self._notify()

    def _hint_for(self, tool: ToolDefinition, call: ToolUse, result: ToolResult) -> str | None:
        if not result.success:
            return None
        if tool.kind == ToolKind.WRITE_FILE:
            args = parse_strict(call.input) or {}
            filename = args.get("filename") or args.get("filePath") or args.get("path")
            return run_script_hint(str(filename)) if filename else None
        if tool.kind == ToolKind.EXECUTE_COMMAND:
            lowered = result.output.lower()
            if any(keyword in lowered for keyword in SUCCESS_KEYWORDS):
                return TASK_COMPLETE_HINT
        if tool.kind == ToolKind.TODOS and self.tool_executor.todos.all_completed:
            return ALL_TODOS_DONE_HINT
        return None

    def _truncate(self, text: str) -> str:
        limit = self.config.max_observation_chars
        if len(text) <= limit:
            return text
        return f"{text[:limit]}\n... (truncated {len(text) - limit} characters)"
