"""
Heuristic detection of unproductive tool-call patterns.

Tool-calling models have a few recurring failure modes: planning forever
without acting, rewriting output that already exists, and calling the same
tool again and again. ``detect_loop`` looks at the tool-call history of the
conversation and returns the tool names to block for the next turn, plus a
corrective message for the model. It never rolls back earlier calls.
"""

import logging
from collections import Counter
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from nodeflow.tools.parsing import parse_strict

logger = logging.getLogger(__name__)

# Words in command output that suggest the work has been produced.
SUCCESS_KEYWORDS = (
    "saved",
    "created",
    "generated",
    "success",
    "complete",
    "done",
    "written",
    "finished",
)

REPEAT_THRESHOLD = 3
MAX_TODO_ADDS = 2


@dataclass
class ToolCallRecord:
    """A tool call paired with the observation that answered it."""

    name: str  # lowercased
    arguments: dict[str, Any]
    result: str
    kind: str = ""  # lowercased ToolKind value, the name when unknown

    def __post_init__(self):
        if not self.kind:
            self.kind = self.name


@dataclass
class LoopDetection:
    is_loop: bool = False
    loop_type: str | None = None
    suggestion: str = ""
    blocked_actions: set[str] = field(default_factory=set)

    def is_blocked(self, tool_name: str) -> bool:
        return tool_name.lower() in self.blocked_actions


def extract_history(
    messages: Iterable[dict[str, Any]], kinds: Mapping[str, str] | None = None
) -> list[ToolCallRecord]:
    """
    Pair each assistant tool call with the tool message that followed it, in order.

    ``kinds`` maps lowercased tool names to their kind, so renamed tools are
    still recognised as todos, writeFile or executeCommand calls.
    """
    kinds = {name.lower(): kind.lower() for name, kind in (kinds or {}).items()}
    records: list[ToolCallRecord] = []
    pending: list[tuple[str, dict[str, Any]]] = []

    for message in messages:
        role = message.get("role")
        if role == "assistant" and message.get("tool_calls"):
            for call in message["tool_calls"]:
                function = call.get("function") or {}
                args = parse_strict(function.get("arguments")) or {}
                pending.append((str(function.get("name", "")).lower(), args))
        elif role == "tool" and pending:
            name, args = pending.pop(0)
            records.append(
                ToolCallRecord(
                    name=name,
                    arguments=args,
                    result=message.get("content") or "",
                    kind=kinds.get(name, name),
                )
            )

    return records


def _looks_successful(result: str) -> bool:
    lowered = result.lower()
    if lowered.startswith(("error", "blocked")):
        return False
    return any(keyword in lowered for keyword in SUCCESS_KEYWORDS)


def _over_planning(history: list[ToolCallRecord]) -> bool:
    actions = [
        str(r.arguments.get("action", "")).strip().lower() for r in history if r.kind == "todos"
    ]
    if actions.count("add") > MAX_TODO_ADDS:
        return True
    if "init" in actions:
        after_init = actions[actions.index("init") + 1 :]
        return any(action in ("add", "init") for action in after_init)
    return False


def _names_of(history: list[ToolCallRecord], kind: str) -> set[str]:
    return {r.name for r in history if r.kind == kind}


def _write_key(record: ToolCallRecord) -> tuple[str, str]:
    args = record.arguments
    path = str(args.get("filename") or args.get("filePath") or args.get("path") or "")
    return path, str(args.get("content", ""))


def detect_loop(history: list[ToolCallRecord]) -> LoopDetection:
    """Check the history against the known loop patterns, most specific first."""
    if len(history) < 2:
        return LoopDetection()

    if _over_planning(history):
        return LoopDetection(
            is_loop=True,
            loop_type="over_planning",
            suggestion=(
                "You already have a plan. Stop editing the todo list and execute the "
                "next task now with a real tool (writeFile, executeCommand, readFile)."
            ),
            blocked_actions=_names_of(history, "todos"),
        )

    last_command = None
    for index in range(len(history) - 1, -1, -1):
        if history[index].kind == "executecommand":
            last_command = index
            break
    if last_command is not None and _looks_successful(history[last_command].result):
        after = history[last_command + 1 :]
        if any(r.kind == "writefile" for r in after):
            return LoopDetection(
                is_loop=True,
                loop_type="task_likely_complete",
                suggestion=(
                    "The command already ran successfully and produced its output. "
                    "Do not write the files again. Give your final answer now."
                ),
                blocked_actions=_names_of(after, "writefile"),
            )

    writes = Counter(_write_key(r) for r in history if r.kind == "writefile")
    if writes and max(writes.values()) >= 2:
        return LoopDetection(
            is_loop=True,
            loop_type="repeated_write",
            suggestion=(
                "You wrote the same file with the same content more than once. "
                "The file exists. Run it or give your final answer."
            ),
            blocked_actions=_names_of(history, "writefile"),
        )

    recent = [r.name for r in history[-REPEAT_THRESHOLD:]]
    if len(recent) == REPEAT_THRESHOLD and len(set(recent)) == 1:
        name = recent[0]
        return LoopDetection(
            is_loop=True,
            loop_type="repeated_action",
            suggestion=(
                f"You called '{name}' {REPEAT_THRESHOLD} times in a row. "
                "Try a different approach or give your final answer."
            ),
            blocked_actions={name},
        )

    return LoopDetection()
