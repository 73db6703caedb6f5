"""Prompt text for the ReAct agent."""

import os

from nodeflow.tools.catalog import ToolDefinition

DEFAULT_ROLE_PROMPT = "You are a capable assistant that completes tasks by using tools."

AGENT_RULES = """\
Rules:
1. Plan briefly: if the task has several parts, call todos once with action "init" and 2-3 tasks. Never more.
2. Execute: use real tools right away. After writing a script, run it with executeCommand in the next step.
3. Mark each todo complete as soon as it is done.
4. When the work is done, stop calling tools and reply with the final answer as plain text.
5. Tool arguments must be valid JSON. Escape newlines as \\n and quotes as \\" inside strings."""

TOOL_CALL_RETRY_PROMPT = (
    "Your last tool call could not be parsed: the arguments were not valid JSON. "
    "Call the tool again with strictly valid JSON arguments. Escape newlines as \\n "
    "and double quotes as \\\" inside string values, and keep file contents short."
)

# Script extensions and the command that runs them.
SCRIPT_RUNNERS = {
    ".py": "python",
    ".js": "node",
    ".ts": "npx tsx",
    ".sh": "bash",
    ".bat": "cmd /c",
    ".ps1": "powershell -File",
    ".rb": "ruby",
    ".php": "php",
}

TASK_COMPLETE_HINT = (
    "The command succeeded. If this finishes the task, give your final answer now "
    "without calling more tools."
)

ALL_TODOS_DONE_HINT = "All todos are complete. Give your final answer now."


def build_system_prompt(role_prompt: str | None, tools: list[ToolDefinition]) -> str:
    catalog = "\n".join(f"- {tool.name}: {tool.description}" for tool in tools)
    return f"{(role_prompt or DEFAULT_ROLE_PROMPT).strip()}\n\nAvailable tools:\n{catalog}\n\n{AGENT_RULES}"


def run_script_hint(filename: str) -> str | None:
    """Suggest running a freshly written script, or None for non-script files."""
    runner = SCRIPT_RUNNERS.get(os.path.splitext(filename)[1].lower())
    if runner is None:
        return None
    return (
        f"Script {filename} written. Now execute it with executeCommand: "
        f'{{"command": "{runner} {filename}"}}'
    )
