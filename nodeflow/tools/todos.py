"""In-memory task list owned by one agent run."""

import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import Any

from nodeflow.tools.result import ToolResult

logger = logging.getLogger(__name__)


@dataclass
class TodoItem:
    id: str
    content: str
    completed: bool = False
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["created_at"] = self.created_at.isoformat()
        return data


class TodosManager:
    """
    Task list manipulated by the ``todos`` tool.

    Actions: init, add, complete, list, remove, clear. ``complete`` and
    ``remove`` match a task by id first, then by case-insensitive substring
    of its content.
    """

    ACTIONS = ("init", "add", "complete", "list", "remove", "clear")

    def __init__(self) -> None:
        self._items: list[TodoItem] = []
        self._next_id = 1

    @property
    def items(self) -> list[TodoItem]:
        return list(self._items)

    @property
    def all_completed(self) -> bool:
        return bool(self._items) and all(item.completed for item in self._items)

    def _new_item(self, content: str) -> TodoItem:
        item = TodoItem(id=f"todo-{self._next_id}", content=content.strip())
        self._next_id += 1
        return item

    def handle(self, args: dict[str, Any]) -> ToolResult:
        action = str(args.get("action") or "list").strip().lower()
        key = str(args.get("taskId") or args.get("content") or "").strip()

        if action == "init":
            return self.init(args.get("tasks"), args.get("content"))
        if action == "add":
            return self.add(str(args.get("content") or ""))
        if action == "complete":
            return self.complete(key)
        if action == "remove":
            return self.remove(key)
        if action == "list":
            return ToolResult(success=True, output=self.format_list())
        if action == "clear":
            return self.clear()
        return ToolResult(
            success=False,
            error=f"Unknown todos action '{action}'. Valid actions: {', '.join(self.ACTIONS)}",
        )

    def init(self, tasks: Any, content: Any = None) -> ToolResult:
        """Replace the whole list."""
        if not tasks and isinstance(content, str) and content.strip():
            try:
                tasks = json.loads(content)
            except json.JSONDecodeError:
                tasks = [line for line in content.splitlines() if line.strip()]
        if isinstance(tasks, str):
            tasks = [tasks]

        texts = []
        for task in tasks or []:
            text = task.get("content", "") if isinstance(task, dict) else str(task)
            if text.strip():
                texts.append(text)
        if not texts:
            return ToolResult(success=False, error="No tasks provided for init")

        self._items = [self._new_item(text) for text in texts]
        return ToolResult(
            success=True,
            output=f"Created {len(self._items)} tasks:\n{self.format_list()}",
        )

    def add(self, content: str) -> ToolResult:
        if not content.strip():
            return ToolResult(success=False, error="Task content is required for add")
        item = self._new_item(content)
        self._items.append(item)
        return ToolResult(success=True, output=f"Added task {item.id}: {item.content}")

    def _find(self, key: str) -> TodoItem | None:
        if not key:
            return None
        for item in self._items:
            if item.id == key:
                return item
        lowered = key.lower()
        matches = [item for item in self._items if lowered in item.content.lower()]
        # Prefer an open task when several match.
        for item in matches:
            if not item.completed:
                return item
        return matches[0] if matches else None

    def complete(self, key: str) -> ToolResult:
        item = self._find(key)
        if item is None:
            return ToolResult(success=False, error=f"No task matching '{key}'")
        item.completed = True
        status = self.get_status()
        return ToolResult(
            success=True,
            output=(
                f"Completed task {item.id}: {item.content} "
                f"({status['completed']}/{status['total']} done)"
            ),
        )

    def remove(self, key: str) -> ToolResult:
        item = self._find(key)
        if item is None:
            return ToolResult(success=False, error=f"No task matching '{key}'")
        self._items.remove(item)
        return ToolResult(success=True, output=f"Removed task {item.id}: {item.content}")

    def clear(self) -> ToolResult:
        count = len(self._items)
        self._items = []
        return ToolResult(success=True, output=f"Cleared {count} tasks")

    def format_list(self) -> str:
        if not self._items:
            return "No tasks."
        lines = [
            f"[{'x' if item.completed else ' '}] {item.id}: {item.content}" for item in self._items
        ]
        status = self.get_status()
        lines.append(f"{status['completed']}/{status['total']} complete")
        return "\n".join(lines)

    def get_status(self) -> dict[str, Any]:
        completed = sum(1 for item in self._items if item.completed)
        return {
            "total": len(self._items),
            "completed": completed,
            "pending": len(self._items) - completed,
            "items": [item.to_dict() for item in self._items],
        }
