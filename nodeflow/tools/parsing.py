"""Tool-call argument parsing.

Arguments normally arrive as a mapping. When a model sends a string instead,
it is parsed as strict JSON first. Only if that fails do the regex salvage
functions below try to recover fields from the malformed text; they are a
fallback for ill-formed model output and never the primary path.
"""

import json
import logging
import re
from collections.abc import Mapping
from typing import Any

logger = logging.getLogger(__name__)

_FILENAME_PATTERNS = (
    re.compile(r'"filename"\s*:\s*"([^"]+)"'),
    re.compile(r'"filePath"\s*:\s*"([^"]+)"'),
    re.compile(r'"path"\s*:\s*"([^"]+)"'),
)
_CONTENT_PATTERN = re.compile(r'"content"\s*:\s*"([\s\S]*?)"(?:\s*}|\s*,)')
_COMMAND_PATTERN = re.compile(r'"command"\s*:\s*"((?:[^"\\]|\\.)*)"')
_URL_PATTERN = re.compile(r'"url"\s*:\s*"([^"]+)"')
_ACTION_PATTERN = re.compile(r'"action"\s*:\s*"([^"]+)"')


def parse_strict(raw: Any) -> dict[str, Any] | None:
    """
    Return the arguments as a dict, or None when ``raw`` is text that is not a JSON object.

    Mappings pass through; empty input is an empty dict.
    """
    if raw is None:
        return {}
    if isinstance(raw, Mapping):
        return dict(raw)
    text = str(raw).strip()
    if not text:
        return {}
    try:
        value = json.loads(text)
    except json.JSONDecodeError:
        return None
    return value if isinstance(value, dict) else None


def unescape(text: str) -> str:
    """Undo JSON string escapes in a salvaged fragment."""
    try:
        return json.loads(f'"{text}"')
    except json.JSONDecodeError:
        return (
            text.replace("\\n", "\n")
            .replace("\\t", "\t")
            .replace('\\"', '"')
            .replace("\\\\", "\\")
        )


def _first_match(text: str, patterns: tuple[re.Pattern, ...]) -> str | None:
    for pattern in patterns:
        match = pattern.search(text)
        if match:
            return match.group(1)
    return None


def salvage_write_file(text: str) -> dict[str, Any]:
    args: dict[str, Any] = {}
    filename = _first_match(text, _FILENAME_PATTERNS)
    if filename:
        args["filename"] = filename
    content = _CONTENT_PATTERN.search(text)
    if content:
        args["content"] = unescape(content.group(1))
    return args


def salvage_read_file(text: str) -> dict[str, Any]:
    path = _first_match(text, _FILENAME_PATTERNS)
    return {"filePath": path if path else text.strip().strip('"')}


def salvage_command(text: str) -> dict[str, Any]:
    match = _COMMAND_PATTERN.search(text)
    return {"command": unescape(match.group(1)) if match else text.strip()}


def salvage_http_request(text: str) -> dict[str, Any]:
    match = _URL_PATTERN.search(text)
    if match:
        return {"url": match.group(1)}
    text = text.strip().strip('"')
    return {"url": text} if text.startswith(("http://", "https://")) else {}


def salvage_todos(text: str) -> dict[str, Any]:
    """``"action, content"`` shorthand, or an action field inside broken JSON."""
    match = _ACTION_PATTERN.search(text)
    if match:
        args: dict[str, Any] = {"action": match.group(1)}
        content = _CONTENT_PATTERN.search(text)
        if content:
            args["content"] = unescape(content.group(1))
        return args

    action, _, content = text.partition(",")
    args = {"action": action.strip().strip('"').lower() or "list"}
    if content.strip():
        args["content"] = content.strip()
    return args


def parse_arguments(raw: Any, salvage) -> dict[str, Any]:
    """Strict parse, then the given salvage function for malformed text."""
    args = parse_strict(raw)
    if args is not None:
        return args
    logger.warning("Tool arguments are not valid JSON, salvaging fields: %.200s", raw)
    return salvage(str(raw))
