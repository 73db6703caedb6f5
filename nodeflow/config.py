"""Shared nodeflow configuration utilities.

Centralises reading of ~/.nodeflow/configuration.json so the CLI and the
default host services agree on the Ollama endpoint, model and timeouts.
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

DEFAULT_OLLAMA_HOST = "http://127.0.0.1:11434"
DEFAULT_MODEL = "glm-4.7-flash:latest"
DEFAULT_MAX_TOKENS = 8192
DEFAULT_COMMAND_TIMEOUT_MS = 30_000
DEFAULT_HTTP_TIMEOUT_MS = 30_000

# Directory (relative to the workspace root) holding the persisted workflow.
WORKSPACE_DIR_NAME = ".nodeflow"

# ---------------------------------------------------------------------------
# Low-level config file access
# ---------------------------------------------------------------------------

NODEFLOW_CONFIG_FILE = Path.home() / ".nodeflow" / "configuration.json"


def get_nodeflow_config() -> dict[str, Any]:
    """Load configuration from ~/.nodeflow/configuration.json."""
    if not NODEFLOW_CONFIG_FILE.exists():
        return {}
    try:
        with open(NODEFLOW_CONFIG_FILE, encoding="utf-8-sig") as f:
            return json.load(f)
    except (json.JSONDecodeError, OSError):
        return {}


# ---------------------------------------------------------------------------
# Derived helpers
# ---------------------------------------------------------------------------


def get_ollama_host() -> str:
    """Return the Ollama endpoint (env NODEFLOW_OLLAMA_HOST wins over the file)."""
    env_host = os.environ.get("NODEFLOW_OLLAMA_HOST")
    if env_host:
        return env_host
    return get_nodeflow_config().get("llm", {}).get("host", DEFAULT_OLLAMA_HOST)


def get_default_model() -> str:
    env_model = os.environ.get("NODEFLOW_MODEL")
    if env_model:
        return env_model
    return get_nodeflow_config().get("llm", {}).get("model", DEFAULT_MODEL)


def get_max_tokens() -> int:
    """Return the configured max_tokens, falling back to DEFAULT_MAX_TOKENS."""
    return get_nodeflow_config().get("llm", {}).get("max_tokens", DEFAULT_MAX_TOKENS)


def get_command_timeout_ms() -> int:
    execution = get_nodeflow_config().get("execution", {})
    return execution.get("command_timeout_ms", DEFAULT_COMMAND_TIMEOUT_MS)


def get_http_timeout_ms() -> int:
    execution = get_nodeflow_config().get("execution", {})
    return execution.get("http_timeout_ms", DEFAULT_HTTP_TIMEOUT_MS)


# ---------------------------------------------------------------------------
# RuntimeConfig
# ---------------------------------------------------------------------------


@dataclass
class RuntimeConfig:
    """Engine runtime configuration loaded from ~/.nodeflow/configuration.json."""

    ollama_host: str = field(default_factory=get_ollama_host)
    model: str = field(default_factory=get_default_model)
    temperature: float = 0.7
    max_tokens: int = field(default_factory=get_max_tokens)
    command_timeout_ms: int = field(default_factory=get_command_timeout_ms)
    http_timeout_ms: int = field(default_factory=get_http_timeout_ms)
