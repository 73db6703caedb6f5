"""Shared fakes: in-memory filesystem, scripted process runner and LLM."""

from typing import Any

import pytest

from nodeflow.config import RuntimeConfig
from nodeflow.graph.context import ExecutionContext, RunControl
from nodeflow.graph.dispatch import dispatch_node
from nodeflow.graph.model import WorkflowGraph
from nodeflow.host import HostServices
from nodeflow.host.base import (
    CommandRequest,
    CommandResult,
    FileReadResult,
    FileWriteResult,
    HttpRequest,
    HttpResponse,
)
from nodeflow.llm.provider import ChatOptions, LLMProvider, LLMResponse, Tool


# ---- In-memory filesystem ----
class MemoryFileSystem:
    def __init__(self, files: dict[str, str] | None = None):
        self.files = dict(files or {})
        self.writes: list[tuple[str, str]] = []

    async def read(self, root: str, relative_path: str) -> FileReadResult:
        if relative_path not in self.files:
            return FileReadResult(success=False, error=f"File not found: {relative_path}")
        return FileReadResult(success=True, content=self.files[relative_path])

    async def write(self, root: str, relative_path: str, content: str) -> FileWriteResult:
        self.files[relative_path] = content
        self.writes.append((relative_path, content))
        return FileWriteResult(success=True)


# ---- Scripted process runner ----
class ScriptedProcessRunner:
    """Returns queued results in order; records every request."""

    def __init__(self, results: list[CommandResult] | None = None):
        self.results = list(results or [])
        self.requests: list[CommandRequest] = []

    async def execute(self, root: str, request: CommandRequest, control=None) -> CommandResult:
        self.requests.append(request)
        if self.results:
            return self.results.pop(0)
        return CommandResult(stdout=f"ran: {request.command}\n", exit_code=0, success=True)


# ---- Fake HTTP ----
class FakeHttp:
    def __init__(self, response: HttpResponse | None = None):
        self.response = response or HttpResponse(success=True, status=200, status_text="OK", body="{}")
        self.requests: list[HttpRequest] = []

    async def fetch(self, request: HttpRequest) -> HttpResponse:
        self.requests.append(request)
        return self.response


# ---- Scripted LLM ----
class ScriptedLLM(LLMProvider):
    """
    Returns the queued responses in order. An Exception in the queue is
    raised instead. When the queue runs dry the last response repeats.
    """

    def __init__(self, responses: list[LLMResponse | Exception] | None = None):
        self.responses = list(responses or [])
        self.calls: list[dict[str, Any]] = []

    async def chat(
        self,
        messages: list[dict[str, Any]],
        model: str | None = None,
        options: ChatOptions | None = None,
        tools: list[Tool] | None = None,
    ) -> LLMResponse:
        self.calls.append(
            {"messages": [dict(m) for m in messages], "model": model, "options": options, "tools": tools}
        )
        if not self.responses:
            return LLMResponse(content="done", model=model or "fake")
        head = self.responses[0]
        if len(self.responses) > 1 or isinstance(head, Exception):
            self.responses.pop(0)
        if isinstance(head, Exception):
            raise head
        return head


@pytest.fixture
def filesystem():
    return MemoryFileSystem()


@pytest.fixture
def process_runner():
    return ScriptedProcessRunner()


@pytest.fixture
def llm():
    return ScriptedLLM()


@pytest.fixture
def runtime_config():
    return RuntimeConfig(
        ollama_host="http://ollama.test:11434",
        model="fake-model",
        temperature=0.7,
        max_tokens=4096,
        command_timeout_ms=30_000,
        http_timeout_ms=15_000,
    )


@pytest.fixture
def host(filesystem, process_runner, llm, runtime_config):
    return HostServices(
        filesystem=filesystem,
        process=process_runner,
        http=FakeHttp(),
        llm=llm,
        config=runtime_config,
    )


@pytest.fixture
def make_context(host):
    """Build an ExecutionContext for a graph, wired to the fake host."""

    def _make(graph: WorkflowGraph | None = None, **kwargs) -> ExecutionContext:
        kwargs.setdefault("dispatch", dispatch_node)
        kwargs.setdefault("control", RunControl())
        return ExecutionContext(
            run_id="run-test",
            graph=graph or WorkflowGraph(),
            host=host,
            workspace_path="/workspace",
            **kwargs,
        )

    return _make
