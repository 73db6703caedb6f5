"""
Host collaborator contracts.

The engine never touches the disk, spawns processes or opens sockets
directly; it goes through these protocols so a desktop shell, a test fake
or the local defaults in ``nodeflow.host.local`` can be plugged in.
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from nodeflow.graph.context import RunControl


@dataclass
class FileReadResult:
    success: bool
    content: str | None = None
    error: str | None = None


@dataclass
class FileWriteResult:
    success: bool
    error: str | None = None


@dataclass
class CommandRequest:
    command: str
    cwd: str | None = None
    timeout_ms: int = 30_000
    env: dict[str, str] = field(default_factory=dict)


@dataclass
class CommandResult:
    stdout: str = ""
    stderr: str = ""
    exit_code: int = 0
    timed_out: bool = False
    success: bool = True
    cancelled: bool = False  # killed because the run was cancelled


@dataclass
class HttpRequest:
    url: str
    method: str = "GET"
    headers: dict[str, str] = field(default_factory=dict)
    body: str | None = None
    timeout_ms: int = 30_000


@dataclass
class HttpResponse:
    success: bool
    status: int = 0
    status_text: str = ""
    body: str = ""
    error: str | None = None


class FileSystem(Protocol):
    """Text file access, with paths joined under a workspace root."""

    async def read(self, root: str, relative_path: str) -> FileReadResult: ...

    async def write(self, root: str, relative_path: str, content: str) -> FileWriteResult: ...


class ProcessRunner(Protocol):
    """Shell command execution with an enforced timeout."""

    async def execute(
        self,
        root: str,
        request: CommandRequest,
        control: "RunControl | None" = None,
    ) -> CommandResult: ...


class HttpFetcher(Protocol):
    async def fetch(self, request: HttpRequest) -> HttpResponse: ...
