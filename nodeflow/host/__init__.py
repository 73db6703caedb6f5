"""Host collaborators: filesystem, process execution, HTTP and the LLM client."""

from dataclasses import dataclass, field

from nodeflow.config import RuntimeConfig
from nodeflow.host.base import (
    CommandRequest,
    CommandResult,
    FileReadResult,
    FileSystem,
    FileWriteResult,
    HttpFetcher,
    HttpRequest,
    HttpResponse,
    ProcessRunner,
)
from nodeflow.host.local import (
    HttpxFetcher,
    LocalFileSystem,
    LocalProcessRunner,
    resolve_workspace_path,
)
from nodeflow.llm.ollama import OllamaProvider
from nodeflow.llm.provider import LLMProvider


@dataclass
class HostServices:
    """The collaborators one run may use."""

    filesystem: FileSystem
    process: ProcessRunner
    http: HttpFetcher
    llm: LLMProvider
    config: RuntimeConfig = field(default_factory=RuntimeConfig)

    @classmethod
    def local(cls, config: RuntimeConfig | None = None) -> "HostServices":
        """Local disk, local processes, httpx and the configured Ollama endpoint."""
        config = config or RuntimeConfig()
        return cls(
            filesystem=LocalFileSystem(),
            process=LocalProcessRunner(),
            http=HttpxFetcher(),
            llm=OllamaProvider(host=config.ollama_host, default_model=config.model),
            config=config,
        )


__all__ = [
    "CommandRequest",
    "CommandResult",
    "FileReadResult",
    "FileSystem",
    "FileWriteResult",
    "HostServices",
    "HttpFetcher",
    "HttpRequest",
    "HttpResponse",
    "HttpxFetcher",
    "LocalFileSystem",
    "LocalProcessRunner",
    "ProcessRunner",
    "resolve_workspace_path",
]
