"""Default host collaborators backed by the local machine."""

import asyncio
import logging
import os
import signal
from typing import TYPE_CHECKING

import httpx

from nodeflow.host.base import (
    CommandRequest,
    CommandResult,
    FileReadResult,
    FileWriteResult,
    HttpRequest,
    HttpResponse,
)

if TYPE_CHECKING:
    from nodeflow.graph.context import RunControl

logger = logging.getLogger(__name__)

# Time allowed for pipes to drain after the process was killed.
KILL_GRACE_SECONDS = 5.0


def resolve_workspace_path(root: str, path: str) -> str:
    """
    Resolve ``path`` inside the workspace ``root`` and verify it does not escape it.

    Leading separators are stripped so ``/notes.txt`` means ``<root>/notes.txt``.

    Raises:
        ValueError: If the resolved path lies outside ``root``
    """
    root_dir = os.path.abspath(root)
    path = (path or "").strip()

    if os.path.isabs(path) or path.startswith(("/", "\\")):
        rel_path = path[1:] if path and path[0] in ("/", "\\") else path
        final_path = os.path.abspath(os.path.join(root_dir, rel_path))
    else:
        final_path = os.path.abspath(os.path.join(root_dir, path))

    try:
        common_prefix = os.path.commonpath([final_path, root_dir])
    except ValueError as err:
        # Different drives on Windows.
        raise ValueError(f"Access denied: Path '{path}' is outside the workspace.") from err

    if common_prefix != root_dir:
        raise ValueError(f"Access denied: Path '{path}' is outside the workspace.")

    return final_path


class LocalFileSystem:
    """UTF-8 text files under a workspace root."""

    async def read(self, root: str, relative_path: str) -> FileReadResult:
        def _read() -> FileReadResult:
            try:
                full_path = resolve_workspace_path(root, relative_path)
            except ValueError as e:
                return FileReadResult(success=False, error=str(e))
            if not os.path.isfile(full_path):
                return FileReadResult(success=False, error=f"File not found: {relative_path}")
            try:
                with open(full_path, encoding="utf-8", errors="replace") as f:
                    return FileReadResult(success=True, content=f.read())
            except OSError as e:
                return FileReadResult(success=False, error=f"Failed to read {relative_path}: {e}")

        return await asyncio.to_thread(_read)

    async def write(self, root: str, relative_path: str, content: str) -> FileWriteResult:
        def _write() -> FileWriteResult:
            try:
                full_path = resolve_workspace_path(root, relative_path)
            except ValueError as e:
                return FileWriteResult(success=False, error=str(e))
            try:
                os.makedirs(os.path.dirname(full_path), exist_ok=True)
                with open(full_path, "w", encoding="utf-8") as f:
                    f.write(content)
            except OSError as e:
                return FileWriteResult(success=False, error=f"Failed to write {relative_path}: {e}")
            return FileWriteResult(success=True)

        return await asyncio.to_thread(_write)


def _kill_process_tree(process: asyncio.subprocess.Process) -> None:
    """Kill the shell and everything it spawned."""
    if process.returncode is not None:
        return
    try:
        if os.name == "posix":
            os.killpg(process.pid, signal.SIGKILL)
        else:
            process.kill()
    except ProcessLookupError:
        pass


def _decode(data: bytes | None) -> str:
    return data.decode("utf-8", errors="replace") if data else ""


class LocalProcessRunner:
    """
    Runs shell commands in the workspace.

    The command runs in its own process group so a timeout or a cancelled run
    kills the whole tree, not just the shell.
    """

    async def execute(
        self,
        root: str,
        request: CommandRequest,
        control: "RunControl | None" = None,
    ) -> CommandResult:
        try:
            cwd = resolve_workspace_path(root, request.cwd) if request.cwd else os.path.abspath(root)
        except ValueError as e:
            return CommandResult(stderr=str(e), exit_code=-1, success=False)

        env = {**os.environ, **request.env, "PYTHONIOENCODING": "utf-8", "PYTHONUTF8": "1"}

        try:
            process = await asyncio.create_subprocess_shell(
                request.command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd,
                env=env,
                start_new_session=os.name == "posix",
            )
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to spawn command {request.command!r}: {e}")
            return CommandResult(stderr=str(e), exit_code=-1, success=False)

        communicate = asyncio.ensure_future(process.communicate())
        waiters: set[asyncio.Future] = {communicate}
        cancel_waiter = None
        if control is not None:
            cancel_waiter = asyncio.ensure_future(control.wait_cancelled())
            waiters.add(cancel_waiter)

        try:
            done, _ = await asyncio.wait(
                waiters,
                timeout=request.timeout_ms / 1000,
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            _kill_process_tree(process)
            communicate.cancel()
            raise
        finally:
            if cancel_waiter is not None:
                cancel_waiter.cancel()

        if communicate in done:
            stdout, stderr = communicate.result()
            exit_code = process.returncode if process.returncode is not None else -1
            return CommandResult(
                stdout=_decode(stdout),
                stderr=_decode(stderr),
                exit_code=exit_code,
                success=exit_code == 0,
            )

        was_cancelled = cancel_waiter is not None and cancel_waiter in done
        _kill_process_tree(process)
        try:
            stdout, stderr = await asyncio.wait_for(communicate, KILL_GRACE_SECONDS)
        except TimeoutError:
            communicate.cancel()
            stdout, stderr = b"", b""

        reason = (
            "Command cancelled"
            if was_cancelled
            else f"Command timed out after {request.timeout_ms}ms"
        )
        logger.warning(f"{reason}: {request.command!r}")
        return CommandResult(
            stdout=_decode(stdout),
            stderr=_decode(stderr) or reason,
            exit_code=-1,
            timed_out=not was_cancelled,
            success=False,
            cancelled=was_cancelled,
        )


class HttpxFetcher:
    """HTTP requests through httpx. Network failures come back as unsuccessful responses."""

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None):
        self._transport = transport

    async def fetch(self, request: HttpRequest) -> HttpResponse:
        try:
            async with httpx.AsyncClient(
                timeout=request.timeout_ms / 1000,
                transport=self._transport,
                follow_redirects=True,
            ) as client:
                response = await client.request(
                    request.method.upper(),
                    request.url,
                    headers=request.headers,
                    content=request.body,
                )
        except httpx.TimeoutException:
            return HttpResponse(
                success=False, error=f"Request timed out after {request.timeout_ms}ms"
            )
        except httpx.HTTPError as e:
            return HttpResponse(success=False, error=str(e) or type(e).__name__)

        return HttpResponse(
            success=response.is_success,
            status=response.status_code,
            status_text=response.reason_phrase,
            body=response.text,
        )
