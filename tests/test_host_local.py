"""Tests for the local host collaborators."""

import asyncio
import json
import os
import sys

import httpx
import pytest

from nodeflow.graph.context import RunControl
from nodeflow.host.base import CommandRequest, HttpRequest
from nodeflow.host.local import (
    HttpxFetcher,
    LocalFileSystem,
    LocalProcessRunner,
    resolve_workspace_path,
)

posix_only = pytest.mark.skipif(os.name != "posix", reason="uses POSIX shell commands")


# ---- Workspace paths ----


def test_resolve_inside_workspace(tmp_path):
    root = str(tmp_path)
    assert resolve_workspace_path(root, "a/b.txt") == os.path.join(root, "a", "b.txt")
    assert resolve_workspace_path(root, "/notes.txt") == os.path.join(root, "notes.txt")


def test_resolve_rejects_escape(tmp_path):
    with pytest.raises(ValueError, match="Access denied"):
        resolve_workspace_path(str(tmp_path), "../outside.txt")


# ---- Filesystem ----


@pytest.mark.asyncio
async def test_write_creates_directories_and_reads_back(tmp_path):
    fs = LocalFileSystem()
    written = await fs.write(str(tmp_path), "deep/dir/file.txt", "héllo")
    assert written.success
    read = await fs.read(str(tmp_path), "deep/dir/file.txt")
    assert read.success
    assert read.content == "héllo"


@pytest.mark.asyncio
async def test_read_missing_and_escaping(tmp_path):
    fs = LocalFileSystem()
    missing = await fs.read(str(tmp_path), "nope.txt")
    assert not missing.success
    assert missing.error == "File not found: nope.txt"

    escaped = await fs.write(str(tmp_path), "../evil.txt", "x")
    assert not escaped.success
    assert not (tmp_path.parent / "evil.txt").exists()


# ---- Processes ----


@posix_only
@pytest.mark.asyncio
async def test_command_output_and_exit_code(tmp_path):
    runner = LocalProcessRunner()
    ok = await runner.execute(str(tmp_path), CommandRequest(command="echo hello"))
    assert ok.success
    assert ok.stdout.strip() == "hello"

    failed = await runner.execute(str(tmp_path), CommandRequest(command="echo oops >&2; exit 3"))
    assert not failed.success
    assert failed.exit_code == 3
    assert failed.stderr.strip() == "oops"


@posix_only
@pytest.mark.asyncio
async def test_command_runs_in_cwd(tmp_path):
    (tmp_path / "sub").mkdir()
    result = await LocalProcessRunner().execute(str(tmp_path), CommandRequest(command="pwd", cwd="sub"))
    assert os.path.realpath(result.stdout.strip()) == os.path.realpath(tmp_path / "sub")


@posix_only
@pytest.mark.asyncio
async def test_command_timeout_kills_process(tmp_path):
    result = await LocalProcessRunner().execute(
        str(tmp_path), CommandRequest(command="sleep 30", timeout_ms=200)
    )
    assert result.timed_out
    assert not result.cancelled
    assert result.exit_code == -1
    assert not result.success


@posix_only
@pytest.mark.asyncio
async def test_command_killed_on_cancel(tmp_path):
    control = RunControl()

    async def cancel_soon():
        await asyncio.sleep(0.2)
        control.cancel()

    canceller = asyncio.create_task(cancel_soon())
    result = await LocalProcessRunner().execute(
        str(tmp_path), CommandRequest(command="sleep 30", timeout_ms=20_000), control
    )
    await canceller
    assert not result.success
    assert not result.timed_out
    assert result.cancelled
    assert result.stderr == "Command cancelled"


@posix_only
@pytest.mark.asyncio
async def test_python_env_is_utf8(tmp_path):
    command = f'"{sys.executable}" -c "import os; print(os.environ[\'PYTHONIOENCODING\'])"'
    result = await LocalProcessRunner().execute(str(tmp_path), CommandRequest(command=command))
    assert result.stdout.strip() == "utf-8"


# ---- HTTP ----


@pytest.mark.asyncio
async def test_http_fetch_success_and_status():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/missing":
            return httpx.Response(404, text="nope")
        return httpx.Response(200, json={"method": request.method, "body": request.content.decode()})

    fetcher = HttpxFetcher(transport=httpx.MockTransport(handler))
    ok = await fetcher.fetch(HttpRequest(url="https://api.test/echo", method="post", body="hi"))
    assert ok.success
    assert ok.status == 200
    assert json.loads(ok.body) == {"method": "POST", "body": "hi"}

    missing = await fetcher.fetch(HttpRequest(url="https://api.test/missing"))
    assert not missing.success
    assert missing.status == 404
    assert missing.status_text == "Not Found"


@pytest.mark.asyncio
async def test_http_network_error_is_reported():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    fetcher = HttpxFetcher(transport=httpx.MockTransport(handler))
    result = await fetcher.fetch(HttpRequest(url="https://api.test/"))
    assert not result.success
    assert "connection refused" in result.error
