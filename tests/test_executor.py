"""Tests for the workflow executor: ordering, fail-fast, pause and cancel."""

import asyncio
import os

import pytest

from nodeflow.graph.context import LogLevel, RunStatus
from nodeflow.graph.executor import WorkflowExecutor, count_by_status
from nodeflow.graph.model import WorkflowGraph
from nodeflow.host.base import CommandResult
from nodeflow.host.local import LocalProcessRunner


def _graph(nodes, edges=()):
    return WorkflowGraph.model_validate({"nodes": nodes, "edges": list(edges)})


# ---- Process runner that acts on the executor mid-node ----
class HookedRunner:
    def __init__(self, hook):
        self.hook = hook
        self.commands = []

    async def execute(self, root, request, control=None):
        self.commands.append(request.command)
        self.hook()
        return CommandResult(stdout="ok", exit_code=0, success=True)


@pytest.mark.asyncio
async def test_linear_workflow_completes(host, filesystem):
    graph = _graph(
        [
            {"id": "out", "type": "output"},
            {"id": "name", "type": "input", "config": {"defaultValue": "Ada"}},
            {
                "id": "save",
                "type": "writeFile",
                "config": {
                    "filePath": "greeting.txt",
                    "contentSource": "direct",
                    "directContent": "Hello {{value}}",
                },
            },
        ],
        [{"source": "name", "target": "save"}, {"source": "save", "target": "out"}],
    )
    logs = []
    result = await WorkflowExecutor(graph, host, on_log=logs.append).execute()

    assert result.success
    assert result.order == ["name", "save", "out"]
    assert filesystem.files["greeting.txt"] == "Hello Ada"
    assert result.variables["bytesWritten"] == 9
    assert result.output_of("out")["data"] == {"success": True, "path": "greeting.txt", "bytesWritten": 9}
    assert any("Starting workflow execution" in r.message for r in logs)
    assert all(r.run_id == result.run_id for r in logs)
    assert graph.get_node("save").status == "success"


@pytest.mark.asyncio
async def test_user_inputs_reach_input_nodes(host):
    graph = _graph([{"id": "q", "type": "input", "config": {"defaultValue": "x"}}])
    result = await WorkflowExecutor(graph, host).execute(user_inputs={"q": "owls"})
    assert result.output_of("q")["value"] == "owls"


@pytest.mark.asyncio
async def test_failure_stops_run_and_skips_rest(host):
    graph = _graph(
        [
            {"id": "read", "type": "readFile", "config": {"filePath": "missing.txt"}},
            {"id": "after", "type": "output"},
        ],
        [{"source": "read", "target": "after"}],
    )
    logs = []
    result = await WorkflowExecutor(graph, host, on_log=logs.append).execute()

    assert result.status == RunStatus.FAILED
    assert result.failed_node == "read"
    assert "File not found" in result.error
    assert result.results["read"].status == "error"
    assert result.results["after"].status == "skipped"
    assert count_by_status(result)["skipped"] == 1
    assert any(r.level == LogLevel.ERROR for r in logs)


@pytest.mark.asyncio
async def test_unknown_node_type_fails_run(host):
    graph = _graph([{"id": "x", "type": "teleport"}])
    result = await WorkflowExecutor(graph, host).execute()
    assert result.status == RunStatus.FAILED
    assert result.failed_node == "x"
    assert "Unknown node type" in result.error


@pytest.mark.asyncio
async def test_unexpected_exception_becomes_failed_run(host):
    class BrokenFileSystem:
        async def read(self, root, relative_path):
            raise RuntimeError("mount lost")

    host.filesystem = BrokenFileSystem()
    graph = _graph([{"id": "read", "type": "readFile", "config": {"filePath": "a"}}])
    result = await WorkflowExecutor(graph, host).execute()
    assert result.status == RunStatus.FAILED
    assert result.error == "mount lost"


@pytest.mark.asyncio
async def test_if_does_not_prune_downstream(host):
    graph = _graph(
        [
            {"id": "check", "type": "if", "config": {"expression": "1 > 2"}},
            {"id": "yes", "type": "output"},
            {"id": "no", "type": "output"},
        ],
        [
            {"source": "check", "target": "yes", "sourceHandle": "true"},
            {"source": "check", "target": "no", "sourceHandle": "false"},
        ],
    )
    result = await WorkflowExecutor(graph, host).execute()
    assert result.success
    assert result.results["yes"].status == "success"
    assert result.results["yes"].input == {"input": None}
    assert result.results["no"].status == "success"


@pytest.mark.asyncio
async def test_cycle_nodes_are_reported_not_run(host):
    graph = _graph(
        [
            {"id": "ok", "type": "input"},
            {"id": "a", "type": "set", "config": {"variableName": "a", "variableValue": "1"}},
            {"id": "b", "type": "set", "config": {"variableName": "b", "variableValue": "2"}},
        ],
        [{"source": "a", "target": "b"}, {"source": "b", "target": "a"}],
    )
    result = await WorkflowExecutor(graph, host).execute()
    assert result.success
    assert result.order == ["ok"]
    assert result.unscheduled == ["a", "b"]
    assert "a" not in result.results


@pytest.mark.asyncio
async def test_cancel_between_nodes(host):
    graph = _graph(
        [
            {"id": "first", "type": "executeCommand", "config": {"command": "step one"}},
            {"id": "second", "type": "executeCommand", "config": {"command": "step two"}},
        ],
        [{"source": "first", "target": "second"}],
    )
    executor = WorkflowExecutor(graph, host)
    runner = HookedRunner(executor.cancel)
    host.process = runner

    result = await executor.execute()

    assert result.status == RunStatus.CANCELLED
    assert runner.commands == ["step one"]
    assert result.results["first"].status == "success"
    assert result.results["second"].status == "skipped"
    assert executor.is_running is False


@pytest.mark.skipif(os.name != "posix", reason="uses POSIX shell commands")
@pytest.mark.asyncio
async def test_cancel_during_command_ends_cancelled(host, tmp_path):
    graph = _graph(
        [
            {"id": "slow", "type": "executeCommand", "config": {"command": "sleep 5"}},
            {"id": "after", "type": "output"},
        ],
        [{"source": "slow", "target": "after"}],
    )
    host.process = LocalProcessRunner()
    executor = WorkflowExecutor(graph, host, workspace_path=str(tmp_path))

    task = asyncio.create_task(executor.execute())
    await asyncio.sleep(0.5)
    executor.cancel()
    result = await asyncio.wait_for(task, timeout=5)

    assert result.status == RunStatus.CANCELLED
    assert result.error is None
    assert result.results["slow"].status == "skipped"
    assert result.results["after"].status == "skipped"


@pytest.mark.asyncio
async def test_pause_holds_until_resume(host):
    graph = _graph(
        [
            {"id": "first", "type": "executeCommand", "config": {"command": "one"}},
            {"id": "second", "type": "executeCommand", "config": {"command": "two"}},
        ],
        [{"source": "first", "target": "second"}],
    )
    executor = WorkflowExecutor(graph, host)
    runner = HookedRunner(lambda: executor.pause() if len(runner.commands) == 1 else None)
    host.process = runner

    task = asyncio.create_task(executor.execute())
    for _ in range(20):
        await asyncio.sleep(0)

    assert executor.status == RunStatus.PAUSED
    assert runner.commands == ["one"]
    assert "second" not in executor.context.results

    executor.resume()
    result = await asyncio.wait_for(task, timeout=5)
    assert result.success
    assert runner.commands == ["one", "two"]


@pytest.mark.asyncio
async def test_cancel_while_paused(host):
    graph = _graph(
        [
            {"id": "first", "type": "executeCommand", "config": {"command": "one"}},
            {"id": "second", "type": "executeCommand", "config": {"command": "two"}},
        ],
    )
    executor = WorkflowExecutor(graph, host)
    host.process = HookedRunner(executor.pause)

    task = asyncio.create_task(executor.execute())
    for _ in range(20):
        await asyncio.sleep(0)
    executor.cancel()
    result = await asyncio.wait_for(task, timeout=5)

    assert result.status == RunStatus.CANCELLED
    assert result.results["second"].status == "skipped"


@pytest.mark.asyncio
async def test_loop_inside_workflow(host, filesystem):
    graph = _graph(
        [
            {"id": "files", "type": "set", "config": {
                "variableName": "names", "variableValue": '["a", "b"]', "useExpression": True,
            }},
            {"id": "loop", "type": "loop", "config": {"loopMode": "array", "arraySource": "{{names}}"}},
            {"id": "write", "type": "writeFile", "parentId": "loop", "config": {
                "filePath": "{{item}}.txt", "contentSource": "direct", "directContent": "#{{index}}",
            }},
            {"id": "done", "type": "output"},
        ],
        [{"source": "files", "target": "loop"}, {"source": "write", "target": "done"}],
    )
    result = await WorkflowExecutor(graph, host).execute()

    assert result.success
    assert result.order == ["files", "loop", "done"]
    assert filesystem.files == {"a.txt": "#0", "b.txt": "#1"}
    assert result.output_of("loop")["count"] == 2
    assert result.output_of("done")["data"]["path"] == "b.txt"


@pytest.mark.asyncio
async def test_execute_twice_resets_state(host):
    graph = _graph([{"id": "q", "type": "input", "config": {"defaultValue": "1"}}])
    executor = WorkflowExecutor(graph, host)
    first = await executor.execute()
    second = await executor.execute()
    assert first.run_id != second.run_id
    assert second.success
