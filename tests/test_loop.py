"""Tests for the loop sub-graph runner."""

import pytest

from nodeflow.errors import ExecutionCancelled, NodeExecutionError
from nodeflow.graph.dispatch import dispatch_node
from nodeflow.graph.loop_runner import MAX_ITERATIONS_CAP, compute_iterations, max_iterations_for
from nodeflow.graph.model import NodeSpec, WorkflowGraph


def _loop_graph(loop_config, children=(), edges=()):
    return WorkflowGraph.model_validate(
        {
            "nodes": [{"id": "loop", "type": "loop", "config": loop_config}, *children],
            "edges": list(edges),
        }
    )


def _recorder(name="rec"):
    """Set node inside the loop capturing index/isLast of each iteration."""
    return {
        "id": name,
        "type": "set",
        "parentId": "loop",
        "config": {
            "variableName": "seen",
            "variableValue": '{"index": {{index}}, "isLast": {{isLast}}, "item": "{{item}}"}',
            "useExpression": True,
        },
    }


@pytest.mark.asyncio
async def test_count_mode_runs_three_iterations(make_context):
    graph = _loop_graph({"loopMode": "count", "count": 3}, [_recorder()])
    context = make_context(graph)

    result = await dispatch_node(graph.get_node("loop"), context)
    output = result.output

    assert output["count"] == 3
    assert [r["value"]["index"] for r in output["results"]] == [0, 1, 2]
    assert [r["value"]["isLast"] for r in output["results"]] == [False, False, True]
    assert output["iterations"] == [{"index": i, "item": i} for i in range(3)]
    assert output["index"] == 2
    assert output["completed"]["lastOutput"] == output["results"][-1]
    assert context.results["rec"].iteration == 2


@pytest.mark.asyncio
async def test_condition_mode_stops_at_first_false(make_context):
    graph = _loop_graph(
        {"loopMode": "condition", "conditionExpression": "{{index}} < 5", "maxIterations": 100}
    )
    result = await dispatch_node(graph.get_node("loop"), make_context(graph))
    assert result.output["count"] == 5
    assert [it["index"] for it in result.output["iterations"]] == [0, 1, 2, 3, 4]


@pytest.mark.asyncio
async def test_condition_mode_is_capped_by_max_iterations(make_context):
    graph = _loop_graph({"loopMode": "condition", "conditionExpression": "true", "maxIterations": 7})
    result = await dispatch_node(graph.get_node("loop"), make_context(graph))
    assert result.output["count"] == 7


def test_max_iterations_hard_cap():
    node = NodeSpec(id="loop", type="loop", config={"maxIterations": 10**9})
    assert max_iterations_for(node) == MAX_ITERATIONS_CAP
    assert max_iterations_for(NodeSpec(id="l", type="loop")) == 1000


@pytest.mark.asyncio
async def test_array_mode_prefers_bound_input(make_context):
    graph = _loop_graph({"loopMode": "array", "arraySource": '["x"]'})
    node = graph.get_node("loop")
    context = make_context(graph)
    iterations = compute_iterations(node, {"array": ["a", "b"]}, context)
    assert [it.item for it in iterations] == ["a", "b"]


@pytest.mark.asyncio
async def test_array_mode_variable_then_json_literal(make_context):
    node = NodeSpec(id="loop", type="loop", config={"loopMode": "array", "arraySource": "{{files}}"})
    context = make_context(variables={"files": ["a.txt", "b.txt"]})
    assert [it.item for it in compute_iterations(node, {}, context)] == ["a.txt", "b.txt"]

    literal = NodeSpec(id="loop", type="loop", config={"loopMode": "array", "arraySource": "[1, 2, 3]"})
    assert [it.item for it in compute_iterations(literal, {}, context)] == [1, 2, 3]


@pytest.mark.asyncio
async def test_array_mode_truncates_to_max_iterations(make_context):
    node = NodeSpec(
        id="loop",
        type="loop",
        config={"loopMode": "array", "arraySource": "[1, 2, 3, 4]", "maxIterations": 2},
    )
    assert len(compute_iterations(node, {}, make_context())) == 2


@pytest.mark.asyncio
async def test_custom_loop_variable_names(make_context):
    child = {
        "id": "rec",
        "type": "set",
        "parentId": "loop",
        "config": {"variableName": "last", "variableValue": "{{file}}#{{i}}", "useExpression": True},
    }
    graph = _loop_graph(
        {
            "loopMode": "array",
            "arraySource": '["a", "b"]',
            "loopVariable": "file",
            "indexVariable": "i",
        },
        [child],
    )
    context = make_context(graph)
    result = await dispatch_node(graph.get_node("loop"), context)
    assert [r["value"] for r in result.output["results"]] == ["a#0", "b#1"]
    assert result.output["file"] == "b"
    assert result.output["i"] == 1
    assert context.variables["last"] == "b#1"


@pytest.mark.asyncio
async def test_zero_children_still_iterates(make_context):
    graph = _loop_graph({"loopMode": "count", "count": 4})
    result = await dispatch_node(graph.get_node("loop"), make_context(graph))
    assert result.output["count"] == 4
    assert result.output["results"] == []
    assert result.output["completed"] is None


@pytest.mark.asyncio
async def test_collect_results_false(make_context):
    graph = _loop_graph({"loopMode": "count", "count": 2, "collectResults": False}, [_recorder()])
    result = await dispatch_node(graph.get_node("loop"), make_context(graph))
    assert result.output["results"] == []
    assert result.output["completed"] is None
    assert result.output["count"] == 2


@pytest.mark.asyncio
async def test_body_order_follows_child_edges(make_context, filesystem):
    children = [
        {
            "id": "write",
            "type": "writeFile",
            "parentId": "loop",
            "config": {"filePath": "out-{{index}}.txt"},
        },
        _recorder("produce"),
    ]
    edges = [{"source": "produce", "target": "write"}]
    graph = _loop_graph({"loopMode": "count", "count": 2}, children, edges)
    result = await dispatch_node(graph.get_node("loop"), make_context(graph))

    assert set(filesystem.files) == {"out-0.txt", "out-1.txt"}
    assert result.output["results"][-1]["path"] == "out-1.txt"


@pytest.mark.asyncio
async def test_body_error_fails_loop(make_context):
    child = {"id": "bad", "type": "readFile", "parentId": "loop", "config": {"filePath": "nope"}}
    graph = _loop_graph({"loopMode": "count", "count": 3}, [child])
    context = make_context(graph)
    with pytest.raises(NodeExecutionError) as exc_info:
        await dispatch_node(graph.get_node("loop"), context)
    assert exc_info.value.node_id == "bad"
    assert context.results["loop"].status == "error"
    assert context.results["bad"].iteration == 0


@pytest.mark.asyncio
async def test_cancel_stops_before_next_body_node(make_context, process_runner):
    children = [
        {"id": "cmd", "type": "executeCommand", "parentId": "loop", "config": {"command": "echo {{index}}"}},
        {"id": "after", "type": "set", "parentId": "loop", "config": {"variableName": "x", "variableValue": "1"}},
    ]
    edges = [{"source": "cmd", "target": "after"}]
    graph = _loop_graph({"loopMode": "count", "count": 3}, children, edges)
    context = make_context(graph)

    execute = process_runner.execute

    async def cancel_after_first(root, request, control=None):
        context.control.cancel()
        return await execute(root, request, control)

    process_runner.execute = cancel_after_first

    with pytest.raises(ExecutionCancelled):
        await dispatch_node(graph.get_node("loop"), context)
    assert [r.command for r in process_runner.requests] == ["echo 0"]
    assert context.results["cmd"].status == "success"
    assert "after" not in context.results
    assert "x" not in context.variables
    assert context.results["loop"].status == "skipped"
