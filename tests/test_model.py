"""Tests for graph model parsing and validation."""

from nodeflow.graph.model import EdgeSpec, NodeSpec, NodeType, WorkflowDocument, WorkflowGraph


def test_flat_node_collects_config():
    node = NodeSpec.model_validate(
        {"id": "r", "type": "readFile", "label": "Read", "filePath": "a.txt", "errorIfNotFound": False}
    )
    assert node.type == NodeType.READ_FILE
    assert node.name == "Read"
    assert node.config == {"filePath": "a.txt", "errorIfNotFound": False}


def test_editor_node_shape_is_flattened():
    node = NodeSpec.model_validate(
        {
            "id": "c1",
            "type": "custom",
            "parentId": "loop-1",
            "position": {"x": 10, "y": 20},
            "data": {"nodeType": "ollamaChat", "label": "Chat", "userMessage": "{{item}}"},
        }
    )
    assert node.type == NodeType.CHAT
    assert node.parent_id == "loop-1"
    assert node.get_config("userMessage") == "{{item}}"
    assert "position" not in node.config


def test_get_config_treats_none_as_missing():
    node = NodeSpec(id="n", type="set", config={"variableName": None})
    assert node.get_config("variableName", "x") == "x"


def test_edge_default_id_and_aliases():
    edge = EdgeSpec.model_validate(
        {"source": "a", "target": "b", "sourceHandle": "true", "targetHandle": "data"}
    )
    assert edge.id == "a->b"
    assert edge.source_handle == "true"
    assert edge.target_handle == "data"


def test_validate_reports_structural_problems():
    graph = WorkflowGraph.model_validate(
        {
            "nodes": [
                {"id": "a", "type": "input"},
                {"id": "a", "type": "set"},
                {"id": "b", "type": "set", "parentId": "a"},
                {"id": "c", "type": "teleport"},
            ],
            "edges": [{"source": "a", "target": "ghost"}],
        }
    )
    problems = graph.validate()
    assert any("Duplicate node ID" in p for p in problems)
    assert any("not a loop node" in p for p in problems)
    assert any("unknown type 'teleport'" in p for p in problems)
    assert any("missing target 'ghost'" in p for p in problems)


def test_validate_reports_fan_in_to_single_port():
    graph = WorkflowGraph.model_validate(
        {
            "nodes": [
                {"id": "a", "type": "input"},
                {"id": "b", "type": "input"},
                {"id": "c", "type": "output"},
            ],
            "edges": [{"source": "a", "target": "c"}, {"source": "b", "target": "c"}],
        }
    )
    assert any("not declared multiple" in p for p in graph.validate())


def test_validate_reports_cycle():
    graph = WorkflowGraph.model_validate(
        {
            "nodes": [{"id": "a", "type": "set"}, {"id": "b", "type": "set"}],
            "edges": [{"source": "a", "target": "b"}, {"source": "b", "target": "a"}],
        }
    )
    assert graph.validate() == ["Cycle detected; nodes never scheduled: a, b"]


def test_document_round_trip_keys():
    document = WorkflowDocument.model_validate(
        {
            "metadata": {"id": "wf", "name": "Demo", "createdAt": "2025-01-01T00:00:00+00:00"},
            "nodes": [{"id": "a", "type": "input"}],
            "edges": [],
        }
    )
    dumped = document.model_dump(by_alias=True)
    assert dumped["metadata"]["createdAt"] == "2025-01-01T00:00:00+00:00"
    assert document.to_graph().get_node("a") is not None
