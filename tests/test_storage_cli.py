"""Tests for workflow document storage and the command line."""

import json

import pytest

from nodeflow import cli
from nodeflow.errors import GraphValidationError
from nodeflow.graph.model import WorkflowDocument
from nodeflow.storage import WorkflowStore, load_document, parse_document

WORKFLOW = {
    "metadata": {"id": "wf-1", "name": "Greeting", "version": "1.0.0"},
    "nodes": [
        {
            "id": "name",
            "type": "custom",
            "position": {"x": 0, "y": 0},
            "data": {"nodeType": "input", "label": "Name", "defaultValue": "World"},
        },
        {
            "id": "save",
            "type": "custom",
            "data": {
                "nodeType": "writeFile",
                "filePath": "hello.txt",
                "contentSource": "direct",
                "directContent": "Hello {{value}}!",
            },
        },
        {"id": "show", "type": "output", "outputType": "display"},
    ],
    "edges": [
        {"id": "e1", "source": "name", "target": "save"},
        {"id": "e2", "source": "save", "target": "show"},
    ],
    "viewport": {"x": 0, "y": 0, "zoom": 1},
}


@pytest.fixture
def workflow_file(tmp_path):
    path = tmp_path / "workflow.json"
    path.write_text(json.dumps(WORKFLOW), encoding="utf-8")
    return path


# ---- Storage ----


def test_load_document_editor_shape(workflow_file):
    document = load_document(workflow_file)
    assert document.metadata.name == "Greeting"
    assert document.nodes[0].type == "input"
    assert document.nodes[1].get_config("directContent") == "Hello {{value}}!"


def test_parse_document_invalid_json():
    with pytest.raises(GraphValidationError, match="invalid JSON"):
        parse_document("{nope")


def test_parse_document_missing_fields():
    with pytest.raises(GraphValidationError) as exc_info:
        parse_document(json.dumps({"nodes": [{"type": "input"}]}))
    assert any("id" in problem for problem in exc_info.value.errors)


@pytest.mark.asyncio
async def test_store_round_trip(tmp_path):
    store = WorkflowStore(tmp_path)
    assert await store.load() is None

    document = WorkflowDocument.model_validate(WORKFLOW)
    path = await store.save(document)
    assert path == tmp_path / ".nodeflow" / "workflow.json"

    loaded = await store.load()
    assert [n.id for n in loaded.nodes] == ["name", "save", "show"]
    assert loaded.edges[0].id == "e1"
    saved = json.loads(path.read_text(encoding="utf-8"))
    assert "createdAt" in saved["metadata"]


# ---- CLI ----


def test_cli_validate_ok(workflow_file, capsys):
    with pytest.raises(SystemExit) as exc_info:
        cli.main(["validate", str(workflow_file)])
    assert exc_info.value.code == 0
    assert "OK (3 nodes, 2 edges)" in capsys.readouterr().out


def test_cli_validate_reports_problems(tmp_path, capsys):
    path = tmp_path / "bad.json"
    path.write_text(
        json.dumps({"nodes": [{"id": "a", "type": "set"}], "edges": [{"source": "a", "target": "b"}]}),
        encoding="utf-8",
    )
    with pytest.raises(SystemExit) as exc_info:
        cli.main(["validate", str(path)])
    assert exc_info.value.code == 1
    assert "missing target 'b'" in capsys.readouterr().err


def test_cli_order(workflow_file, capsys):
    with pytest.raises(SystemExit) as exc_info:
        cli.main(["order", str(workflow_file)])
    assert exc_info.value.code == 0
    assert capsys.readouterr().out.split("\n")[:3] == ["name (input)", "save (writeFile)", "show (output)"]


def test_cli_run(workflow_file, tmp_path, capsys):
    workspace = tmp_path / "ws"
    workspace.mkdir()
    with pytest.raises(SystemExit) as exc_info:
        cli.main(
            ["run", str(workflow_file), "--workspace", str(workspace), "--input", "name=Ada", "--quiet"]
        )
    assert exc_info.value.code == 0
    assert (workspace / "hello.txt").read_text(encoding="utf-8") == "Hello Ada!"
    assert '"path": "hello.txt"' in capsys.readouterr().out


def test_cli_run_missing_file(tmp_path, capsys):
    with pytest.raises(SystemExit) as exc_info:
        cli.main(["run", str(tmp_path / "absent.json")])
    assert exc_info.value.code == 1
    assert "Workflow not found" in capsys.readouterr().err
