"""
Workflow Store - persisted workflow documents.

A workspace keeps its workflow at ``<workspace>/.nodeflow/workflow.json``:

    {"metadata": {...}, "nodes": [...], "edges": [...], "viewport": {...}}
"""

import asyncio
import json
import logging
import os
import tempfile
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path

from pydantic import ValidationError

from nodeflow.config import WORKSPACE_DIR_NAME
from nodeflow.errors import GraphValidationError
from nodeflow.graph.model import WorkflowDocument

logger = logging.getLogger(__name__)

WORKFLOW_FILE_NAME = "workflow.json"


@contextmanager
def atomic_write(path: Path, encoding: str = "utf-8"):
    """Write to a temp file in the target directory, then rename over ``path``."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding=encoding) as f:
            yield f
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


def parse_document(text: str, source: str = "<string>") -> WorkflowDocument:
    """Parse a workflow document; structural problems raise GraphValidationError."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise GraphValidationError([f"{source}: invalid JSON ({e})"]) from e
    if not isinstance(data, dict):
        raise GraphValidationError([f"{source}: expected a JSON object"])
    try:
        return WorkflowDocument.model_validate(data)
    except ValidationError as e:
        problems = [
            f"{source}: {'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        ]
        raise GraphValidationError(problems) from e


def load_document(path: str | Path) -> WorkflowDocument:
    path = Path(path)
    return parse_document(path.read_text(encoding="utf-8"), source=str(path))


def save_document(path: str | Path, document: WorkflowDocument) -> None:
    document.metadata.updated_at = datetime.now(UTC).isoformat()
    with atomic_write(Path(path)) as f:
        f.write(document.model_dump_json(by_alias=True, indent=2, exclude_none=True))


class WorkflowStore:
    """
    Loads and saves the workflow of one workspace.

    Directory structure:
        <workspace>/
            .nodeflow/
                workflow.json
    """

    def __init__(self, workspace_path: str | Path):
        self.workspace_path = Path(workspace_path)
        self.path = self.workspace_path / WORKSPACE_DIR_NAME / WORKFLOW_FILE_NAME

    def exists(self) -> bool:
        return self.path.exists()

    async def load(self) -> WorkflowDocument | None:
        """
        Load the workspace's workflow.

        Returns:
            The document, or None when the workspace has no workflow yet

        Raises:
            GraphValidationError: If the file exists but is not a valid document
        """
        if not self.path.exists():
            logger.info(f"No workflow at {self.path}")
            return None
        return await asyncio.to_thread(load_document, self.path)

    async def save(self, document: WorkflowDocument) -> Path:
        await asyncio.to_thread(save_document, self.path, document)
        logger.debug(f"Saved workflow {document.metadata.id} to {self.path}")
        return self.path
