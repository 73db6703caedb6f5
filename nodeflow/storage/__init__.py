"""Persisted workflow documents."""

from nodeflow.storage.workflow_store import (
    WorkflowStore,
    load_document,
    parse_document,
    save_document,
)

__all__ = ["WorkflowStore", "load_document", "parse_document", "save_document"]
