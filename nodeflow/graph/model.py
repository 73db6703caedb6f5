"""
Graph model: nodes, edges and the persisted workflow document.

A workflow is a list of typed nodes plus edges projecting one node's output
(optionally a single field of it, via ``sourceHandle``) onto a named input
port of another node (``targetHandle``). Nodes with a ``parentId`` live inside
a Loop node and are run by the loop, once per iteration.

Two JSON shapes are accepted for nodes:

- flat:   ``{"id", "type", "parentId", "config": {...}}`` (unknown keys go to config)
- editor: ``{"id", "type", "parentId", "position", "data": {"nodeType", "label", ...}}``
"""

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, model_validator

from nodeflow.graph.scheduler import find_unscheduled


class NodeType(StrEnum):
    """Closed set of node type tags."""

    INPUT = "input"
    SET = "set"
    IF = "if"
    LOOP = "loop"
    OUTPUT = "output"
    READ_FILE = "readFile"
    WRITE_FILE = "writeFile"
    EXECUTE_COMMAND = "executeCommand"
    CHAT = "chat"
    AGENT = "agent"


# Type tags written by older editor versions.
LEGACY_NODE_TYPES = {
    "ollamaChat": NodeType.CHAT,
    "reactAgent": NodeType.AGENT,
}

KNOWN_NODE_TYPES = frozenset(str(t) for t in NodeType)


class NodeStatus(StrEnum):
    """UI-facing status mirrored onto the node during a run."""

    IDLE = "idle"
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"


class PortSpec(BaseModel):
    """A named input or output port on a node."""

    id: str
    label: str = ""
    data_type: str = Field(default="any", alias="dataType")
    required: bool = False
    multiple: bool = Field(default=False, description="Port accepts more than one incoming edge")

    model_config = {"extra": "allow", "populate_by_name": True}


# Keys of the editor/flat node shapes that are not node configuration.
_NODE_FIELDS = {"id", "type", "label", "parentId", "parent_id", "inputs", "outputs", "config"}
_NODE_RUNTIME_FIELDS = {"status", "error"}
_EDITOR_ONLY_FIELDS = {
    "position",
    "width",
    "height",
    "measured",
    "selected",
    "dragging",
    "extent",
    "expandParent",
    "style",
    "zIndex",
    "sourcePosition",
    "targetPosition",
    "hidden",
    "deletable",
    "draggable",
    "selectable",
    "className",
}


class NodeSpec(BaseModel):
    """
    One processing node.

    Type-specific settings (``filePath``, ``loopMode``, ``systemPrompt`` ...)
    live in ``config`` under the same camelCase keys the editor writes.
    ``status`` and ``error`` are the only fields mutated during a run.
    """

    id: str = Field(description="Unique node identifier")
    type: str = Field(description="Node type tag, selects the executor")
    label: str = ""
    parent_id: str | None = Field(
        default=None,
        alias="parentId",
        description="Enclosing Loop node, if this node is part of a loop body",
    )
    inputs: list[PortSpec] = Field(default_factory=list)
    outputs: list[PortSpec] = Field(default_factory=list)
    config: dict[str, Any] = Field(default_factory=dict)
    status: NodeStatus = NodeStatus.IDLE
    error: str | None = None

    model_config = {"extra": "ignore", "populate_by_name": True}

    @model_validator(mode="before")
    @classmethod
    def _normalize_shape(cls, values: Any) -> Any:
        if not isinstance(values, dict):
            return values
        values = dict(values)

        data = values.pop("data", None)
        config = dict(values.get("config") or {})

        if isinstance(data, dict):
            data = dict(data)
            node_type = data.pop("nodeType", None) or data.pop("type", None)
            if node_type:
                values["type"] = node_type
            for key in ("label", "inputs", "outputs"):
                if key in data:
                    values.setdefault(key, data.pop(key))
            for key in _NODE_RUNTIME_FIELDS:
                data.pop(key, None)
            config.update(data)

        for key in list(values):
            if key in _NODE_FIELDS or key in _NODE_RUNTIME_FIELDS:
                continue
            value = values.pop(key)
            if key not in _EDITOR_ONLY_FIELDS:
                config[key] = value

        node_type = values.get("type")
        if isinstance(node_type, str) and node_type in LEGACY_NODE_TYPES:
            values["type"] = str(LEGACY_NODE_TYPES[node_type])

        values["config"] = config
        return values

    @property
    def name(self) -> str:
        return self.label or self.id

    def get_config(self, key: str, default: Any = None) -> Any:
        """Return a configuration value, treating explicit nulls as missing."""
        value = self.config.get(key)
        return default if value is None else value

    def get_input_port(self, port_id: str) -> PortSpec | None:
        for port in self.inputs:
            if port.id == port_id:
                return port
        return None

    def mark(self, status: NodeStatus, error: str | None = None) -> None:
        self.status = status
        self.error = error


class EdgeSpec(BaseModel):
    """Connection from one node's output to another node's input port."""

    id: str = ""
    source: str = Field(description="Source node ID")
    target: str = Field(description="Target node ID")
    source_handle: str | None = Field(
        default=None,
        alias="sourceHandle",
        description="Field of the source output to project; whole output when absent",
    )
    target_handle: str | None = Field(
        default=None,
        alias="targetHandle",
        description="Input port receiving the value; 'input' when absent",
    )

    model_config = {"extra": "allow", "populate_by_name": True}

    @model_validator(mode="after")
    def _default_id(self) -> "EdgeSpec":
        if not self.id:
            self.id = f"{self.source}->{self.target}"
        return self


class WorkflowGraph(BaseModel):
    """The nodes and edges of one run."""

    nodes: list[NodeSpec] = Field(default_factory=list)
    edges: list[EdgeSpec] = Field(default_factory=list)

    model_config = {"extra": "allow"}

    def get_node(self, node_id: str) -> NodeSpec | None:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def get_incoming_edges(self, node_id: str) -> list[EdgeSpec]:
        return [e for e in self.edges if e.target == node_id]

    def get_outgoing_edges(self, node_id: str) -> list[EdgeSpec]:
        return [e for e in self.edges if e.source == node_id]

    def children_of(self, loop_id: str) -> list[NodeSpec]:
        """Direct children of a Loop node, in node-list order."""
        return [n for n in self.nodes if n.parent_id == loop_id]

    def validate(self) -> list[str]:
        """Validate the graph structure. Returns human-readable problems (empty if valid)."""
        errors = []
        by_id: dict[str, NodeSpec] = {}

        for node in self.nodes:
            if node.id in by_id:
                errors.append(f"Duplicate node ID: '{node.id}'")
            by_id[node.id] = node
            if node.type not in KNOWN_NODE_TYPES:
                errors.append(f"Node '{node.id}' has unknown type '{node.type}'")

        for node in self.nodes:
            if node.parent_id is None:
                continue
            parent = by_id.get(node.parent_id)
            if parent is None:
                errors.append(f"Node '{node.id}' references missing parent '{node.parent_id}'")
            elif parent.type != NodeType.LOOP:
                errors.append(
                    f"Node '{node.id}' has parent '{node.parent_id}' which is not a loop node"
                )

        fan_in: dict[tuple[str, str], int] = {}
        for edge in self.edges:
            if edge.source not in by_id:
                errors.append(f"Edge '{edge.id}' references missing source '{edge.source}'")
            if edge.target not in by_id:
                errors.append(f"Edge '{edge.id}' references missing target '{edge.target}'")
                continue
            key = (edge.target, edge.target_handle or "input")
            fan_in[key] = fan_in.get(key, 0) + 1

        for (target, port_id), count in fan_in.items():
            if count < 2:
                continue
            port = by_id[target].get_input_port(port_id)
            if port is None or not port.multiple:
                errors.append(
                    f"Port '{port_id}' of node '{target}' has {count} incoming edges "
                    f"but is not declared multiple"
                )

        if not errors:
            cyclic = find_unscheduled(self)
            if cyclic:
                errors.append(f"Cycle detected; nodes never scheduled: {', '.join(cyclic)}")

        return errors


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class WorkflowMetadata(BaseModel):
    id: str = "default"
    name: str = "Untitled workflow"
    created_at: str = Field(default_factory=_now_iso, alias="createdAt")
    updated_at: str = Field(default_factory=_now_iso, alias="updatedAt")
    version: str = "1.0.0"

    model_config = {"extra": "allow", "populate_by_name": True}


class WorkflowDocument(BaseModel):
    """Persisted workflow: metadata, nodes, edges and the editor viewport."""

    metadata: WorkflowMetadata = Field(default_factory=WorkflowMetadata)
    nodes: list[NodeSpec] = Field(default_factory=list)
    edges: list[EdgeSpec] = Field(default_factory=list)
    viewport: dict[str, Any] | None = None

    model_config = {"extra": "allow"}

    def to_graph(self) -> WorkflowGraph:
        return WorkflowGraph(nodes=self.nodes, edges=self.edges)
