"""Closed lookup table from node type to executor."""

from types import MappingProxyType

from nodeflow.errors import UnknownNodeTypeError
from nodeflow.graph.model import NodeType
from nodeflow.nodes.agent import AgentNodeExecutor
from nodeflow.nodes.base import NodeExecutor
from nodeflow.nodes.basic import (
    IfNodeExecutor,
    InputNodeExecutor,
    OutputNodeExecutor,
    SetNodeExecutor,
)
from nodeflow.nodes.chat import ChatNodeExecutor
from nodeflow.nodes.command import ExecuteCommandNodeExecutor
from nodeflow.nodes.files import ReadFileNodeExecutor, WriteFileNodeExecutor
from nodeflow.nodes.loop import LoopNodeExecutor

_EXECUTORS: tuple[NodeExecutor, ...] = (
    InputNodeExecutor(),
    SetNodeExecutor(),
    IfNodeExecutor(),
    LoopNodeExecutor(),
    OutputNodeExecutor(),
    ReadFileNodeExecutor(),
    WriteFileNodeExecutor(),
    ExecuteCommandNodeExecutor(),
    ChatNodeExecutor(),
    AgentNodeExecutor(),
)

EXECUTORS: MappingProxyType = MappingProxyType({e.node_type: e for e in _EXECUTORS})


def get_executor(node_type: str) -> NodeExecutor:
    try:
        return EXECUTORS[NodeType(node_type)]
    except (KeyError, ValueError):
        raise UnknownNodeTypeError(f"Unknown node type: {node_type}") from None
