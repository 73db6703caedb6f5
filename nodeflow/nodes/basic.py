"""Input, Set, If and Output nodes."""

import json
import logging
import math
from typing import Any

from nodeflow.errors import NodeExecutionError
from nodeflow.graph.context import ExecutionContext, LogLevel, OutputEvent
from nodeflow.graph.model import NodeSpec, NodeType
from nodeflow.graph.resolver import get_path
from nodeflow.graph.safe_eval import evaluate_condition
from nodeflow.nodes.base import NodeExecutor

logger = logging.getLogger(__name__)

OUTPUT_TYPES = ("display", "copy", "download")


def coerce_input_value(raw: str, input_type: str) -> Any:
    """Convert the text of an Input node to its declared kind."""
    if input_type == "number":
        try:
            value = float(raw.strip())
        except ValueError:
            return 0
        if math.isnan(value) or math.isinf(value):
            return 0
        return int(value) if value.is_integer() else value
    if input_type == "boolean":
        return raw.strip().lower() == "true" or raw.strip() == "1"
    return raw


def parse_literal(text: str) -> Any:
    """JSON literal (number, array, object, true/false/null) or the text itself."""
    try:
        return json.loads(text.strip())
    except (json.JSONDecodeError, ValueError):
        return text


class InputNodeExecutor(NodeExecutor):
    node_type = NodeType.INPUT

    async def execute(self, node: NodeSpec, node_input: dict[str, Any], context: ExecutionContext):
        input_type = node.get_config("inputType", "string")
        prompt = context.interpolate(node.get_config("prompt", ""), node_input)

        override = context.user_inputs.get(node.id)
        if override is not None and str(override) != "":
            raw = str(override)
        else:
            raw = context.interpolate(node.get_config("defaultValue", ""), node_input)

        value = coerce_input_value(raw, input_type)
        context.log(LogLevel.INFO, f"Input value: {value!r}", node, data={"inputType": input_type})
        return {"value": value, "prompt": prompt, "inputType": input_type}


class SetNodeExecutor(NodeExecutor):
    node_type = NodeType.SET

    async def execute(self, node: NodeSpec, node_input: dict[str, Any], context: ExecutionContext):
        name = str(node.get_config("variableName", "")).strip()
        if not name:
            raise NodeExecutionError("Set node has no variableName", node_id=node.id)

        raw = node.get_config("variableValue", "")
        if node.get_config("useExpression", False):
            value = parse_literal(context.interpolate(raw, node_input))
        else:
            value = raw

        context.variables[name] = value
        context.log(LogLevel.INFO, f"Set {name} = {value!r}", node)
        return {name: value, "value": value}


class IfNodeExecutor(NodeExecutor):
    """
    Evaluates a condition and routes the input to the ``true`` or ``false`` port.

    Downstream nodes of both ports still run; the branch not taken receives None.
    """

    node_type = NodeType.IF

    async def execute(self, node: NodeSpec, node_input: dict[str, Any], context: ExecutionContext):
        expression = node.get_config("expression") or node.get_config("condition") or ""
        interpolated = context.interpolate(expression, node_input)
        result = evaluate_condition(interpolated, context.template_context(node_input))

        context.log(
            LogLevel.INFO,
            f"Condition evaluated to: {str(result).lower()}",
            node,
            data={"expression": interpolated, "result": result},
        )
        return {
            "result": result,
            "true": node_input if result else None,
            "false": None if result else node_input,
        }


class OutputNodeExecutor(NodeExecutor):
    node_type = NodeType.OUTPUT

    async def execute(self, node: NodeSpec, node_input: dict[str, Any], context: ExecutionContext):
        output_type = node.get_config("outputType", "display")
        if output_type not in OUTPUT_TYPES:
            context.log(LogLevel.WARN, f"Unknown outputType '{output_type}', using display", node)
            output_type = "display"

        if node.get_config("source") == "variable":
            name = str(node.get_config("variableName", ""))
            data = get_path(context.template_context(), name) if name else None
        elif node_input.get("data") is not None:
            data = node_input["data"]
        elif list(node_input) == ["input"]:
            data = node_input["input"]
        else:
            data = node_input

        if isinstance(data, str):
            text = data
        elif data is None:
            text = ""
        else:
            text = json.dumps(data, indent=2, ensure_ascii=False, default=str)

        context.log(LogLevel.INFO, f"Output ({output_type}): {text[:500]}", node, data=data)
        context.emit_output(OutputEvent(node_id=node.id, output_type=output_type, text=text, data=data))
        return {"data": data, "outputType": output_type}
