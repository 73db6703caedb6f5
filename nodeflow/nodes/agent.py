"""Agent node: a ReAct loop over the configured tools."""

from typing import Any

from nodeflow.agent.react import AgentConfig, ReActAgent
from nodeflow.errors import LLMError, NodeExecutionError
from nodeflow.graph.context import ExecutionContext, LogLevel
from nodeflow.graph.model import NodeSpec, NodeType
from nodeflow.nodes.base import NodeExecutor
from nodeflow.nodes.chat import chat_options
from nodeflow.tools.catalog import resolve_tools
from nodeflow.tools.executor import ToolExecutor

DEFAULT_AGENT_ITERATIONS = 10


class AgentNodeExecutor(NodeExecutor):
    node_type = NodeType.AGENT

    async def execute(self, node: NodeSpec, node_input: dict[str, Any], context: ExecutionContext):
        user_message = context.interpolate(node.get_config("userMessage", ""), node_input)
        if not user_message.strip():
            raise NodeExecutionError("User message is empty", node_id=node.id)

        tools = resolve_tools(node.get_config("enabledTools"), node.get_config("toolConfigs"))
        config = AgentConfig(
            user_message=user_message,
            system_prompt=context.interpolate(node.get_config("systemPrompt", ""), node_input) or None,
            model=node.get_config("model"),
            options=chat_options(node, context.host.config),
            max_iterations=max(1, int(node.get_config("maxIterations", DEFAULT_AGENT_ITERATIONS))),
            stream=bool(node.get_config("stream", False)),
        )
        agent = ReActAgent(
            llm=context.host.llm,
            tools=tools,
            tool_executor=ToolExecutor(context.host, context.workspace_path, control=context.control),
            config=config,
            node_id=node.id,
            control=context.control,
            on_stream=lambda text: context.emit_stream(node.id, text),
            on_update=lambda state: context.agent_states.__setitem__(node.id, state),
        )

        context.log(
            LogLevel.INFO,
            f"Agent started with tools: {', '.join(t.name for t in tools)}",
            node,
            data={"maxIterations": config.max_iterations},
        )
        try:
            result = await agent.run()
        except LLMError as e:
            raise NodeExecutionError(f"LLM call failed: {e}", node_id=node.id) from e

        if result.exhausted:
            context.log(LogLevel.WARN, result.final_answer, node)
        else:
            context.log(LogLevel.INFO, f"Agent finished after {result.iterations} iterations", node)
        return result.to_output()
