"""Chat node: one LLM completion."""

from typing import Any

from nodeflow.config import RuntimeConfig
from nodeflow.errors import LLMError, NodeExecutionError
from nodeflow.graph.context import ExecutionContext, LogLevel
from nodeflow.graph.model import NodeSpec, NodeType
from nodeflow.llm.provider import ChatOptions
from nodeflow.llm.stream_events import FinishEvent, StreamErrorEvent, TextDeltaEvent
from nodeflow.nodes.base import NodeExecutor


def chat_options(node: NodeSpec, config: RuntimeConfig) -> ChatOptions:
    """Sampling options from the node, falling back to the runtime configuration."""
    return ChatOptions(
        temperature=float(node.get_config("temperature", config.temperature)),
        top_p=float(node.get_config("topP", 0.9)),
        max_tokens=int(node.get_config("maxTokens") or config.max_tokens),
    )


class ChatNodeExecutor(NodeExecutor):
    node_type = NodeType.CHAT

    async def execute(self, node: NodeSpec, node_input: dict[str, Any], context: ExecutionContext):
        system_prompt = context.interpolate(node.get_config("systemPrompt", ""), node_input)
        user_message = context.interpolate(node.get_config("userMessage", ""), node_input)
        if not user_message.strip():
            raise NodeExecutionError("User message is empty", node_id=node.id)

        messages = []
        if system_prompt.strip():
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": user_message})

        llm = context.host.llm
        model = node.get_config("model")
        options = chat_options(node, context.host.config)
        context.log(LogLevel.INFO, f"Calling {model or 'default model'}", node)

        try:
            if node.get_config("stream", False):
                response = ""
                async for event in llm.stream(messages, model=model, options=options):
                    if isinstance(event, TextDeltaEvent):
                        response += event.content
                        context.emit_stream(node.id, event.content)
                    elif isinstance(event, FinishEvent):
                        model = event.model or model
                    elif isinstance(event, StreamErrorEvent):
                        raise LLMError(event.error)
            else:
                result = await llm.chat(messages, model=model, options=options)
                response = result.content
                model = result.model or model
        except LLMError as e:
            raise NodeExecutionError(f"LLM call failed: {e}", node_id=node.id) from e

        context.log(LogLevel.INFO, f"Response received ({len(response)} characters)", node)
        return {"response": response, "model": model}
