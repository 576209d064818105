"""
Reference conversation graph: a tool-using chat agent with a human checkpoint.

    InputConverter → ChatModel ─┬─(tool calls)──→ ToolsNode → ChatModel
                                └─(no tool calls)→ Human ⏸
    Human ─┬─(newest entry is user)→ ChatModel
           └─(otherwise)──────────→ OutputConverter (terminal)

Every state node records its own contribution to history in its post-hook,
so history grows in exactly the order messages were produced:

- InputConverter: system prompt (first turn only) and the user's text, after
  closing any tool calls a failed run left unanswered
- ChatModel: the assistant reply
- ToolsNode: one tool message per requested call, in request order
- Human: the new user message, when the caller supplied input on resume
"""

import logging

from convograph.graph.builder import GraphBuilder
from convograph.graph.edge import DEFAULT_MAX_STEPS, GraphSpec
from convograph.graph.node import NodeKind, NodeSpec
from convograph.llm.provider import LLMProvider
from convograph.runner.tool_registry import ToolRegistry
from convograph.schemas.message import (
    Message,
    Role,
    extract_last_message,
    outstanding_tool_calls,
)
from convograph.schemas.payload import (
    MessageListPayload,
    MessagePayload,
    PayloadKind,
    TextPayload,
)
from convograph.schemas.state import ConversationState

logger = logging.getLogger(__name__)

NODE_INPUT = "InputConverter"
NODE_MODEL = "ChatModel"
NODE_TOOLS = "ToolsNode"
NODE_HUMAN = "Human"
NODE_OUTPUT = "OutputConverter"

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful assistant. Use the available tools when they help you "
    "answer, and reply concisely."
)

ABORTED_TOOL_RESULT = "<aborted: the run stopped before this tool call was executed>"


# --- Branch predicates -------------------------------------------------------


def route_after_model(output: MessagePayload) -> str:
    """Tool calls go to the tool node; a plain reply waits for the human."""
    if output.message.has_tool_calls:
        return NODE_TOOLS
    return NODE_HUMAN


def route_after_human(output: MessageListPayload) -> str:
    """
    Loop back to the model if the human added a message, otherwise finish.

    The Human node outputs the newest history entry: the folded user message
    on resume with input, the pending assistant reply without.
    """
    if output.messages and output.messages[-1].role == Role.USER:
        return NODE_MODEL
    return NODE_OUTPUT


# --- State hooks --------------------------------------------------------------


def close_aborted_tool_calls(state: ConversationState) -> None:
    """
    Answer tool calls left open by a failed run so the history stays valid.

    A run that stops between ChatModel and ToolsNode leaves an assistant
    message whose calls were never answered; providers reject a user turn
    that follows it.
    """
    pending = outstanding_tool_calls(state.history)
    if not pending:
        return
    last = next(m for m in reversed(state.history) if m.role == Role.ASSISTANT)
    names = {tc.id: tc.function.name for tc in last.tool_calls}
    logger.warning(f"⚠ Closing {len(pending)} unanswered tool call(s) from an aborted run")
    for call_id in pending:
        state.append(Message.tool(ABORTED_TOOL_RESULT, call_id, name=names.get(call_id)))


def record_input(payload: MessageListPayload, state: ConversationState) -> MessageListPayload:
    # The system prompt only opens a conversation
    messages = payload.messages
    if state.history:
        messages = [m for m in messages if m.role != Role.SYSTEM]
    close_aborted_tool_calls(state)
    state.extend(messages)
    return MessageListPayload(messages=messages)


def load_history(payload: MessageListPayload, state: ConversationState) -> MessageListPayload:
    return MessageListPayload(messages=list(state.history))


def record_reply(payload: MessagePayload, state: ConversationState) -> MessagePayload:
    state.append(payload.message)
    return payload


def record_tool_results(
    payload: MessageListPayload, state: ConversationState
) -> MessageListPayload:
    state.extend(payload.messages)
    return payload


def fold_user_input(payload: MessageListPayload, state: ConversationState) -> MessageListPayload:
    """Append non-empty pending input as a user message; pass through otherwise."""
    text = state.take_pending_input()
    if not text.strip():
        return payload
    message = Message.user(text)
    state.append(message)
    return MessageListPayload(messages=[message])


# --- Node bodies --------------------------------------------------------------


def wrap_message(payload: MessagePayload) -> MessageListPayload:
    return MessageListPayload(messages=[payload.message])


def convert_output(payload: MessageListPayload) -> TextPayload:
    return TextPayload(text=extract_last_message(payload.messages))


def make_input_converter(system_prompt: str):
    def convert_input(payload: TextPayload) -> MessageListPayload:
        return MessageListPayload(
            messages=[Message.system(system_prompt), Message.user(payload.text)]
        )

    return convert_input


def make_chat_model(llm: LLMProvider, tools: ToolRegistry):
    async def call_model(payload: MessageListPayload) -> MessagePayload:
        reply = await llm.invoke(payload.messages, list(tools.get_tools().values()))
        if reply.role != Role.ASSISTANT:
            raise ValueError(f"Model returned a {reply.role} message, expected assistant")
        return MessagePayload(message=reply)

    return call_model


def make_tool_dispatch(tools: ToolRegistry):
    async def dispatch_tools(payload: MessagePayload) -> MessageListPayload:
        results = []
        for tool_call in payload.message.tool_calls:
            results.append(await tools.invoke(tool_call))
        return MessageListPayload(messages=results)

    return dispatch_tools


def build_agent_graph(
    llm: LLMProvider,
    tools: ToolRegistry,
    system_prompt: str = DEFAULT_SYSTEM_PROMPT,
    max_steps: int = DEFAULT_MAX_STEPS,
) -> GraphSpec:
    """
    Build and validate the reference agent graph.

    Args:
        llm: Model behind the ChatModel node
        tools: Tools offered to the model and dispatched by ToolsNode
        system_prompt: Opening system message of every conversation
        max_steps: Node executions allowed per invocation

    Raises:
        GraphBuildError: If ``max_steps`` is not positive
    """
    builder = GraphBuilder("agent", description="Tool-using chat agent with human checkpoint")

    builder.add_node(
        NodeSpec(
            id=NODE_INPUT,
            kind=NodeKind.STATE,
            body=make_input_converter(system_prompt),
            post_hook=record_input,
            input_kind=PayloadKind.TEXT,
            output_kind=PayloadKind.MESSAGE_LIST,
            description="Turn user text into the opening messages of a turn",
        )
    )
    builder.add_node(
        NodeSpec(
            id=NODE_MODEL,
            kind=NodeKind.STATE,
            body=make_chat_model(llm, tools),
            pre_hook=load_history,
            post_hook=record_reply,
            input_kind=PayloadKind.MESSAGE_LIST,
            output_kind=PayloadKind.MESSAGE,
            description="Ask the model for the next assistant message",
        )
    )
    builder.add_node(
        NodeSpec(
            id=NODE_TOOLS,
            kind=NodeKind.STATE,
            body=make_tool_dispatch(tools),
            post_hook=record_tool_results,
            input_kind=PayloadKind.MESSAGE,
            output_kind=PayloadKind.MESSAGE_LIST,
            description="Run every tool call of the assistant message, in order",
        )
    )
    builder.add_node(
        NodeSpec(
            id=NODE_HUMAN,
            kind=NodeKind.SUSPENSION,
            body=wrap_message,
            post_hook=fold_user_input,
            input_kind=PayloadKind.MESSAGE,
            output_kind=PayloadKind.MESSAGE_LIST,
            description="Wait for the human, then fold their reply into history",
        )
    )
    builder.add_node(
        NodeSpec(
            id=NODE_OUTPUT,
            body=convert_output,
            input_kind=PayloadKind.MESSAGE_LIST,
            output_kind=PayloadKind.TEXT,
            description="Final text of the conversation",
        )
    )

    builder.add_edge(NODE_INPUT, NODE_MODEL)
    builder.add_branch(NODE_MODEL, route_after_model, {NODE_TOOLS, NODE_HUMAN})
    builder.add_edge(NODE_TOOLS, NODE_MODEL)
    builder.add_branch(NODE_HUMAN, route_after_human, {NODE_MODEL, NODE_OUTPUT})
    builder.set_entry(NODE_INPUT).set_terminal(NODE_OUTPUT).set_max_steps(max_steps)

    logger.debug(f"Agent graph offers {len(tools)} tools to {llm.model or type(llm).__name__}")
    return builder.build()
