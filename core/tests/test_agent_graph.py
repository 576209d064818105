"""Tests for the reference agent graph: predicates, hooks and wiring."""

import pytest

from convograph.graph.agent_graph import (
    NODE_HUMAN,
    NODE_INPUT,
    NODE_MODEL,
    NODE_OUTPUT,
    NODE_TOOLS,
    build_agent_graph,
    convert_output,
    fold_user_input,
    record_input,
    route_after_human,
    route_after_model,
)
from convograph.llm.mock import MockLLMProvider
from convograph.runner.tool_registry import default_tool_registry
from convograph.schemas.message import Message, Role, ToolCall
from convograph.schemas.payload import MessageListPayload, MessagePayload
from convograph.schemas.state import ConversationState


class TestRouting:
    """Branch predicates are pure functions of the node output."""

    def test_tool_calls_route_to_tools(self):
        output = MessagePayload(
            message=Message.assistant(tool_calls=[ToolCall.create(id="1", name="echo")])
        )
        assert route_after_model(output) == "ToolsNode"

    def test_no_tool_calls_route_to_human(self):
        output = MessagePayload(message=Message.assistant("hi", tool_calls=[]))
        assert route_after_model(output) == "Human"

    def test_new_user_message_loops_back_to_model(self):
        output = MessageListPayload(messages=[Message.user("continue")])
        assert route_after_human(output) == NODE_MODEL

    def test_no_new_input_finishes(self):
        output = MessageListPayload(messages=[Message.assistant("bye")])
        assert route_after_human(output) == NODE_OUTPUT

    def test_empty_output_finishes(self):
        assert route_after_human(MessageListPayload()) == NODE_OUTPUT


class TestHooks:
    """Each state node records its own contribution to history."""

    def test_record_input_keeps_system_prompt_on_first_turn(self):
        state = ConversationState()
        payload = MessageListPayload(messages=[Message.system("sys"), Message.user("hi")])
        output = record_input(payload, state)
        assert [m.role for m in state.history] == [Role.SYSTEM, Role.USER]
        assert len(output.messages) == 2

    def test_record_input_drops_system_prompt_later(self):
        state = ConversationState(history=[Message.system("sys"), Message.user("a")])
        payload = MessageListPayload(messages=[Message.system("sys"), Message.user("b")])
        output = record_input(payload, state)
        assert [m.content for m in state.history] == ["sys", "a", "b"]
        assert [m.role for m in output.messages] == [Role.USER]

    def test_fold_user_input_appends_one_user_message(self):
        reply = Message.assistant("question?")
        state = ConversationState(history=[reply], pending_user_input="answer")
        output = fold_user_input(MessageListPayload(messages=[reply]), state)
        assert [m.role for m in state.history] == [Role.ASSISTANT, Role.USER]
        assert state.history[-1].content == "answer"
        assert state.pending_user_input == ""
        assert output.messages == [Message.user("answer")]

    def test_fold_user_input_without_input_passes_through(self):
        reply = Message.assistant("question?")
        state = ConversationState(history=[reply])
        payload = MessageListPayload(messages=[reply])
        output = fold_user_input(payload, state)
        assert output is payload
        assert len(state.history) == 1

    def test_convert_output(self):
        payload = MessageListPayload(messages=[Message.user("a"), Message.assistant("b")])
        assert convert_output(payload).text == "b"
        assert convert_output(MessageListPayload()).text == ""


class TestBuildAgentGraph:
    """The stock wiring passes validation."""

    def test_builds(self):
        graph = build_agent_graph(MockLLMProvider(), default_tool_registry(), max_steps=7)
        assert graph.entry_node == NODE_INPUT
        assert graph.terminal_node == NODE_OUTPUT
        assert graph.suspension_nodes == [NODE_HUMAN]
        assert graph.max_steps == 7
        assert graph.successors(NODE_MODEL) == {NODE_TOOLS, NODE_HUMAN}
        assert graph.successors(NODE_HUMAN) == {NODE_MODEL, NODE_OUTPUT}
        assert graph.successors(NODE_TOOLS) == {NODE_MODEL}

    @pytest.mark.asyncio
    async def test_chat_model_sends_full_history_and_tools(self):
        llm = MockLLMProvider([Message.assistant("hello there")])
        graph = build_agent_graph(llm, default_tool_registry(), system_prompt="be brief")
        node = graph.get_node(NODE_MODEL)
        state = ConversationState(history=[Message.system("be brief"), Message.user("hi")])

        output = await node.run(MessageListPayload(messages=[Message.user("hi")]), state)

        sent_messages, sent_tools = llm.calls[0]
        assert [m.content for m in sent_messages] == ["be brief", "hi"]
        assert [t.name for t in sent_tools] == ["echo"]
        assert output.message.content == "hello there"
        assert state.history[-1].content == "hello there"

    @pytest.mark.asyncio
    async def test_tools_node_answers_calls_in_order(self):
        graph = build_agent_graph(MockLLMProvider(), default_tool_registry())
        node = graph.get_node(NODE_TOOLS)
        request = Message.assistant(
            tool_calls=[
                ToolCall.create("a", "echo", '{"text": "first"}'),
                ToolCall.create("b", "echo", '{"text": "second"}'),
            ]
        )
        state = ConversationState(history=[request])

        output = await node.run(MessagePayload(message=request), state)

        assert [m.tool_call_id for m in output.messages] == ["a", "b"]
        assert [m.content for m in state.history[1:]] == ["first", "second"]
