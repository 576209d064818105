"""
Tests for GraphExecutor: suspend/resume, step limits, failure persistence,
per-key isolation and checkpoint stability.
"""

import asyncio

import pytest

from convograph.errors import NodeExecutionError, StepLimitExceeded, StoreError
from convograph.graph.agent_graph import ABORTED_TOOL_RESULT, build_agent_graph
from convograph.graph.builder import GraphBuilder
from convograph.graph.executor import GraphExecutor
from convograph.graph.node import NodeKind, NodeSpec
from convograph.llm.mock import MockLLMProvider
from convograph.llm.provider import LLMProvider
from convograph.runner.tool_registry import default_tool_registry
from convograph.schemas.checkpoint import Checkpoint, RunStatus
from convograph.schemas.message import (
    Message,
    Role,
    outstanding_tool_calls,
    validate_history,
)
from convograph.schemas.payload import PayloadKind, TextPayload
from convograph.storage.checkpoint_store import InMemoryCheckpointStore

# === HELPERS ===


def make_executor(replies=None, llm: LLMProvider | None = None, store=None, max_steps=20):
    llm = llm or MockLLMProvider(replies)
    graph = build_agent_graph(
        llm, default_tool_registry(), system_prompt="sys", max_steps=max_steps
    )
    return GraphExecutor(graph=graph, store=store or InMemoryCheckpointStore()), llm


async def load(executor: GraphExecutor, key: str) -> Checkpoint:
    checkpoint = await executor.inspect(key)
    assert checkpoint is not None
    return checkpoint


def roles(history: list[Message]) -> list[str]:
    return [m.role.value for m in history]


def always_call_tool(messages: list[Message]) -> Message:
    return MockLLMProvider.tool_call_reply("echo", {"text": "again"}, call_id="1")


class BrokenStore:
    """Store whose get/set can be made to fail."""

    def __init__(self, fail_get: bool = False, fail_set: bool = False):
        self.inner = InMemoryCheckpointStore()
        self.fail_get = fail_get
        self.fail_set = fail_set

    async def get(self, key: str) -> bytes | None:
        if self.fail_get:
            raise OSError("disk gone")
        return await self.inner.get(key)

    async def set(self, key: str, data: bytes) -> None:
        if self.fail_set:
            raise OSError("disk full")
        await self.inner.set(key, data)


class TrackingLLM(LLMProvider):
    """Replies to the newest user message and records how many calls overlap."""

    model = "tracking"

    def __init__(self, delay: float = 0.05):
        self.delay = delay
        self.active = 0
        self.max_active = 0

    async def invoke(self, messages, tools=None) -> Message:
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        await asyncio.sleep(self.delay)
        self.active -= 1
        last_user = [m for m in messages if m.role == Role.USER][-1]
        return Message.assistant(f"reply to {last_user.content}")


def text_graph_builder(name: str, post_hooks: dict | None = None) -> GraphBuilder:
    """Two state nodes a -> b over text payloads, transitions left to the caller."""

    def passthrough(payload):
        return payload

    post_hooks = post_hooks or {}
    builder = GraphBuilder(name)
    for node_id in ("a", "b"):
        builder.add_node(
            NodeSpec(
                id=node_id,
                kind=NodeKind.STATE,
                body=passthrough,
                post_hook=post_hooks.get(node_id),
                input_kind=PayloadKind.TEXT,
                output_kind=PayloadKind.TEXT,
            )
        )
    return builder.set_entry("a").set_terminal("b")


# === SUSPEND / RESUME ===


class TestSuspendResume:
    """A run halts before the Human node and resumes there on the next call."""

    @pytest.mark.asyncio
    async def test_fresh_run_suspends_before_human(self):
        executor, _ = make_executor([Message.assistant("Hi! What next?")])

        result = await executor.execute("s1", "hello")

        assert result.status == RunStatus.SUSPENDED
        assert result.paused_at == "Human"
        assert result.path == ["InputConverter", "ChatModel"]
        assert result.steps_executed == 2
        assert roles(result.history) == ["system", "user", "assistant"]
        assert result.interrupt is not None
        assert result.interrupt.before_nodes == ["Human"]

        checkpoint = await load(executor, "s1")
        assert checkpoint.status == RunStatus.SUSPENDED
        assert checkpoint.cursor.next_node == "Human"
        assert checkpoint.cursor.payload.message.content == "Hi! What next?"

    @pytest.mark.asyncio
    async def test_resume_appends_exactly_one_user_message(self):
        executor, llm = make_executor([Message.assistant("first"), Message.assistant("second")])
        first = await executor.execute("s1", "hello")
        before = len(first.history)

        result = await executor.execute("s1", "continue")

        # The model saw the old history plus exactly one new user message
        sent, _ = llm.calls[1]
        assert len(sent) == before + 1
        assert sent[-1].role == Role.USER
        assert sent[-1].content == "continue"
        assert result.resumed_from == "Human"
        assert result.path == ["Human", "ChatModel"]
        assert roles(result.history) == ["system", "user", "assistant", "user", "assistant"]
        assert result.is_suspended

    @pytest.mark.asyncio
    async def test_resume_with_empty_input_finalizes(self):
        executor, llm = make_executor([Message.assistant("Anything else?")])
        await executor.execute("s1", "hello")

        result = await executor.execute("s1", "")

        assert result.status == RunStatus.COMPLETED
        assert result.output == "Anything else?"
        assert result.path == ["Human", "OutputConverter"]
        assert len(result.history) == 3
        assert llm.call_count == 1
        assert result.interrupt is None

    @pytest.mark.asyncio
    async def test_message_after_completion_continues_conversation(self):
        executor, _ = make_executor([Message.assistant("one"), Message.assistant("two")])
        await executor.execute("s1", "hello")
        await executor.execute("s1", "")

        result = await executor.execute("s1", "new topic")

        assert result.path == ["InputConverter", "ChatModel"]
        assert roles(result.history) == ["system", "user", "assistant", "user", "assistant"]
        assert result.history[3].content == "new topic"

    @pytest.mark.asyncio
    async def test_history_is_append_only_across_calls(self):
        executor, _ = make_executor()
        snapshots = []
        for text in ["hello", "more", "", "again", "and more"]:
            result = await executor.execute("s1", text)
            snapshots.append([m.model_copy() for m in result.history])

        for earlier, later in zip(snapshots, snapshots[1:], strict=False):
            assert later[: len(earlier)] == earlier

    @pytest.mark.asyncio
    async def test_total_steps_accumulate(self):
        executor, _ = make_executor()
        await executor.execute("s1", "hello")
        result = await executor.execute("s1", "continue")

        assert result.steps_executed == 2
        assert result.total_steps == 4

    @pytest.mark.asyncio
    async def test_label_stored_in_state(self):
        executor, _ = make_executor()
        await executor.execute("s1", "hello", label="support")
        checkpoint = await load(executor, "s1")
        assert checkpoint.state.label == "support"


# === TOOLS AND STEP LIMITS ===


class TestToolLoop:
    """Tool calls loop through ToolsNode back to the model."""

    @pytest.mark.asyncio
    async def test_tool_call_then_reply(self):
        executor, llm = make_executor(
            [
                MockLLMProvider.tool_call_reply("echo", {"text": "ping"}, call_id="1"),
                Message.assistant("pong"),
            ]
        )

        result = await executor.execute("s1", "use the tool")

        assert result.path == ["InputConverter", "ChatModel", "ToolsNode", "ChatModel"]
        assert roles(result.history) == ["system", "user", "assistant", "tool", "assistant"]
        tool_message = result.history[3]
        assert tool_message.tool_call_id == "1"
        assert tool_message.content == "ping"
        assert result.history[-1].content == "pong"
        assert llm.call_count == 2

    @pytest.mark.asyncio
    async def test_step_limit_stops_after_exactly_max_steps(self):
        executor, llm = make_executor([always_call_tool])

        with pytest.raises(StepLimitExceeded) as exc_info:
            await executor.execute("s1", "loop forever", max_steps=3)

        assert exc_info.value.max_steps == 3
        assert exc_info.value.node_id == "ChatModel"
        assert exc_info.value.retryable is False
        assert llm.call_count == 1

        checkpoint = await load(executor, "s1")
        assert checkpoint.status == RunStatus.FAILED
        assert checkpoint.cursor.steps == 3
        assert checkpoint.cursor.path == ["InputConverter", "ChatModel", "ToolsNode"]
        assert checkpoint.error.kind == "StepLimitExceeded"
        assert roles(checkpoint.state.history) == ["system", "user", "assistant", "tool"]

    @pytest.mark.asyncio
    async def test_graph_default_step_limit(self):
        executor, llm = make_executor([always_call_tool], max_steps=5)

        with pytest.raises(StepLimitExceeded):
            await executor.execute("s1", "loop")

        checkpoint = await load(executor, "s1")
        assert checkpoint.cursor.steps == 5
        assert llm.call_count == 2


# === FAILURES ===


class TestFailures:
    """Failures persist the pre-failure state before surfacing."""

    @pytest.mark.asyncio
    async def test_model_error_is_tagged_and_persisted(self):
        def broken(messages):
            raise RuntimeError("model down")

        executor, _ = make_executor([broken])

        with pytest.raises(NodeExecutionError) as exc_info:
            await executor.execute("s1", "hello")

        assert exc_info.value.node_id == "ChatModel"
        assert isinstance(exc_info.value.cause, RuntimeError)
        assert "model down" in str(exc_info.value)

        checkpoint = await load(executor, "s1")
        assert checkpoint.status == RunStatus.FAILED
        assert checkpoint.error.node_id == "ChatModel"
        assert checkpoint.cursor.next_node == "ChatModel"
        assert roles(checkpoint.state.history) == ["system", "user"]

    @pytest.mark.asyncio
    async def test_unknown_tool_fails_tools_node(self):
        executor, _ = make_executor([MockLLMProvider.tool_call_reply("missing", call_id="9")])

        with pytest.raises(NodeExecutionError) as exc_info:
            await executor.execute("s1", "hello")

        assert exc_info.value.node_id == "ToolsNode"
        checkpoint = await load(executor, "s1")
        assert roles(checkpoint.state.history) == ["system", "user", "assistant"]

    @pytest.mark.asyncio
    async def test_retry_failed_resumes_at_failed_node(self):
        attempts = []

        def flaky(messages):
            attempts.append(len(messages))
            if len(attempts) == 1:
                raise RuntimeError("transient")
            return Message.assistant("recovered")

        executor, _ = make_executor([flaky])
        with pytest.raises(NodeExecutionError):
            await executor.execute("s1", "hello")

        result = await executor.retry_failed("s1")

        assert result.resumed_from == "ChatModel"
        assert result.path == ["ChatModel"]
        assert result.is_suspended
        assert roles(result.history) == ["system", "user", "assistant"]
        assert attempts == [2, 2]

    @pytest.mark.asyncio
    async def test_new_turn_after_step_limit_closes_open_tool_calls(self):
        executor, llm = make_executor(
            [always_call_tool, always_call_tool, Message.assistant("done")], max_steps=4
        )

        with pytest.raises(StepLimitExceeded) as exc_info:
            await executor.execute("s1", "loop")
        assert exc_info.value.node_id == "ToolsNode"
        failed = await load(executor, "s1")
        assert outstanding_tool_calls(failed.state.history) == ["1"]

        result = await executor.execute("s1", "try something else")

        sent = llm.calls[-1][0]
        assert roles(sent) == [
            "system",
            "user",
            "assistant",
            "tool",
            "assistant",
            "tool",
            "user",
        ]
        assert validate_history(sent) == []
        assert sent[5].content == ABORTED_TOOL_RESULT
        assert sent[5].tool_call_id == "1"
        assert sent[5].name == "echo"
        assert result.is_suspended
        assert result.history[-1].content == "done"

    @pytest.mark.asyncio
    async def test_retry_failed_requires_failed_run(self):
        executor, _ = make_executor()
        await executor.execute("s1", "hello")
        with pytest.raises(ValueError, match="No failed run"):
            await executor.retry_failed("s1")

    @pytest.mark.asyncio
    async def test_history_rewrite_is_rejected(self):
        def append_x(payload, state):
            state.append(Message.user("x"))
            return payload

        def rewrite_first(payload, state):
            state.history[0] = Message.user("y")
            return payload

        builder = text_graph_builder("rewriter", {"a": append_x, "b": rewrite_first})
        builder.add_edge("a", "b")
        executor = GraphExecutor(graph=builder.build(), store=InMemoryCheckpointStore())

        with pytest.raises(NodeExecutionError, match="append-only") as exc_info:
            await executor.execute("k", "")

        assert exc_info.value.node_id == "b"
        checkpoint = await load(executor, "k")
        assert [m.content for m in checkpoint.state.history] == ["x"]

    @pytest.mark.asyncio
    async def test_branch_to_undeclared_target_fails_branching_node(self):
        builder = text_graph_builder("ghostly")
        builder.add_branch("a", lambda output: "ghost", {"b"})
        executor = GraphExecutor(graph=builder.build(), store=InMemoryCheckpointStore())

        with pytest.raises(NodeExecutionError) as exc_info:
            await executor.execute("k", "")

        assert exc_info.value.node_id == "a"
        assert isinstance(exc_info.value.cause, ValueError)


class TestStoreErrors:
    """Store failures surface as StoreError and always release the key lock."""

    @pytest.mark.asyncio
    async def test_load_failure(self):
        executor, _ = make_executor(store=BrokenStore(fail_get=True))

        with pytest.raises(StoreError) as exc_info:
            await executor.execute("s1", "hello")

        assert exc_info.value.operation == "load"
        assert not executor.locks.locked("s1")
        assert len(executor.locks) == 0

    @pytest.mark.asyncio
    async def test_save_failure(self):
        executor, _ = make_executor(store=BrokenStore(fail_set=True))

        with pytest.raises(StoreError) as exc_info:
            await executor.execute("s1", "hello")

        assert exc_info.value.operation == "save"
        assert "disk full" in str(exc_info.value)
        assert len(executor.locks) == 0

    @pytest.mark.asyncio
    async def test_corrupt_checkpoint(self):
        store = InMemoryCheckpointStore()
        await store.set("s1", b"{not a checkpoint")
        executor, _ = make_executor(store=store)

        with pytest.raises(StoreError, match="load failed"):
            await executor.execute("s1", "hello")


# === CONCURRENCY ===


class TestConcurrency:
    """Different keys run in parallel; the same key is serialized."""

    @pytest.mark.asyncio
    async def test_distinct_keys_interleave_without_mixing(self):
        llm = TrackingLLM()
        executor, _ = make_executor(llm=llm)

        result_a, result_b = await asyncio.gather(
            executor.execute("a", "hello from a"),
            executor.execute("b", "hello from b"),
        )

        assert llm.max_active == 2
        assert [m.content for m in result_a.history[1:]] == [
            "hello from a",
            "reply to hello from a",
        ]
        assert [m.content for m in result_b.history[1:]] == [
            "hello from b",
            "reply to hello from b",
        ]

    @pytest.mark.asyncio
    async def test_interleaved_sessions_match_isolated_runs(self):
        turns = {"a": ["a1", "a2", ""], "b": ["b1", "b2", ""]}

        isolated, _ = make_executor(llm=TrackingLLM(delay=0))
        for key, texts in turns.items():
            for text in texts:
                await isolated.execute(key, text)

        interleaved, _ = make_executor(llm=TrackingLLM(delay=0.01))
        for text_a, text_b in zip(turns["a"], turns["b"], strict=True):
            # A1 then B1 in order, then each later pair concurrently
            if text_a == "a1":
                await interleaved.execute("a", text_a)
                await interleaved.execute("b", text_b)
            else:
                await asyncio.gather(
                    interleaved.execute("a", text_a),
                    interleaved.execute("b", text_b),
                )

        for key in turns:
            expected = await load(isolated, key)
            actual = await load(interleaved, key)
            assert actual.status == expected.status == RunStatus.COMPLETED
            assert actual.state.history == expected.state.history
            assert actual.output == expected.output
            assert actual.cursor.total_steps == expected.cursor.total_steps
        assert [m.content for m in actual.state.history[1:]] == [
            "b1",
            "reply to b1",
            "b2",
            "reply to b2",
        ]

    @pytest.mark.asyncio
    async def test_same_key_is_serialized(self):
        llm = TrackingLLM()
        executor, _ = make_executor(llm=llm)

        await asyncio.gather(
            executor.execute("k", "first"),
            executor.execute("k", "second"),
        )

        assert llm.max_active == 1
        checkpoint = await load(executor, "k")
        assert roles(checkpoint.state.history) == [
            "system",
            "user",
            "assistant",
            "user",
            "assistant",
        ]
        users = [m.content for m in checkpoint.state.history if m.role == Role.USER]
        assert users == ["first", "second"]
        assert len(executor.locks) == 0


# === CHECKPOINTS ===


class TestCheckpointStability:
    """Stored snapshots are stable and inspectable."""

    @pytest.mark.asyncio
    async def test_inspect_unknown_key(self):
        executor, _ = make_executor()
        assert await executor.inspect("nobody") is None

    @pytest.mark.asyncio
    async def test_stored_bytes_round_trip_identically(self):
        store = InMemoryCheckpointStore()
        executor, _ = make_executor(
            [MockLLMProvider.tool_call_reply("echo", {"text": "x"}), Message.assistant("ok")],
            store=store,
        )
        await executor.execute("s1", "hello")

        raw = await store.get("s1")
        assert Checkpoint.from_bytes(raw).to_bytes() == raw

    @pytest.mark.asyncio
    async def test_suspended_payload_restored_with_its_kind(self):
        executor, _ = make_executor()
        await executor.execute("s1", "hello")
        checkpoint = await load(executor, "s1")
        assert checkpoint.cursor.payload.kind == "message"

    @pytest.mark.asyncio
    async def test_completed_run_of_simple_graph(self):
        builder = GraphBuilder("abc")
        for node_id in ("a", "b"):
            builder.add_node(
                NodeSpec(
                    id=node_id,
                    body=lambda p, suffix=node_id: TextPayload(text=p.text + suffix),
                    input_kind=PayloadKind.TEXT,
                    output_kind=PayloadKind.TEXT,
                )
            )
        builder.add_edge("a", "b").set_entry("a").set_terminal("b")
        executor = GraphExecutor(graph=builder.build(), store=InMemoryCheckpointStore())

        first = await executor.execute("k", ">")
        second = await executor.execute("k", ">")

        assert first.status == RunStatus.COMPLETED
        assert first.output == ">ab"
        assert first.path == ["a", "b"]
        assert second.output == ">ab"
        assert second.total_steps == 4

        checkpoint = await load(executor, "k")
        assert checkpoint.output == ">ab"
        assert checkpoint.cursor.next_node is None
