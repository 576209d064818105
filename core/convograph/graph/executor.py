"""
Graph Executor - Runs conversation graphs with suspend/resume.

For one invocation against one checkpoint key the executor:
1. Acquires the per-key lock
2. Loads the checkpoint (or starts fresh at the entry node)
3. Executes nodes following edges and branches
4. Stops before a suspension node, after the terminal node, or on failure
5. Saves a single snapshot and releases the lock

There is no blocked call stack across a suspension: the continuation (next
node, its input, step counters) lives in the checkpoint, so a run can resume
in another process as long as the store is shared.
"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any

from convograph.errors import NodeExecutionError, StepLimitExceeded, StoreError
from convograph.graph.edge import GraphSpec
from convograph.observability import set_trace_context
from convograph.schemas.checkpoint import (
    Checkpoint,
    CheckpointError,
    ExecutionCursor,
    RunStatus,
)
from convograph.schemas.message import Message, extract_last_message
from convograph.schemas.payload import (
    MessageListPayload,
    Payload,
    TextPayload,
    describe_payload,
)
from convograph.schemas.state import ConversationState
from convograph.storage.checkpoint_store import CheckpointStore
from convograph.storage.locks import KeyedLock


@dataclass
class InterruptInfo:
    """Which nodes a suspended run is waiting on. Informational only."""

    before_nodes: list[str] = field(default_factory=list)  # Halted before entering these
    after_nodes: list[str] = field(default_factory=list)  # Halted after leaving these
    rerun_nodes: list[str] = field(default_factory=list)  # Will re-execute on resume
    rerun_nodes_extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "before_nodes": list(self.before_nodes),
            "after_nodes": list(self.after_nodes),
            "rerun_nodes": list(self.rerun_nodes),
            "rerun_nodes_extra": dict(self.rerun_nodes_extra),
        }


@dataclass
class ExecutionResult:
    """Result of one invocation of a graph."""

    checkpoint_key: str
    status: RunStatus
    state: ConversationState
    output: str | None = None  # Terminal output (completed runs)
    paused_at: str | None = None  # Suspension node the run halted before
    steps_executed: int = 0
    total_steps: int = 0
    path: list[str] = field(default_factory=list)  # Node IDs executed in this run
    resumed_from: str | None = None  # Node the run resumed at, if any
    interrupt: InterruptInfo | None = None  # Only set when suspended

    @property
    def is_suspended(self) -> bool:
        return self.status == RunStatus.SUSPENDED

    @property
    def is_completed(self) -> bool:
        return self.status == RunStatus.COMPLETED

    @property
    def history(self) -> list[Message]:
        return self.state.history


class GraphExecutor:
    """
    Executes a conversation graph against a checkpoint store.

    One executor serves every session. Invocations for the same checkpoint
    key are serialized by a ``KeyedLock`` held from load to save; different
    keys run concurrently.

    Example:
        executor = GraphExecutor(graph=graph, store=InMemoryCheckpointStore())

        result = await executor.execute("session-123", "hello")
        if result.is_suspended:
            print(result.history[-1].content)  # assistant reply, awaiting input
    """

    def __init__(
        self,
        graph: GraphSpec,
        store: CheckpointStore,
        max_steps: int | None = None,
        locks: KeyedLock | None = None,
    ):
        """
        Initialize the executor.

        Args:
            graph: Validated graph (see GraphBuilder.build)
            store: Checkpoint persistence backend
            max_steps: Default per-invocation step limit (defaults to graph.max_steps)
            locks: Per-key lock registry, shareable between executors on one store
        """
        self.graph = graph
        self.store = store
        self.max_steps = max_steps or graph.max_steps
        self.locks = locks or KeyedLock()
        self.logger = logging.getLogger(__name__)

    async def execute(
        self,
        checkpoint_key: str,
        user_input: str,
        *,
        max_steps: int | None = None,
        label: str | None = None,
    ) -> ExecutionResult:
        """
        Start or resume the run stored under ``checkpoint_key``.

        A checkpoint suspended before a suspension node resumes there with
        ``user_input`` as the pending input. Otherwise a new traversal starts
        at the entry node with ``user_input`` as text, keeping any history
        restored from a completed or failed run.

        Raises:
            StepLimitExceeded: The run needed more than ``max_steps`` nodes
            NodeExecutionError: A node body, hook or branch failed
            StoreError: The checkpoint could not be loaded or saved
        """
        limit = max_steps or self.max_steps
        async with self.locks.acquire(checkpoint_key):
            checkpoint = await self._load(checkpoint_key)

            if checkpoint is not None and checkpoint.is_suspended:
                cursor = checkpoint.cursor
                if cursor.next_node is None or cursor.payload is None:
                    raise StoreError(
                        checkpoint_key, "load", "suspended checkpoint has no continuation"
                    )
                state = checkpoint.state.model_copy(deep=True)
                state.pending_user_input = user_input
                if label is not None:
                    state.label = label
                self.logger.info(f"🔄 Resuming from suspended node: {cursor.next_node}")
                return await self._run(
                    checkpoint_key,
                    state,
                    cursor.next_node,
                    cursor.payload,
                    limit,
                    total_steps=cursor.total_steps,
                    created_at=checkpoint.created_at,
                    resumed_from=cursor.next_node,
                )

            if checkpoint is not None:
                state = checkpoint.state.model_copy(deep=True)
                total_steps = checkpoint.cursor.total_steps
                created_at = checkpoint.created_at
                if checkpoint.status == RunStatus.FAILED:
                    self.logger.warning(
                        f"⚠ Previous run for '{checkpoint_key}' failed "
                        f"({checkpoint.error.kind if checkpoint.error else 'unknown'}), "
                        "starting a new turn with the saved history"
                    )
                else:
                    self.logger.info(
                        f"📥 Restored {len(state.history)} messages for '{checkpoint_key}'"
                    )
            else:
                state = ConversationState()
                total_steps = 0
                created_at = None

            if label is not None:
                state.label = label
            state.pending_user_input = ""

            return await self._run(
                checkpoint_key,
                state,
                self.graph.entry_node,
                TextPayload(text=user_input),
                limit,
                total_steps=total_steps,
                created_at=created_at,
            )

    async def retry_failed(
        self, checkpoint_key: str, max_steps: int | None = None
    ) -> ExecutionResult:
        """
        Manually resume a failed run at the node that failed, with its saved input.

        The saved state is the one from before the failing node ran, so the
        node executes from scratch with a fresh step budget.

        Raises:
            ValueError: If the latest checkpoint for the key is not a failed run
        """
        limit = max_steps or self.max_steps
        async with self.locks.acquire(checkpoint_key):
            checkpoint = await self._load(checkpoint_key)
            if checkpoint is None or checkpoint.status != RunStatus.FAILED:
                raise ValueError(f"No failed run to retry for '{checkpoint_key}'")
            cursor = checkpoint.cursor
            if cursor.next_node is None or cursor.payload is None:
                raise ValueError(f"Failed run for '{checkpoint_key}' has no saved node input")

            self.logger.info(f"🔄 Retrying failed node: {cursor.next_node}")
            return await self._run(
                checkpoint_key,
                checkpoint.state.model_copy(deep=True),
                cursor.next_node,
                cursor.payload,
                limit,
                total_steps=cursor.total_steps,
                created_at=checkpoint.created_at,
                resumed_from=cursor.next_node,
            )

    async def inspect(self, checkpoint_key: str) -> Checkpoint | None:
        """Read the live snapshot for a key (None if there is none)."""
        async with self.locks.acquire(checkpoint_key):
            return await self._load(checkpoint_key)

    async def _run(
        self,
        checkpoint_key: str,
        state: ConversationState,
        node_id: str,
        payload: Payload,
        limit: int,
        total_steps: int = 0,
        created_at: str | None = None,
        resumed_from: str | None = None,
    ) -> ExecutionResult:
        run_id = f"run_{uuid.uuid4().hex[:12]}"
        set_trace_context(checkpoint_key=checkpoint_key, run_id=run_id)

        steps = 0
        path: list[str] = []

        def cursor_at(next_node: str | None, next_payload: Payload | None) -> ExecutionCursor:
            return ExecutionCursor(
                next_node=next_node,
                payload=next_payload,
                steps=steps,
                total_steps=total_steps,
                path=list(path),
            )

        self.logger.info(f"🚀 Starting run {run_id} for '{checkpoint_key}'")
        self.logger.info(f"   Entry node: {node_id}")
        self.logger.info(f"   Input: {describe_payload(payload)}")

        while True:
            if steps >= limit:
                error = StepLimitExceeded(limit, node_id)
                self.logger.error(f"✗ {error}")
                await self._save(
                    checkpoint_key,
                    RunStatus.FAILED,
                    state,
                    cursor_at(node_id, payload),
                    created_at=created_at,
                    error=CheckpointError(kind=error.kind, message=str(error), node_id=node_id),
                )
                raise error

            node = self.graph.get_node(node_id)
            set_trace_context(node_id=node_id)
            self.logger.info(f"▶ Step {steps + 1}: {node_id} ({node.kind})")

            # Run against a copy so a failing node leaves no partial writes
            working = state.model_copy(deep=True)
            try:
                output = await node.run(payload, working)
                self._check_history(node_id, state, working)
                next_node = self._next_node(node_id, output)
            except Exception as e:
                error = e if isinstance(e, NodeExecutionError) else NodeExecutionError(node_id, e)
                self.logger.error(f"   ✗ Failed: {error}")
                await self._save(
                    checkpoint_key,
                    RunStatus.FAILED,
                    state,
                    cursor_at(node_id, payload),
                    created_at=created_at,
                    error=CheckpointError(kind=error.kind, message=str(error), node_id=node_id),
                )
                if error is e:
                    raise
                raise error from e

            state = working
            steps += 1
            total_steps += 1
            path.append(node_id)
            self.logger.info(f"   Output: {describe_payload(output)}")

            if node_id == self.graph.terminal_node:
                text = self._output_text(output)
                self.logger.info(f"✓ Reached terminal node: {node_id}")
                await self._save(
                    checkpoint_key,
                    RunStatus.COMPLETED,
                    state,
                    cursor_at(None, None),
                    created_at=created_at,
                    output=text,
                )
                set_trace_context(node_id=None)
                return ExecutionResult(
                    checkpoint_key=checkpoint_key,
                    status=RunStatus.COMPLETED,
                    state=state,
                    output=text,
                    steps_executed=steps,
                    total_steps=total_steps,
                    path=path,
                    resumed_from=resumed_from,
                )

            next_spec = self.graph.get_node(next_node)
            if next_spec is not None and next_spec.is_suspension:
                self.logger.info(f"⏸ Suspended before: {next_node}")
                await self._save(
                    checkpoint_key,
                    RunStatus.SUSPENDED,
                    state,
                    cursor_at(next_node, output),
                    created_at=created_at,
                )
                set_trace_context(node_id=None)
                return ExecutionResult(
                    checkpoint_key=checkpoint_key,
                    status=RunStatus.SUSPENDED,
                    state=state,
                    paused_at=next_node,
                    steps_executed=steps,
                    total_steps=total_steps,
                    path=path,
                    resumed_from=resumed_from,
                    interrupt=InterruptInfo(before_nodes=[next_node]),
                )

            self.logger.info(f"   → Next: {next_node}")
            node_id = next_node
            payload = output

    def _next_node(self, node_id: str, output: Payload) -> str:
        next_node = self.graph.next_node(node_id, output)
        if next_node is None:
            raise NodeExecutionError(node_id, "no outgoing edge or branch")
        return next_node

    def _check_history(
        self, node_id: str, before: ConversationState, after: ConversationState
    ) -> None:
        """Reject a node that reordered or truncated history."""
        prior = before.history
        if len(after.history) < len(prior) or after.history[: len(prior)] != prior:
            raise NodeExecutionError(node_id, "history is append-only but was rewritten")

    def _output_text(self, output: Payload) -> str:
        if isinstance(output, TextPayload):
            return output.text
        if isinstance(output, MessageListPayload):
            return extract_last_message(output.messages)
        return output.message.content

    async def _load(self, checkpoint_key: str) -> Checkpoint | None:
        try:
            data = await self.store.get(checkpoint_key)
        except Exception as e:
            self.logger.error(f"❌ Failed to load checkpoint '{checkpoint_key}': {e}")
            raise StoreError(checkpoint_key, "load", e) from e
        if data is None:
            return None
        try:
            return Checkpoint.from_bytes(data)
        except ValueError as e:
            self.logger.error(f"❌ Corrupt checkpoint '{checkpoint_key}': {e}")
            raise StoreError(checkpoint_key, "load", e) from e

    async def _save(
        self,
        checkpoint_key: str,
        status: RunStatus,
        state: ConversationState,
        cursor: ExecutionCursor,
        created_at: str | None = None,
        output: str | None = None,
        error: CheckpointError | None = None,
    ) -> None:
        checkpoint = Checkpoint.create(
            checkpoint_key=checkpoint_key,
            status=status,
            state=state,
            cursor=cursor,
            output=output,
            error=error,
            created_at=created_at,
        )
        try:
            await self.store.set(checkpoint_key, checkpoint.to_bytes())
        except Exception as e:
            self.logger.error(f"❌ Failed to save checkpoint '{checkpoint_key}': {e}")
            raise StoreError(checkpoint_key, "save", e) from e
        self.logger.info(
            f"💾 Saved checkpoint '{checkpoint_key}' "
            f"(status: {status}, history: {len(state.history)})"
        )
