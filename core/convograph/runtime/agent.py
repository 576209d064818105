"""
Conversation Agent - the single entry point transports call.

    agent = ConversationAgent.create(llm=MockLLMProvider())
    response = await agent.handle_message(None, "hello")   # new session
    response = await agent.handle_message(response.session_id, "and then?")

Every failure comes back as a normal ``AgentResponse`` whose ``response`` is
a tagged message (``"[StepLimitExceeded]: ..."``) and whose history is
whatever the checkpoint holds, so transports never handle engine exceptions.
"""

import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from convograph.errors import ConvographError, StoreError, UnknownSession
from convograph.graph.agent_graph import DEFAULT_SYSTEM_PROMPT, build_agent_graph
from convograph.graph.edge import DEFAULT_MAX_STEPS
from convograph.graph.executor import ExecutionResult, GraphExecutor, InterruptInfo
from convograph.llm.provider import LLMProvider
from convograph.observability import set_trace_context
from convograph.runner.tool_registry import ToolRegistry, default_tool_registry
from convograph.runtime.session_manager import SessionManager
from convograph.schemas.checkpoint import RunStatus
from convograph.schemas.message import Message, ToolCall
from convograph.schemas.session import Session, checkpoint_key_for
from convograph.storage.checkpoint_store import CheckpointStore, InMemoryCheckpointStore

logger = logging.getLogger(__name__)

_WIRE_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class HistoryItem(BaseModel):
    """One history entry as shown to clients."""

    order_id: int
    role: str
    content: str = ""
    tool_calls: list[ToolCall] | None = None
    tool_call_id: str | None = None
    name: str | None = None

    model_config = _WIRE_CONFIG

    @classmethod
    def from_message(cls, order_id: int, message: Message) -> "HistoryItem":
        return cls(
            order_id=order_id,
            role=message.role.value,
            content=message.content,
            tool_calls=list(message.tool_calls) or None,
            tool_call_id=message.tool_call_id,
            name=message.name,
        )


def history_items(history: list[Message]) -> list[HistoryItem]:
    return [HistoryItem.from_message(i, m) for i, m in enumerate(history)]


class InterruptDetails(BaseModel):
    """Pending-node metadata of a suspended run. For display, not control flow."""

    before_nodes: list[str] = Field(default_factory=list)
    after_nodes: list[str] = Field(default_factory=list)
    rerun_nodes: list[str] = Field(default_factory=list)
    rerun_nodes_extra: dict[str, Any] = Field(default_factory=dict)

    model_config = _WIRE_CONFIG

    @classmethod
    def from_interrupt(cls, interrupt: InterruptInfo) -> "InterruptDetails":
        return cls(**interrupt.to_dict())


class AgentResponse(BaseModel):
    """Reply to one handled message."""

    session_id: str
    response: str
    status: RunStatus
    history: list[HistoryItem] = Field(default_factory=list)
    interrupt: InterruptDetails | None = None  # Only when suspended
    error: str | None = None  # Error kind when failed

    model_config = _WIRE_CONFIG

    @property
    def is_error(self) -> bool:
        return self.error is not None

    def to_wire(self) -> dict[str, Any]:
        """JSON-ready dict with camelCase keys and unset optionals dropped."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class SessionHistory(BaseModel):
    """A session's metadata plus its conversation so far."""

    session: Session
    status: RunStatus | None = None  # None before the first message
    history: list[HistoryItem] = Field(default_factory=list)

    model_config = _WIRE_CONFIG

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ConversationAgent:
    """
    Facade over the session registry and the graph executor.

    Example:
        agent = ConversationAgent.create(llm=LiteLLMProvider(model="gpt-4o-mini"))
        response = await agent.handle_message("", "What's 2+2?")
        print(response.session_id, response.response)
    """

    def __init__(
        self,
        executor: GraphExecutor,
        sessions: SessionManager | None = None,
        max_steps: int | None = None,
    ):
        self.executor = executor
        self.sessions = sessions or SessionManager()
        self.max_steps = max_steps

    @classmethod
    def create(
        cls,
        llm: LLMProvider,
        tools: ToolRegistry | None = None,
        store: CheckpointStore | None = None,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        max_steps: int = DEFAULT_MAX_STEPS,
    ) -> "ConversationAgent":
        """Wire the reference agent graph to an executor and a fresh session registry."""
        graph = build_agent_graph(
            llm,
            tools if tools is not None else default_tool_registry(),
            system_prompt=system_prompt,
            max_steps=max_steps,
        )
        executor = GraphExecutor(graph=graph, store=store or InMemoryCheckpointStore())
        return cls(executor=executor, max_steps=max_steps)

    def new_session(self, label: str | None = None) -> Session:
        return self.sessions.create_session(label=label)

    def delete_session(self, session_id: str) -> bool:
        return self.sessions.delete_session(session_id)

    async def handle_message(self, session_id: str | None, text: str) -> AgentResponse:
        """
        Run one message through the session's conversation.

        An empty or unknown ``session_id`` starts a new session; the response
        carries its id. An id with a checkpoint already in the store (written
        before a restart, for example) is restored instead. An empty ``text``
        for a conversation waiting on the human finalizes it.
        """
        session = None
        if session_id:
            try:
                session = await self._find_session(session_id)
            except StoreError as e:
                # A session whose checkpoint could not be read is never replaced
                logger.error(f"❌ [{e.kind}] {e}")
                return await self._error_response(session_id, e, checkpoint_key_for(session_id))
        if session is None:
            if session_id:
                logger.info(f"Session {session_id} not found, starting a new one")
            session = self.sessions.create_session()

        set_trace_context(session_id=session.session_id)
        self.sessions.record_message(session.session_id)

        try:
            result = await self.executor.execute(
                session.checkpoint_key,
                text,
                max_steps=self.max_steps,
                label=session.label,
            )
        except ConvographError as e:
            logger.error(f"❌ [{e.kind}] {e}")
            return await self._error_response(session.session_id, e, session.checkpoint_key)

        return self._to_response(session, result)

    async def session_history(self, session_id: str) -> SessionHistory:
        """
        Session metadata and the history its checkpoint holds.

        Raises:
            UnknownSession: If the id is neither registered nor checkpointed
            StoreError: If the checkpoint cannot be read
        """
        session = await self._find_session(session_id)
        if session is None:
            raise UnknownSession(session_id)
        checkpoint = await self.executor.inspect(session.checkpoint_key)
        if checkpoint is None:
            return SessionHistory(session=session)
        return SessionHistory(
            session=session,
            status=checkpoint.status,
            history=history_items(checkpoint.state.history),
        )

    async def _find_session(self, session_id: str) -> Session | None:
        """Registered session, or one restored from a checkpoint already in the store."""
        session = self.sessions.get_session(session_id)
        if session is not None:
            return session
        checkpoint = await self.executor.inspect(checkpoint_key_for(session_id))
        if checkpoint is None:
            return None
        return self.sessions.restore_session(session_id, label=checkpoint.state.label)

    def _to_response(self, session: Session, result: ExecutionResult) -> AgentResponse:
        if result.is_suspended:
            last = result.state.last_message()
            return AgentResponse(
                session_id=session.session_id,
                response=last.content if last else "",
                status=result.status,
                history=history_items(result.history),
                interrupt=InterruptDetails.from_interrupt(result.interrupt),
            )
        return AgentResponse(
            session_id=session.session_id,
            response=result.output or "",
            status=result.status,
            history=history_items(result.history),
        )

    async def _error_response(
        self, session_id: str, error: ConvographError, checkpoint_key: str
    ) -> AgentResponse:
        return AgentResponse(
            session_id=session_id,
            response=f"[{error.kind}]: {error}",
            status=RunStatus.FAILED,
            history=history_items(await self._saved_history(checkpoint_key)),
            error=error.kind,
        )

    async def _saved_history(self, checkpoint_key: str) -> list[Message]:
        try:
            checkpoint = await self.executor.inspect(checkpoint_key)
        except ConvographError as e:
            logger.warning(f"⚠ Could not read history for '{checkpoint_key}': {e}")
            return []
        return checkpoint.state.history if checkpoint is not None else []
