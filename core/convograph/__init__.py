"""
convograph - resumable conversational agent graphs.

A fixed graph of nodes (input shaping, model call, tool dispatch, human
checkpoint, output shaping) runs over a shared conversation state, suspends
before the human node, and resumes from a checkpoint on the next message.
"""

from convograph.errors import (
    ConvographError,
    GraphBuildError,
    NodeExecutionError,
    StepLimitExceeded,
    StoreError,
    ToolExecutionError,
    UnknownSession,
)
from convograph.graph import (
    GraphBuilder,
    GraphExecutor,
    GraphSpec,
    NodeKind,
    NodeSpec,
    build_agent_graph,
)
from convograph.runtime import AgentResponse, ConversationAgent, SessionManager
from convograph.storage import FileCheckpointStore, InMemoryCheckpointStore, KeyedLock

__version__ = "0.1.0"

__all__ = [
    "ConversationAgent",
    "AgentResponse",
    "SessionManager",
    "GraphBuilder",
    "GraphExecutor",
    "GraphSpec",
    "NodeSpec",
    "NodeKind",
    "build_agent_graph",
    "FileCheckpointStore",
    "InMemoryCheckpointStore",
    "KeyedLock",
    "ConvographError",
    "GraphBuildError",
    "StepLimitExceeded",
    "NodeExecutionError",
    "StoreError",
    "UnknownSession",
    "ToolExecutionError",
]
