"""Runtime: sessions, the agent facade and the HTTP/WebSocket server."""

from convograph.runtime.agent import (
    AgentResponse,
    ConversationAgent,
    HistoryItem,
    InterruptDetails,
    SessionHistory,
)
from convograph.runtime.server import AgentServer, AgentServerConfig
from convograph.runtime.session_manager import SessionManager

__all__ = [
    "ConversationAgent",
    "AgentResponse",
    "HistoryItem",
    "InterruptDetails",
    "SessionHistory",
    "SessionManager",
    "AgentServer",
    "AgentServerConfig",
]
