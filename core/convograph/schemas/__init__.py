"""Data model: messages, payloads, conversation state, checkpoints and sessions."""

from convograph.schemas.checkpoint import (
    Checkpoint,
    CheckpointError,
    ExecutionCursor,
    RunStatus,
)
from convograph.schemas.message import (
    FunctionCall,
    Message,
    Role,
    ToolCall,
    extract_last_message,
    validate_history,
)
from convograph.schemas.payload import (
    MessageListPayload,
    MessagePayload,
    Payload,
    PayloadKind,
    TextPayload,
)
from convograph.schemas.session import Session, checkpoint_key_for
from convograph.schemas.state import ConversationState

__all__ = [
    # Messages
    "Role",
    "Message",
    "ToolCall",
    "FunctionCall",
    "validate_history",
    "extract_last_message",
    # Payloads
    "Payload",
    "PayloadKind",
    "TextPayload",
    "MessagePayload",
    "MessageListPayload",
    # State
    "ConversationState",
    # Checkpoint
    "Checkpoint",
    "CheckpointError",
    "ExecutionCursor",
    "RunStatus",
    # Session
    "Session",
    "checkpoint_key_for",
]
