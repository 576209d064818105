"""
Checkpoint Schema - Execution state snapshots for resumability.

A checkpoint captures the conversation state plus the engine's continuation
(which node runs next, with which input, after how many steps). It is written
at every suspension, at completion and on failure, and overwritten in place:
there is at most one live snapshot per checkpoint key.
"""

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

from convograph.schemas.payload import Payload
from convograph.schemas.state import ConversationState

CHECKPOINT_SCHEMA_VERSION = "1.0"


class RunStatus(StrEnum):
    """How the run that wrote a checkpoint ended."""

    SUSPENDED = "suspended"  # Halted before a suspension node, awaiting input
    COMPLETED = "completed"  # Terminal node executed
    FAILED = "failed"  # Node error or step limit


class ExecutionCursor(BaseModel):
    """Continuation state: where and with what the next run picks up."""

    next_node: str | None = None  # Node to enter on resume (suspension or failed node)
    payload: Payload | None = None  # Input waiting for next_node
    steps: int = 0  # Node executions in the run that wrote the checkpoint
    total_steps: int = 0  # Node executions across all runs for this key
    path: list[str] = Field(default_factory=list)  # Node IDs executed in the last run


class CheckpointError(BaseModel):
    """Failure recorded on a failed checkpoint, for inspection."""

    kind: str
    message: str
    node_id: str | None = None


class Checkpoint(BaseModel):
    """Single live snapshot for one checkpoint key."""

    schema_version: str = CHECKPOINT_SCHEMA_VERSION
    checkpoint_key: str
    status: RunStatus

    state: ConversationState = Field(default_factory=ConversationState)
    cursor: ExecutionCursor = Field(default_factory=ExecutionCursor)

    output: str | None = None  # Terminal output of a completed run
    error: CheckpointError | None = None

    # Timestamps (ISO 8601)
    created_at: str
    updated_at: str

    model_config = {"extra": "allow"}

    @classmethod
    def create(
        cls,
        checkpoint_key: str,
        status: RunStatus,
        state: ConversationState,
        cursor: ExecutionCursor,
        output: str | None = None,
        error: CheckpointError | None = None,
        created_at: str | None = None,
    ) -> "Checkpoint":
        """
        Create a checkpoint stamped with the current time.

        Args:
            checkpoint_key: Key the snapshot is stored under
            status: How the run ended
            state: Conversation state to snapshot
            cursor: Continuation for the next run
            output: Terminal output (completed runs only)
            error: Failure details (failed runs only)
            created_at: Creation time of the first snapshot for this key

        Returns:
            New Checkpoint instance
        """
        now = datetime.now().isoformat()
        return cls(
            checkpoint_key=checkpoint_key,
            status=status,
            state=state.model_copy(deep=True),
            cursor=cursor,
            output=output,
            error=error,
            created_at=created_at or now,
            updated_at=now,
        )

    @property
    def is_suspended(self) -> bool:
        return self.status == RunStatus.SUSPENDED

    def to_bytes(self) -> bytes:
        """Serialize for the checkpoint store."""
        return self.model_dump_json(indent=2).encode("utf-8")

    @classmethod
    def from_bytes(cls, data: bytes) -> "Checkpoint":
        """Deserialize a snapshot written by ``to_bytes``."""
        return cls.model_validate_json(data)

    def summary(self) -> dict[str, Any]:
        """Lightweight metadata for logs and debugging endpoints."""
        return {
            "checkpoint_key": self.checkpoint_key,
            "status": self.status.value,
            "next_node": self.cursor.next_node,
            "steps": self.cursor.steps,
            "total_steps": self.cursor.total_steps,
            "history_length": len(self.state.history),
            "updated_at": self.updated_at,
        }
