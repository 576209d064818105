"""Conversation State - the mutable data threaded through one graph run."""

from pydantic import BaseModel, Field

from convograph.schemas.message import Message, Role, outstanding_tool_calls


class ConversationState(BaseModel):
    """
    Per-conversation state owned by one in-flight run until it is checkpointed.

    ``history`` is append-only: nodes add to it through ``append``/``extend``
    and never reorder or truncate it.
    """

    history: list[Message] = Field(default_factory=list)
    pending_user_input: str = ""  # Newest external input not yet folded into history
    label: str | None = None  # Opaque session-scoped metadata (e.g. display name)

    def append(self, message: Message) -> None:
        """Append one message, rejecting tool results that answer no pending call."""
        if message.role == Role.TOOL:
            pending = outstanding_tool_calls(self.history)
            if not pending or message.tool_call_id != pending[0]:
                expected = pending[0] if pending else "none"
                raise ValueError(
                    f"Tool message '{message.tool_call_id}' does not answer the next "
                    f"outstanding tool call (expected: {expected})"
                )
        self.history.append(message)

    def extend(self, messages: list[Message]) -> None:
        for message in messages:
            self.append(message)

    def take_pending_input(self) -> str:
        """Return the pending user input and clear it."""
        text = self.pending_user_input
        self.pending_user_input = ""
        return text

    def last_message(self) -> Message | None:
        return self.history[-1] if self.history else None
