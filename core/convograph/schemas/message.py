"""
Message Schema - One turn of conversation.

Messages use the OpenAI chat shape: assistant messages may request tool calls,
and every ``tool`` message answers exactly one of those calls through its
``tool_call_id``.
"""

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


class Role(StrEnum):
    """Author of a message."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class FunctionCall(BaseModel):
    """Function name and JSON-encoded arguments of a tool call."""

    name: str
    arguments: str = "{}"


class ToolCall(BaseModel):
    """A tool invocation requested by the model."""

    id: str
    type: str = "function"
    function: FunctionCall

    @classmethod
    def create(cls, id: str, name: str, arguments: str = "{}") -> "ToolCall":
        return cls(id=id, function=FunctionCall(name=name, arguments=arguments))


class Message(BaseModel):
    """
    A single message in a conversation history.

    ``tool_call_id`` and ``name`` are only set on ``tool`` messages.
    """

    role: Role
    content: str = ""
    tool_calls: list[ToolCall] = Field(default_factory=list)
    tool_call_id: str | None = None
    name: str | None = None

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role=Role.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role=Role.USER, content=content)

    @classmethod
    def assistant(cls, content: str = "", tool_calls: list[ToolCall] | None = None) -> "Message":
        return cls(role=Role.ASSISTANT, content=content, tool_calls=tool_calls or [])

    @classmethod
    def tool(cls, content: str, tool_call_id: str, name: str | None = None) -> "Message":
        return cls(role=Role.TOOL, content=content, tool_call_id=tool_call_id, name=name)

    @property
    def has_tool_calls(self) -> bool:
        return len(self.tool_calls) > 0

    def to_llm_dict(self) -> dict[str, Any]:
        """Convert to OpenAI-format message dict."""
        d: dict[str, Any] = {"role": self.role.value, "content": self.content}
        if self.role == Role.ASSISTANT and self.tool_calls:
            d["tool_calls"] = [tc.model_dump() for tc in self.tool_calls]
        if self.role == Role.TOOL:
            d["tool_call_id"] = self.tool_call_id
            if self.name:
                d["name"] = self.name
        return d


def outstanding_tool_calls(history: list[Message]) -> list[str]:
    """Return the tool call ids of the latest assistant message not yet answered."""
    pending: list[str] = []
    for msg in history:
        if msg.role == Role.ASSISTANT:
            pending = [tc.id for tc in msg.tool_calls]
        elif msg.role == Role.TOOL and pending and msg.tool_call_id == pending[0]:
            pending.pop(0)
    return pending


def validate_history(history: list[Message]) -> list[str]:
    """
    Check that every tool message answers a prior assistant tool call, in order.

    Returns:
        List of error messages (empty if the history is consistent)
    """
    errors = []
    pending: list[str] = []
    for index, msg in enumerate(history):
        if msg.role == Role.ASSISTANT:
            pending = [tc.id for tc in msg.tool_calls]
        elif msg.role == Role.TOOL:
            if not pending:
                errors.append(
                    f"History[{index}]: tool message '{msg.tool_call_id}' "
                    "does not answer any outstanding tool call"
                )
            elif msg.tool_call_id != pending[0]:
                errors.append(
                    f"History[{index}]: tool message '{msg.tool_call_id}' "
                    f"out of order, expected '{pending[0]}'"
                )
            else:
                pending.pop(0)
    return errors


def extract_last_message(messages: list[Message]) -> str:
    """Content of the last message, or an empty string when there is none."""
    if not messages:
        return ""
    return messages[-1].content
