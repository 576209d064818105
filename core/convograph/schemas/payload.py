"""
Node payloads - the values passed from one node to the next.

Payloads are a tagged union keyed on ``kind`` so that every stage of the graph
declares which shape it consumes and produces, and so that a node's pending
input can be stored in a checkpoint and restored without guessing its type.
"""

from enum import StrEnum
from typing import Annotated, Literal

from pydantic import BaseModel, Field, TypeAdapter

from convograph.schemas.message import Message


class PayloadKind(StrEnum):
    """Tag of a node payload."""

    TEXT = "text"
    MESSAGE = "message"
    MESSAGE_LIST = "message_list"


class TextPayload(BaseModel):
    kind: Literal["text"] = "text"
    text: str = ""


class MessagePayload(BaseModel):
    kind: Literal["message"] = "message"
    message: Message


class MessageListPayload(BaseModel):
    kind: Literal["message_list"] = "message_list"
    messages: list[Message] = Field(default_factory=list)


Payload = Annotated[
    TextPayload | MessagePayload | MessageListPayload,
    Field(discriminator="kind"),
]

payload_adapter: TypeAdapter[Payload] = TypeAdapter(Payload)


def describe_payload(payload: BaseModel) -> str:
    """Short human-readable summary used in log lines."""
    if isinstance(payload, TextPayload):
        text = payload.text if len(payload.text) <= 80 else payload.text[:80] + "..."
        return f"text({text!r})"
    if isinstance(payload, MessagePayload):
        msg = payload.message
        return f"message(role={msg.role.value}, tool_calls={len(msg.tool_calls)})"
    if isinstance(payload, MessageListPayload):
        roles = ",".join(m.role.value for m in payload.messages)
        return f"messages[{len(payload.messages)}]({roles})"
    return type(payload).__name__
