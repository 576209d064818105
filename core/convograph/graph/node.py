"""
Node Protocol - The building blocks of a conversation graph.

A node is a named transform from one payload to another. Three kinds exist:

- pure: body only, never touches conversation state
- state: body wrapped by an optional pre-hook (may rewrite the input) and an
  optional post-hook (may rewrite the output and append to history)
- suspension: a state node the engine halts *before* entering until the
  caller supplies new external input

Bodies and hooks may be plain functions or coroutines.
"""

import inspect
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from convograph.schemas.payload import Payload, PayloadKind
from convograph.schemas.state import ConversationState

NodeBody = Callable[[Payload], Payload | Awaitable[Payload]]
StateHook = Callable[[Payload, ConversationState], Payload | Awaitable[Payload]]


class NodeKind(StrEnum):
    """How a node interacts with conversation state."""

    PURE = "pure"
    STATE = "state"
    SUSPENSION = "suspension"


async def _resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


@dataclass
class NodeSpec:
    """
    Specification for a node in the graph.

    Examples:
        # Pure node: messages -> text
        NodeSpec(
            id="OutputConverter",
            body=lambda p: TextPayload(text=extract_last_message(p.messages)),
            input_kind=PayloadKind.MESSAGE_LIST,
            output_kind=PayloadKind.TEXT,
        )

        # Suspension node: halts before entry, folds user input in post-hook
        NodeSpec(
            id="Human",
            kind=NodeKind.SUSPENSION,
            body=wrap_message,
            post_hook=fold_user_input,
            input_kind=PayloadKind.MESSAGE,
            output_kind=PayloadKind.MESSAGE_LIST,
        )
    """

    id: str
    body: NodeBody
    input_kind: PayloadKind
    output_kind: PayloadKind
    kind: NodeKind = NodeKind.PURE
    pre_hook: StateHook | None = None
    post_hook: StateHook | None = None
    description: str = ""

    @property
    def is_suspension(self) -> bool:
        return self.kind == NodeKind.SUSPENSION

    @property
    def is_state_coupled(self) -> bool:
        return self.kind in (NodeKind.STATE, NodeKind.SUSPENSION)

    @property
    def has_hooks(self) -> bool:
        return self.pre_hook is not None or self.post_hook is not None

    async def run(self, payload: Payload, state: ConversationState) -> Payload:
        """
        Execute pre-hook, body and post-hook against the conversation state.

        Raises:
            TypeError: If the input or output payload kind does not match the
                kinds this node declares
        """
        if payload.kind != self.input_kind:
            raise TypeError(
                f"Node '{self.id}' expects {self.input_kind} input, got {payload.kind}"
            )

        if self.pre_hook is not None:
            payload = await _resolve(self.pre_hook(payload, state))

        output = await _resolve(self.body(payload))

        if self.post_hook is not None:
            output = await _resolve(self.post_hook(output, state))

        if output.kind != self.output_kind:
            raise TypeError(
                f"Node '{self.id}' declares {self.output_kind} output, produced {output.kind}"
            )
        return output
