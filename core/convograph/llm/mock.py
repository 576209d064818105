"""Mock LLM provider for tests and offline demos."""

import asyncio
import json
from collections.abc import Callable
from typing import Any

from convograph.llm.provider import LLMProvider, Tool
from convograph.schemas.message import Message, Role, ToolCall

Reply = Message | Callable[[list[Message]], Message]


def echo_reply(messages: list[Message]) -> Message:
    """Reply with the newest user message, prefixed with ``Echo: ``."""
    for msg in reversed(messages):
        if msg.role == Role.USER:
            return Message.assistant(f"Echo: {msg.content}")
    return Message.assistant("Echo: (nothing to echo)")


class MockLLMProvider(LLMProvider):
    """
    Mock LLM that plays back a list of scripted replies.

    Each call to ``invoke`` returns the next reply. A reply is either a ready
    message or a function of the messages sent. Once the script is exhausted
    the last reply is repeated; with no script at all, replies echo the newest
    user message.

    Every call is recorded in ``calls`` as ``(messages, tools)``.

    Example:
        llm = MockLLMProvider([
            MockLLMProvider.tool_call_reply("echo", {"text": "hi"}, call_id="1"),
            Message.assistant("Done."),
        ])
    """

    def __init__(
        self,
        replies: list[Reply] | None = None,
        delay: float = 0.0,
        model: str = "mock",
    ):
        self._replies: list[Reply] = list(replies or [])
        self._call_index = 0
        self.delay = delay  # Seconds to sleep per call (for interleaving tests)
        self.model = model
        self.calls: list[tuple[list[Message], list[Tool]]] = []

    @staticmethod
    def tool_call_reply(
        name: str, arguments: dict[str, Any] | str | None = None, call_id: str = "call_1"
    ) -> Message:
        """Build an assistant message requesting a single tool call."""
        if arguments is None:
            args = "{}"
        elif isinstance(arguments, str):
            args = arguments
        else:
            args = json.dumps(arguments)
        return Message.assistant(tool_calls=[ToolCall.create(call_id, name, args)])

    @property
    def call_count(self) -> int:
        return len(self.calls)

    async def invoke(self, messages: list[Message], tools: list[Tool] | None = None) -> Message:
        self.calls.append(([m.model_copy(deep=True) for m in messages], list(tools or [])))
        if self.delay:
            await asyncio.sleep(self.delay)

        if not self._replies:
            return echo_reply(messages)

        index = min(self._call_index, len(self._replies) - 1)
        self._call_index += 1
        reply = self._replies[index]
        if callable(reply):
            return reply(messages)
        return reply.model_copy(deep=True)
