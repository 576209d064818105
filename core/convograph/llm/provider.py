"""LLM Provider abstraction for pluggable LLM backends."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from convograph.schemas.message import Message


@dataclass
class Tool:
    """A tool the LLM can use."""

    name: str
    description: str
    parameters: dict[str, Any] = field(default_factory=dict)

    def to_openai_dict(self) -> dict[str, Any]:
        """OpenAI function-calling format (also accepted by LiteLLM)."""
        parameters = self.parameters or {"type": "object", "properties": {}}
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": parameters,
            },
        }


class LLMProvider(ABC):
    """
    Abstract LLM provider - plug in any LLM backend.

    A provider takes the full conversation (system prompt included, as the
    first message) plus the tools the model may call, and returns exactly one
    assistant message. Tool orchestration is the graph's job, not the
    provider's: an assistant message with ``tool_calls`` is routed to the
    tool node, which answers them before the model is called again.

    Implementations should handle:
    - API authentication
    - Request/response formatting
    - Retrying transient failures (rate limits)
    """

    model: str = ""

    @abstractmethod
    async def invoke(self, messages: list[Message], tools: list[Tool] | None = None) -> Message:
        """
        Generate the next assistant message.

        Args:
            messages: Conversation history, oldest first
            tools: Tools the model may request

        Returns:
            Assistant message, possibly carrying tool calls
        """
        pass
