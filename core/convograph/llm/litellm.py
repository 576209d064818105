"""LiteLLM provider - one interface to OpenAI, Anthropic, Gemini and friends."""

import asyncio
import logging
from typing import Any

import litellm

from convograph.llm.provider import LLMProvider, Tool
from convograph.schemas.message import Message, ToolCall

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o-mini"
RATE_LIMIT_BACKOFF_SECONDS = 2.0


class LiteLLMProvider(LLMProvider):
    """
    LLM provider backed by ``litellm.acompletion``.

    Messages and tools are sent in OpenAI chat format; tool calls in the
    response are converted back into ``ToolCall`` objects.

    Example:
        llm = LiteLLMProvider(model="gpt-4o-mini")
        llm = LiteLLMProvider(model="anthropic/claude-haiku-4-5-20251001", api_key=key)
    """

    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        api_key: str | None = None,
        api_base: str | None = None,
        max_retries: int = 3,
        **completion_kwargs: Any,
    ):
        """
        Initialize the provider.

        Args:
            model: LiteLLM model name (provider prefix optional for OpenAI)
            api_key: API key; when omitted LiteLLM reads the provider's env var
            api_base: Custom endpoint (e.g. a local OpenAI-compatible server)
            max_retries: Attempts on rate-limit errors before giving up
            **completion_kwargs: Passed through to every completion call
        """
        self.model = model
        self.api_key = api_key
        self.api_base = api_base
        self.max_retries = max(1, max_retries)
        self.completion_kwargs = completion_kwargs

    def _build_request(
        self, messages: list[Message], tools: list[Tool] | None
    ) -> dict[str, Any]:
        request: dict[str, Any] = {
            "model": self.model,
            "messages": [m.to_llm_dict() for m in messages],
            **self.completion_kwargs,
        }
        if self.api_key:
            request["api_key"] = self.api_key
        if self.api_base:
            request["api_base"] = self.api_base
        if tools:
            request["tools"] = [t.to_openai_dict() for t in tools]
        return request

    async def invoke(self, messages: list[Message], tools: list[Tool] | None = None) -> Message:
        request = self._build_request(messages, tools)

        for attempt in range(1, self.max_retries + 1):
            try:
                response = await litellm.acompletion(**request)
                break
            except litellm.RateLimitError as e:
                if attempt == self.max_retries:
                    raise
                delay = RATE_LIMIT_BACKOFF_SECONDS * (2 ** (attempt - 1))
                logger.warning(
                    f"⚠ Rate limited by {self.model} (attempt {attempt}/{self.max_retries}), "
                    f"retrying in {delay}s: {e}"
                )
                await asyncio.sleep(delay)

        choice = response.choices[0].message
        tool_calls = [
            ToolCall.create(
                id=tc.id,
                name=tc.function.name,
                arguments=tc.function.arguments or "{}",
            )
            for tc in (choice.tool_calls or [])
        ]
        logger.debug(
            f"LLM {self.model} replied with {len(choice.content or '')} chars "
            f"and {len(tool_calls)} tool calls"
        )
        return Message.assistant(content=choice.content or "", tool_calls=tool_calls)
