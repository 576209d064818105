"""LLM provider abstraction."""

from convograph.llm.litellm import LiteLLMProvider
from convograph.llm.mock import MockLLMProvider, echo_reply
from convograph.llm.provider import LLMProvider, Tool

__all__ = [
    "LLMProvider",
    "Tool",
    "LiteLLMProvider",
    "MockLLMProvider",
    "echo_reply",
]
