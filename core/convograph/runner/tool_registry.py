"""Tool registration and dispatch for the tool node."""

import inspect
import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from convograph.errors import ToolExecutionError
from convograph.llm.provider import Tool
from convograph.schemas.message import Message, ToolCall

logger = logging.getLogger(__name__)


@dataclass
class RegisteredTool:
    """A tool with its executor function."""

    tool: Tool
    executor: Callable[[dict], Any]


class ToolRegistry:
    """
    Holds the tools the model may call and dispatches tool calls to them.

    Executors take the decoded argument dict and may be plain functions or
    coroutines. Non-string results are JSON-encoded before being returned as
    the content of a ``tool`` message.
    """

    def __init__(self):
        self._tools: dict[str, RegisteredTool] = {}

    def register(
        self,
        name: str,
        tool: Tool,
        executor: Callable[[dict], Any],
    ) -> None:
        """
        Register a single tool with its executor.

        Args:
            name: Tool name (must match tool.name)
            tool: Tool definition
            executor: Function that takes tool input dict and returns result
        """
        self._tools[name] = RegisteredTool(tool=tool, executor=executor)
        logger.debug(f"Registered tool '{name}'")

    def register_function(
        self,
        func: Callable,
        name: str | None = None,
        description: str | None = None,
    ) -> None:
        """
        Register a function as a tool, auto-generating the Tool definition.

        Args:
            func: Function to register
            name: Tool name (defaults to function name)
            description: Tool description (defaults to docstring)
        """
        tool_name = name or func.__name__
        tool_desc = description or inspect.getdoc(func) or f"Execute {tool_name}"

        # Generate parameters from function signature
        sig = inspect.signature(func)
        properties = {}
        required = []

        for param_name, param in sig.parameters.items():
            if param_name in ("self", "cls"):
                continue

            param_type = "string"  # Default
            if param.annotation != inspect.Parameter.empty:
                if param.annotation is int:
                    param_type = "integer"
                elif param.annotation is float:
                    param_type = "number"
                elif param.annotation is bool:
                    param_type = "boolean"
                elif param.annotation is dict:
                    param_type = "object"
                elif param.annotation is list:
                    param_type = "array"

            properties[param_name] = {"type": param_type}
            if param.default == inspect.Parameter.empty:
                required.append(param_name)

        tool = Tool(
            name=tool_name,
            description=tool_desc,
            parameters={
                "type": "object",
                "properties": properties,
                "required": required,
            },
        )

        def executor(inputs: dict) -> Any:
            return func(**inputs)

        self.register(tool_name, tool, executor)

    def get_tools(self) -> dict[str, Tool]:
        """Get all registered Tool objects."""
        return {name: rt.tool for name, rt in self._tools.items()}

    def get_registered_names(self) -> list[str]:
        """Get list of registered tool names."""
        return list(self._tools.keys())

    def has_tool(self, name: str) -> bool:
        """Check if a tool is registered."""
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    async def invoke(self, tool_call: ToolCall) -> Message:
        """
        Execute one tool call and wrap the result as a ``tool`` message.

        Raises:
            ToolExecutionError: Unknown tool, undecodable arguments, or the
                executor raised
        """
        name = tool_call.function.name
        registered = self._tools.get(name)
        if registered is None:
            raise ToolExecutionError(name, "unknown tool")

        raw_args = tool_call.function.arguments or "{}"
        try:
            inputs = json.loads(raw_args)
        except json.JSONDecodeError as e:
            raise ToolExecutionError(name, f"arguments are not valid JSON: {e}") from e
        if not isinstance(inputs, dict):
            raise ToolExecutionError(name, "arguments must be a JSON object")

        logger.info(f"🔧 Calling tool '{name}' (call {tool_call.id})")
        try:
            result = registered.executor(inputs)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            logger.error(f"   ✗ Tool '{name}' raised: {e}")
            raise ToolExecutionError(name, str(e)) from e

        content = result if isinstance(result, str) else json.dumps(result, default=str)
        return Message.tool(content=content, tool_call_id=tool_call.id, name=name)


def echo(text: str = "") -> str:
    """Echo the given text back. Useful for checking that tool calling works."""
    return text


def default_tool_registry() -> ToolRegistry:
    """Registry with the built-in ``echo`` tool."""
    registry = ToolRegistry()
    registry.register_function(echo)
    return registry
