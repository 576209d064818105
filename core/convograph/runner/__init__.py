"""Tool registration and dispatch."""

from convograph.runner.tool_registry import (
    RegisteredTool,
    ToolRegistry,
    default_tool_registry,
)

__all__ = ["RegisteredTool", "ToolRegistry", "default_tool_registry"]
