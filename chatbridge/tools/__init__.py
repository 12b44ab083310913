"""Tools for the conversational AI assistant."""

from chatbridge.tools.base import ToolDefinition, ToolExecutionResult
from chatbridge.tools.registry import ToolsRegistry

__all__ = ["ToolDefinition", "ToolExecutionResult", "ToolsRegistry"]
