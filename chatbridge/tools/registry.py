"""Tools registry: the single entry point the orchestrator uses to run tools."""

from typing import Any

from pydantic import ValidationError

from chatbridge.models.llm import LLMToolDefinition
from chatbridge.tools.base import ToolContext, ToolDefinition, ToolExecutionResult
from chatbridge.utils.logging import get_logger

logger = get_logger(__name__)


class ToolsRegistry:
    """Registry for managing AI assistant tools."""

    def __init__(self, tools: list[ToolDefinition] | None = None):
        """Initialize tools registry with an optional starting set of tools."""
        self._tools: dict[str, ToolDefinition] = {}
        for tool in tools or []:
            self.register_tool(tool)

    def register_tool(self, tool: ToolDefinition) -> None:
        """Register a new tool in the registry."""
        self._tools[tool.name] = tool

    def get_llm_tools(self) -> list[LLMToolDefinition]:
        """Tool definitions to offer the model, in registration order."""
        return [tool.to_llm_tool() for tool in self._tools.values()]

    def get_tool_names(self) -> list[str]:
        """Get list of all registered tool names."""
        return list(self._tools.keys())

    def has_tool(self, name: str) -> bool:
        """Check if a tool is registered."""
        return name in self._tools

    async def execute(
        self, tool_name: str, tool_input: dict[str, Any], session_id: str | None, tool_use_id: str
    ) -> ToolExecutionResult:
        """Run a tool by name.

        Unknown tools and invalid input produce an immediate error result so the
        model always gets a tool result back. Exceptions raised by the handler
        itself propagate to the caller.
        """
        tool = self._tools.get(tool_name)
        if tool is None:
            logger.error(f"Unknown tool requested: {tool_name}")
            return ToolExecutionResult(result=f"Unknown tool: {tool_name}", is_error=True)

        try:
            params = tool.parse_input(tool_input)
        except ValidationError as e:
            logger.warning(f"Invalid input for tool {tool_name}: {e}")
            return ToolExecutionResult(result=f"Invalid input for {tool_name}: {e}", is_error=True)

        logger.debug(f"Executing tool: {tool_name} with input: {tool_input}")
        return await tool.handler(params, ToolContext(session_id=session_id, tool_use_id=tool_use_id))
