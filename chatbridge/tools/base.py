"""Base types and definitions for tools."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel

from chatbridge.models.llm import LLMToolDefinition


@dataclass
class ToolContext:
    """Identifies the invocation a tool handler is serving."""

    session_id: str | None
    tool_use_id: str


@dataclass
class ToolExecutionResult:
    """Result of a tool invocation.

    Immediate results carry only `result`. Deferred results also carry `check`,
    which returns the external reply once one has arrived; `clear` resets the
    reply slot so a follow-up reply can be observed and `expire` records that
    nobody answered in time.
    """

    result: str
    deferred: bool = False
    check: Callable[[], Awaitable[str | None]] | None = None
    clear: Callable[[], Awaitable[None]] | None = None
    expire: Callable[[], Awaitable[None]] | None = None
    is_error: bool = False


ToolHandler = Callable[[BaseModel, ToolContext], Awaitable[ToolExecutionResult]]


@dataclass
class ToolDefinition:
    """Definition of a tool available to the AI assistant."""

    name: str
    description: str
    input_schema_class: type[BaseModel]
    handler: ToolHandler

    def get_json_schema(self) -> dict[str, Any]:
        """Get JSON schema for this tool's input."""
        schema = self.input_schema_class.model_json_schema()
        schema.pop("title", None)
        return schema

    def parse_input(self, raw_input: dict[str, Any]) -> BaseModel:
        """Parse and validate tool input."""
        return self.input_schema_class.model_validate(raw_input)

    def to_llm_tool(self) -> LLMToolDefinition:
        return LLMToolDefinition(name=self.name, description=self.description, input_schema=self.get_json_schema())
