"""LLM-related data models and types (provider-agnostic)."""

from dataclasses import dataclass
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict


# Content block types
class TextBlock(BaseModel):
    """Text content block."""

    model_config = ConfigDict(extra="ignore")

    type: Literal["text"] = "text"
    text: str


class ToolUseBlock(BaseModel):
    """Tool use content block."""

    model_config = ConfigDict(extra="ignore")

    type: Literal["tool_use"] = "tool_use"
    id: str
    name: str
    input: dict[str, Any]


class ToolResultBlock(BaseModel):
    """Tool result content block."""

    model_config = ConfigDict(extra="ignore")

    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str
    content: str
    is_error: bool = False


ContentBlock = TextBlock | ToolUseBlock | ToolResultBlock


class LLMMessage(BaseModel):
    """A provider-facing message.

    History turns project to plain string content; tool use and tool result
    blocks only exist for the duration of one request.
    """

    role: Literal["user", "assistant"]
    content: str | list[ContentBlock]


class LLMToolDefinition(BaseModel):
    """Complete tool definition for LLM."""

    name: str
    description: str
    input_schema: dict[str, Any]


@dataclass
class LLMUsage:
    """Token/resource usage information from LLM provider."""

    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0

    cache_creation_input_tokens: int = 0
    cache_read_input_tokens: int = 0


@dataclass
class LLMResponse:
    """Provider-agnostic response from LLM service."""

    content: list[ContentBlock]
    stop_reason: str | None
    usage: LLMUsage | None
    model: str
    provider: str = "anthropic"

    @property
    def text(self) -> str:
        """Concatenated text of every text block, in order."""
        return "".join(block.text for block in self.content if isinstance(block, TextBlock))

    @property
    def tool_uses(self) -> list[ToolUseBlock]:
        """Tool use blocks, in the order the model requested them."""
        return [block for block in self.content if isinstance(block, ToolUseBlock)]
