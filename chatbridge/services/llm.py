"""LLM service: provider-agnostic calls used by the chat orchestrator."""

from collections.abc import AsyncIterator
from typing import Protocol

from chatbridge.clients.anthropic import (
    AnthropicClient,
    AnthropicMessage,
    AnthropicResponse,
    AnthropicTool,
    CacheControl,
)
from chatbridge.models.llm import LLMMessage, LLMResponse, LLMToolDefinition, LLMUsage
from chatbridge.utils.logging import get_logger

logger = get_logger(__name__)


class ModelProvider(Protocol):
    """What the orchestrator needs from a model provider."""

    async def complete(
        self,
        messages: list[LLMMessage],
        system_prompt: str,
        tools: list[LLMToolDefinition] | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        """One non-streaming model call."""
        ...

    def stream_text(
        self,
        messages: list[LLMMessage],
        system_prompt: str,
        model: str | None = None,
        max_tokens: int | None = None,
    ) -> AsyncIterator[str]:
        """Token-level text stream for toolless calls."""
        ...


class LLMService:
    """High-level LLM service wrapping the Anthropic client."""

    def __init__(self, client: AnthropicClient):
        """Initialize LLM service.

        Args:
            client: Anthropic client
        """
        self.client = client

    def _convert_anthropic_response(self, anthropic_response: AnthropicResponse) -> LLMResponse:
        """Convert Anthropic response to provider-agnostic LLM response."""
        usage = None
        if anthropic_response.usage:
            usage = LLMUsage(
                input_tokens=anthropic_response.usage.input_tokens,
                output_tokens=anthropic_response.usage.output_tokens,
                total_tokens=anthropic_response.usage.total_tokens,
                cache_creation_input_tokens=anthropic_response.usage.cache_creation_input_tokens,
                cache_read_input_tokens=anthropic_response.usage.cache_read_input_tokens,
            )

        return LLMResponse(
            content=anthropic_response.content,
            stop_reason=anthropic_response.stop_reason,
            usage=usage,
            model=anthropic_response.model,
            provider="anthropic",
        )

    def _convert_tools(self, tools: list[LLMToolDefinition]) -> list[AnthropicTool]:
        anthropic_tools = []
        for i, tool in enumerate(tools):
            # Cache control on the last tool caches every tool definition before it
            cache_control = CacheControl(type="ephemeral", ttl="5m") if i == len(tools) - 1 else None
            anthropic_tools.append(
                AnthropicTool(
                    name=tool.name,
                    description=tool.description,
                    input_schema=tool.input_schema,
                    cache_control=cache_control,
                )
            )
        return anthropic_tools

    async def complete(
        self,
        messages: list[LLMMessage],
        system_prompt: str,
        tools: list[LLMToolDefinition] | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        """Call the model once and return its full response."""
        anthropic_messages = [AnthropicMessage(role=msg.role, content=msg.content) for msg in messages]
        anthropic_tools = self._convert_tools(tools) if tools else None

        logger.debug(
            f"Calling LLM with {len(anthropic_messages)} messages and {len(anthropic_tools or [])} tools"
        )
        response = await self.client.create_message(
            messages=anthropic_messages,
            system_prompt=system_prompt,
            tools=anthropic_tools,
            model=model,
            max_tokens=max_tokens,
        )
        return self._convert_anthropic_response(response)

    async def stream_text(
        self,
        messages: list[LLMMessage],
        system_prompt: str,
        model: str | None = None,
        max_tokens: int | None = None,
    ) -> AsyncIterator[str]:
        """Stream text deltas from the model."""
        anthropic_messages = [AnthropicMessage(role=msg.role, content=msg.content) for msg in messages]
        async for text in self.client.stream_message(
            messages=anthropic_messages,
            system_prompt=system_prompt,
            model=model,
            max_tokens=max_tokens,
        ):
            yield text
