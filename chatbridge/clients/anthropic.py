"""Anthropic API client with rate limiting and error handling."""

import asyncio
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Literal, TypeVar

import tiktoken
from anthropic import APIError, AsyncAnthropic
from anthropic.types import ContentBlock as AnthropicContentBlock
from anthropic.types import Message
from limits import RateLimitItem, parse
from limits.storage import MemoryStorage
from limits.strategies import MovingWindowRateLimiter
from pydantic import BaseModel, ValidationError

from chatbridge.config import DEFAULT_MODEL
from chatbridge.models.llm import ContentBlock, TextBlock, ToolUseBlock
from chatbridge.utils.logging import get_logger

T = TypeVar("T")

logger = get_logger(__name__)

# Provider block types we understand; anything else (thinking, server tools) is dropped
RESPONSE_BLOCK_TYPES: dict[str, type[TextBlock] | type[ToolUseBlock]] = {
    "text": TextBlock,
    "tool_use": ToolUseBlock,
}


class CacheControl(BaseModel):
    """Cache control configuration for prompt caching."""

    type: Literal["ephemeral"] = "ephemeral"
    ttl: Literal["5m", "1h"] = "5m"


class AnthropicMessage(BaseModel):
    """Message format for Anthropic API."""

    role: Literal["user", "assistant"]
    content: str | list[ContentBlock]

    @property
    def is_plain_user_turn(self) -> bool:
        """A user turn with text content, as opposed to a batch of tool results."""
        return self.role == "user" and isinstance(self.content, str)

    def text(self) -> str:
        """Flatten content to text for token estimation."""
        if isinstance(self.content, str):
            return self.content
        parts = []
        for block in self.content:
            if isinstance(block, TextBlock):
                parts.append(block.text)
            elif isinstance(block, ToolUseBlock):
                parts.append(str(block.input))
            else:
                parts.append(block.content)
        return "".join(parts)


class AnthropicTool(BaseModel):
    """Tool definition for Anthropic API."""

    name: str
    description: str
    input_schema: dict[str, Any]
    cache_control: CacheControl | None = None


@dataclass
class TokenUsage:
    """Token usage information from Anthropic API."""

    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0

    cache_creation_input_tokens: int = 0
    cache_read_input_tokens: int = 0

    @classmethod
    def from_message(cls, response: Message) -> "TokenUsage":
        if not response.usage:
            return cls()
        usage = response.usage
        return cls(
            input_tokens=usage.input_tokens,
            output_tokens=usage.output_tokens,
            total_tokens=usage.input_tokens + usage.output_tokens,
            cache_creation_input_tokens=usage.cache_creation_input_tokens or 0,
            cache_read_input_tokens=usage.cache_read_input_tokens or 0,
        )


@dataclass
class AnthropicResponse:
    """Structured response from Anthropic API."""

    content: list[ContentBlock]
    stop_reason: str | None
    usage: TokenUsage
    model: str


@dataclass
class AnthropicConfig:
    """Configuration for Anthropic API client."""

    model: str = DEFAULT_MODEL
    max_tokens: int = 1024
    temperature: float = 0.7
    max_retries: int = 3
    retry_delay: float = 1.0
    # 429s asking for a longer pause than this are raised instead of retried
    max_retry_after: float = 120.0

    # Token limits for validation and truncation
    max_message_tokens: int = 2000
    max_conversation_tokens: int = 200000
    token_headroom: int = 2000  # Reserved for the response


class AnthropicRateLimiter:
    """Moving-window limits on requests and tokens sent to the Anthropic API."""

    def __init__(self, requests_per_minute: int = 50, tokens_per_minute: int = 40_000):
        """Initialize rate limiter.

        Args:
            requests_per_minute: Maximum requests per minute
            tokens_per_minute: Maximum input tokens per minute
        """
        self.limiter = MovingWindowRateLimiter(MemoryStorage())
        self.request_limit = parse(f"{requests_per_minute}/minute")
        self.token_limit = parse(f"{tokens_per_minute}/minute")

    async def _wait_for_window(self, limit: RateLimitItem, identifier: str, cost: int, label: str) -> None:
        if self.limiter.hit(limit, identifier, cost=cost):
            return
        window_stats = self.limiter.get_window_stats(limit, identifier)
        wait_time = max(0.0, window_stats.reset_time - time.time()) if window_stats else 0.0
        if wait_time > 0:
            logger.warning(f"{label} rate limit exceeded, waiting {wait_time:.2f}s")
            await asyncio.sleep(wait_time)

    async def check_rate_limit(self, estimated_tokens: int, identifier: str = "anthropic") -> None:
        """Wait until the request fits within both windows."""
        logger.debug(f"Checking rate limit for {estimated_tokens} tokens, identifier: {identifier}")
        await self._wait_for_window(self.request_limit, identifier, 1, "Request")
        await self._wait_for_window(self.token_limit, f"{identifier}_tokens", max(estimated_tokens, 1), "Token")


class AnthropicClient:
    """Low-level Anthropic API client with rate limiting and error handling."""

    tokenizer: tiktoken.Encoding | None = None
    api_key: str
    client: AsyncAnthropic
    config: AnthropicConfig
    rate_limiter: AnthropicRateLimiter = AnthropicRateLimiter()

    def __init__(self, api_key: str | None = None, config: AnthropicConfig | None = None):
        """Initialize Anthropic client.

        Args:
            api_key: Anthropic API key
            config: Client configuration
        """
        if not api_key:
            raise ValueError("ANTHROPIC_API_KEY environment variable is required")

        self.api_key = api_key
        self.client = AsyncAnthropic(api_key=self.api_key)
        self.config = config or AnthropicConfig()

        try:
            # Close approximation for Claude
            self.tokenizer = tiktoken.encoding_for_model("gpt-4")
        except Exception:
            logger.warning("tiktoken encoding unavailable, estimating tokens from length")
            self.tokenizer = None

    def _build_request(
        self,
        messages: list[AnthropicMessage],
        system_prompt: str,
        tools: list[AnthropicTool] | None,
        **kwargs,
    ) -> dict[str, Any]:
        truncated_messages = self.truncate_conversation(messages, system_prompt, tools)

        request_params: dict[str, Any] = {
            "model": kwargs.get("model") or self.config.model,
            "max_tokens": kwargs.get("max_tokens") or self.config.max_tokens,
            "temperature": kwargs.get("temperature", self.config.temperature),
            "system": system_prompt,
            "messages": [msg.model_dump(exclude_none=True) for msg in truncated_messages],
        }
        # The API rejects an empty tools array
        if tools:
            request_params["tools"] = [tool.model_dump(exclude_none=True) for tool in tools]

        return request_params

    async def create_message(
        self,
        messages: list[AnthropicMessage],
        system_prompt: str,
        tools: list[AnthropicTool] | None = None,
        **kwargs,
    ) -> AnthropicResponse:
        """Create a message with Claude API.

        Args:
            messages: Conversation history
            system_prompt: System prompt for Claude
            tools: Available tools for Claude
            **kwargs: model, max_tokens or temperature overrides

        Returns:
            Structured Anthropic response
        """
        request_params = self._build_request(messages, system_prompt, tools, **kwargs)
        await self.rate_limiter.check_rate_limit(self._estimate_tokens(messages, system_prompt))

        logger.debug(
            f"Creating message with {len(request_params['messages'])} messages, {len(tools) if tools else 0} tools"
        )
        response: Message = await self._request_with_retries(lambda: self.client.messages.create(**request_params))
        logger.debug(f"Response received - Stop reason: {response.stop_reason}, blocks: {len(response.content)}")

        return AnthropicResponse(
            content=self._convert_content_blocks(response.content),
            stop_reason=response.stop_reason,
            usage=TokenUsage.from_message(response),
            model=response.model,
        )

    async def stream_message(
        self,
        messages: list[AnthropicMessage],
        system_prompt: str,
        **kwargs,
    ) -> AsyncIterator[str]:
        """Stream text deltas for a toolless request.

        Not retried: once text has reached the caller a retry would duplicate it.
        """
        request_params = self._build_request(messages, system_prompt, None, **kwargs)
        await self.rate_limiter.check_rate_limit(self._estimate_tokens(messages, system_prompt))

        logger.debug(f"Streaming message with {len(request_params['messages'])} messages")
        async with self.client.messages.stream(**request_params) as stream:
            async for text in stream.text_stream:
                if text:
                    yield text

    def _retry_delay(self, error: Exception, attempt: int) -> float | None:
        """Seconds to wait before retrying, or None if the error should propagate."""
        if attempt >= self.config.max_retries - 1:
            return None

        backoff = self.config.retry_delay * (2**attempt)
        if not isinstance(error, APIError):
            return backoff

        status_code = getattr(error, "status_code", None)
        if status_code == 429:
            response = getattr(error, "response", None)
            retry_after = float(response.headers.get("retry-after", 60)) if response is not None else 60.0
            return retry_after if retry_after < self.config.max_retry_after else None
        if status_code is not None and status_code >= 500:
            return backoff
        return None

    async def _request_with_retries(self, call: Callable[[], Awaitable[T]]) -> T:
        """Execute Anthropic API request with retry logic."""
        attempt = 0
        while True:
            try:
                return await call()
            except Exception as e:
                delay = self._retry_delay(e, attempt)
                if delay is None:
                    raise
                logger.warning(f"Anthropic request failed (attempt {attempt + 1}), retrying in {delay:.1f}s: {e}")
                await asyncio.sleep(delay)
                attempt += 1

    def _convert_content_blocks(self, anthropic_content: list[AnthropicContentBlock]) -> list[ContentBlock]:
        """Convert Anthropic content blocks to our ContentBlock types."""
        converted_blocks: list[ContentBlock] = []
        for block in anthropic_content:
            block_dict = block.model_dump()
            block_class = RESPONSE_BLOCK_TYPES.get(block_dict.get("type", ""))
            if block_class is None:
                logger.warning(f"Skipping unsupported content block type: {block_dict.get('type')}")
                continue
            try:
                converted_blocks.append(block_class.model_validate(block_dict))
            except ValidationError as e:
                logger.error(f"Failed to convert content block: {e}, block: {block}")

        return converted_blocks

    def _estimate_tokens(self, messages: list[AnthropicMessage], system_prompt: str) -> int:
        """Estimate token count for rate limiting."""
        return self.estimate_message_tokens(system_prompt + "".join(message.text() for message in messages))

    def estimate_message_tokens(self, message: str) -> int:
        """Estimate token count for a single message.

        Args:
            message: Message content

        Returns:
            Estimated token count
        """
        if self.tokenizer is not None:
            try:
                return len(self.tokenizer.encode(message))
            except Exception as e:
                logger.debug(f"Tokenizer failed, falling back to length estimate: {e}")
        # Roughly 4 characters per token
        return len(message) // 4

    def validate_message_tokens(self, message: str) -> None:
        """Validate that a message doesn't exceed token limits.

        Raises:
            ValueError: If message exceeds token limit
        """
        token_count = self.estimate_message_tokens(message)
        if token_count > self.config.max_message_tokens:
            raise ValueError(
                f"Message exceeds token limit: {token_count} tokens > {self.config.max_message_tokens} limit"
            )

    def truncate_conversation(
        self, messages: list[AnthropicMessage], system_prompt: str, tools: list[AnthropicTool] | None = None
    ) -> list[AnthropicMessage]:
        """Drop the oldest messages until the conversation fits the context budget.

        The result always starts with a plain user turn, so a tool result is
        never separated from the tool use that produced it.
        """
        if not messages:
            return messages

        budget = self.config.max_conversation_tokens - self.config.token_headroom
        budget -= self.estimate_message_tokens(system_prompt)
        if tools:
            budget -= self.estimate_message_tokens(
                "".join(tool.name + tool.description + str(tool.input_schema) for tool in tools)
            )

        start = len(messages)
        used = 0
        while start > 0:
            cost = self.estimate_message_tokens(messages[start - 1].text())
            if used + cost > budget:
                break
            used += cost
            start -= 1

        if start == 0:
            return messages

        kept = messages[start:]
        while len(kept) > 1 and not kept[0].is_plain_user_turn:
            kept = kept[1:]

        logger.warning(
            f"Truncated conversation from {len(messages)} to {len(kept)} messages to fit within {budget} token limit"
        )
        return kept
