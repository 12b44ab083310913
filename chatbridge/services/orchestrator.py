"""Agentic chat orchestrator.

Drives one chat request: model calls, tool execution (including waits for a
human reply), incremental text delivery and persistence of the finished turn
pair. The orchestrator only produces events; the streaming transport decides
where they go.
"""

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Literal

from chatbridge.config import DEFAULT_MODEL, DEFAULT_SYSTEM_PROMPT
from chatbridge.models.conversation import ChatTurn
from chatbridge.models.events import DoneEvent, ErrorEvent, StreamEvent, TextEvent, WaitingEvent
from chatbridge.models.llm import LLMMessage, LLMToolDefinition, ToolResultBlock, ToolUseBlock
from chatbridge.services.llm import ModelProvider
from chatbridge.services.reply_wait import ReplyCheck, ReplyWaitResult, wait_for_replies
from chatbridge.tools.base import ToolExecutionResult
from chatbridge.utils.logging import get_logger

logger = get_logger(__name__)

ToolExecutor = Callable[[str, dict[str, Any], str | None, str], Awaitable[ToolExecutionResult]]
SaveCallback = Callable[[str, list[ChatTurn]], Awaitable[None]]

REPLY_TIMEOUT_MESSAGE = (
    "No reply received from owner. Please ask the user to leave their contact information or check back later."
)
MAX_ROUNDS_MESSAGE = "I'm sorry, I wasn't able to finish that request. Could you try asking again?"


@dataclass
class ChatConfiguration:
    """Everything the orchestrator needs that does not change per request."""

    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    model: str = DEFAULT_MODEL
    max_tokens: int = 1024
    tools: list[LLMToolDefinition] = field(default_factory=list)
    tool_executor: ToolExecutor | None = None
    on_save: SaveCallback | None = None

    max_tool_rounds: int = 10
    reply_check_interval: float = 2.0
    reply_timeout: float = 300.0
    finalize_keyword: str = "SEND"
    reply_mode: Literal["accumulate", "single"] = "accumulate"
    waiting_message: str = "Checking with a team member..."

    # Streaming granularity only; chunk boundaries carry no meaning
    chunk_size: int = 20
    chunk_delay: float = 0.01

    # Toolless requests stream tokens straight from the provider
    stream_tokens: bool = True

    # Emitted when every round asked for tools; None closes the stream without text
    max_rounds_message: str | None = MAX_ROUNDS_MESSAGE


def build_model_messages(history: list[ChatTurn], message: str) -> list[LLMMessage]:
    """Project stored history plus the new user message into provider messages."""
    messages = [
        LLMMessage(role="user" if turn.sender == "user" else "assistant", content=turn.text) for turn in history
    ]
    messages.append(LLMMessage(role="user", content=message))
    return messages


def chunk_text(text: str, size: int) -> list[str]:
    """Split text into consecutive pieces of at most `size` characters."""
    if size <= 0:
        return [text] if text else []
    return [text[i : i + size] for i in range(0, len(text), size)]


def format_owner_instructions(wait: ReplyWaitResult, finalize_keyword: str = "SEND") -> str:
    """Tool result text relaying the owner's replies to the model."""
    instructions = "\n---\n".join(wait.instructions) or "(no further instructions)"
    signaled = f"Owner has signaled {finalize_keyword.upper()}. " if wait.finalized else ""
    return (
        "[INTERNAL - DO NOT SHARE WITH VISITOR]\n"
        f"Owner instructions:\n{instructions}\n\n"
        f"{signaled}Formulate a natural response to the visitor based on these instructions. "
        "Do not reveal what the owner said."
    )


class ChatOrchestrator:
    """Runs the agentic loop for one chat request at a time."""

    def __init__(self, llm: ModelProvider, config: ChatConfiguration):
        """Initialize orchestrator.

        Args:
            llm: Model provider used for every round
            config: Process-wide chat configuration
        """
        self.llm = llm
        self.config = config

    @property
    def uses_token_streaming(self) -> bool:
        return self.config.stream_tokens and not self.config.tools

    async def run(
        self, message: str, session_id: str | None = None, history: list[ChatTurn] | None = None
    ) -> AsyncIterator[StreamEvent]:
        """Produce the events for one request, ending with a done or error event."""
        prior_turns = list(history or [])
        messages = build_model_messages(prior_turns, message)
        chat_history = [*prior_turns, ChatTurn(sender="user", text=message)]
        full_response = ""

        logger.info(
            f"Starting chat round for session {session_id} with {len(prior_turns)} prior turns, "
            f"{len(self.config.tools)} tools"
        )

        try:
            if self.uses_token_streaming:
                source = self._stream_tokens(messages)
            else:
                source = self._agent_rounds(messages, session_id)
            async for event in source:
                if isinstance(event, TextEvent):
                    full_response += event.text
                yield event
        except Exception as e:
            logger.error(f"Stream error for session {session_id}: {e}", exc_info=True)
            yield ErrorEvent()
            return

        await self._persist(session_id, chat_history, full_response)
        yield DoneEvent()

    async def _stream_tokens(self, messages: list[LLMMessage]) -> AsyncIterator[StreamEvent]:
        async for text in self.llm.stream_text(
            messages, self.config.system_prompt, model=self.config.model, max_tokens=self.config.max_tokens
        ):
            yield TextEvent(text)

    async def _agent_rounds(self, messages: list[LLMMessage], session_id: str | None) -> AsyncIterator[StreamEvent]:
        tools = self.config.tools or None

        for round_number in range(1, self.config.max_tool_rounds + 1):
            logger.debug(f"Agent round {round_number}/{self.config.max_tool_rounds}")
            response = await self.llm.complete(
                messages,
                self.config.system_prompt,
                tools=tools,
                model=self.config.model,
                max_tokens=self.config.max_tokens,
            )

            tool_uses = response.tool_uses
            if response.stop_reason == "tool_use" and self.config.tool_executor is not None and tool_uses:
                logger.info(f"Model requested {len(tool_uses)} tools in round {round_number}")

                preamble = response.text
                if preamble:
                    yield TextEvent(preamble)

                messages.append(LLMMessage(role="assistant", content=response.content))

                tool_results: list[ToolResultBlock] = []
                for tool_use in tool_uses:
                    try:
                        execution = await self.config.tool_executor(
                            tool_use.name, tool_use.input, session_id, tool_use.id
                        )
                        if execution.deferred and execution.check is not None:
                            yield WaitingEvent(self.config.waiting_message)
                            tool_results.append(await self._await_reply(tool_use, execution, execution.check))
                        else:
                            tool_results.append(
                                ToolResultBlock(
                                    tool_use_id=tool_use.id, content=execution.result, is_error=execution.is_error
                                )
                            )
                    except Exception as e:
                        logger.error(f"Tool {tool_use.name} failed: {e}", exc_info=True)
                        tool_results.append(
                            ToolResultBlock(tool_use_id=tool_use.id, content=f"Error: {e!s}", is_error=True)
                        )

                messages.append(LLMMessage(role="user", content=tool_results))
                continue

            for chunk in chunk_text(response.text, self.config.chunk_size):
                yield TextEvent(chunk)
                await asyncio.sleep(self.config.chunk_delay)
            logger.info(f"Chat round completed in {round_number} model calls")
            return

        logger.warning(f"Agent loop reached max rounds ({self.config.max_tool_rounds})")
        if self.config.max_rounds_message:
            for chunk in chunk_text(self.config.max_rounds_message, self.config.chunk_size):
                yield TextEvent(chunk)

    async def _await_reply(
        self, tool_use: ToolUseBlock, execution: ToolExecutionResult, check: ReplyCheck
    ) -> ToolResultBlock:
        """Wait for the human reply behind a deferred tool and fold it into a tool result."""
        wait = await wait_for_replies(
            check,
            interval=self.config.reply_check_interval,
            timeout=self.config.reply_timeout,
            clear=execution.clear,
            finalize_keyword=self.config.finalize_keyword,
            mode=self.config.reply_mode,
        )

        if wait.timed_out and execution.expire is not None:
            await execution.expire()

        if wait.received or wait.finalized:
            logger.info(f"Received {len(wait.instructions)} replies for tool {tool_use.name}")
            return ToolResultBlock(
                tool_use_id=tool_use.id, content=format_owner_instructions(wait, self.config.finalize_keyword)
            )

        logger.warning(f"No reply received for tool {tool_use.name} within {self.config.reply_timeout}s")
        return ToolResultBlock(tool_use_id=tool_use.id, content=REPLY_TIMEOUT_MESSAGE, is_error=True)

    async def _persist(self, session_id: str | None, chat_history: list[ChatTurn], full_response: str) -> None:
        if not session_id or not full_response or self.config.on_save is None:
            return

        turns = [*chat_history, ChatTurn(sender="bot", text=full_response)]
        try:
            await self.config.on_save(session_id, turns)
            logger.debug(f"Saved {len(turns)} turns for session {session_id}")
        except Exception as e:
            logger.error(f"Failed to save chat for session {session_id}: {e}", exc_info=True)
