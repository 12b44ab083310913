"""Polling wait for replies delivered through an out-of-band channel."""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Literal

from chatbridge.utils.logging import get_logger

logger = get_logger(__name__)

ReplyCheck = Callable[[], Awaitable[str | None]]
ReplyClear = Callable[[], Awaitable[None]]


@dataclass
class ReplyWaitResult:
    """What a reply wait observed before it ended."""

    instructions: list[str] = field(default_factory=list)
    finalized: bool = False
    timed_out: bool = False

    @property
    def received(self) -> bool:
        return bool(self.instructions)


def is_finalize_signal(reply: str, finalize_keyword: str) -> bool:
    """Case-insensitive exact match of the trimmed reply against the keyword."""
    return reply.strip().upper() == finalize_keyword.strip().upper()


async def poll(check: ReplyCheck, interval: float, timeout: float) -> str | None:
    """Call `check` every `interval` seconds until it returns a value or `timeout` elapses.

    `check` is always called at least once, even with a zero timeout.

    Returns:
        The first value that is not None, or None on timeout
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout

    while True:
        value = await check()
        if value is not None:
            return value

        remaining = deadline - loop.time()
        if remaining <= 0:
            return None
        await asyncio.sleep(min(interval, remaining))


async def wait_for_replies(
    check: ReplyCheck,
    interval: float,
    timeout: float,
    clear: ReplyClear | None = None,
    finalize_keyword: str = "SEND",
    mode: Literal["accumulate", "single"] = "accumulate",
) -> ReplyWaitResult:
    """Collect human replies until a finalize signal or the deadline.

    In "accumulate" mode every reply other than the finalize keyword is kept and
    cleared from the store so the next one can be observed. Without `clear` the
    slot cannot move past a reply, so the first one ends the wait. In "single"
    mode the first reply ends the wait.
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    result = ReplyWaitResult()

    async def next_reply() -> str | None:
        # Blank replies carry nothing to relay
        return await check() or None

    while True:
        reply = await poll(next_reply, interval, max(0.0, deadline - loop.time()))
        if reply is None:
            result.timed_out = True
            return result

        if mode == "single":
            result.instructions.append(reply)
            return result

        if is_finalize_signal(reply, finalize_keyword):
            logger.info(f"Finalize signal received after {len(result.instructions)} replies")
            result.finalized = True
            return result

        result.instructions.append(reply)
        if clear is None:
            return result

        logger.debug(f"Collected reply {len(result.instructions)}")
        await clear()
