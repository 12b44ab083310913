"""Chat history storage interface and implementations."""

import asyncio
from datetime import UTC, datetime
from typing import Protocol

from chatbridge.models.conversation import ChatTurn


class ChatStore(Protocol):
    """Interface for persisting completed conversations."""

    async def save(self, session_id: str, turns: list[ChatTurn]) -> None:
        """Upsert the full ordered history for a session.

        Args:
            session_id: Session identifier
            turns: Every turn of the conversation, oldest first
        """
        ...

    async def load(self, session_id: str) -> list[ChatTurn] | None:
        """Load the stored history for a session.

        Args:
            session_id: Session identifier

        Returns:
            Stored turns, or None if the session has never been saved
        """
        ...


class InMemoryChatStore:
    """In-memory chat store keyed by session ID."""

    def __init__(self) -> None:
        self._chats: dict[str, list[ChatTurn]] = {}
        self._updated_at: dict[str, datetime] = {}
        self._lock = asyncio.Lock()

    async def save(self, session_id: str, turns: list[ChatTurn]) -> None:
        async with self._lock:
            self._chats[session_id] = [turn.model_copy() for turn in turns]
            self._updated_at[session_id] = datetime.now(UTC)

    async def load(self, session_id: str) -> list[ChatTurn] | None:
        turns = self._chats.get(session_id)
        if turns is None:
            return None
        return [turn.model_copy() for turn in turns]

    def updated_at(self, session_id: str) -> datetime | None:
        """When the session was last saved."""
        return self._updated_at.get(session_id)

    def get_session_count(self) -> int:
        """Get current number of stored conversations."""
        return len(self._chats)
