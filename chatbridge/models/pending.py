"""Pending external request model for human-in-the-loop tools."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any


class PendingStatus(StrEnum):
    """Lifecycle of a request awaiting a human reply."""

    PENDING = "pending"
    REPLIED = "replied"
    TIMED_OUT = "timeout"


@dataclass
class PendingExternalRequest:
    """A tool invocation waiting on a reply delivered out of band."""

    id: str
    session_id: str
    tool_use_id: str
    message_sent: str
    reply: str | None = None
    status: PendingStatus = PendingStatus.PENDING
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    replied_at: datetime | None = None
    context: dict[str, Any] | None = None

    def record_reply(self, reply: str) -> None:
        """Store a reply and mark the request as replied."""
        self.reply = reply
        self.status = PendingStatus.REPLIED
        self.replied_at = datetime.now(UTC)

    def reset(self) -> None:
        """Put a replied request back to pending so the next reply can land."""
        if self.status != PendingStatus.REPLIED:
            return
        self.reply = None
        self.replied_at = None
        self.status = PendingStatus.PENDING

    def expire(self) -> None:
        """Mark a still-pending request as timed out."""
        if self.status == PendingStatus.PENDING:
            self.status = PendingStatus.TIMED_OUT
