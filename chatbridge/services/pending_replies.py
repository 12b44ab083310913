"""Storage for tool invocations awaiting a human reply."""

from typing import Any, Protocol

from cuid2 import cuid_wrapper

from chatbridge.models.pending import PendingExternalRequest, PendingStatus
from chatbridge.utils.logging import get_logger

logger = get_logger(__name__)

cuid = cuid_wrapper()


class PendingReplyStore(Protocol):
    """Interface for pending external request storage."""

    async def create_pending(
        self, session_id: str, tool_use_id: str, message: str, context: dict[str, Any] | None = None
    ) -> PendingExternalRequest:
        """Record a message sent to a human that expects a reply."""
        ...

    async def get_pending(self, session_id: str) -> PendingExternalRequest | None:
        """Most recent PENDING request for a session."""
        ...

    async def get_most_recent_pending(self) -> PendingExternalRequest | None:
        """Most recent PENDING request across all sessions (inbound webhook matching)."""
        ...

    async def update_reply(self, request_id: str, reply: str) -> PendingExternalRequest:
        """Store an inbound reply on a request."""
        ...

    async def check_reply(self, session_id: str) -> str | None:
        """Reply text of the session's current request if it has been answered."""
        ...

    async def clear_reply(self, session_id: str) -> None:
        """Reset a replied request to pending so the next reply can be captured."""
        ...

    async def mark_timed_out(self, session_id: str) -> None:
        """Mark the session's pending requests as timed out."""
        ...


class InMemoryPendingReplyStore:
    """In-memory pending reply store.

    Records are kept in creation order; "most recent" means last created.
    """

    def __init__(self) -> None:
        self._records: list[PendingExternalRequest] = []

    async def create_pending(
        self, session_id: str, tool_use_id: str, message: str, context: dict[str, Any] | None = None
    ) -> PendingExternalRequest:
        record = PendingExternalRequest(
            id=cuid(),
            session_id=session_id,
            tool_use_id=tool_use_id,
            message_sent=message,
            context=context,
        )
        self._records.append(record)
        logger.info(f"Created pending request {record.id} for session {session_id}")
        return record

    async def get_pending(self, session_id: str) -> PendingExternalRequest | None:
        for record in reversed(self._records):
            if record.session_id == session_id and record.status == PendingStatus.PENDING:
                return record
        return None

    async def get_most_recent_pending(self) -> PendingExternalRequest | None:
        for record in reversed(self._records):
            if record.status == PendingStatus.PENDING:
                return record
        return None

    async def update_reply(self, request_id: str, reply: str) -> PendingExternalRequest:
        record = self._get(request_id)
        if record is None:
            raise KeyError(f"Pending request not found: {request_id}")
        record.record_reply(reply)
        logger.info(f"Recorded reply for pending request {request_id} (session {record.session_id})")
        return record

    async def check_reply(self, session_id: str) -> str | None:
        record = self._latest(session_id)
        if record is not None and record.status == PendingStatus.REPLIED:
            return record.reply
        return None

    async def clear_reply(self, session_id: str) -> None:
        record = self._latest(session_id)
        if record is not None:
            record.reset()

    async def mark_timed_out(self, session_id: str) -> None:
        for record in self._records:
            if record.session_id == session_id:
                record.expire()

    def _get(self, request_id: str) -> PendingExternalRequest | None:
        return next((record for record in self._records if record.id == request_id), None)

    def _latest(self, session_id: str) -> PendingExternalRequest | None:
        return next((record for record in reversed(self._records) if record.session_id == session_id), None)
