"""Server-sent events emitted while a chat round runs."""

import json
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class StreamEvent:
    """Base class for a single SSE frame."""

    def payload(self) -> dict[str, Any] | str:
        raise NotImplementedError

    def to_sse(self) -> str:
        """Render as a `data: ...` frame."""
        payload = self.payload()
        data = payload if isinstance(payload, str) else json.dumps(payload, separators=(",", ":"))
        return f"data: {data}\n\n"


@dataclass(frozen=True)
class TextEvent(StreamEvent):
    """Incremental text to append to the visible assistant message."""

    text: str

    def payload(self) -> dict[str, Any]:
        return {"text": self.text}


@dataclass(frozen=True)
class WaitingEvent(StreamEvent):
    """The round is waiting on an external actor."""

    message: str = "Checking with a team member..."

    def payload(self) -> dict[str, Any]:
        return {"type": "waiting", "message": self.message}


@dataclass(frozen=True)
class ErrorEvent(StreamEvent):
    """Terminal failure notice. Never carries provider detail."""

    message: str = "An error occurred"

    def payload(self) -> dict[str, Any]:
        return {"type": "error", "message": self.message}


@dataclass(frozen=True)
class DoneEvent(StreamEvent):
    """Terminal success marker."""

    def payload(self) -> str:
        return "[DONE]"
