"""Chat request, history and health models."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ChatTurn(BaseModel):
    """One persisted turn of a widget conversation."""

    sender: Literal["user", "bot"]
    text: str


class ChatRequest(BaseModel):
    """Request body for the chat endpoint."""

    model_config = ConfigDict(populate_by_name=True)

    message: str = Field(..., min_length=1)
    session_id: str | None = Field(default=None, alias="sessionId")
    history: list[ChatTurn] = Field(default_factory=list)

    @field_validator("history", mode="before")
    @classmethod
    def ignore_non_array_history(cls, value: Any) -> Any:
        """Widgets send null or omit history on a fresh conversation."""
        return value if isinstance(value, list) else []


class LoadChatRequest(BaseModel):
    """Request body for loading stored history."""

    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(..., min_length=1, alias="sessionId")


class LoadChatResponse(BaseModel):
    """Stored history for a session, or None for an unknown session."""

    messages: list[ChatTurn] | None


class HealthResponse(BaseModel):
    """Response model for health check endpoint."""

    status: str
    timestamp: datetime
    version: str
