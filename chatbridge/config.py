"""Process-wide settings loaded from the environment."""

import os
from dataclasses import dataclass
from typing import Literal

DEFAULT_SYSTEM_PROMPT = """You are a helpful AI assistant. Be friendly, concise, and helpful.

Guidelines:
- Keep responses brief (1-3 sentences when possible)
- Be conversational and approachable
- If you don't know something, be honest about it
- Ask clarifying questions when needed"""

DEFAULT_MODEL = "claude-sonnet-4-5-20250929"

ReplyMode = Literal["accumulate", "single"]


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value else default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value else default


@dataclass
class Settings:
    """Settings for the chat service.

    Built once per process; request handlers never read the environment directly.
    """

    anthropic_api_key: str | None = None
    model: str = DEFAULT_MODEL
    max_tokens: int = 1024
    system_prompt: str = DEFAULT_SYSTEM_PROMPT

    max_tool_rounds: int = 10
    reply_check_interval: float = 2.0
    reply_timeout: float = 300.0
    finalize_keyword: str = "SEND"
    reply_mode: ReplyMode = "accumulate"

    twilio_account_sid: str = ""
    twilio_auth_token: str = ""
    twilio_phone_number: str = ""
    owner_phone_number: str = ""
    twilio_webhook_url: str | None = None

    @property
    def twilio_configured(self) -> bool:
        """Whether every value needed to send SMS is present."""
        return bool(
            self.twilio_account_sid and self.twilio_auth_token and self.twilio_phone_number and self.owner_phone_number
        )

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables."""
        reply_mode = os.getenv("REPLY_MODE", "accumulate").lower()
        if reply_mode not in ("accumulate", "single"):
            raise ValueError(f"REPLY_MODE must be 'accumulate' or 'single', got {reply_mode!r}")

        return cls(
            anthropic_api_key=os.getenv("ANTHROPIC_API_KEY"),
            model=os.getenv("CHAT_MODEL", DEFAULT_MODEL),
            max_tokens=_env_int("CHAT_MAX_TOKENS", 1024),
            system_prompt=os.getenv("CHAT_SYSTEM_PROMPT", DEFAULT_SYSTEM_PROMPT),
            max_tool_rounds=_env_int("CHAT_MAX_TOOL_ROUNDS", 10),
            reply_check_interval=_env_float("REPLY_CHECK_INTERVAL", 2.0),
            reply_timeout=_env_float("REPLY_TIMEOUT", 300.0),
            finalize_keyword=os.getenv("REPLY_FINALIZE_KEYWORD", "SEND"),
            reply_mode=reply_mode,  # type: ignore[arg-type]
            twilio_account_sid=os.getenv("TWILIO_ACCOUNT_SID", ""),
            twilio_auth_token=os.getenv("TWILIO_AUTH_TOKEN", ""),
            twilio_phone_number=os.getenv("TWILIO_PHONE_NUMBER", ""),
            owner_phone_number=os.getenv("OWNER_PHONE_NUMBER", ""),
            twilio_webhook_url=os.getenv("TWILIO_WEBHOOK_URL"),
        )


class ConfigurationError(RuntimeError):
    """A required setting is missing."""
