"""Logging configuration."""

import logging
import os
import sys

from pydantic import BaseModel, Field

# Provider and transport libraries are chatty at INFO
NOISY_LOGGERS = ["anthropic", "httpx", "httpcore", "uvicorn.access"]


class LogConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    date_format: str = "%Y-%m-%d %H:%M:%S"
    quiet_loggers: list[str] = Field(default_factory=lambda: list(NOISY_LOGGERS))

    @classmethod
    def from_env(cls) -> "LogConfig":
        """Read the level from LOG_LEVEL."""
        return cls(level=os.getenv("LOG_LEVEL", "INFO"))


def setup_logging(config: LogConfig | None = None) -> None:
    """Configure the root logger for the chat service. Safe to call more than once."""
    config = config or LogConfig.from_env()

    logging.basicConfig(
        level=config.level.upper(),
        format=config.format,
        datefmt=config.date_format,
        stream=sys.stdout,
        force=True,
    )

    for name in config.quiet_loggers:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str, level: str | None = None) -> logging.Logger:
    """Get a logger for a module.

    Args:
        name: Module name (typically __name__)
        level: Explicit level; defaults to LOG_LEVEL, then INFO
    """
    logger = logging.getLogger(name)
    logger.setLevel((level or os.getenv("LOG_LEVEL", "INFO")).upper())
    return logger
