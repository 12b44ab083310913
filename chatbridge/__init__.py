"""Embeddable chat widget backend with human-in-the-loop tools."""

__version__ = "0.1.0"
