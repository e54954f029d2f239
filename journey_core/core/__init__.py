"""Shared infrastructure for the journey interpreter."""

from journey_core.core.logging import configure_logging, get_logger

__all__ = [
    "configure_logging",
    "get_logger",
]
