"""Persistence boundary: journey reads and answer records."""

from journey_core.storage.base import (
    AnswerRecord,
    AnswerRecorder,
    JourneyNotFoundError,
    JourneyRepository,
)
from journey_core.storage.files import FileJourneyRepository
from journey_core.storage.memory import InMemoryAnswerRecorder, InMemoryJourneyRepository

__all__ = [
    "AnswerRecord",
    "AnswerRecorder",
    "FileJourneyRepository",
    "InMemoryAnswerRecorder",
    "InMemoryJourneyRepository",
    "JourneyNotFoundError",
    "JourneyRepository",
]
