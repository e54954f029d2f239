"""File-backed journey repository."""

from pathlib import Path
from typing import Dict, List, Optional, Union

import structlog

from journey_core.definitions.journey import Journey
from journey_core.definitions.loader import (
    YAML_SUFFIXES,
    journey_from_document,
    read_document,
    screens_from_document,
)
from journey_core.definitions.screens import Screen
from journey_core.storage.base import JourneyNotFoundError, JourneyRepository


logger = structlog.get_logger()


JOURNEY_SUFFIXES = (".json",) + YAML_SUFFIXES


class FileJourneyRepository(JourneyRepository):
    """
    Reads journeys from a directory of JSON or YAML files.

    A journey is found by its ``id`` field, falling back to the file stem.
    Global screens live in an optional ``screens`` file (any supported
    suffix) in the same directory.
    """

    def __init__(self, directory: Union[str, Path], screens_file: Optional[str] = "screens"):
        self.directory = Path(directory)
        self.screens_file = screens_file
        self._index: Optional[Dict[str, Path]] = None

    def _journey_files(self) -> List[Path]:
        if not self.directory.is_dir():
            return []
        return sorted(
            path for path in self.directory.iterdir()
            if path.is_file()
            and path.suffix.lower() in JOURNEY_SUFFIXES
            and path.stem != self.screens_file
        )

    def _build_index(self) -> Dict[str, Path]:
        index: Dict[str, Path] = {}
        for path in self._journey_files():
            data = read_document(path)
            journey_id = None
            if isinstance(data, dict):
                body = data.get("journey", data)
                if isinstance(body, dict):
                    journey_id = body.get("id") or body.get("_id")
            index[str(journey_id or path.stem)] = path
        logger.debug("journey_index_built", directory=str(self.directory), count=len(index))
        return index

    def refresh(self) -> None:
        self._index = None

    async def load_journey(self, journey_id: str) -> Journey:
        if self._index is None:
            self._index = self._build_index()

        path = self._index.get(journey_id)
        if path is None:
            raise JourneyNotFoundError(journey_id)

        journey = journey_from_document(read_document(path))
        if not journey.id:
            journey.id = journey_id
        return journey

    async def load_global_screens(self) -> List[Screen]:
        if not self.screens_file:
            return []
        for suffix in JOURNEY_SUFFIXES:
            path = self.directory / f"{self.screens_file}{suffix}"
            if path.is_file():
                return screens_from_document(read_document(path))
        return []

    async def list_journeys(self) -> List[str]:
        if self._index is None:
            self._index = self._build_index()
        return list(self._index.keys())
