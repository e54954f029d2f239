"""In-memory persistence implementations."""

import copy
from typing import Dict, List, Optional

import structlog

from journey_core.definitions.journey import Journey
from journey_core.definitions.screens import Screen
from journey_core.storage.base import (
    AnswerRecord,
    AnswerRecorder,
    JourneyNotFoundError,
    JourneyRepository,
)


logger = structlog.get_logger()


class InMemoryJourneyRepository(JourneyRepository):
    """Journey repository backed by a dict. Loads return copies."""

    def __init__(
        self,
        journeys: Optional[List[Journey]] = None,
        global_screens: Optional[List[Screen]] = None,
    ):
        self._journeys: Dict[str, Journey] = {}
        self._global_screens: List[Screen] = list(global_screens or [])
        for journey in journeys or []:
            self.add(journey)

    def add(self, journey: Journey) -> None:
        self._journeys[journey.id] = journey

    def add_global_screen(self, screen: Screen) -> None:
        self._global_screens.append(screen)

    async def load_journey(self, journey_id: str) -> Journey:
        journey = self._journeys.get(journey_id)
        if journey is None:
            raise JourneyNotFoundError(journey_id)
        return copy.deepcopy(journey)

    async def load_global_screens(self) -> List[Screen]:
        return copy.deepcopy(self._global_screens)

    async def list_journeys(self) -> List[str]:
        return list(self._journeys.keys())


class InMemoryAnswerRecorder(AnswerRecorder):
    """Keeps answers in a list, grouped lookups by run."""

    def __init__(self):
        self.records: List[AnswerRecord] = []

    async def record_answer(self, record: AnswerRecord) -> None:
        self.records.append(record)
        logger.debug("answer_recorded", run_id=record.run_id, key=record.key)

    def for_run(self, run_id: str) -> List[AnswerRecord]:
        return [r for r in self.records if r.run_id == run_id]

    def latest(self, run_id: str) -> Dict[str, object]:
        """Latest value per key for a run."""
        answers: Dict[str, object] = {}
        for record in self.for_run(run_id):
            answers[record.key] = record.value
        return answers
