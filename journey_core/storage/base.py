"""
Persistence boundary.

The interpreter reads journeys and global screens at run start and emits
answer records as a side effect. Everything else about storage belongs to
the caller.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from journey_core.definitions.journey import Journey
from journey_core.definitions.screens import Screen


class JourneyNotFoundError(Exception):
    """Raised when a journey id is unknown to the repository."""

    def __init__(self, journey_id: str):
        self.journey_id = journey_id
        super().__init__(f"Journey not found: {journey_id}")


@dataclass
class AnswerRecord:
    """A captured user answer."""

    run_id: str
    key: str
    value: Any
    screen_id: Optional[str] = None
    element_id: Optional[str] = None
    agent_id: Optional[str] = None
    source: str = "state"
    metadata: Dict[str, Any] = field(default_factory=dict)
    recorded_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "runId": self.run_id,
            "key": self.key,
            "value": self.value,
            "screenId": self.screen_id,
            "elementId": self.element_id,
            "agentId": self.agent_id,
            "source": self.source,
            "metadata": dict(self.metadata),
            "recordedAt": self.recorded_at.isoformat(),
        }


class JourneyRepository(ABC):
    """Read access to journey definitions."""

    @abstractmethod
    async def load_journey(self, journey_id: str) -> Journey:
        """
        Load a journey.

        Raises:
            JourneyNotFoundError: If the journey does not exist
        """
        pass

    @abstractmethod
    async def load_global_screens(self) -> List[Screen]:
        """Load screens shared by every journey."""
        pass

    async def list_journeys(self) -> List[str]:
        return []


class AnswerRecorder(ABC):
    """Sink for captured answers."""

    @abstractmethod
    async def record_answer(self, record: AnswerRecord) -> None:
        pass
