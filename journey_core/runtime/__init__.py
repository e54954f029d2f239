"""Run management."""

from journey_core.runtime.manager import JourneyRun, RunManager, RunNotFoundError

__all__ = ["JourneyRun", "RunManager", "RunNotFoundError"]
