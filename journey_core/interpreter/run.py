"""
Run state.

A run is the runtime value for one started journey: the active agent and
screen, the run's own State Store, navigation history and the log of
applied events. Runs share nothing with each other.
"""

import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Deque, Dict, List, Optional

import structlog

from journey_core.config import DEFAULT_MAX_EVENT_LOG
from journey_core.definitions.actions import NEXT_SCREEN, PREV_SCREEN, extract_screen_id
from journey_core.definitions.base import JSONValue
from journey_core.definitions.journey import Agent, Journey
from journey_core.definitions.screens import Screen
from journey_core.interpreter.state import StateStore
from journey_core.interpreter.templates import TemplateScopes


logger = structlog.get_logger()


@dataclass
class AppliedEvent:
    """Record of an event that fired."""

    sequence: int
    event_id: str
    screen_id: Optional[str]
    element_id: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sequence": self.sequence,
            "eventId": self.event_id,
            "screenId": self.screen_id,
            "elementId": self.element_id,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class RunState:
    """
    Current state of a journey run.

    Tracks:
    - Active agent and screen
    - Screen and module state
    - Navigation stack and per-element interaction values
    - Applied events and completion
    """

    journey: Journey
    agent_id: Optional[str]
    run_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    screen_id: Optional[str] = None
    store: StateStore = field(default_factory=StateStore)
    global_screens: List[Screen] = field(default_factory=list)

    sequence: int = 0
    event_log: Deque[AppliedEvent] = field(default_factory=lambda: deque(maxlen=DEFAULT_MAX_EVENT_LOG))
    navigation_stack: List[str] = field(default_factory=list)
    interactions: Dict[str, Dict[str, JSONValue]] = field(default_factory=dict)

    completed: bool = False
    completion_reason: Optional[str] = None
    flow_completed: bool = False

    started_at: datetime = field(default_factory=datetime.utcnow)
    last_activity: datetime = field(default_factory=datetime.utcnow)

    @property
    def agent(self) -> Optional[Agent]:
        return self.journey.get_agent(self.agent_id)

    @property
    def screen(self) -> Optional[Screen]:
        if not self.screen_id:
            return None
        return self.find_screen(self.screen_id)

    def find_screen(self, screen_id: str) -> Optional[Screen]:
        """Look up a screen in the active agent, then in the global screens."""
        agent = self.agent
        if agent:
            screen = agent.find_screen(screen_id)
            if screen:
                return screen
        for screen in self.global_screens:
            if screen.id == screen_id:
                return screen
        return None

    def resolve_target(self, deeplink: str) -> Optional[Screen]:
        """Resolve a navigate deeplink, including the next/prev placeholders."""
        screen_id = extract_screen_id(deeplink)
        if screen_id in (NEXT_SCREEN, PREV_SCREEN):
            agent = self.agent
            if not agent or not self.screen_id:
                return None
            index = agent.screen_index(self.screen_id)
            if index < 0:
                return None
            index += 1 if screen_id == NEXT_SCREEN else -1
            if 0 <= index < len(agent.screens):
                return agent.screens[index]
            return None
        if not screen_id:
            return None
        return self.find_screen(screen_id)

    def evaluation_context(self, transient: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Merged state overlaid by transient (not persisted) values."""
        context = self.store.merged()
        if transient:
            context.update(transient)
        return context

    def template_scopes(self) -> TemplateScopes:
        return TemplateScopes(module=self.store.module, screen=self.store.screen)

    def record_event(
        self,
        event_id: str,
        element_id: Optional[str] = None,
    ) -> AppliedEvent:
        """Append to the applied-event log. Sequence numbers only grow."""
        self.sequence += 1
        applied = AppliedEvent(
            sequence=self.sequence,
            event_id=event_id,
            screen_id=self.screen_id,
            element_id=element_id,
        )
        self.event_log.append(applied)
        self.last_activity = applied.timestamp
        return applied

    def enter_screen(self, screen: Screen, push: bool = True) -> None:
        """Commit a screen as current and reseed the screen scope."""
        previous = self.screen_id
        self.screen_id = screen.id
        self.store.reset_screen(screen.state)
        self.interactions = {}
        if push:
            self.navigation_stack.append(screen.id)
        self.last_activity = datetime.utcnow()

        logger.debug(
            "screen_entered",
            run_id=self.run_id,
            from_screen=previous,
            to_screen=screen.id,
        )

    def complete(self, reason: Optional[str] = None, flow_completed: bool = True) -> None:
        self.completed = True
        self.completion_reason = reason
        self.flow_completed = flow_completed
        self.last_activity = datetime.utcnow()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "runId": self.run_id,
            "journeyId": self.journey.id,
            "agentId": self.agent_id,
            "screenId": self.screen_id,
            "sequence": self.sequence,
            "state": self.store.snapshot(),
            "navigationStack": list(self.navigation_stack),
            "interactions": {k: dict(v) for k, v in self.interactions.items()},
            "completed": self.completed,
            "completionReason": self.completion_reason,
            "flowCompleted": self.flow_completed,
            "startedAt": self.started_at.isoformat(),
            "lastActivity": self.last_activity.isoformat(),
        }
