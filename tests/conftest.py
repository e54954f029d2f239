"""Shared pytest fixtures for testing."""

import copy
import os
from collections import deque
from typing import Any, Dict

import pytest
import pytest_asyncio

# Set test environment
os.environ["JOURNEY_ENVIRONMENT"] = "test"

from journey_core.config import InterpreterSettings
from journey_core.definitions.journey import Journey
from journey_core.interpreter.actions import ActionExecutor
from journey_core.interpreter.dispatcher import EventDispatcher
from journey_core.interpreter.run import RunState
from journey_core.services.registry import LocalServiceRegistry
from journey_core.storage.memory import InMemoryAnswerRecorder, InMemoryJourneyRepository


def nav(target: str) -> Dict[str, Any]:
    return {"type": "navigation", "deeplink": target}


def update(scope: str, **updates) -> Dict[str, Any]:
    return {"type": "stateUpdate", "scope": scope, "updates": updates}


def flag_is_true() -> Dict[str, Any]:
    return {"==": [{"var": "flag"}, True]}


JOURNEY_DATA: Dict[str, Any] = {
    "id": "journey-1",
    "name": "Onboarding",
    "description": "Test onboarding journey",
    "systemPrompt": "You are a friendly guide.",
    "voice": "sage",
    "startingAgentId": "agent-1",
    "version": "1.2.0",
    "agents": [
        {
            "id": "agent-1",
            "name": "Greeter Agent",
            "prompt": "Greet the member.",
            "handoffs": ["agent-2"],
            "tools": [
                {"name": "go_b", "description": "Move to screen B", "parameters": {}},
                {"name": "confirm_choice", "description": "Confirm", "eventId": "set_flag"},
                {"name": "record_input", "description": "Record what the member said"},
            ],
            "screenPrompts": {"screen_a": "Ask how they feel.", "screen_b": None},
            "screens": [
                {
                    "id": "screen_a",
                    "title": "Welcome",
                    "state": {"step": "a", "note": "from a"},
                    "sections": [
                        {
                            "id": "body",
                            "position": "body",
                            "elements": [
                                {
                                    "type": "toggleCard",
                                    "state": {"id": "toggle1", "label": "Declared label"},
                                    "conditions": [
                                        {"rules": flag_is_true(), "state": {"label": "ON"}},
                                    ],
                                    "events": [
                                        {"id": "t_on", "type": "onToggleOn",
                                         "action": [update("screen", toggled=True)]},
                                    ],
                                },
                                {
                                    "type": "largeQuestion",
                                    "state": {"id": "q1", "question": "Pick one"},
                                    "events": [
                                        {
                                            "id": "answer_selected",
                                            "type": "onSelected",
                                            "conditions": [
                                                {"rules": {"!=": [{"var": "selectedOptionId"}, None]}},
                                            ],
                                            "action": [update("module", answer_q1="picked")],
                                        },
                                    ],
                                },
                                {
                                    "type": "hologram",
                                    "state": {"id": "mystery_el"},
                                    "events": [{"id": "poke", "action": [update("module", poked=True)]}],
                                },
                            ],
                        }
                    ],
                    "events": [
                        {"id": "go_b", "type": "custom", "action": [nav("screen_b")]},
                        {
                            "id": "go_c_then_update",
                            "action": [nav("screen_c"), update("module", after=True)],
                        },
                        {"id": "set_flag", "action": [update("module", flag=True)]},
                        {
                            "id": "guarded",
                            "conditions": [{"rules": flag_is_true()}],
                            "action": [update("module", guarded=1), nav("screen_b")],
                        },
                        {
                            "id": "service_flow",
                            "action": [
                                update("module", a=1),
                                {
                                    "type": "serviceCall",
                                    "serviceName": "X",
                                    "onError": [update("module", a=2)],
                                },
                                update("module", a=3),
                            ],
                        },
                        {
                            "id": "finish",
                            "action": [
                                {"type": "closeModule", "flowCompleted": True,
                                 "parameters": {"reason": "done"}},
                                update("module", after_close=True),
                            ],
                        },
                        {
                            "id": "mystery",
                            "action": [{"type": "custom", "name": "x"}, update("module", afterUnknown=True)],
                        },
                        {
                            "id": "go_missing",
                            "action": [nav("nowhere"), update("module", afterMissing=True)],
                        },
                        {"id": "go_next", "action": [nav("next-screen")]},
                        {
                            "id": "go_url",
                            "action": [nav("https://links.example.com/onboarding/screen_c")],
                        },
                    ],
                },
                {
                    "id": "screen_b",
                    "title": "Second",
                    "state": {"count": 0},
                    "events": [
                        {"id": "go_a", "action": [nav("screen_a")]},
                        {"id": "bump", "action": [update("screen", count=1)]},
                    ],
                },
                {
                    "id": "screen_c",
                    "hidesBackButton": True,
                    "state": {"locked": True},
                    "events": [{"id": "go_b", "action": [nav("screen_b")]}],
                },
            ],
        },
        {
            "id": "agent-2",
            "name": "Wrap Up",
            "prompt": "Close the conversation.",
            "handoffs": [],
            "screens": [
                {
                    "id": "screen_end",
                    "state": {"phase": "end"},
                    "events": [
                        {"id": "entered", "type": "onAppear", "action": [update("module", reachedEnd=True)]},
                        {"id": "show_feedback_screen", "action": [nav("screen_feedback")]},
                    ],
                },
                {"id": "screen_feedback", "state": {"rating": None}},
            ],
        },
    ],
}


@pytest.fixture
def journey_data() -> Dict[str, Any]:
    """Raw journey document."""
    return copy.deepcopy(JOURNEY_DATA)


@pytest.fixture
def journey(journey_data) -> Journey:
    """Decoded journey."""
    return Journey.from_dict(journey_data)


@pytest.fixture
def services() -> LocalServiceRegistry:
    """Service registry with a succeeding ``ok_service``; anything else fails."""
    registry = LocalServiceRegistry()

    async def ok_service(params):
        return {"echo": params}

    registry.register("ok_service", ok_service)
    return registry


@pytest.fixture
def run_state(journey) -> RunState:
    return RunState(journey=journey, agent_id="agent-1", event_log=deque(maxlen=50))


@pytest_asyncio.fixture
async def dispatcher(run_state, services) -> EventDispatcher:
    """Dispatcher started on screen_a."""
    dispatcher = EventDispatcher(
        run_state,
        executor=ActionExecutor(services),
        settings=InterpreterSettings(),
    )
    await dispatcher.start()
    yield dispatcher
    dispatcher.close()


@pytest.fixture
def answer_recorder() -> InMemoryAnswerRecorder:
    return InMemoryAnswerRecorder()


@pytest.fixture
def repository(journey) -> InMemoryJourneyRepository:
    return InMemoryJourneyRepository(journeys=[journey])
