"""
Run manager.

Starts, looks up and ends independent journey runs. Each run owns its own
State Store, dispatcher and bridge; nothing is shared between runs except
the read-only collaborators handed to the manager.
"""

import copy
from collections import deque
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from journey_core.bridge.agent_bridge import AgentScreenBridge, SignalListener
from journey_core.bridge.base import AgentProfile, AgentSignal
from journey_core.bridge.tools import build_agent_profile
from journey_core.config import Settings, get_settings
from journey_core.core.logging import get_logger
from journey_core.definitions.journey import Journey, JourneyValidationError, validate_journey
from journey_core.definitions.screens import Screen
from journey_core.interpreter.actions import ActionExecutor
from journey_core.interpreter.dispatcher import DispatchResult, EventDispatcher
from journey_core.interpreter.resolver import EffectiveScreen
from journey_core.interpreter.run import RunState
from journey_core.interpreter.state import StateStore
from journey_core.services.base import ServiceCaller
from journey_core.storage.base import AnswerRecorder, JourneyRepository


logger = get_logger(__name__)


class RunNotFoundError(Exception):
    """Raised when a run id is unknown to the manager."""

    def __init__(self, run_id: str):
        self.run_id = run_id
        super().__init__(f"Run not found: {run_id}")


@dataclass
class JourneyRun:
    """A started run and the components that drive it."""

    state: RunState
    dispatcher: EventDispatcher
    bridge: AgentScreenBridge
    start_result: DispatchResult

    @property
    def run_id(self) -> str:
        return self.state.run_id

    @property
    def completed(self) -> bool:
        return self.state.completed

    async def dispatch(
        self,
        event_id: str,
        element_id: Optional[str] = None,
        values: Optional[Dict[str, Any]] = None,
        delay: Optional[float] = None,
    ) -> DispatchResult:
        """Dispatch a user interaction event."""
        return await self.dispatcher.dispatch(
            event_id,
            element_id=element_id,
            values=values,
            delay=delay,
        )

    async def tool_call(self, tool_name: str, args: Optional[Dict[str, Any]] = None) -> AgentSignal:
        """Handle an agent tool call and return the signal for the agent."""
        result = await self.bridge.on_agent_tool_call(tool_name, args)
        return self.bridge.on_dispatch_result(result)

    def add_signal_listener(self, listener: SignalListener) -> None:
        """Receive a signal for every processed result, delayed events included."""
        self.bridge.add_signal_listener(listener)

    async def go_back(self) -> DispatchResult:
        return await self.dispatcher.go_back()

    def effective_screen(self) -> Optional[EffectiveScreen]:
        return self.dispatcher.effective_screen()

    def agent_profile(self) -> Optional[AgentProfile]:
        agent = self.state.agent
        if agent is None:
            return None
        return build_agent_profile(self.state.journey, agent, self.bridge.settings)


class RunManager:
    """
    Manages journey runs.

    Journeys are read from the repository when a run starts and are never
    written back.
    """

    def __init__(
        self,
        repository: Optional[JourneyRepository] = None,
        service_caller: Optional[ServiceCaller] = None,
        answer_recorder: Optional[AnswerRecorder] = None,
        settings: Optional[Settings] = None,
    ):
        self.repository = repository
        self.service_caller = service_caller
        self.answer_recorder = answer_recorder
        self.settings = settings or get_settings()
        self._runs: Dict[str, JourneyRun] = {}

    async def start_run(
        self,
        journey_id: str,
        initial_state: Optional[Dict[str, Any]] = None,
        run_id: Optional[str] = None,
    ) -> JourneyRun:
        """
        Load a journey and start a run at its starting agent's first screen.

        Raises:
            JourneyNotFoundError: If the repository does not know the journey
            JourneyValidationError: If the journey is structurally invalid
        """
        if self.repository is None:
            raise RuntimeError("RunManager has no journey repository")

        journey = await self.repository.load_journey(journey_id)
        global_screens = await self.repository.load_global_screens()
        return await self.start_journey(journey, initial_state, run_id, global_screens)

    async def start_journey(
        self,
        journey: Journey,
        initial_state: Optional[Dict[str, Any]] = None,
        run_id: Optional[str] = None,
        global_screens: Optional[List[Screen]] = None,
    ) -> JourneyRun:
        """Start a run from an already loaded journey."""
        issues = validate_journey(journey)
        if issues:
            logger.warning(
                "journey_invalid",
                journey_id=journey.id,
                issues=[str(issue) for issue in issues],
            )
            raise JourneyValidationError(journey.id, issues)

        starting_agent = journey.starting_agent
        state = RunState(
            journey=copy.deepcopy(journey),
            agent_id=starting_agent.id if starting_agent else None,
            store=StateStore(module=initial_state),
            global_screens=list(global_screens or []),
            event_log=deque(maxlen=self.settings.interpreter.max_event_log),
        )
        if run_id:
            state.run_id = run_id

        dispatcher = EventDispatcher(
            state,
            executor=ActionExecutor(self.service_caller),
            settings=self.settings.interpreter,
        )
        bridge = AgentScreenBridge(
            dispatcher,
            settings=self.settings.bridge,
            answer_recorder=self.answer_recorder,
        )

        start_result = await dispatcher.start()
        run = JourneyRun(state=state, dispatcher=dispatcher, bridge=bridge, start_result=start_result)
        self._runs[state.run_id] = run

        logger.info(
            "run_started",
            run_id=state.run_id,
            journey_id=journey.id,
            agent_id=state.agent_id,
            screen_id=state.screen_id,
        )
        return run

    def get_run(self, run_id: str) -> JourneyRun:
        run = self._runs.get(run_id)
        if run is None:
            raise RunNotFoundError(run_id)
        return run

    async def end_run(self, run_id: str, reason: Optional[str] = None) -> DispatchResult:
        """
        End a run and discard it.

        Raises:
            RunNotFoundError: If the run does not exist
        """
        run = self.get_run(run_id)
        result = await run.dispatcher.terminate(reason=reason, flow_completed=False)
        run.dispatcher.close()
        del self._runs[run_id]

        logger.info("run_ended", run_id=run_id, reason=reason)
        return result

    def list_runs(self) -> List[str]:
        return list(self._runs.keys())

    @property
    def active_runs(self) -> int:
        return sum(1 for run in self._runs.values() if not run.completed)

    async def close(self) -> None:
        """End every run and release the service caller."""
        for run_id in list(self._runs.keys()):
            await self.end_run(run_id, reason="shutdown")
        if self.service_caller is not None:
            await self.service_caller.close()
