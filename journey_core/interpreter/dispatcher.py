"""
Event Dispatcher

The state machine core of a run. Receives ``(event_id, element_id)``
pairs, finds the matching event on the current screen, checks its
conditions and executes its actions.

Ordering: each run owns a FIFO of inbound requests. A request that arrives
while an earlier one is still being processed (for example suspended in a
service call) is queued and processed after it, in arrival order. Every
caller awaits the result of its own request.
"""

import asyncio
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional

import structlog

from journey_core.config import InterpreterSettings
from journey_core.definitions.base import ElementType
from journey_core.definitions.screens import Element, Event, Screen
from journey_core.interpreter.actions import ActionExecutor, BatchResult, StateWrite
from journey_core.interpreter.conditions import evaluate_all
from journey_core.interpreter.resolver import EffectiveScreen, resolve_effective
from journey_core.interpreter.run import RunState
from journey_core.interpreter.timers import ScreenTimers


logger = structlog.get_logger()


ResultListener = Callable[["DispatchResult"], Awaitable[Any]]
Prelude = Callable[[RunState], None]


class DispatchOutcome(str, Enum):
    """How an inbound request was handled."""

    APPLIED = "applied"
    UNMATCHED = "unmatched"  # No event with that id on the current screen
    CONDITIONS_NOT_MET = "conditions_not_met"
    SCHEDULED = "scheduled"
    IGNORED = "ignored"  # Run already completed
    REJECTED = "rejected"  # Back or handoff not allowed from here
    STARTED = "started"
    STALE = "stale"  # Delayed event whose screen was left before it ran


@dataclass
class DispatchResult:
    """Result of one inbound request."""

    outcome: DispatchOutcome
    run_id: str
    event_id: Optional[str] = None
    element_id: Optional[str] = None
    agent_id: Optional[str] = None
    screen_id: Optional[str] = None
    previous_screen_id: Optional[str] = None
    previous_agent_id: Optional[str] = None
    entered_screens: List[str] = field(default_factory=list)
    completed: bool = False
    completion_reason: Optional[str] = None
    flow_completed: bool = False
    delayed: bool = False
    sequence: int = 0
    state_writes: List[StateWrite] = field(default_factory=list)
    tool_calls: List[Dict[str, Any]] = field(default_factory=list)
    service_calls: List[Dict[str, Any]] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def navigated(self) -> bool:
        return bool(self.entered_screens)

    @property
    def handed_off(self) -> bool:
        return self.previous_agent_id is not None and self.previous_agent_id != self.agent_id

    @property
    def is_noop(self) -> bool:
        return self.outcome in (
            DispatchOutcome.UNMATCHED,
            DispatchOutcome.CONDITIONS_NOT_MET,
            DispatchOutcome.IGNORED,
            DispatchOutcome.REJECTED,
            DispatchOutcome.STALE,
        )

    def merge_batch(self, batch: BatchResult) -> None:
        self.state_writes.extend(batch.state_writes)
        self.tool_calls.extend(batch.tool_calls)
        self.service_calls.extend(c.to_dict() for c in batch.service_calls)
        self.warnings.extend(batch.warnings)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "outcome": self.outcome.value,
            "runId": self.run_id,
            "eventId": self.event_id,
            "elementId": self.element_id,
            "agentId": self.agent_id,
            "screenId": self.screen_id,
            "previousScreenId": self.previous_screen_id,
            "enteredScreens": list(self.entered_screens),
            "completed": self.completed,
            "completionReason": self.completion_reason,
            "flowCompleted": self.flow_completed,
            "delayed": self.delayed,
            "sequence": self.sequence,
            "stateWrites": [w.to_dict() for w in self.state_writes],
            "toolCalls": list(self.tool_calls),
            "serviceCalls": list(self.service_calls),
            "warnings": list(self.warnings),
        }


class RequestKind(str, Enum):
    START = "start"
    EVENT = "event"
    BACK = "back"
    HANDOFF = "handoff"
    WRITE = "write"
    TERMINATE = "terminate"


@dataclass
class InboundRequest:
    """A queued request and the future its caller awaits."""

    kind: RequestKind
    future: asyncio.Future
    event_id: Optional[str] = None
    element_id: Optional[str] = None
    context: Dict[str, Any] = field(default_factory=dict)
    values: Dict[str, Any] = field(default_factory=dict)
    agent_id: Optional[str] = None
    writes: List[StateWrite] = field(default_factory=list)
    reason: Optional[str] = None
    flow_completed: bool = False
    prelude: Optional[Prelude] = None
    # Screen visit that armed a delayed event, None for direct requests
    armed_visit: Optional[int] = None


class EventDispatcher:
    """
    Drives a single run.

    All state mutation for the run happens inside ``_process``, which is
    only ever entered by the queue drain, so one request runs to completion
    before the next starts.
    """

    def __init__(
        self,
        run: RunState,
        executor: Optional[ActionExecutor] = None,
        settings: Optional[InterpreterSettings] = None,
    ):
        self.run = run
        self.executor = executor or ActionExecutor()
        self.settings = settings or InterpreterSettings()
        self.timers = ScreenTimers()
        self._queue: Deque[InboundRequest] = deque()
        self._draining = False
        self._listeners: List[ResultListener] = []
        self._visit = 0

    def add_listener(self, listener: ResultListener) -> None:
        """Register a coroutine called with every processed result."""
        self._listeners.append(listener)

    # =========================================================================
    # Public API
    # =========================================================================

    async def start(self) -> DispatchResult:
        """Enter the active agent's first screen and fire its entry events."""
        return await self._submit(InboundRequest(
            kind=RequestKind.START,
            future=asyncio.get_running_loop().create_future(),
        ))

    async def dispatch(
        self,
        event_id: str,
        element_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        values: Optional[Dict[str, Any]] = None,
        delay: Optional[float] = None,
        prelude: Optional[Prelude] = None,
    ) -> DispatchResult:
        """
        Dispatch an event.

        Args:
            event_id: Event id to look up
            element_id: Source element. When given only that element's
                events are searched, otherwise the screen's global events
            context: Transient evaluation values (e.g. tool arguments)
            values: Interaction values written to the source element
            delay: Seconds to wait before dispatching. The timer belongs
                to the current screen and is canceled when it is left
            prelude: Bookkeeping applied to the run when the request is
                processed, before the event is looked up

        Returns:
            Dispatch result
        """
        if delay and delay > 0:
            if prelude is not None:
                await self.write_state([], label=event_id, prelude=prelude)
            return self.schedule(event_id, delay, element_id=element_id, context=context)

        return await self._submit(InboundRequest(
            kind=RequestKind.EVENT,
            future=asyncio.get_running_loop().create_future(),
            event_id=event_id,
            element_id=element_id,
            context=dict(context or {}),
            values=dict(values or {}),
            prelude=prelude,
        ))

    def schedule(
        self,
        event_id: str,
        delay: float,
        element_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> DispatchResult:
        """
        Arm a timer that dispatches an event after a delay.

        The event only runs while the run is still on the screen visit that
        armed it. A timer that fires while another request is in progress
        is queued, and dropped as stale if that request leaves the screen.
        """
        if self.run.completed:
            return self._ignored(event_id, element_id)

        armed_visit = self._visit

        async def fire():
            return await self._submit(InboundRequest(
                kind=RequestKind.EVENT,
                future=asyncio.get_running_loop().create_future(),
                event_id=event_id,
                element_id=element_id,
                context=dict(context or {}),
                armed_visit=armed_visit,
            ))

        self.timers.schedule(event_id, self.run.screen_id, delay, fire)

        result = self._new_result(DispatchOutcome.SCHEDULED)
        result.event_id = event_id
        result.element_id = element_id
        return self._finish(result)

    async def go_back(self) -> DispatchResult:
        """Return to the previous screen in the navigation stack."""
        return await self._submit(InboundRequest(
            kind=RequestKind.BACK,
            future=asyncio.get_running_loop().create_future(),
        ))

    async def handoff(self, agent_id: str) -> DispatchResult:
        """Switch to another agent listed in the active agent's handoffs."""
        return await self._submit(InboundRequest(
            kind=RequestKind.HANDOFF,
            future=asyncio.get_running_loop().create_future(),
            agent_id=agent_id,
        ))

    async def write_state(
        self,
        writes: List[StateWrite],
        label: Optional[str] = None,
        prelude: Optional[Prelude] = None,
    ) -> DispatchResult:
        """Apply state writes that do not come from an action list."""
        return await self._submit(InboundRequest(
            kind=RequestKind.WRITE,
            future=asyncio.get_running_loop().create_future(),
            event_id=label,
            writes=list(writes),
            prelude=prelude,
        ))

    async def terminate(self, reason: Optional[str] = None, flow_completed: bool = False) -> DispatchResult:
        """End the run from outside the action flow."""
        return await self._submit(InboundRequest(
            kind=RequestKind.TERMINATE,
            future=asyncio.get_running_loop().create_future(),
            reason=reason,
            flow_completed=flow_completed,
        ))

    def effective_screen(self, interpolate: Optional[bool] = None) -> Optional[EffectiveScreen]:
        """Resolve the current screen against the current state."""
        screen = self.run.screen
        if screen is None:
            return None
        if interpolate is None:
            interpolate = self.settings.interpolate_templates
        return resolve_effective(
            screen,
            self.run.store.merged(),
            interactions=self.run.interactions,
            template_scopes=self.run.template_scopes() if interpolate else None,
        )

    @property
    def pending_requests(self) -> int:
        return len(self._queue)

    @property
    def busy(self) -> bool:
        return self._draining

    def close(self) -> None:
        """Cancel every timer. The run stops receiving delayed events."""
        self.timers.cancel_all()

    # =========================================================================
    # Queue
    # =========================================================================

    async def _submit(self, request: InboundRequest) -> DispatchResult:
        self._queue.append(request)

        if self._draining:
            logger.debug(
                "request_queued",
                run_id=self.run.run_id,
                kind=request.kind.value,
                event_id=request.event_id,
                depth=len(self._queue),
            )
        else:
            await self._drain()

        return await request.future

    async def _drain(self) -> None:
        self._draining = True
        try:
            while self._queue:
                request = self._queue.popleft()
                try:
                    result = await self._process(request)
                except Exception as e:
                    logger.error(
                        "request_failed",
                        run_id=self.run.run_id,
                        kind=request.kind.value,
                        event_id=request.event_id,
                        error=str(e),
                    )
                    if not request.future.done():
                        request.future.set_exception(e)
                    continue
                await self._notify(result)
                if not request.future.done():
                    request.future.set_result(result)
        finally:
            self._draining = False

    async def _notify(self, result: DispatchResult) -> None:
        for listener in self._listeners:
            try:
                await listener(result)
            except Exception as e:
                logger.error(
                    "result_listener_error",
                    run_id=self.run.run_id,
                    outcome=result.outcome.value,
                    error=str(e),
                )

    async def _process(self, request: InboundRequest) -> DispatchResult:
        if request.prelude is not None and not self.run.completed:
            request.prelude(self.run)

        if request.kind == RequestKind.START:
            return await self._process_start()
        if request.kind == RequestKind.BACK:
            return await self._process_back()
        if request.kind == RequestKind.HANDOFF:
            return await self._process_handoff(request.agent_id)
        if request.kind == RequestKind.WRITE:
            return self._process_write(request)
        if request.kind == RequestKind.TERMINATE:
            return self._process_terminate(request.reason, request.flow_completed)
        return await self._process_event(request)

    # =========================================================================
    # Event handling
    # =========================================================================

    def _find_event(
        self,
        screen: Screen,
        event_id: str,
        element_id: Optional[str],
    ) -> Optional[Event]:
        """Element events when a source element is given, else screen globals."""
        if element_id:
            element = screen.find_element(element_id)
            if element is None or element.type == ElementType.UNKNOWN:
                return None
            return element.find_event(event_id)
        return screen.find_event(event_id)

    def _record_interaction(
        self,
        element: Element,
        values: Dict[str, Any],
        result: DispatchResult,
    ) -> Dict[str, Any]:
        allowed = element.interactive_keys
        accepted = {k: v for k, v in values.items() if k in allowed}
        dropped = sorted(k for k in values if k not in allowed)

        if dropped:
            message = f"Interaction keys not writable on {element.type.value}: {', '.join(dropped)}"
            result.warnings.append(message)
            logger.warning(
                "interaction_keys_dropped",
                run_id=self.run.run_id,
                element_id=element.id,
                keys=dropped,
            )

        if accepted:
            self.run.interactions.setdefault(element.id, {}).update(accepted)

        return dict(self.run.interactions.get(element.id, {}))

    async def _process_event(self, request: InboundRequest) -> DispatchResult:
        event_id = request.event_id or ""
        element_id = request.element_id

        if self.run.completed:
            return self._ignored(event_id, element_id)

        result = self._new_result(DispatchOutcome.UNMATCHED)
        result.event_id = event_id
        result.element_id = element_id
        result.delayed = request.armed_visit is not None

        if result.delayed and request.armed_visit != self._visit:
            result.outcome = DispatchOutcome.STALE
            result.warnings.append(f"Delayed event {event_id} dropped: its screen was left")
            logger.warning(
                "delayed_event_stale",
                run_id=self.run.run_id,
                event_id=event_id,
                screen_id=self.run.screen_id,
            )
            return self._finish(result)

        screen = self.run.screen
        if screen is None:
            result.warnings.append("No active screen")
            logger.info("event_without_screen", run_id=self.run.run_id, event_id=event_id)
            return self._finish(result)

        transient = dict(request.context)
        if element_id and request.values:
            element = screen.find_element(element_id)
            if element is not None:
                transient.update(self._record_interaction(element, request.values, result))

        event = self._find_event(screen, event_id, element_id)
        if event is None:
            logger.info(
                "event_unmatched",
                run_id=self.run.run_id,
                event_id=event_id,
                element_id=element_id,
                screen_id=screen.id,
            )
            return self._finish(result)

        context = self.run.evaluation_context(transient)
        if not evaluate_all(event.conditions, context):
            result.outcome = DispatchOutcome.CONDITIONS_NOT_MET
            logger.info(
                "event_conditions_not_met",
                run_id=self.run.run_id,
                event_id=event_id,
                screen_id=screen.id,
            )
            return self._finish(result)

        result.outcome = DispatchOutcome.APPLIED
        self.run.record_event(event_id, element_id)

        logger.info(
            "event_applied",
            run_id=self.run.run_id,
            event_id=event_id,
            element_id=element_id,
            screen_id=screen.id,
            sequence=self.run.sequence,
        )

        batch = await self.executor.execute(event.actions, self.run, transient)
        await self._apply_batch(batch, result)

        return self._finish(result)

    async def _apply_batch(self, batch: BatchResult, result: DispatchResult, depth: int = 0) -> None:
        """Commit the outcome of an executed batch."""
        result.merge_batch(batch)

        if batch.terminated:
            self.run.complete(reason=batch.completion_reason, flow_completed=batch.flow_completed)
            self.timers.cancel_all()
            logger.info(
                "run_completed",
                run_id=self.run.run_id,
                reason=batch.completion_reason,
                flow_completed=batch.flow_completed,
            )
            return

        if batch.navigate_to is not None:
            target = self.run.find_screen(batch.navigate_to)
            if target is not None:
                await self._enter(target, result, depth=depth)

    async def _enter(self, screen: Screen, result: DispatchResult, depth: int = 0, push: bool = True) -> None:
        """Leave the current screen, enter the target and fire its entry events."""
        if self.run.screen_id:
            self.timers.cancel_screen(self.run.screen_id)

        self._visit += 1
        self.run.enter_screen(screen, push=push)
        result.entered_screens.append(screen.id)

        logger.info(
            "screen_navigated",
            run_id=self.run.run_id,
            screen_id=screen.id,
            agent_id=self.run.agent_id,
        )

        await self._fire_entry_events(screen, result, depth)

    async def _fire_entry_events(self, screen: Screen, result: DispatchResult, depth: int) -> None:
        if depth >= self.settings.max_chained_entries:
            result.warnings.append(f"Entry event chain limit reached at {screen.id}")
            logger.warning(
                "entry_chain_limit_reached",
                run_id=self.run.run_id,
                screen_id=screen.id,
                depth=depth,
            )
            return

        entry_types = set(self.settings.entry_event_types)

        for event in screen.events:
            if event.type.value not in entry_types:
                continue
            if self.run.completed or self.run.screen_id != screen.id:
                return

            if not evaluate_all(event.conditions, self.run.evaluation_context()):
                continue

            self.run.record_event(event.id)
            batch = await self.executor.execute(event.actions, self.run)
            await self._apply_batch(batch, result, depth=depth + 1)

    async def _process_start(self) -> DispatchResult:
        result = self._new_result(DispatchOutcome.STARTED)
        agent = self.run.agent
        first = agent.first_screen if agent else None

        if first is None:
            logger.info("run_started_without_screen", run_id=self.run.run_id, agent_id=self.run.agent_id)
        else:
            await self._enter(first, result)

        return self._finish(result)

    async def _process_back(self) -> DispatchResult:
        if self.run.completed:
            return self._ignored(None, None)

        result = self._new_result(DispatchOutcome.REJECTED)
        screen = self.run.screen

        if screen is not None and screen.hides_back_button:
            result.warnings.append(f"Back navigation disabled on {screen.id}")
            return self._finish(result)

        stack = self.run.navigation_stack
        if len(stack) <= 1:
            result.warnings.append("No previous screen")
            return self._finish(result)

        previous_id = stack[-2]
        target = self.run.find_screen(previous_id)
        if target is None:
            result.warnings.append(f"Previous screen not found: {previous_id}")
            return self._finish(result)

        stack.pop()
        self.timers.cancel_screen(self.run.screen_id)
        self._visit += 1
        self.run.enter_screen(target, push=False)
        result.entered_screens.append(target.id)
        result.outcome = DispatchOutcome.APPLIED

        logger.info("screen_back", run_id=self.run.run_id, screen_id=target.id)
        return self._finish(result)

    async def _process_handoff(self, agent_id: Optional[str]) -> DispatchResult:
        if self.run.completed:
            return self._ignored(None, None)

        result = self._new_result(DispatchOutcome.REJECTED)
        agent = self.run.agent
        target = self.run.journey.get_agent(agent_id)

        if agent is None or target is None or agent_id not in agent.handoffs:
            message = f"Handoff target not reachable: {agent_id}"
            result.warnings.append(message)
            logger.warning(
                "handoff_rejected",
                run_id=self.run.run_id,
                from_agent=self.run.agent_id,
                to_agent=agent_id,
            )
            return self._finish(result)

        previous_agent = self.run.agent_id
        self.timers.cancel_all()
        self.run.agent_id = target.id
        self.run.navigation_stack = []
        result.outcome = DispatchOutcome.APPLIED
        result.previous_agent_id = previous_agent

        logger.info(
            "agent_handoff",
            run_id=self.run.run_id,
            from_agent=previous_agent,
            to_agent=target.id,
        )

        first = target.first_screen
        if first is not None:
            await self._enter(first, result)
        else:
            self._visit += 1
            self.run.screen_id = None
            self.run.store.reset_screen()
            self.run.interactions = {}

        return self._finish(result)

    def _process_write(self, request: InboundRequest) -> DispatchResult:
        if self.run.completed:
            return self._ignored(request.event_id, None)

        result = self._new_result(DispatchOutcome.APPLIED)
        result.event_id = request.event_id
        for write in request.writes:
            if write.updates:
                self.run.store.set_many(write.scope, write.updates)
                result.state_writes.append(write)
        return self._finish(result)

    def _process_terminate(self, reason: Optional[str], flow_completed: bool) -> DispatchResult:
        if self.run.completed:
            return self._ignored(None, None)

        self.run.complete(reason=reason, flow_completed=flow_completed)
        self.timers.cancel_all()
        logger.info("run_terminated", run_id=self.run.run_id, reason=reason)

        return self._finish(self._new_result(DispatchOutcome.APPLIED))

    # =========================================================================
    # Helpers
    # =========================================================================

    def _new_result(self, outcome: DispatchOutcome) -> DispatchResult:
        return DispatchResult(
            outcome=outcome,
            run_id=self.run.run_id,
            previous_screen_id=self.run.screen_id,
            agent_id=self.run.agent_id,
        )

    def _ignored(self, event_id: Optional[str], element_id: Optional[str]) -> DispatchResult:
        result = self._new_result(DispatchOutcome.IGNORED)
        result.event_id = event_id
        result.element_id = element_id
        logger.debug("request_ignored_after_completion", run_id=self.run.run_id, event_id=event_id)
        return self._finish(result)

    def _finish(self, result: DispatchResult) -> DispatchResult:
        result.agent_id = self.run.agent_id
        result.screen_id = self.run.screen_id
        result.completed = self.run.completed
        result.completion_reason = self.run.completion_reason
        result.flow_completed = self.run.flow_completed
        result.sequence = self.run.sequence
        return result
