"""
Agent-Screen Bridge

The only seam between the interpreter and the voice agent runtime. Tool
calls become event dispatches, dispatch results become agent signals.
"""

import time
from typing import Any, Awaitable, Callable, Dict, List, Optional

import structlog

from journey_core.bridge.base import AgentSignal, SignalKind
from journey_core.config import BridgeSettings
from journey_core.definitions.base import StateScope
from journey_core.interpreter.actions import StateWrite
from journey_core.interpreter.dispatcher import DispatchResult, EventDispatcher, Prelude
from journey_core.interpreter.run import RunState
from journey_core.storage.base import AnswerRecord, AnswerRecorder


logger = structlog.get_logger()


TOOL_CALL_COUNTS_KEY = "toolCallCounts"


SignalListener = Callable[[AgentSignal], Awaitable[Any]]


def parse_delay(value: Any) -> float:
    """Delay in seconds from a number or numeric string. Invalid values are 0."""
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return max(float(value), 0.0)
    if isinstance(value, str):
        try:
            return max(float(value), 0.0)
        except ValueError:
            return 0.0
    return 0.0


class AgentScreenBridge:
    """
    Translates between agent tool calls and a run's event dispatcher.

    Tool names map 1:1 to event ids unless the agent's tool declares an
    explicit ``eventId``. Tool arguments are passed as transient evaluation
    context and are never persisted. The built-in tools ``trigger_event``,
    ``record_input`` and ``end_call`` are handled here.
    """

    def __init__(
        self,
        dispatcher: EventDispatcher,
        settings: Optional[BridgeSettings] = None,
        answer_recorder: Optional[AnswerRecorder] = None,
        on_signal: Optional[SignalListener] = None,
    ):
        self.dispatcher = dispatcher
        self.settings = settings or BridgeSettings()
        self.answer_recorder = answer_recorder
        self._signal_listeners: List[SignalListener] = []
        if on_signal is not None:
            self._signal_listeners.append(on_signal)
        self.dispatcher.add_listener(self.forward_answers)
        self.dispatcher.add_listener(self._emit_signal)

    @property
    def run(self):
        return self.dispatcher.run

    async def on_agent_tool_call(
        self,
        tool_name: str,
        args: Optional[Dict[str, Any]] = None,
    ) -> DispatchResult:
        """
        Handle a tool call from the agent runtime.

        Args:
            tool_name: Tool invoked by the agent
            args: Tool arguments

        Returns:
            Dispatch result for the resulting event
        """
        args = dict(args or {})

        logger.info(
            "agent_tool_call",
            run_id=self.run.run_id,
            tool=tool_name,
            screen_id=self.run.screen_id,
        )

        prelude = self._tool_call_counter(tool_name)

        if tool_name == self.settings.trigger_event_tool:
            result = await self._trigger_event(args, prelude)
        elif tool_name == self.settings.record_input_tool:
            result = await self._record_input(args, prelude)
        elif tool_name == self.settings.end_call_tool:
            result = await self._end_call(args, prelude)
        else:
            result = await self._dispatch_tool(tool_name, args, prelude)

        return result

    def add_signal_listener(self, listener: SignalListener) -> None:
        """
        Register a coroutine called with a signal for every processed result.

        This includes results of delayed events, which reach the agent
        runtime after the tool call that scheduled them has returned.
        """
        self._signal_listeners.append(listener)

    async def on_agent_handoff(self, agent_id: str) -> DispatchResult:
        """Handle the agent runtime switching to another agent."""
        return await self.dispatcher.handoff(agent_id)

    def on_dispatch_result(self, result: DispatchResult) -> AgentSignal:
        """Build the signal the agent runtime reacts to."""
        if result.completed:
            kind = SignalKind.COMPLETED
        elif result.handed_off:
            kind = SignalKind.HANDOFF
        elif result.navigated:
            kind = SignalKind.SCREEN_CHANGED
        else:
            kind = SignalKind.UNCHANGED

        screen_prompt = None
        agent = self.run.journey.get_agent(result.agent_id)
        if agent is not None and result.screen_id:
            screen_prompt = agent.screen_prompts.get(result.screen_id)

        return AgentSignal(
            screen_id=result.screen_id,
            agent_id=result.agent_id,
            completed=result.completed,
            completion_reason=result.completion_reason,
            kind=kind,
            screen_prompt=screen_prompt,
            tool_calls=list(result.tool_calls),
            warnings=list(result.warnings),
            delayed=result.delayed,
        )

    async def _emit_signal(self, result: DispatchResult) -> None:
        if not self._signal_listeners:
            return
        signal = self.on_dispatch_result(result)
        for listener in self._signal_listeners:
            try:
                await listener(signal)
            except Exception as e:
                logger.error(
                    "signal_listener_error",
                    run_id=self.run.run_id,
                    kind=signal.kind.value,
                    error=str(e),
                )

    async def forward_answers(self, result: DispatchResult) -> int:
        """
        Send answer-shaped state writes to the answer recorder.

        Registered as a dispatcher listener, so writes from timer-fired and
        user-dispatched events are forwarded too.
        """
        if self.answer_recorder is None:
            return 0
        # record_input results are recorded by the tool handler itself
        if result.event_id == self.settings.record_input_tool:
            return 0

        prefixes = tuple(self.settings.answer_key_prefixes)
        forwarded = 0
        for write in result.state_writes:
            for key, value in write.updates.items():
                if not prefixes or not key.startswith(prefixes):
                    continue
                await self.answer_recorder.record_answer(AnswerRecord(
                    run_id=self.run.run_id,
                    key=key,
                    value=value,
                    screen_id=result.previous_screen_id,
                    element_id=result.element_id,
                    agent_id=result.agent_id,
                    source="state",
                ))
                forwarded += 1
        return forwarded

    # =========================================================================
    # Tool handling
    # =========================================================================

    def _tool_call_counter(self, tool_name: str) -> Optional[Prelude]:
        """Count the call inside the run's queue so it lands in arrival order."""
        if not self.settings.track_tool_calls:
            return None

        def count(run: RunState) -> None:
            run.store.increment_nested(StateScope.MODULE, TOOL_CALL_COUNTS_KEY, tool_name)

        return count

    async def _dispatch_tool(
        self,
        tool_name: str,
        args: Dict[str, Any],
        prelude: Optional[Prelude] = None,
    ) -> DispatchResult:
        event_id = tool_name
        agent = self.run.agent
        if agent is not None:
            tool = agent.find_tool(tool_name)
            if tool is not None:
                event_id = tool.target_event_id

        element_id = args.pop("elementId", None)
        return await self.dispatcher.dispatch(
            event_id,
            element_id=element_id,
            context=args,
            prelude=prelude,
        )

    async def _trigger_event(self, args: Dict[str, Any], prelude: Optional[Prelude] = None) -> DispatchResult:
        event_id = str(args.pop("eventId", "") or "")
        delay = parse_delay(args.pop("delay", None))

        if delay == 0 and event_id.startswith(self.settings.navigation_event_prefix):
            delay = self.settings.navigation_delay_seconds

        result = await self.dispatcher.dispatch(event_id, context=args, delay=delay, prelude=prelude)
        if not event_id:
            result.warnings.append("trigger_event called without an eventId")
        return result

    async def _record_input(self, args: Dict[str, Any], prelude: Optional[Prelude] = None) -> DispatchResult:
        title = args.get("title") or ""
        summary = args.get("summary") or ""
        description = args.get("description") or ""
        store_key = args.get("storeKey")
        next_event_id = args.get("nextEventId")

        writes = [StateWrite(scope=StateScope.SCREEN, updates={
            "recordedInputTitle": title,
            "recordedInputSummary": summary,
            "recordedInputDescription": description,
            "recordedInputTimestamp": int(time.time() * 1000),
        })]
        if store_key and summary:
            writes.append(StateWrite(scope=StateScope.MODULE, updates={store_key: summary}))

        result = await self.dispatcher.write_state(
            writes,
            label=self.settings.record_input_tool,
            prelude=prelude,
        )

        if self.answer_recorder is not None and not result.is_noop:
            await self.answer_recorder.record_answer(AnswerRecord(
                run_id=self.run.run_id,
                key=store_key or title,
                value=summary,
                screen_id=result.screen_id,
                agent_id=result.agent_id,
                source=self.settings.record_input_tool,
                metadata={"title": title, "description": description},
            ))

        if next_event_id and not result.is_noop:
            delay = parse_delay(args.get("delay")) or self.settings.next_event_delay_seconds
            self.dispatcher.schedule(str(next_event_id), delay)

        return result

    async def _end_call(self, args: Dict[str, Any], prelude: Optional[Prelude] = None) -> DispatchResult:
        reason = args.get("reason")
        feedback_screen_id = args.get("feedbackScreenId")

        if feedback_screen_id:
            event_id = f"{self.settings.navigation_event_prefix}{feedback_screen_id}"
        else:
            event_id = self.settings.feedback_event_id

        result = await self.dispatcher.dispatch(event_id, prelude=prelude)
        terminated = await self.dispatcher.terminate(reason=reason, flow_completed=True)

        logger.info(
            "agent_end_call",
            run_id=self.run.run_id,
            reason=reason,
            feedback_event=event_id,
            feedback_outcome=result.outcome.value,
        )

        result.agent_id = terminated.agent_id
        result.screen_id = terminated.screen_id
        result.completed = terminated.completed
        result.completion_reason = terminated.completion_reason
        result.flow_completed = terminated.flow_completed
        result.sequence = terminated.sequence
        return result
