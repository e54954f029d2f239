"""Unit tests for the event dispatcher."""

import asyncio
import json

import pytest

from journey_core.config import InterpreterSettings
from journey_core.definitions.base import StateScope
from journey_core.definitions.journey import Journey
from journey_core.definitions.screens import Screen
from journey_core.interpreter.actions import ActionExecutor, StateWrite
from journey_core.interpreter.dispatcher import DispatchOutcome, EventDispatcher
from journey_core.interpreter.run import RunState
from journey_core.services.registry import LocalServiceRegistry

from tests.conftest import nav, update


def make_dispatcher(screens, services=None, **settings) -> EventDispatcher:
    journey = Journey.from_dict({
        "id": "inline",
        "name": "Inline",
        "agents": [{"id": "only", "name": "Only", "screens": screens}],
    })
    run = RunState(journey=journey, agent_id="only")
    return EventDispatcher(
        run,
        executor=ActionExecutor(services),
        settings=InterpreterSettings(**settings),
    )


def fingerprint(dispatcher: EventDispatcher) -> str:
    run = dispatcher.run
    return json.dumps(
        {
            "state": run.store.snapshot(),
            "screen": run.screen_id,
            "agent": run.agent_id,
            "stack": run.navigation_stack,
            "sequence": run.sequence,
        },
        sort_keys=True,
    )


class TestStart:
    """Tests for starting a run."""

    @pytest.mark.asyncio
    async def test_start_enters_first_screen(self, dispatcher):
        """Test the run starts on the agent's first screen."""
        run = dispatcher.run

        assert run.screen_id == "screen_a"
        assert run.navigation_stack == ["screen_a"]
        assert run.store.screen == {"step": "a", "note": "from a"}
        assert run.store.module == {}

    @pytest.mark.asyncio
    async def test_start_without_screens(self):
        """Test an agent without screens starts with no active screen."""
        dispatcher = make_dispatcher([])

        result = await dispatcher.start()

        assert result.outcome == DispatchOutcome.STARTED
        assert result.screen_id is None
        assert dispatcher.effective_screen() is None

    def test_default_event_log_limit(self, journey):
        """Test a run's event log defaults to the configured limit."""
        run = RunState(journey=journey, agent_id="agent-1")

        assert run.event_log.maxlen == InterpreterSettings().max_event_log

    @pytest.mark.asyncio
    async def test_start_is_a_queued_request(self):
        """Test start is processed through the queue and reaches listeners."""
        dispatcher = make_dispatcher([{"id": "s1"}])
        seen = []

        async def listener(result):
            seen.append(result.outcome)

        dispatcher.add_listener(listener)
        result = await dispatcher.start()

        assert result.outcome == DispatchOutcome.STARTED
        assert result.entered_screens == ["s1"]
        assert seen == [DispatchOutcome.STARTED]
        assert not dispatcher.busy
        assert dispatcher.pending_requests == 0


class TestDispatchNavigation:
    """Tests for navigation through dispatch."""

    @pytest.mark.asyncio
    async def test_navigate_reseeds_screen_state(self, dispatcher):
        """Test navigating replaces screen state with the target's declared state."""
        result = await dispatcher.dispatch("go_b")

        assert result.outcome == DispatchOutcome.APPLIED
        assert result.previous_screen_id == "screen_a"
        assert result.screen_id == "screen_b"
        assert result.navigated
        assert dispatcher.run.store.screen == {"count": 0}

    @pytest.mark.asyncio
    async def test_screen_state_reset_on_return(self, dispatcher):
        """Test screen writes do not survive leaving and re-entering."""
        await dispatcher.dispatch("go_b")
        await dispatcher.dispatch("bump")
        assert dispatcher.run.store.get("screen", "count") == 1

        await dispatcher.dispatch("go_a")
        await dispatcher.dispatch("go_b")

        assert dispatcher.run.store.get("screen", "count") == 0

    @pytest.mark.asyncio
    async def test_module_state_persists(self, dispatcher):
        """Test module state survives navigations."""
        await dispatcher.dispatch("set_flag")
        await dispatcher.dispatch("go_b")
        await dispatcher.dispatch("go_a")

        assert dispatcher.run.store.get("module", "flag") is True

    @pytest.mark.asyncio
    async def test_actions_after_navigation_dropped(self, dispatcher):
        """Test the batch stops at the navigation."""
        await dispatcher.dispatch("go_c_then_update")

        assert dispatcher.run.screen_id == "screen_c"
        assert dispatcher.run.store.get("module", "after") is None

    @pytest.mark.asyncio
    async def test_deeplink_url(self, dispatcher):
        """Test a full deeplink URL navigates to its last path segment."""
        await dispatcher.dispatch("go_url")

        assert dispatcher.run.screen_id == "screen_c"

    @pytest.mark.asyncio
    async def test_next_screen(self, dispatcher):
        """Test next-screen follows the agent's screen order."""
        await dispatcher.dispatch("go_next")

        assert dispatcher.run.screen_id == "screen_b"

    @pytest.mark.asyncio
    async def test_missing_target_continues(self, dispatcher):
        """Test a missing target is skipped and later actions run."""
        result = await dispatcher.dispatch("go_missing")

        assert result.outcome == DispatchOutcome.APPLIED
        assert dispatcher.run.screen_id == "screen_a"
        assert dispatcher.run.store.get("module", "afterMissing") is True
        assert result.warnings

    @pytest.mark.asyncio
    async def test_global_screen_target(self, journey, services):
        """Test a navigation target may live in the global screens."""
        run = RunState(
            journey=journey,
            agent_id="agent-1",
            global_screens=[Screen.from_dict({"id": "nowhere", "state": {"global": True}})],
        )
        dispatcher = EventDispatcher(run, executor=ActionExecutor(services))
        await dispatcher.start()

        await dispatcher.dispatch("go_missing")

        assert run.screen_id == "nowhere"
        assert run.store.screen == {"global": True}


class TestDispatchOutcomes:
    """Tests for non-navigating outcomes."""

    @pytest.mark.asyncio
    async def test_unmatched_is_noop(self, dispatcher):
        """Test an unknown event changes nothing."""
        before = fingerprint(dispatcher)

        result = await dispatcher.dispatch("does_not_exist")

        assert result.outcome == DispatchOutcome.UNMATCHED
        assert result.is_noop
        assert fingerprint(dispatcher) == before

    @pytest.mark.asyncio
    async def test_conditions_not_met_leaves_state_identical(self, dispatcher):
        """Test a gated event with failing conditions writes nothing."""
        before = fingerprint(dispatcher)

        result = await dispatcher.dispatch("guarded")

        assert result.outcome == DispatchOutcome.CONDITIONS_NOT_MET
        assert fingerprint(dispatcher) == before
        assert len(dispatcher.run.event_log) == 0

    @pytest.mark.asyncio
    async def test_conditions_met(self, dispatcher):
        """Test the gated event fires once its condition holds."""
        await dispatcher.dispatch("set_flag")

        result = await dispatcher.dispatch("guarded")

        assert result.outcome == DispatchOutcome.APPLIED
        assert dispatcher.run.store.get("module", "guarded") == 1
        assert dispatcher.run.screen_id == "screen_b"

    @pytest.mark.asyncio
    async def test_service_error_branch(self, dispatcher):
        """Test the on_error branch replaces the remaining siblings."""
        result = await dispatcher.dispatch("service_flow")

        assert dispatcher.run.store.get("module", "a") == 2
        assert result.service_calls[0]["ok"] is False

    @pytest.mark.asyncio
    async def test_unknown_action_warns(self, dispatcher):
        """Test an unknown action does not stop the batch."""
        result = await dispatcher.dispatch("mystery")

        assert dispatcher.run.store.get("module", "afterUnknown") is True
        assert any("custom" in w for w in result.warnings)

    @pytest.mark.asyncio
    async def test_sequence_increments_on_applied_only(self, dispatcher):
        """Test the applied-event log."""
        await dispatcher.dispatch("set_flag")
        await dispatcher.dispatch("nothing_here")
        await dispatcher.dispatch("go_b")

        log = list(dispatcher.run.event_log)
        assert [e.event_id for e in log] == ["set_flag", "go_b"]
        assert [e.sequence for e in log] == [1, 2]
        assert log[1].screen_id == "screen_a"


class TestElementEvents:
    """Tests for element-scoped lookup and interactions."""

    @pytest.mark.asyncio
    async def test_element_event(self, dispatcher):
        """Test an event declared on an element fires with its element id."""
        result = await dispatcher.dispatch("t_on", element_id="toggle1")

        assert result.outcome == DispatchOutcome.APPLIED
        assert dispatcher.run.store.get("screen", "toggled") is True

    @pytest.mark.asyncio
    async def test_element_event_needs_element_id(self, dispatcher):
        """Test element events are not found among screen globals."""
        result = await dispatcher.dispatch("t_on")

        assert result.outcome == DispatchOutcome.UNMATCHED

    @pytest.mark.asyncio
    async def test_global_event_not_found_on_element(self, dispatcher):
        """Test an element id restricts lookup to that element."""
        result = await dispatcher.dispatch("go_b", element_id="toggle1")

        assert result.outcome == DispatchOutcome.UNMATCHED
        assert dispatcher.run.screen_id == "screen_a"

    @pytest.mark.asyncio
    async def test_unknown_element_type_has_no_events(self, dispatcher):
        """Test elements of an unrecognised type are inert."""
        result = await dispatcher.dispatch("poke", element_id="mystery_el")

        assert result.outcome == DispatchOutcome.UNMATCHED
        assert dispatcher.run.store.get("module", "poked") is None

    @pytest.mark.asyncio
    async def test_interaction_values_gate_conditions(self, dispatcher):
        """Test interaction values take part in event conditions."""
        missing = await dispatcher.dispatch("answer_selected", element_id="q1")
        assert missing.outcome == DispatchOutcome.CONDITIONS_NOT_MET

        result = await dispatcher.dispatch(
            "answer_selected",
            element_id="q1",
            values={"selectedOptionId": "opt-2"},
        )

        assert result.outcome == DispatchOutcome.APPLIED
        assert dispatcher.run.store.get("module", "answer_q1") == "picked"
        assert dispatcher.run.interactions["q1"] == {"selectedOptionId": "opt-2"}

    @pytest.mark.asyncio
    async def test_interaction_keys_filtered(self, dispatcher):
        """Test keys an element type does not accept are dropped with a warning."""
        result = await dispatcher.dispatch(
            "answer_selected",
            element_id="q1",
            values={"selectedOptionId": "opt-1", "question": "hacked"},
        )

        assert dispatcher.run.interactions["q1"] == {"selectedOptionId": "opt-1"}
        assert any("question" in w for w in result.warnings)

        effective = dispatcher.effective_screen()
        assert effective.find_element("q1").state["question"] == "Pick one"
        assert effective.find_element("q1").state["selectedOptionId"] == "opt-1"

    @pytest.mark.asyncio
    async def test_interactions_cleared_on_navigation(self, dispatcher):
        """Test interaction values belong to the screen."""
        await dispatcher.dispatch("t_on", element_id="toggle1", values={"isToggled": True})
        await dispatcher.dispatch("go_b")
        await dispatcher.dispatch("go_a")

        assert dispatcher.run.interactions == {}

    @pytest.mark.asyncio
    async def test_effective_screen_follows_state(self, dispatcher):
        """Test the toggle label flips once the module flag is set."""
        before = dispatcher.effective_screen()
        assert before.find_element("toggle1").state["label"] == "Declared label"

        await dispatcher.dispatch("set_flag")

        after = dispatcher.effective_screen()
        assert after.find_element("toggle1").state["label"] == "ON"


class TestCompletion:
    """Tests for run completion."""

    @pytest.mark.asyncio
    async def test_close_completes_run(self, dispatcher):
        """Test a close action completes the run."""
        result = await dispatcher.dispatch("finish")

        assert result.completed is True
        assert result.completion_reason == "done"
        assert result.flow_completed is True
        assert dispatcher.run.store.get("module", "after_close") is None

    @pytest.mark.asyncio
    async def test_requests_ignored_after_completion(self, dispatcher):
        """Test every request is ignored once the run is complete."""
        await dispatcher.dispatch("finish")
        before = fingerprint(dispatcher)

        results = [
            await dispatcher.dispatch("go_b"),
            await dispatcher.go_back(),
            await dispatcher.handoff("agent-2"),
            await dispatcher.write_state([StateWrite(StateScope.MODULE, {"x": 1})]),
            dispatcher.schedule("go_b", 0.01),
        ]

        assert all(r.outcome == DispatchOutcome.IGNORED for r in results)
        assert fingerprint(dispatcher) == before

    @pytest.mark.asyncio
    async def test_terminate(self, dispatcher):
        """Test ending a run from outside the action flow."""
        result = await dispatcher.terminate(reason="hangup")

        assert result.outcome == DispatchOutcome.APPLIED
        assert dispatcher.run.completed is True
        assert dispatcher.run.completion_reason == "hangup"
        assert dispatcher.run.flow_completed is False


class TestBackAndHandoff:
    """Tests for back navigation and agent handoff."""

    @pytest.mark.asyncio
    async def test_go_back(self, dispatcher):
        """Test returning to the previous screen."""
        await dispatcher.dispatch("go_b")

        result = await dispatcher.go_back()

        assert result.outcome == DispatchOutcome.APPLIED
        assert dispatcher.run.screen_id == "screen_a"
        assert dispatcher.run.navigation_stack == ["screen_a"]
        assert dispatcher.run.store.screen == {"step": "a", "note": "from a"}

    @pytest.mark.asyncio
    async def test_go_back_on_first_screen(self, dispatcher):
        """Test back is rejected without history."""
        result = await dispatcher.go_back()

        assert result.outcome == DispatchOutcome.REJECTED
        assert dispatcher.run.screen_id == "screen_a"

    @pytest.mark.asyncio
    async def test_go_back_hidden(self, dispatcher):
        """Test back is rejected on a screen that hides the back button."""
        await dispatcher.dispatch("go_c_then_update")

        result = await dispatcher.go_back()

        assert result.outcome == DispatchOutcome.REJECTED
        assert dispatcher.run.screen_id == "screen_c"

    @pytest.mark.asyncio
    async def test_handoff_enters_target_first_screen(self, dispatcher):
        """Test a handoff switches agent and fires entry events."""
        await dispatcher.dispatch("set_flag")

        result = await dispatcher.handoff("agent-2")

        assert result.outcome == DispatchOutcome.APPLIED
        assert result.handed_off
        assert result.previous_agent_id == "agent-1"
        assert dispatcher.run.agent_id == "agent-2"
        assert dispatcher.run.screen_id == "screen_end"
        assert dispatcher.run.navigation_stack == ["screen_end"]
        assert dispatcher.run.store.get("module", "flag") is True
        assert dispatcher.run.store.get("module", "reachedEnd") is True

    @pytest.mark.asyncio
    async def test_handoff_outside_list_rejected(self, dispatcher):
        """Test handoffs are limited to the agent's declared targets."""
        await dispatcher.handoff("agent-2")

        back = await dispatcher.handoff("agent-1")
        unknown = await dispatcher.handoff("agent-9")

        assert back.outcome == DispatchOutcome.REJECTED
        assert unknown.outcome == DispatchOutcome.REJECTED
        assert dispatcher.run.agent_id == "agent-2"


class TestWriteState:
    """Tests for direct state writes."""

    @pytest.mark.asyncio
    async def test_write_state(self, dispatcher):
        """Test writes outside the action flow."""
        result = await dispatcher.write_state(
            [
                StateWrite(StateScope.SCREEN, {"note": "typed"}),
                StateWrite(StateScope.MODULE, {"answer_mood": "calm"}),
            ],
            label="record_input",
        )

        assert result.event_id == "record_input"
        assert len(result.state_writes) == 2
        assert dispatcher.run.store.get("screen", "note") == "typed"
        assert dispatcher.run.store.get("module", "answer_mood") == "calm"


class TestEntryEvents:
    """Tests for events fired on screen entry."""

    @pytest.mark.asyncio
    async def test_entry_event_runs_on_start(self):
        """Test an onLoad event runs when its screen is entered."""
        dispatcher = make_dispatcher([
            {"id": "s1", "events": [{"id": "load", "type": "onLoad", "action": [update("module", loaded=True)]}]},
        ])

        await dispatcher.start()

        assert dispatcher.run.store.get("module", "loaded") is True

    @pytest.mark.asyncio
    async def test_entry_event_chain_is_bounded(self):
        """Test entry events that navigate back and forth stop at the limit."""
        dispatcher = make_dispatcher(
            [
                {"id": "x", "events": [{"id": "to_y", "type": "onAppear", "action": [nav("y")]}]},
                {"id": "y", "events": [{"id": "to_x", "type": "onAppear", "action": [nav("x")]}]},
            ],
            max_chained_entries=3,
        )

        result = await dispatcher.start()

        assert result.entered_screens == ["x", "y", "x", "y"]
        assert any("limit" in w for w in result.warnings)


class TestOrdering:
    """Tests for request ordering within a run."""

    @pytest.mark.asyncio
    async def test_requests_queue_behind_pending_service_call(self):
        """Test an event arriving during a service call runs after it."""
        started = asyncio.Event()
        release = asyncio.Event()
        services = LocalServiceRegistry()

        async def gate(params):
            started.set()
            await release.wait()
            return {"released": True}

        services.register("gate", gate)
        dispatcher = make_dispatcher(
            [
                {
                    "id": "s1",
                    "events": [
                        {
                            "id": "slow",
                            "action": [{
                                "type": "serviceCall",
                                "serviceName": "gate",
                                "onSuccess": [update("module", slow_done=True), nav("s2")],
                            }],
                        }
                    ],
                },
                {
                    "id": "s2",
                    "events": [{"id": "fast", "action": [update("module", fast_done=True)]}],
                },
            ],
            services=services,
        )
        await dispatcher.start()

        slow = asyncio.create_task(dispatcher.dispatch("slow"))
        await started.wait()
        fast = asyncio.create_task(dispatcher.dispatch("fast"))
        await asyncio.sleep(0)

        assert dispatcher.busy
        assert dispatcher.pending_requests == 1

        release.set()
        slow_result, fast_result = await asyncio.gather(slow, fast)

        assert slow_result.screen_id == "s2"
        assert fast_result.outcome == DispatchOutcome.APPLIED
        assert dispatcher.run.store.get("module", "fast_done") is True
        assert not dispatcher.busy


class TestDelayedEvents:
    """Tests for scheduled events."""

    @pytest.mark.asyncio
    async def test_delayed_event_fires(self, dispatcher):
        """Test a delayed event is dispatched after its delay."""
        result = await dispatcher.dispatch("go_b", delay=0.01)

        assert result.outcome == DispatchOutcome.SCHEDULED
        assert dispatcher.run.screen_id == "screen_a"

        await asyncio.sleep(0.1)

        assert dispatcher.run.screen_id == "screen_b"
        assert len(dispatcher.timers) == 0

    @pytest.mark.asyncio
    async def test_timer_canceled_on_navigation(self, dispatcher):
        """Test leaving a screen cancels the timers it armed."""
        dispatcher.schedule("go_b", 0.05)
        assert dispatcher.timers.pending_for("screen_a") == 1

        await dispatcher.dispatch("go_c_then_update")
        await asyncio.sleep(0.1)

        assert dispatcher.run.screen_id == "screen_c"
        assert len(dispatcher.timers) == 0

    @pytest.mark.asyncio
    async def test_queued_timer_dropped_when_screen_left(self):
        """Test a timer that fired during a request which then navigated away does not run."""
        started = asyncio.Event()
        release = asyncio.Event()
        services = LocalServiceRegistry()

        async def gate(params):
            started.set()
            await release.wait()
            return {}

        services.register("gate", gate)
        dispatcher = make_dispatcher(
            [
                {
                    "id": "s1",
                    "events": [
                        {"id": "next", "action": [update("module", first_next=True)]},
                        {
                            "id": "slow",
                            "action": [{
                                "type": "serviceCall",
                                "serviceName": "gate",
                                "onSuccess": [nav("s2")],
                            }],
                        },
                    ],
                },
                {
                    "id": "s2",
                    "events": [{"id": "next", "action": [{"type": "closeModule"}]}],
                },
            ],
            services=services,
        )
        seen = []

        async def listener(result):
            seen.append(result)

        dispatcher.add_listener(listener)
        await dispatcher.start()

        dispatcher.schedule("next", 0.01)
        slow = asyncio.create_task(dispatcher.dispatch("slow"))
        await started.wait()
        await asyncio.sleep(0.05)

        assert dispatcher.pending_requests == 1

        release.set()
        await slow
        await asyncio.sleep(0.01)

        assert dispatcher.run.screen_id == "s2"
        assert not dispatcher.run.completed
        assert dispatcher.run.store.get("module", "first_next") is None

        stale = seen[-1]
        assert stale.outcome == DispatchOutcome.STALE
        assert stale.delayed
        assert stale.is_noop

    @pytest.mark.asyncio
    async def test_timer_result_marked_delayed(self, dispatcher):
        """Test results of timer-fired events are flagged as delayed."""
        seen = []

        async def listener(result):
            seen.append(result)

        dispatcher.add_listener(listener)
        dispatcher.schedule("set_flag", 0.01)
        await asyncio.sleep(0.1)

        assert [r.outcome for r in seen] == [DispatchOutcome.APPLIED]
        assert seen[0].delayed
        assert seen[0].to_dict()["delayed"] is True

    @pytest.mark.asyncio
    async def test_failing_timer_is_contained(self, dispatcher):
        """Test an exception raised by a timer callback is logged, not leaked."""
        async def broken():
            raise RuntimeError("boom")

        scheduled = dispatcher.timers.schedule("boom", "screen_a", 0.01, broken)
        await asyncio.sleep(0.05)

        assert scheduled.task.done()
        assert scheduled.task.exception() is None
        assert len(dispatcher.timers) == 0

    @pytest.mark.asyncio
    async def test_close_cancels_timers(self, dispatcher):
        """Test closing the dispatcher cancels pending timers."""
        dispatcher.schedule("go_b", 0.05)

        dispatcher.close()
        await asyncio.sleep(0.1)

        assert dispatcher.run.screen_id == "screen_a"


class TestListeners:
    """Tests for result listeners."""

    @pytest.mark.asyncio
    async def test_listener_receives_results(self, dispatcher):
        """Test listeners see every processed result."""
        seen = []

        async def listener(result):
            seen.append(result.outcome)

        dispatcher.add_listener(listener)
        await dispatcher.dispatch("set_flag")
        await dispatcher.dispatch("missing")

        assert seen == [DispatchOutcome.APPLIED, DispatchOutcome.UNMATCHED]

    @pytest.mark.asyncio
    async def test_listener_error_does_not_break_dispatch(self, dispatcher):
        """Test a failing listener is logged and skipped."""
        async def broken(result):
            raise RuntimeError("boom")

        dispatcher.add_listener(broken)
        result = await dispatcher.dispatch("go_b")

        assert result.outcome == DispatchOutcome.APPLIED
        assert dispatcher.run.screen_id == "screen_b"
