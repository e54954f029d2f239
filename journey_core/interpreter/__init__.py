"""
Screen/Event/State Interpreter

Condition evaluation, scoped state, screen resolution, action execution
and event dispatch for a single journey run.
"""

from journey_core.interpreter.actions import (
    ActionExecutor,
    ActionStep,
    BatchResult,
    ServiceCallRecord,
    StateWrite,
)
from journey_core.interpreter.conditions import evaluate, evaluate_all, get_value, loose_equals
from journey_core.interpreter.dispatcher import DispatchOutcome, DispatchResult, EventDispatcher
from journey_core.interpreter.resolver import (
    EffectiveElement,
    EffectiveScreen,
    EffectiveSection,
    resolve_effective,
)
from journey_core.interpreter.run import AppliedEvent, RunState
from journey_core.interpreter.state import StateStore
from journey_core.interpreter.templates import TemplateScopes, interpolate, render_value
from journey_core.interpreter.timers import ScheduledEvent, ScreenTimers

__all__ = [
    "ActionExecutor",
    "ActionStep",
    "AppliedEvent",
    "BatchResult",
    "DispatchOutcome",
    "DispatchResult",
    "EffectiveElement",
    "EffectiveScreen",
    "EffectiveSection",
    "EventDispatcher",
    "RunState",
    "ScheduledEvent",
    "ScreenTimers",
    "ServiceCallRecord",
    "StateStore",
    "StateWrite",
    "TemplateScopes",
    "evaluate",
    "evaluate_all",
    "get_value",
    "interpolate",
    "loose_equals",
    "render_value",
    "resolve_effective",
]
