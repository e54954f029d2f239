"""
Action Executor

Runs an action list against a run, one action at a time, in declaration
order. Every action yields an explicit step that decides what happens to
the rest of the list:

- ``CONTINUE``: go on with the next sibling
- ``SKIP``: the action's own conditions failed; go on with the next sibling
- ``NAVIGATE``: a target screen was committed; the rest of the list is dropped
- ``TERMINATE``: the run ended; the rest of the list is dropped
- ``REPLACE``: a service call resolved; its ``on_success`` or ``on_error``
  branch replaces the remaining siblings

State writes are last-write-wins and are never rolled back.
"""

from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Deque, Dict, List, Optional, Tuple

import structlog

from journey_core.definitions.actions import (
    Action,
    CloseAction,
    NavigateAction,
    ServiceCallAction,
    StateUpdateAction,
    ToolCallAction,
    UnknownAction,
)
from journey_core.definitions.base import JSONValue, StateScope
from journey_core.interpreter.conditions import evaluate_all
from journey_core.interpreter.run import RunState
from journey_core.interpreter.templates import render_value
from journey_core.services.base import ServiceCaller, ServiceResult


logger = structlog.get_logger()


class ActionStep(str, Enum):
    """What an executed action means for its remaining siblings."""

    CONTINUE = "continue"
    SKIP = "skip"
    NAVIGATE = "navigate"
    TERMINATE = "terminate"
    REPLACE = "replace"


# Tools applied locally in addition to being surfaced to the agent runtime
STORE_ANSWER_TOOL = "store_answer"
COMPLETE_QUIZ_TOOL = "complete_quiz"


@dataclass
class StateWrite:
    """A committed state write."""

    scope: StateScope
    updates: Dict[str, JSONValue]

    def to_dict(self) -> Dict[str, Any]:
        return {"scope": self.scope.value, "updates": dict(self.updates)}


@dataclass
class ServiceCallRecord:
    name: str
    params: Dict[str, Any]
    ok: bool
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "params": dict(self.params),
            "ok": self.ok,
            "error": self.error,
        }


@dataclass
class BatchResult:
    """Result of executing one action list."""

    navigate_to: Optional[str] = None
    terminated: bool = False
    completion_reason: Optional[str] = None
    flow_completed: bool = False
    executed: int = 0
    skipped: int = 0
    state_writes: List[StateWrite] = field(default_factory=list)
    service_calls: List[ServiceCallRecord] = field(default_factory=list)
    tool_calls: List[Dict[str, Any]] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def stopped(self) -> bool:
        return self.navigate_to is not None or self.terminated

    def warn(self, message: str, **kwargs) -> None:
        self.warnings.append(message)
        logger.warning("action_warning", message=message, **kwargs)


class ActionExecutor:
    """
    Executes action lists.

    The only suspension point is a service call. While it is pending the
    remainder of the list is held in ``pending`` and is replaced by the
    branch once the call resolves.
    """

    def __init__(self, service_caller: Optional[ServiceCaller] = None):
        self.service_caller = service_caller

    async def execute(
        self,
        actions: List[Action],
        run: RunState,
        transient: Optional[Dict[str, Any]] = None,
    ) -> BatchResult:
        """
        Execute an action list.

        Args:
            actions: Actions in declaration order
            run: Run the actions apply to
            transient: Evaluation-only context, never persisted

        Returns:
            Batch result
        """
        result = BatchResult()
        pending: Deque[Action] = deque(actions)

        while pending:
            action = pending.popleft()

            step, branch = await self.apply(action, run, result, transient)

            if step == ActionStep.SKIP:
                result.skipped += 1
                continue

            result.executed += 1

            if step in (ActionStep.NAVIGATE, ActionStep.TERMINATE):
                if pending:
                    logger.debug(
                        "action_batch_stopped",
                        run_id=run.run_id,
                        step=step.value,
                        dropped=len(pending),
                    )
                break

            if step == ActionStep.REPLACE:
                pending = deque(branch)

        return result

    async def apply(
        self,
        action: Action,
        run: RunState,
        result: BatchResult,
        transient: Optional[Dict[str, Any]] = None,
    ) -> Tuple[ActionStep, List[Action]]:
        """Apply a single action and return the step it produced."""
        if action.conditions:
            context = run.evaluation_context(transient)
            if not evaluate_all(action.conditions, context):
                logger.debug(
                    "action_conditions_not_met",
                    run_id=run.run_id,
                    action_type=action.type.value,
                )
                return ActionStep.SKIP, []

        if isinstance(action, NavigateAction):
            return self._navigate(action, run, result), []

        if isinstance(action, StateUpdateAction):
            self._write(run, result, action.scope, action.updates)
            return ActionStep.CONTINUE, []

        if isinstance(action, ServiceCallAction):
            branch = await self._call_service(action, run, result)
            return ActionStep.REPLACE, branch

        if isinstance(action, CloseAction):
            result.terminated = True
            result.completion_reason = action.reason
            result.flow_completed = action.flow_completed
            logger.info(
                "run_close_requested",
                run_id=run.run_id,
                reason=action.reason,
                flow_completed=action.flow_completed,
            )
            return ActionStep.TERMINATE, []

        if isinstance(action, ToolCallAction):
            self._tool_call(action, run, result)
            return ActionStep.CONTINUE, []

        type_name = action.type_name if isinstance(action, UnknownAction) else action.type.value
        result.warn(f"Unknown action type ignored: {type_name}", run_id=run.run_id)
        return ActionStep.CONTINUE, []

    def _navigate(self, action: NavigateAction, run: RunState, result: BatchResult) -> ActionStep:
        target = run.resolve_target(action.deeplink)
        if target is None:
            result.warn(
                f"Navigation target not found: {action.deeplink}",
                run_id=run.run_id,
                screen_id=run.screen_id,
            )
            return ActionStep.CONTINUE

        result.navigate_to = target.id
        return ActionStep.NAVIGATE

    def _write(
        self,
        run: RunState,
        result: BatchResult,
        scope: StateScope,
        updates: Dict[str, JSONValue],
    ) -> None:
        if not updates:
            return
        run.store.set_many(scope, updates)
        result.state_writes.append(StateWrite(scope=scope, updates=dict(updates)))

    async def _call_service(
        self,
        action: ServiceCallAction,
        run: RunState,
        result: BatchResult,
    ) -> List[Action]:
        params = render_value(action.parameters, run.template_scopes())
        name = action.operation

        if not action.service_name:
            service_result = ServiceResult.failure("Service call without a service name")
        elif self.service_caller is None:
            service_result = ServiceResult.failure("No service caller configured")
        else:
            logger.info("service_call_started", run_id=run.run_id, service=name)
            service_result = await self.service_caller.call_service(name, params)

        result.service_calls.append(ServiceCallRecord(
            name=name,
            params=params,
            ok=service_result.ok,
            error=service_result.error,
        ))

        if service_result.ok:
            logger.info("service_call_succeeded", run_id=run.run_id, service=name)
            mapping = action.response_mapping
            if mapping is not None:
                self._write(run, result, mapping.scope, {mapping.state_key: service_result.payload})
            branch = action.on_success
        else:
            logger.warning(
                "service_call_failed",
                run_id=run.run_id,
                service=name,
                error=service_result.error,
            )
            branch = action.on_error

        if not branch:
            logger.debug(
                "service_call_branch_empty",
                run_id=run.run_id,
                service=name,
                ok=service_result.ok,
            )
        return list(branch)

    def _tool_call(self, action: ToolCallAction, run: RunState, result: BatchResult) -> None:
        params = render_value(action.params, run.template_scopes())
        result.tool_calls.append({"tool": action.tool, "params": params})

        if action.tool == STORE_ANSWER_TOOL:
            question_id = params.get("questionId")
            answer = params.get("answer")
            if question_id and answer:
                self._write(run, result, StateScope.MODULE, {f"answer_{question_id}": answer})

        elif action.tool == COMPLETE_QUIZ_TOOL:
            self._write(run, result, StateScope.MODULE, {"quizCompleted": True})
