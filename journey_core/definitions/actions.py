"""
Action Definitions

Actions are a closed tagged variant decoded from the ``type`` field of an
action object. Tags that are not recognised decode to ``UnknownAction``,
which the executor skips with a warning instead of failing the batch.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from journey_core.definitions.base import (
    Condition,
    JSONValue,
    StateScope,
    parse_conditions,
)


class ActionType(str, Enum):
    """Action variant tags."""

    NAVIGATION = "navigation"
    STATE_UPDATE = "stateUpdate"
    SERVICE_CALL = "serviceCall"
    CLOSE_MODULE = "closeModule"
    TOOL_CALL = "toolCall"
    UNKNOWN = "unknown"


# Deeplink placeholders resolved against the active agent's screen order
NEXT_SCREEN = "next-screen"
PREV_SCREEN = "prev-screen"


def extract_screen_id(deeplink: Optional[str]) -> Optional[str]:
    """
    Extract the target screen id from a deeplink.

    ``https://links.example.com/module-id/screen-id`` yields ``screen-id``;
    anything that is not an absolute URL is taken as the screen id itself.
    """
    if not deeplink:
        return None

    parsed = urlparse(deeplink)
    if parsed.scheme and parsed.netloc:
        parts = [part for part in parsed.path.split("/") if part]
        return parts[-1] if parts else None

    return deeplink


@dataclass
class Action:
    """Base action."""

    conditions: List[Condition] = field(default_factory=list)

    @property
    def type(self) -> ActionType:
        raise NotImplementedError

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"type": self.type.value}
        if self.conditions:
            data["conditions"] = [c.to_dict() for c in self.conditions]
        return data


@dataclass
class NavigateAction(Action):
    """Navigate to a screen identified by a deeplink."""

    deeplink: str = ""

    @property
    def type(self) -> ActionType:
        return ActionType.NAVIGATION

    @property
    def target_screen_id(self) -> Optional[str]:
        return extract_screen_id(self.deeplink)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["deeplink"] = self.deeplink
        return data


@dataclass
class StateUpdateAction(Action):
    """Write key/value pairs into a state scope."""

    scope: StateScope = StateScope.SCREEN
    updates: Dict[str, JSONValue] = field(default_factory=dict)

    @property
    def type(self) -> ActionType:
        return ActionType.STATE_UPDATE

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["scope"] = self.scope.value
        data["updates"] = dict(self.updates)
        return data


@dataclass
class ResponseMapping:
    """Where a successful service payload is stored."""

    state_key: str
    scope: StateScope = StateScope.MODULE

    def to_dict(self) -> Dict[str, Any]:
        return {"stateKey": self.state_key, "scope": self.scope.value}


@dataclass
class ServiceCallAction(Action):
    """
    Call an external service.

    ``on_success`` / ``on_error`` replace the remaining sibling actions of
    the batch once the call resolves.
    """

    service_name: str = ""
    function_name: Optional[str] = None
    parameters: Dict[str, JSONValue] = field(default_factory=dict)
    response_mapping: Optional[ResponseMapping] = None
    on_success: List[Action] = field(default_factory=list)
    on_error: List[Action] = field(default_factory=list)

    @property
    def type(self) -> ActionType:
        return ActionType.SERVICE_CALL

    @property
    def operation(self) -> str:
        """Opaque operation name handed to the service caller."""
        if self.function_name:
            return f"{self.service_name}.{self.function_name}"
        return self.service_name

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({
            "serviceName": self.service_name,
            "functionName": self.function_name,
            "parameters": dict(self.parameters),
            "onSuccess": [a.to_dict() for a in self.on_success],
            "onError": [a.to_dict() for a in self.on_error],
        })
        if self.response_mapping:
            data["responseMapping"] = self.response_mapping.to_dict()
        return data


@dataclass
class CloseAction(Action):
    """Terminate the run."""

    flow_completed: bool = True
    parameters: Dict[str, JSONValue] = field(default_factory=dict)

    @property
    def type(self) -> ActionType:
        return ActionType.CLOSE_MODULE

    @property
    def reason(self) -> Optional[str]:
        reason = self.parameters.get("reason")
        return str(reason) if reason is not None else None

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["flowCompleted"] = self.flow_completed
        data["parameters"] = dict(self.parameters)
        return data


@dataclass
class ToolCallAction(Action):
    """Surface a tool invocation to the agent runtime."""

    tool: str = ""
    params: Dict[str, JSONValue] = field(default_factory=dict)

    @property
    def type(self) -> ActionType:
        return ActionType.TOOL_CALL

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["tool"] = self.tool
        data["params"] = dict(self.params)
        return data


@dataclass
class UnknownAction(Action):
    """Any action tag the interpreter does not understand."""

    type_name: str = ""
    raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def type(self) -> ActionType:
        return ActionType.UNKNOWN

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.raw)


def parse_action(data: Dict[str, Any]) -> Action:
    """Decode a single action object."""
    if not isinstance(data, dict):
        return UnknownAction(type_name=type(data).__name__, raw={"value": data})

    type_name = data.get("type") or ""
    conditions = parse_conditions(data.get("conditions"))

    if type_name == ActionType.NAVIGATION.value:
        return NavigateAction(
            conditions=conditions,
            deeplink=str(data.get("deeplink") or ""),
        )

    if type_name == ActionType.STATE_UPDATE.value:
        updates = data.get("updates") or {}
        return StateUpdateAction(
            conditions=conditions,
            scope=StateScope.parse(data.get("scope")),
            updates=dict(updates) if isinstance(updates, dict) else {},
        )

    if type_name == ActionType.SERVICE_CALL.value:
        mapping = data.get("responseMapping")
        response_mapping = None
        if isinstance(mapping, dict) and mapping.get("stateKey"):
            response_mapping = ResponseMapping(
                state_key=mapping["stateKey"],
                scope=StateScope.parse(mapping.get("scope"), StateScope.MODULE),
            )
        parameters = data.get("parameters") or {}
        return ServiceCallAction(
            conditions=conditions,
            service_name=str(data.get("serviceName") or data.get("name") or ""),
            function_name=data.get("functionName"),
            parameters=dict(parameters) if isinstance(parameters, dict) else {},
            response_mapping=response_mapping,
            on_success=parse_actions(data.get("onSuccess")),
            on_error=parse_actions(data.get("onError")),
        )

    if type_name == ActionType.CLOSE_MODULE.value:
        parameters = data.get("parameters") or {}
        return CloseAction(
            conditions=conditions,
            flow_completed=bool(data.get("flowCompleted", True)),
            parameters=dict(parameters) if isinstance(parameters, dict) else {},
        )

    if type_name == ActionType.TOOL_CALL.value:
        params = data.get("params") or {}
        return ToolCallAction(
            conditions=conditions,
            tool=str(data.get("tool") or ""),
            params=dict(params) if isinstance(params, dict) else {},
        )

    return UnknownAction(conditions=conditions, type_name=str(type_name), raw=dict(data))


def parse_actions(data: Optional[List[Dict[str, Any]]]) -> List[Action]:
    """Decode an action list."""
    if not data or not isinstance(data, list):
        return []
    return [parse_action(item) for item in data]
