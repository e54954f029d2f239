"""
Definition Base Types

Enumerations and the condition type shared by every layer of the
declarative screen tree.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional


JSONValue = Any


class StateScope(str, Enum):
    """Lifetime class of a state key."""

    SCREEN = "screen"  # Reset on every navigation
    MODULE = "module"  # Persists for the whole run

    @classmethod
    def parse(cls, value: Optional[str], default: "StateScope" = None) -> "StateScope":
        """Parse a scope tag, falling back to the default for unknown tags."""
        if default is None:
            default = cls.SCREEN
        try:
            return cls(value) if value else default
        except ValueError:
            return default


class ElementType(str, Enum):
    """Closed set of element types."""

    LARGE_QUESTION = "largeQuestion"
    TEXT_BLOCK = "textBlock"
    BUTTON = "button"
    IMAGE = "image"
    IMAGE_CARD = "imageCard"
    TEXT_CARD = "textCard"
    CHECKLIST_CARD = "checklistCard"
    TOGGLE_CARD = "toggleCard"
    ANIMATED_IMAGE = "animatedImage"
    SPACER = "spacer"
    LOADING_VIEW = "loadingView"
    CARE_CALL = "careCall"
    ANIMATED_COMPONENTS = "animatedComponents"
    QUOTE_CARD = "quoteCard"
    IMAGE_CHECKBOX_BUTTON = "imageCheckboxButton"
    CHECKBOX_BUTTON = "checkboxButton"
    CIRCULAR_STEPPER = "circularStepper"
    MINI_WIDGET = "miniWidget"
    WEEK_CHECKIN_SUMMARY = "weekCheckinSummary"
    AGENT_MESSAGE_CARD = "agentMessageCard"
    OPEN_QUESTION = "openQuestion"
    ORB = "orb"
    UNKNOWN = "unknown"  # Decoded but never interactive

    @classmethod
    def parse(cls, value: Optional[str]) -> "ElementType":
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


# State keys a user interaction may write, per element type
INTERACTIVE_KEYS: Dict[ElementType, FrozenSet[str]] = {
    ElementType.LARGE_QUESTION: frozenset({"selectedOptionId"}),
    ElementType.OPEN_QUESTION: frozenset({"text", "answer"}),
    ElementType.TOGGLE_CARD: frozenset({"isToggled"}),
    ElementType.CHECKBOX_BUTTON: frozenset({"isSelected"}),
    ElementType.IMAGE_CHECKBOX_BUTTON: frozenset({"isSelected"}),
    ElementType.CHECKLIST_CARD: frozenset({"checkedItems"}),
    ElementType.CIRCULAR_STEPPER: frozenset({"value"}),
}


class EventType(str, Enum):
    """Trigger type of an event."""

    ON_START = "onStart"
    ON_LOAD = "onLoad"
    ON_SUBMIT = "onSubmit"
    ON_CLOSE = "onClose"
    ON_APPEAR = "onAppear"
    ON_DISAPPEAR = "onDisappear"
    ON_SELECTED = "onSelected"
    ON_TOGGLE = "onToggle"
    ON_TOGGLE_ON = "onToggleOn"
    ON_TOGGLE_OFF = "onToggleOff"
    ON_ANIMATION_COMPLETE = "onAnimationComplete"
    CUSTOM = "custom"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: Optional[str]) -> "EventType":
        if not value:
            return cls.CUSTOM
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


class SectionPosition(str, Enum):
    """Where a section is placed on screen."""

    FIXED_TOP = "fixed-top"
    BODY = "body"
    FIXED_BOTTOM = "fixed-bottom"


class SectionLayout(str, Enum):
    STACK = "stack"
    GRID = "grid"


class SectionDirection(str, Enum):
    VERTICAL = "vertical"
    HORIZONTAL = "horizontal"


def parse_enum(enum_cls, value: Optional[str], default):
    try:
        return enum_cls(value) if value else default
    except ValueError:
        return default


@dataclass
class Condition:
    """
    A rule plus the state patch applied when the rule holds.

    Used both to gate events/actions and to compute an element's
    effective displayed state.
    """

    rules: JSONValue = None
    state: Dict[str, JSONValue] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"rules": self.rules, "state": dict(self.state)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Condition":
        rules = data.get("rules", data.get("rule"))
        state = data.get("state") or {}
        if not isinstance(state, dict):
            state = {}
        return cls(rules=rules, state=dict(state))


def parse_conditions(data: Optional[List[Dict[str, Any]]]) -> List[Condition]:
    """Decode a list of conditions, skipping entries that are not objects."""
    if not data:
        return []
    return [Condition.from_dict(item) for item in data if isinstance(item, dict)]
