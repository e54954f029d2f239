"""
Screen Definitions

Screen, Section, Element and Event: the nested layers of the
declarative visual tree.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterator, List, Optional

from journey_core.definitions.actions import Action, parse_actions
from journey_core.definitions.base import (
    INTERACTIVE_KEYS,
    Condition,
    ElementType,
    EventType,
    JSONValue,
    SectionDirection,
    SectionLayout,
    SectionPosition,
    parse_conditions,
    parse_enum,
)


@dataclass
class Event:
    """A named, condition-gated trigger that runs an action list."""

    id: str
    type: EventType = EventType.CUSTOM
    conditions: List[Condition] = field(default_factory=list)
    actions: List[Action] = field(default_factory=list)
    analytics_name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "type": self.type.value,
            "conditions": [c.to_dict() for c in self.conditions],
            "action": [a.to_dict() for a in self.actions],
        }
        if self.analytics_name:
            data["analyticsName"] = self.analytics_name
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Event":
        # Authored definitions use "action" for the list; "actions" is accepted too
        actions = data.get("action", data.get("actions"))
        return cls(
            id=str(data.get("id") or ""),
            type=EventType.parse(data.get("type")),
            conditions=parse_conditions(data.get("conditions")),
            actions=parse_actions(actions),
            analytics_name=data.get("analyticsName"),
        )


def parse_events(data: Optional[List[Dict[str, Any]]]) -> List[Event]:
    if not data:
        return []
    return [Event.from_dict(item) for item in data if isinstance(item, dict)]


@dataclass
class Element:
    """The atomic UI unit. Its id lives in ``state["id"]``."""

    type: ElementType
    state: Dict[str, JSONValue] = field(default_factory=dict)
    style: Dict[str, JSONValue] = field(default_factory=dict)
    conditions: List[Condition] = field(default_factory=list)
    events: List[Event] = field(default_factory=list)
    type_name: Optional[str] = None

    @property
    def id(self) -> Optional[str]:
        value = self.state.get("id")
        return str(value) if value is not None else None

    @property
    def interactive_keys(self) -> FrozenSet[str]:
        """State keys a user interaction may write on this element."""
        return INTERACTIVE_KEYS.get(self.type, frozenset())

    @property
    def is_interactive(self) -> bool:
        return bool(self.interactive_keys)

    def find_event(self, event_id: str) -> Optional[Event]:
        for event in self.events:
            if event.id == event_id:
                return event
        return None

    def to_dict(self) -> Dict[str, Any]:
        type_name = self.type.value
        if self.type == ElementType.UNKNOWN and self.type_name:
            type_name = self.type_name
        data: Dict[str, Any] = {"type": type_name, "state": dict(self.state)}
        if self.style:
            data["style"] = dict(self.style)
        if self.conditions:
            data["conditions"] = [c.to_dict() for c in self.conditions]
        if self.events:
            data["events"] = [e.to_dict() for e in self.events]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Element":
        type_name = data.get("type")
        state = data.get("state") or {}
        style = data.get("style") or {}
        return cls(
            type=ElementType.parse(type_name),
            state=dict(state) if isinstance(state, dict) else {},
            style=dict(style) if isinstance(style, dict) else {},
            conditions=parse_conditions(data.get("conditions")),
            events=parse_events(data.get("events")),
            type_name=type_name,
        )


@dataclass
class Section:
    """Layout grouping within a screen. Carries no state of its own."""

    id: str
    title: Optional[str] = None
    position: SectionPosition = SectionPosition.BODY
    layout: SectionLayout = SectionLayout.STACK
    direction: SectionDirection = SectionDirection.VERTICAL
    scrollable: bool = False
    elements: List[Element] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "position": self.position.value,
            "layout": self.layout.value,
            "direction": self.direction.value,
            "scrollable": self.scrollable,
            "elements": [e.to_dict() for e in self.elements],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Section":
        return cls(
            id=str(data.get("id") or ""),
            title=data.get("title"),
            position=parse_enum(SectionPosition, data.get("position"), SectionPosition.BODY),
            layout=parse_enum(SectionLayout, data.get("layout"), SectionLayout.STACK),
            direction=parse_enum(
                SectionDirection, data.get("direction"), SectionDirection.VERTICAL
            ),
            scrollable=bool(data.get("scrollable", False)),
            elements=[
                Element.from_dict(item)
                for item in data.get("elements") or []
                if isinstance(item, dict)
            ],
        )


@dataclass
class Screen:
    """A single presentable unit."""

    id: str
    title: Optional[str] = None
    hides_back_button: bool = False
    state: Dict[str, JSONValue] = field(default_factory=dict)
    sections: List[Section] = field(default_factory=list)
    events: List[Event] = field(default_factory=list)

    def iter_elements(self) -> Iterator[Element]:
        for section in self.sections:
            yield from section.elements

    def find_element(self, element_id: str) -> Optional[Element]:
        for element in self.iter_elements():
            if element.id == element_id:
                return element
        return None

    def find_event(self, event_id: str) -> Optional[Event]:
        """Find a global (screen-level) event."""
        for event in self.events:
            if event.id == event_id:
                return event
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "hidesBackButton": self.hides_back_button,
            "state": dict(self.state),
            "sections": [s.to_dict() for s in self.sections],
            "events": [e.to_dict() for e in self.events],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Screen":
        state = data.get("state") or {}
        return cls(
            id=str(data.get("id") or ""),
            title=data.get("title"),
            hides_back_button=bool(data.get("hidesBackButton", False)),
            state=dict(state) if isinstance(state, dict) else {},
            sections=[
                Section.from_dict(item)
                for item in data.get("sections") or []
                if isinstance(item, dict)
            ],
            events=parse_events(data.get("events")),
        )
