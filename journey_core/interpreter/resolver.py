"""
Screen Resolver

Computes the effective (displayed) view of a screen for a given state.
Resolution is pure: it never mutates the screen definition or the state
it is handed, so it can be called after every state change.
"""

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from journey_core.definitions.base import (
    ElementType,
    JSONValue,
    SectionDirection,
    SectionLayout,
    SectionPosition,
)
from journey_core.definitions.screens import Element, Screen
from journey_core.interpreter.conditions import evaluate
from journey_core.interpreter.templates import TemplateScopes, render_value


@dataclass
class EffectiveElement:
    """An element with its effective state."""

    type: ElementType
    id: Optional[str]
    state: Dict[str, JSONValue]
    style: Dict[str, JSONValue] = field(default_factory=dict)
    matched_condition: Optional[int] = None  # Index of the winning condition

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "id": self.id,
            "state": copy.deepcopy(self.state),
            "style": copy.deepcopy(self.style),
            "matchedCondition": self.matched_condition,
        }


@dataclass
class EffectiveSection:
    id: str
    title: Optional[str]
    position: SectionPosition
    layout: SectionLayout
    direction: SectionDirection
    scrollable: bool
    elements: List[EffectiveElement] = field(default_factory=list)

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


@dataclass
class EffectiveScreen:
    """Result of resolving a screen against a state snapshot."""

    screen_id: str
    title: Optional[str]
    hides_back_button: bool
    sections: List[EffectiveSection] = field(default_factory=list)

    def iter_elements(self):
        for section in self.sections:
            yield from section.elements

    def find_element(self, element_id: str) -> Optional[EffectiveElement]:
        for element in self.iter_elements():
            if element.id == element_id:
                return element
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "screenId": self.screen_id,
            "title": self.title,
            "hidesBackButton": self.hides_back_button,
            "sections": [s.to_dict() for s in self.sections],
        }


def last_matching_patch(
    element: Element,
    merged_state: Mapping[str, Any],
) -> Optional[int]:
    """
    Index of the last condition whose rule holds.

    Later conditions win over earlier ones, so the scan runs in declaration
    order and keeps the most recent match.
    """
    winner = None
    for index, condition in enumerate(element.conditions):
        if condition.rules is None:
            continue
        if evaluate(condition.rules, merged_state):
            winner = index
    return winner


def resolve_element(
    element: Element,
    merged_state: Mapping[str, Any],
    interaction: Optional[Mapping[str, JSONValue]] = None,
    template_scopes: Optional[TemplateScopes] = None,
) -> EffectiveElement:
    """Effective state is declared state < interaction values < winning patch."""
    state = copy.deepcopy(element.state)

    if interaction:
        state.update(copy.deepcopy(dict(interaction)))

    reference_scopes = template_scopes or TemplateScopes(
        module=merged_state, screen=merged_state
    )

    winner = last_matching_patch(element, merged_state)
    if winner is not None:
        patch = element.conditions[winner].state
        state.update(render_value(copy.deepcopy(patch), reference_scopes))

    if template_scopes is not None:
        state = render_value(state, template_scopes)

    return EffectiveElement(
        type=element.type,
        id=element.id,
        state=state,
        style=copy.deepcopy(element.style),
        matched_condition=winner,
    )


def resolve_effective(
    screen: Screen,
    merged_state: Mapping[str, Any],
    interactions: Optional[Mapping[str, Mapping[str, JSONValue]]] = None,
    template_scopes: Optional[TemplateScopes] = None,
) -> EffectiveScreen:
    """
    Resolve every element of a screen against the merged state.

    Args:
        screen: Screen definition
        merged_state: Module state overlaid by screen state
        interactions: Per-element interaction values keyed by element id
        template_scopes: When given, string fields are interpolated

    Returns:
        The effective screen
    """
    interactions = interactions or {}

    sections = []
    for section in screen.sections:
        elements = [
            resolve_element(
                element,
                merged_state,
                interaction=interactions.get(element.id) if element.id else None,
                template_scopes=template_scopes,
            )
            for element in section.elements
        ]
        sections.append(EffectiveSection(
            id=section.id,
            title=section.title,
            position=section.position,
            layout=section.layout,
            direction=section.direction,
            scrollable=section.scrollable,
            elements=elements,
        ))

    return EffectiveScreen(
        screen_id=screen.id,
        title=screen.title,
        hides_back_button=screen.hides_back_button,
        sections=sections,
    )
