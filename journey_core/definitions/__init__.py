"""
Journey Definitions

Typed, decoded form of the declarative journey/screen documents.
"""

from journey_core.definitions.base import (
    INTERACTIVE_KEYS,
    Condition,
    ElementType,
    EventType,
    JSONValue,
    SectionDirection,
    SectionLayout,
    SectionPosition,
    StateScope,
    parse_conditions,
)
from journey_core.definitions.actions import (
    NEXT_SCREEN,
    PREV_SCREEN,
    Action,
    ActionType,
    CloseAction,
    NavigateAction,
    ResponseMapping,
    ServiceCallAction,
    StateUpdateAction,
    ToolCallAction,
    UnknownAction,
    extract_screen_id,
    parse_action,
    parse_actions,
)
from journey_core.definitions.screens import Element, Event, Screen, Section
from journey_core.definitions.journey import (
    Agent,
    Journey,
    JourneyValidationError,
    JourneyValidationIssue,
    Tool,
    validate_journey,
)
from journey_core.definitions.loader import (
    DefinitionFormatError,
    dump_journey,
    journey_from_document,
    load_journey_file,
    read_document,
    screens_from_document,
)

__all__ = [
    # Base
    "INTERACTIVE_KEYS",
    "Condition",
    "ElementType",
    "EventType",
    "JSONValue",
    "SectionDirection",
    "SectionLayout",
    "SectionPosition",
    "StateScope",
    "parse_conditions",
    # Actions
    "NEXT_SCREEN",
    "PREV_SCREEN",
    "Action",
    "ActionType",
    "CloseAction",
    "NavigateAction",
    "ResponseMapping",
    "ServiceCallAction",
    "StateUpdateAction",
    "ToolCallAction",
    "UnknownAction",
    "extract_screen_id",
    "parse_action",
    "parse_actions",
    # Screens
    "Element",
    "Event",
    "Screen",
    "Section",
    # Journey
    "Agent",
    "Journey",
    "JourneyValidationError",
    "JourneyValidationIssue",
    "Tool",
    "validate_journey",
    # Loading
    "DefinitionFormatError",
    "dump_journey",
    "journey_from_document",
    "load_journey_file",
    "read_document",
    "screens_from_document",
]
