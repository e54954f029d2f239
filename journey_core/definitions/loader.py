"""Journey document loading from JSON and YAML."""

import json
from pathlib import Path
from typing import Any, Dict, List, Union

import yaml

from journey_core.definitions.journey import Journey
from journey_core.definitions.screens import Screen


YAML_SUFFIXES = (".yaml", ".yml")


class DefinitionFormatError(ValueError):
    """Raised when a definition document cannot be parsed."""


def parse_document(text: str, suffix: str = ".json") -> Any:
    """Parse a JSON or YAML document based on the file suffix."""
    try:
        if suffix.lower() in YAML_SUFFIXES:
            return yaml.safe_load(text)
        return json.loads(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise DefinitionFormatError(f"Could not parse document: {e}") from e


def read_document(path: Union[str, Path]) -> Any:
    path = Path(path)
    return parse_document(path.read_text(encoding="utf-8"), path.suffix)


def journey_from_document(data: Any) -> Journey:
    if not isinstance(data, dict):
        raise DefinitionFormatError("Journey document must be an object")
    # Exported journeys may be wrapped as {"journey": {...}}
    if "journey" in data and isinstance(data["journey"], dict):
        data = data["journey"]
    return Journey.from_dict(data)


def screens_from_document(data: Any) -> List[Screen]:
    if isinstance(data, dict):
        data = data.get("screens") or []
    if not isinstance(data, list):
        raise DefinitionFormatError("Screens document must be a list")
    return [Screen.from_dict(item) for item in data if isinstance(item, dict)]


def load_journey_file(path: Union[str, Path]) -> Journey:
    """Load a journey from a JSON or YAML file."""
    return journey_from_document(read_document(path))


def dump_journey(journey: Journey, suffix: str = ".json") -> str:
    data: Dict[str, Any] = journey.to_dict()
    if suffix.lower() in YAML_SUFFIXES:
        return yaml.safe_dump(data, sort_keys=False, allow_unicode=True)
    return json.dumps(data, indent=2)
