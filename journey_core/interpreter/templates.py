"""
State template substitution.

Supported forms:

- ``{$moduleData.path}`` / ``{{$moduleData.path}}`` and the ``$screenData``
  equivalents, interpolated inside strings
- ``{{path}}``, resolved against the merged state
- ``"$moduleData.path"`` / ``"$screenData.path"`` as a whole value, resolved
  to the referenced value itself

A string consisting of a single placeholder resolves to the referenced value
with its native type. Unresolved placeholders are left untouched.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping

from journey_core.interpreter.conditions import MISSING, get_value


MODULE_PREFIX = "$moduleData."
SCREEN_PREFIX = "$screenData."

_PLACEHOLDER = re.compile(
    r"\{\{?\s*\$(?P<scope>moduleData|screenData)\.(?P<scoped>[^}]+?)\s*\}\}?"
    r"|\{\{\s*(?P<merged>[A-Za-z_][\w.\-]*)\s*\}\}"
)


@dataclass
class TemplateScopes:
    """Lookup sources for template resolution."""

    module: Mapping[str, Any] = field(default_factory=dict)
    screen: Mapping[str, Any] = field(default_factory=dict)

    @property
    def merged(self) -> Dict[str, Any]:
        result = dict(self.module)
        result.update(self.screen)
        return result

    def lookup(self, scope: str, path: str) -> Any:
        source = self.module if scope == "moduleData" else self.screen
        return get_value(path.strip(), source, MISSING)


def _match_value(match: "re.Match", scopes: TemplateScopes, merged: Mapping[str, Any]) -> Any:
    if match.group("scope"):
        return scopes.lookup(match.group("scope"), match.group("scoped"))
    return get_value(match.group("merged"), merged, MISSING)


def resolve_reference(value: Any, scopes: TemplateScopes) -> Any:
    """Resolve a whole-value ``$moduleData.`` / ``$screenData.`` reference."""
    if not isinstance(value, str):
        return value
    if value.startswith(MODULE_PREFIX):
        found = scopes.lookup("moduleData", value[len(MODULE_PREFIX):])
        return None if found is MISSING else found
    if value.startswith(SCREEN_PREFIX):
        found = scopes.lookup("screenData", value[len(SCREEN_PREFIX):])
        return None if found is MISSING else found
    return value


def interpolate(template: str, scopes: TemplateScopes) -> Any:
    """Interpolate placeholders in a string."""
    if "{" not in template:
        return template

    merged = scopes.merged

    whole = _PLACEHOLDER.fullmatch(template.strip())
    if whole:
        found = _match_value(whole, scopes, merged)
        return template if found is MISSING else found

    def replace(match: "re.Match") -> str:
        found = _match_value(match, scopes, merged)
        if found is MISSING:
            return match.group(0)
        return "" if found is None else str(found)

    return _PLACEHOLDER.sub(replace, template)


def render_value(value: Any, scopes: TemplateScopes) -> Any:
    """Recursively resolve references and placeholders in a JSON value."""
    if isinstance(value, str):
        if value.startswith(MODULE_PREFIX) or value.startswith(SCREEN_PREFIX):
            return resolve_reference(value, scopes)
        return interpolate(value, scopes)
    if isinstance(value, dict):
        return {key: render_value(item, scopes) for key, item in value.items()}
    if isinstance(value, list):
        return [render_value(item, scopes) for item in value]
    return value
