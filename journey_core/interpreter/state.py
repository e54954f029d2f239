"""
State Store

Scoped key/value store owned by a single run. The ``screen`` scope is
reseeded on every navigation; the ``module`` scope lives for the whole run.
"""

import copy
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Union

import structlog

from journey_core.definitions.base import JSONValue, StateScope


logger = structlog.get_logger()


ScopeLike = Union[StateScope, str]


def _scope(scope: ScopeLike) -> StateScope:
    if isinstance(scope, StateScope):
        return scope
    return StateScope.parse(scope)


class StateStore:
    """
    Two-scope state bag.

    Writes are last-write-wins with no rollback. Array values replace
    wholesale.
    """

    def __init__(
        self,
        module: Optional[Dict[str, JSONValue]] = None,
        screen: Optional[Dict[str, JSONValue]] = None,
    ):
        self._module: Dict[str, JSONValue] = copy.deepcopy(module) if module else {}
        self._screen: Dict[str, JSONValue] = copy.deepcopy(screen) if screen else {}

    def _bucket(self, scope: ScopeLike) -> Dict[str, JSONValue]:
        return self._module if _scope(scope) == StateScope.MODULE else self._screen

    def get(self, scope: ScopeLike, key: str, default: Any = None) -> Any:
        """Get a key from one scope."""
        return self._bucket(scope).get(key, default)

    def set(self, scope: ScopeLike, key: str, value: JSONValue) -> None:
        self._bucket(scope)[key] = copy.deepcopy(value)

    def set_many(self, scope: ScopeLike, updates: Mapping[str, JSONValue]) -> None:
        """Write several keys into one scope."""
        bucket = self._bucket(scope)
        for key, value in updates.items():
            bucket[key] = copy.deepcopy(value)

        logger.debug(
            "state_updated",
            scope=_scope(scope).value,
            keys=list(updates.keys()),
        )

    def increment(self, scope: ScopeLike, key: str, amount: int = 1) -> int:
        """Increment an integer counter, treating a missing or non-numeric value as 0."""
        bucket = self._bucket(scope)
        current = bucket.get(key)
        if isinstance(current, bool) or not isinstance(current, int):
            current = 0
        bucket[key] = current + amount
        return bucket[key]

    def increment_nested(self, scope: ScopeLike, key: str, field_name: str, amount: int = 1) -> int:
        """Increment a counter stored inside a mapping value, e.g. per-tool call counts."""
        bucket = self._bucket(scope)
        counters = bucket.get(key)
        if not isinstance(counters, dict):
            counters = {}
        current = counters.get(field_name, 0)
        if isinstance(current, bool) or not isinstance(current, int):
            current = 0
        counters = dict(counters)
        counters[field_name] = current + amount
        bucket[key] = counters
        return counters[field_name]

    def merged(self) -> Dict[str, JSONValue]:
        """Module scope overlaid by screen scope. Screen wins on collision."""
        result = dict(self._module)
        result.update(self._screen)
        return result

    def reset_screen(self, initial: Optional[Mapping[str, JSONValue]] = None) -> None:
        """Replace the screen scope wholesale with a copy of the initial map."""
        self._screen = copy.deepcopy(dict(initial)) if initial else {}

    def scoped(self, scope: ScopeLike) -> Mapping[str, JSONValue]:
        """Read-only view of one scope."""
        return MappingProxyType(self._bucket(scope))

    @property
    def module(self) -> Mapping[str, JSONValue]:
        return self.scoped(StateScope.MODULE)

    @property
    def screen(self) -> Mapping[str, JSONValue]:
        return self.scoped(StateScope.SCREEN)

    def snapshot(self) -> Dict[str, Dict[str, JSONValue]]:
        """Deep copy of both scopes."""
        return {
            StateScope.MODULE.value: copy.deepcopy(self._module),
            StateScope.SCREEN.value: copy.deepcopy(self._screen),
        }

    def to_dict(self) -> Dict[str, Any]:
        return self.snapshot()
