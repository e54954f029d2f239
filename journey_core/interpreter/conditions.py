"""
Condition Evaluator

Evaluates the small rule language used by conditions:

- ``{"var": "path.to.key"}`` or ``{"var": ["key", default]}``
- ``{"==": [a, b]}`` and ``{"!=": [a, b]}`` with loose equality
- ``{"and": [...]}`` and ``{"or": [...]}``, short-circuiting
- bare literals, evaluated for truthiness

Unknown operators fail closed: the rule evaluates to ``False``.
"""

from typing import Any, Iterable, Mapping, Optional

import structlog

from journey_core.definitions.base import Condition


logger = structlog.get_logger()


MISSING = object()

COMPARISON_OPERATORS = ("==", "!=")
BOOLEAN_OPERATORS = ("and", "or")


class UnknownOperatorError(Exception):
    """Internal signal for an unsupported operator tag."""

    def __init__(self, operator: str):
        self.operator = operator
        super().__init__(f"Unknown operator: {operator}")


def get_value(path: str, context: Mapping[str, Any], default: Any = None) -> Any:
    """Get value from context using dot notation. Missing paths yield the default."""
    if not isinstance(path, str) or not path:
        return default

    # Flat keys containing dots take precedence over nested lookup
    if path in context:
        return context[path]

    current: Any = context
    for part in path.split("."):
        if isinstance(current, Mapping):
            current = current.get(part, MISSING)
        elif isinstance(current, list) and part.isdigit():
            index = int(part)
            current = current[index] if index < len(current) else MISSING
        else:
            return default
        if current is MISSING:
            return default

    return current


def _is_blank(value: Any) -> bool:
    return value is None or value == "" and isinstance(value, str)


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str) and value.strip():
        try:
            return float(value)
        except ValueError:
            return None
    return None


def loose_equals(left: Any, right: Any) -> bool:
    """
    Compare two resolved values.

    ``None``, ``""`` and missing are all equal to each other, and a numeric
    string equals the matching number.
    """
    if _is_blank(left) or _is_blank(right):
        return _is_blank(left) and _is_blank(right)

    if left == right:
        return True

    if isinstance(left, str) != isinstance(right, str):
        left_num = _as_number(left)
        right_num = _as_number(right)
        if left_num is not None and right_num is not None:
            return left_num == right_num

    return False


def _operands(value: Any) -> list:
    if isinstance(value, list):
        return value
    return [value]


def _resolve(node: Any, context: Mapping[str, Any]) -> Any:
    """Resolve an operand to a value."""
    if isinstance(node, dict):
        if len(node) == 1 and "var" in node:
            ref = node["var"]
            if isinstance(ref, list):
                name = ref[0] if ref else ""
                default = ref[1] if len(ref) > 1 else None
                return get_value(name, context, default)
            return get_value(ref, context)
        return _evaluate(node, context)

    if isinstance(node, list):
        return [_resolve(item, context) for item in node]

    return node


def _evaluate(rule: Any, context: Mapping[str, Any]) -> bool:
    if not isinstance(rule, dict):
        return bool(rule)

    if len(rule) != 1:
        raise UnknownOperatorError(",".join(sorted(str(k) for k in rule)) or "<empty>")

    operator, args = next(iter(rule.items()))

    if operator == "var":
        return bool(_resolve(rule, context))

    if operator in COMPARISON_OPERATORS:
        operands = _operands(args)
        left = _resolve(operands[0], context) if len(operands) > 0 else None
        right = _resolve(operands[1], context) if len(operands) > 1 else None
        equal = loose_equals(left, right)
        return equal if operator == "==" else not equal

    if operator == "and":
        return all(_evaluate(sub, context) for sub in _operands(args))

    if operator == "or":
        return any(_evaluate(sub, context) for sub in _operands(args))

    raise UnknownOperatorError(str(operator))


def evaluate(rule: Any, context: Mapping[str, Any]) -> bool:
    """
    Evaluate a rule against a state snapshot.

    Never raises. Unknown operators and malformed rules evaluate to False.
    """
    try:
        return _evaluate(rule, context)
    except UnknownOperatorError as e:
        logger.warning("condition_unknown_operator", operator=e.operator)
        return False
    except (TypeError, ValueError, RecursionError) as e:
        logger.warning("condition_evaluation_failed", error=str(e))
        return False


def evaluate_all(
    conditions: Optional[Iterable[Condition]],
    context: Mapping[str, Any],
) -> bool:
    """
    AND over a condition list. An empty list passes.

    Conditions without a rule are skipped.
    """
    if not conditions:
        return True
    for condition in conditions:
        if condition.rules is None:
            continue
        if not evaluate(condition.rules, context):
            return False
    return True
