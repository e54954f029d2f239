"""Unit tests for the condition evaluator."""

import pytest

from journey_core.definitions.base import Condition
from journey_core.interpreter.conditions import (
    evaluate,
    evaluate_all,
    get_value,
    loose_equals,
)


class TestGetValue:
    """Tests for dot-path lookup."""

    def test_flat_key(self):
        """Test looking up a top-level key."""
        assert get_value("flag", {"flag": True}) is True

    def test_nested_path(self):
        """Test looking up a nested key."""
        context = {"profile": {"goals": {"primary": "sleep"}}}

        assert get_value("profile.goals.primary", context) == "sleep"

    def test_list_index(self):
        """Test indexing into lists with numeric segments."""
        context = {"items": [{"name": "first"}, {"name": "second"}]}

        assert get_value("items.1.name", context) == "second"
        assert get_value("items.5.name", context) is None

    def test_flat_dotted_key_wins(self):
        """Test that a flat key containing dots takes precedence."""
        context = {"a.b": "flat", "a": {"b": "nested"}}

        assert get_value("a.b", context) == "flat"

    def test_missing_returns_default(self):
        """Test missing paths return the default."""
        assert get_value("missing.path", {}) is None
        assert get_value("missing", {}, default=3) == 3


class TestLooseEquals:
    """Tests for loose equality."""

    @pytest.mark.parametrize("left,right", [
        (None, ""),
        ("", None),
        (None, None),
        ("1", 1),
        (2.0, "2"),
        ("yes", "yes"),
        (True, True),
    ])
    def test_equal(self, left, right):
        """Test values that compare equal."""
        assert loose_equals(left, right)

    @pytest.mark.parametrize("left,right", [
        (None, 0),
        ("", False),
        ("1", True),
        ("a", "b"),
        (1, 2),
    ])
    def test_not_equal(self, left, right):
        """Test values that compare unequal."""
        assert not loose_equals(left, right)


class TestEvaluate:
    """Tests for rule evaluation."""

    def test_equality_against_state(self):
        """Test == with a var operand."""
        rule = {"==": [{"var": "flag"}, True]}

        assert evaluate(rule, {"flag": True})
        assert not evaluate(rule, {"flag": False})
        assert not evaluate(rule, {})

    def test_inequality(self):
        """Test != with a var operand."""
        rule = {"!=": [{"var": "selectedOptionId"}, None]}

        assert evaluate(rule, {"selectedOptionId": "opt-1"})
        assert not evaluate(rule, {})
        assert not evaluate(rule, {"selectedOptionId": ""})

    def test_missing_equals_null(self):
        """Test a missing key compares equal to null."""
        assert evaluate({"==": [{"var": "nothing"}, None]}, {})

    def test_numeric_string_comparison(self):
        """Test a numeric string equals a number."""
        assert evaluate({"==": [{"var": "count"}, 3]}, {"count": "3"})

    def test_var_default(self):
        """Test var with a default value."""
        rule = {"==": [{"var": ["mood", "neutral"]}, "neutral"]}

        assert evaluate(rule, {})
        assert not evaluate(rule, {"mood": "happy"})

    def test_and_or(self):
        """Test boolean combinators."""
        rule = {
            "or": [
                {"and": [{"var": "a"}, {"var": "b"}]},
                {"==": [{"var": "c"}, "go"]},
            ]
        }

        assert evaluate(rule, {"a": True, "b": True})
        assert evaluate(rule, {"c": "go"})
        assert not evaluate(rule, {"a": True, "b": False})

    def test_bare_var_truthiness(self):
        """Test a bare var rule uses truthiness."""
        assert evaluate({"var": "done"}, {"done": 1})
        assert not evaluate({"var": "done"}, {"done": 0})

    def test_literal(self):
        """Test literal rules."""
        assert evaluate(True, {})
        assert not evaluate(False, {})

    def test_unknown_operator_is_false(self):
        """Test unknown operators fail closed."""
        assert not evaluate({">": [{"var": "n"}, 1]}, {"n": 5})

    def test_unknown_operator_inside_or(self):
        """Test an unknown operator makes the whole rule false."""
        rule = {"or": [{"var": "flag"}, {"in": ["a", ["a"]]}]}

        assert not evaluate(rule, {"flag": False})

    def test_multi_key_rule_is_false(self):
        """Test a rule object with several operators is rejected."""
        assert not evaluate({"==": [1, 1], "!=": [1, 2]}, {})

    def test_does_not_mutate_context(self):
        """Test evaluation leaves the context untouched."""
        context = {"nested": {"value": 1}}

        evaluate({"==": [{"var": "nested.value"}, 1]}, context)

        assert context == {"nested": {"value": 1}}


class TestEvaluateAll:
    """Tests for condition lists."""

    def test_empty_list_passes(self):
        """Test an empty condition list passes."""
        assert evaluate_all([], {})
        assert evaluate_all(None, {})

    def test_all_must_hold(self):
        """Test the list is an AND."""
        conditions = [
            Condition(rules={"var": "a"}),
            Condition(rules={"var": "b"}),
        ]

        assert evaluate_all(conditions, {"a": True, "b": True})
        assert not evaluate_all(conditions, {"a": True, "b": False})

    def test_condition_without_rule_is_skipped(self):
        """Test a condition with no rule does not block."""
        conditions = [Condition(rules=None), Condition(rules={"var": "a"})]

        assert evaluate_all(conditions, {"a": True})
