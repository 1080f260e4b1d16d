"""
Unit tests for per-component dependency evaluation and resetOn tracking.
"""

import pytest

from formx.lib.dependencies import (
    UNSET,
    DependencyContext,
    DependencyEvaluator,
    ResetTracker,
    get_nested_value,
    is_empty,
    parse_dependencies,
)


@pytest.fixture
def evaluator():
    return DependencyEvaluator(form_mode=True)


def ctx(**data):
    return DependencyContext(data)


class TestHelpers:
    """Path lookup and emptiness."""

    def test_get_nested_value(self):
        data = {"address": {"city": "Oslo"}, "rows": [{"id": 7}]}
        assert get_nested_value(data, "address.city") == "Oslo"
        assert get_nested_value(data, "rows.0.id") == 7
        assert get_nested_value(data, "address.zip.code") is None
        assert get_nested_value(data, "") is None

    @pytest.mark.parametrize("value, expected", [(None, True), (" ", True), ([], True), (0, False), ({}, False)])
    def test_is_empty(self, value, expected):
        assert is_empty(value) is expected


class TestConditions:
    """expression / fieldValue / function conditions."""

    def test_expression_condition(self, evaluator):
        cond = {"type": "expression", "expression": "data.age >= 18"}
        assert evaluator.evaluate_condition(cond, ctx(age=20)) is True
        assert evaluator.evaluate_condition(cond, ctx(age=10)) is False

    def test_expr_alias(self, evaluator):
        assert evaluator.evaluate_condition({"expr": "data.ok"}, ctx(ok=True)) is True

    @pytest.mark.parametrize("operator, compare, field_value, expected", [
        ("equals", "US", "US", True),
        ("equals", 1, "1", False),
        ("notEquals", "US", "CA", True),
        ("contains", "b", ["a", "b"], True),
        ("contains", "ell", "hello", True),
        ("notContains", "z", ["a"], True),
        ("gt", 5, 10, True),
        ("gte", 10, "10", True),
        ("lt", 5, 10, False),
        ("lte", 10, 10, True),
        ("empty", None, "", True),
        ("notEmpty", None, "x", True),
        ("in", ["US", "CA"], "CA", True),
        ("notIn", ["US", "CA"], "NO", True),
        (None, None, "anything", True),
        (None, None, "", False),
    ])
    def test_field_value_operators(self, evaluator, operator, compare, field_value, expected):
        cond = {"type": "fieldValue", "field": "f", "operator": operator, "value": compare}
        assert evaluator.evaluate_condition(cond, ctx(f=field_value)) is expected

    def test_field_value_nested_path(self, evaluator):
        cond = {"type": "fieldValue", "field": "address.country", "operator": "equals", "value": "NO"}
        assert evaluator.evaluate_condition(cond, ctx(address={"country": "NO"})) is True

    def test_function_condition(self, evaluator):
        cond = {"type": "function", "fnSource": "return data.items.length > 2;"}
        assert evaluator.evaluate_condition(cond, ctx(items=[1, 2, 3])) is True

    def test_failure_uses_default(self, evaluator):
        cond = {"type": "expression", "expression": "data.a.b", "default": True}
        assert evaluator.evaluate_condition(cond, ctx()) is True

    def test_failure_without_default_is_unset(self, evaluator):
        cond = {"type": "expression", "expression": "data.a.b"}
        assert evaluator.evaluate_condition(cond, ctx()) is UNSET


class TestComputedSpecs:
    """label / placeholder / value / options specs."""

    def test_expression(self, evaluator):
        assert evaluator.evaluate_computed({"type": "expression", "expression": "data.a + data.b"}, ctx(a=1, b=2)) == 3

    def test_function(self, evaluator):
        spec = {"type": "function", "fnSource": "return data.rows.map(r => r.name);"}
        assert evaluator.evaluate_computed(spec, ctx(rows=[{"name": "x"}])) == ["x"]

    def test_template(self, evaluator):
        spec = {"type": "template", "template": "Hello {data.user.name}, you are {age}{missing}"}
        assert evaluator.evaluate_computed(spec, ctx(user={"name": "Ada"}, age=36)) == "Hello Ada, you are 36"

    def test_failure_uses_default(self, evaluator):
        spec = {"type": "expression", "expression": "data.x.y", "default": "n/a"}
        assert evaluator.evaluate_computed(spec, ctx()) == "n/a"


class TestEvaluateAll:
    """Whole dependencies blocks."""

    def test_conditions_become_booleans(self, evaluator):
        deps = {
            "visible": {"type": "expression", "expression": "data.country"},
            "required": {"type": "fieldValue", "field": "country", "operator": "equals", "value": "US"},
        }
        result = evaluator.evaluate_all_dependencies(deps, ctx(country="US"))
        assert result.visible is True
        assert result.required is True
        assert result.disabled is None

    def test_enabled_alone_sets_disabled(self, evaluator):
        deps = {"enabled": {"type": "expression", "expression": "data.agree === true"}}
        assert evaluator.evaluate_all_dependencies(deps, ctx(agree=False)).disabled is True
        assert evaluator.evaluate_all_dependencies(deps, ctx(agree=True)).disabled is False

    def test_disabled_wins_over_enabled(self, evaluator):
        deps = {
            "disabled": {"type": "expression", "expression": "true"},
            "enabled": {"type": "expression", "expression": "true"},
        }
        result = evaluator.evaluate_all_dependencies(deps, ctx())
        assert result.disabled is True
        assert result.enabled is True

    def test_failed_condition_without_default_stays_none(self, evaluator):
        deps = {"visible": {"type": "expression", "expression": "data.a.b"}}
        assert evaluator.evaluate_all_dependencies(deps, ctx()).visible is None

    def test_computed_entries(self, evaluator):
        deps = {
            "label": {"type": "template", "template": "Cities in {country}"},
            "value": {"type": "expression", "expression": "data.qty * 2"},
        }
        result = evaluator.evaluate_all_dependencies(deps, ctx(country="NO", qty=3))
        assert result.label == "Cities in NO"
        assert result.value == 6

    def test_filter_params(self, evaluator):
        deps = {
            "filterBy": [
                {"sourceField": "country", "targetParam": "countryCode", "transform": "return value.toLowerCase();"},
                {"sourceField": "region", "targetParam": "region"},
            ]
        }
        result = evaluator.evaluate_all_dependencies(deps, ctx(country="NO", region=""))
        assert result.filter_params == {"countryCode": "no"}

    def test_failing_transform_keeps_source_value(self, evaluator):
        deps = {"filterBy": {"sourceField": "country", "targetParam": "c", "transform": "return value.x.y;"}}
        result = evaluator.evaluate_all_dependencies(deps, ctx(country="NO"))
        assert result.filter_params == {"c": "NO"}

    def test_builder_mode_skips_evaluation(self):
        deps = {"visible": {"type": "expression", "expression": "false"}}
        result = DependencyEvaluator(form_mode=False).evaluate_all_dependencies(deps, ctx())
        assert result.visible is None

    def test_wrapped_block_is_accepted(self, evaluator):
        deps = {"value": {"visible": {"type": "expression", "expression": "false"}}}
        assert evaluator.evaluate_all_dependencies(deps, ctx()).visible is False

    def test_value_only_block_is_not_unwrapped(self, evaluator):
        deps = {"value": {"type": "expression", "expression": "data.a + 1"}}
        assert evaluator.evaluate_all_dependencies(deps, ctx(a=1)).value == 2

    def test_malformed_block_is_ignored(self, evaluator):
        assert parse_dependencies({"filterBy": {"sourceField": "x"}}) is None
        assert evaluator.evaluate_all_dependencies({"filterBy": 5}, ctx()).visible is None


class TestDependentFields:
    """extract_dependent_fields."""

    def test_collects_every_source(self):
        deps = {
            "visible": {"type": "fieldValue", "field": "address.country", "operator": "notEmpty"},
            "required": {"type": "expression", "expression": "data.age < 18"},
            "label": {"type": "template", "template": "{data.first} {last}"},
            "value": {"type": "function", "fnSource": "return formData.total;"},
            "resetOn": ["country"],
            "filterBy": {"sourceField": "region.code", "targetParam": "r"},
        }
        assert DependencyEvaluator.extract_dependent_fields(deps) == [
            "address", "age", "first", "last", "total", "country", "region",
        ]

    def test_no_block(self):
        assert DependencyEvaluator.extract_dependent_fields(None) == []


class TestResetTracker:
    """resetOn change detection."""

    def test_first_call_only_records(self):
        tracker = ResetTracker("city", ["country"])
        assert tracker.should_reset({"country": "NO", "city": "Oslo"}) is False

    def test_change_triggers_reset_once(self):
        tracker = ResetTracker("city", ["country"])
        tracker.should_reset({"country": "NO", "city": "Oslo"})
        assert tracker.should_reset({"country": "SE", "city": "Oslo"}) is True
        assert tracker.last_changed == ["country"]
        assert tracker.should_reset({"country": "SE", "city": "Oslo"}) is False

    def test_equal_value_does_not_trigger(self):
        tracker = ResetTracker("city", ["country"])
        tracker.should_reset({"country": "NO", "city": "Oslo"})
        assert tracker.should_reset({"country": "NO", "city": "Bergen"}) is False

    def test_empty_bound_value_is_not_reset(self):
        tracker = ResetTracker("city", ["country"])
        tracker.should_reset({"country": "NO", "city": ""})
        assert tracker.should_reset({"country": "SE", "city": ""}) is False

    def test_own_key_is_ignored(self):
        tracker = ResetTracker("city", ["city", "country"])
        assert tracker.watched == ["country"]

    def test_reset_forgets_snapshot(self):
        tracker = ResetTracker("city", ["country"])
        tracker.should_reset({"country": "NO", "city": "Oslo"})
        tracker.reset()
        assert tracker.should_reset({"country": "SE", "city": "Oslo"}) is False

    def test_check_leaves_snapshot_alone(self):
        tracker = ResetTracker("city", ["country"])
        tracker.should_reset({"country": "NO", "city": "Oslo"})
        first = tracker.check({"country": "SE", "city": "Oslo"})
        second = tracker.check({"country": "SE", "city": "Oslo"})
        assert first.reset is True and second.reset is True
        tracker.advance(second.snapshot, second.changed)
        assert tracker.check({"country": "SE", "city": "Oslo"}).reset is False

    @pytest.mark.parametrize("before, after", [(1, True), (0, False), ("1", 1), (None, "")])
    def test_loosely_equal_values_count_as_changes(self, before, after):
        tracker = ResetTracker("city", ["country"])
        tracker.should_reset({"country": before, "city": "Oslo"})
        assert tracker.should_reset({"country": after, "city": "Oslo"}) is True

    def test_equal_containers_are_unchanged(self):
        tracker = ResetTracker("city", ["tags"])
        tracker.should_reset({"tags": ["a"], "city": "Oslo"})
        assert tracker.should_reset({"tags": ["a"], "city": "Oslo"}) is False
