"""
Unit tests for the built-in functions available in form scripts.
"""

import pytest

from formx.lib.builtins.registry import DSL_FUNCTION_REGISTRY, DSL_FUNCTION_SIG

get_func = DSL_FUNCTION_REGISTRY.get("get")
coalesce_func = DSL_FUNCTION_REGISTRY.get("coalesce")
is_empty_func = DSL_FUNCTION_REGISTRY.get("isEmpty")
between_func = DSL_FUNCTION_REGISTRY.get("between")
one_of_func = DSL_FUNCTION_REGISTRY.get("oneOf")
contains_func = DSL_FUNCTION_REGISTRY.get("contains")
sum_func = DSL_FUNCTION_REGISTRY.get("sum")
avg_func = DSL_FUNCTION_REGISTRY.get("avg")
round_func = DSL_FUNCTION_REGISTRY.get("round")
clamp_func = DSL_FUNCTION_REGISTRY.get("clamp")
join_func = DSL_FUNCTION_REGISTRY.get("join")
pad_left_func = DSL_FUNCTION_REGISTRY.get("padLeft")
truncate_func = DSL_FUNCTION_REGISTRY.get("truncate")
format_func = DSL_FUNCTION_REGISTRY.get("format")
to_options_func = DSL_FUNCTION_REGISTRY.get("toOptions")
pluck_func = DSL_FUNCTION_REGISTRY.get("pluck")
unique_func = DSL_FUNCTION_REGISTRY.get("unique")


class TestRegistry:
    """The registry and its arity table."""

    def test_every_function_has_a_signature(self):
        assert set(DSL_FUNCTION_REGISTRY) == set(DSL_FUNCTION_SIG)

    def test_signatures_are_ranges(self):
        for name, (lo, hi) in DSL_FUNCTION_SIG.items():
            assert hi is None or lo <= hi, name


class TestCoreFunctions:
    """Null-safe access and predicates."""

    def test_get_with_default(self):
        assert get_func({"city": "Oslo"}, "city") == "Oslo"
        assert get_func({"city": None}, "city", "-") == "-"
        assert get_func(None, "city", "") == ""
        assert get_func([1, 2], 5, 0) == 0

    def test_coalesce(self):
        assert coalesce_func(None, None, "x") == "x"
        assert coalesce_func(None) is None
        assert coalesce_func(0, 1) == 0

    @pytest.mark.parametrize("value, expected", [
        (None, True), ("  ", True), ([], True), ({}, True), (0, False), (False, False), ("a", False),
    ])
    def test_is_empty(self, value, expected):
        assert is_empty_func(value) is expected

    def test_between(self):
        assert between_func(5, 1, 10) is True
        assert between_func(None, 1, 10) is False

    def test_one_of_requires_a_list(self):
        assert one_of_func("US", ["US", "CA"]) is True
        with pytest.raises(TypeError):
            one_of_func("US", "US")

    def test_contains_is_null_safe(self):
        assert contains_func("hello", "ell") is True
        assert contains_func(None, "x") is False


class TestMathFunctions:
    """Aggregates and rounding."""

    def test_sum_and_avg_skip_nulls(self):
        assert sum_func([1, None, 2]) == 3
        assert avg_func([2, None, 4]) == 3
        assert avg_func([]) is None

    def test_round_half_away_from_zero(self):
        assert round_func(2.5) == 3
        assert round_func(-2.5) == -3
        assert round_func(1.234, 2) == 1.23
        assert round_func(None) is None

    def test_clamp(self):
        assert clamp_func(15, 0, 10) == 10
        assert clamp_func(-1, 0, 10) == 0


class TestStringFunctions:
    """Formatting helpers."""

    def test_join_renders_js_style(self):
        assert join_func([1, True, None], "-") == "1-true-"

    def test_pad_left(self):
        assert pad_left_func("42", 5, "0") == "00042"
        with pytest.raises(ValueError):
            pad_left_func("42", 5, "00")

    def test_truncate(self):
        assert truncate_func("abcdefgh", 5) == "ab..."
        assert truncate_func("abc", 5) == "abc"

    def test_format(self):
        assert format_func("{0} {1}", "Ada", "Lovelace") == "Ada Lovelace"


class TestCollectionFunctions:
    """Row and option helpers."""

    def test_to_options_from_scalars(self):
        assert to_options_func(["a", "b"]) == [{"value": "a", "label": "a"}, {"value": "b", "label": "b"}]

    def test_to_options_from_rows(self):
        rows = [{"code": "NO", "name": "Norway"}, {"code": "SE"}]
        assert to_options_func(rows, "code", "name") == [
            {"value": "NO", "label": "Norway"},
            {"value": "SE", "label": "SE"},
        ]

    def test_pluck(self):
        assert pluck_func([{"id": 1}, {"id": 2}, "x"], "id") == [1, 2, None]

    def test_unique_keeps_order(self):
        assert unique_func([3, 1, 3, 2, 1]) == [3, 1, 2]
