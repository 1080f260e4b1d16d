"""
Unit tests for the JavaScript semantics used by compiled form scripts.
"""

import math

import pytest

from formx.core.errors import ExpressionRuntimeError
from formx.lib.runtime import script_runtime as rt


class TestCoercion:
    """to_number / to_str / truthy."""

    @pytest.mark.parametrize("value, expected", [
        ("42", 42),
        (" 3.5 ", 3.5),
        ("", 0),
        (True, 1),
        ([], 0),
        (["7"], 7),
    ])
    def test_to_number(self, value, expected):
        assert rt.to_number(value) == expected

    def test_to_number_nan(self):
        assert math.isnan(rt.to_number("abc"))
        assert math.isnan(rt.to_number(None))
        assert math.isnan(rt.to_number({}))

    @pytest.mark.parametrize("value, expected", [
        (None, "undefined"),
        (True, "true"),
        (2.0, "2"),
        (0.5, "0.5"),
        ([1, None, "a"], "1,,a"),
        ({"a": 1}, "[object Object]"),
        (float("inf"), "Infinity"),
    ])
    def test_to_str(self, value, expected):
        assert rt.to_str(value) == expected

    @pytest.mark.parametrize("value", [0, "", None, False, float("nan")])
    def test_falsy(self, value):
        assert rt.truthy(value) is False

    @pytest.mark.parametrize("value", [[], {}, "0", -1, "false"])
    def test_truthy(self, value):
        assert rt.truthy(value) is True

    def test_typeof(self):
        assert rt.typeof(None) == "undefined"
        assert rt.typeof(1.5) == "number"
        assert rt.typeof(True) == "boolean"
        assert rt.typeof([]) == "object"
        assert rt.typeof(len) == "function"


class TestOperators:
    """Arithmetic and comparison operators."""

    def test_add_numbers_and_strings(self):
        assert rt.add(1, 2) == 3
        assert rt.add("a", 1) == "a1"
        assert rt.add(None, 1) != rt.add(None, 1)  # NaN
        assert rt.add([1, 2], "x") == "1,2x"

    def test_integral_results_are_ints(self):
        assert rt.mul(2.5, 2) == 5
        assert isinstance(rt.mul(2.5, 2), int)

    def test_division_by_zero(self):
        assert rt.div(1, 0) == float("inf")
        assert rt.div(-1, 0) == float("-inf")
        assert math.isnan(rt.div(0, 0))

    def test_mod_uses_dividend_sign(self):
        assert rt.mod(-7, 3) == -1

    def test_strict_equality(self):
        assert rt.strict_eq(1, 1.0)
        assert not rt.strict_eq(1, "1")
        assert not rt.strict_eq(1, True)
        assert rt.strict_eq(None, None)

    def test_loose_equality(self):
        assert rt.loose_eq("1", 1)
        assert rt.loose_eq(True, 1)
        assert not rt.loose_eq(None, 0)
        assert rt.loose_eq([1], "1")

    def test_string_comparison_is_lexicographic(self):
        assert rt.lt("apple", "banana")
        assert rt.gt("10", 9)

    def test_template(self):
        assert rt.template("a", 1, "-", None) == "a1-undefined"


class TestMemberAccess:
    """Property reads and method lookups."""

    def test_dict_member(self):
        assert rt.member({"a": 1}, "a") == 1
        assert rt.member({"a": 1}, "b") is None

    def test_undefined_member_raises(self):
        with pytest.raises(ExpressionRuntimeError, match="reading 'x'"):
            rt.member(None, "x")

    def test_optional_member(self):
        assert rt.member(None, "x", True) is None

    def test_array_index_and_length(self):
        assert rt.member([5, 6], 1) == 6
        assert rt.member([5, 6], "0") == 5
        assert rt.member([5, 6], 9) is None
        assert rt.member("abc", "length") == 3

    def test_set_member_extends_arrays(self):
        arr = []
        rt.set_member(arr, 2, "x")
        assert arr == [None, None, "x"]

    def test_invoke_missing_method(self):
        with pytest.raises(ExpressionRuntimeError, match="is not a function"):
            rt.invoke({"a": 1}, "nope", False)

    def test_has_own_property(self):
        assert rt.invoke({"a": 1}, "hasOwnProperty", False, "a") is True

    def test_to_fixed(self):
        assert rt.invoke(1.25, "toFixed", False, 1) == "1.3"
        assert rt.invoke(3, "toFixed", False, 2) == "3.00"

    def test_repeat_is_bounded(self):
        with pytest.raises(ExpressionRuntimeError):
            rt.invoke("ab", "repeat", False, 10_000_000)

    def test_iterate_rejects_non_iterables(self):
        with pytest.raises(ExpressionRuntimeError, match="not iterable"):
            rt.iterate(5)


class TestGlobals:
    """Script-visible globals."""

    def test_unknown_global(self):
        with pytest.raises(ExpressionRuntimeError, match="foo is not defined"):
            rt.glob("foo")
        assert rt.glob("foo", strict=False) is None

    def test_registry_functions_are_globals(self):
        assert rt.glob("upper")("a") == "A"

    def test_math_round_half_up(self):
        math_obj = rt.glob("Math")
        assert rt.invoke(math_obj, "round", False, 2.5) == 3
        assert rt.invoke(math_obj, "round", False, -2.5) == -2

    def test_parse_float_prefix(self):
        assert rt.parse_float("3.25abc") == 3.25
        assert math.isnan(rt.parse_float("abc"))
