"""
値モデルテスト: 型変換・等価判定・JSON 整形
"""

from __future__ import annotations

import math

import pytest

from pagescript.core.values import (
    UNDEFINED,
    Closure,
    ErrorObject,
    NativeFunction,
    Undefined,
    format_log_args,
    guest_error_value,
    is_callable,
    is_truthy,
    json_stringify,
    loose_equals,
    normalize_number,
    strict_equals,
    to_int32,
    to_number,
    to_string,
    type_of,
)
from pagescript.errors import GuestThrow, ReferenceFailure


class TestUndefined:
    def test_singleton(self):
        assert Undefined() is UNDEFINED

    def test_falsy_and_repr(self):
        assert not UNDEFINED
        assert repr(UNDEFINED) == "undefined"


class TestConversions:
    """to_number / to_string / is_truthy のテスト。"""

    @pytest.mark.parametrize(
        "value, expected",
        [
            (True, 1),
            (None, 0),
            ("  12 ", 12),
            ("", 0),
            ("0x1F", 31),
            ("2.5", 2.5),
            ([], 0),
            (["7"], 7),
        ],
    )
    def test_to_number(self, value, expected):
        assert to_number(value) == expected

    @pytest.mark.parametrize("value", [UNDEFINED, "abc", {}, [1, 2]])
    def test_to_number_nan(self, value):
        assert math.isnan(to_number(value))

    @pytest.mark.parametrize(
        "value, expected",
        [
            (UNDEFINED, "undefined"),
            (None, "null"),
            (True, "true"),
            (3, "3"),
            (3.0, "3"),
            (1.5, "1.5"),
            (math.nan, "NaN"),
            (-math.inf, "-Infinity"),
            ([1, None, "a"], "1,,a"),
            ({"a": 1}, "[object Object]"),
            (ErrorObject("boom", "TypeError"), "TypeError: boom"),
        ],
    )
    def test_to_string(self, value, expected):
        assert to_string(value) == expected

    @pytest.mark.parametrize("value", [0, "", None, UNDEFINED, math.nan, False])
    def test_falsy_values(self, value):
        assert is_truthy(value) is False

    @pytest.mark.parametrize("value", [1, "0", [], {}, -1.5])
    def test_truthy_values(self, value):
        assert is_truthy(value) is True

    def test_normalize_number(self):
        assert normalize_number(4.0) == 4
        assert isinstance(normalize_number(4.0), int)
        assert normalize_number(0.25) == 0.25

    def test_to_int32_wraps(self):
        assert to_int32(2 ** 31) == -(2 ** 31)
        assert to_int32(math.nan) == 0


class TestTypeAndEquality:
    """typeof と等価演算子のテスト。"""

    @pytest.mark.parametrize(
        "value, expected",
        [
            (UNDEFINED, "undefined"),
            (None, "object"),
            (False, "boolean"),
            (1, "number"),
            ("s", "string"),
            ([], "object"),
            (NativeFunction("f", lambda: None), "function"),
        ],
    )
    def test_type_of(self, value, expected):
        assert type_of(value) == expected

    def test_strict_equals_distinguishes_types(self):
        assert strict_equals(1, 1.0)
        assert not strict_equals(1, "1")
        assert not strict_equals(True, 1)
        assert not strict_equals(None, UNDEFINED)
        assert not strict_equals(math.nan, math.nan)

    def test_strict_equals_objects_by_identity(self):
        obj = {"a": 1}
        assert strict_equals(obj, obj)
        assert not strict_equals(obj, {"a": 1})

    def test_loose_equals_converts(self):
        assert loose_equals(None, UNDEFINED)
        assert loose_equals("1", 1)
        assert loose_equals(True, 1)
        assert not loose_equals(None, 0)

    def test_is_callable(self):
        assert is_callable(print)
        assert not is_callable({"call": 1})
        assert not is_callable(dict)


class TestJson:
    """json_stringify / format_log_args のテスト。"""

    def test_stringify_compact(self):
        assert json_stringify({"a": 1, "b": [True, None]}) == '{"a":1,"b":[true,null]}'

    def test_stringify_skips_undefined_members(self):
        assert json_stringify({"a": UNDEFINED, "b": 2}) == '{"b":2}'
        assert json_stringify([UNDEFINED]) == "[null]"
        assert json_stringify(UNDEFINED) is UNDEFINED

    def test_stringify_non_finite_as_null(self):
        assert json_stringify([math.nan, math.inf]) == "[null,null]"

    def test_stringify_indent(self):
        assert json_stringify({"a": 1}, 2) == '{\n  "a": 1\n}'

    def test_stringify_keeps_unicode(self):
        assert json_stringify("ログイン") == '"ログイン"'

    def test_format_log_args(self):
        assert format_log_args(("count", 2, {"ok": True}, None)) == 'count 2 {"ok":true} null'

    def test_format_log_args_error(self):
        assert format_log_args([ErrorObject("bad")]) == "Error: bad"


class TestGuestErrorValue:
    """catch 句に束縛する値のテスト。"""

    def test_thrown_value_is_returned_as_is(self):
        assert guest_error_value(GuestThrow(42)) == 42

    def test_interpreter_error_has_guest_name(self):
        value = guest_error_value(ReferenceFailure("x"))
        assert isinstance(value, ErrorObject)
        assert value.name == "ReferenceError"
        assert value.message == "x is not defined"

    def test_host_error_becomes_error(self):
        value = guest_error_value(RuntimeError("click failed"))
        assert value == {"name": "Error", "message": "click failed"}

    def test_host_error_without_message_uses_type_name(self):
        assert guest_error_value(TimeoutError()).message == "TimeoutError"


def test_closure_repr():
    closure = Closure(params=(), body=None, env=None, name="helper")  # type: ignore[arg-type]
    assert repr(closure) == "<Closure helper>"
