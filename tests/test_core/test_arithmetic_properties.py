"""
演算子のプロパティベーステスト（Hypothesis）

パーサー経由で評価した式の結果が apply_binary および Python での
期待値と一致することを検証する。
"""

from __future__ import annotations

import asyncio
import math

from hypothesis import given, settings
from hypothesis import strategies as st

from pagescript.core.environment import Environment
from pagescript.core.evaluator import Evaluator, apply_binary
from pagescript.core.parser import parse_program
from pagescript.core.values import loose_equals, strict_equals, to_string


# ---------------------------------------------------------------------------
# ストラテジー
# ---------------------------------------------------------------------------

small_ints = st.integers(min_value=-10_000, max_value=10_000)
safe_text = st.text(alphabet=st.characters(whitelist_categories=("Ll", "Lu", "Nd")), max_size=12)


def _evaluate(source: str, **bindings):
    async def run():
        evaluator = Evaluator()
        env = Environment()
        for name, value in bindings.items():
            env.define(name, value)
        return await evaluator.run(parse_program(source), env)

    return asyncio.run(run())


# ---------------------------------------------------------------------------
# プロパティ
# ---------------------------------------------------------------------------

class TestArithmeticProperties:
    """整数演算が期待どおりの値になることのプロパティ。"""

    @given(a=small_ints, b=small_ints, c=small_ints)
    @settings(max_examples=50, deadline=None)
    def test_precedence_matches_python(self, a, b, c):
        assert _evaluate("a + b * c - a;", a=a, b=b, c=c) == a + b * c - a

    @given(a=small_ints, b=small_ints)
    @settings(max_examples=50, deadline=None)
    def test_evaluated_operator_matches_apply_binary(self, a, b):
        for operator in ("+", "-", "*", "<", "===", "&", "|", "^"):
            expected = apply_binary(operator, a, b)
            assert _evaluate(f"a {operator} b;", a=a, b=b) == expected

    @given(a=small_ints, b=small_ints.filter(lambda n: n != 0))
    def test_remainder_has_sign_of_dividend(self, a, b):
        result = apply_binary("%", a, b)
        assert abs(result) < abs(b)
        assert result == 0 or (result > 0) == (a > 0)
        assert math.trunc(a / b) * b + result == a

    @given(text=safe_text, number=small_ints)
    def test_string_plus_number_concatenates(self, text, number):
        assert apply_binary("+", text, number) == text + str(number)
        assert apply_binary("+", number, text) == str(number) + text

    @given(a=small_ints, b=small_ints)
    def test_integer_results_stay_int(self, a, b):
        assert isinstance(apply_binary("*", a, b), int)
        if b != 0 and a % b == 0:
            assert isinstance(apply_binary("/", a, b), int)


class TestEqualityProperties:
    """等価演算子のプロパティ。"""

    @given(value=st.one_of(small_ints, safe_text, st.booleans(), st.none()))
    def test_strict_equality_is_reflexive(self, value):
        assert strict_equals(value, value)
        assert loose_equals(value, value)

    @given(number=small_ints)
    def test_loose_equality_with_numeric_string(self, number):
        assert loose_equals(number, to_string(number))
        assert not strict_equals(number, to_string(number))
