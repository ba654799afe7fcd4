import math

import pytest

from formula_tags.errors import ExpressionError
from formula_tags.expression import (
    Lexer,
    evaluate_expression,
    is_expression,
    numeric_contribution,
)


def test_lex_numbers_operators_and_parentheses():
    toks = Lexer("(12 + 3.5) * 2").tokenize()
    assert [t.type for t in toks] == [
        'LPAREN', 'NUMBER', 'OP', 'NUMBER', 'RPAREN', 'OP', 'NUMBER', 'EOF'
    ]
    assert toks[1].value == 12 and isinstance(toks[1].value, int)
    assert toks[3].value == 3.5
    assert toks[0].pos == 0 and toks[-1].pos == len("(12 + 3.5) * 2")


def test_lex_invalid_character_raises():
    with pytest.raises(ExpressionError):
        Lexer("1 % 2").tokenize()


def test_lex_lone_dot_raises():
    with pytest.raises(ExpressionError):
        Lexer("1 + .").tokenize()


def test_expression_uses_sequential_algebra():
    assert evaluate_expression("2 + 3 * 4") == 20


def test_expression_parentheses_and_leading_sign():
    assert evaluate_expression("10 - (2 + 3)") == 5
    assert evaluate_expression("-4 + 1") == -3
    assert evaluate_expression("2 * (-3)") == -6


def test_expression_division_by_zero_returns_dividend():
    assert evaluate_expression("8 / 0") == 8


@pytest.mark.parametrize("text", [
    "",
    "2 +",
    "(1 + 2",
    "1 + 2)",
    "1 2",
    "()",
    "2 * -3",
    "1.2.3",
])
def test_malformed_expressions_raise(text):
    with pytest.raises(ExpressionError):
        evaluate_expression(text)


def test_is_expression_character_set():
    assert is_expression("3 * (4 + 1)")
    assert is_expression("1.5")
    assert not is_expression("max(1, 2)")
    assert not is_expression("")


def test_contribution_of_numbers_and_numeric_strings():
    assert numeric_contribution(42) == 42
    assert numeric_contribution(2.0) == 2
    assert numeric_contribution("42") == 42
    assert numeric_contribution("1.25") == 1.25


def test_contribution_normalizes_x_as_multiplication():
    assert numeric_contribution("3x4") == 12
    assert numeric_contribution("2 x (1 + 4)") == 10


def test_contribution_missing_value_is_zero():
    assert numeric_contribution(None) == 0
    assert numeric_contribution("") == 0


def test_contribution_non_numeric_is_nan():
    assert math.isnan(numeric_contribution("pi"))
    assert math.isnan(numeric_contribution("max(1, 2)"))


def test_contribution_malformed_expression_falls_back_to_number_reading():
    assert math.isnan(numeric_contribution("1 +"))
    # whitespace-only reads as 0, as a plain numeric reading would
    assert numeric_contribution("   ") == 0


def test_lex_overlong_integer_raises():
    with pytest.raises(ExpressionError):
        Lexer("9" * 5000).tokenize()


def test_lex_large_integer_is_carried_as_float():
    (tok, _) = Lexer("1" + "0" * 30).tokenize()
    assert tok.value == 1e30 and isinstance(tok.value, float)


def test_contribution_of_out_of_range_values():
    assert numeric_contribution("1e400") == math.inf
    assert numeric_contribution("9" * 5000) == math.inf
    assert numeric_contribution(10 ** 400) == math.inf
    assert numeric_contribution("10 x 1" + "0" * 400) == math.inf
