"""
Restricted arithmetic interpreter for suggestion values.

Suggestion values may be plain numbers ("42") or small expressions such as
"3 x 4" or "(10 + 5) / 3". Expressions are tokenized into number, operator
and parenthesis tags and reduced by the same sequential algebra as the
formula itself, so no general code evaluation is ever involved.

Grammar (whitespace ignored):

    expr   := sign? term (op term)*
    term   := NUMBER | '(' expr ')'
    op     := '+' | '-' | '*' | '/'

A leading sign is accepted only at the start of the expression or right
after '('. Everything else that does not fit raises ExpressionError.
"""

import re
from dataclasses import dataclass
from typing import List, Union

from .errors import ExpressionError
from .evaluator import evaluate
from .tags import (
    Number,
    Tag,
    fit_double,
    normalize_number,
    number_tag,
    operand_tag,
    parenthesis_tag,
    read_number,
)

# Characters a value may consist of to be treated as an expression.
_EXPRESSION_CHARS = re.compile(r"^[\d\s+\-*/().]+$")

# Alternate multiplication marker accepted in suggestion values.
_ALT_MULTIPLY = "x"


@dataclass
class Token:
    """Represents a token with type, value, and character position."""
    type: str
    value: Union[int, float, str, None]
    pos: int

    def __repr__(self) -> str:
        return f"Token({self.type}, {self.value!r}, pos={self.pos})"


class Lexer:
    """Tokenizer for suggestion expressions.

    Produces tokens: NUMBER, OP, LPAREN, RPAREN, EOF.
    """

    def __init__(self, text: str):
        self.text = text
        self.pos = 0
        self.len = len(text)

    def _peek(self, n: int = 0) -> str:
        i = self.pos + n
        return self.text[i] if i < self.len else ''

    def _advance(self, n: int = 1) -> None:
        self.pos += n

    def _skip_whitespace(self) -> None:
        while self._peek() and self._peek().isspace():
            self._advance()

    def _read_number(self) -> Token:
        start = self.pos
        has_dot = False
        while True:
            ch = self._peek()
            if ch.isdigit():
                self._advance()
            elif ch == '.' and not has_dot:
                has_dot = True
                self._advance()
            else:
                break
        raw = self.text[start:self.pos]
        try:
            if has_dot:
                val: Union[int, float] = normalize_number(float(raw))
            else:
                val = fit_double(int(raw))
        except ValueError:
            raise ExpressionError(f"Invalid numeric literal at pos {start}: {raw}")
        return Token('NUMBER', val, start)

    def tokenize(self) -> List[Token]:
        tokens: List[Token] = []
        while True:
            self._skip_whitespace()
            ch = self._peek()
            if ch == '':
                break
            if ch.isdigit() or ch == '.':
                tokens.append(self._read_number())
            elif ch == '(':
                tokens.append(Token('LPAREN', ch, self.pos))
                self._advance()
            elif ch == ')':
                tokens.append(Token('RPAREN', ch, self.pos))
                self._advance()
            elif ch in '+-*/':
                tokens.append(Token('OP', ch, self.pos))
                self._advance()
            else:
                raise ExpressionError(f"Unknown character at pos {self.pos}: {ch!r}")
        tokens.append(Token('EOF', None, self.pos))
        return tokens


def _to_tags(tokens: List[Token]) -> List[Tag]:
    """Check the token stream against the grammar and convert it to tags."""
    tags: List[Tag] = []
    depth = 0
    expect_term = True
    # A sign is allowed at the very start and right after '('.
    sign_allowed = True

    for tok in tokens:
        if tok.type == 'EOF':
            break
        if expect_term:
            if tok.type == 'NUMBER':
                tags.append(number_tag(tok.value))
                expect_term = False
            elif tok.type == 'LPAREN':
                tags.append(parenthesis_tag('('))
                depth += 1
                sign_allowed = True
                continue
            elif tok.type == 'OP' and tok.value in '+-' and sign_allowed:
                tags.append(operand_tag(tok.value))
            else:
                raise ExpressionError(f"Unexpected {tok.value!r} at pos {tok.pos}")
        else:
            if tok.type == 'OP':
                tags.append(operand_tag(tok.value))
                expect_term = True
            elif tok.type == 'RPAREN':
                if depth == 0:
                    raise ExpressionError(f"Unbalanced ')' at pos {tok.pos}")
                tags.append(parenthesis_tag(')'))
                depth -= 1
            else:
                raise ExpressionError(f"Unexpected {tok.value!r} at pos {tok.pos}")
        sign_allowed = False

    if expect_term:
        raise ExpressionError("Expression ends without a value")
    if depth != 0:
        raise ExpressionError("Unbalanced '('")
    return tags


def evaluate_expression(text: str) -> Number:
    """
    Evaluate a restricted arithmetic expression.

    Raises:
        ExpressionError: if the text is not a well-formed expression
    """
    tags = _to_tags(Lexer(text).tokenize())
    return evaluate(tags)


def is_expression(text: str) -> bool:
    """True if the text only holds digits, whitespace, '.', operators and parentheses."""
    return bool(_EXPRESSION_CHARS.match(text))


def numeric_contribution(value: Union[int, float, str, None]) -> Number:
    """
    Numeric contribution of a suggestion value.

    'x' is read as multiplication. Values made only of arithmetic
    characters are evaluated as an expression; anything else, or a
    malformed expression, falls back to a plain numeric reading, which
    yields NaN for non-numeric text.
    """
    if value is None or value == "":
        return 0
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return fit_double(normalize_number(value))

    raw = str(value)
    sanitized = raw.replace(_ALT_MULTIPLY, "*")
    if not is_expression(sanitized):
        return read_number(raw)
    try:
        return evaluate_expression(sanitized)
    except ExpressionError:
        return read_number(raw)
