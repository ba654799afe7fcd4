"""
Tag model.

A formula is an ordered sequence of tags. Each tag is one completed token:
a typed number, an operator, a parenthesis, or a picked suggestion
(function or variable). Tags are immutable; edits produce new tags.
"""

import math
import re
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

Number = Union[int, float]

OPERANDS = ("+", "-", "*", "/")
PARENTHESES = ("(", ")")

# JavaScript-style numeric literal: optional sign, digits with an optional
# fraction (or a bare fraction) and an optional exponent.
_NUMERIC_LITERAL = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")

# Floats beyond this magnitude are not converted back to int.
_MAX_SAFE_INTEGER = 2 ** 53


class TagType(str, Enum):
    """Kinds of tags that may appear in a formula."""
    OPERAND = "operand"
    NUMBER = "number"
    FUNCTION = "function"
    VARIABLE = "variable"
    PARENTHESIS = "parenthesis"


@dataclass(frozen=True)
class Tag:
    """A single typed token of the formula."""
    id: str
    text: str
    type: TagType
    value: Optional[Number] = None
    base_value: Optional[Number] = None
    source_id: Optional[str] = None

    @property
    def is_operand(self) -> bool:
        return self.type is TagType.OPERAND

    @property
    def is_parenthesis(self) -> bool:
        return self.type is TagType.PARENTHESIS

    @property
    def is_value_bearing(self) -> bool:
        """Numbers, functions and variables contribute a value; operators and parentheses don't."""
        return not (self.is_operand or self.is_parenthesis)


def new_tag_id() -> str:
    """Return a fresh tag id. Ids are never reused."""
    return uuid.uuid4().hex


def operand_tag(symbol: str) -> Tag:
    return Tag(id=new_tag_id(), text=symbol, type=TagType.OPERAND)


def parenthesis_tag(symbol: str) -> Tag:
    return Tag(id=new_tag_id(), text=symbol, type=TagType.PARENTHESIS)


def number_tag(value: Number) -> Tag:
    """Number tag whose display text is the formatted value."""
    return Tag(
        id=new_tag_id(),
        text=format_number(value),
        type=TagType.NUMBER,
        value=value,
        base_value=value,
    )


def normalize_number(value: Number) -> Number:
    """Collapse integral floats to int so that 8.0 reads and prints as 8."""
    if isinstance(value, float) and math.isfinite(value) and value.is_integer():
        if abs(value) <= _MAX_SAFE_INTEGER:
            return int(value)
    return value


def fit_double(value: Number) -> Number:
    """
    Bring an int outside the exactly representable range onto the float scale.

    Formula arithmetic follows IEEE doubles: integers beyond 2**53 become
    floats, and those too large for a float become infinity.
    """
    if isinstance(value, int) and not isinstance(value, bool) and abs(value) > _MAX_SAFE_INTEGER:
        try:
            return float(value)
        except OverflowError:
            return math.inf if value > 0 else -math.inf
    return value


def read_digits(text: str) -> Number:
    """Value of a string of decimal digits, on the same scale as ``fit_double``."""
    try:
        return fit_double(int(text))
    except ValueError:
        # int() refuses digit strings past the conversion limit
        return normalize_number(float(text))


def read_number(text: str) -> Number:
    """
    Numeric reading of a display string.

    Surrounding whitespace is ignored and an empty string reads as 0.
    Anything that is not a numeric literal reads as NaN, which then
    propagates through arithmetic instead of raising.
    """
    stripped = text.strip()
    if stripped == "":
        return 0
    if not _NUMERIC_LITERAL.match(stripped):
        return math.nan
    try:
        return fit_double(int(stripped))
    except ValueError:
        return normalize_number(float(stripped))


def format_number(value: Number) -> str:
    """Display text for a number."""
    value = normalize_number(value)
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
    return str(value)
