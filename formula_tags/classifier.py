"""
Input classifier.

Turns raw input events into store commands. Every buffer change is matched
against an ordered decision table; the first rule whose condition holds
decides the outcome. A decision holds zero or more store commands and,
optionally, a new pending suggestion query.

Rules for a buffer change, in priority order:

    leading-minus-collapse  lone '-' tag + digits  -> replace with negative number
    pending-minus           '-' on empty formula    -> append '-'
    operand                 operator after a value  -> append operator
    operand-rejected        any other operator      -> nothing
    open-paren              '(' at start/after op   -> append '('
    close-paren             ')' after a value       -> append ')'
    parenthesis-rejected    any other parenthesis   -> nothing
    query                   anything else           -> pending buffer + query

A formula made of a single operator other than '-' (left behind by removing
the value before it) is pruned on any buffer change. The table still sees
the formula as it was before the prune.
"""

import logging
import math
import re
from dataclasses import dataclass, replace
from typing import Callable, Optional, Tuple

from .expression import numeric_contribution
from .store import (
    AppendTag,
    Command,
    FormulaSnapshot,
    RemoveTag,
    ReplaceTag,
    SetBuffer,
)
from .suggestions import Suggestion
from .tags import (
    OPERANDS,
    Number,
    Tag,
    TagType,
    fit_double,
    format_number,
    new_tag_id,
    normalize_number,
    number_tag,
    operand_tag,
    parenthesis_tag,
    read_digits,
)

logger = logging.getLogger(__name__)

_DIGITS = re.compile(r"^\d+$")
_POWER = re.compile(r"^(\d+)\^(\d+)$")

# Doubles top out just below 2**1024; larger powers overflow to infinity.
_MAX_POWER_BITS = 1024


@dataclass(frozen=True)
class Decision:
    """Outcome of classifying one input event."""
    commands: Tuple[Command, ...] = ()
    query: Optional[str] = None
    rule: str = "no-op"

    @property
    def is_noop(self) -> bool:
        return not self.commands and self.query is None


@dataclass(frozen=True)
class Rule:
    name: str
    applies: Callable[[str, FormulaSnapshot], bool]
    decide: Callable[[str, FormulaSnapshot], Decision]


def _commit(tag: Tag, rule: str) -> Decision:
    return Decision(commands=(AppendTag(tag), SetBuffer("")), rule=rule)


def _rejected(rule: str) -> Callable[[str, FormulaSnapshot], Decision]:
    return lambda text, snapshot: Decision(rule=rule)


# --------------------------
# Conditions
# --------------------------

def _is_pending_negative(text: str, snapshot: FormulaSnapshot) -> bool:
    tags = snapshot.tags
    return (
        len(tags) == 1
        and tags[0].is_operand
        and tags[0].text == "-"
        and bool(_DIGITS.match(text))
    )


def _is_leading_minus(text: str, snapshot: FormulaSnapshot) -> bool:
    return text == "-" and not snapshot.tags


def _is_operand_after_value(text: str, snapshot: FormulaSnapshot) -> bool:
    return text in OPERANDS and any(tag.is_value_bearing for tag in snapshot.tags)


def _is_operand(text: str, snapshot: FormulaSnapshot) -> bool:
    return text in OPERANDS


def _can_open(text: str, snapshot: FormulaSnapshot) -> bool:
    last = snapshot.last_tag
    return text == "(" and (last is None or last.is_operand)


def _can_close(text: str, snapshot: FormulaSnapshot) -> bool:
    last = snapshot.last_tag
    return text == ")" and last is not None and not last.is_operand


def _is_parenthesis(text: str, snapshot: FormulaSnapshot) -> bool:
    return text in ("(", ")")


# --------------------------
# Outcomes
# --------------------------

def _collapse_minus(text: str, snapshot: FormulaSnapshot) -> Decision:
    minus = snapshot.tags[0]
    negative = number_tag(-read_digits(text))
    return Decision(
        commands=(ReplaceTag(minus.id, negative), SetBuffer("")),
        rule="leading-minus-collapse",
    )


def _append_operand(text: str, snapshot: FormulaSnapshot) -> Decision:
    return _commit(operand_tag(text), "operand")


def _append_parenthesis(text: str, snapshot: FormulaSnapshot) -> Decision:
    return _commit(parenthesis_tag(text), "open-paren" if text == "(" else "close-paren")


def _query(text: str, snapshot: FormulaSnapshot) -> Decision:
    return Decision(commands=(SetBuffer(text),), query=text, rule="query")


INPUT_RULES: Tuple[Rule, ...] = (
    Rule("leading-minus-collapse", _is_pending_negative, _collapse_minus),
    Rule("pending-minus", _is_leading_minus,
         lambda text, snapshot: _commit(operand_tag(text), "pending-minus")),
    Rule("operand", _is_operand_after_value, _append_operand),
    Rule("operand-rejected", _is_operand, _rejected("operand-rejected")),
    Rule("open-paren", _can_open, _append_parenthesis),
    Rule("close-paren", _can_close, _append_parenthesis),
    Rule("parenthesis-rejected", _is_parenthesis, _rejected("parenthesis-rejected")),
    Rule("query", lambda text, snapshot: True, _query),
)


def _prune_stray_operand(snapshot: FormulaSnapshot) -> Tuple[Command, ...]:
    tags = snapshot.tags
    if len(tags) == 1 and tags[0].is_operand and tags[0].text != "-":
        logger.debug(f"Pruning stray leading operand {tags[0].text!r}")
        return (RemoveTag(tags[0].id),)
    return ()


def classify_input(text: str, snapshot: FormulaSnapshot) -> Decision:
    """
    Classify a buffer change.

    Args:
        text: The full current buffer
        snapshot: Store state before the change

    Returns:
        The decision of the first matching rule
    """
    pruned = _prune_stray_operand(snapshot)
    for rule in INPUT_RULES:
        if rule.applies(text, snapshot):
            decision = rule.decide(text, snapshot)
            logger.debug(f"Input {text!r} matched rule {rule.name}")
            if pruned:
                decision = replace(decision, commands=pruned + decision.commands)
            return decision
    return Decision(commands=pruned)


# --------------------------
# Key events and suggestions
# --------------------------

def _power(base: Number, exponent: Number) -> Number:
    if isinstance(base, int) and isinstance(exponent, int):
        if base in (0, 1) or exponent * math.log2(base) < _MAX_POWER_BITS:
            return fit_double(base ** exponent)
        return math.inf
    try:
        return float(base) ** exponent
    except OverflowError:
        return math.inf


def classify_accept(snapshot: FormulaSnapshot) -> Decision:
    """Commit the buffer: ``a^b`` and plain digits become number tags, anything else is ignored."""
    buffer = snapshot.buffer
    if buffer == "":
        return Decision()

    match = _POWER.match(buffer)
    if match:
        result = normalize_number(_power(read_digits(match.group(1)), read_digits(match.group(2))))
        decision = _commit(number_tag(result), "power")
        return replace(decision, query="")

    if _DIGITS.match(buffer):
        value = read_digits(buffer)
        tag = Tag(
            id=new_tag_id(),
            text=buffer,
            type=TagType.NUMBER,
            value=value,
            base_value=value,
        )
        return replace(_commit(tag, "number"), query="")

    logger.debug(f"Accept ignored for free text {buffer!r}")
    return Decision()


def classify_delete_backward(snapshot: FormulaSnapshot) -> Decision:
    """Delete-backward on an empty buffer removes the last tag."""
    if snapshot.buffer != "" or not snapshot.tags:
        return Decision()
    return Decision(commands=(RemoveTag(snapshot.tags[-1].id),), rule="delete-backward")


def classify_suggestion(suggestion: Suggestion, snapshot: FormulaSnapshot) -> Decision:
    """Accepting a suggestion appends a function or variable tag carrying its value."""
    value = numeric_contribution(suggestion.value)
    tag = Tag(
        id=new_tag_id(),
        text=suggestion.name,
        type=TagType.FUNCTION if suggestion.category == "function" else TagType.VARIABLE,
        value=value,
        base_value=value,
        source_id=suggestion.id,
    )
    logger.debug(f"Suggestion {suggestion.name!r} contributes {format_number(value)}")
    return Decision(commands=(AppendTag(tag), SetBuffer("")), query="", rule="suggestion")
