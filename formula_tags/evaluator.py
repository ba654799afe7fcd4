"""
Sequential evaluator.

Reduces an ordered tag sequence to a single number. All four operators have
equal strength and associate strictly left to right within a nesting level,
so ``2 + 3 * 4`` evaluates to ``(2 + 3) * 4 == 20``. Parentheses open a new
nesting level on a value stack.
"""

from typing import List, Sequence

from .tags import Number, Tag, TagType, fit_double, normalize_number, read_number


def combine(a: Number, b: Number, op: str) -> Number:
    """
    Binary reducer for ``+ - * /``. Division by zero returns the dividend.

    Operands and results follow double precision: integers past 2**53 are
    carried as floats, so overflow yields infinity instead of raising.
    """
    a, b = fit_double(a), fit_double(b)
    if op == "+":
        return fit_double(a + b)
    if op == "-":
        return fit_double(a - b)
    if op == "*":
        return fit_double(a * b)
    if op == "/":
        return normalize_number(a / b) if b != 0 else a
    return b


def _pop(stack: List, default):
    return stack.pop() if stack else default


def _tag_value(tag: Tag):
    """Numeric contribution of a tag, or None if it carries none."""
    if tag.type is TagType.NUMBER:
        return tag.value if tag.value is not None else read_number(tag.text)
    return tag.value


def evaluate(tags: Sequence[Tag]) -> Number:
    """
    Evaluate a tag sequence.

    Args:
        tags: Tags in formula order

    Returns:
        The reduced value; 0 for an empty sequence or one holding only
        operators and parentheses. A trailing operator is ignored.
    """
    if not tags or all(not tag.is_value_bearing for tag in tags):
        return 0

    if tags[-1].is_operand:
        tags = tags[:-1]

    stack: List[Number] = [0]
    op_stack: List[str] = ["+"]
    current_op = "+"

    for tag in tags:
        if tag.is_operand:
            current_op = tag.text
        elif tag.is_parenthesis:
            if tag.text == "(":
                stack.append(0)
                op_stack.append(current_op)
                current_op = "+"
            elif tag.text == ")":
                inner = _pop(stack, 0)
                op = _pop(op_stack, "+")
                outer = _pop(stack, 0)
                stack.append(combine(outer, inner, op))
        else:
            value = _tag_value(tag)
            if value is None:
                continue
            top = _pop(stack, 0)
            stack.append(combine(top, value, current_op))

    return stack[0] if stack else 0
