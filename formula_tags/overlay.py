"""Multiplier overlay: scale a tag's contribution relative to its base value."""

from dataclasses import replace

from .tags import Number, Tag, TagType, fit_double, normalize_number, read_number

# Multipliers offered when a value-bearing tag is selected.
MULTIPLIERS = (1, 3, 5)


def apply_multiplier(tag: Tag, multiplier: Number) -> Tag:
    """
    Return a copy of ``tag`` whose value is ``base * multiplier``.

    Number tags always take their base from the literal text. Other tags
    keep the value they had before the first overlay in ``base_value``, so
    applying x3 and then x5 yields x5 of the original, not x15. Tags without
    a value are returned unchanged.
    """
    if tag.type is TagType.NUMBER:
        return replace(tag, value=fit_double(normalize_number(read_number(tag.text) * multiplier)))
    if tag.value is None:
        return tag
    base = tag.base_value if tag.base_value is not None else tag.value
    return replace(tag, base_value=base, value=fit_double(normalize_number(base * multiplier)))
