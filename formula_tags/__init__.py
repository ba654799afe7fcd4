"""Build arithmetic formulas tag by tag and evaluate them left to right."""

from .classifier import Decision, classify_accept, classify_delete_backward, classify_input, classify_suggestion
from .editor import FormulaEditor
from .evaluator import combine, evaluate
from .overlay import MULTIPLIERS, apply_multiplier
from .store import FormulaSnapshot, TagStore
from .tags import Tag, TagType

__version__ = "1.0.0"
