"""Exception hierarchy for the formula editor."""


class FormulaError(Exception):
    """Base class for formula editor errors."""
    pass


class ExpressionError(FormulaError):
    """Raised when a suggestion value is not a well-formed arithmetic expression."""
    pass


class ConfigurationError(FormulaError):
    """Raised when a required setting (e.g. the suggestion endpoint) is missing."""
    pass
