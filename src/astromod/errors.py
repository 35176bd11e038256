"""
Exception hierarchy for astromod.

Every exception derives from :class:`AstromodError` and from the builtin
exception a caller would already expect for the same situation, so code that
catches ``ValueError`` or ``RuntimeError`` keeps working.
"""


class AstromodError(Exception):
    """Base class for all astromod errors."""


class InvalidConfigurationError(AstromodError, ValueError):
    """A model was requested with an unusable configuration (e.g. N < 1)."""


class DimensionMismatchError(AstromodError, AssertionError):
    """State and equation counts disagree. Always a defect, never user input."""


class CompilationError(AstromodError, RuntimeError):
    """The numeric lowering step could not produce a callable."""


class UndefinedSymbolError(AstromodError, ValueError):
    """An equation references a symbol that the model does not declare."""
