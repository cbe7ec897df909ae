"""Exceptions raised while composing check scripts.

Violations found in the database never raise: they are reported through
outcome tokens by the generated procedure. These exceptions signal defects in
the composition itself.
"""


class CompositionError(ValueError):
    """Raised when fragments cannot be combined into one procedure."""


class PreconditionError(CompositionError):
    """Raised when a fragment's precondition is missing or ordered after it."""
