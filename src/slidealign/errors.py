"""Exceptions raised while estimating or editing transforms."""


class AlignmentError(Exception):
    """Base class for slidealign errors."""


class ArgumentError(AlignmentError, ValueError):
    """Invalid or mismatched inputs, e.g. point sets of different sizes."""


class ConvergenceError(AlignmentError, RuntimeError):
    """The iterative optimizer stopped without reaching its tolerance."""


class DegenerateResultError(AlignmentError, RuntimeError):
    """A fitted matrix is missing, non-finite or singular."""


class NonInvertibleError(AlignmentError, ArithmeticError):
    """Inversion of a singular transform was requested."""
