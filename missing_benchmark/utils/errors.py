"""Exception types raised by the simulation components.

``InvalidArgument`` and ``ShapeMismatch`` signal caller mistakes and are
fatal to the call that raised them. ``NumericalInstability`` and
``DegenerateInput`` depend on the random draw and are skipped by the driver
for a single repetition. ``LearnerFailure`` is converted by the driver into a
sentinel record.
"""


class BenchmarkError(Exception):
    """Base class for all errors raised by this package."""


class InvalidArgument(BenchmarkError, ValueError):
    pass


class ShapeMismatch(BenchmarkError, ValueError):
    pass


class NumericalInstability(BenchmarkError, ArithmeticError):
    pass


class DegenerateInput(BenchmarkError, ValueError):
    pass


class LearnerFailure(BenchmarkError, RuntimeError):
    pass
