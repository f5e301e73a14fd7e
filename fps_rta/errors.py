"""Exception types raised by the analysis engine.

Unschedulability is not an error: it is reported as a result value
(:class:`fps_rta.solver.Unschedulable`). The exceptions below signal bad input
or a defect in the engine itself.
"""


class AnalysisError(Exception):
    """Base class for all errors raised by fps_rta."""


class InvalidParameters(AnalysisError, ValueError):
    """Raised when a task, server or system violates its parameter constraints.

    Detected eagerly, before any curve is constructed.
    """


class HorizonOverflow(AnalysisError, OverflowError):
    """Raised when the hyperperiod of a system exceeds the configured maximum."""


class InternalInvariantViolation(AnalysisError, RuntimeError):
    """Raised when a curve breaks its ordering/monotonicity invariant.

    This indicates a bug in curve construction and is never recovered from.
    """
