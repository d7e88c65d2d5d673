"""
Error taxonomy shared by the isotonic and calibration fitters.

InvalidInputError is raised before any problem is built. The two solver
errors are raised after a solve attempt and carry the solver name and the
status cvxpy reported.
"""

from typing import Optional


class ConvexFitError(Exception):
    """Base class for every error raised by convexfit."""


class InvalidInputError(ConvexFitError, ValueError):
    """Malformed or mismatched input; no problem was built."""


class _SolveError(ConvexFitError, RuntimeError):
    def __init__(self, message: str, solver: Optional[str] = None, status: Optional[str] = None):
        super().__init__(message)
        self.solver = solver
        self.status = status


class InfeasibleProblemError(_SolveError):
    """The constraint set admits no solution."""


class SolverFailureError(_SolveError):
    """The solver errored, was unavailable, or stopped without an optimum."""
