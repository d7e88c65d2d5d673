from .errors import (
    ConvexFitError,
    InfeasibleProblemError,
    InvalidInputError,
    SolverFailureError,
)
from .solver import default_solver, solve_problem

__all__ = [
    "ConvexFitError",
    "InfeasibleProblemError",
    "InvalidInputError",
    "SolverFailureError",
    "default_solver",
    "solve_problem",
]
