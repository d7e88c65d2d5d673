"""
Solver wrapper around cvxpy.

Every fitter in this package formulates a cvxpy Problem and hands it to
solve_problem(). The wrapper:
- picks the backend (Clarabel unless overridden per call or by the
  CONVEXFIT_SOLVER environment variable)
- runs exactly one solve, no fallback chain and no retry
- maps the resulting status onto the error taxonomy in errors.py

Statuses:
    optimal, optimal_inaccurate         -> accepted, status returned
    infeasible, infeasible_inaccurate   -> InfeasibleProblemError
    anything else / cvxpy SolverError   -> SolverFailureError
"""

import os
import warnings
from typing import Optional

import cvxpy as cp

from .errors import InfeasibleProblemError, SolverFailureError


DEFAULT_SOLVER = "CLARABEL"

ACCEPTED_STATUSES = (cp.OPTIMAL, cp.OPTIMAL_INACCURATE)
INFEASIBLE_STATUSES = (cp.INFEASIBLE, cp.INFEASIBLE_INACCURATE)


def default_solver() -> str:
    return os.environ.get("CONVEXFIT_SOLVER", DEFAULT_SOLVER).upper()


def solve_problem(
    problem: cp.Problem,
    solver: Optional[str] = None,
    verbose: bool = False,
    **solver_options,
) -> str:
    """
    Solve a formulated problem and return the cvxpy status string.

    Args:
        problem: cvxpy Problem (objective + constraints over declared variables)
        solver: Backend name (e.g. "CLARABEL", "OSQP", "SCS"); defaults to default_solver()
        verbose: Forwarded to cvxpy
        **solver_options: Backend-specific options (max_iter, eps_abs, ...)

    Returns:
        "optimal" or "optimal_inaccurate"; variable values are populated on the problem.

    Raises:
        InfeasibleProblemError: constraints cannot be satisfied
        SolverFailureError: backend missing, backend error, unbounded or other status
    """
    name = (solver or default_solver()).upper()

    if name not in cp.installed_solvers():
        raise SolverFailureError(
            f"Solver {name} is not installed (available: {', '.join(cp.installed_solvers())})",
            solver=name,
            status="not_installed",
        )

    # cvxpy warns on inaccurate solutions; the status already carries that
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        try:
            problem.solve(solver=name, verbose=verbose, **solver_options)
        except cp.SolverError as exc:
            raise SolverFailureError(
                f"{name} failed: {exc}", solver=name, status="solver_error"
            ) from exc

    status = problem.status
    if status in INFEASIBLE_STATUSES:
        raise InfeasibleProblemError(
            f"{name} reports the problem is {status}", solver=name, status=status
        )
    if status not in ACCEPTED_STATUSES:
        raise SolverFailureError(
            f"{name} stopped with status {status}", solver=name, status=status
        )
    return status
