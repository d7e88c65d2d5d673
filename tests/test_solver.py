"""
Unit tests for the cvxpy solver wrapper and error mapping.
"""

import pytest
import sys

sys.path.insert(0, "src")

import cvxpy as cp

from convexfit.common.errors import (
    ConvexFitError,
    InfeasibleProblemError,
    InvalidInputError,
    SolverFailureError,
)
from convexfit.common.solver import DEFAULT_SOLVER, default_solver, solve_problem


class TestSolveProblem:
    """Tests for status handling."""

    def test_optimal(self):
        x = cp.Variable(2)
        problem = cp.Problem(cp.Minimize(cp.sum_squares(x - 1)), [x[0] <= x[1]])
        status = solve_problem(problem)
        assert status in ("optimal", "optimal_inaccurate")
        assert abs(problem.value) < 1e-6

    def test_infeasible(self):
        x = cp.Variable()
        problem = cp.Problem(cp.Minimize(cp.square(x)), [x >= 1, x <= 0])
        with pytest.raises(InfeasibleProblemError) as excinfo:
            solve_problem(problem)
        assert excinfo.value.status.startswith("infeasible")
        assert excinfo.value.solver == default_solver()

    def test_unbounded(self):
        x = cp.Variable()
        problem = cp.Problem(cp.Minimize(x), [x <= 5])
        with pytest.raises(SolverFailureError) as excinfo:
            solve_problem(problem)
        assert excinfo.value.status.startswith("unbounded")

    def test_unknown_solver(self):
        x = cp.Variable()
        problem = cp.Problem(cp.Minimize(cp.square(x)))
        with pytest.raises(SolverFailureError) as excinfo:
            solve_problem(problem, solver="NOT_A_SOLVER")
        assert excinfo.value.status == "not_installed"


class TestConfiguration:
    """Tests for solver selection."""

    def test_default(self, monkeypatch):
        monkeypatch.delenv("CONVEXFIT_SOLVER", raising=False)
        assert default_solver() == DEFAULT_SOLVER

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("CONVEXFIT_SOLVER", "scs")
        assert default_solver() == "SCS"


class TestErrorHierarchy:
    """Errors share a base class; input errors stay ValueErrors."""

    def test_hierarchy(self):
        assert issubclass(InvalidInputError, ConvexFitError)
        assert issubclass(InvalidInputError, ValueError)
        assert issubclass(InfeasibleProblemError, ConvexFitError)
        assert issubclass(SolverFailureError, RuntimeError)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
