"""
Isotonic Regression via Convex Optimization

Fits a monotone sequence to observed values by solving a Quadratic Program
with cvxpy, instead of running a dedicated pool-adjacent-violators routine.

Mathematical Formulation:
-------------------------
Decision Variables:
    x[i] = fitted value for observation i (same position as values[i])

Objective Function:
    min  Σ w[i] * (x[i] - v[i])^2
    where w[i] = observation weight (default 1)

Linear Constraints (between adjacent tie groups g < h, ordered by key):
    primary:    max(x[g]) <= min(x[h])
    secondary:  x[i] == x[g0] for i in g,  x[g0] <= x[h0]
    tertiary:   mean_w(x[g]) <= mean_w(x[h])

With increasing=False every ordering constraint is reversed.
Transitivity of adjacent-group constraints covers every pair key_i < key_j.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple, Union

import cvxpy as cp
import numpy as np
import pandas as pd

from convexfit.common.errors import InvalidInputError
from convexfit.common.solver import default_solver, solve_problem
from .ties import TieMode, block_means, group_ties


@dataclass
class IsotonicFit:
    """Container for a single isotonic fit and its solver metadata."""

    # Inputs (as arrays, input order)
    keys: np.ndarray
    values: np.ndarray
    weights: np.ndarray

    # Fitted values, positionally matching values
    fitted: np.ndarray

    ties: TieMode
    increasing: bool
    groups: List[np.ndarray] = field(repr=False)

    # Solver metadata
    status: str = ""
    objective: float = 0.0
    solver: str = ""

    @property
    def n(self) -> int:
        return len(self.values)

    @property
    def residuals(self) -> np.ndarray:
        return self.values - self.fitted

    @property
    def fitted_block_means(self) -> np.ndarray:
        return block_means(self.fitted, self.groups, self.weights)

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame({
            "key": self.keys,
            "value": self.values,
            "weight": self.weights,
            "fitted": self.fitted,
            "residual": self.residuals,
        })


def prepare_inputs(
    keys: Sequence,
    values: Sequence[float],
    weights: Optional[Sequence[float]] = None,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Validate and convert inputs to arrays.

    Raises InvalidInputError for empty input, mismatched lengths, missing keys,
    non-finite values, or non-positive weights.
    """
    keys = np.asarray(keys)
    values = np.asarray(values, dtype=float)

    if keys.ndim != 1 or values.ndim != 1:
        raise InvalidInputError("keys and values must be one-dimensional")
    if len(values) == 0:
        raise InvalidInputError("Cannot fit an empty sequence of observations")
    if len(keys) != len(values):
        raise InvalidInputError(
            f"keys and values have mismatched lengths ({len(keys)} != {len(values)})"
        )
    if pd.isna(keys).any():
        raise InvalidInputError("keys contain missing values")
    if not np.all(np.isfinite(values)):
        raise InvalidInputError("values must be finite")

    if weights is None:
        w = np.ones(len(values))
    else:
        w = np.asarray(weights, dtype=float)
        if w.ndim != 1 or len(w) != len(values):
            raise InvalidInputError(
                f"weights and values have mismatched lengths ({w.size} != {len(values)})"
            )
        if not np.all(np.isfinite(w)) or np.any(w <= 0):
            raise InvalidInputError("weights must be finite and strictly positive")

    return keys, values, w


def _group_extreme(x: cp.Variable, idx: np.ndarray, reducer) -> cp.Expression:
    # Singleton groups stay plain affine terms
    if len(idx) == 1:
        return x[int(idx[0])]
    return reducer(x[idx])


def _block_mean_expr(x: cp.Variable, idx: np.ndarray, weights: np.ndarray) -> cp.Expression:
    w = weights[idx] / weights[idx].sum()
    return w @ x[idx]


def ordering_constraints(
    x: cp.Variable,
    groups: List[np.ndarray],
    ties: TieMode,
    weights: np.ndarray,
    increasing: bool = True,
) -> List[cp.Constraint]:
    """Build the tie-mode specific constraint set over the fit variable."""
    constraints: List[cp.Constraint] = []

    if ties is TieMode.SECONDARY:
        for g in groups:
            if len(g) > 1:
                constraints.append(x[g[1:]] == x[int(g[0])])

    for g_lo, g_hi in zip(groups[:-1], groups[1:]):
        if ties is TieMode.PRIMARY:
            if increasing:
                lo = _group_extreme(x, g_lo, cp.max)
                hi = _group_extreme(x, g_hi, cp.min)
            else:
                lo = _group_extreme(x, g_lo, cp.min)
                hi = _group_extreme(x, g_hi, cp.max)
        elif ties is TieMode.SECONDARY:
            lo, hi = x[int(g_lo[0])], x[int(g_hi[0])]
        else:
            lo = _block_mean_expr(x, g_lo, weights)
            hi = _block_mean_expr(x, g_hi, weights)

        constraints.append(lo <= hi if increasing else lo >= hi)

    return constraints


def build_isotonic_problem(
    keys: Sequence,
    values: Sequence[float],
    ties: Union[str, TieMode] = TieMode.PRIMARY,
    weights: Optional[Sequence[float]] = None,
    increasing: bool = True,
) -> Tuple[cp.Problem, cp.Variable, List[np.ndarray]]:
    """
    Formulate the isotonic QP without solving it.

    Returns:
        problem: cvxpy Problem
        x: Fit variable (length n, input order)
        groups: Tie groups ordered by key
    """
    keys, values, w = prepare_inputs(keys, values, weights)
    mode = TieMode.parse(ties)
    groups = group_ties(keys)

    x = cp.Variable(len(values), name="x")
    objective = cp.sum(cp.multiply(w, cp.square(x - values)))
    constraints = ordering_constraints(x, groups, mode, w, increasing=increasing)

    problem = cp.Problem(cp.Minimize(objective), constraints)
    return problem, x, groups


def fit_isotonic(
    keys: Sequence,
    values: Sequence[float],
    ties: Union[str, TieMode] = TieMode.PRIMARY,
    weights: Optional[Sequence[float]] = None,
    increasing: bool = True,
    solver: Optional[str] = None,
    **solver_options,
) -> IsotonicFit:
    """
    Least-squares monotone fit of values with respect to keys.

    Args:
        keys: Ordering key per observation (numbers, strings, dates)
        values: Observed values
        ties: "primary" (default), "secondary" or "tertiary"
        weights: Optional positive weights (default: uniform)
        increasing: Fit a non-decreasing (True) or non-increasing (False) sequence
        solver: cvxpy backend name (default: CLARABEL or $CONVEXFIT_SOLVER)

    Returns:
        IsotonicFit with fitted values in input order

    Raises:
        InvalidInputError, InfeasibleProblemError, SolverFailureError
    """
    mode = TieMode.parse(ties)
    key_arr, value_arr, w = prepare_inputs(keys, values, weights)
    problem, x, groups = build_isotonic_problem(
        key_arr, value_arr, ties=mode, weights=w, increasing=increasing
    )

    solver_name = (solver or default_solver()).upper()
    status = solve_problem(problem, solver=solver_name, **solver_options)

    return IsotonicFit(
        keys=key_arr,
        values=value_arr,
        weights=w,
        fitted=np.asarray(x.value, dtype=float).copy(),
        ties=mode,
        increasing=increasing,
        groups=groups,
        status=status,
        objective=float(problem.value),
        solver=solver_name,
    )
