"""
Survey Weight Calibration via Convex Optimization

Adjusts design weights d so that weighted totals of auxiliary variables hit
known population totals, while staying as close as possible to d.

Mathematical Formulation:
-------------------------
Decision Variables:
    w[i] = calibrated weight for sample unit i

Objective Function (distance from design weights):
    linear:  min  Σ (w[i] - d[i])^2 / (2 * d[i])
    raking:  min  Σ w[i] * log(w[i] / d[i]) - w[i] + d[i]

Constraints:
    1. Calibration:   X^T w = T
    2. Ratio bounds:  L * d[i] <= w[i] <= U * d[i]   (optional)

The linear distance without bounds has the closed-form GREG solution
    w = d * (1 + X λ),   λ = (X^T D X)^{-1} (T - X^T d)
which linear_calibration_weights() computes as a reference.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import cvxpy as cp
import numpy as np
import pandas as pd

from convexfit.common.errors import InvalidInputError
from convexfit.common.solver import default_solver, solve_problem


DISTANCES = ("linear", "raking")

# Column name that stands for the population size (a column of ones)
INTERCEPT = "(Intercept)"


@dataclass
class CalibrationResult:
    """Container for calibration outputs and diagnostics."""

    weights: np.ndarray
    design_weights: np.ndarray
    achieved_totals: np.ndarray
    target_totals: np.ndarray

    distance: str
    bounds: Optional[Tuple[float, float]]
    status: str = ""
    objective: float = 0.0
    solver: str = ""

    @property
    def g(self) -> np.ndarray:
        """Calibration ratios w / d."""
        return self.weights / self.design_weights

    @property
    def max_total_error(self) -> float:
        return float(np.max(np.abs(self.achieved_totals - self.target_totals)))


def _prepare_calibration_inputs(
    X,
    design_weights: Sequence[float],
    totals: Sequence[float],
    bounds: Optional[Tuple[float, float]],
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    X = np.asarray(X, dtype=float)
    d = np.asarray(design_weights, dtype=float)
    T = np.asarray(totals, dtype=float)

    if X.ndim == 1:
        X = X.reshape(-1, 1)
    if X.ndim != 2 or X.shape[0] == 0:
        raise InvalidInputError("X must be a non-empty (n x p) matrix")
    if d.ndim != 1 or len(d) != X.shape[0]:
        raise InvalidInputError(
            f"design weights length {d.size} does not match {X.shape[0]} rows of X"
        )
    if T.ndim != 1 or len(T) != X.shape[1]:
        raise InvalidInputError(
            f"totals length {T.size} does not match {X.shape[1]} columns of X"
        )
    if not (np.all(np.isfinite(X)) and np.all(np.isfinite(d)) and np.all(np.isfinite(T))):
        raise InvalidInputError("X, design weights and totals must be finite")
    if np.any(d <= 0):
        raise InvalidInputError("design weights must be strictly positive")

    if bounds is not None:
        lower, upper = bounds
        if not (0 <= lower <= 1 <= upper):
            raise InvalidInputError(
                f"bounds must satisfy 0 <= lower <= 1 <= upper (got {bounds})"
            )

    return X, d, T


def build_calibration_problem(
    X,
    design_weights: Sequence[float],
    totals: Sequence[float],
    distance: str = "linear",
    bounds: Optional[Tuple[float, float]] = None,
) -> Tuple[cp.Problem, cp.Variable]:
    """Formulate the calibration problem without solving it."""
    if distance not in DISTANCES:
        raise InvalidInputError(f"Unknown distance {distance!r} (expected one of: {', '.join(DISTANCES)})")
    X, d, T = _prepare_calibration_inputs(X, design_weights, totals, bounds)

    w = cp.Variable(len(d), name="w")

    if distance == "linear":
        objective = cp.sum(cp.multiply(1.0 / (2.0 * d), cp.square(w - d)))
    else:
        # kl_div(w, d) = w log(w/d) - w + d, implies w >= 0
        objective = cp.sum(cp.kl_div(w, d))

    constraints = [X.T @ w == T]
    if bounds is not None:
        lower, upper = bounds
        constraints.append(w >= lower * d)
        constraints.append(w <= upper * d)

    return cp.Problem(cp.Minimize(objective), constraints), w


def calibrate_weights(
    X,
    design_weights: Sequence[float],
    totals: Sequence[float],
    distance: str = "linear",
    bounds: Optional[Tuple[float, float]] = None,
    solver: Optional[str] = None,
    **solver_options,
) -> CalibrationResult:
    """
    Calibrate design weights to population totals.

    Args:
        X: Auxiliary variables [n x p]
        design_weights: Initial (design) weights d [n], strictly positive
        totals: Known population totals T [p]
        distance: "linear" (chi-square) or "raking" (entropy)
        bounds: Optional (L, U) bounds on w / d
        solver: cvxpy backend name

    Returns:
        CalibrationResult

    Raises:
        InvalidInputError, InfeasibleProblemError, SolverFailureError
    """
    problem, w = build_calibration_problem(X, design_weights, totals, distance, bounds)
    X_arr, d, T = _prepare_calibration_inputs(X, design_weights, totals, bounds)

    solver_name = (solver or default_solver()).upper()
    status = solve_problem(problem, solver=solver_name, **solver_options)
    weights = np.asarray(w.value, dtype=float).copy()

    return CalibrationResult(
        weights=weights,
        design_weights=d,
        achieved_totals=X_arr.T @ weights,
        target_totals=T,
        distance=distance,
        bounds=bounds,
        status=status,
        objective=float(problem.value),
        solver=solver_name,
    )


def linear_calibration_weights(X, design_weights: Sequence[float], totals: Sequence[float]) -> np.ndarray:
    """Closed-form GREG weights for the unbounded linear distance."""
    X, d, T = _prepare_calibration_inputs(X, design_weights, totals, None)
    lam = np.linalg.solve(X.T @ (d[:, None] * X), T - X.T @ d)
    return d * (1.0 + X @ lam)


def design_matrix(df: pd.DataFrame, columns: List[str]) -> np.ndarray:
    """Auxiliary matrix for the given columns; INTERCEPT maps to a column of ones."""
    missing = [c for c in columns if c != INTERCEPT and c not in df.columns]
    if missing:
        raise InvalidInputError(f"Missing auxiliary columns: {missing}")
    return np.column_stack([
        np.ones(len(df)) if c == INTERCEPT else df[c].to_numpy(dtype=float)
        for c in columns
    ])


def calibrate_table(
    df: pd.DataFrame,
    design_weight_col: str,
    totals: Dict[str, float],
    distance: str = "linear",
    bounds: Optional[Tuple[float, float]] = None,
    output_col: str = "calibrated_weight",
    solver: Optional[str] = None,
) -> Tuple[pd.DataFrame, CalibrationResult]:
    """
    Calibrate the weights of a sample table.

    Args:
        df: Sample units, one row each
        design_weight_col: Column holding design weights
        totals: {auxiliary column: population total}; INTERCEPT for population size

    Returns:
        (copy of df with output_col and 'g_ratio' columns, CalibrationResult)
    """
    if design_weight_col not in df.columns:
        raise InvalidInputError(f"Missing design weight column: {design_weight_col}")
    if not totals:
        raise InvalidInputError("At least one population total is required")

    columns = list(totals.keys())
    X = design_matrix(df, columns)
    result = calibrate_weights(
        X,
        df[design_weight_col].to_numpy(dtype=float),
        [totals[c] for c in columns],
        distance=distance,
        bounds=bounds,
        solver=solver,
    )

    out = df.copy()
    out[output_col] = result.weights
    out["g_ratio"] = result.g
    return out, result
