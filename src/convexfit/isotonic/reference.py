"""
Reference fits from a specialized isotonic solver.

The convex formulation in builder.py is cross-checked against
scipy.optimize.isotonic_regression (pool adjacent violators). Each tie mode
reduces to a single chain problem:

    primary    sort by key, members of a tie group by value, then PAVA.
               Within a group every member faces the same bounds, so the
               optimum is already ordered by value.
    secondary  PAVA on weighted block means with summed block weights,
               broadcast back to the members.
    tertiary   PAVA on block means m_g, then x_i = v_i + (m_g - vbar_g).

A decreasing fit is the negated increasing fit of the negated values.
"""

from dataclasses import dataclass
from typing import Optional, Sequence, Union

import numpy as np
from scipy.optimize import isotonic_regression

from .builder import IsotonicFit, prepare_inputs
from .ties import TieMode, block_means, block_weights, group_ties


# Generic solver vs specialized algorithm: interior-point output is not
# bit-identical to PAVA, so agreement is judged at this absolute tolerance.
COMPARE_TOL = 1e-4


@dataclass
class ComparisonResult:
    """Agreement between a convex fit and the reference fit."""

    max_abs_diff: float
    rms_diff: float
    objective_convex: float
    objective_reference: float
    tol: float
    agree: bool


def _pava(y: np.ndarray, w: np.ndarray) -> np.ndarray:
    return isotonic_regression(y, weights=w, increasing=True).x


def reference_fit(
    keys: Sequence,
    values: Sequence[float],
    ties: Union[str, TieMode] = TieMode.PRIMARY,
    weights: Optional[Sequence[float]] = None,
    increasing: bool = True,
) -> np.ndarray:
    """Fitted values (input order) computed with scipy's isotonic regression."""
    keys, values, w = prepare_inputs(keys, values, weights)
    mode = TieMode.parse(ties)

    if not increasing:
        return -reference_fit(keys, -values, ties=mode, weights=w, increasing=True)

    groups = group_ties(keys)
    fitted = np.empty(len(values))

    if mode is TieMode.PRIMARY:
        order = np.concatenate([g[np.argsort(values[g], kind="stable")] for g in groups])
        fitted[order] = _pava(values[order], w[order])
        return fitted

    means = block_means(values, groups, w)
    m = _pava(means, block_weights(groups, w))

    for j, g in enumerate(groups):
        if mode is TieMode.SECONDARY:
            fitted[g] = m[j]
        else:
            fitted[g] = values[g] + (m[j] - means[j])

    return fitted


def compare_fits(
    fit: IsotonicFit,
    reference: Optional[np.ndarray] = None,
    tol: float = COMPARE_TOL,
) -> ComparisonResult:
    """Compare a convex fit against the reference for the same inputs."""
    if reference is None:
        reference = reference_fit(
            fit.keys, fit.values, ties=fit.ties, weights=fit.weights, increasing=fit.increasing
        )
    diff = fit.fitted - reference
    max_abs = float(np.max(np.abs(diff)))

    return ComparisonResult(
        max_abs_diff=max_abs,
        rms_diff=float(np.sqrt(np.mean(diff ** 2))),
        objective_convex=float(np.sum(fit.weights * (fit.values - fit.fitted) ** 2)),
        objective_reference=float(np.sum(fit.weights * (fit.values - reference) ** 2)),
        tol=tol,
        agree=max_abs <= tol,
    )
