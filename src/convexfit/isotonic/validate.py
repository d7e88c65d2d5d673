"""
Post-Fit Validation

Re-checks a fitted sequence against the properties its tie mode promises:
- ordering between adjacent tie groups (primary, secondary)
- flat fit inside every tie group (secondary)
- ordered block means (tertiary)

Checks work on plain arrays so they can also be run on fits produced
elsewhere (e.g. a reference algorithm).
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from .builder import IsotonicFit
from .ties import TieMode, block_means, group_ties


# Tolerance for property checks on solver output
EPS = 1e-6


@dataclass
class ValidationResult:
    """Container for validation outputs."""

    violations: Dict[str, int]

    order_violations: pd.DataFrame
    tie_violations: pd.DataFrame
    block_mean_violations: pd.DataFrame

    is_valid: bool
    message: str


def check_order_violations(
    keys: Sequence,
    fitted: Sequence[float],
    increasing: bool = True,
    tol: float = EPS,
) -> pd.DataFrame:
    """
    Check every adjacent pair of tie groups for an ordering violation.

    For an increasing fit the largest value of the lower group must not exceed
    the smallest value of the next group; ties inside a group are not compared.
    """
    fitted = np.asarray(fitted, dtype=float)
    groups = group_ties(keys)
    keys = np.asarray(keys)
    records: List[Dict] = []

    for g_lo, g_hi in zip(groups[:-1], groups[1:]):
        if increasing:
            edge_lo, edge_hi = fitted[g_lo].max(), fitted[g_hi].min()
            gap = edge_lo - edge_hi
        else:
            edge_lo, edge_hi = fitted[g_lo].min(), fitted[g_hi].max()
            gap = edge_hi - edge_lo

        if gap > tol:
            records.append({
                "key_low": keys[g_lo[0]],
                "key_high": keys[g_hi[0]],
                "fitted_low": edge_lo,
                "fitted_high": edge_hi,
                "violation": gap,
                "rule": "order",
            })

    return pd.DataFrame(records)


def check_tie_equality(
    keys: Sequence,
    fitted: Sequence[float],
    tol: float = EPS,
) -> pd.DataFrame:
    """Report tie groups whose fitted values are not all equal."""
    fitted = np.asarray(fitted, dtype=float)
    keys = np.asarray(keys)
    records: List[Dict] = []

    for g in group_ties(keys):
        if len(g) < 2:
            continue
        spread = fitted[g].max() - fitted[g].min()
        if spread > tol:
            records.append({
                "key": keys[g[0]],
                "n_members": len(g),
                "fitted_min": fitted[g].min(),
                "fitted_max": fitted[g].max(),
                "violation": spread,
                "rule": "tie_equality",
            })

    return pd.DataFrame(records)


def check_block_mean_order(
    keys: Sequence,
    fitted: Sequence[float],
    weights: Optional[Sequence[float]] = None,
    increasing: bool = True,
    tol: float = EPS,
) -> pd.DataFrame:
    """Check that (weighted) block means are ordered across tie groups."""
    fitted = np.asarray(fitted, dtype=float)
    keys = np.asarray(keys)
    groups = group_ties(keys)
    w = None if weights is None else np.asarray(weights, dtype=float)
    means = block_means(fitted, groups, w)
    records: List[Dict] = []

    for j in range(len(groups) - 1):
        gap = means[j] - means[j + 1] if increasing else means[j + 1] - means[j]
        if gap > tol:
            records.append({
                "key_low": keys[groups[j][0]],
                "key_high": keys[groups[j + 1][0]],
                "mean_low": means[j],
                "mean_high": means[j + 1],
                "violation": gap,
                "rule": "block_mean_order",
            })

    return pd.DataFrame(records)


def validate_fit(fit: IsotonicFit, tol: float = EPS, verbose: bool = True) -> ValidationResult:
    """
    Validate a fit against the rules of its tie mode.

    primary:   order
    secondary: order + tie equality
    tertiary:  block mean order
    """
    empty = pd.DataFrame()
    order_df = empty
    tie_df = empty
    mean_df = empty

    if fit.ties in (TieMode.PRIMARY, TieMode.SECONDARY):
        order_df = check_order_violations(fit.keys, fit.fitted, fit.increasing, tol)
    if fit.ties is TieMode.SECONDARY:
        tie_df = check_tie_equality(fit.keys, fit.fitted, tol)
    if fit.ties is TieMode.TERTIARY:
        mean_df = check_block_mean_order(fit.keys, fit.fitted, fit.weights, fit.increasing, tol)

    violations = {
        "order": len(order_df),
        "tie_equality": len(tie_df),
        "block_mean_order": len(mean_df),
    }
    violations["total"] = sum(violations.values())

    is_valid = violations["total"] == 0
    if is_valid:
        message = f"SUCCESS: {fit.ties.value} fit satisfies all ordering rules."
    else:
        message = (
            f"WARNING: {violations['total']} violations remain "
            f"(order={violations['order']}, "
            f"ties={violations['tie_equality']}, "
            f"block_means={violations['block_mean_order']})"
        )

    if verbose:
        print("\n" + "=" * 60)
        print("VALIDATION RESULTS")
        print("=" * 60)
        print(f"Observations: {fit.n}  Tie groups: {len(fit.groups)}  Mode: {fit.ties.value}")
        print(f"  - Order:       {violations['order']}")
        print(f"  - Tie equality: {violations['tie_equality']}")
        print(f"  - Block means: {violations['block_mean_order']}")
        print(f"\n{message}")
        print("=" * 60)

    return ValidationResult(
        violations=violations,
        order_violations=order_df,
        tie_violations=tie_df,
        block_mean_violations=mean_df,
        is_valid=is_valid,
        message=message,
    )


def generate_validation_report(validation_result: ValidationResult, output_dir: Path) -> None:
    """Export validation results to CSV files."""
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    summary = pd.DataFrame([{
        "order": validation_result.violations["order"],
        "tie_equality": validation_result.violations["tie_equality"],
        "block_mean_order": validation_result.violations["block_mean_order"],
        "total": validation_result.violations["total"],
        "is_valid": validation_result.is_valid,
        "message": validation_result.message,
    }])
    summary.to_csv(output_dir / "validation_summary.csv", index=False)

    if not validation_result.order_violations.empty:
        validation_result.order_violations.to_csv(output_dir / "residual_order.csv", index=False)
    if not validation_result.tie_violations.empty:
        validation_result.tie_violations.to_csv(output_dir / "residual_ties.csv", index=False)
    if not validation_result.block_mean_violations.empty:
        validation_result.block_mean_violations.to_csv(
            output_dir / "residual_block_means.csv", index=False
        )
