"""
Table-level isotonic fitting.

Reads observations from CSV/parquet, fits each group independently with
fit_isotonic(), optionally validates and compares against the reference
algorithm, and exports:

    fitted.csv           input rows + fitted / residual columns
    fit_summary.csv      per-group solver status and metrics
    comparison.csv       convex vs reference agreement (compare=True)
    validation_summary.csv, residual_*.csv   (validate=True)
    isotonic_fit.png     observed vs fitted
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

import matplotlib
import numpy as np
import pandas as pd
from tqdm import tqdm

matplotlib.use("Agg")
import matplotlib.pyplot as plt  # noqa: E402  # isort:skip

from convexfit.common.errors import InvalidInputError  # noqa: E402

from .builder import fit_isotonic  # noqa: E402
from .reference import compare_fits  # noqa: E402
from .ties import TieMode  # noqa: E402
from .validate import ValidationResult, generate_validation_report, validate_fit  # noqa: E402


ALL_ROWS = "__all__"
MAX_PLOT_GROUPS = 8


@dataclass
class IsotonicRunResult:
    """Container for a table-level run."""

    fitted_df: pd.DataFrame
    summary_df: pd.DataFrame
    comparison_df: pd.DataFrame

    n_groups: int = 0
    n_observations: int = 0
    n_invalid: int = 0
    max_reference_diff: float = 0.0


def load_observations(
    input_path: Path,
    key_col: str,
    value_col: str,
    weight_col: Optional[str] = None,
    group_col: Optional[str] = None,
) -> pd.DataFrame:
    """Load a CSV or parquet file and drop rows missing a key, value or group label."""
    input_path = Path(input_path)
    if input_path.suffix.lower() in (".parquet", ".pq"):
        df = pd.read_parquet(input_path)
    else:
        df = pd.read_csv(input_path)

    required = [key_col, value_col] + [c for c in (weight_col, group_col) if c]
    missing = set(required) - set(df.columns)
    if missing:
        raise ValueError(f"Missing required columns: {missing}")

    subset = [key_col, value_col] + ([group_col] if group_col else [])
    return df.dropna(subset=subset).reset_index(drop=True)


def fit_table(
    df: pd.DataFrame,
    key_col: str,
    value_col: str,
    ties: Union[str, TieMode] = TieMode.PRIMARY,
    weight_col: Optional[str] = None,
    group_col: Optional[str] = None,
    increasing: bool = True,
    solver: Optional[str] = None,
    compare: bool = False,
    validate: bool = False,
) -> Tuple[pd.DataFrame, pd.DataFrame, pd.DataFrame, List]:
    """
    Fit every group of a table independently.

    Returns:
        fitted_df: Copy of df with 'fitted' and 'residual' columns
        summary_df: One row per group (status, objective, violations)
        comparison_df: Reference agreement per group (empty unless compare)
        validations: ValidationResult per group (empty unless validate)

    Raises:
        InvalidInputError: group_col has missing labels
    """
    if group_col and df[group_col].isna().any():
        raise InvalidInputError(
            f"{int(df[group_col].isna().sum())} rows have no value in group column {group_col!r}"
        )

    # Positional working index; the caller's index is restored on return
    out = df.reset_index(drop=True)
    out["fitted"] = np.nan
    out["residual"] = np.nan

    if group_col:
        grouped = list(out.groupby(group_col, sort=True))
    else:
        grouped = [(ALL_ROWS, out)]

    summary_rows: List[Dict] = []
    comparison_rows: List[Dict] = []
    validations = []

    for name, grp in tqdm(grouped, desc="Fitting groups", disable=len(grouped) < 2):
        weights = grp[weight_col].to_numpy() if weight_col else None
        fit = fit_isotonic(
            grp[key_col].to_numpy(),
            grp[value_col].to_numpy(),
            ties=ties,
            weights=weights,
            increasing=increasing,
            solver=solver,
        )
        out.loc[grp.index, "fitted"] = fit.fitted
        out.loc[grp.index, "residual"] = fit.residuals

        row = {
            "group": name,
            "n_obs": fit.n,
            "n_tie_groups": len(fit.groups),
            "ties": fit.ties.value,
            "solver": fit.solver,
            "status": fit.status,
            "objective": fit.objective,
            "n_adjusted": int((np.abs(fit.residuals) > 1e-8).sum()),
            "max_adjustment": float(np.abs(fit.residuals).max()),
        }

        if validate:
            result = validate_fit(fit, verbose=False)
            validations.append(result)
            row["violations"] = result.violations["total"]

        if compare:
            cmp = compare_fits(fit)
            comparison_rows.append({
                "group": name,
                "max_abs_diff": cmp.max_abs_diff,
                "rms_diff": cmp.rms_diff,
                "objective_convex": cmp.objective_convex,
                "objective_reference": cmp.objective_reference,
                "agree": cmp.agree,
            })

        summary_rows.append(row)

    out.index = df.index
    return out, pd.DataFrame(summary_rows), pd.DataFrame(comparison_rows), validations


def run_isotonic_fit(
    input_path: Path,
    output_dir: Path,
    key_col: str,
    value_col: str,
    ties: Union[str, TieMode] = TieMode.PRIMARY,
    weight_col: Optional[str] = None,
    group_col: Optional[str] = None,
    increasing: bool = True,
    solver: Optional[str] = None,
    compare: bool = False,
    validate: bool = False,
) -> IsotonicRunResult:
    """
    Main entry point: fit a table from disk and export results.
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    df = load_observations(input_path, key_col, value_col, weight_col, group_col)
    mode = TieMode.parse(ties)

    print(f"Fitting {len(df)} observations ({mode.value} ties, "
          f"{'increasing' if increasing else 'decreasing'})...")

    fitted_df, summary_df, comparison_df, validations = fit_table(
        df,
        key_col,
        value_col,
        ties=mode,
        weight_col=weight_col,
        group_col=group_col,
        increasing=increasing,
        solver=solver,
        compare=compare,
        validate=validate,
    )

    fitted_df.to_csv(output_dir / "fitted.csv", index=False)
    summary_df.to_csv(output_dir / "fit_summary.csv", index=False)
    if not comparison_df.empty:
        comparison_df.to_csv(output_dir / "comparison.csv", index=False)

    n_invalid = 0
    if validate:
        n_invalid = sum(not v.is_valid for v in validations)
        merged = validations[0] if len(validations) == 1 else _merge_validations(validations)
        generate_validation_report(merged, output_dir)

    _plot_fit(fitted_df, key_col, value_col, group_col, output_dir)

    max_diff = float(comparison_df["max_abs_diff"].max()) if not comparison_df.empty else 0.0

    print(f"\nFit complete:")
    print(f"  Groups: {len(summary_df)}")
    print(f"  Adjusted: {int(summary_df['n_adjusted'].sum())} of {len(fitted_df)}")
    print(f"  Max adjustment: {summary_df['max_adjustment'].max():.6f}")
    if compare:
        print(f"  Max |convex - reference|: {max_diff:.2e}")
    if validate:
        print(f"  Groups failing validation: {n_invalid}")

    return IsotonicRunResult(
        fitted_df=fitted_df,
        summary_df=summary_df,
        comparison_df=comparison_df,
        n_groups=len(summary_df),
        n_observations=len(fitted_df),
        n_invalid=n_invalid,
        max_reference_diff=max_diff,
    )


def _merge_validations(validations: List[ValidationResult]) -> ValidationResult:
    violations = {
        k: sum(v.violations[k] for v in validations)
        for k in ("order", "tie_equality", "block_mean_order", "total")
    }
    is_valid = violations["total"] == 0
    return ValidationResult(
        violations=violations,
        order_violations=pd.concat([v.order_violations for v in validations], ignore_index=True),
        tie_violations=pd.concat([v.tie_violations for v in validations], ignore_index=True),
        block_mean_violations=pd.concat(
            [v.block_mean_violations for v in validations], ignore_index=True
        ),
        is_valid=is_valid,
        message=(
            f"SUCCESS: all {len(validations)} groups valid." if is_valid
            else f"WARNING: {violations['total']} violations across groups"
        ),
    )


def _plot_fit(
    fitted_df: pd.DataFrame,
    key_col: str,
    value_col: str,
    group_col: Optional[str],
    output_dir: Path,
) -> None:
    """
    Plot observed values and the monotone fit, one color per group.
    """
    if fitted_df.empty:
        return

    if group_col:
        groups = list(fitted_df.groupby(group_col, sort=True))[:MAX_PLOT_GROUPS]
    else:
        groups = [(None, fitted_df)]

    fig, ax = plt.subplots(figsize=(9, 5))
    for name, grp in groups:
        g = grp.sort_values(key_col, kind="stable")
        if pd.api.types.is_numeric_dtype(g[key_col]):
            xs = g[key_col].to_numpy()
        else:
            # Non-numeric keys are plotted by rank
            xs = pd.factorize(g[key_col], sort=True)[0]
        label = "" if name is None else f" ({name})"
        points = ax.scatter(xs, g[value_col], s=14, alpha=0.6, label=f"observed{label}")
        ax.step(xs, g["fitted"], where="post", color=points.get_facecolor()[0], label=f"fitted{label}")

    ax.set_xlabel(key_col)
    ax.set_ylabel(value_col)
    ax.set_title("Isotonic Fit (convex QP)")
    ax.legend(fontsize=8)
    fig.tight_layout()
    fig.savefig(output_dir / "isotonic_fit.png", dpi=150)
    plt.close(fig)
