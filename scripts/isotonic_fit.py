#!/usr/bin/env python3
"""
Isotonic regression via convex optimization.

CLI entrypoint for fitting monotone sequences to tabular observations.

Usage:
    python scripts/isotonic_fit.py \
        --input data/pituitary.csv \
        --output-dir reports/isotonic \
        --key-col age \
        --value-col size \
        --ties secondary \
        --compare --validate

Mathematical Background:
------------------------
The fit is a Quadratic Program over one variable per observation:

    min  Σ w[i] * (x[i] - v[i])^2

Subject to ordering between adjacent tie groups (by key):
    primary:    max(x[g]) <= min(x[h])
    secondary:  x flat within each group, group values ordered
    tertiary:   weighted group means ordered
"""

import argparse
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_ROOT = PROJECT_ROOT / "src"
if str(SRC_ROOT) not in sys.path:
    sys.path.insert(0, str(SRC_ROOT))

from convexfit.common.errors import ConvexFitError  # noqa: E402
from convexfit.isotonic.pipeline import run_isotonic_fit  # noqa: E402
from convexfit.isotonic.ties import TieMode  # noqa: E402


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description="Fit a monotone (isotonic) sequence by solving a convex QP.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Primary tie handling, one fit over the whole table
  python scripts/isotonic_fit.py --input obs.csv --output-dir out --key-col x --value-col y

  # Secondary ties, one fit per subject, checked against scipy's PAVA
  python scripts/isotonic_fit.py --input obs.csv --output-dir out --key-col age --value-col size \\
      --group-col subject --ties secondary --compare --validate
        """,
    )

    # Required arguments
    parser.add_argument("--input", type=str, required=True, help="Input CSV or parquet file.")
    parser.add_argument("--output-dir", type=str, required=True, help="Directory for output files.")
    parser.add_argument("--key-col", type=str, required=True, help="Column holding the ordering key.")
    parser.add_argument("--value-col", type=str, required=True, help="Column holding observed values.")

    # Optional arguments
    parser.add_argument("--weight-col", type=str, default=None, help="Column of positive observation weights.")
    parser.add_argument("--group-col", type=str, default=None, help="Fit each value of this column separately.")
    parser.add_argument(
        "--ties",
        type=str,
        choices=[m.value for m in TieMode],
        default=TieMode.PRIMARY.value,
        help="Tie handling policy (default: primary).",
    )
    parser.add_argument(
        "--decreasing",
        action="store_true",
        help="Fit a non-increasing sequence instead of a non-decreasing one.",
    )
    parser.add_argument(
        "--solver",
        type=str,
        default=None,
        help="cvxpy solver backend (default: CLARABEL, or $CONVEXFIT_SOLVER).",
    )
    parser.add_argument(
        "--compare",
        action="store_true",
        help="Compare against scipy.optimize.isotonic_regression.",
    )
    parser.add_argument(
        "--validate",
        action="store_true",
        help="Re-check ordering rules on the fitted values.",
    )

    args = parser.parse_args(argv)

    input_path = Path(args.input)
    output_dir = Path(args.output_dir)

    print(f"\n{'='*70}")
    print("ISOTONIC FIT")
    print(f"{'='*70}")

    if not input_path.exists():
        print(f"ERROR: Input file not found: {input_path}", file=sys.stderr)
        return 1

    print(f"Input:  {input_path}")
    print(f"Output: {output_dir}")
    print(f"Ties:   {args.ties}")
    print()

    try:
        result = run_isotonic_fit(
            input_path=input_path,
            output_dir=output_dir,
            key_col=args.key_col,
            value_col=args.value_col,
            ties=args.ties,
            weight_col=args.weight_col,
            group_col=args.group_col,
            increasing=not args.decreasing,
            solver=args.solver,
            compare=args.compare,
            validate=args.validate,
        )
    except (ConvexFitError, ValueError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1

    print(f"\nOutputs written to: {output_dir}/")
    print(f"  - fitted.csv           (observations with fitted values)")
    print(f"  - fit_summary.csv      (per-group solver status)")
    print(f"  - isotonic_fit.png     (visualization)")
    if args.compare:
        print(f"  - comparison.csv       (convex vs reference)")
    if args.validate:
        print(f"  - validation_summary.csv")

    return 0 if result.n_invalid == 0 else 2


if __name__ == "__main__":
    sys.exit(main())
