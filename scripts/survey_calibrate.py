#!/usr/bin/env python3
"""
Survey weight calibration via convex optimization.

Usage:
    python scripts/survey_calibrate.py \
        --input data/apiclus1.csv \
        --totals data/pop_totals.json \
        --design-weight-col pw \
        --distance raking \
        --output reports/calibrated.csv

The totals file maps auxiliary columns to population totals, e.g.
    {"(Intercept)": 6194, "stypeH": 755, "stypeM": 1018}
"(Intercept)" stands for the population size.
"""

import argparse
import json
import sys
from pathlib import Path

import pandas as pd

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_ROOT = PROJECT_ROOT / "src"
if str(SRC_ROOT) not in sys.path:
    sys.path.insert(0, str(SRC_ROOT))

from convexfit.calibration.calibrate import DISTANCES, calibrate_table  # noqa: E402
from convexfit.common.errors import ConvexFitError  # noqa: E402


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Calibrate survey design weights to population totals.")
    parser.add_argument("--input", type=str, required=True, help="Sample CSV or parquet file.")
    parser.add_argument("--totals", type=str, required=True, help="JSON file {column: population total}.")
    parser.add_argument("--output", type=str, required=True, help="Output CSV with calibrated weights.")
    parser.add_argument("--design-weight-col", type=str, required=True, help="Column of design weights.")
    parser.add_argument("--distance", choices=list(DISTANCES), default="linear", help="Distance (default: linear).")
    parser.add_argument("--lower", type=float, default=None, help="Lower bound on w/d (requires --upper).")
    parser.add_argument("--upper", type=float, default=None, help="Upper bound on w/d (requires --lower).")
    parser.add_argument("--solver", type=str, default=None, help="cvxpy solver backend.")
    args = parser.parse_args(argv)

    if (args.lower is None) != (args.upper is None):
        parser.error("--lower and --upper must be given together")
    bounds = (args.lower, args.upper) if args.lower is not None else None

    input_path = Path(args.input)
    totals_path = Path(args.totals)
    for path in (input_path, totals_path):
        if not path.exists():
            print(f"ERROR: File not found: {path}", file=sys.stderr)
            return 1

    try:
        if input_path.suffix.lower() in (".parquet", ".pq"):
            df = pd.read_parquet(input_path)
        else:
            df = pd.read_csv(input_path)
        totals = json.loads(totals_path.read_text())
    except (ValueError, OSError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1
    if not isinstance(totals, dict):
        print(f"ERROR: {totals_path} must hold a JSON object of column totals", file=sys.stderr)
        return 1

    print(f"Calibrating {len(df)} units to {len(totals)} totals ({args.distance} distance)...")

    try:
        out, result = calibrate_table(
            df,
            args.design_weight_col,
            totals,
            distance=args.distance,
            bounds=bounds,
            solver=args.solver,
        )
    except (ConvexFitError, ValueError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1

    output_path = Path(args.output)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    out.to_csv(output_path, index=False)

    print(f"\nCalibration complete ({result.solver}: {result.status}):")
    for name, target, achieved in zip(totals, result.target_totals, result.achieved_totals):
        print(f"  {name:<20} target={target:>14.4f}  achieved={achieved:>14.4f}")
    print(f"  g ratio range: [{result.g.min():.4f}, {result.g.max():.4f}]")
    print(f"Output written to: {output_path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
