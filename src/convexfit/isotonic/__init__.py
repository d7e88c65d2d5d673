"""
Isotonic regression as a convex Quadratic Program.

Key components:
- ties.py: tie modes and tie grouping
- builder.py: QP construction and solve (cvxpy)
- validate.py: post-fit ordering checks
- reference.py: comparison against scipy's isotonic regression
- pipeline.py: CSV/parquet table driver with exports
"""

from .builder import IsotonicFit, build_isotonic_problem, fit_isotonic
from .reference import ComparisonResult, compare_fits, reference_fit
from .ties import TieMode, group_ties
from .validate import validate_fit

__all__ = [
    "IsotonicFit",
    "build_isotonic_problem",
    "fit_isotonic",
    "ComparisonResult",
    "compare_fits",
    "reference_fit",
    "TieMode",
    "group_ties",
    "validate_fit",
]
