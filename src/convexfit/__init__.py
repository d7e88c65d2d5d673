"""
convexfit: statistical estimation problems written as convex programs.

- convexfit.isotonic: monotone least-squares fits with tie handling
- convexfit.calibration: survey weight calibration
"""

from convexfit.common.errors import (
    ConvexFitError,
    InfeasibleProblemError,
    InvalidInputError,
    SolverFailureError,
)
from convexfit.isotonic import TieMode, fit_isotonic
from convexfit.calibration import calibrate_weights

__version__ = "0.1.0"

__all__ = [
    "ConvexFitError",
    "InfeasibleProblemError",
    "InvalidInputError",
    "SolverFailureError",
    "TieMode",
    "fit_isotonic",
    "calibrate_weights",
]
