"""
Survey weight calibration as a convex program.

- calibrate.py: linear / raking calibration with optional ratio bounds,
  closed-form GREG reference, table driver
"""

from .calibrate import (
    INTERCEPT,
    CalibrationResult,
    build_calibration_problem,
    calibrate_table,
    calibrate_weights,
    linear_calibration_weights,
)

__all__ = [
    "INTERCEPT",
    "CalibrationResult",
    "build_calibration_problem",
    "calibrate_table",
    "calibrate_weights",
    "linear_calibration_weights",
]
