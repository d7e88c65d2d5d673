"""
Tie handling for isotonic regression.

Observations sharing an identical key form a tie group. How the fit treats
the members of a group is selected per call:

    primary    ordering enforced only between groups; members of one group
               are free relative to each other
    secondary  members of a group share a single fitted value
    tertiary   only the (weighted) block means are ordered; individual
               members may be non-monotone
"""

from enum import Enum
from typing import List, Optional, Sequence, Union

import numpy as np

from convexfit.common.errors import InvalidInputError


class TieMode(str, Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"
    TERTIARY = "tertiary"

    @classmethod
    def parse(cls, value: Union[str, "TieMode", None]) -> "TieMode":
        if value is None:
            return cls.PRIMARY
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            choices = ", ".join(m.value for m in cls)
            raise InvalidInputError(f"Unknown tie mode {value!r} (expected one of: {choices})") from None


def group_ties(keys: Sequence) -> List[np.ndarray]:
    """
    Partition observation indices into tie groups.

    Groups are ordered by key ascending; indices inside a group keep input order.
    """
    keys = np.asarray(keys)
    if keys.size == 0:
        return []
    _, inverse = np.unique(keys, return_inverse=True)
    inverse = inverse.ravel()
    order = np.argsort(inverse, kind="stable")
    counts = np.bincount(inverse)
    return np.split(order, np.cumsum(counts)[:-1])


def block_means(
    values: np.ndarray,
    groups: List[np.ndarray],
    weights: Optional[np.ndarray] = None,
) -> np.ndarray:
    """Weighted mean of values within each tie group."""
    values = np.asarray(values, dtype=float)
    if weights is None:
        weights = np.ones(len(values))
    return np.array([
        np.dot(weights[g], values[g]) / weights[g].sum() for g in groups
    ])


def block_weights(groups: List[np.ndarray], weights: Optional[np.ndarray] = None) -> np.ndarray:
    if weights is None:
        return np.array([float(len(g)) for g in groups])
    return np.array([weights[g].sum() for g in groups])
