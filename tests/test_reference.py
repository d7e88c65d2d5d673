"""
Unit tests comparing the convex fit with scipy's isotonic regression.
"""

import numpy as np
import pytest
import sys

sys.path.insert(0, "src")

from convexfit.isotonic.builder import fit_isotonic
from convexfit.isotonic.reference import COMPARE_TOL, compare_fits, reference_fit
from convexfit.isotonic.ties import TieMode


# Tighter Clarabel gaps so agreement is judged on the formulation, not solver stopping
TIGHT = {"solver": "CLARABEL", "tol_gap_abs": 1e-10, "tol_gap_rel": 1e-10, "tol_feas": 1e-10}


def _tied_sample(seed: int, n: int = 30):
    rng = np.random.default_rng(seed)
    keys = rng.integers(0, 8, size=n)
    values = 0.5 * keys + rng.normal(0, 1.0, size=n)
    weights = rng.uniform(0.5, 2.0, size=n)
    return keys, values, weights


class TestReferenceFit:
    """Tests for the scipy-backed reference."""

    def test_known_values(self):
        np.testing.assert_allclose(reference_fit([1, 2, 3], [3.0, 1.0, 2.0]), [2.0, 2.0, 2.0])

    def test_primary_ties(self):
        np.testing.assert_allclose(
            reference_fit([1, 1, 2], [1.0, 3.0, 2.0], ties="primary"), [1.0, 2.5, 2.5]
        )

    def test_secondary_ties(self):
        np.testing.assert_allclose(
            reference_fit([1, 1, 2], [1.0, 3.0, 2.0], ties="secondary"), [2.0, 2.0, 2.0]
        )

    def test_tertiary_ties(self):
        np.testing.assert_allclose(
            reference_fit([1, 1, 2], [1.0, 3.0, 2.0], ties="tertiary"), [1.0, 3.0, 2.0]
        )

    def test_decreasing(self):
        np.testing.assert_allclose(
            reference_fit([1, 2, 3, 4], [4.0, 1.0, 2.0, 0.0], increasing=False),
            [4.0, 1.5, 1.5, 0.0],
        )


class TestConvexAgreesWithReference:
    """The generic QP and the specialized algorithm give the same fit."""

    @pytest.mark.parametrize("mode", list(TieMode))
    def test_unweighted(self, mode):
        keys, values, _ = _tied_sample(seed=11)
        fit = fit_isotonic(keys, values, ties=mode, **TIGHT)
        result = compare_fits(fit)
        assert result.agree, f"{mode.value}: max diff {result.max_abs_diff}"
        assert result.objective_convex == pytest.approx(result.objective_reference, abs=1e-5)

    @pytest.mark.parametrize("mode", list(TieMode))
    def test_weighted(self, mode):
        keys, values, weights = _tied_sample(seed=23)
        fit = fit_isotonic(keys, values, ties=mode, weights=weights, **TIGHT)
        assert compare_fits(fit).max_abs_diff <= COMPARE_TOL

    def test_decreasing(self):
        keys, values, _ = _tied_sample(seed=5)
        fit = fit_isotonic(keys, -values, ties="secondary", increasing=False, **TIGHT)
        assert compare_fits(fit).agree

    def test_explicit_reference(self):
        fit = fit_isotonic([1, 2, 3], [3.0, 1.0, 2.0])
        result = compare_fits(fit, reference=np.array([2.0, 2.0, 2.0]))
        assert result.agree
        assert result.rms_diff < COMPARE_TOL

    def test_disagreement_reported(self):
        fit = fit_isotonic([1, 2, 3], [3.0, 1.0, 2.0])
        result = compare_fits(fit, reference=np.array([1.0, 2.0, 3.0]))
        assert not result.agree
        assert result.max_abs_diff == pytest.approx(1.0, abs=1e-4)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
