"""
Unit tests for the isotonic QP builder and fitter.
"""

import numpy as np
import pytest
import sys

sys.path.insert(0, "src")

import cvxpy as cp

from convexfit.common.errors import InvalidInputError
from convexfit.isotonic.builder import build_isotonic_problem, fit_isotonic
from convexfit.isotonic.reference import COMPARE_TOL
from convexfit.isotonic.ties import TieMode


# Interior-point output is accurate to the documented comparison tolerance
ATOL = COMPARE_TOL


class TestPrimaryFit:
    """Tests for the default (primary) tie handling."""

    def test_collapses_violation(self):
        """[3, 1, 2] has no monotone ordering; the fit is the overall mean."""
        fit = fit_isotonic([1, 2, 3], [3.0, 1.0, 2.0])
        np.testing.assert_allclose(fit.fitted, [2.0, 2.0, 2.0], atol=ATOL)
        assert fit.status in ("optimal", "optimal_inaccurate")

    def test_already_monotonic_is_fixed_point(self):
        """A non-decreasing sequence is returned unchanged."""
        y = np.array([0.5, 1.0, 1.0, 2.5, 4.0])
        fit = fit_isotonic(np.arange(5), y)
        np.testing.assert_allclose(fit.fitted, y, atol=ATOL)

        again = fit_isotonic(np.arange(5), fit.fitted)
        np.testing.assert_allclose(again.fitted, fit.fitted, atol=ATOL)

    def test_output_keeps_input_positions(self):
        """Unsorted keys: fitted[i] belongs to values[i]."""
        keys = [2, 0, 1, 3]
        values = [1.0, 0.0, 3.0, 5.0]
        fit = fit_isotonic(keys, values)
        # Key order: 0 -> 0.0, 1 -> 3.0, 2 -> 1.0, 3 -> 5.0  =>  0, 2, 2, 5
        np.testing.assert_allclose(fit.fitted, [2.0, 0.0, 2.0, 5.0], atol=ATOL)

    def test_monotone_in_key_order(self):
        """For key_i < key_j the fit satisfies fit_i <= fit_j."""
        rng = np.random.default_rng(7)
        keys = rng.uniform(0, 10, size=25)
        values = np.sin(keys) + 0.1 * keys + rng.normal(0, 0.3, size=25)
        fit = fit_isotonic(keys, values)

        order = np.argsort(keys)
        assert np.all(np.diff(fit.fitted[order]) >= -1e-6)

    def test_ties_are_free(self):
        """Tied observations may keep different fitted values."""
        fit = fit_isotonic([1, 1, 2], [1.0, 3.0, 2.0], ties="primary")
        np.testing.assert_allclose(fit.fitted, [1.0, 2.5, 2.5], atol=ATOL)

    def test_scale_invariance(self):
        """Fitting c * values gives c * fit for c > 0."""
        keys = [1, 2, 2, 3, 4, 5]
        values = np.array([2.0, 1.0, 4.0, 3.0, 0.5, 6.0])
        base = fit_isotonic(keys, values)
        scaled = fit_isotonic(keys, 3.5 * values)
        np.testing.assert_allclose(scaled.fitted, 3.5 * base.fitted, atol=3.5 * ATOL)

    def test_single_observation(self):
        fit = fit_isotonic([10], [4.2])
        np.testing.assert_allclose(fit.fitted, [4.2], atol=ATOL)

    def test_string_keys(self):
        """Keys only need an order; strings sort lexicographically."""
        fit = fit_isotonic(["b", "a", "c"], [1.0, 2.0, 3.0])
        np.testing.assert_allclose(fit.fitted, [1.5, 1.5, 3.0], atol=ATOL)


class TestSecondaryFit:
    """Tests for secondary tie handling (flat within ties)."""

    def test_tied_values_equal(self):
        fit = fit_isotonic([1, 1, 2], [1.0, 3.0, 2.0], ties="secondary")
        assert abs(fit.fitted[0] - fit.fitted[1]) < 1e-6
        assert fit.fitted[1] <= fit.fitted[2] + 1e-6
        np.testing.assert_allclose(fit.fitted, [2.0, 2.0, 2.0], atol=ATOL)

    def test_groups_pooled_with_neighbors(self):
        fit = fit_isotonic([1, 2, 2, 3], [1.0, 5.0, 3.0, 2.0], ties=TieMode.SECONDARY)
        # Group means 1, 4, 2 -> pool (4 x2, 2 x1) to 10/3
        np.testing.assert_allclose(fit.fitted, [1.0, 10 / 3, 10 / 3, 10 / 3], atol=ATOL)


class TestTertiaryFit:
    """Tests for tertiary tie handling (ordered block means)."""

    def test_members_may_be_non_monotone(self):
        """Block means 2 and 2 are already ordered, so values are kept."""
        fit = fit_isotonic([1, 1, 2], [1.0, 3.0, 2.0], ties="tertiary")
        np.testing.assert_allclose(fit.fitted, [1.0, 3.0, 2.0], atol=ATOL)
        # Individual member above the next group: accepted for tertiary
        assert fit.fitted[1] > fit.fitted[2]

    def test_block_means_ordered(self):
        keys = [1, 1, 2, 2, 3]
        values = [4.0, 6.0, 1.0, 3.0, 2.0]
        fit = fit_isotonic(keys, values, ties="tertiary")
        means = fit.fitted_block_means
        assert np.all(np.diff(means) >= -1e-6)
        # Means 5, 2, 2 (weights 2, 2, 1) pool to 3.2; within-group offsets kept
        np.testing.assert_allclose(fit.fitted, [2.2, 4.2, 2.2, 4.2, 3.2], atol=ATOL)


class TestOptions:
    """Tests for weights, direction and solver options."""

    def test_weights_pull_toward_heavy_observation(self):
        fit = fit_isotonic([1, 2], [2.0, 0.0], weights=[3.0, 1.0])
        np.testing.assert_allclose(fit.fitted, [1.5, 1.5], atol=ATOL)

    def test_decreasing(self):
        fit = fit_isotonic([1, 2, 3, 4], [4.0, 1.0, 2.0, 0.0], increasing=False)
        np.testing.assert_allclose(fit.fitted, [4.0, 1.5, 1.5, 0.0], atol=ATOL)
        assert np.all(np.diff(fit.fitted) <= 1e-6)

    @pytest.mark.skipif("OSQP" not in cp.installed_solvers(), reason="OSQP not installed")
    def test_alternate_solver(self):
        fit = fit_isotonic([1, 2, 3], [3.0, 1.0, 2.0], solver="osqp")
        assert fit.solver == "OSQP"
        np.testing.assert_allclose(fit.fitted, [2.0, 2.0, 2.0], atol=1e-3)

    def test_to_frame(self):
        fit = fit_isotonic([1, 2, 3], [3.0, 1.0, 2.0])
        df = fit.to_frame()
        assert list(df.columns) == ["key", "value", "weight", "fitted", "residual"]
        np.testing.assert_allclose(df["residual"], [1.0, -1.0, 0.0], atol=ATOL)


class TestProblemConstruction:
    """Tests for the formulated QP."""

    def test_primary_constraint_count(self):
        problem, x, groups = build_isotonic_problem([1, 2, 3, 4], [1.0, 2.0, 3.0, 4.0])
        assert x.shape == (4,)
        assert len(groups) == 4
        assert len(problem.constraints) == 3

    def test_secondary_adds_equalities(self):
        problem, _, groups = build_isotonic_problem(
            [1, 1, 1, 2], [1.0, 2.0, 3.0, 4.0], ties="secondary"
        )
        assert len(groups) == 2
        # One vector equality for the tied block + one ordering constraint
        assert len(problem.constraints) == 2

    def test_problem_is_dcp(self):
        for mode in TieMode:
            problem, _, _ = build_isotonic_problem([1, 1, 2, 3], [3.0, 1.0, 2.0, 0.0], ties=mode)
            assert problem.is_dcp()


class TestInvalidInput:
    """Tests for input validation."""

    def test_empty_input(self):
        with pytest.raises(InvalidInputError):
            fit_isotonic([], [])

    def test_mismatched_lengths(self):
        with pytest.raises(InvalidInputError):
            fit_isotonic([1, 2, 3], [1.0, 2.0])

    def test_non_finite_values(self):
        with pytest.raises(InvalidInputError):
            fit_isotonic([1, 2], [1.0, np.nan])

    def test_missing_key(self):
        with pytest.raises(InvalidInputError):
            fit_isotonic([1.0, np.nan], [1.0, 2.0])

    def test_non_positive_weights(self):
        with pytest.raises(InvalidInputError):
            fit_isotonic([1, 2], [1.0, 2.0], weights=[1.0, 0.0])

    def test_unknown_tie_mode(self):
        with pytest.raises(InvalidInputError):
            fit_isotonic([1, 2], [1.0, 2.0], ties="quaternary")

    def test_invalid_input_is_value_error(self):
        with pytest.raises(ValueError):
            fit_isotonic([], [])


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
