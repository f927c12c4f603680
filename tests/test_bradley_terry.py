"""
Tests for the Bayesian Bradley-Terry ranker.

Focus on the preference model, MAP refit and Laplace uncertainties.
"""

import math

import numpy as np
import pytest

from pairwise_topk.exceptions import NumericalFailureError, ValidationError
from pairwise_topk.rankers.bradley_terry import NEWTON_MAX_ITER, BayesianFitter, bayesian_refit, sigmoid, win_prob
from pairwise_topk.rankers.linalg import cholesky_decompose, cholesky_inverse, cholesky_solve


class TestPreferenceModel:
    """Test the sigmoid win probability."""

    def test_even_match_is_half(self):
        assert win_prob(0.0, 0.0) == 0.5
        assert sigmoid(0.0) == 0.5

    def test_symmetry(self):
        for x in [-7.5, -1.0, -0.1, 0.3, 2.0, 12.0]:
            assert sigmoid(x) + sigmoid(-x) == pytest.approx(1.0, abs=1e-12)

    def test_strictly_increasing(self):
        xs = np.linspace(-10, 10, 41)
        values = [sigmoid(float(x)) for x in xs]
        assert all(a < b for a, b in zip(values, values[1:]))

    def test_saturates_without_overflow(self):
        assert sigmoid(100.0) == pytest.approx(1.0, abs=1e-10)
        assert sigmoid(-1000.0) == pytest.approx(0.0, abs=1e-10)


class TestCholesky:
    """Test the dense Cholesky helpers."""

    def test_decompose_known_factor(self):
        # Arrange
        a = np.array([[4.0, 2.0], [2.0, 3.0]])

        # Act
        factor = cholesky_decompose(a)

        # Assert
        expected = np.array([[2.0, 0.0], [1.0, math.sqrt(2.0)]])
        np.testing.assert_allclose(factor, expected, atol=1e-12)
        np.testing.assert_allclose(factor @ factor.T, a, atol=1e-12)

    def test_solve_and_inverse(self):
        # Arrange
        a = np.array([[4.0, 1.0, 0.5], [1.0, 3.0, 0.2], [0.5, 0.2, 2.0]])
        b = np.array([1.0, -2.0, 0.5])
        factor = cholesky_decompose(a)

        # Act
        x = cholesky_solve(factor, b)
        inverse = cholesky_inverse(factor)

        # Assert
        np.testing.assert_allclose(a @ x, b, atol=1e-10)
        np.testing.assert_allclose(inverse, np.linalg.inv(a), atol=1e-10)

    def test_diagonal_inverse(self):
        inverse = cholesky_inverse(cholesky_decompose(np.diag([2.0, 4.0, 5.0])))
        np.testing.assert_allclose(np.diag(inverse), [0.5, 0.25, 0.2], atol=1e-12)

    def test_not_positive_definite_raises(self):
        with pytest.raises(NumericalFailureError):
            _ = cholesky_decompose(np.array([[1.0, 2.0], [2.0, 1.0]]))


class TestBayesianRefit:
    """Test MAP refit behavior through the public interface."""

    def test_empty_history_returns_prior(self):
        # Act
        estimate = bayesian_refit([], 4, 2.0)

        # Assert
        np.testing.assert_array_equal(estimate.mu, np.zeros(4))
        np.testing.assert_allclose(estimate.sigma, np.full(4, math.sqrt(2.0)))

    def test_first_item_is_pinned(self):
        # Arrange
        history = [(0, 1), (2, 0), (1, 2), (0, 2)]

        # Act
        estimate = bayesian_refit(history, 3, 1.0)

        # Assert
        assert estimate.mu[0] == 0.0
        assert estimate.sigma[0] == 0.0, "pinned item reports zero spread once history exists"
        assert np.all(estimate.sigma[1:] > 0)

    def test_single_comparison_matches_stationary_point(self):
        """1 beats 0 with unit prior: theta = 1 - sigmoid(theta), sigma = 1/sqrt(p(1-p) + 1)."""
        # Act
        estimate = bayesian_refit([(1, 0)], 2, 1.0)

        # Assert
        theta = float(estimate.mu[1])
        p = sigmoid(theta)
        assert theta == pytest.approx(1.0 - p, abs=1e-8)
        assert estimate.sigma[1] == pytest.approx(1.0 / math.sqrt(p * (1.0 - p) + 1.0), rel=1e-8)

    def test_winner_gets_higher_mu(self):
        estimate = bayesian_refit([(1, 2)], 3, 1.0)
        assert estimate.mu[1] > estimate.mu[2]

    def test_repeated_wins_separate_and_sharpen(self):
        """More wins of 1 over 2 widen the gap and shrink both sigmas."""
        # Arrange
        estimates = [bayesian_refit([(1, 2)] * r, 3, 1.0) for r in range(1, 7)]

        # Assert
        gaps = [e.mu[1] - e.mu[2] for e in estimates]
        assert all(a < b for a, b in zip(gaps, gaps[1:]))
        for item in (1, 2):
            sigmas = [e.sigma[item] for e in estimates]
            assert all(a > b for a, b in zip(sigmas, sigmas[1:]))

    def test_symmetric_matchups_give_equal_strengths(self):
        history = [(1, 2), (2, 1)] * 3
        estimate = bayesian_refit(history, 3, 1.0)
        assert estimate.mu[1] == pytest.approx(estimate.mu[2], abs=1e-9)

    def test_sigma_is_non_negative_and_shapes_match(self):
        history = [(3, 1), (1, 0), (2, 3), (3, 0), (2, 1)]
        estimate = bayesian_refit(history, 5, 0.5)
        assert estimate.mu.shape == estimate.sigma.shape == (5,)
        assert np.all(estimate.sigma >= 0)

    def test_terminates_within_iteration_cap(self):
        # One-sided evidence pushes strengths far apart
        history = [(1, 0)] * 40 + [(2, 1)] * 40
        estimate = bayesian_refit(history, 3, 100.0)
        assert 1 <= estimate.iterations <= NEWTON_MAX_ITER
        assert np.all(np.isfinite(estimate.mu))

    def test_deterministic(self):
        history = [(1, 2), (0, 3), (3, 1), (2, 0)]
        first = bayesian_refit(history, 4, 1.0)
        second = bayesian_refit(history, 4, 1.0)
        np.testing.assert_array_equal(first.mu, second.mu)
        np.testing.assert_array_equal(first.sigma, second.sigma)

    def test_out_of_range_index_raises(self):
        with pytest.raises(ValidationError):
            _ = bayesian_refit([(0, 3)], 3, 1.0)

    def test_non_positive_prior_variance_raises(self):
        with pytest.raises(ValidationError):
            _ = BayesianFitter(prior_variance=0.0)
