"""
Quadrature top-k entropy surrogate.

Fast path for interactive use. For every item it computes the marginal
probability of ranking in the top-k by integrating over the item's own
posterior score with Gauss-Hermite quadrature; at each abscissa the number
of other items exceeding that score is Poisson-binomial, tracked with a
dynamic program truncated at k entries. The surrogate is the sum of binary
entropies of those marginals, which upper-bounds the entropy of the top-k
set itself by subadditivity. It does not always preserve the ordering of
candidate pairs by information gain.
"""

import math

import numpy as np
from numpy.polynomial.hermite import hermgauss
from scipy.special import ndtr
from typing_extensions import override

from ..exceptions import ConfigurationError
from ..interfaces import UncertaintyEstimator

DEFAULT_QUADRATURE_POINTS = 7

# Posterior spreads below this are treated as point masses
SIGMA_EPS = 1e-12


def binary_entropy(p: np.ndarray) -> np.ndarray:
    """Elementwise binary entropy in nats, with 0 log 0 = 0."""
    p = np.clip(p, 0.0, 1.0)
    q = 1.0 - p
    with np.errstate(divide="ignore", invalid="ignore"):
        h = -(np.where(p > 0, p * np.log(p), 0.0) + np.where(q > 0, q * np.log(q), 0.0))
    return h


class QuadratureEstimator(UncertaintyEstimator):
    """Gauss-Hermite + Poisson-binomial top-k membership surrogate."""

    def __init__(self, points: int = DEFAULT_QUADRATURE_POINTS):
        """
        Initialize quadrature estimator.

        Args:
            points: Gauss-Hermite order (number of abscissas)
        """
        if points <= 0:
            raise ConfigurationError(f"points must be positive, got {points}")
        self.points: int = points
        self.nodes, self.weights = hermgauss(points)

    def _exceed_probabilities(self, mu: np.ndarray, sigma: np.ndarray, x: np.ndarray) -> np.ndarray:
        """
        P(score_j > x[i, q]) for every other item j.

        Returns an (n_j, n_i, points) array with the j == i entries zeroed so
        an item never counts against itself.
        """
        n = mu.shape[0]
        mu_j = mu[:, np.newaxis, np.newaxis]
        sigma_j = sigma[:, np.newaxis, np.newaxis]
        certain = sigma_j < SIGMA_EPS
        safe_sigma = np.where(certain, 1.0, sigma_j)
        smooth = ndtr((mu_j - x[np.newaxis, :, :]) / safe_sigma)
        point_mass = (mu_j > x[np.newaxis, :, :]).astype(np.float64)
        exceed = np.where(certain, point_mass, smooth)
        exceed[np.arange(n), np.arange(n), :] = 0.0
        return exceed

    @override
    def membership_probabilities(self, mu: np.ndarray, sigma: np.ndarray, k: int) -> np.ndarray:
        """Per-item probability of ranking in the top-k."""
        mu = np.asarray(mu, dtype=np.float64)
        sigma = np.asarray(sigma, dtype=np.float64)
        n = mu.shape[0]

        # Abscissas of each item's own score distribution: (n, points)
        x = mu[:, np.newaxis] + math.sqrt(2.0) * sigma[:, np.newaxis] * self.nodes[np.newaxis, :]
        exceed = self._exceed_probabilities(mu, sigma, x)

        # table[i, q, c] = P(exactly c others processed so far exceed x[i, q]), c < k
        table = np.zeros((n, self.points, k), dtype=np.float64)
        table[:, :, 0] = 1.0
        for j in range(n):
            pj = exceed[j][:, :, np.newaxis]
            shifted = np.zeros_like(table)
            shifted[:, :, 1:] = table[:, :, :-1]
            table = table * (1.0 - pj) + shifted * pj

        at_most_k_minus_1 = table.sum(axis=2)
        p = at_most_k_minus_1 @ self.weights / math.sqrt(math.pi)
        return np.clip(p, 0.0, 1.0)

    @override
    def top_k_entropy(self, mu: np.ndarray, sigma: np.ndarray, k: int) -> float:
        """Sum of binary entropies of the top-k membership marginals (nats)."""
        p = self.membership_probabilities(mu, sigma, k)
        return float(np.sum(binary_entropy(p)))
