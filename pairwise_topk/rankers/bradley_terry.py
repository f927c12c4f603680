"""
Bayesian Bradley-Terry ranker.

Bradley-Terry preference model plus a full MAP refit of all item strengths
from the comparison history, with Laplace-approximation uncertainties.

References:
    Bradley, R. A., & Terry, M. E. (1952). Rank Analysis of Incomplete Block
      Designs: I. The Method of Paired Comparisons. Biometrika, 39(3/4).
    Caron, F., & Doucet, A. (2012). Efficient Bayesian Inference for
      Generalized Bradley-Terry Models. JCGS, 21(1).
"""

from collections.abc import Sequence
from typing import TYPE_CHECKING

import numpy as np
from scipy.special import expit

if TYPE_CHECKING:
    from loguru import Logger

from ..exceptions import ValidationError
from ..logging_config import get_logger
from ..models import StrengthEstimate, WinLoss
from .linalg import cholesky_decompose, cholesky_inverse, cholesky_solve

NEWTON_MAX_ITER = 50
NEWTON_TOL = 1e-8


def sigmoid(x: float) -> float:
    """Logistic function, stable for large |x|."""
    return float(expit(x))


def win_prob(mu_i: float, mu_j: float) -> float:
    """Probability that an item of strength ``mu_i`` beats one of strength ``mu_j``."""
    return sigmoid(mu_i - mu_j)


def _history_arrays(history: Sequence[WinLoss], n: int) -> tuple[np.ndarray, np.ndarray]:
    """Split history into winner/loser index arrays, validating the range."""
    pairs = np.asarray(history, dtype=np.intp).reshape(-1, 2)
    if pairs.size and (pairs.min() < 0 or pairs.max() >= n):
        raise ValidationError(f"history references an index outside [0, {n})")
    return pairs[:, 0], pairs[:, 1]


class BayesianFitter:
    """
    MAP estimation of Bradley-Terry strengths under a Gaussian prior.

    Maximizes
        sum_{(w,l)} log sigmoid(mu_w - mu_l) - sum_i mu_i^2 / (2 * prior_variance)
    with mu[0] pinned at 0 (strengths are only identifiable up to a constant).
    The remaining n-1 parameters are optimized by Newton-Raphson on a dense
    Hessian that is re-factored every iteration; sigma comes from the diagonal
    of the inverse Hessian at the optimum.

    Stateless between calls; one instance can be shared freely.
    """

    def __init__(
        self,
        prior_variance: float = 1.0,
        max_iterations: int = NEWTON_MAX_ITER,
        tolerance: float = NEWTON_TOL,
    ):
        """
        Initialize fitter.

        Args:
            prior_variance: Variance of the Gaussian prior on each strength
            max_iterations: Newton iteration cap (no error when reached)
            tolerance: Stop when the max-norm Newton step falls below this
        """
        if prior_variance <= 0:
            raise ValidationError(f"prior_variance must be positive, got {prior_variance}")
        self.prior_variance: float = prior_variance
        self.max_iterations: int = max_iterations
        self.tolerance: float = tolerance
        self.logger: Logger = get_logger("bayesian_fitter")

    def _derivatives(
        self, theta: np.ndarray, winners: np.ndarray, losers: np.ndarray
    ) -> tuple[np.ndarray, np.ndarray]:
        """Gradient and Hessian of the negative log-posterior w.r.t. the free parameters."""
        n = theta.shape[0] + 1
        mu = np.concatenate(([0.0], theta))

        p = expit(mu[winners] - mu[losers])
        q = 1.0 - p
        pq = p * q

        grad_full = np.zeros(n, dtype=np.float64)
        np.add.at(grad_full, winners, -q)
        np.add.at(grad_full, losers, q)

        # Each comparison adds a rank-2 update weighted by p(1-p)
        hess_full = np.zeros((n, n), dtype=np.float64)
        np.add.at(hess_full, (winners, winners), pq)
        np.add.at(hess_full, (losers, losers), pq)
        np.add.at(hess_full, (winners, losers), -pq)
        np.add.at(hess_full, (losers, winners), -pq)

        grad = grad_full[1:] + theta / self.prior_variance
        hess = np.ascontiguousarray(hess_full[1:, 1:])
        hess[np.diag_indices_from(hess)] += 1.0 / self.prior_variance
        return grad, hess

    def fit(self, history: Sequence[WinLoss], n: int) -> StrengthEstimate:
        """
        Refit all strengths from scratch over the full history.

        Args:
            history: (winner_index, loser_index) pairs in order
            n: Number of items

        Returns:
            StrengthEstimate with MAP mu and Laplace sigma

        Raises:
            ValidationError: if n < 1 or the history references unknown indices
            NumericalFailureError: if a Hessian is not positive definite
        """
        if n < 1:
            raise ValidationError(f"n must be at least 1, got {n}")

        if len(history) == 0:
            return StrengthEstimate.prior(n, self.prior_variance)

        winners, losers = _history_arrays(history, n)
        m = n - 1
        if m == 0:
            return StrengthEstimate(mu=np.zeros(1), sigma=np.zeros(1))

        theta = np.zeros(m, dtype=np.float64)
        iterations = 0
        converged = False
        for iterations in range(1, self.max_iterations + 1):
            grad, hess = self._derivatives(theta, winners, losers)
            factor = cholesky_decompose(hess)
            delta = cholesky_solve(factor, grad)
            theta -= delta
            if np.max(np.abs(delta)) < self.tolerance:
                converged = True
                break

        if not converged:
            self.logger.warning(
                f"Newton refit hit the {self.max_iterations}-iteration cap (n={n}, history={len(history)})"
            )

        # Laplace approximation at the final point
        _, final_hess = self._derivatives(theta, winners, losers)
        inverse = cholesky_inverse(cholesky_decompose(final_hess))

        mu = np.concatenate(([0.0], theta))
        sigma = np.empty(n, dtype=np.float64)
        sigma[0] = 0.0  # pinned
        sigma[1:] = np.sqrt(np.maximum(0.0, np.diag(inverse)))

        self.logger.debug(f"Refit n={n} history={len(history)} in {iterations} Newton iterations")
        return StrengthEstimate(mu=mu, sigma=sigma, iterations=iterations)


def bayesian_refit(history: Sequence[WinLoss], n: int, prior_variance: float) -> StrengthEstimate:
    """Functional form of ``BayesianFitter(prior_variance).fit(history, n)``."""
    return BayesianFitter(prior_variance).fit(history, n)
