"""
Information-gain pair selector.

Implements expected-entropy-reduction sampling for active learning: every
candidate pair is scored by simulating both outcomes, refitting the model,
and measuring how uncertain the top-k set would remain.

References:
    Chaloner, K., & Verdinelli, I. (1995). Bayesian Experimental Design:
      A Review. Statistical Science, 10(3).
    MacKay, D. J. C. (1992). Information-Based Objective Functions for
      Active Model Selection. Neural Computation, 4(4).
"""

from collections.abc import Sequence
from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from loguru import Logger

from ..exceptions import ConfigurationError, ValidationError
from ..interfaces import UncertaintyEstimator
from ..logging_config import get_logger
from ..models import WinLoss
from ..rankers.bradley_terry import BayesianFitter, win_prob


def compute_information_gain(
    i: int,
    j: int,
    mu: np.ndarray,
    sigma: np.ndarray,
    history: Sequence[WinLoss],
    k: int,
    n: int,
    prior_variance: float,
    estimator: UncertaintyEstimator,
    fitter: BayesianFitter | None = None,
) -> float:
    """
    Negative expected posterior top-k entropy after comparing i and j.

    Higher is better (lower expected remaining uncertainty). ``sigma`` is
    part of the belief state but only ``mu`` drives the outcome probability.
    """
    fitter = fitter or BayesianFitter(prior_variance)
    p_i_wins = win_prob(float(mu[i]), float(mu[j]))
    p_j_wins = 1.0 - p_i_wins

    refit_i = fitter.fit([*history, (i, j)], n)
    entropy_if_i_wins = estimator.top_k_entropy(refit_i.mu, refit_i.sigma, k)

    refit_j = fitter.fit([*history, (j, i)], n)
    entropy_if_j_wins = estimator.top_k_entropy(refit_j.mu, refit_j.sigma, k)

    return -(p_i_wins * entropy_if_i_wins + p_j_wins * entropy_if_j_wins)


class InformationGainSelector:
    """
    Exhaustive information-gain selector over all C(n, 2) pairs.

    Pairs sharing items with the most recent comparison are penalized by
    dividing their (negative) gain by ``recency_discount`` once per shared
    item, which discourages showing the same item twice in a row.
    """

    def __init__(self, estimator: UncertaintyEstimator, recency_discount: float = 1.0):
        """
        Initialize information-gain selector.

        Args:
            estimator: Top-k uncertainty estimator used to score outcomes
            recency_discount: Multiplier in (0, 1]; 1.0 disables the penalty
        """
        if not (0.0 < recency_discount <= 1.0):
            raise ConfigurationError(f"recency_discount must be in (0, 1], got {recency_discount}")
        self.estimator: UncertaintyEstimator = estimator
        self.recency_discount: float = recency_discount
        self.logger: Logger = get_logger("information_gain_selector")

    def select_pair(
        self,
        mu: np.ndarray,
        sigma: np.ndarray,
        history: Sequence[WinLoss],
        k: int,
        n: int,
        prior_variance: float,
    ) -> tuple[int, int]:
        """
        Return the most informative pair (i, j) with i < j.

        Ties keep the first pair in ascending (i, j) order.
        """
        if n < 2:
            raise ValidationError(f"need at least two items to select a pair, got {n}")

        fitter = BayesianFitter(prior_variance)
        last_pair = history[-1] if history else None

        best_pair = (0, 1)
        best_gain = -np.inf
        for i in range(n):
            for j in range(i + 1, n):
                gain = compute_information_gain(
                    i, j, mu, sigma, history, k, n, prior_variance, self.estimator, fitter
                )
                if last_pair is not None:
                    if i in last_pair:
                        gain /= self.recency_discount
                    if j in last_pair:
                        gain /= self.recency_discount

                if gain > best_gain:
                    best_gain = gain
                    best_pair = (i, j)

        self.logger.debug(f"Selected pair {best_pair} with gain {best_gain:.4f} (history={len(history)})")
        return best_pair


def select_pair(
    mu: np.ndarray,
    sigma: np.ndarray,
    history: Sequence[WinLoss],
    k: int,
    n: int,
    prior_variance: float,
    estimator: UncertaintyEstimator,
    recency_discount: float = 1.0,
) -> tuple[int, int]:
    """Functional form of ``InformationGainSelector.select_pair``."""
    selector = InformationGainSelector(estimator, recency_discount)
    return selector.select_pair(mu, sigma, history, k, n, prior_variance)
