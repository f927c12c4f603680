"""
Stopping rules for a ranking session.

Three independent criteria, checked in order after every comparison:
confidence separation, top-k stability and a hard cap on comparisons. Also
provides an advisory forecast of how many rounds remain until the stability
rule fires.

References:
    Kalyanakrishnan, S., Tewari, A., Auer, P., & Stone, P. (2012). PAC Subset
      Selection in Stochastic Multi-Armed Bandits. ICML.
    Kaufmann, E., & Kalyanakrishnan, S. (2013). Information Complexity in
      Bandit Subset Selection. COLT.
"""

import math
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from loguru import Logger

from .logging_config import get_logger
from .models import BindingConstraint, RemainingEstimate, StopReason, StrengthEstimate, TopKState

# Forecaster constants
FLIP_WINDOW = 15
SE_SCALE = 0.675
MIN_FLIP_PROB = 0.01
MAX_FLIP_PROB = 0.99


def argsort_descending(mu: np.ndarray) -> list[int]:
    """Indices sorted by descending mu; ties keep ascending index order."""
    return np.argsort(-np.asarray(mu), kind="stable").tolist()


def top_k_indices(mu: np.ndarray, k: int) -> list[int]:
    """Current top-k set as ascending indices."""
    return sorted(argsort_descending(mu)[:k])


def find_binding_constraint(mu: np.ndarray, sigma: np.ndarray, k: int, z: float) -> BindingConstraint | None:
    """
    Weakest top-k item (lowest LCB) against strongest other item (highest UCB).

    Returns None when k >= n, i.e. every item is in the top-k.
    """
    order = argsort_descending(mu)
    top, rest = order[:k], order[k:]
    if not rest:
        return None

    weakest = min(top, key=lambda i: mu[i] - z * sigma[i])
    strongest = max(rest, key=lambda j: mu[j] + z * sigma[j])
    return BindingConstraint(
        weakest_index=weakest,
        weakest_lcb=float(mu[weakest] - z * sigma[weakest]),
        strongest_index=strongest,
        strongest_ucb=float(mu[strongest] + z * sigma[strongest]),
    )


def check_confidence_stop(
    mu: np.ndarray, sigma: np.ndarray, k: int, z: float, confidence_threshold: float = 0.0
) -> bool:
    """True when the top-k confidence bounds clear everything else by the threshold."""
    constraint = find_binding_constraint(mu, sigma, k, z)
    if constraint is None:
        return True
    return constraint.gap > confidence_threshold


@dataclass(frozen=True)
class StabilityResult:
    """Outcome of one stability check."""

    stopped: bool
    top_k: list[int]
    stable_count: int


def check_stability_stop(
    mu: np.ndarray,
    k: int,
    previous_top_k: Sequence[int] | None,
    stable_count: int,
    stability_window: int,
) -> StabilityResult:
    """
    Compare the current top-k set with the previous round's.

    An unchanged set extends the streak by one, any change resets it to 0.
    """
    current = top_k_indices(mu, k)
    same = previous_top_k is not None and list(previous_top_k) == current
    new_count = stable_count + 1 if same else 0
    return StabilityResult(stopped=new_count >= stability_window, top_k=current, stable_count=new_count)


def check_hard_cap(round_count: int, max_comparisons: int) -> bool:
    """True once the comparison budget is spent."""
    return round_count >= max_comparisons


def _expected_rounds(flip_prob: float, needed: int) -> float:
    """
    Expected rounds to observe ``needed`` consecutive non-flips.

    Geometric waiting time for a run of successes with probability 1 - p.
    """
    if needed <= 0:
        return 0.0
    if flip_prob < MIN_FLIP_PROB:
        return float(needed)
    inv_q = 1.0 / (1.0 - flip_prob)
    try:
        growth = math.expm1(needed * math.log(inv_q))
    except OverflowError:
        return math.inf
    return inv_q * growth / (inv_q - 1.0)


def estimate_stability_stop(
    flip_history: Sequence[bool],
    stable_count: int,
    stability_window: int,
    max_remaining: int | None = None,
) -> RemainingEstimate | None:
    """
    Forecast rounds remaining until the stability stop triggers.

    Args:
        flip_history: Per-round flags, True when the top-k set changed
        stable_count: Current consecutive stable rounds
        stability_window: Streak length that stops the session
        max_remaining: Optional cap on the forecast (e.g. budget left)

    Returns:
        RemainingEstimate, or None when there is too little history or the
        interval is too wide to be informative
    """
    cap = max(0, max_remaining) if max_remaining is not None else None
    if cap == 0:
        return RemainingEstimate(low=0.0, mid=0.0, high=0.0)

    if len(flip_history) < stability_window:
        return None

    needed = stability_window - stable_count

    # Jeffreys-smoothed flip rate over the recent window
    window = min(FLIP_WINDOW, len(flip_history))
    flips = sum(1 for flipped in flip_history[len(flip_history) - window:] if flipped)
    p = (flips + 0.5) / (window + 1)

    se = SE_SCALE * math.sqrt(p * (1.0 - p) / (window + 1))
    p_low = max(0.0, p - se)
    p_high = min(MAX_FLIP_PROB, p + se)

    low = _expected_rounds(p_low, needed)
    mid = _expected_rounds(p, needed)
    high = _expected_rounds(p_high, needed)

    if cap is not None:
        low, mid, high = min(low, cap), min(mid, cap), min(high, cap)

    if high > 3 * low and high - low > stability_window:
        return None

    return RemainingEstimate(low=low, mid=mid, high=high)


class StoppingPolicy:
    """
    Applies the three stopping criteria in order and maintains top-k state.

    The stability streak and flip history live in a TopKState owned by the
    session; ``evaluate`` updates it in place.
    """

    def __init__(
        self,
        k: int,
        z: float = 1.96,
        confidence_threshold: float = 0.0,
        stability_window: int = 10,
        max_comparisons: int = 80,
    ):
        """
        Initialize stopping policy.

        Args:
            k: Size of the top set
            z: Z-score for the confidence bounds
            confidence_threshold: Gap the bounds must exceed
            stability_window: Consecutive unchanged rounds that stop the session
            max_comparisons: Hard cap on comparisons
        """
        self.k: int = k
        self.z: float = z
        self.confidence_threshold: float = confidence_threshold
        self.stability_window: int = stability_window
        self.max_comparisons: int = max_comparisons
        self.logger: Logger = get_logger("stopping_policy")

    def evaluate(self, estimate: StrengthEstimate, round_count: int, state: TopKState) -> StopReason | None:
        """
        Check confidence, then stability, then the hard cap.

        A confidence stop returns before the stability bookkeeping runs.
        """
        if check_confidence_stop(estimate.mu, estimate.sigma, self.k, self.z, self.confidence_threshold):
            self.logger.debug(f"Confidence stop at round {round_count}")
            return "confidence"

        stability = check_stability_stop(
            estimate.mu, self.k, state.previous_top_k, state.stable_count, self.stability_window
        )
        if state.previous_top_k is not None:
            state.flip_history.append(stability.stable_count == 0)
        state.previous_top_k = stability.top_k
        state.stable_count = stability.stable_count
        if stability.stopped:
            self.logger.debug(f"Stability stop at round {round_count}")
            return "stability"

        if check_hard_cap(round_count, self.max_comparisons):
            self.logger.debug(f"Hard cap reached at round {round_count}")
            return "max-comparisons"

        return None

    def estimate_remaining(self, round_count: int, state: TopKState) -> RemainingEstimate | None:
        """Forecast capped by the comparisons left in the budget."""
        max_remaining = max(0, self.max_comparisons - round_count)
        return estimate_stability_stop(state.flip_history, state.stable_count, self.stability_window, max_remaining)
