"""
Uncertainty estimator implementations.

Provides implementations of the UncertaintyEstimator interface for scoring
how uncertain the identity of the top-k set still is.

Available implementations:
- QuadratureEstimator: Gauss-Hermite + Poisson-binomial surrogate (default)
- MonteCarloEstimator: Sampling reference used to validate the surrogate
"""

from ..exceptions import ConfigurationError
from ..interfaces import EstimatorName, UncertaintyEstimator
from ..seeding import Xorshift32
from .monte_carlo import MonteCarloEstimator
from .quadrature import DEFAULT_QUADRATURE_POINTS, QuadratureEstimator, binary_entropy

DEFAULT_MONTE_CARLO_SAMPLES = 500


def make_estimator(
    name: EstimatorName = "quadrature",
    *,
    samples: int = DEFAULT_MONTE_CARLO_SAMPLES,
    points: int = DEFAULT_QUADRATURE_POINTS,
    seed: int = 0,
) -> UncertaintyEstimator:
    """
    Build an estimator by name.

    Args:
        name: "quadrature" or "monte-carlo"
        samples: Monte Carlo sample count
        points: Quadrature order
        seed: Seed for the Monte Carlo generator (ignored by quadrature)
    """
    if name == "quadrature":
        return QuadratureEstimator(points)
    if name == "monte-carlo":
        return MonteCarloEstimator(samples, Xorshift32(seed))
    raise ConfigurationError(f"Unknown estimator: {name}")


__all__ = [
    "DEFAULT_MONTE_CARLO_SAMPLES",
    "DEFAULT_QUADRATURE_POINTS",
    "MonteCarloEstimator",
    "QuadratureEstimator",
    "binary_entropy",
    "make_estimator",
]
