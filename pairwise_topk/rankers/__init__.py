"""
Ranker implementations.

Provides the Bayesian Bradley-Terry model used to estimate item strengths
from pairwise comparisons.

Available implementations:
- BayesianFitter: MAP Newton refit with Laplace-approximation uncertainties
"""

from .bradley_terry import BayesianFitter, bayesian_refit, sigmoid, win_prob
from .linalg import cholesky_decompose, cholesky_inverse, cholesky_solve

__all__ = [
    "BayesianFitter",
    "bayesian_refit",
    "cholesky_decompose",
    "cholesky_inverse",
    "cholesky_solve",
    "sigmoid",
    "win_prob",
]
