"""
Pairwise Top-K - Active top-k identification

Finds the k strongest of n items from as few noisy pairwise comparisons as
possible, using a Bayesian Bradley-Terry model with information-gain pair
selection and confidence/stability stopping.
"""

from .backends import ExecutorBackend, InProcessBackend
from .exceptions import (
    BackendError,
    ConfigurationError,
    IllegalStateError,
    InvalidItemError,
    NumericalFailureError,
    RankingError,
    ValidationError,
)
from .interfaces import ComputeBackend, Judge, UncertaintyEstimator
from .models import ComparisonOutcome, ComparisonRecord, ItemPair, RemainingEstimate, StrengthEstimate
from .orchestrator import RankingConfig, RankingOrchestrator

__version__ = "0.1.0"
__all__ = [
    "BackendError",
    "ComparisonOutcome",
    "ComparisonRecord",
    "ComputeBackend",
    "ConfigurationError",
    "ExecutorBackend",
    "IllegalStateError",
    "InProcessBackend",
    "InvalidItemError",
    "ItemPair",
    "Judge",
    "NumericalFailureError",
    "RankingConfig",
    "RankingError",
    "RankingOrchestrator",
    "RemainingEstimate",
    "StrengthEstimate",
    "UncertaintyEstimator",
    "ValidationError",
]
