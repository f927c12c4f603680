"""
Core dataclasses for the pairwise top-k ranking system.

Defines the belief state, comparison records, top-k stability state and the
session aggregate, with validation.
"""

from dataclasses import dataclass, field
from typing import Generic, Literal, TypeVar

import numpy as np

from .exceptions import ValidationError

T = TypeVar("T")

StopReason = Literal["confidence", "stability", "max-comparisons"]

# (winner_index, loser_index)
WinLoss = tuple[int, int]


@dataclass(frozen=True)
class StrengthEstimate:
    """MAP strengths and marginal posterior standard deviations."""

    mu: np.ndarray
    sigma: np.ndarray
    iterations: int = 0

    def __post_init__(self) -> None:
        """Validate vector shapes."""
        if self.mu.shape != self.sigma.shape:
            raise ValidationError(
                f"mu and sigma must have equal length, got {self.mu.shape} and {self.sigma.shape}"
            )

    @property
    def n(self) -> int:
        return int(self.mu.shape[0])

    @classmethod
    def prior(cls, n: int, prior_variance: float) -> "StrengthEstimate":
        """Belief state before any comparison: zero strengths, prior spread everywhere."""
        return cls(
            mu=np.zeros(n, dtype=np.float64),
            sigma=np.full(n, np.sqrt(prior_variance), dtype=np.float64),
        )


@dataclass(frozen=True)
class ComparisonRecord(Generic[T]):
    """One comparison expressed in the caller's item domain."""

    winner: T
    loser: T


@dataclass(frozen=True)
class ItemPair(Generic[T]):
    """Pair of caller items selected for the next comparison."""

    a: T
    b: T


@dataclass(frozen=True)
class ComparisonOutcome:
    """Result of recording a comparison."""

    stopped: bool
    stop_reason: StopReason | None = None


@dataclass(frozen=True)
class RemainingEstimate:
    """Forecast of rounds left until the stability stop fires."""

    low: float
    mid: float
    high: float


@dataclass(frozen=True)
class BindingConstraint:
    """Weakest top-k lower bound against strongest non-top-k upper bound."""

    weakest_index: int
    weakest_lcb: float
    strongest_index: int
    strongest_ucb: float

    @property
    def gap(self) -> float:
        return self.weakest_lcb - self.strongest_ucb


@dataclass
class TopKState:
    """Stability bookkeeping carried between rounds."""

    previous_top_k: list[int] | None = None
    stable_count: int = 0
    # True iff the top-k set changed that round; nothing recorded for the first round
    flip_history: list[bool] = field(default_factory=list)

    def reset_stability(self) -> None:
        """Forget the previous top-k set and the stable streak."""
        self.previous_top_k = None
        self.stable_count = 0

    def copy(self) -> "TopKState":
        return TopKState(
            previous_top_k=list(self.previous_top_k) if self.previous_top_k is not None else None,
            stable_count=self.stable_count,
            flip_history=list(self.flip_history),
        )


@dataclass
class RankingSession(Generic[T]):
    """Mutable state of one ranking session."""

    items: tuple[T, ...]
    estimate: StrengthEstimate
    history: list[WinLoss] = field(default_factory=list)
    records: list[ComparisonRecord[T]] = field(default_factory=list)
    top_k_state: TopKState = field(default_factory=TopKState)
    stopped: bool = False
    stop_reason: StopReason | None = None

    def __post_init__(self) -> None:
        """Validate item list."""
        if len(self.items) < 2:
            raise ValidationError(f"at least two items are required, got {len(self.items)}")
        if self.estimate.n != len(self.items):
            raise ValidationError(
                f"estimate covers {self.estimate.n} items but session has {len(self.items)}"
            )

    @property
    def n(self) -> int:
        return len(self.items)

    @property
    def round(self) -> int:
        return len(self.history)
