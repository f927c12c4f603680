"""
Orchestrator for an active top-k ranking session.

Wraps the stateless engine in a session state machine (active <-> stopped)
and reaches the engine only through an injected ComputeBackend. After every
pair selection it speculatively precomputes both possible outcomes so the
backend cache is warm by the time the caller records the real one.
"""

import asyncio
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Generic, TypeVar

if TYPE_CHECKING:
    from loguru import Logger

from .estimators import DEFAULT_MONTE_CARLO_SAMPLES, DEFAULT_QUADRATURE_POINTS
from .exceptions import ConfigurationError, IllegalStateError, InvalidItemError, ValidationError
from .interfaces import ComputeBackend, EstimatorName
from .logging_config import get_logger
from .models import (
    ComparisonOutcome,
    ComparisonRecord,
    ItemPair,
    RankingSession,
    RemainingEstimate,
    StopReason,
    StrengthEstimate,
    WinLoss,
)
from .seeding import derive_seed
from .stopping import StoppingPolicy, argsort_descending

T = TypeVar("T")


@dataclass
class RankingConfig:
    """Configuration for a ranking session."""

    k: int = 5  # size of the top set to identify
    z: float = 1.96  # z-score for confidence bounds
    stability_window: int = 10  # consecutive unchanged rounds that stop the session
    max_comparisons: int = 80  # hard cap on comparisons
    prior_variance: float = 1.0
    confidence_threshold: float = 0.0  # gap the confidence bounds must exceed
    estimator: EstimatorName = "quadrature"
    monte_carlo_samples: int = DEFAULT_MONTE_CARLO_SAMPLES
    quadrature_points: int = DEFAULT_QUADRATURE_POINTS
    recency_discount: float = 0.5  # in (0, 1]; 1.0 disables the penalty
    seed: int = 0
    no_cache: bool = False  # bypass backend memoization
    speculate: bool = True  # precompute both outcomes after each selection

    def __post_init__(self):
        """Validate configuration."""
        if self.k < 1:
            raise ConfigurationError(f"k must be at least 1, got {self.k}")
        if self.z < 0:
            raise ConfigurationError(f"z must be non-negative, got {self.z}")
        if self.stability_window < 1:
            raise ConfigurationError(f"stability_window must be at least 1, got {self.stability_window}")
        if self.max_comparisons < 1:
            raise ConfigurationError(f"max_comparisons must be at least 1, got {self.max_comparisons}")
        if self.prior_variance <= 0:
            raise ConfigurationError(f"prior_variance must be positive, got {self.prior_variance}")
        if self.estimator not in ("quadrature", "monte-carlo"):
            raise ConfigurationError(f"estimator must be 'quadrature' or 'monte-carlo', got {self.estimator!r}")
        if self.monte_carlo_samples < 1:
            raise ConfigurationError(f"monte_carlo_samples must be positive, got {self.monte_carlo_samples}")
        if self.quadrature_points < 1:
            raise ConfigurationError(f"quadrature_points must be positive, got {self.quadrature_points}")
        if not (0.0 < self.recency_discount <= 1.0):
            raise ConfigurationError(f"recency_discount must be in (0, 1], got {self.recency_discount}")

    @property
    def precision(self) -> int:
        """Sample count or quadrature order for the configured estimator."""
        if self.estimator == "monte-carlo":
            return self.monte_carlo_samples
        return self.quadrature_points


@dataclass(frozen=True)
class SpeculativeResult:
    """Precomputed follow-up for one hypothetical outcome."""

    generation: int
    estimate: StrengthEstimate
    next_pair: tuple[int, int] | None  # None when the outcome would stop the session


class RankingOrchestrator(Generic[T]):
    """
    Session state machine over caller items.

    Mutating calls (``record_comparison``, ``undo_last_comparison``) commit
    only after the backend's authoritative refit returns, so a failure leaves
    the session exactly as it was. Overlapping mutating calls are rejected.
    """

    def __init__(self, items: Iterable[T], backend: ComputeBackend, config: RankingConfig | None = None):
        """
        Initialize orchestrator.

        Args:
            items: Candidate items (at least two, no duplicates)
            backend: Started (or about to be started) compute backend
            config: Session configuration, defaults when omitted

        Raises:
            ValidationError: if there are fewer than two items or duplicates
        """
        self.config: RankingConfig = config if config is not None else RankingConfig()
        self.backend: ComputeBackend = backend

        items = tuple(items)
        for index, item in enumerate(items):
            if items.index(item) != index:
                raise ValidationError(f"Duplicate item: {item!r}")

        self._session: RankingSession[T] = RankingSession(
            items=items,
            estimate=StrengthEstimate.prior(len(items), self.config.prior_variance),
        )
        self._policy: StoppingPolicy = StoppingPolicy(
            k=self.config.k,
            z=self.config.z,
            confidence_threshold=self.config.confidence_threshold,
            stability_window=self.config.stability_window,
            max_comparisons=self.config.max_comparisons,
        )

        self._busy: bool = False
        self._generation: int = 0
        self._speculated_generation: int | None = None
        self._speculative = dict[WinLoss, SpeculativeResult]()
        self._speculation_tasks = set[asyncio.Task[None]]()

        self.logger: Logger = get_logger("orchestrator")

    # ---- observers ----

    @property
    def items(self) -> tuple[T, ...]:
        return self._session.items

    @property
    def round(self) -> int:
        return self._session.round

    @property
    def stopped(self) -> bool:
        return self._session.stopped

    @property
    def stop_reason(self) -> StopReason | None:
        return self._session.stop_reason

    @property
    def mu(self) -> list[float]:
        return self._session.estimate.mu.tolist()

    @property
    def sigma(self) -> list[float]:
        return self._session.estimate.sigma.tolist()

    @property
    def top_k(self) -> list[T]:
        """Current top-k items, strongest first."""
        order = argsort_descending(self._session.estimate.mu)
        return [self._session.items[i] for i in order[: self.config.k]]

    @property
    def history(self) -> list[ComparisonRecord[T]]:
        return list(self._session.records)

    @property
    def index_history(self) -> list[WinLoss]:
        return list(self._session.history)

    @property
    def can_undo(self) -> bool:
        return self._session.round > 0

    @property
    def generation(self) -> int:
        """Bumped by every committed mutation."""
        return self._generation

    @property
    def speculative_pairs(self) -> dict[WinLoss, tuple[int, int] | None]:
        """Follow-up pairs precomputed for the current state, keyed by (winner, loser) index."""
        return {
            outcome: result.next_pair
            for outcome, result in self._speculative.items()
            if result.generation == self._generation
        }

    def estimate_remaining(self) -> RemainingEstimate | None:
        """Advisory forecast of rounds until the stability stop, capped by the budget left."""
        return self._policy.estimate_remaining(self._session.round, self._session.top_k_state)

    # ---- operations ----

    async def select_pair(self) -> ItemPair[T]:
        """
        Ask the backend for the most informative next pair.

        Raises:
            IllegalStateError: if the session has stopped
        """
        if self._session.stopped:
            raise IllegalStateError("Ranking has already stopped")

        generation = self._generation
        estimate = self._session.estimate
        history = list(self._session.history)
        i, j = await self._request_pair(estimate, history)

        if self.config.speculate and generation == self._generation and self._speculated_generation != generation:
            self._speculated_generation = generation
            self._launch_speculation(generation, history, i, j)

        return ItemPair(a=self._session.items[i], b=self._session.items[j])

    async def record_comparison(self, winner: T, loser: T) -> ComparisonOutcome:
        """
        Record one comparison, refit and evaluate the stopping policy.

        Raises:
            IllegalStateError: if the session has stopped or another mutation is in flight
            InvalidItemError: if an item is unknown or winner equals loser
        """
        self._ensure_idle()
        if self._session.stopped:
            raise IllegalStateError("Ranking has already stopped")

        winner_index = self._index_of(winner)
        loser_index = self._index_of(loser)
        if winner_index == loser_index:
            raise InvalidItemError(f"An item cannot be compared with itself: {winner!r}")

        history = [*self._session.history, (winner_index, loser_index)]
        estimate = await self._authoritative_refit(history)

        state = self._session.top_k_state.copy()
        reason = self._policy.evaluate(estimate, len(history), state)

        # Commit
        self._session.history = history
        self._session.records.append(ComparisonRecord(winner=winner, loser=loser))
        self._session.estimate = estimate
        self._session.top_k_state = state
        self._session.stopped = reason is not None
        self._session.stop_reason = reason
        self._advance_generation()

        if reason is not None:
            self.logger.info(f"Ranking stopped at round {self._session.round}: {reason}")
        else:
            self.logger.debug(f"Recorded {winner!r} > {loser!r} (round {self._session.round})")
        return ComparisonOutcome(stopped=reason is not None, stop_reason=reason)

    async def undo_last_comparison(self) -> ComparisonRecord[T]:
        """
        Remove the last comparison and refit over the truncated history.

        Clears any stop and forfeits the stability streak.

        Raises:
            IllegalStateError: if there is nothing to undo or another mutation is in flight
        """
        self._ensure_idle()
        if not self._session.history:
            raise IllegalStateError("No comparison to undo")

        history = self._session.history[:-1]
        estimate = await self._authoritative_refit(history)

        state = self._session.top_k_state.copy()
        if state.flip_history:
            _ = state.flip_history.pop()
        state.reset_stability()

        # Commit
        self._session.history = history
        record = self._session.records.pop()
        self._session.estimate = estimate
        self._session.top_k_state = state
        self._session.stopped = False
        self._session.stop_reason = None
        self._advance_generation()

        self.logger.info(f"Undid {record.winner!r} > {record.loser!r}, back to round {self._session.round}")
        return record

    async def replay(self, records: Iterable[ComparisonRecord[T]]) -> ComparisonOutcome:
        """
        Record previously collected comparisons in order.

        Stops early once a stopping criterion fires; remaining records are
        ignored. Useful for resuming a session the caller persisted.
        """
        outcome = ComparisonOutcome(stopped=self._session.stopped, stop_reason=self._session.stop_reason)
        replayed = 0
        for record in records:
            if self._session.stopped:
                break
            outcome = await self.record_comparison(record.winner, record.loser)
            replayed += 1
        self.logger.info(f"Replayed {replayed} comparisons (round {self._session.round})")
        return outcome

    def clone(self) -> "RankingOrchestrator[T]":
        """Independent copy of the session sharing the same backend."""
        copy = RankingOrchestrator(self._session.items, self.backend, self.config)
        copy._session = RankingSession(
            items=self._session.items,
            estimate=StrengthEstimate(
                mu=self._session.estimate.mu.copy(),
                sigma=self._session.estimate.sigma.copy(),
                iterations=self._session.estimate.iterations,
            ),
            history=list(self._session.history),
            records=list(self._session.records),
            top_k_state=self._session.top_k_state.copy(),
            stopped=self._session.stopped,
            stop_reason=self._session.stop_reason,
        )
        return copy

    async def drain_speculation(self) -> None:
        """Wait for in-flight speculative work to finish."""
        while self._speculation_tasks:
            _ = await asyncio.gather(*list(self._speculation_tasks), return_exceptions=True)

    # ---- internals ----

    def _ensure_idle(self) -> None:
        if self._busy:
            raise IllegalStateError("Another mutating call is still awaiting the backend")

    def _index_of(self, item: T) -> int:
        try:
            return self._session.items.index(item)
        except ValueError:
            raise InvalidItemError(f"Item not found in ranking: {item!r}") from None

    def _advance_generation(self) -> None:
        self._generation += 1
        self._speculative.clear()

    def _call_seed(self, history_length: int) -> int:
        return derive_seed(self.config.seed, history_length)

    async def _authoritative_refit(self, history: Sequence[WinLoss]) -> StrengthEstimate:
        self._busy = True
        try:
            estimate = await self.backend.bayesian_refit(
                history, self._session.n, self.config.prior_variance, no_cache=self.config.no_cache
            )
        finally:
            self._busy = False
        if estimate.n != self._session.n:
            raise ValidationError(f"Backend returned {estimate.n} strengths for {self._session.n} items")
        return estimate

    async def _request_pair(self, estimate: StrengthEstimate, history: Sequence[WinLoss]) -> tuple[int, int]:
        i, j = await self.backend.select_pair(
            estimate,
            history,
            self.config.k,
            self.config.prior_variance,
            self.config.recency_discount,
            estimator=self.config.estimator,
            precision=self.config.precision,
            seed=self._call_seed(len(history)),
            no_cache=self.config.no_cache,
        )
        if not (0 <= i < j < self._session.n):
            raise ValidationError(f"Backend returned an invalid pair ({i}, {j})")
        return i, j

    def _launch_speculation(self, generation: int, history: list[WinLoss], i: int, j: int) -> None:
        for outcome in ((i, j), (j, i)):
            task = asyncio.create_task(self._speculate(generation, history, outcome))
            self._speculation_tasks.add(task)
            task.add_done_callback(self._speculation_tasks.discard)

    async def _speculate(self, generation: int, history: list[WinLoss], outcome: WinLoss) -> None:
        """Refit and select for one hypothetical outcome without touching committed state."""
        try:
            hypothetical = [*history, outcome]
            estimate = await self.backend.bayesian_refit(
                hypothetical, self._session.n, self.config.prior_variance, no_cache=self.config.no_cache
            )
            if generation != self._generation:
                self.logger.debug(f"Discarding stale speculation for {outcome} (generation {generation})")
                return

            state = self._session.top_k_state.copy()
            would_stop = self._policy.evaluate(estimate, len(hypothetical), state) is not None
            next_pair = None if would_stop else await self._request_pair(estimate, hypothetical)
            if generation != self._generation:
                self.logger.debug(f"Discarding stale speculation for {outcome} (generation {generation})")
                return

            self._speculative[outcome] = SpeculativeResult(generation=generation, estimate=estimate, next_pair=next_pair)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.logger.debug(f"Speculation for {outcome} failed: {type(e).__name__}: {e}")
