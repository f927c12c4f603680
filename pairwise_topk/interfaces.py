"""
Abstract base classes and wire types for the pairwise top-k ranking system.

The math components are synchronous; only the compute backend boundary is
asynchronous so callers can keep heavy work off their critical path.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any, Generic, Literal, TypedDict, TypeVar

import numpy as np
from typing_extensions import NotRequired

from .exceptions import BackendError
from .models import ComparisonRecord, StrengthEstimate, WinLoss

T = TypeVar("T")

EstimatorName = Literal["quadrature", "monte-carlo"]


class SelectPairRequest(TypedDict):
    """Ask the backend for the most informative next pair."""
    type: Literal["selectPair"]
    id: int
    mu: list[float]
    sigma: list[float]
    history: list[WinLoss]
    k: int
    n: int
    prior_variance: float
    recency_discount: float
    no_cache: NotRequired[bool]
    estimator: NotRequired[EstimatorName]
    precision: NotRequired[int]  # sample count or quadrature order
    seed: NotRequired[int]


class BayesianRefitRequest(TypedDict):
    """Ask the backend for a full refit over the given history."""
    type: Literal["bayesianRefit"]
    id: int
    history: list[WinLoss]
    n: int
    prior_variance: float
    no_cache: NotRequired[bool]


class SelectPairResponse(TypedDict):
    type: Literal["selectPair"]
    id: int
    pair: tuple[int, int]


class BayesianRefitResponse(TypedDict):
    type: Literal["bayesianRefit"]
    id: int
    mu: list[float]
    sigma: list[float]


BackendRequest = SelectPairRequest | BayesianRefitRequest
BackendResponse = SelectPairResponse | BayesianRefitResponse


class UncertaintyEstimator(ABC):
    """Scores how uncertain the identity of the top-k set still is."""

    @abstractmethod
    def top_k_entropy(self, mu: np.ndarray, sigma: np.ndarray, k: int) -> float:
        """Return an entropy-like uncertainty score (nats) for the top-k set."""
        pass

    @abstractmethod
    def membership_probabilities(self, mu: np.ndarray, sigma: np.ndarray, k: int) -> np.ndarray:
        """Return each item's probability of belonging to the top-k set."""
        pass


class ComputeBackend(ABC):
    """
    Request/response channel to the statistical engine.

    Responses echo the numeric id of the request they answer. The contract is
    the same whether the work runs in-process or on a worker pool.
    """

    @abstractmethod
    async def start(self) -> None:
        """Acquire worker resources."""
        pass

    @abstractmethod
    async def shutdown(self) -> None:
        """Release worker resources."""
        pass

    @abstractmethod
    def next_request_id(self) -> int:
        """Allocate a fresh correlation id."""
        pass

    @abstractmethod
    async def request(self, request: BackendRequest) -> BackendResponse:
        """Send one request and wait for the response carrying its id."""
        pass

    async def select_pair(
        self,
        estimate: StrengthEstimate,
        history: Sequence[WinLoss],
        k: int,
        prior_variance: float,
        recency_discount: float,
        *,
        estimator: EstimatorName = "quadrature",
        precision: int | None = None,
        seed: int = 0,
        no_cache: bool = False,
    ) -> tuple[int, int]:
        """Build a selectPair request and return the chosen index pair."""
        request: SelectPairRequest = {
            "type": "selectPair",
            "id": self.next_request_id(),
            "mu": estimate.mu.tolist(),
            "sigma": estimate.sigma.tolist(),
            "history": [(int(w), int(l)) for w, l in history],
            "k": k,
            "n": estimate.n,
            "prior_variance": prior_variance,
            "recency_discount": recency_discount,
            "no_cache": no_cache,
            "estimator": estimator,
            "seed": seed,
        }
        if precision is not None:
            request["precision"] = precision
        response = await self.request(request)
        if response["type"] != "selectPair":
            raise BackendError(f"expected selectPair response, got {response['type']}")
        i, j = response["pair"]
        return int(i), int(j)

    async def bayesian_refit(
        self,
        history: Sequence[WinLoss],
        n: int,
        prior_variance: float,
        *,
        no_cache: bool = False,
    ) -> StrengthEstimate:
        """Build a bayesianRefit request and return the refit belief state."""
        request: BayesianRefitRequest = {
            "type": "bayesianRefit",
            "id": self.next_request_id(),
            "history": [(int(w), int(l)) for w, l in history],
            "n": n,
            "prior_variance": prior_variance,
            "no_cache": no_cache,
        }
        response = await self.request(request)
        if response["type"] != "bayesianRefit":
            raise BackendError(f"expected bayesianRefit response, got {response['type']}")
        return StrengthEstimate(
            mu=np.asarray(response["mu"], dtype=np.float64),
            sigma=np.asarray(response["sigma"], dtype=np.float64),
        )

    async def __aenter__(self) -> "ComputeBackend":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.shutdown()


class Judge(ABC, Generic[T]):
    """Interface for deciding pairwise comparisons (a stand-in for a human)."""

    @abstractmethod
    def judge_pair(self, a: T, b: T) -> ComparisonRecord[T]:
        """
        Decide which of two items wins.

        Args:
            a: First item shown
            b: Second item shown

        Returns:
            ComparisonRecord with winner and loser
        """
        pass


class ItemSource(ABC, Generic[T]):
    """Interface for loading the candidate items of a session."""

    @abstractmethod
    def list_items(self) -> Sequence[T]:
        """Return all candidate items."""
        pass
