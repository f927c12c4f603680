"""
Request handler shared by every compute backend.

Decodes a backend request, runs the statistical engine and encodes the
response. Results are pure functions of the request fields, so both request
kinds are memoized; ``no_cache`` bypasses the cache for reads and writes.
"""

import threading
from collections import OrderedDict
from collections.abc import Hashable
from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from loguru import Logger

from ..estimators import make_estimator
from ..exceptions import BackendError, ConfigurationError
from ..interfaces import (
    BackendRequest,
    BackendResponse,
    BayesianRefitRequest,
    BayesianRefitResponse,
    SelectPairRequest,
    SelectPairResponse,
)
from ..logging_config import get_logger
from ..pair_selectors import InformationGainSelector
from ..rankers.bradley_terry import bayesian_refit

DEFAULT_CACHE_SIZE = 4096


class RequestHandler:
    """Runs backend requests against two bounded LRU caches."""

    def __init__(self, cache_size: int = DEFAULT_CACHE_SIZE):
        if cache_size <= 0:
            raise ConfigurationError(f"cache_size must be positive, got {cache_size}")
        self.cache_size: int = cache_size
        self._refit_cache = OrderedDict[Hashable, tuple[list[float], list[float]]]()
        self._pair_cache = OrderedDict[Hashable, tuple[int, int]]()
        self._lock = threading.Lock()
        self.hits: int = 0
        self.misses: int = 0
        self.logger: Logger = get_logger("request_handler")

    def handle(self, request: BackendRequest) -> BackendResponse:
        """Dispatch a request by its ``type`` and echo its id in the response."""
        request_type = request.get("type")
        if request_type == "bayesianRefit":
            return self._handle_refit(request)  # type: ignore[arg-type]
        if request_type == "selectPair":
            return self._handle_select_pair(request)  # type: ignore[arg-type]
        raise BackendError(f"Unknown request type: {request_type!r}")

    def clear_cache(self) -> None:
        with self._lock:
            self._refit_cache.clear()
            self._pair_cache.clear()
            self.hits = 0
            self.misses = 0

    def cache_info(self) -> dict[str, int]:
        """Cache sizes and hit counters."""
        with self._lock:
            return {
                "refit_entries": len(self._refit_cache),
                "pair_entries": len(self._pair_cache),
                "hits": self.hits,
                "misses": self.misses,
            }

    def _lookup(self, cache: OrderedDict, key: Hashable):
        with self._lock:
            if key in cache:
                cache.move_to_end(key)
                self.hits += 1
                return cache[key]
            self.misses += 1
            return None

    def _store(self, cache: OrderedDict, key: Hashable, value) -> None:
        with self._lock:
            cache[key] = value
            cache.move_to_end(key)
            while len(cache) > self.cache_size:
                _ = cache.popitem(last=False)

    def _handle_refit(self, request: BayesianRefitRequest) -> BayesianRefitResponse:
        history = _history_key(request["history"])
        n = int(request["n"])
        prior_variance = float(request["prior_variance"])
        use_cache = not request.get("no_cache", False)
        key = (n, prior_variance, history)

        cached = self._lookup(self._refit_cache, key) if use_cache else None
        if cached is not None:
            self.logger.debug(f"Refit cache hit (history={len(history)})")
            mu, sigma = cached
        else:
            estimate = bayesian_refit(history, n, prior_variance)
            mu, sigma = estimate.mu.tolist(), estimate.sigma.tolist()
            if use_cache:
                self._store(self._refit_cache, key, (mu, sigma))

        return {"type": "bayesianRefit", "id": request["id"], "mu": list(mu), "sigma": list(sigma)}

    def _handle_select_pair(self, request: SelectPairRequest) -> SelectPairResponse:
        mu = tuple(float(x) for x in request["mu"])
        sigma = tuple(float(x) for x in request["sigma"])
        history = _history_key(request["history"])
        k = int(request["k"])
        n = int(request["n"])
        prior_variance = float(request["prior_variance"])
        recency_discount = float(request["recency_discount"])
        estimator_name = request.get("estimator", "quadrature")
        precision = request.get("precision")
        seed = int(request.get("seed", 0))
        use_cache = not request.get("no_cache", False)
        key = (mu, sigma, history, k, n, prior_variance, recency_discount, estimator_name, precision, seed)

        pair = self._lookup(self._pair_cache, key) if use_cache else None
        if pair is not None:
            self.logger.debug(f"Pair cache hit (history={len(history)}): {pair}")
        else:
            if precision is None:
                estimator = make_estimator(estimator_name, seed=seed)
            else:
                estimator = make_estimator(estimator_name, samples=precision, points=precision, seed=seed)
            selector = InformationGainSelector(estimator, recency_discount)
            pair = selector.select_pair(
                np.asarray(mu, dtype=np.float64),
                np.asarray(sigma, dtype=np.float64),
                history,
                k,
                n,
                prior_variance,
            )
            if use_cache:
                self._store(self._pair_cache, key, pair)

        return {"type": "selectPair", "id": request["id"], "pair": pair}


def _history_key(history) -> tuple[tuple[int, int], ...]:
    return tuple((int(winner), int(loser)) for winner, loser in history)


# Process-pool workers build their own handler through the pool initializer.
_worker_handler: RequestHandler | None = None


def init_worker(cache_size: int = DEFAULT_CACHE_SIZE) -> None:
    """Pool initializer: create this worker process's handler and caches."""
    global _worker_handler
    _worker_handler = RequestHandler(cache_size)


def run_request(request: BackendRequest) -> BackendResponse:
    """Entry point executed inside a pool worker."""
    if _worker_handler is None:
        raise BackendError("Worker handler not initialized; call init_worker() first")
    return _worker_handler.handle(request)
