"""
Tests for compute backends and the shared request handler.

Focus on id correlation, caching and lifecycle.
"""

import asyncio

import numpy as np
import pytest

from pairwise_topk.backends import ExecutorBackend, InProcessBackend, RequestHandler, make_backend
from pairwise_topk.backends import request_handler as request_handler_module
from pairwise_topk.exceptions import BackendError, ConfigurationError
from pairwise_topk.interfaces import BackendRequest, BackendResponse, BayesianRefitRequest, SelectPairRequest
from pairwise_topk.models import StrengthEstimate
from pairwise_topk.rankers.bradley_terry import bayesian_refit


def refit_request(request_id: int, history: list[tuple[int, int]], n: int = 4, no_cache: bool = False) -> BayesianRefitRequest:
    return {
        "type": "bayesianRefit",
        "id": request_id,
        "history": history,
        "n": n,
        "prior_variance": 1.0,
        "no_cache": no_cache,
    }


def select_request(request_id: int, no_cache: bool = False) -> SelectPairRequest:
    return {
        "type": "selectPair",
        "id": request_id,
        "mu": [0.0, 0.3, -0.2, 0.5],
        "sigma": [0.0, 0.8, 0.9, 0.7],
        "history": [(3, 1)],
        "k": 2,
        "n": 4,
        "prior_variance": 1.0,
        "recency_discount": 0.5,
        "no_cache": no_cache,
        "estimator": "quadrature",
        "seed": 0,
    }


class TestRequestHandler:
    """Test request dispatch and caching."""

    def test_refit_response_echoes_id_and_matches_fit(self):
        # Arrange
        handler = RequestHandler()
        history = [(1, 0), (2, 3), (1, 2)]

        # Act
        response = handler.handle(refit_request(17, history))

        # Assert
        assert response["type"] == "bayesianRefit"
        assert response["id"] == 17
        expected = bayesian_refit(history, 4, 1.0)
        np.testing.assert_array_equal(response["mu"], expected.mu)
        np.testing.assert_array_equal(response["sigma"], expected.sigma)

    def test_select_pair_response(self):
        response = RequestHandler().handle(select_request(3))
        assert response["type"] == "selectPair"
        assert response["id"] == 3
        i, j = response["pair"]
        assert 0 <= i < j < 4

    def test_repeated_request_hits_cache(self):
        # Arrange
        handler = RequestHandler()

        # Act
        first = handler.handle(refit_request(1, [(1, 0)]))
        second = handler.handle(refit_request(2, [(1, 0)]))

        # Assert
        assert first["mu"] == second["mu"]
        assert second["id"] == 2
        info = handler.cache_info()
        assert info["hits"] == 1
        assert info["misses"] == 1
        assert info["refit_entries"] == 1

    def test_cached_result_matches_fresh_computation(self):
        handler = RequestHandler()
        cached = handler.handle(select_request(1))
        cached_again = handler.handle(select_request(2))
        fresh = RequestHandler().handle(select_request(3, no_cache=True))
        assert cached["pair"] == cached_again["pair"] == fresh["pair"]

    def test_no_cache_bypasses_reads_and_writes(self):
        handler = RequestHandler()
        _ = handler.handle(refit_request(1, [(1, 0)], no_cache=True))
        _ = handler.handle(refit_request(2, [(1, 0)], no_cache=True))
        info = handler.cache_info()
        assert info["hits"] == 0
        assert info["refit_entries"] == 0

    def test_cache_is_bounded(self):
        handler = RequestHandler(cache_size=2)
        for request_id, history in enumerate([[(1, 0)], [(2, 0)], [(3, 0)]]):
            _ = handler.handle(refit_request(request_id, history))
        assert handler.cache_info()["refit_entries"] == 2

    def test_clear_cache(self):
        handler = RequestHandler()
        _ = handler.handle(refit_request(1, [(1, 0)]))
        handler.clear_cache()
        assert handler.cache_info() == {"refit_entries": 0, "pair_entries": 0, "hits": 0, "misses": 0}

    def test_unknown_request_type_raises(self):
        with pytest.raises(BackendError):
            _ = RequestHandler().handle({"type": "rank", "id": 0})  # type: ignore[arg-type]

    def test_worker_entry_point_requires_initializer(self, monkeypatch: pytest.MonkeyPatch):
        # Arrange
        monkeypatch.setattr(request_handler_module, "_worker_handler", None)

        # Act / Assert
        with pytest.raises(BackendError):
            _ = request_handler_module.run_request(refit_request(0, []))
        request_handler_module.init_worker()
        response = request_handler_module.run_request(refit_request(1, []))
        assert response["id"] == 1


class WrongIdHandler(RequestHandler):
    """Answers with a mismatched correlation id."""

    def handle(self, request: BackendRequest) -> BackendResponse:
        response = super().handle(request)
        response["id"] = request["id"] + 1
        return response


class WrongTypeHandler(RequestHandler):
    """Answers every request as if it were a pair selection."""

    def handle(self, request: BackendRequest) -> BackendResponse:
        return {"type": "selectPair", "id": request["id"], "pair": (0, 1)}


class TestInProcessBackend:
    """Test InProcessBackend behavior through public interface."""

    @pytest.mark.asyncio
    async def test_request_before_start_raises(self):
        backend = InProcessBackend()
        with pytest.raises(BackendError):
            _ = await backend.request(refit_request(backend.next_request_id(), []))

    @pytest.mark.asyncio
    async def test_request_after_shutdown_raises(self):
        async with InProcessBackend() as backend:
            pass
        with pytest.raises(BackendError):
            _ = await backend.bayesian_refit([], 3, 1.0)

    @pytest.mark.asyncio
    async def test_ids_are_unique_and_increasing(self):
        backend = InProcessBackend()
        ids = [backend.next_request_id() for _ in range(5)]
        assert ids == sorted(set(ids))

    @pytest.mark.asyncio
    async def test_typed_helpers(self):
        # Arrange
        async with InProcessBackend() as backend:
            # Act
            estimate = await backend.bayesian_refit([(1, 0), (2, 1)], 3, 1.0)
            pair = await backend.select_pair(estimate, [(1, 0), (2, 1)], 1, 1.0, 0.5)

        # Assert
        assert isinstance(estimate, StrengthEstimate)
        assert estimate.mu[0] == 0.0
        assert 0 <= pair[0] < pair[1] < 3

    @pytest.mark.asyncio
    async def test_mismatched_response_id_raises(self):
        async with InProcessBackend(handler=WrongIdHandler()) as backend:
            with pytest.raises(BackendError):
                _ = await backend.bayesian_refit([], 3, 1.0)

    @pytest.mark.asyncio
    async def test_engine_errors_propagate(self):
        async with InProcessBackend() as backend:
            with pytest.raises(BackendError):
                _ = await backend.request({"type": "rank", "id": backend.next_request_id()})  # type: ignore[arg-type]

    @pytest.mark.asyncio
    async def test_mismatched_response_type_raises(self):
        async with InProcessBackend(handler=WrongTypeHandler()) as backend:
            with pytest.raises(BackendError, match="expected bayesianRefit"):
                _ = await backend.bayesian_refit([], 3, 1.0)


class TestExecutorBackend:
    """Test ExecutorBackend with real pools."""

    @pytest.mark.asyncio
    async def test_request_before_start_raises(self):
        backend = ExecutorBackend("thread", max_workers=1)
        with pytest.raises(BackendError):
            _ = await backend.bayesian_refit([], 3, 1.0)

    @pytest.mark.asyncio
    async def test_concurrent_requests_are_matched_by_id(self):
        # Arrange
        histories = [[(1, 0)] * r for r in range(1, 7)]

        # Act
        async with ExecutorBackend("thread", max_workers=3) as backend:
            estimates = await asyncio.gather(*(backend.bayesian_refit(h, 3, 1.0) for h in histories))
            assert backend.pending_count == 0

        # Assert
        for history, estimate in zip(histories, estimates):
            np.testing.assert_array_equal(estimate.mu, bayesian_refit(history, 3, 1.0).mu)

    @pytest.mark.asyncio
    async def test_thread_workers_share_handler_cache(self):
        handler = RequestHandler()
        async with ExecutorBackend("thread", max_workers=2, handler=handler) as backend:
            _ = await backend.bayesian_refit([(1, 0)], 3, 1.0)
            _ = await backend.bayesian_refit([(1, 0)], 3, 1.0)
        assert handler.cache_info()["hits"] == 1

    @pytest.mark.asyncio
    async def test_worker_errors_propagate(self):
        async with ExecutorBackend("thread", max_workers=1) as backend:
            with pytest.raises(BackendError):
                _ = await backend.request({"type": "rank", "id": backend.next_request_id()})  # type: ignore[arg-type]
            # Still usable afterwards
            estimate = await backend.bayesian_refit([], 2, 1.0)
            assert estimate.n == 2

    @pytest.mark.asyncio
    async def test_mismatched_response_id_fails_the_caller(self):
        async with ExecutorBackend("thread", max_workers=1, handler=WrongIdHandler()) as backend:
            with pytest.raises(BackendError, match="does not match"):
                _ = await asyncio.wait_for(backend.bayesian_refit([], 3, 1.0), timeout=5.0)
            assert backend.pending_count == 0

    @pytest.mark.asyncio
    async def test_process_pool_round_trip(self):
        async with ExecutorBackend("process", max_workers=1) as backend:
            estimate = await backend.bayesian_refit([(1, 0), (2, 1)], 3, 1.0)
        np.testing.assert_array_equal(estimate.mu, bayesian_refit([(1, 0), (2, 1)], 3, 1.0).mu)

    @pytest.mark.asyncio
    async def test_shutdown_is_idempotent_and_final(self):
        backend = ExecutorBackend("thread", max_workers=1)
        await backend.start()
        await backend.shutdown()
        await backend.shutdown()
        assert not backend.running
        with pytest.raises(BackendError):
            _ = await backend.bayesian_refit([], 2, 1.0)

    def test_invalid_kind_raises(self):
        with pytest.raises(ConfigurationError):
            _ = ExecutorBackend("cluster")  # type: ignore[arg-type]


class TestMakeBackend:
    def test_names(self):
        assert isinstance(make_backend("in-process"), InProcessBackend)
        thread_backend = make_backend("thread", max_workers=2)
        assert isinstance(thread_backend, ExecutorBackend)
        assert thread_backend.kind == "thread"
        with pytest.raises(ConfigurationError):
            _ = make_backend("gpu")
