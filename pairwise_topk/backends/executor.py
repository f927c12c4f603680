"""
Backend that offloads the engine to a concurrent.futures pool.

Pending requests are parked as loop futures keyed by request id; pool
callbacks hop back onto the loop with ``call_soon_threadsafe`` and resolve
the future whose id the response echoes.
"""

import asyncio
from collections.abc import Callable
from concurrent.futures import Executor, Future, ProcessPoolExecutor, ThreadPoolExecutor
from functools import partial
from typing import Literal

from ..exceptions import BackendError, ConfigurationError
from ..interfaces import BackendRequest, BackendResponse
from .base import BaseBackend
from .request_handler import DEFAULT_CACHE_SIZE, RequestHandler, init_worker, run_request

ExecutorKind = Literal["thread", "process"]


class ExecutorBackend(BaseBackend):
    """
    Thread- or process-pool compute backend.

    Thread workers share this backend's handler and caches. Process workers
    each build their own handler in the pool initializer.
    """

    def __init__(
        self,
        kind: ExecutorKind = "thread",
        max_workers: int | None = None,
        handler: RequestHandler | None = None,
        cache_size: int = DEFAULT_CACHE_SIZE,
    ):
        """
        Initialize executor backend.

        Args:
            kind: "thread" or "process"
            max_workers: Pool size (None = concurrent.futures default)
            handler: Handler to share between thread-pool backends
            cache_size: Per-process cache size for process workers
        """
        if kind not in ("thread", "process"):
            raise ConfigurationError(f"kind must be 'thread' or 'process', got {kind!r}")
        if max_workers is not None and max_workers <= 0:
            raise ConfigurationError(f"max_workers must be positive, got {max_workers}")
        super().__init__(handler, name=f"{kind}_backend")
        self.kind: ExecutorKind = kind
        self.max_workers: int | None = max_workers
        self.cache_size: int = cache_size
        self._executor: Executor | None = None
        self._call: Callable[[BackendRequest], BackendResponse] | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._pending = dict[int, asyncio.Future[BackendResponse]]()

    async def start(self) -> None:
        if self._closed:
            raise RuntimeError("Cannot restart a backend after shutdown")
        if self._started:
            return
        self._loop = asyncio.get_running_loop()
        if self.kind == "thread":
            self._executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="pairwise-topk")
            self._call = self.handler.handle
        else:
            self._executor = ProcessPoolExecutor(
                max_workers=self.max_workers, initializer=init_worker, initargs=(self.cache_size,)
            )
            self._call = run_request
        self._started = True
        self.logger.info(f"Started {self.kind} pool (max_workers={self.max_workers})")

    async def shutdown(self) -> None:
        if self._closed:
            return
        self._closed = True
        for future in self._pending.values():
            if not future.done():
                future.set_exception(BackendError("Backend shut down while request was pending"))
        self._pending.clear()
        if self._executor is not None:
            executor, self._executor = self._executor, None
            await asyncio.to_thread(executor.shutdown, wait=True, cancel_futures=True)
        self.logger.info(f"Shut down {self.kind} pool")

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def request(self, request: BackendRequest) -> BackendResponse:
        self._ensure_running()
        assert self._executor is not None and self._call is not None and self._loop is not None

        request_id = request["id"]
        if request_id in self._pending:
            raise BackendError(f"Duplicate in-flight request id {request_id}")

        future: asyncio.Future[BackendResponse] = self._loop.create_future()
        self._pending[request_id] = future
        try:
            work = self._executor.submit(self._call, request)
        except RuntimeError as e:
            _ = self._pending.pop(request_id, None)
            raise BackendError(f"Executor rejected request {request_id}: {e}") from e
        work.add_done_callback(partial(self._on_work_done, request_id))

        try:
            return await future
        finally:
            _ = self._pending.pop(request_id, None)

    def _on_work_done(self, request_id: int, work: Future[BackendResponse]) -> None:
        """Runs on a pool thread; hand the result to the event loop."""
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(self._dispatch, request_id, work)

    def _dispatch(self, request_id: int, work: Future[BackendResponse]) -> None:
        if work.cancelled():
            self._fail(request_id, BackendError(f"Request {request_id} was cancelled"))
            return
        error = work.exception()
        if error is not None:
            self._fail(request_id, error)
            return

        response = work.result()
        if response["id"] != request_id:
            mismatch = BackendError(f"Response id {response['id']} does not match request id {request_id}")
            self._fail(request_id, mismatch)
            return
        future = self._pending.get(request_id)
        if future is None or future.done():
            # Caller gave up (cancelled or shut down)
            self.logger.debug(f"Dropping response for request {request_id}")
            return
        future.set_result(response)

    def _fail(self, request_id: int, error: BaseException) -> None:
        future = self._pending.get(request_id)
        if future is not None and not future.done():
            future.set_exception(error)
