"""Backend that runs the engine on the event loop thread."""

import asyncio

from ..interfaces import BackendRequest, BackendResponse
from .base import BaseBackend
from .request_handler import RequestHandler


class InProcessBackend(BaseBackend):
    """
    Synchronous engine behind the async contract.

    Each request yields to the loop once before computing, so concurrently
    scheduled tasks (speculation included) interleave at request boundaries.
    """

    def __init__(self, handler: RequestHandler | None = None):
        super().__init__(handler, name="in_process_backend")

    async def start(self) -> None:
        if self._closed:
            raise RuntimeError("Cannot restart a backend after shutdown")
        self._started = True
        self.logger.debug("In-process backend started")

    async def shutdown(self) -> None:
        self._closed = True
        self.logger.debug("In-process backend shut down")

    async def request(self, request: BackendRequest) -> BackendResponse:
        self._ensure_running()
        await asyncio.sleep(0)
        response = self.handler.handle(request)
        return self._check_correlation(request, response)
