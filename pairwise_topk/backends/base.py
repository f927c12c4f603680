"""Shared plumbing for the concrete compute backends."""

import itertools
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from loguru import Logger

from ..exceptions import BackendError
from ..interfaces import BackendRequest, BackendResponse, ComputeBackend
from ..logging_config import get_logger
from .request_handler import RequestHandler


class BaseBackend(ComputeBackend):
    """
    Correlation ids and lifecycle flags.

    Ids come from a per-backend counter; every response must echo the id of
    the request it answers.
    """

    def __init__(self, handler: RequestHandler | None = None, name: str = "backend"):
        self.handler: RequestHandler = handler if handler is not None else RequestHandler()
        self._ids = itertools.count()
        self._started: bool = False
        self._closed: bool = False
        self.logger: Logger = get_logger(name)

    @property
    def running(self) -> bool:
        return self._started and not self._closed

    def next_request_id(self) -> int:
        return next(self._ids)

    def _ensure_running(self) -> None:
        if self._closed:
            raise BackendError("Backend has been shut down")
        if not self._started:
            raise BackendError("Backend not started; call start() or use 'async with'")

    @staticmethod
    def _check_correlation(request: BackendRequest, response: BackendResponse) -> BackendResponse:
        if response["id"] != request["id"]:
            raise BackendError(f"Response id {response['id']} does not match request id {request['id']}")
        return response
