"""
Compute backend implementations.

Provides implementations of the ComputeBackend interface that run the
statistical engine for the orchestrator.

Available implementations:
- InProcessBackend: Runs requests on the event loop thread
- ExecutorBackend: Offloads requests to a thread or process pool
"""

from ..exceptions import ConfigurationError
from .base import BaseBackend
from .executor import ExecutorBackend
from .in_process import InProcessBackend
from .request_handler import RequestHandler, init_worker, run_request

BACKEND_CHOICES = ("in-process", "thread", "process")


def make_backend(name: str = "in-process", max_workers: int | None = None) -> BaseBackend:
    """Build a backend by CLI name."""
    if name == "in-process":
        return InProcessBackend()
    if name in ("thread", "process"):
        return ExecutorBackend(kind=name, max_workers=max_workers)  # type: ignore[arg-type]
    raise ConfigurationError(f"Unknown backend: {name}")


__all__ = [
    "BACKEND_CHOICES",
    "BaseBackend",
    "ExecutorBackend",
    "InProcessBackend",
    "RequestHandler",
    "init_worker",
    "make_backend",
    "run_request",
]
