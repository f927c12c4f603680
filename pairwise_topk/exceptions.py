"""
Exception classes for the pairwise top-k ranking system.

Centralized location for all custom exceptions to avoid circular imports.
"""


class RankingError(Exception):
    """Base exception for all ranking errors."""
    pass


class InvalidItemError(RankingError):
    """An item is not part of the session (or a comparison pits an item against itself)."""
    pass


class IllegalStateError(RankingError):
    """Operation is not allowed in the session's current state."""
    pass


class NumericalFailureError(RankingError):
    """Linear algebra failed, e.g. a Hessian that is not positive definite."""
    pass


class ValidationError(RankingError):
    """Base exception for validation-related errors."""
    pass


class ConfigurationError(RankingError):
    """Base exception for configuration-related errors."""
    pass


class BackendError(RankingError):
    """Compute backend misuse: not started, shut down, or unknown request."""
    pass
