"""
Dense Cholesky helpers used by the Bayesian fitter.

Matrices are dense, symmetric positive-definite numpy arrays in row-major
(C) order. Only the lower triangle of a factor is meaningful.
"""

import numpy as np
from scipy.linalg import solve_triangular

from ..exceptions import NumericalFailureError


def cholesky_decompose(a: np.ndarray) -> np.ndarray:
    """
    Factor ``a = L @ L.T``.

    Args:
        a: n x n symmetric positive-definite matrix

    Returns:
        Lower-triangular factor L (new C-ordered array)

    Raises:
        NumericalFailureError: if ``a`` is not positive definite
    """
    a = np.ascontiguousarray(a, dtype=np.float64)
    try:
        factor = np.linalg.cholesky(a)
    except np.linalg.LinAlgError as e:
        raise NumericalFailureError(f"Matrix is not positive definite: {e}") from e
    if not np.all(np.isfinite(factor)):
        raise NumericalFailureError("Matrix is not positive definite: non-finite factor")
    return np.ascontiguousarray(factor)


def cholesky_solve(factor: np.ndarray, b: np.ndarray) -> np.ndarray:
    """
    Solve ``L @ L.T @ x = b`` given the Cholesky factor L.

    Forward substitution (L y = b) followed by back substitution (L.T x = y).
    ``b`` may be a vector or a matrix of right-hand sides.
    """
    y = solve_triangular(factor, b, lower=True)
    return solve_triangular(factor, y, lower=True, trans="T")


def cholesky_inverse(factor: np.ndarray) -> np.ndarray:
    """Full inverse of ``L @ L.T`` from its Cholesky factor."""
    n = factor.shape[0]
    return np.ascontiguousarray(cholesky_solve(factor, np.eye(n)))
