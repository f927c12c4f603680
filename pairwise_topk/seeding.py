"""
Deterministic randomness for the ranking engine.

Every backend, in-process or remote, must reproduce the same random stream
from the same base seed, so randomness comes from a tiny xorshift32
generator and per-call seeds are derived with a fixed integer mix instead of
any process-global RNG.
"""

import math

import numpy as np

_MASK32 = 0xFFFFFFFF
_TWO_POW_32 = 4294967296.0


def derive_seed(base_seed: int, counter: int) -> int:
    """
    Mix a base seed with a counter into a well-distributed 32-bit seed.

    Uses the MurmurHash3 32-bit finalizer on ``base_seed ^ counter`` so that
    successive counters (e.g. history lengths) get uncorrelated streams.

    Args:
        base_seed: Session-level seed from configuration
        counter: Per-call counter, typically the current history length

    Returns:
        Unsigned 32-bit seed
    """
    h = (base_seed ^ counter) & _MASK32
    h = ((h ^ (h >> 16)) * 0x85EBCA6B) & _MASK32
    h = ((h ^ (h >> 13)) * 0xC2B2AE35) & _MASK32
    return h ^ (h >> 16)


class Xorshift32:
    """xorshift32 generator returning floats in the open interval (0, 1)."""

    def __init__(self, seed: int):
        state = seed & _MASK32
        self._state: int = state if state != 0 else 1

    def __call__(self) -> float:
        x = self._state
        x ^= (x << 13) & _MASK32
        x ^= x >> 17
        x ^= (x << 5) & _MASK32
        self._state = x
        return x / _TWO_POW_32

    def uniform(self, size: int) -> np.ndarray:
        """Draw ``size`` consecutive values into an array."""
        return np.fromiter((self() for _ in range(size)), dtype=np.float64, count=size)


def box_muller(rng: Xorshift32) -> float:
    """Standard normal sample from two uniforms in (0, 1)."""
    u1 = rng()
    u2 = rng()
    return math.sqrt(-2.0 * math.log(u1)) * math.cos(2.0 * math.pi * u2)


def standard_normals(rng: Xorshift32, count: int) -> np.ndarray:
    """
    Draw ``count`` standard normals, one Box-Muller pair of uniforms each.

    Equivalent to calling ``box_muller`` ``count`` times in a row.
    """
    u = rng.uniform(2 * count).reshape(count, 2)
    return np.sqrt(-2.0 * np.log(u[:, 0])) * np.cos(2.0 * np.pi * u[:, 1])
