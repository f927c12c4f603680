"""
Simulated judge implementation.

Decides comparisons from latent ground-truth scores with Gaussian noise,
standing in for a human during tests and CLI simulations.
"""

import random

from typing_extensions import override

from ..interfaces import Judge
from ..models import ComparisonRecord


class SimulatedJudge(Judge[str]):
    """
    Simulated judge for testing purposes.

    Each comparison perturbs both true scores with independent Gaussian noise
    and the higher noisy score wins. With noise=0 it is a perfect oracle.
    """

    def __init__(self, ground_truth: dict[str, float], noise: float = 0.0, seed: int | None = None):
        """
        Initialize simulated judge.

        Args:
            ground_truth: Dict mapping item to true strength
            noise: Standard deviation of the per-comparison noise (>= 0)
            seed: Seed for reproducible noise
        """
        self.ground_truth: dict[str, float] = dict(ground_truth)
        self.noise: float = max(0.0, noise)
        self.judge_id: str = "simulated"
        self.comparisons: int = 0
        self._rng: random.Random = random.Random(seed)

    def _noisy_score(self, item: str) -> float:
        score = self.ground_truth.get(item, 0.0)
        if self.noise == 0:
            return score
        return score + self._rng.gauss(0.0, self.noise)

    @override
    def judge_pair(self, a: str, b: str) -> ComparisonRecord[str]:
        """Higher noisy score wins; ties go to the first item shown."""
        self.comparisons += 1
        if self._noisy_score(a) >= self._noisy_score(b):
            return ComparisonRecord(winner=a, loser=b)
        return ComparisonRecord(winner=b, loser=a)

    def true_top_k(self, k: int) -> list[str]:
        """The k items with the highest ground-truth strength, strongest first."""
        return sorted(self.ground_truth, key=lambda item: self.ground_truth[item], reverse=True)[:k]

    def set_noise(self, noise: float) -> None:
        """Update noise level."""
        self.noise = max(0.0, noise)
