"""
Dummy judge implementation for testing.

Provides deterministic and random decisions for testing purposes.
"""

import random

from typing_extensions import override

from ..exceptions import ValidationError
from ..interfaces import Judge
from ..models import ComparisonRecord

DUMMY_MODES = ("deterministic", "first", "random")


class DummyJudge(Judge[str]):
    """
    Dummy judge for testing purposes.

    Modes:
        deterministic: the lexicographically smaller item wins
        first: the first item shown always wins
        random: coin flip from a seeded generator
    """

    def __init__(self, mode: str = "deterministic", seed: int = 42):
        """
        Initialize dummy judge.

        Args:
            mode: One of "deterministic", "first" or "random"
            seed: Random seed for reproducible results
        """
        if mode not in DUMMY_MODES:
            raise ValidationError(f"Unknown mode: {mode}")
        self.mode: str = mode
        self.seed: int = seed
        self.judge_id: str = f"dummy_{mode}"
        self._rng: random.Random = random.Random(seed)

    @override
    def judge_pair(self, a: str, b: str) -> ComparisonRecord[str]:
        if a == b:
            raise ValidationError("Cannot compare an item with itself")

        if self.mode == "deterministic":
            a_wins = a < b
        elif self.mode == "first":
            a_wins = True
        else:
            a_wins = self._rng.random() < 0.5

        if a_wins:
            return ComparisonRecord(winner=a, loser=b)
        return ComparisonRecord(winner=b, loser=a)
