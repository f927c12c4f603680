"""
Judge implementations.

Stand-ins for the human who decides each comparison.
"""

from .dummy_judge import DUMMY_MODES, DummyJudge
from .sim_judge import SimulatedJudge

__all__ = [
    "DUMMY_MODES",
    "DummyJudge",
    "SimulatedJudge",
]
