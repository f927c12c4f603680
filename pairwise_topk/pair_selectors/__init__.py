"""
Pair selector implementations.

Chooses which pair of items to compare next.

Available implementations:
- InformationGainSelector: Exhaustive expected-entropy-reduction search
"""

from .information_gain_selector import InformationGainSelector, compute_information_gain, select_pair

__all__ = ["InformationGainSelector", "compute_information_gain", "select_pair"]
