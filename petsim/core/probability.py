"""
Weighted outcome tables used for breakable spawns and loot bands.
"""

import logging
from typing import Generic, List, Sequence, Tuple, TypeVar

from .errors import ValidationFailure

T = TypeVar("T")


class ProbabilityTable(Generic[T]):
    """
    Partitions [0, 1) into consecutive bands, one per outcome.

    Weights need not sum to 1. A draw that lands past the last cumulative
    boundary resolves to the last-listed outcome, and a draw equal to a
    boundary resolves to the earlier outcome.
    """

    def __init__(self, entries: Sequence[Tuple[T, float]]):
        """
        Args:
            entries: Ordered (outcome, weight) pairs.

        Raises:
            ValidationFailure: If the table is empty or a weight is negative.
        """
        if not entries:
            raise ValidationFailure("ProbabilityTable needs at least one outcome")

        self.outcomes: List[T] = []
        self.boundaries: List[float] = []
        cumulative = 0.0
        for outcome, weight in entries:
            if weight < 0:
                raise ValidationFailure(f"Negative weight {weight} for outcome {outcome!r}")
            cumulative += weight
            self.outcomes.append(outcome)
            self.boundaries.append(cumulative)

        if cumulative > 1.0 + 1e-9:
            logging.warning(f"Probability weights sum to {cumulative:.4f}; outcomes past 1.0 are unreachable")

    @property
    def total_weight(self) -> float:
        return self.boundaries[-1]

    def pick(self, draw: float) -> T:
        """Return the outcome whose band contains ``draw``."""
        for outcome, cumulative in zip(self.outcomes, self.boundaries):
            if draw <= cumulative:
                return outcome
        return self.outcomes[-1]

    def sample(self, rng) -> T:
        """Draw once from ``rng`` (anything with a ``random()`` method)."""
        return self.pick(rng.random())

    def __len__(self):
        return len(self.outcomes)
