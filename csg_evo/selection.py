"""
Parent selection.
"""

from typing import Optional, Sequence

import numpy as np

from .data_models import ConfigurationError, RankedIndividual


class TournamentSelector:
    """
    Tournament selection.

    Draws `k` individuals uniformly at random and returns the best one
    (the worst one in `inverse` mode).

    Args:
        k: Tournament size
        inverse: Return the worst contestant instead of the best
        with_replacement: Allow the same individual to be drawn twice
        seed: Optional seed for reproducible runs
    """

    def __init__(self,
                 k: int = 2,
                 inverse: bool = False,
                 with_replacement: bool = True,
                 seed: Optional[int] = None):
        if not isinstance(k, int) or k < 1:
            raise ConfigurationError(f"Tournament size 'k' must be a positive integer, got: {k}")
        self.k = k
        self.inverse = inverse
        self.with_replacement = with_replacement
        self.rng = np.random.default_rng(seed)

    def select(self, population: Sequence[RankedIndividual]) -> RankedIndividual:
        """
        Select one individual.

        Raises:
            ValueError: If the population is empty
        """
        if not population:
            raise ValueError("Cannot select from an empty population")

        k = self.k if self.with_replacement else min(self.k, len(population))
        indices = self.rng.choice(len(population), size=k, replace=self.with_replacement)
        contestants = [population[int(i)] for i in indices]

        if self.inverse:
            return min(contestants, key=lambda ind: ind.score)
        return max(contestants, key=lambda ind: ind.score)

    def info(self) -> str:
        return f"TournamentSelector (k: {self.k}, inverse: {self.inverse})"
