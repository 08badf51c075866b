"""
Stop criteria for GA runs.

A criterion observes the best score once per completed generation through
`update` and reports termination through `is_done`.
"""

from abc import ABC, abstractmethod
from typing import Optional

from .data_models import ConfigurationError, StopCriterionParameters


class StopCriterion(ABC):
    """Base class for stop criteria"""

    @abstractmethod
    def update(self, best_score: float) -> None:
        pass

    @abstractmethod
    def is_done(self) -> bool:
        pass

    @abstractmethod
    def reset(self) -> None:
        pass

    @property
    @abstractmethod
    def stop_reason(self) -> str:
        pass

    def should_stop(self, best_score: float) -> bool:
        """Observe a generation's best score and report whether to stop."""
        self.update(best_score)
        return self.is_done()

    def info(self) -> str:
        return type(self).__name__


class IterationStopCriterion(StopCriterion):
    """Stops after a fixed number of generations."""

    def __init__(self, max_iterations: int):
        if not isinstance(max_iterations, int) or max_iterations <= 0:
            raise ConfigurationError(
                f"'max_iterations' must be a positive integer, got: {max_iterations}"
            )
        self.max_iterations = max_iterations
        self.count = 0

    def update(self, best_score: float) -> None:
        self.count += 1

    def is_done(self) -> bool:
        return self.count >= self.max_iterations

    def reset(self) -> None:
        self.count = 0

    @property
    def stop_reason(self) -> str:
        if self.is_done():
            return f"reached {self.max_iterations} generations"
        return ""

    def info(self) -> str:
        return f"IterationStopCriterion (max iterations: {self.max_iterations})"


class NoFitnessIncreaseStopCriterion(StopCriterion):
    """
    Stops when the best score has not improved for a while.

    An observation improves on the best score when it exceeds it by more
    than `delta`. The criterion is done once `max_count` generations passed
    since the last improvement, or after `max_iterations` generations.

    Args:
        max_count: Generations without improvement before stopping
        delta: Minimal gain that counts as an improvement
        max_iterations: Hard generation limit
    """

    def __init__(self, max_count: int, delta: float, max_iterations: int):
        if not isinstance(max_count, int) or max_count <= 0:
            raise ConfigurationError(f"'max_count' must be a positive integer, got: {max_count}")
        if delta < 0:
            raise ConfigurationError(f"'delta' must be non-negative, got: {delta}")
        if not isinstance(max_iterations, int) or max_iterations <= 0:
            raise ConfigurationError(
                f"'max_iterations' must be a positive integer, got: {max_iterations}"
            )
        self.max_count = max_count
        self.delta = delta
        self.max_iterations = max_iterations
        self.reset()

    def update(self, best_score: float) -> None:
        if self.best_score is None or best_score - self.best_score > self.delta:
            self.best_score = best_score
            self.last_improvement = self.current_iteration
        self.current_iteration += 1

    def is_done(self) -> bool:
        return (self.current_iteration - self.last_improvement >= self.max_count or
                self.current_iteration >= self.max_iterations)

    def reset(self) -> None:
        self.best_score: Optional[float] = None
        self.last_improvement = 0
        self.current_iteration = 0

    @property
    def stop_reason(self) -> str:
        if self.current_iteration >= self.max_iterations:
            return f"reached {self.max_iterations} generations"
        if self.current_iteration - self.last_improvement >= self.max_count:
            return f"no improvement above {self.delta} for {self.max_count} generations"
        return ""

    def info(self) -> str:
        return (f"NoFitnessIncreaseStopCriterion (max count: {self.max_count}, delta: {self.delta}, "
                f"max iterations: {self.max_iterations})")


def create_stop_criterion(params: StopCriterionParameters) -> StopCriterion:
    """Build the stop criterion described by `params`."""
    if params.type == "iteration":
        return IterationStopCriterion(params.max_iterations)
    return NoFitnessIncreaseStopCriterion(params.max_count, params.delta, params.max_iterations)
