"""
Data models for the evolutionary search engine.

Core data structures: run parameters, ranked individuals, per-generation
statistics and the final GA result.
"""

from dataclasses import dataclass, field, fields
from typing import Any, Dict, Generic, Iterator, List, Optional, Tuple, TypeVar

G = TypeVar("G")


class ConfigurationError(ValueError):
    """Raised when engine, creator or stop criterion parameters are invalid."""
    pass


def _check_probability(name: str, value: float) -> None:
    if not 0.0 <= value <= 1.0:
        raise ConfigurationError(f"'{name}' must lie in [0, 1], got: {value}")


def _from_known_keys(cls, data: Dict[str, Any]):
    known = {f.name for f in fields(cls)}
    unknown = set(data) - known
    if unknown:
        raise ConfigurationError(
            f"Unknown {cls.__name__} field(s): {', '.join(sorted(unknown))}"
        )
    return cls(**data)


@dataclass
class GAParameters:
    """
    Parameters of a single GA run.

    Attributes:
        population_size: Number of individuals kept per generation
        num_best_parents: Elites copied unchanged into the next generation
        mutation_rate: Probability to mutate each child
        crossover_rate: Probability to recombine a parent pair (else copy)
        in_parallel: Rank individuals of a generation on a thread pool
        use_caching: Reuse scores of structurally identical genomes
        max_workers: Thread pool size (None lets the executor decide)
    """
    population_size: int = 100
    num_best_parents: int = 2
    mutation_rate: float = 0.3
    crossover_rate: float = 0.4
    in_parallel: bool = True
    use_caching: bool = True
    max_workers: Optional[int] = None

    def __post_init__(self):
        if not isinstance(self.population_size, int) or self.population_size <= 0:
            raise ConfigurationError(
                f"'population_size' must be a positive integer, got: {self.population_size}"
            )
        if not isinstance(self.num_best_parents, int) or self.num_best_parents < 0:
            raise ConfigurationError(
                f"'num_best_parents' must be a non-negative integer, got: {self.num_best_parents}"
            )
        if self.num_best_parents > self.population_size:
            raise ConfigurationError(
                f"'num_best_parents' ({self.num_best_parents}) cannot exceed "
                f"'population_size' ({self.population_size})"
            )
        _check_probability("mutation_rate", self.mutation_rate)
        _check_probability("crossover_rate", self.crossover_rate)
        if self.max_workers is not None and self.max_workers <= 0:
            raise ConfigurationError(
                f"'max_workers' must be positive when given, got: {self.max_workers}"
            )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GAParameters":
        return _from_known_keys(cls, data)


@dataclass
class CreatorParameters:
    """
    Population-independent creator configuration.

    The mutation distribution maps mutation type names (new, replace,
    modify, remove, add) to relative weights; it is only used by the
    primitive set creator.
    """
    create_new_prob: float = 0.5
    subtree_prob: float = 0.7
    max_depth: int = 10
    max_set_size: int = 50
    mutation_distribution: Dict[str, float] = field(default_factory=lambda: {
        "new": 0.4,
        "replace": 0.15,
        "modify": 0.15,
        "remove": 0.15,
        "add": 0.15,
    })
    max_mutation_iterations: int = 1
    max_crossover_iterations: int = 1
    seed: Optional[int] = None

    def __post_init__(self):
        _check_probability("create_new_prob", self.create_new_prob)
        _check_probability("subtree_prob", self.subtree_prob)
        if not isinstance(self.max_depth, int) or self.max_depth < 0:
            raise ConfigurationError(
                f"'max_depth' must be a non-negative integer, got: {self.max_depth}"
            )
        if not isinstance(self.max_set_size, int) or self.max_set_size <= 0:
            raise ConfigurationError(
                f"'max_set_size' must be a positive integer, got: {self.max_set_size}"
            )
        if self.max_mutation_iterations < 1 or self.max_crossover_iterations < 1:
            raise ConfigurationError("Mutation and crossover iterations must be at least 1")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CreatorParameters":
        return _from_known_keys(cls, data)


@dataclass
class StopCriterionParameters:
    """
    Stop criterion configuration.

    Attributes:
        type: "iteration" (fixed number of generations) or "plateau"
        max_iterations: Hard generation limit for both policies
        delta: Minimal best-score gain that counts as an improvement (plateau)
        max_count: Generations without improvement before stopping (plateau)
    """
    type: str = "plateau"
    max_iterations: int = 100
    delta: float = 0.0001
    max_count: int = 10

    def __post_init__(self):
        if self.type not in ("iteration", "plateau"):
            raise ConfigurationError(
                f"Invalid stop criterion type: '{self.type}'. Must be 'iteration' or 'plateau'"
            )
        if not isinstance(self.max_iterations, int) or self.max_iterations <= 0:
            raise ConfigurationError(
                f"'max_iterations' must be a positive integer, got: {self.max_iterations}"
            )
        if self.delta < 0:
            raise ConfigurationError(f"'delta' must be non-negative, got: {self.delta}")
        if not isinstance(self.max_count, int) or self.max_count <= 0:
            raise ConfigurationError(
                f"'max_count' must be a positive integer, got: {self.max_count}"
            )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StopCriterionParameters":
        return _from_known_keys(cls, data)


@dataclass
class RankedIndividual(Generic[G]):
    """
    A genome paired with its cached fitness score.

    Attributes:
        genome: Candidate solution (CSG tree or primitive set)
        score: Fitness score, higher is better
        generation: Generation in which the genome was ranked (0 = seeding)
    """
    genome: G
    score: float
    generation: int = 0


@dataclass
class GenerationStats:
    """
    Statistics of one completed generation.

    Attributes:
        generation: Generation index (1 for the first bred generation)
        best_score: Best score in the population after merging
        mean_score: Mean score of the population
        worst_score: Worst score of the population
        timestamp: Wall-clock time (seconds since the epoch) at generation end
        duration: Seconds spent in this generation
    """
    generation: int
    best_score: float
    mean_score: float
    worst_score: float
    timestamp: float
    duration: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "generation": self.generation,
            "best_score": self.best_score,
            "mean_score": self.mean_score,
            "worst_score": self.worst_score,
            "timestamp": self.timestamp,
            "duration": self.duration,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GenerationStats":
        return cls(
            generation=int(data["generation"]),
            best_score=float(data["best_score"]),
            mean_score=float(data["mean_score"]),
            worst_score=float(data["worst_score"]),
            timestamp=float(data["timestamp"]),
            duration=float(data.get("duration") or 0.0),
        )


class RunStatistics:
    """Append-only sequence of GenerationStats, strictly ordered by generation."""

    def __init__(self, records: Optional[List[GenerationStats]] = None):
        self._records: List[GenerationStats] = []
        for record in records or []:
            self.append(record)

    def append(self, record: GenerationStats) -> None:
        if self._records and record.generation <= self._records[-1].generation:
            raise ValueError(
                f"Generation {record.generation} recorded after generation "
                f"{self._records[-1].generation}"
            )
        self._records.append(record)

    def best_scores(self) -> List[float]:
        return [r.best_score for r in self._records]

    def to_rows(self) -> List[Dict[str, Any]]:
        return [r.to_dict() for r in self._records]

    @property
    def last(self) -> Optional[GenerationStats]:
        return self._records[-1] if self._records else None

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[GenerationStats]:
        return iter(self._records)

    def __getitem__(self, idx):
        return self._records[idx]


@dataclass(frozen=True)
class GAResult(Generic[G]):
    """
    Final, immutable outcome of a GA run.

    Attributes:
        best: Best individual observed over the whole run
        population: Final population, best first
        statistics: Per-generation statistics
        best_generation: Generation that produced the best individual (0 = seeding)
        generations_run: Number of bred generations that completed
        cancelled: True if the run ended because cancellation was requested
        stop_reason: Human readable reason for termination
    """
    best: RankedIndividual
    population: Tuple[RankedIndividual, ...]
    statistics: RunStatistics
    best_generation: int
    generations_run: int
    cancelled: bool = False
    stop_reason: str = ""

    @property
    def best_genome(self):
        return self.best.genome

    @property
    def best_score(self) -> float:
        return self.best.score
