"""
Genetic algorithm driver.

GeneticAlgorithm owns the population of a run: it seeds it through a
creator, breeds generations with tournament selection, crossover and
mutation, keeps the best individuals as elites and records statistics until
the stop criterion fires. `run` blocks the caller, `run_async` executes the
same loop on a worker thread and returns a cancellable GATask handle.
"""

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import numpy as np

from .data_models import (
    ConfigurationError,
    GAParameters,
    GAResult,
    GenerationStats,
    RankedIndividual,
    RunStatistics,
    StopCriterionParameters,
)
from .ranker import BestTracker, Ranker
from .selection import TournamentSelector
from .stop_criteria import StopCriterion, create_stop_criterion

logger = logging.getLogger(__name__)


class GAState(Enum):
    """Lifecycle of a GA run"""
    IDLE = "idle"
    SEEDING = "seeding"
    RUNNING = "running"
    TERMINATING = "terminating"
    DONE = "done"


class GATask:
    """
    Handle of a GA run executing on a worker thread.

    Cancellation is cooperative: the run notices it at the next generation
    boundary and finishes with a partial result (`cancelled=True`).
    """

    def __init__(self, future: Future, cancel_event: threading.Event):
        self._future = future
        self._cancel_event = cancel_event

    def result(self, timeout: Optional[float] = None) -> GAResult:
        """
        Wait for the run to finish and return its result.

        Raises:
            concurrent.futures.TimeoutError: If the run did not finish within `timeout`
            Exception: Whatever the run raised (e.g. a ranking failure)
        """
        return self._future.result(timeout)

    def cancel(self) -> None:
        self._cancel_event.set()

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_event.is_set()

    def done(self) -> bool:
        return self._future.done()

    def add_done_callback(self, fn: Callable[["GATask"], Any]) -> None:
        self._future.add_done_callback(lambda _: fn(self))


class GeneticAlgorithm:
    """
    Generational GA over an arbitrary genome type.

    Args:
        creator: Creates, mutates and recombines genomes; must expose `rng`
        ranker: Scores genomes (higher is better)
        selector: Parent selector (default: tournament with k=2)
        stop_criterion: Termination policy (default: plateau criterion)
        params: Run parameters
        on_generation: Called with the GenerationStats of every completed generation
        max_seed_attempts: create() calls allowed while seeding
            (defaults to 100 per individual)
    """

    def __init__(self,
                 creator,
                 ranker: Ranker,
                 selector: Optional[TournamentSelector] = None,
                 stop_criterion: Optional[StopCriterion] = None,
                 params: Optional[GAParameters] = None,
                 on_generation: Optional[Callable[[GenerationStats], Any]] = None,
                 max_seed_attempts: Optional[int] = None):
        self.creator = creator
        self.ranker = ranker
        self.selector = selector or TournamentSelector(k=2)
        self.stop_criterion = stop_criterion or create_stop_criterion(StopCriterionParameters())
        self.params = params or GAParameters()
        self.on_generation = on_generation
        self.max_seed_attempts = max_seed_attempts or 100 * self.params.population_size

        self.tracker = BestTracker()
        self._cache: Dict[Any, float] = {}
        self._cache_lock = threading.Lock()
        self._state = GAState.IDLE
        self._state_lock = threading.Lock()

    @property
    def state(self) -> GAState:
        with self._state_lock:
            return self._state

    def _set_state(self, state: GAState) -> None:
        with self._state_lock:
            self._state = state
        logger.debug("GA state: %s", state.value)

    @property
    def rng(self) -> np.random.Generator:
        return self.creator.rng

    # Ranking

    def _score(self, genome) -> float:
        if not self.params.use_caching:
            return self.ranker.rank(genome)

        key = genome.key()
        with self._cache_lock:
            if key in self._cache:
                return self._cache[key]

        score = self.ranker.rank(genome)
        with self._cache_lock:
            self._cache[key] = score
        return score

    def _rank_all(self, genomes: List[Any], generation: int,
                  executor: Optional[ThreadPoolExecutor]) -> List[RankedIndividual]:
        if executor is not None and len(genomes) > 1:
            scores = list(executor.map(self._score, genomes))
        else:
            scores = [self._score(g) for g in genomes]

        return [RankedIndividual(g, s, generation) for g, s in zip(genomes, scores)]

    @staticmethod
    def _sort(population: List[RankedIndividual]) -> List[RankedIndividual]:
        return sorted(population, key=lambda ind: ind.score, reverse=True)

    # Generational steps

    def _seed(self, executor: Optional[ThreadPoolExecutor]) -> List[RankedIndividual]:
        genomes = []
        attempts = 0

        while len(genomes) < self.params.population_size:
            if attempts >= self.max_seed_attempts:
                raise ConfigurationError(
                    f"Could only create {len(genomes)} of {self.params.population_size} individuals "
                    f"in {self.max_seed_attempts} attempts"
                )
            attempts += 1
            genome = self.creator.create()
            if genome is not None:
                genomes.append(genome)

        return self._sort(self._rank_all(genomes, 0, executor))

    def _breed(self, population: List[RankedIndividual], num_children: int) -> List[Any]:
        children = []
        attempts = 0
        max_attempts = 10 * num_children + 10

        while len(children) < num_children and attempts < max_attempts:
            attempts += 1

            parent1 = self.selector.select(population)
            parent2 = self.selector.select(population)

            if self.rng.random() < self.params.crossover_rate:
                offspring = self.creator.crossover(parent1.genome, parent2.genome)
            else:
                offspring = (parent1.genome.copy(), parent2.genome.copy())

            for child in offspring:
                if child is not None and self.rng.random() < self.params.mutation_rate:
                    child = self.creator.mutate(child)
                if child is None:
                    child = self.creator.create()
                if child is None:
                    continue
                if len(children) < num_children:
                    children.append(child)

        if len(children) < num_children:
            logger.warning("Only %d of %d offspring could be created", len(children), num_children)
        return children

    def _next_generation(self, population: List[RankedIndividual], generation: int,
                         executor: Optional[ThreadPoolExecutor]) -> List[RankedIndividual]:
        pop_size = self.params.population_size
        num_elites = min(self.params.num_best_parents, len(population))

        children = self._breed(population, pop_size - num_elites)
        ranked_children = self._rank_all(children, generation, executor)

        # Parents and offspring compete for the pop_size slots
        return self._sort(population + ranked_children)[:pop_size]

    # Run

    def run(self, cancel_event: Optional[threading.Event] = None) -> GAResult:
        """
        Run the GA to completion on the calling thread.

        Args:
            cancel_event: Set it to stop the run at the next generation boundary

        Returns:
            GAResult with the best individual of the whole run

        Raises:
            ConfigurationError: If seeding cannot fill the population
            RuntimeError: If this instance is already running
            Exception: Any error raised by the ranker
        """
        with self._state_lock:
            if self._state in (GAState.SEEDING, GAState.RUNNING, GAState.TERMINATING):
                raise RuntimeError("GeneticAlgorithm is already running")
            self._state = GAState.SEEDING

        cancel_event = cancel_event or threading.Event()
        self.stop_criterion.reset()
        self.tracker.reset()
        with self._cache_lock:
            self._cache.clear()

        executor = None
        if self.params.in_parallel:
            executor = ThreadPoolExecutor(max_workers=self.params.max_workers,
                                          thread_name_prefix="ga-rank")

        try:
            logger.info("Seeding population of %d", self.params.population_size)
            population = self._seed(executor)
            self.tracker.update(population[0])
            best_generation = 0

            self._set_state(GAState.RUNNING)

            statistics = RunStatistics()
            generation = 0
            cancelled = False

            while True:
                if cancel_event.is_set():
                    cancelled = True
                    logger.info("Cancellation requested after generation %d", generation)
                    break

                generation += 1
                start = time.perf_counter()

                population = self._next_generation(population, generation, executor)

                scores = [ind.score for ind in population]
                stats = GenerationStats(
                    generation=generation,
                    best_score=scores[0],
                    mean_score=float(np.mean(scores)),
                    worst_score=scores[-1],
                    timestamp=time.time(),
                    duration=time.perf_counter() - start,
                )
                statistics.append(stats)

                if self.tracker.update(population[0]):
                    best_generation = generation

                logger.info("Generation %d: best %.6f mean %.6f worst %.6f (%.3fs)",
                            generation, stats.best_score, stats.mean_score,
                            stats.worst_score, stats.duration)

                if self.on_generation is not None:
                    self.on_generation(stats)

                self.stop_criterion.update(stats.best_score)
                if self.stop_criterion.is_done():
                    break

            self._set_state(GAState.TERMINATING)

            stop_reason = "cancelled" if cancelled else self.stop_criterion.stop_reason
            result = GAResult(
                best=self.tracker.best,
                population=tuple(population),
                statistics=statistics,
                best_generation=best_generation,
                generations_run=generation,
                cancelled=cancelled,
                stop_reason=stop_reason,
            )
            logger.info("GA finished after %d generations (%s), best score %.6f",
                        result.generations_run, stop_reason, result.best_score)
            return result

        finally:
            if executor is not None:
                executor.shutdown()
            self._set_state(GAState.DONE)

    def run_async(self) -> GATask:
        """Start the run on a worker thread and return its handle."""
        cancel_event = threading.Event()
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="ga-run")
        future = executor.submit(self.run, cancel_event)
        executor.shutdown(wait=False)
        return GATask(future, cancel_event)

    def info(self) -> str:
        return (f"GeneticAlgorithm (population: {self.params.population_size}, "
                f"elites: {self.params.num_best_parents}, mutation rate: {self.params.mutation_rate}, "
                f"crossover rate: {self.params.crossover_rate}, parallel: {self.params.in_parallel}, "
                f"caching: {self.params.use_caching})")
