"""
Tests for the GA driver.

Uses an integer genome so that runs are cheap and scores are predictable.
"""

import threading
import unittest

import numpy as np

from csg_evo.data_models import ConfigurationError, GAParameters
from csg_evo.engine import GAState, GeneticAlgorithm
from csg_evo.ranker import Ranker
from csg_evo.selection import TournamentSelector
from csg_evo.stop_criteria import IterationStopCriterion


class Value:
    """Integer genome."""

    def __init__(self, v):
        self.v = v

    def key(self):
        return self.v

    def copy(self):
        return Value(self.v)


class ValueCreator:
    """Random integers, mutated by small steps."""

    def __init__(self, seed=0):
        self.rng = np.random.default_rng(seed)

    def create(self):
        return Value(int(self.rng.integers(0, 100)))

    def mutate(self, genome):
        return Value(genome.v + int(self.rng.integers(-5, 6)))

    def crossover(self, genome1, genome2):
        return Value((genome1.v + genome2.v) // 2), Value(max(genome1.v, genome2.v))


class ConstantCreator(ValueCreator):
    """Always produces the same genome."""

    def create(self):
        return Value(7)

    def mutate(self, genome):
        return Value(7)

    def crossover(self, genome1, genome2):
        return Value(7), Value(7)


class BarrenCreator(ValueCreator):
    """Seeds a population, then never produces offspring."""

    def __init__(self, seed=0, seed_count=10):
        super().__init__(seed)
        self.remaining = seed_count

    def create(self):
        if self.remaining <= 0:
            return None
        self.remaining -= 1
        return super().create()

    def mutate(self, genome):
        return None

    def crossover(self, genome1, genome2):
        return None, None


class DecayingCreator(ValueCreator):
    """Offspring are always worse than their parents."""

    def mutate(self, genome):
        return Value(genome.v - 10)

    def crossover(self, genome1, genome2):
        return Value(genome1.v - 10), Value(genome2.v - 10)


class ValueRanker(Ranker):
    """Scores a genome by its value and counts calls."""

    def __init__(self, fail_after=None):
        self.calls = 0
        self.fail_after = fail_after
        self._lock = threading.Lock()

    def rank(self, genome):
        with self._lock:
            self.calls += 1
            if self.fail_after is not None and self.calls > self.fail_after:
                raise RuntimeError("ranking failed")
        return float(genome.v)


def make_ga(creator=None, ranker=None, generations=5, **params):
    params.setdefault('population_size', 10)
    params.setdefault('num_best_parents', 2)
    params.setdefault('mutation_rate', 0.5)
    params.setdefault('crossover_rate', 0.5)
    params.setdefault('in_parallel', False)
    return GeneticAlgorithm(
        creator or ValueCreator(),
        ranker or ValueRanker(),
        selector=TournamentSelector(k=2, seed=0),
        stop_criterion=IterationStopCriterion(generations),
        params=GAParameters(**params),
    )


class TestGeneticAlgorithmRun(unittest.TestCase):
    """Test synchronous runs."""

    def test_run_records_statistics(self):
        """Test statistics, elitism and the final population."""
        for in_parallel in (False, True):
            with self.subTest(in_parallel=in_parallel):
                ga = make_ga(generations=5, in_parallel=in_parallel)
                result = ga.run()

                self.assertEqual([s.generation for s in result.statistics], [1, 2, 3, 4, 5])
                best_scores = result.statistics.best_scores()
                self.assertEqual(best_scores, sorted(best_scores))

                scores = [ind.score for ind in result.population]
                self.assertEqual(len(scores), 10)
                self.assertEqual(scores, sorted(scores, reverse=True))

                self.assertEqual(result.best_score, best_scores[-1])
                self.assertEqual(result.generations_run, 5)
                self.assertFalse(result.cancelled)
                self.assertEqual(result.stop_reason, "reached 5 generations")

    def test_statistics_are_consistent(self):
        """Test best >= mean >= worst for every generation."""
        result = make_ga(generations=4).run()
        for stats in result.statistics:
            self.assertGreaterEqual(stats.best_score, stats.mean_score)
            self.assertGreaterEqual(stats.mean_score, stats.worst_score)
            self.assertGreaterEqual(stats.duration, 0.0)

    def test_state_transitions(self):
        """Test the lifecycle states around a run."""
        ga = make_ga(generations=2)
        self.assertEqual(ga.state, GAState.IDLE)

        seen = []
        ga.on_generation = lambda stats: seen.append(ga.state)
        ga.run()

        self.assertEqual(seen, [GAState.RUNNING, GAState.RUNNING])
        self.assertEqual(ga.state, GAState.DONE)

    def test_on_generation_called_once_per_generation(self):
        """Test the per-generation callback."""
        generations = []
        ga = make_ga(generations=4)
        ga.on_generation = lambda stats: generations.append(stats.generation)
        ga.run()
        self.assertEqual(generations, [1, 2, 3, 4])

    def test_run_while_running(self):
        """Test that a second concurrent run is rejected."""
        errors = []
        ga = make_ga(generations=1)

        def nested_run(stats):
            try:
                ga.run()
            except RuntimeError as e:
                errors.append(e)

        ga.on_generation = nested_run
        ga.run()
        self.assertEqual(len(errors), 1)

    def test_cancel_event(self):
        """Test cancellation at a generation boundary."""
        cancel_event = threading.Event()
        ga = make_ga(generations=100)

        def cancel_after_third(stats):
            if stats.generation == 3:
                cancel_event.set()

        ga.on_generation = cancel_after_third
        result = ga.run(cancel_event)

        self.assertTrue(result.cancelled)
        self.assertEqual(len(result.statistics), 3)
        self.assertEqual(result.generations_run, 3)
        self.assertEqual(result.stop_reason, "cancelled")
        self.assertEqual(len(result.population), 10)

    def test_ranker_error_propagates(self):
        """Test that ranking failures abort the run."""
        for in_parallel in (False, True):
            with self.subTest(in_parallel=in_parallel):
                ga = make_ga(ranker=ValueRanker(fail_after=15), in_parallel=in_parallel,
                             use_caching=False)
                with self.assertRaises(RuntimeError):
                    ga.run()
                self.assertEqual(ga.state, GAState.DONE)

    def test_seeding_failure(self):
        """Test that an infeasible creator cannot seed the population."""
        ga = make_ga(creator=BarrenCreator(seed_count=3))
        ga.max_seed_attempts = 20
        with self.assertRaises(ConfigurationError):
            ga.run()
        self.assertEqual(ga.state, GAState.DONE)

    def test_best_never_drops_without_elites(self):
        """Test that parents survive worse offspring even with num_best_parents=0."""
        ga = make_ga(creator=DecayingCreator(), generations=3, num_best_parents=0,
                     mutation_rate=1.0, crossover_rate=1.0)
        result = ga.run()

        best_scores = result.statistics.best_scores()
        self.assertEqual(best_scores, sorted(best_scores))
        self.assertEqual(len(set(best_scores)), 1)
        self.assertEqual(len(result.population), 10)
        self.assertEqual(result.best_generation, 0)

    def test_dropped_offspring_keep_population_size(self):
        """Test that missing offspring are replaced by the previous generation."""
        ga = make_ga(creator=BarrenCreator(seed_count=10), generations=3,
                     mutation_rate=1.0, crossover_rate=1.0)

        with self.assertLogs('csg_evo.engine', level='WARNING'):
            result = ga.run()

        self.assertEqual(len(result.population), 10)
        self.assertEqual(len(result.statistics), 3)
        self.assertEqual(len({s.best_score for s in result.statistics}), 1)


class TestScoreCache(unittest.TestCase):
    """Test score caching."""

    def test_identical_genomes_ranked_once(self):
        """Test that caching ranks each distinct genome once."""
        ranker = ValueRanker()
        make_ga(creator=ConstantCreator(), ranker=ranker, generations=5).run()
        self.assertEqual(ranker.calls, 1)

    def test_without_caching(self):
        """Test that every seeded and bred genome is ranked without caching."""
        ranker = ValueRanker()
        make_ga(creator=ConstantCreator(), ranker=ranker, generations=5, use_caching=False).run()
        # 10 seeds plus 8 children in each of 5 generations
        self.assertEqual(ranker.calls, 50)


class TestRunAsync(unittest.TestCase):
    """Test asynchronous runs."""

    def test_cancel_async_run(self):
        """Test cancelling a run executing on a worker thread."""
        ready = threading.Event()
        proceed = threading.Event()
        ga = make_ga(generations=1000)

        def pause_at_second(stats):
            if stats.generation == 2:
                ready.set()
                proceed.wait(5)

        ga.on_generation = pause_at_second
        finished = threading.Event()

        task = ga.run_async()
        task.add_done_callback(lambda t: finished.set())
        self.assertTrue(ready.wait(5))

        task.cancel()
        proceed.set()
        result = task.result(timeout=10)

        self.assertTrue(task.cancel_requested)
        self.assertTrue(task.done())
        self.assertTrue(finished.wait(5))
        self.assertTrue(result.cancelled)
        self.assertEqual(len(result.statistics), 2)

    def test_async_result(self):
        """Test that an uncancelled async run completes normally."""
        task = make_ga(generations=3).run_async()
        result = task.result(timeout=30)
        self.assertFalse(result.cancelled)
        self.assertEqual(result.generations_run, 3)

    def test_async_error_propagates(self):
        """Test that task.result re-raises ranking failures."""
        task = make_ga(ranker=ValueRanker(fail_after=5), use_caching=False).run_async()
        with self.assertRaises(RuntimeError):
            task.result(timeout=30)


if __name__ == '__main__':
    unittest.main()
