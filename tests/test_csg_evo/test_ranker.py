"""
Tests for rankers.

Tests the size penalty weight, tree and primitive set scoring and the
thread-safe best tracker.
"""

import math
import threading
import unittest

import numpy as np

from csg_evo.csg_tree import complement, geometry, union
from csg_evo.data_models import RankedIndividual
from csg_evo.implicit import Sphere
from csg_evo.primitive_set import Manifold, ManifoldType, Primitive, PrimitiveSet, PrimitiveType
from csg_evo.ranker import (
    BestTracker,
    CSGNodeRanker,
    PrimitiveSetRanker,
    SampledGeometryScore,
    lambda_from_points,
)


def make_primitive(x=0.0):
    manifold = Manifold(ManifoldType.SPHERE, [x, 0, 0], [0, 0, 1], radius=1.0)
    return Primitive(PrimitiveType.SPHERE, (manifold,))


def count_primitives(primitives):
    return float(len(primitives))


def zero_score(primitives):
    return 0.0


class TestLambdaFromPoints(unittest.TestCase):
    """Test the size penalty weight."""

    def test_log_of_total_points(self):
        """Test lambda as log of all attached points."""
        a = Sphere("a", [0, 0, 0], 1.0, points=np.zeros((30, 6)))
        b = Sphere("b", [3, 0, 0], 1.0, points=np.zeros((70, 6)))
        self.assertAlmostEqual(lambda_from_points([a, b]), math.log(100))

    def test_too_few_points(self):
        """Test lambda for zero or one sample point."""
        self.assertEqual(lambda_from_points([Sphere("a", [0, 0, 0], 1.0)]), 0.0)
        self.assertEqual(lambda_from_points([Sphere("a", [0, 0, 0], 1.0, points=np.zeros((1, 3)))]), 0.0)
        self.assertEqual(lambda_from_points([]), 0.0)


class TestCSGNodeRanker(unittest.TestCase):
    """Test tree scoring."""

    def setUp(self):
        """Set up two leaves."""
        self.a = Sphere("a", [0, 0, 0], 1.0)
        self.b = Sphere("b", [1, 0, 0], 1.0)

    def test_score_is_geometry_minus_size_penalty(self):
        """Test score = geo - lambda * num_nodes."""
        ranker = CSGNodeRanker(2.0, lambda node: 10.0)
        self.assertEqual(ranker.rank(geometry(self.a)), 8.0)
        self.assertEqual(ranker.rank(union(geometry(self.a), geometry(self.b))), 4.0)

    def test_tracker_keeps_best(self):
        """Test that ranking updates the tracker with the best tree."""
        tracker = BestTracker()
        ranker = CSGNodeRanker(1.0, lambda node: 5.0, tracker=tracker)

        small = geometry(self.a)
        ranker.rank(union(geometry(self.a), geometry(self.b)))
        ranker.rank(small)

        self.assertEqual(tracker.best.genome, small)
        self.assertEqual(tracker.best.score, 4.0)


class TestSampledGeometryScore(unittest.TestCase):
    """Test the sampled surface fit."""

    def setUp(self):
        """Set up a sphere with 100 surface samples."""
        self.sphere = Sphere("a", [0, 0, 0], 1.0)
        self.sphere.points = self.sphere.sample_surface(100, np.random.default_rng(0))

    def test_exact_tree_counts_all_points(self):
        """Test that the generating tree explains every sample."""
        score = SampledGeometryScore([self.sphere])
        self.assertEqual(score(geometry(self.sphere)), 100.0)

    def test_flipped_normals_do_not_count(self):
        """Test that a complemented tree fails the normal check."""
        score = SampledGeometryScore([self.sphere])
        self.assertEqual(score(complement(geometry(self.sphere))), 0.0)

    def test_points_without_normals(self):
        """Test distance-only scoring for N x 3 samples."""
        sphere = Sphere("s", [0, 0, 0], 1.0, points=[[1, 0, 0], [0, 1, 0], [0, 0, 3]])
        score = SampledGeometryScore([sphere], epsilon=0.01)
        self.assertEqual(score(geometry(sphere)), 2.0)

    def test_no_points(self):
        """Test scoring without samples."""
        sphere = Sphere("s", [0, 0, 0], 1.0)
        score = SampledGeometryScore([sphere])
        self.assertEqual(len(score.points), 0)
        self.assertEqual(score(geometry(sphere)), 0.0)


class TestPrimitiveSetRanker(unittest.TestCase):
    """Test primitive set scoring."""

    def test_empty_set_ranks_minus_infinity(self):
        """Test the score of an empty set without statics."""
        ranker = PrimitiveSetRanker(count_primitives, zero_score)
        self.assertEqual(ranker.rank(PrimitiveSet()), float("-inf"))
        self.assertEqual(ranker.rank_primitives([]), float("-inf"))

    def test_weighted_score(self):
        """Test score = wa * area + wg * geo - ws * size / max_size."""
        ranker = PrimitiveSetRanker(
            count_primitives,
            lambda ps: 0.5,
            area_weight=2.0,
            geo_weight=4.0,
            size_weight=10.0,
            max_set_size=5,
        )
        genome = PrimitiveSet([make_primitive(0), make_primitive(1)])
        self.assertAlmostEqual(ranker.rank(genome), 2.0 * 2 + 4.0 * 0.5 - 10.0 * 2 / 5)

    def test_static_primitives_count_for_area_only(self):
        """Test that statics enter the area and geometry terms but not the size term."""
        statics = [make_primitive(5), make_primitive(6)]
        ranker = PrimitiveSetRanker(count_primitives, zero_score, static_primitives=statics, max_set_size=50)

        self.assertAlmostEqual(ranker.rank(PrimitiveSet([make_primitive(0)])), 3.0 - 1 / 50)
        self.assertAlmostEqual(ranker.rank(PrimitiveSet()), 2.0)

    def test_rank_primitives_ignores_statics_and_tracking(self):
        """Test scoring of bare primitive lists."""
        ranker = PrimitiveSetRanker(count_primitives, zero_score, static_primitives=[make_primitive(5)])
        self.assertAlmostEqual(ranker.rank_primitives([make_primitive(0)]), 1.0 - 1 / 50)
        self.assertIsNone(ranker.best_primitives)

    def test_best_primitives(self):
        """Test best set tracking."""
        ranker = PrimitiveSetRanker(count_primitives, zero_score)
        small = PrimitiveSet([make_primitive(0)])
        large = PrimitiveSet([make_primitive(0), make_primitive(1), make_primitive(2)])

        ranker.rank(small)
        ranker.rank(large)
        ranker.rank(small)

        self.assertIs(ranker.best_primitives, large)

    def test_tracking_disabled(self):
        """Test that track_best=False keeps no best set."""
        ranker = PrimitiveSetRanker(count_primitives, zero_score, track_best=False)
        ranker.rank(PrimitiveSet([make_primitive(0)]))
        self.assertIsNone(ranker.best_primitives)

    def test_invalid_max_set_size(self):
        """Test max_set_size validation."""
        with self.assertRaises(ValueError):
            PrimitiveSetRanker(count_primitives, zero_score, max_set_size=0)


class TestBestTracker(unittest.TestCase):
    """Test the thread-safe best tracker."""

    def test_update_returns_improvement(self):
        """Test the improvement flag."""
        tracker = BestTracker()
        self.assertTrue(tracker.update(RankedIndividual("a", 1.0)))
        self.assertFalse(tracker.update(RankedIndividual("b", 1.0)))
        self.assertTrue(tracker.update(RankedIndividual("c", 2.0)))
        self.assertEqual(tracker.best.genome, "c")

        tracker.reset()
        self.assertIsNone(tracker.best)

    def test_concurrent_updates(self):
        """Test that concurrent updates keep the maximum."""
        tracker = BestTracker()

        def worker(offset):
            for i in range(500):
                tracker.update(RankedIndividual(offset + i, float((offset + i) % 997)))

        threads = [threading.Thread(target=worker, args=(n * 500,)) for n in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(tracker.best.score, 996.0)


if __name__ == '__main__':
    unittest.main()
