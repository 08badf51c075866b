"""
Rankers: fitness functions for CSG trees and primitive sets.

Higher scores are better. Rankers hold their context (weights, sample
points, static primitives) read-only while a GA run is in progress, so a
single instance can be called from several worker threads at once.
"""

import logging
import math
import threading
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional, Sequence

import numpy as np

from .csg_tree import CSGNode
from .data_models import RankedIndividual
from .primitive_set import PrimitiveSet

logger = logging.getLogger(__name__)


class Ranker(ABC):
    """Base class for genome fitness functions"""

    @abstractmethod
    def rank(self, genome) -> float:
        pass

    def info(self) -> str:
        return type(self).__name__


class BestTracker:
    """
    Thread-safe record of the best individual seen so far.

    The read-compare-write in `update` happens under a lock, so the tracked
    score never decreases no matter how updates interleave.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._best: Optional[RankedIndividual] = None

    def update(self, individual: RankedIndividual) -> bool:
        """
        Offer an individual.

        Returns:
            True if it became the new best
        """
        with self._lock:
            if self._best is None or individual.score > self._best.score:
                self._best = individual
                return True
            return False

    @property
    def best(self) -> Optional[RankedIndividual]:
        with self._lock:
            return self._best

    def reset(self) -> None:
        with self._lock:
            self._best = None


def lambda_from_points(primitives: Sequence[Any]) -> float:
    """
    Size penalty weight: log of the total number of sample points.

    Returns 0 when fewer than two points are attached to the primitives.
    """
    total = sum(len(getattr(p, "points", ())) for p in primitives)
    if total < 2:
        return 0.0
    return math.log(total)


class SampledGeometryScore:
    """
    Surface fit of a CSG tree against the sample points of its primitives.

    A point counts when its distance to the tree surface is at most
    `epsilon` and, for points with normals, the tree's gradient deviates
    from the point normal by at most `alpha` radians. The score is the
    number of counting points.

    Args:
        primitives: Primitives whose `points` (N x 3 or N x 6) are the samples
        epsilon: Distance tolerance
        alpha: Normal angle tolerance in radians
        gradient_step: Step of the central differences used for tree normals
    """

    def __init__(self,
                 primitives: Sequence[Any],
                 epsilon: float = 0.01,
                 alpha: float = math.pi / 18.0,
                 gradient_step: float = 1e-4):
        clouds = [np.asarray(p.points, dtype=float) for p in primitives if len(getattr(p, "points", ()))]
        width = min((c.shape[1] for c in clouds), default=3)
        self.points = np.vstack([c[:, :width] for c in clouds]) if clouds else np.zeros((0, 3))
        self.epsilon = epsilon
        self.alpha = alpha
        self.gradient_step = gradient_step

    def _gradient(self, node: CSGNode, positions: np.ndarray) -> np.ndarray:
        h = self.gradient_step
        grad = np.zeros_like(positions)
        for axis in range(3):
            offset = np.zeros(3)
            offset[axis] = h
            grad[:, axis] = (node.signed_distance(positions + offset) -
                             node.signed_distance(positions - offset)) / (2.0 * h)
        norms = np.linalg.norm(grad, axis=1, keepdims=True)
        return grad / np.where(norms > 0, norms, 1.0)

    def __call__(self, node: CSGNode) -> float:
        if len(self.points) == 0:
            return 0.0

        positions = self.points[:, :3]
        near = np.abs(node.signed_distance(positions)) <= self.epsilon

        if self.points.shape[1] >= 6 and np.any(near):
            normals = self.points[near, 3:6]
            grad = self._gradient(node, positions[near])
            aligned = np.einsum("ij,ij->i", grad, normals) >= math.cos(self.alpha)
            return float(np.count_nonzero(aligned))

        return float(np.count_nonzero(near))


class CSGNodeRanker(Ranker):
    """
    Scores CSG trees as geometry fit minus a size penalty.

    score = geometry_score(tree) - lambda * num_nodes(tree)

    Args:
        lambda_: Weight of the size penalty (see lambda_from_points)
        geometry_score: Callable returning the fit of a tree, higher is better
        tracker: Optional BestTracker updated with every ranked tree
    """

    def __init__(self,
                 lambda_: float,
                 geometry_score: Callable[[CSGNode], float],
                 tracker: Optional[BestTracker] = None):
        self.lambda_ = lambda_
        self.geometry_score = geometry_score
        self.tracker = tracker

    def rank(self, genome: CSGNode) -> float:
        score = float(self.geometry_score(genome)) - self.lambda_ * genome.num_nodes()
        if self.tracker is not None:
            self.tracker.update(RankedIndividual(genome, score))
        return score

    def info(self) -> str:
        return f"CSGNodeRanker (lambda: {self.lambda_:.4f})"


class PrimitiveSetRanker(Ranker):
    """
    Scores primitive sets.

    score = area_weight * area + geo_weight * geo - size_weight * len(set) / max_set_size

    The area and geometry terms are evaluated on the set plus the static
    primitives, the size term only counts the set itself. An empty set
    without static primitives ranks -inf.

    Args:
        area_score: Callable taking a list of primitives, returns the area term
        geometry_score: Callable taking a list of primitives, returns the geometry term
        static_primitives: Primitives always present in the scene
        area_weight: Weight of the area term
        geo_weight: Weight of the geometry term
        size_weight: Weight of the size penalty
        max_set_size: Set size that incurs the full size penalty
        track_best: Keep the best set seen in `tracker`
    """

    def __init__(self,
                 area_score: Callable[[list], float],
                 geometry_score: Callable[[list], float],
                 static_primitives: Sequence[Any] = (),
                 area_weight: float = 1.0,
                 geo_weight: float = 1.0,
                 size_weight: float = 1.0,
                 max_set_size: int = 50,
                 track_best: bool = True):
        if max_set_size <= 0:
            raise ValueError(f"'max_set_size' must be positive, got: {max_set_size}")
        self.area_score = area_score
        self.geometry_score = geometry_score
        self.static_primitives = list(static_primitives)
        self.area_weight = area_weight
        self.geo_weight = geo_weight
        self.size_weight = size_weight
        self.max_set_size = max_set_size
        self.tracker = BestTracker() if track_best else None

    def _score(self, primitives: list, set_size: int) -> float:
        area = float(self.area_score(primitives))
        geo = float(self.geometry_score(primitives))
        size = set_size / self.max_set_size

        score = self.area_weight * area + self.geo_weight * geo - self.size_weight * size

        logger.debug("Set of %d primitives: area %.4f geo %.4f size %.4f -> %.4f",
                     set_size, area, geo, size, score)
        return score

    def rank_primitives(self, primitives: Sequence[Any]) -> float:
        """Score a bare list of primitives: no static primitives, no best-set tracking."""
        if len(primitives) == 0:
            return float("-inf")
        return self._score(list(primitives), len(primitives))

    def rank(self, genome: PrimitiveSet) -> float:
        if len(genome) == 0 and not self.static_primitives:
            return float("-inf")

        score = self._score(list(genome) + self.static_primitives, len(genome))

        if self.tracker is not None:
            self.tracker.update(RankedIndividual(genome, score))
        return score

    @property
    def best_primitives(self) -> Optional[PrimitiveSet]:
        if self.tracker is None or self.tracker.best is None:
            return None
        return self.tracker.best.genome

    def info(self) -> str:
        return (f"PrimitiveSetRanker (area weight: {self.area_weight}, geo weight: {self.geo_weight}, "
                f"size weight: {self.size_weight}, static primitives: {len(self.static_primitives)})")
