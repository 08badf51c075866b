"""
High-level reconstruction steps built on the GA engine.

- create_csg_tree_with_ga: search a CSG tree over a group of primitives
- compute_nodes_for_cliques: one tree per clique of primitives
- extract_primitives_with_ga: search a primitive set over detected manifolds
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Sequence, Tuple

from .creator import CSGNodeCreator, PrimitiveSetCreator
from .csg_tree import CSGNode, difference, geometry, intersection, union
from .data_models import (
    CreatorParameters,
    GAParameters,
    GAResult,
    GenerationStats,
    StopCriterionParameters,
)
from .engine import GeneticAlgorithm
from .primitive_set import Primitive, PrimitiveFactory
from .ranker import CSGNodeRanker, PrimitiveSetRanker, SampledGeometryScore, lambda_from_points
from .selection import TournamentSelector
from .stop_criteria import create_stop_criterion

logger = logging.getLogger(__name__)

# Defaults of the clique tree search
TREE_GA_PARAMETERS = dict(population_size=150, num_best_parents=2, mutation_rate=0.3, crossover_rate=0.3)
TREE_STOP_PARAMETERS = dict(type="plateau", max_count=500, delta=0.01, max_iterations=500)

# Defaults of the primitive set search
SET_GA_PARAMETERS = dict(population_size=50, num_best_parents=2, mutation_rate=0.4, crossover_rate=0.4,
                         in_parallel=False)
SET_STOP_PARAMETERS = dict(type="plateau", max_count=100, delta=0.00001, max_iterations=100)
SET_MAX_SIZE = 50


def create_csg_tree_with_ga(primitives: Sequence[Any],
                            geometry_score: Optional[Callable[[CSGNode], float]] = None,
                            ga_params: Optional[GAParameters] = None,
                            creator_params: Optional[CreatorParameters] = None,
                            stop_params: Optional[StopCriterionParameters] = None,
                            tournament_k: int = 2,
                            epsilon: float = 0.01,
                            alpha: float = math.pi / 18.0,
                            seed: Optional[int] = None,
                            on_generation: Optional[Callable[[GenerationStats], Any]] = None) -> GAResult:
    """
    Search a CSG tree combining `primitives`.

    Args:
        primitives: Primitives with attached sample points
        geometry_score: Tree fit function (default: SampledGeometryScore over the primitives' points)
        ga_params: Engine parameters (default: population 150, 2 elites, rates 0.3/0.3)
        creator_params: Creator parameters (default: 0.5/0.7/depth 10)
        stop_params: Stop criterion (default: plateau 500/0.01/500)
        tournament_k: Tournament size
        epsilon: Distance tolerance of the default geometry score
        alpha: Normal angle tolerance of the default geometry score
        seed: Seed for creator and selector (overrides creator_params.seed)
        on_generation: Per-generation callback

    Returns:
        GAResult whose best genome is the tree
    """
    ga_params = ga_params or GAParameters(**TREE_GA_PARAMETERS)
    creator_params = creator_params or CreatorParameters()
    stop_params = stop_params or StopCriterionParameters(**TREE_STOP_PARAMETERS)
    if seed is None:
        seed = creator_params.seed

    if geometry_score is None:
        geometry_score = SampledGeometryScore(primitives, epsilon=epsilon, alpha=alpha)

    lambda_ = lambda_from_points(primitives)
    logger.info("lambda: %.4f", lambda_)

    creator = CSGNodeCreator(
        primitives,
        create_new_prob=creator_params.create_new_prob,
        subtree_prob=creator_params.subtree_prob,
        max_depth=creator_params.max_depth,
        seed=seed,
    )
    ga = GeneticAlgorithm(
        creator,
        CSGNodeRanker(lambda_, geometry_score),
        selector=TournamentSelector(k=tournament_k, seed=None if seed is None else seed + 1),
        stop_criterion=create_stop_criterion(stop_params),
        params=ga_params,
        on_generation=on_generation,
    )
    return ga.run()


def best_two_primitive_tree(a: Any, b: Any, ranker: CSGNodeRanker) -> Tuple[CSGNode, float]:
    """
    Rank union, intersection and both differences of two primitives.

    Returns:
        (best tree, its score); ties keep the earlier candidate
    """
    candidates = [
        union(geometry(a), geometry(b)),
        intersection(geometry(a), geometry(b)),
        difference(geometry(a), geometry(b)),
        difference(geometry(b), geometry(a)),
    ]

    best, best_score = None, -math.inf
    for candidate in candidates:
        score = ranker.rank(candidate)
        logger.info("%s rank: %.4f", candidate, score)
        if best is None or score > best_score:
            best, best_score = candidate, score
    return best, best_score


def compute_nodes_for_cliques(cliques: Sequence[Sequence[Any]],
                              geometry_score_factory: Optional[Callable[[Sequence[Any]], Callable]] = None,
                              **ga_kwargs) -> List[Tuple[List[Any], CSGNode]]:
    """
    Build one CSG tree per clique of primitives.

    Empty cliques are skipped, single primitives become a leaf, pairs are
    solved by ranking the four binary combinations and larger cliques are
    searched with create_csg_tree_with_ga.

    Args:
        cliques: Groups of primitives
        geometry_score_factory: Builds a tree fit function for a clique
            (default: SampledGeometryScore)
        **ga_kwargs: Passed on to create_csg_tree_with_ga

    Returns:
        List of (clique, tree) pairs
    """
    results = []

    for clique in cliques:
        clique = list(clique)
        if not clique:
            continue

        if len(clique) == 1:
            results.append((clique, geometry(clique[0])))
            continue

        if geometry_score_factory is not None:
            geometry_score = geometry_score_factory(clique)
        else:
            geometry_score = SampledGeometryScore(
                clique,
                epsilon=ga_kwargs.get("epsilon", 0.01),
                alpha=ga_kwargs.get("alpha", math.pi / 18.0),
            )

        if len(clique) == 2:
            ranker = CSGNodeRanker(lambda_from_points(clique), geometry_score)
            node, _ = best_two_primitive_tree(clique[0], clique[1], ranker)
        else:
            node = create_csg_tree_with_ga(clique, geometry_score=geometry_score, **ga_kwargs).best_genome

        results.append((clique, node))

    return results


@dataclass
class ExtractionResult:
    """
    Outcome of primitive set extraction.

    Attributes:
        primitives: Best primitive set followed by the static primitives
        static_primitives: Static primitives with their best cutout setting
        ga_result: Result of the GA run
    """
    primitives: List[Primitive]
    static_primitives: List[Primitive] = field(default_factory=list)
    ga_result: Optional[GAResult] = None


def extract_primitives_with_ga(factory: PrimitiveFactory,
                               ranker: PrimitiveSetRanker,
                               ga_params: Optional[GAParameters] = None,
                               creator_params: Optional[CreatorParameters] = None,
                               stop_params: Optional[StopCriterionParameters] = None,
                               tournament_k: int = 2,
                               seed: Optional[int] = None,
                               on_generation: Optional[Callable[[GenerationStats], Any]] = None) -> ExtractionResult:
    """
    Search the primitive set that best explains the detected manifolds.

    After the run each static primitive of the ranker is scored on its own
    with and without cutout, and the better setting is kept.

    Args:
        factory: Creates primitives from the non-static manifolds
        ranker: Set ranker holding the static primitives
        ga_params: Engine parameters (default: population 50, 2 elites, rates 0.4/0.4)
        creator_params: Creator parameters (default: max set size 50, distribution .4/.15/.15/.15/.15)
        stop_params: Stop criterion (default: plateau 100/1e-5/100)
        tournament_k: Tournament size
        seed: Seed for creator and selector (overrides creator_params.seed)
        on_generation: Per-generation callback

    Returns:
        ExtractionResult
    """
    ga_params = ga_params or GAParameters(**SET_GA_PARAMETERS)
    creator_params = creator_params or CreatorParameters(max_set_size=SET_MAX_SIZE)
    stop_params = stop_params or StopCriterionParameters(**SET_STOP_PARAMETERS)
    if seed is None:
        seed = creator_params.seed

    creator = PrimitiveSetCreator(
        factory,
        mutation_distribution=creator_params.mutation_distribution,
        max_mutation_iterations=creator_params.max_mutation_iterations,
        max_crossover_iterations=creator_params.max_crossover_iterations,
        max_set_size=creator_params.max_set_size,
        seed=seed,
    )
    ga = GeneticAlgorithm(
        creator,
        ranker,
        selector=TournamentSelector(k=tournament_k, seed=None if seed is None else seed + 1),
        stop_criterion=create_stop_criterion(stop_params),
        params=ga_params,
        on_generation=on_generation,
    )
    result = ga.run()

    static_primitives = []
    for primitive in ranker.static_primitives:
        solid = primitive.copy()
        solid.cutout = False
        cutout = primitive.copy()
        cutout.cutout = True

        if ranker.rank_primitives([solid]) < ranker.rank_primitives([cutout]):
            static_primitives.append(cutout)
        else:
            static_primitives.append(solid)

    best_set = ranker.best_primitives or result.best_genome
    logger.info("Best primitive set rank: %.6f", result.best_score)

    return ExtractionResult(
        primitives=list(best_set) + static_primitives,
        static_primitives=static_primitives,
        ga_result=result,
    )
