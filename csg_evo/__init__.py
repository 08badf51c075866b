"""
csg_evo - Evolutionary CSG Reconstruction

This package provides a generic genetic algorithm engine for reconstructing
CSG expression trees and primitive sets from sampled point clouds.

Key Features:
- Pluggable fitness functions (rankers) with optional score caching
- Depth-bounded tree mutation and crossover
- Tournament selection, elitism, iteration and plateau stop criteria
- Cancellable asynchronous runs with per-generation statistics
- Two modes: tree (single search) and cliques (one tree per primitive group)

Modules:
- data_models: Parameters, ranked individuals, statistics, results
- csg_tree: CSG expression trees
- primitive_set: Primitive sets and the manifold primitive factory
- implicit: Implicit primitives (sphere, box) and surface sampling
- creator: Genome creation, mutation and crossover
- ranker: Tree and primitive set fitness functions
- selection: Tournament selection
- stop_criteria: Iteration and plateau stop criteria
- engine: GA driver and async task handle
- pipeline: Clique tree construction and primitive extraction
- io_utils: YAML config, tree JSON/Graphviz, statistics CSV
- visualization: Fitness trace plots
- cli: Command-line interface for tree and cliques modes
"""

__version__ = "0.1.0"
__author__ = "CSG Reconstruction Team"

from .data_models import (
    ConfigurationError,
    CreatorParameters,
    GAParameters,
    GAResult,
    GenerationStats,
    RankedIndividual,
    RunStatistics,
    StopCriterionParameters,
)
from .csg_tree import CSGNode, OperationType
from .primitive_set import ManifoldPrimitiveFactory, Primitive, PrimitiveSet, PrimitiveType
from .creator import CSGNodeCreator, PrimitiveSetCreator
from .ranker import BestTracker, CSGNodeRanker, PrimitiveSetRanker, lambda_from_points
from .selection import TournamentSelector
from .stop_criteria import IterationStopCriterion, NoFitnessIncreaseStopCriterion
from .engine import GAState, GATask, GeneticAlgorithm

__all__ = [
    "ConfigurationError",
    "CreatorParameters",
    "GAParameters",
    "GAResult",
    "GenerationStats",
    "RankedIndividual",
    "RunStatistics",
    "StopCriterionParameters",
    "CSGNode",
    "OperationType",
    "ManifoldPrimitiveFactory",
    "Primitive",
    "PrimitiveSet",
    "PrimitiveType",
    "CSGNodeCreator",
    "PrimitiveSetCreator",
    "BestTracker",
    "CSGNodeRanker",
    "PrimitiveSetRanker",
    "lambda_from_points",
    "TournamentSelector",
    "IterationStopCriterion",
    "NoFitnessIncreaseStopCriterion",
    "GAState",
    "GATask",
    "GeneticAlgorithm",
]
