"""
Creators: random genome construction, mutation and crossover.

CSGNodeCreator grows depth-bounded CSG trees over a fixed list of
primitives, PrimitiveSetCreator assembles primitive sets through a
PrimitiveFactory. Each creator owns its random number generator.
"""

import logging
from enum import Enum
from typing import Any, Optional, Sequence, Tuple

import numpy as np

from .csg_tree import BINARY_OPERATIONS, CSGNode, OperationType
from .data_models import ConfigurationError, CreatorParameters, _check_probability
from .primitive_set import PrimitiveFactory, PrimitiveSet

logger = logging.getLogger(__name__)


def _make_rng(seed: Optional[int]) -> np.random.Generator:
    # None draws fresh OS entropy
    return np.random.default_rng(seed)


class CSGNodeCreator:
    """
    Creates, mutates and recombines CSG trees.

    Args:
        primitives: Primitives available for leaves
        create_new_prob: Probability that a mutation discards the tree and creates a new one
        subtree_prob: Probability to grow an operation node instead of a leaf
        max_depth: Maximum tree depth (edges on the longest root-to-leaf path)
        seed: Optional seed for reproducible runs
    """

    def __init__(self,
                 primitives: Sequence[Any],
                 create_new_prob: float = 0.5,
                 subtree_prob: float = 0.7,
                 max_depth: int = 10,
                 seed: Optional[int] = None):
        if not primitives:
            raise ConfigurationError("CSGNodeCreator requires at least one primitive")
        _check_probability("create_new_prob", create_new_prob)
        _check_probability("subtree_prob", subtree_prob)
        if max_depth < 0:
            raise ConfigurationError(f"'max_depth' must be non-negative, got: {max_depth}")

        self.primitives = list(primitives)
        self.create_new_prob = create_new_prob
        self.subtree_prob = subtree_prob
        self.max_depth = max_depth
        self.rng = _make_rng(seed)

    @classmethod
    def from_parameters(cls, primitives: Sequence[Any], params: CreatorParameters) -> "CSGNodeCreator":
        return cls(
            primitives,
            create_new_prob=params.create_new_prob,
            subtree_prob=params.subtree_prob,
            max_depth=params.max_depth,
            seed=params.seed,
        )

    def _random_leaf(self) -> CSGNode:
        primitive = self.primitives[int(self.rng.integers(0, len(self.primitives)))]
        return CSGNode(OperationType.GEOMETRY, primitive)

    def _random_operation(self) -> CSGNode:
        return CSGNode(BINARY_OPERATIONS[int(self.rng.integers(0, len(BINARY_OPERATIONS)))])

    def create(self, max_depth: Optional[int] = None) -> CSGNode:
        """
        Create a random tree no deeper than `max_depth` (defaults to the configured maximum).

        A depth budget of 0 yields a single leaf.
        """
        if max_depth is None:
            max_depth = self.max_depth

        if max_depth <= 0:
            return self._random_leaf()

        node = self._random_operation()
        self._fill(node, max_depth, 1)
        return node

    def _fill(self, node: CSGNode, max_depth: int, cur_depth: int) -> None:
        for _ in range(node.allowed_children[1]):
            if cur_depth < max_depth and self.rng.random() < self.subtree_prob:
                child = self._random_operation()
                self._fill(child, max_depth, cur_depth + 1)
            else:
                child = self._random_leaf()
            node.add_child(child)

    def mutate(self, node: CSGNode) -> CSGNode:
        """
        Mutate a tree.

        With probability `create_new_prob` a brand-new tree is returned;
        otherwise a random subtree is replaced by a fresh one whose depth
        budget is `max_depth - depth(node)`. Results deeper than the maximum
        are rejected and the original tree is returned.
        """
        if self.rng.random() < self.create_new_prob:
            logger.debug("Mutation: new random tree")
            return self.create()

        node_idx = int(self.rng.integers(0, node.num_nodes()))
        max_subtree_depth = max(self.max_depth - node.depth(), 0)

        logger.debug("Mutation at node %d (subtree depth budget %d)", node_idx, max_subtree_depth)

        mutated = node.replace_at(node_idx, self.create(max_subtree_depth))
        if mutated.depth() > self.max_depth:
            return node
        return mutated

    def crossover(self, node1: CSGNode, node2: CSGNode) -> Tuple[CSGNode, CSGNode]:
        """
        Swap two random subtrees between copies of the parents.

        Each offspring deeper than the maximum is replaced by its own parent.
        """
        idx1 = int(self.rng.integers(0, node1.num_nodes()))
        idx2 = int(self.rng.integers(0, node2.num_nodes()))

        logger.debug("Crossover at %d and %d", idx1, idx2)

        child1 = node1.replace_at(idx1, node2.node_at(idx2))
        child2 = node2.replace_at(idx2, node1.node_at(idx1))

        return (
            child1 if child1.depth() <= self.max_depth else node1,
            child2 if child2.depth() <= self.max_depth else node2,
        )

    def info(self) -> str:
        return (f"CSGNodeCreator (create new random prob: {self.create_new_prob}, "
                f"sub tree prob: {self.subtree_prob}, max tree depth: {self.max_depth})")


class MutationType(Enum):
    """Primitive set mutation types, in the order of the mutation distribution"""
    NEW = "new"
    REPLACE = "replace"
    MODIFY = "modify"
    REMOVE = "remove"
    ADD = "add"


def normalize_mutation_distribution(distribution) -> np.ndarray:
    """
    Turn a mutation distribution into probabilities ordered like MutationType.

    Accepts a mapping of type names to weights (missing types weigh 0) or a
    sequence of five weights.

    Raises:
        ConfigurationError: If names are unknown, weights negative or all zero
    """
    if isinstance(distribution, dict):
        names = {t.value for t in MutationType}
        unknown = set(distribution) - names
        if unknown:
            raise ConfigurationError(
                f"Unknown mutation type(s): {', '.join(sorted(unknown))}. "
                f"Must be one of: {', '.join(t.value for t in MutationType)}"
            )
        weights = [float(distribution.get(t.value, 0.0)) for t in MutationType]
    else:
        weights = [float(w) for w in distribution]
        if len(weights) != len(MutationType):
            raise ConfigurationError(
                f"Mutation distribution needs {len(MutationType)} weights, got: {len(weights)}"
            )

    weights = np.asarray(weights)
    if np.any(weights < 0) or weights.sum() <= 0:
        raise ConfigurationError(f"Mutation weights must be non-negative with a positive sum, got: {weights.tolist()}")
    return weights / weights.sum()


class PrimitiveSetCreator:
    """
    Creates, mutates and recombines primitive sets.

    Args:
        factory: Creates and perturbs single primitives
        mutation_distribution: Weights of the mutation types (see MutationType)
        max_mutation_iterations: Upper bound of mutation steps per mutate call
        max_crossover_iterations: Upper bound of tail exchanges per crossover call
        max_set_size: Maximum number of primitives per set
        max_create_attempts: Primitive draws allowed per create call
            (defaults to 100 per slot)
        seed: Optional seed for reproducible runs
    """

    def __init__(self,
                 factory: PrimitiveFactory,
                 mutation_distribution=None,
                 max_mutation_iterations: int = 1,
                 max_crossover_iterations: int = 1,
                 max_set_size: int = 50,
                 max_create_attempts: Optional[int] = None,
                 seed: Optional[int] = None):
        if max_set_size <= 0:
            raise ConfigurationError(f"'max_set_size' must be positive, got: {max_set_size}")
        if max_mutation_iterations < 1 or max_crossover_iterations < 1:
            raise ConfigurationError("Mutation and crossover iterations must be at least 1")

        if mutation_distribution is None:
            mutation_distribution = CreatorParameters().mutation_distribution

        self.factory = factory
        self.mutation_probabilities = normalize_mutation_distribution(mutation_distribution)
        self.max_mutation_iterations = max_mutation_iterations
        self.max_crossover_iterations = max_crossover_iterations
        self.max_set_size = max_set_size
        self.max_create_attempts = max_create_attempts or 100 * max_set_size
        self.rng = _make_rng(seed)

    @classmethod
    def from_parameters(cls, factory: PrimitiveFactory, params: CreatorParameters) -> "PrimitiveSetCreator":
        return cls(
            factory,
            mutation_distribution=params.mutation_distribution,
            max_mutation_iterations=params.max_mutation_iterations,
            max_crossover_iterations=params.max_crossover_iterations,
            max_set_size=params.max_set_size,
            seed=params.seed,
        )

    def _random_index(self, ps: PrimitiveSet) -> int:
        return int(self.rng.integers(0, len(ps)))

    def create(self) -> Optional[PrimitiveSet]:
        """
        Create a random set with a size drawn from [1, max_set_size].

        Infeasible primitives are skipped. Returns None if not a single
        primitive could be created within the attempt budget.
        """
        set_size = int(self.rng.integers(1, self.max_set_size + 1))
        ps = PrimitiveSet(max_size=self.max_set_size)

        for _ in range(self.max_create_attempts):
            if len(ps) >= set_size:
                break
            primitive = self.factory.create_primitive(self.rng)
            if primitive is not None:
                ps.append(primitive)

        if len(ps) == 0:
            logger.debug("No feasible primitive found while creating a primitive set")
            return None
        return ps

    def draw_mutation_type(self) -> MutationType:
        types = list(MutationType)
        return types[int(self.rng.choice(len(types), p=self.mutation_probabilities))]

    def mutate(self, ps: PrimitiveSet) -> Optional[PrimitiveSet]:
        """
        Mutate a primitive set with a mutation type drawn from the distribution.

        NEW (or an empty input) creates a fresh set. The other types are
        applied between 1 and `max_mutation_iterations` times; infeasible
        replacements keep the original element.
        """
        mutation_type = self.draw_mutation_type()

        if mutation_type == MutationType.NEW or len(ps) == 0:
            logger.debug("Mutation new")
            return self.create()

        mutated = ps.copy()
        iterations = int(self.rng.integers(1, self.max_mutation_iterations + 1))

        for _ in range(iterations):
            logger.debug("Mutation %s", mutation_type.value)

            if mutation_type == MutationType.REPLACE:
                idx = self._random_index(mutated)
                new_primitive = self.factory.create_primitive(self.rng)
                if new_primitive is not None:
                    mutated[idx] = new_primitive

            elif mutation_type == MutationType.MODIFY:
                idx = self._random_index(mutated)
                new_primitive = self.factory.mutate_primitive(mutated[idx], self.rng)
                if new_primitive is not None:
                    mutated[idx] = new_primitive

            elif mutation_type == MutationType.REMOVE:
                if len(mutated) > 1:
                    mutated.remove_at(self._random_index(mutated))

            elif mutation_type == MutationType.ADD:
                if not mutated.is_full:
                    new_primitive = self.factory.create_primitive(self.rng)
                    if new_primitive is not None:
                        mutated.append(new_primitive)

        return mutated

    def crossover(self, ps1: PrimitiveSet, ps2: PrimitiveSet) -> Tuple[PrimitiveSet, PrimitiveSet]:
        """
        Exchange tails between copies of two sets.

        Starting at random positions, elements of the other parent overwrite
        the copy's elements; set sizes never change.
        """
        new_ps1 = ps1.copy()
        new_ps2 = ps2.copy()

        if len(ps1) == 0 or len(ps2) == 0:
            return new_ps1, new_ps2

        iterations = int(self.rng.integers(1, self.max_crossover_iterations + 1))
        for _ in range(iterations):
            idx1 = self._random_index(ps1)
            idx2 = self._random_index(ps2)

            for j in range(idx2, min(len(new_ps1), len(ps2))):
                new_ps1[j] = ps2[j].copy()
            for j in range(idx1, min(len(ps1), len(new_ps2))):
                new_ps2[j] = ps1[j].copy()

        return new_ps1, new_ps2

    def info(self) -> str:
        weights = ", ".join(
            f"{t.value}: {p:.2f}" for t, p in zip(MutationType, self.mutation_probabilities)
        )
        return (f"PrimitiveSetCreator (max set size: {self.max_set_size}, mutation distribution: {{{weights}}}, "
                f"factory: {self.factory.info()})")
