"""
CSG expression trees.

A tree is built from CSGNode objects: operation nodes own an ordered list of
children, geometry (leaf) nodes reference an external primitive. Nodes are
addressed by their pre-order index, which is recomputed from the current
structure on every lookup.
"""

from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple

import numpy as np


class OperationType(Enum):
    """Node tags of a CSG tree"""
    GEOMETRY = "geometry"
    UNION = "union"
    INTERSECTION = "intersection"
    DIFFERENCE = "difference"
    COMPLEMENT = "complement"


# (min, max) number of children per node type
ALLOWED_CHILDREN: Dict[OperationType, Tuple[int, int]] = {
    OperationType.GEOMETRY: (0, 0),
    OperationType.UNION: (2, 2),
    OperationType.INTERSECTION: (2, 2),
    OperationType.DIFFERENCE: (2, 2),
    OperationType.COMPLEMENT: (1, 1),
}

# Operations the creator draws from when growing random trees
BINARY_OPERATIONS = (
    OperationType.UNION,
    OperationType.INTERSECTION,
    OperationType.DIFFERENCE,
)


class CSGNode:
    """
    Node of a CSG expression tree.

    Attributes:
        operation: Node tag (GEOMETRY for leaves)
        primitive: External primitive referenced by a leaf (None otherwise)
        children: Owned child nodes
    """

    def __init__(self,
                 operation: OperationType,
                 primitive: Any = None,
                 children: Optional[List["CSGNode"]] = None):
        if operation == OperationType.GEOMETRY and primitive is None:
            raise ValueError("Geometry nodes require a primitive")
        if operation != OperationType.GEOMETRY and primitive is not None:
            raise ValueError(f"Operation node '{operation.value}' cannot hold a primitive")

        self.operation = operation
        self.primitive = primitive
        self.children: List[CSGNode] = []
        for child in children or []:
            self.add_child(child)

    @property
    def allowed_children(self) -> Tuple[int, int]:
        return ALLOWED_CHILDREN[self.operation]

    @property
    def is_leaf(self) -> bool:
        return self.operation == OperationType.GEOMETRY

    @property
    def name(self) -> str:
        if self.is_leaf:
            return str(getattr(self.primitive, "name", self.primitive))
        return self.operation.value

    def add_child(self, child: "CSGNode") -> None:
        """
        Append a child node.

        Raises:
            ValueError: If the node already holds its maximum number of children
        """
        if len(self.children) >= self.allowed_children[1]:
            raise ValueError(
                f"'{self.name}' node accepts at most {self.allowed_children[1]} children"
            )
        self.children.append(child)

    def copy(self) -> "CSGNode":
        """Structural copy; primitives are shared references."""
        node = CSGNode(self.operation, self.primitive)
        node.children = [child.copy() for child in self.children]
        return node

    def num_nodes(self) -> int:
        return 1 + sum(child.num_nodes() for child in self.children)

    def depth(self) -> int:
        """Number of edges on the longest root-to-leaf path (a leaf has depth 0)."""
        if not self.children:
            return 0
        return 1 + max(child.depth() for child in self.children)

    def iter_nodes(self) -> Iterator["CSGNode"]:
        """Yield all nodes in pre-order."""
        for node, _, _ in self._walk():
            yield node

    def _walk(self, parent: Optional["CSGNode"] = None, slot: Optional[int] = None):
        yield self, parent, slot
        for i, child in enumerate(self.children):
            yield from child._walk(self, i)

    def _locate(self, index: int):
        if index < 0:
            raise IndexError(f"Node index must be non-negative, got: {index}")
        for i, entry in enumerate(self._walk()):
            if i == index:
                return entry
        raise IndexError(f"Node index {index} out of range for tree with {self.num_nodes()} nodes")

    def node_at(self, index: int) -> "CSGNode":
        """Return the node at pre-order position `index`."""
        node, _, _ = self._locate(index)
        return node

    def replace_at(self, index: int, subtree: "CSGNode") -> "CSGNode":
        """
        Return a copy of this tree whose node at `index` is replaced by a copy of `subtree`.

        This tree is left untouched.
        """
        result = self.copy()
        _, parent, slot = result._locate(index)
        if parent is None:
            return subtree.copy()
        parent.children[slot] = subtree.copy()
        return result

    def validate(self) -> None:
        """
        Check the child count of every node.

        Raises:
            ValueError: If a node has fewer or more children than its operation allows
        """
        for node in self.iter_nodes():
            low, high = node.allowed_children
            if not low <= len(node.children) <= high:
                raise ValueError(
                    f"'{node.name}' node has {len(node.children)} children, "
                    f"expected between {low} and {high}"
                )

    def is_valid(self) -> bool:
        try:
            self.validate()
        except ValueError:
            return False
        return True

    def primitives(self) -> List[Any]:
        """Distinct primitives referenced by the leaves, in pre-order of first use."""
        seen = []
        for node in self.iter_nodes():
            if node.is_leaf and not any(p is node.primitive for p in seen):
                seen.append(node.primitive)
        return seen

    def key(self) -> tuple:
        """Hashable structural key (primitives by identity)."""
        if self.is_leaf:
            return (self.operation.value, id(self.primitive))
        return (self.operation.value,) + tuple(child.key() for child in self.children)

    def signed_distance(self, points: np.ndarray) -> np.ndarray:
        """
        Evaluate the tree's signed distance at `points` (N x 3).

        Leaves delegate to `primitive.signed_distance`; operations combine
        child distances with min/max.
        """
        if self.is_leaf:
            return np.asarray(self.primitive.signed_distance(points), dtype=float)

        values = [child.signed_distance(points) for child in self.children]

        if self.operation == OperationType.UNION:
            return np.minimum(values[0], values[1])
        if self.operation == OperationType.INTERSECTION:
            return np.maximum(values[0], values[1])
        if self.operation == OperationType.DIFFERENCE:
            return np.maximum(values[0], -values[1])
        if self.operation == OperationType.COMPLEMENT:
            return -values[0]

        raise ValueError(f"Unsupported operation: {self.operation}")

    def __eq__(self, other) -> bool:
        if not isinstance(other, CSGNode):
            return NotImplemented
        return self.key() == other.key()

    __hash__ = None

    def __str__(self) -> str:
        if self.is_leaf:
            return self.name
        return f"{self.name}({', '.join(str(child) for child in self.children)})"

    def __repr__(self) -> str:
        return f"CSGNode({self})"


def geometry(primitive: Any) -> CSGNode:
    return CSGNode(OperationType.GEOMETRY, primitive)


def union(a: CSGNode, b: CSGNode) -> CSGNode:
    return CSGNode(OperationType.UNION, children=[a, b])


def intersection(a: CSGNode, b: CSGNode) -> CSGNode:
    return CSGNode(OperationType.INTERSECTION, children=[a, b])


def difference(a: CSGNode, b: CSGNode) -> CSGNode:
    return CSGNode(OperationType.DIFFERENCE, children=[a, b])


def complement(a: CSGNode) -> CSGNode:
    return CSGNode(OperationType.COMPLEMENT, children=[a])
