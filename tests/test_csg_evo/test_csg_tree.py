"""
Tests for CSG expression trees.

Tests structure checks, pre-order addressing, subtree replacement and
signed distance evaluation.
"""

import unittest

import numpy as np

from csg_evo.csg_tree import (
    CSGNode,
    OperationType,
    complement,
    difference,
    geometry,
    intersection,
    union,
)
from csg_evo.implicit import Box, Sphere


class TestCSGNodeStructure(unittest.TestCase):
    """Test node construction and arity checks."""

    def setUp(self):
        """Set up primitives and a small tree."""
        self.a = Sphere("a", [0.0, 0.0, 0.0], 1.0)
        self.b = Sphere("b", [1.0, 0.0, 0.0], 1.0)
        self.c = Box("c", [0.0, 0.0, 0.0], [1.0, 1.0, 1.0])
        self.tree = union(geometry(self.a), difference(geometry(self.b), geometry(self.c)))

    def test_num_nodes_and_depth(self):
        """Test node count and depth in edges."""
        self.assertEqual(self.tree.num_nodes(), 5)
        self.assertEqual(self.tree.depth(), 2)
        self.assertEqual(geometry(self.a).depth(), 0)

    def test_geometry_requires_primitive(self):
        """Test that leaves need a primitive."""
        with self.assertRaises(ValueError):
            CSGNode(OperationType.GEOMETRY)

    def test_operation_cannot_hold_primitive(self):
        """Test that operation nodes reject primitives."""
        with self.assertRaises(ValueError):
            CSGNode(OperationType.UNION, self.a)

    def test_add_child_overflow(self):
        """Test that a binary node rejects a third child."""
        with self.assertRaises(ValueError):
            self.tree.add_child(geometry(self.a))

    def test_complement_is_unary(self):
        """Test complement arity."""
        node = complement(geometry(self.a))
        self.assertEqual(node.allowed_children, (1, 1))
        with self.assertRaises(ValueError):
            node.add_child(geometry(self.b))

    def test_validate_detects_missing_children(self):
        """Test that underfull nodes are invalid."""
        node = CSGNode(OperationType.INTERSECTION, children=[geometry(self.a)])
        self.assertFalse(node.is_valid())
        with self.assertRaises(ValueError):
            node.validate()
        self.assertTrue(self.tree.is_valid())

    def test_primitives_are_distinct(self):
        """Test distinct primitive listing."""
        node = union(geometry(self.a), intersection(geometry(self.a), geometry(self.b)))
        self.assertEqual(len(node.primitives()), 2)
        self.assertIs(node.primitives()[0], self.a)

    def test_str(self):
        """Test readable tree representation."""
        self.assertEqual(str(self.tree), "union(a, difference(b, c))")


class TestCSGNodeAddressing(unittest.TestCase):
    """Test pre-order addressing and copy semantics."""

    def setUp(self):
        """Set up primitives and a small tree."""
        self.a = Sphere("a", [0.0, 0.0, 0.0], 1.0)
        self.b = Sphere("b", [1.0, 0.0, 0.0], 1.0)
        self.c = Box("c", [0.0, 0.0, 0.0], [1.0, 1.0, 1.0])
        self.tree = union(geometry(self.a), difference(geometry(self.b), geometry(self.c)))

    def test_preorder_order(self):
        """Test that node_at follows pre-order."""
        names = [self.tree.node_at(i).name for i in range(self.tree.num_nodes())]
        self.assertEqual(names, ["union", "a", "difference", "b", "c"])
        self.assertEqual([n.name for n in self.tree.iter_nodes()], names)

    def test_node_at_out_of_range(self):
        """Test invalid indices."""
        with self.assertRaises(IndexError):
            self.tree.node_at(5)
        with self.assertRaises(IndexError):
            self.tree.node_at(-1)

    def test_replace_at_leaves_original_untouched(self):
        """Test that replacement works on a copy."""
        replaced = self.tree.replace_at(2, geometry(self.a))

        self.assertEqual(str(replaced), "union(a, a)")
        self.assertEqual(str(self.tree), "union(a, difference(b, c))")

    def test_replace_root(self):
        """Test replacing the whole tree."""
        replaced = self.tree.replace_at(0, geometry(self.b))
        self.assertTrue(replaced.is_leaf)
        self.assertIs(replaced.primitive, self.b)

    def test_indices_follow_structure(self):
        """Test that addressing reflects edits."""
        replaced = self.tree.replace_at(1, difference(geometry(self.c), geometry(self.b)))
        self.assertEqual(replaced.num_nodes(), 7)
        self.assertEqual(replaced.node_at(4).name, "difference")

    def test_copy_shares_primitives(self):
        """Test structural copy."""
        copied = self.tree.copy()

        self.assertEqual(copied, self.tree)
        self.assertIsNot(copied, self.tree)
        self.assertIsNot(copied.children[0], self.tree.children[0])
        self.assertIs(copied.children[0].primitive, self.a)

    def test_equality_by_structure(self):
        """Test key based equality."""
        same = union(geometry(self.a), difference(geometry(self.b), geometry(self.c)))
        other = union(geometry(self.a), difference(geometry(self.c), geometry(self.b)))

        self.assertEqual(same, self.tree)
        self.assertEqual(same.key(), self.tree.key())
        self.assertNotEqual(other, self.tree)


class TestSignedDistance(unittest.TestCase):
    """Test signed distance evaluation of operations."""

    def setUp(self):
        """Set up two overlapping spheres."""
        self.a = Sphere("a", [0.0, 0.0, 0.0], 1.0)
        self.b = Sphere("b", [1.0, 0.0, 0.0], 1.0)
        self.point = np.array([[0.0, 0.0, 0.0]])

    def test_operations(self):
        """Test min/max combinations at the first sphere's center."""
        a, b = geometry(self.a), geometry(self.b)

        np.testing.assert_allclose(a.signed_distance(self.point), [-1.0])
        np.testing.assert_allclose(b.signed_distance(self.point), [0.0], atol=1e-12)
        np.testing.assert_allclose(union(a, b).signed_distance(self.point), [-1.0])
        np.testing.assert_allclose(intersection(a, b).signed_distance(self.point), [0.0], atol=1e-12)
        np.testing.assert_allclose(difference(a, b).signed_distance(self.point), [0.0], atol=1e-12)
        np.testing.assert_allclose(complement(a).signed_distance(self.point), [1.0])

    def test_box_distance(self):
        """Test box signed distance inside and outside."""
        box = Box("box", [0.0, 0.0, 0.0], [2.0, 2.0, 2.0])
        points = np.array([[0.0, 0.0, 0.0], [2.0, 0.0, 0.0], [1.0, 0.5, 0.0]])
        np.testing.assert_allclose(box.signed_distance(points), [-1.0, 1.0, 0.0], atol=1e-12)


if __name__ == '__main__':
    unittest.main()
