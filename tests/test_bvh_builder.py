"""Unit tests for the bounding volume hierarchy builder.

Tests cover:
- Every shape id appears in exactly one leaf
- Node bounds are the union of their children and contain their shapes
- Largest-gap axis selection and lowest-axis tie breaking
- Centroid midpoint partitioning and the median fallback
- Leaf size, degenerate inputs and depth on pathological inputs
- Deterministic builds and preorder flattening
"""

import numpy as np
import pytest


def _random_bounds(count, seed=0):
    from src.raycore.geometry.aabb import BoundingVolume

    rng = np.random.default_rng(seed)
    lo = rng.uniform(-10.0, 10.0, size=(count, 3))
    size = rng.uniform(0.01, 1.0, size=(count, 3))
    return [BoundingVolume(lo[i], lo[i] + size[i]) for i in range(count)]


def _box_at(x, y=0.0, z=0.0, half=0.125):
    from src.raycore.geometry.aabb import BoundingVolume

    return BoundingVolume((x - half, y - half, z - half), (x + half, y + half, z + half))


class TestHierarchyStructure:
    """Structural invariants of built hierarchies."""

    @pytest.mark.parametrize("leaf_size", [1, 2, 4])
    def test_every_shape_in_exactly_one_leaf(self, leaf_size):
        """Leaves partition the shape ids and respect the leaf size."""
        from src.raycore.accel.builder import build_hierarchy, iter_leaves

        bounds = _random_bounds(300, seed=leaf_size)
        root = build_hierarchy(bounds, leaf_size=leaf_size)

        seen = []
        for leaf in iter_leaves(root):
            assert 1 <= len(leaf.shape_ids) <= leaf_size
            seen.extend(leaf.shape_ids)
        assert sorted(seen) == list(range(300))

    def test_node_bounds_are_unions(self):
        """Internal nodes bound exactly their children; leaves bound their shapes."""
        from src.raycore.accel.builder import build_hierarchy, iter_nodes
        from src.raycore.geometry.aabb import BoundingVolume

        bounds = _random_bounds(200, seed=5)
        root = build_hierarchy(bounds)

        for node in iter_nodes(root):
            if node.is_leaf:
                expected = BoundingVolume.union_of(bounds[i] for i in node.shape_ids)
            else:
                expected = node.left.bounds.merge(node.right.bounds)
                assert node.bounds.contains(node.left.bounds)
                assert node.bounds.contains(node.right.bounds)
            assert node.bounds.isclose(expected)

        assert root.bounds.isclose(BoundingVolume.union_of(bounds))

    def test_stats_are_consistent(self):
        """A binary tree with L leaves has 2L - 1 nodes."""
        from src.raycore.accel.builder import build_hierarchy, hierarchy_stats

        root = build_hierarchy(_random_bounds(100, seed=9), leaf_size=1)
        stats = hierarchy_stats(root)
        assert stats["leaves"] == 100
        assert stats["nodes"] == 2 * stats["leaves"] - 1
        assert stats["depth"] >= 7

    def test_single_shape_is_a_leaf(self):
        """One shape gives a single-leaf tree."""
        from src.raycore.accel.builder import build_hierarchy, hierarchy_depth

        root = build_hierarchy([_box_at(0.0)], leaf_size=1)
        assert root.is_leaf
        assert root.shape_ids == (0,)
        assert hierarchy_depth(root) == 0

    def test_build_is_deterministic(self):
        """The same input yields the same flattened arrays."""
        from src.raycore.accel.builder import build_hierarchy, flatten_hierarchy

        bounds = _random_bounds(150, seed=2)
        a = flatten_hierarchy(build_hierarchy(bounds))
        b = flatten_hierarchy(build_hierarchy(bounds))
        np.testing.assert_array_equal(a.shape_ids, b.shape_ids)
        np.testing.assert_array_equal(a.left, b.left)
        np.testing.assert_array_equal(a.right, b.right)
        np.testing.assert_array_equal(a.node_lo, b.node_lo)


class TestSplitRules:
    """Axis choice and partitioning."""

    def test_largest_gap_axis_picks_separated_axis(self):
        """Boxes overlapping in x and z but separated in y split on y."""
        from src.raycore.accel.builder import largest_gap_axis

        lo = np.array([[0.0, 0.0, 0.0], [0.0, 2.0, 0.0]])
        hi = np.array([[1.0, 1.0, 1.0], [1.0, 3.0, 1.0]])
        assert largest_gap_axis(lo, hi) == 1

    def test_largest_gap_ties_go_to_lowest_axis(self):
        """Equal gaps resolve to the lowest axis index."""
        from src.raycore.accel.builder import largest_gap_axis

        # Fully overlapping: every gap is zero
        lo = np.array([[0.0, 0.0, 0.0], [0.0, 0.0, 0.0]])
        hi = np.array([[1.0, 1.0, 1.0], [1.0, 1.0, 1.0]])
        assert largest_gap_axis(lo, hi) == 0

        # Same gap on y and z, none on x
        lo = np.array([[0.0, 0.0, 0.0], [0.0, 2.0, 2.0]])
        hi = np.array([[1.0, 1.0, 1.0], [1.0, 3.0, 3.0]])
        assert largest_gap_axis(lo, hi) == 1

    def test_midpoint_partition(self):
        """Centroids strictly below the midpoint go left."""
        from src.raycore.accel.builder import build_hierarchy

        bounds = [_box_at(0.0), _box_at(1.0), _box_at(2.0)]
        root = build_hierarchy(bounds, leaf_size=1)
        assert root.left.is_leaf
        assert root.left.shape_ids == (0,)
        right_ids = sorted(root.right.left.shape_ids + root.right.right.shape_ids)
        assert right_ids == [1, 2]

    def test_identical_centroids_use_median_split(self):
        """Coincident shapes split by id at the median."""
        from src.raycore.accel.builder import build_hierarchy

        bounds = [_box_at(1.0, 1.0, 1.0) for _ in range(4)]
        root = build_hierarchy(bounds, leaf_size=1)
        assert not root.is_leaf
        assert sorted(root.left.left.shape_ids + root.left.right.shape_ids) == [0, 1]
        assert sorted(root.right.left.shape_ids + root.right.right.shape_ids) == [2, 3]

    def test_median_split_orders_by_centroid_then_id(self):
        """The lower half by (centroid, id) goes left."""
        from src.raycore.accel.builder import median_split

        ids = np.array([0, 1, 2, 3, 4], dtype=np.int64)
        centroids = np.array([[3.0, 0, 0], [1.0, 0, 0], [3.0, 0, 0], [0.0, 0, 0], [1.0, 0, 0]])
        left, right = median_split(ids, centroids, 0)
        assert list(left) == [3, 1]
        assert list(right) == [4, 0, 2]

    def test_many_identical_shapes_terminate(self):
        """A large pile of coincident shapes stays shallow."""
        from src.raycore.accel.builder import build_hierarchy, hierarchy_depth, iter_leaves

        bounds = [_box_at(0.0) for _ in range(1000)]
        root = build_hierarchy(bounds, leaf_size=2)
        assert hierarchy_depth(root) <= 10
        assert sum(len(leaf.shape_ids) for leaf in iter_leaves(root)) == 1000

    def test_skewed_input_depth_is_bounded(self):
        """Exponentially spaced shapes would chain; the depth guard keeps the tree within the traversal stack."""
        from src.raycore.accel.builder import build_hierarchy, hierarchy_depth
        from src.raycore.accel.traversal import STACK_SIZE

        bounds = [_box_at(2.0**k, half=0.25) for k in range(200)]
        root = build_hierarchy(bounds, leaf_size=1)
        assert hierarchy_depth(root) < STACK_SIZE


class TestBuildErrors:
    """Invalid builder input."""

    def test_empty_collection(self):
        from src.raycore.accel.builder import build_hierarchy

        with pytest.raises(ValueError, match="empty shape collection"):
            build_hierarchy([])

    def test_empty_volume(self):
        from src.raycore.accel.builder import build_hierarchy
        from src.raycore.geometry.aabb import BoundingVolume

        with pytest.raises(ValueError, match="Shape 1 has an empty bounding volume"):
            build_hierarchy([_box_at(0.0), BoundingVolume.empty()])

    def test_leaf_size_must_be_positive(self):
        from src.raycore.accel.builder import build_hierarchy

        with pytest.raises(ValueError, match="leaf_size"):
            build_hierarchy([_box_at(0.0)], leaf_size=0)


class TestFlattening:
    """Preorder flattening for upload to the traversal fields."""

    def test_preorder_layout(self):
        """Root at 0, left child right after its parent, leaf ranges cover all ids."""
        from src.raycore.accel.builder import NO_CHILD, build_hierarchy, flatten_hierarchy

        bounds = _random_bounds(50, seed=4)
        flat = flatten_hierarchy(build_hierarchy(bounds))

        assert flat.num_nodes == flat.node_lo.shape[0]
        assert sorted(flat.shape_ids.tolist()) == list(range(50))
        for index in range(flat.num_nodes):
            if flat.left[index] == NO_CHILD:
                assert flat.right[index] == NO_CHILD
                assert flat.count[index] >= 1
            else:
                assert flat.left[index] == index + 1
                assert flat.right[index] > flat.left[index]
                assert flat.count[index] == 0
                assert np.all(flat.node_lo[index] <= flat.node_lo[flat.left[index]])
                assert np.all(flat.node_hi[index] >= flat.node_hi[flat.right[index]])
        assert int(flat.count.sum()) == 50
