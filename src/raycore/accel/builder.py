"""Bounding volume hierarchy construction.

The hierarchy is built on the host from the shapes' bounding volumes, then
flattened into index arrays (an arena) that the Taichi traversal reads.

Split heuristic, applied to every node holding more than ``leaf_size``
shapes:

1. Bound the shape centroids (not the shape extents).
2. Pick the axis with the largest empty gap. Per axis, sort the shapes'
   minimum and maximum coordinates independently and take the largest
   ``sorted_min[i] - sorted_max[i - 1]``, starting from a gap of 0. Ties go
   to X, then Y, then Z.
3. Split at the midpoint of the centroid bounds on that axis. Centroids
   strictly below the midpoint go left, the rest go right.
4. If one side is empty, fall back to a median split: order the shapes by
   (centroid coordinate, shape id) and put the first ``n // 2`` on the left.
   Both halves are non-empty whenever n >= 2, so every recursion strictly
   shrinks, even when all centroids coincide.

Past ``MAX_HEURISTIC_DEPTH`` levels the builder uses the median split
directly, which bounds the tree depth for the traversal's fixed-size stack.

Example:
    >>> from src.raycore.geometry.aabb import BoundingVolume
    >>> boxes = [BoundingVolume((i, 0, 0), (i + 1, 1, 1)) for i in range(8)]
    >>> root = build_hierarchy(boxes)
    >>> sorted(i for leaf in iter_leaves(root) for i in leaf.shape_ids)
    [0, 1, 2, 3, 4, 5, 6, 7]
"""

import logging
from collections.abc import Iterator, Sequence
from dataclasses import dataclass

import numpy as np
import numpy.typing as npt

from src.raycore.geometry.aabb import BoundingVolume

logger = logging.getLogger(__name__)

# Default maximum number of shapes in a leaf
DEFAULT_LEAF_SIZE = 2

# Depth after which only median splits are used
MAX_HEURISTIC_DEPTH = 48

# Marks a missing child index in the flattened arena
NO_CHILD = -1


@dataclass
class BVHNode:
    """A node of the hierarchy.

    A leaf holds 1..leaf_size shape ids and no children. An internal node
    holds exactly two children and no shape ids. In both cases ``bounds``
    is the union of what the node contains.

    Attributes:
        bounds: Bounding volume of everything below this node.
        left: Left child (None for leaves).
        right: Right child (None for leaves).
        shape_ids: Shape ids stored in a leaf.
    """

    bounds: BoundingVolume
    left: "BVHNode | None" = None
    right: "BVHNode | None" = None
    shape_ids: tuple[int, ...] = ()

    @property
    def is_leaf(self) -> bool:
        return self.left is None


@dataclass
class FlatHierarchy:
    """The hierarchy laid out as parallel arrays in preorder.

    Node 0 is the root. For internal nodes ``left``/``right`` are node
    indices and ``count`` is 0. For leaves ``left``/``right`` are NO_CHILD
    and the leaf's shapes are ``shape_ids[first:first + count]``.
    """

    node_lo: npt.NDArray[np.float64]
    node_hi: npt.NDArray[np.float64]
    left: npt.NDArray[np.int32]
    right: npt.NDArray[np.int32]
    first: npt.NDArray[np.int32]
    count: npt.NDArray[np.int32]
    shape_ids: npt.NDArray[np.int32]

    @property
    def num_nodes(self) -> int:
        return int(self.left.shape[0])


def largest_gap_axis(lo: npt.NDArray[np.float64], hi: npt.NDArray[np.float64]) -> int:
    """Axis with the largest empty gap between shape extents.

    Args:
        lo: (n, 3) minimum corners of the shapes.
        hi: (n, 3) maximum corners of the shapes.

    Returns:
        0, 1 or 2. Ties resolve to the lowest axis.
    """
    best_axis = 0
    best_gap = -1.0
    for axis in range(3):
        gap = 0.0
        if lo.shape[0] > 1:
            sorted_min = np.sort(lo[:, axis])
            sorted_max = np.sort(hi[:, axis])
            gap = max(gap, float(np.max(sorted_min[1:] - sorted_max[:-1])))
        if gap > best_gap:
            best_gap = gap
            best_axis = axis
    return best_axis


def median_split(
    ids: npt.NDArray[np.int64], centroids: npt.NDArray[np.float64], axis: int
) -> tuple[npt.NDArray[np.int64], npt.NDArray[np.int64]]:
    """Split ids at the median centroid on an axis.

    Shapes are ordered by (centroid coordinate, shape id); the first
    ``len(ids) // 2`` go left.
    """
    order = np.lexsort((ids, centroids[ids, axis]))
    ordered = ids[order]
    half = len(ordered) // 2
    return ordered[:half], ordered[half:]


class _Builder:
    def __init__(self, bounds: Sequence[BoundingVolume], leaf_size: int) -> None:
        self.bounds = bounds
        self.leaf_size = leaf_size
        self.lo = np.array([b.lo for b in bounds], dtype=np.float64)
        self.hi = np.array([b.hi for b in bounds], dtype=np.float64)
        self.centroids = 0.5 * (self.lo + self.hi)
        self.median_fallbacks = 0

    def build(self, ids: npt.NDArray[np.int64], depth: int) -> BVHNode:
        if len(ids) <= self.leaf_size:
            leaf_bounds = BoundingVolume.union_of(self.bounds[i] for i in ids)
            return BVHNode(bounds=leaf_bounds, shape_ids=tuple(int(i) for i in ids))

        axis = largest_gap_axis(self.lo[ids], self.hi[ids])

        if depth >= MAX_HEURISTIC_DEPTH:
            left_ids, right_ids = median_split(ids, self.centroids, axis)
        else:
            centroid_bounds = BoundingVolume(
                self.centroids[ids].min(axis=0), self.centroids[ids].max(axis=0)
            )
            midpoint = centroid_bounds.centroid()[axis]
            goes_left = self.centroids[ids, axis] < midpoint
            left_ids = ids[goes_left]
            right_ids = ids[~goes_left]
            if len(left_ids) == 0 or len(right_ids) == 0:
                self.median_fallbacks += 1
                left_ids, right_ids = median_split(ids, self.centroids, axis)

        left = self.build(left_ids, depth + 1)
        right = self.build(right_ids, depth + 1)
        return BVHNode(bounds=left.bounds.merge(right.bounds), left=left, right=right)


def build_hierarchy(
    bounds: Sequence[BoundingVolume], leaf_size: int = DEFAULT_LEAF_SIZE
) -> BVHNode:
    """Build a hierarchy over shapes given their bounding volumes.

    Shape ids are positions in ``bounds``. The result depends only on the
    input, and every id appears in exactly one leaf.

    Args:
        bounds: Bounding volume of each shape, indexed by shape id.
        leaf_size: Maximum number of shapes per leaf (>= 1).

    Returns:
        The root node.

    Raises:
        ValueError: If bounds is empty, contains an empty volume, or
            leaf_size < 1.
    """
    if leaf_size < 1:
        raise ValueError(f"leaf_size = {leaf_size} must be at least 1")
    if len(bounds) == 0:
        raise ValueError("Cannot build a hierarchy over an empty shape collection")
    for shape_id, volume in enumerate(bounds):
        if volume.is_empty:
            raise ValueError(f"Shape {shape_id} has an empty bounding volume")

    builder = _Builder(bounds, leaf_size)
    root = builder.build(np.arange(len(bounds), dtype=np.int64), 0)

    if logger.isEnabledFor(logging.DEBUG):
        stats = hierarchy_stats(root)
        logger.debug(
            "Built hierarchy over %d shapes: %d nodes, %d leaves, depth %d, %d median fallbacks",
            len(bounds),
            stats["nodes"],
            stats["leaves"],
            stats["depth"],
            builder.median_fallbacks,
        )
    return root


def iter_nodes(root: BVHNode) -> Iterator[BVHNode]:
    """Yield every node in preorder."""
    stack = [root]
    while stack:
        node = stack.pop()
        yield node
        if not node.is_leaf:
            stack.append(node.right)
            stack.append(node.left)


def iter_leaves(root: BVHNode) -> Iterator[BVHNode]:
    """Yield the leaves from left to right."""
    return (node for node in iter_nodes(root) if node.is_leaf)


def hierarchy_depth(root: BVHNode) -> int:
    """Number of levels below the root (a single leaf has depth 0)."""
    depth = 0
    stack = [(root, 0)]
    while stack:
        node, level = stack.pop()
        depth = max(depth, level)
        if not node.is_leaf:
            stack.append((node.left, level + 1))
            stack.append((node.right, level + 1))
    return depth


def hierarchy_stats(root: BVHNode) -> dict[str, int]:
    """Node, leaf and depth counts for logging and tests."""
    nodes = 0
    leaves = 0
    for node in iter_nodes(root):
        nodes += 1
        leaves += int(node.is_leaf)
    return {"nodes": nodes, "leaves": leaves, "depth": hierarchy_depth(root)}


def flatten_hierarchy(root: BVHNode) -> FlatHierarchy:
    """Lay the tree out in preorder as parallel index arrays."""
    lo: list[tuple[float, float, float]] = []
    hi: list[tuple[float, float, float]] = []
    left: list[int] = []
    right: list[int] = []
    first: list[int] = []
    count: list[int] = []
    shape_ids: list[int] = []

    def visit(node: BVHNode) -> int:
        index = len(lo)
        lo.append(node.bounds.lo)
        hi.append(node.bounds.hi)
        left.append(NO_CHILD)
        right.append(NO_CHILD)
        first.append(len(shape_ids))
        count.append(0)
        if node.is_leaf:
            count[index] = len(node.shape_ids)
            shape_ids.extend(node.shape_ids)
        else:
            left[index] = visit(node.left)
            right[index] = visit(node.right)
        return index

    visit(root)
    return FlatHierarchy(
        node_lo=np.array(lo, dtype=np.float64),
        node_hi=np.array(hi, dtype=np.float64),
        left=np.array(left, dtype=np.int32),
        right=np.array(right, dtype=np.int32),
        first=np.array(first, dtype=np.int32),
        count=np.array(count, dtype=np.int32),
        shape_ids=np.array(shape_ids, dtype=np.int32),
    )
