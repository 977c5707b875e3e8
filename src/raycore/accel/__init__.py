"""Bounding volume hierarchy.

Components:
    builder: Host-side construction (largest-gap split, median fallback)
        and flattening into index arrays
    traversal: Upload into Taichi fields and nearest-hit traversal
"""

from .builder import (
    DEFAULT_LEAF_SIZE,
    BVHNode,
    FlatHierarchy,
    build_hierarchy,
    flatten_hierarchy,
    hierarchy_depth,
    hierarchy_stats,
    iter_leaves,
    iter_nodes,
    largest_gap_axis,
    median_split,
)
from .traversal import clear_hierarchy, intersect_bvh, upload_hierarchy

__all__ = [
    "DEFAULT_LEAF_SIZE",
    "BVHNode",
    "FlatHierarchy",
    "build_hierarchy",
    "flatten_hierarchy",
    "largest_gap_axis",
    "median_split",
    "iter_nodes",
    "iter_leaves",
    "hierarchy_depth",
    "hierarchy_stats",
    "upload_hierarchy",
    "clear_hierarchy",
    "intersect_bvh",
]
