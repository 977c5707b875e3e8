"""Nearest-hit traversal of the flattened hierarchy.

The flattened arena from ``builder.flatten_hierarchy`` is uploaded into
Taichi fields. ``intersect_bvh`` then walks it with a small local stack.

- A node is skipped when its box misses the ray or when its entry distance
  is beyond the closest hit found so far.
- Leaves scan their shapes and keep only strictly closer hits.
- For internal nodes both child boxes are tested. The child with the
  smaller entry distance is visited first (ties go to the left child), and
  the other one is visited afterwards with the tightened bound.

One ``closest_t`` is threaded through the whole descent, so the result is
the same nearest hit a linear scan over all shapes would find.
"""

import numpy as np
import taichi as ti
import taichi.math as tm

from src.raycore.accel.builder import FlatHierarchy
from src.raycore.core.ray import make_ray_query
from src.raycore.geometry.aabb import hit_aabb_signed
from src.raycore.geometry.shapes import MAX_SHAPES, hit_shape

vec3 = tm.vec3

# A binary tree over MAX_SHAPES leaves has fewer than 2 * MAX_SHAPES nodes
MAX_NODES = 2 * MAX_SHAPES

# Traversal stack entries; tree depth is kept below this by the builder
STACK_SIZE = 64

# Uploaded boxes are widened by this much (plus a relative term) so that
# f32 slab tests never reject a hit the exact shape test accepts, e.g. on
# the zero-thickness box of an axis-aligned triangle.
BOX_PADDING = 1e-5
BOX_PADDING_RELATIVE = 1e-6

node_lo = ti.Vector.field(3, dtype=ti.f32, shape=MAX_NODES)
node_hi = ti.Vector.field(3, dtype=ti.f32, shape=MAX_NODES)
node_left = ti.field(dtype=ti.i32, shape=MAX_NODES)
node_right = ti.field(dtype=ti.i32, shape=MAX_NODES)
node_first = ti.field(dtype=ti.i32, shape=MAX_NODES)
node_count = ti.field(dtype=ti.i32, shape=MAX_NODES)
leaf_shape_ids = ti.field(dtype=ti.i32, shape=MAX_SHAPES)
num_nodes = ti.field(dtype=ti.i32, shape=())

# Shape-table generation the uploaded hierarchy was built from
_uploaded_generation: int | None = None


def _padded(array: np.ndarray, rows: int, dtype) -> np.ndarray:
    out = np.zeros((rows,) + array.shape[1:], dtype=dtype)
    out[: array.shape[0]] = array
    return out


def upload_hierarchy(flat: FlatHierarchy, generation: int | None = None) -> None:
    """Copy a flattened hierarchy into the traversal fields.

    Args:
        flat: Arena produced by flatten_hierarchy().
        generation: Shape-table generation the hierarchy was built from.

    Raises:
        RuntimeError: If the arena exceeds the preallocated capacity.
    """
    global _uploaded_generation
    if flat.num_nodes > MAX_NODES:
        raise RuntimeError(f"Hierarchy has {flat.num_nodes} nodes, maximum is {MAX_NODES}")
    if flat.shape_ids.shape[0] > MAX_SHAPES:
        raise RuntimeError(f"Hierarchy references {flat.shape_ids.shape[0]} shapes, maximum is {MAX_SHAPES}")

    pad = BOX_PADDING + BOX_PADDING_RELATIVE * np.maximum(np.abs(flat.node_lo), np.abs(flat.node_hi))
    node_lo.from_numpy(_padded(flat.node_lo - pad, MAX_NODES, np.float32))
    node_hi.from_numpy(_padded(flat.node_hi + pad, MAX_NODES, np.float32))
    node_left.from_numpy(_padded(flat.left, MAX_NODES, np.int32))
    node_right.from_numpy(_padded(flat.right, MAX_NODES, np.int32))
    node_first.from_numpy(_padded(flat.first, MAX_NODES, np.int32))
    node_count.from_numpy(_padded(flat.count, MAX_NODES, np.int32))
    leaf_shape_ids.from_numpy(_padded(flat.shape_ids, MAX_SHAPES, np.int32))
    num_nodes[None] = flat.num_nodes
    _uploaded_generation = generation


def clear_hierarchy() -> None:
    """Drop the uploaded hierarchy."""
    global _uploaded_generation
    num_nodes[None] = 0
    _uploaded_generation = None


def get_uploaded_generation() -> int | None:
    """Shape-table generation of the uploaded hierarchy, or None."""
    return _uploaded_generation


@ti.func
def intersect_bvh(ray_origin: vec3, ray_direction: vec3, t_min: ti.f32, max_t: ti.f32):
    """Find the nearest shape hit using the uploaded hierarchy.

    Args:
        ray_origin: The starting point of the ray.
        ray_direction: The direction vector of the ray.
        t_min: Hits must satisfy t > t_min.
        max_t: Hits must satisfy t < max_t.

    Returns:
        A tuple (found, t, shape_id). shape_id is -1 when nothing is found.
    """
    query = make_ray_query(ray_origin, ray_direction)
    found = 0
    closest_t = max_t
    closest_shape = -1

    stack = ti.Vector([0 for _ in range(STACK_SIZE)], dt=ti.i32)
    stack_t = ti.Vector([0.0 for _ in range(STACK_SIZE)], dt=ti.f32)
    stack_ptr = 0

    if num_nodes[None] > 0:
        root_hit, root_enter, _root_exit = hit_aabb_signed(query, node_lo[0], node_hi[0], 0.0, closest_t)
        if root_hit == 1:
            stack[0] = 0
            stack_t[0] = root_enter
            stack_ptr = 1

    while stack_ptr > 0:
        stack_ptr -= 1
        node = stack[stack_ptr]

        # The bound may have tightened since this node was pushed
        if stack_t[stack_ptr] <= closest_t:
            count = node_count[node]
            if count > 0:
                first = node_first[node]
                for k in range(count):
                    shape_id = leaf_shape_ids[first + k]
                    hit, t = hit_shape(shape_id, ray_origin, ray_direction, t_min, closest_t)
                    if hit == 1 and t < closest_t:
                        found = 1
                        closest_t = t
                        closest_shape = shape_id
            else:
                left = node_left[node]
                right = node_right[node]
                hit_l, enter_l, _exit_l = hit_aabb_signed(query, node_lo[left], node_hi[left], 0.0, closest_t)
                hit_r, enter_r, _exit_r = hit_aabb_signed(
                    query, node_lo[right], node_hi[right], 0.0, closest_t
                )
                if hit_l == 1 and hit_r == 1:
                    near = left
                    far = right
                    near_t = enter_l
                    far_t = enter_r
                    if enter_r < enter_l:
                        near = right
                        far = left
                        near_t = enter_r
                        far_t = enter_l
                    # Far child first so the near child is popped next
                    if stack_ptr + 2 <= STACK_SIZE:
                        stack[stack_ptr] = far
                        stack_t[stack_ptr] = far_t
                        stack[stack_ptr + 1] = near
                        stack_t[stack_ptr + 1] = near_t
                        stack_ptr += 2
                elif hit_l == 1:
                    if stack_ptr < STACK_SIZE:
                        stack[stack_ptr] = left
                        stack_t[stack_ptr] = enter_l
                        stack_ptr += 1
                elif hit_r == 1:
                    if stack_ptr < STACK_SIZE:
                        stack[stack_ptr] = right
                        stack_t[stack_ptr] = enter_r
                        stack_ptr += 1

    return found, closest_t, closest_shape
