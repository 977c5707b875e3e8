"""Scene-level nearest-hit queries.

One query surface, two code paths:

- hierarchy traversal (``accel.traversal.intersect_bvh``) when the
  hierarchy is enabled, and
- a linear scan over every shape otherwise.

Both accept hits with ``RAY_EPSILON < t < max_t`` and keep only strictly
closer hits, so for the same ray they report the same nearest shape.

Inside kernels use ``intersect_scene`` (closest hit as (found, t, shape_id))
or ``intersect_surface`` (a SurfaceHit with point, normal and material).
From Python use ``intersect_ray`` / ``intersect_rays``.

Example:
    >>> from src.raycore.scene.intersection import intersect_ray
    >>> found, t, shape_id = intersect_ray((0, 0, 5), (0, 0, -1))
"""

import numpy as np
import numpy.typing as npt
import taichi as ti
import taichi.math as tm

from src.raycore.accel.traversal import get_uploaded_generation, intersect_bvh
from src.raycore.core.ray import RAY_EPSILON, T_MAX
from src.raycore.geometry.shapes import (
    get_shape_generation,
    hit_shape,
    num_shapes,
    shape_material,
    shape_normal,
)

vec3 = tm.vec3


@ti.dataclass
class SurfaceHit:
    """Record of the nearest ray-scene intersection.

    Attributes:
        hit: 1 if any shape was hit, 0 on a miss.
        t: Distance along the ray. Only valid if hit == 1.
        point: World-space hit point. Only valid if hit == 1.
        normal: Outward surface normal (unit length). Only valid if hit == 1.
        front_face: 1 if the ray arrives against the outward normal.
        shape_id: Id of the hit shape, -1 on a miss.
        material_id: Material of the hit shape, -1 on a miss.
    """

    hit: ti.i32
    t: ti.f32
    point: vec3
    normal: vec3
    front_face: ti.i32
    shape_id: ti.i32
    material_id: ti.i32


# 1 when queries should go through the hierarchy
_use_hierarchy = ti.field(dtype=ti.i32, shape=())


def set_hierarchy_enabled(enabled: bool) -> None:
    """Select the hierarchy (True) or the linear scan (False) for queries."""
    _use_hierarchy[None] = int(bool(enabled))


def is_hierarchy_enabled() -> bool:
    return bool(_use_hierarchy[None])


def hierarchy_is_current() -> bool:
    """True if an uploaded hierarchy matches the current shape table."""
    generation = get_uploaded_generation()
    return generation is not None and generation == get_shape_generation()


def check_query_ready(use_hierarchy: bool) -> None:
    """Raise if a hierarchy query cannot be answered.

    Raises:
        RuntimeError: If the hierarchy was never built or the shapes have
            changed since it was built.
    """
    if use_hierarchy and not hierarchy_is_current():
        raise RuntimeError(
            "Hierarchy is missing or stale. Rebuild it (SceneManager.build()) "
            "after changing the shape collection."
        )


@ti.func
def intersect_linear(ray_origin: vec3, ray_direction: vec3, t_min: ti.f32, max_t: ti.f32):
    """Brute-force nearest hit over every shape.

    Returns:
        A tuple (found, t, shape_id).
    """
    found = 0
    closest_t = max_t
    closest_shape = -1
    for shape_id in range(num_shapes[None]):
        hit, t = hit_shape(shape_id, ray_origin, ray_direction, t_min, closest_t)
        if hit == 1 and t < closest_t:
            found = 1
            closest_t = t
            closest_shape = shape_id
    return found, closest_t, closest_shape


@ti.func
def intersect_with(ray_origin: vec3, ray_direction: vec3, max_t: ti.f32, use_hierarchy: ti.i32):
    """Nearest hit through an explicitly chosen code path."""
    found = 0
    t = max_t
    shape_id = -1
    if use_hierarchy == 1:
        found, t, shape_id = intersect_bvh(ray_origin, ray_direction, RAY_EPSILON, max_t)
    else:
        found, t, shape_id = intersect_linear(ray_origin, ray_direction, RAY_EPSILON, max_t)
    return found, t, shape_id


@ti.func
def intersect_scene(ray_origin: vec3, ray_direction: vec3, max_t: ti.f32):
    """Nearest hit using the scene's current code path.

    Returns:
        A tuple (found, t, shape_id).
    """
    return intersect_with(ray_origin, ray_direction, max_t, _use_hierarchy[None])


@ti.func
def intersect_surface(ray_origin: vec3, ray_direction: vec3, max_t: ti.f32) -> SurfaceHit:
    """Nearest hit with surface information filled in."""
    found, t, shape_id = intersect_scene(ray_origin, ray_direction, max_t)
    point = vec3(0.0, 0.0, 0.0)
    normal = vec3(0.0, 0.0, 0.0)
    front_face = 0
    material_id = -1
    if found == 1:
        point = ray_origin + t * ray_direction
        normal = shape_normal(shape_id, point)
        front_face = ti.select(tm.dot(ray_direction, normal) < 0.0, 1, 0)
        material_id = shape_material(shape_id)
    return SurfaceHit(
        hit=found,
        t=ti.select(found == 1, t, 0.0),
        point=point,
        normal=normal,
        front_face=front_face,
        shape_id=shape_id,
        material_id=material_id,
    )


@ti.func
def is_occluded(ray_origin: vec3, ray_direction: vec3, max_t: ti.f32) -> ti.i32:
    """1 if any shape lies along the ray closer than max_t."""
    found, _t, _shape = intersect_scene(ray_origin, ray_direction, max_t)
    return found


# =============================================================================
# Host Query API
# =============================================================================


@ti.kernel
def _intersect_batch(
    origins: ti.types.ndarray(dtype=ti.f32, ndim=2),
    directions: ti.types.ndarray(dtype=ti.f32, ndim=2),
    max_t: ti.f32,
    use_hierarchy: ti.i32,
    out_hit: ti.types.ndarray(dtype=ti.i32, ndim=1),
    out_t: ti.types.ndarray(dtype=ti.f32, ndim=1),
    out_shape: ti.types.ndarray(dtype=ti.i32, ndim=1),
):
    for i in range(origins.shape[0]):
        o = vec3(origins[i, 0], origins[i, 1], origins[i, 2])
        d = vec3(directions[i, 0], directions[i, 1], directions[i, 2])
        found, t, shape_id = intersect_with(o, d, max_t, use_hierarchy)
        out_hit[i] = found
        out_t[i] = ti.select(found == 1, t, 0.0)
        out_shape[i] = shape_id


def intersect_rays(
    origins: npt.ArrayLike,
    directions: npt.ArrayLike,
    max_distance: float = T_MAX,
    use_hierarchy: bool | None = None,
) -> tuple[npt.NDArray[np.bool_], npt.NDArray[np.float32], npt.NDArray[np.int32]]:
    """Nearest hits for a batch of rays.

    Args:
        origins: (n, 3) ray origins.
        directions: (n, 3) ray directions.
        max_distance: Only hits closer than this are reported.
        use_hierarchy: Force a code path; None uses the scene setting.

    Returns:
        Arrays (hit, t, shape_id) of length n. t is 0 and shape_id -1 where
        hit is False.

    Raises:
        ValueError: If the arrays are not (n, 3) of equal length.
        RuntimeError: If the hierarchy is requested but missing or stale.
    """
    o = np.ascontiguousarray(origins, dtype=np.float32)
    d = np.ascontiguousarray(directions, dtype=np.float32)
    if o.ndim != 2 or o.shape[1] != 3 or o.shape != d.shape:
        raise ValueError(f"Expected two (n, 3) arrays, got {o.shape} and {d.shape}")

    if use_hierarchy is None:
        use_hierarchy = is_hierarchy_enabled()
    check_query_ready(use_hierarchy)

    n = o.shape[0]
    out_hit = np.zeros(n, dtype=np.int32)
    out_t = np.zeros(n, dtype=np.float32)
    out_shape = np.full(n, -1, dtype=np.int32)
    if n > 0:
        _intersect_batch(o, d, max_distance, int(use_hierarchy), out_hit, out_t, out_shape)
    return out_hit.astype(bool), out_t, out_shape


def intersect_ray(
    origin: tuple[float, float, float],
    direction: tuple[float, float, float],
    max_distance: float = T_MAX,
    use_hierarchy: bool | None = None,
) -> tuple[bool, float, int]:
    """Nearest hit for a single ray.

    Returns:
        Tuple (hit, distance, shape_id).
    """
    hit, t, shape = intersect_rays([origin], [direction], max_distance, use_hierarchy)
    return bool(hit[0]), float(t[0]), int(shape[0])
