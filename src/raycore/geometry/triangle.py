"""Triangle primitive with Moller-Trumbore intersection.

A triangle stores its three vertices and a precomputed unit normal
(v1 - v0) x (v2 - v0), normalized once when the triangle is added to the
scene. Rays parallel to the triangle's plane (near-zero determinant) are
treated as misses.
"""

import math

import numpy as np
import taichi as ti
import taichi.math as tm

from src.raycore.geometry.aabb import BoundingVolume, Point3

vec3 = tm.vec3

# Determinant threshold below which the ray is considered parallel
_PARALLEL_EPSILON = 1e-8


@ti.dataclass
class Triangle:
    """A triangle with a precomputed face normal.

    Attributes:
        v0: First vertex.
        v1: Second vertex.
        v2: Third vertex.
        normal: Unit normal of the face, (v1 - v0) x (v2 - v0) normalized.
    """

    v0: vec3
    v1: vec3
    v2: vec3
    normal: vec3


@ti.func
def make_triangle(v0: vec3, v1: vec3, v2: vec3) -> Triangle:
    """Create a triangle and compute its face normal."""
    n = tm.normalize(tm.cross(v1 - v0, v2 - v0))
    return Triangle(v0=v0, v1=v1, v2=v2, normal=n)


@ti.func
def hit_triangle_barycentric(
    ray_origin: vec3,
    ray_direction: vec3,
    tri: Triangle,
    t_min: ti.f32,
    t_max: ti.f32,
):
    """Moller-Trumbore ray-triangle test.

    Args:
        ray_origin: The starting point of the ray.
        ray_direction: The direction vector of the ray.
        tri: The triangle to test.
        t_min: Hits must satisfy t > t_min.
        t_max: Hits must satisfy t < t_max.

    Returns:
        A tuple (hit, t, u, v). u and v are the barycentric weights of v1 and
        v2 at the hit point, with u >= 0, v >= 0 and u + v <= 1 on a hit.
    """
    edge1 = tri.v1 - tri.v0
    edge2 = tri.v2 - tri.v0
    p = tm.cross(ray_direction, edge2)
    det = tm.dot(edge1, p)

    did_hit = 0
    hit_t = 0.0
    u = 0.0
    v = 0.0

    if ti.abs(det) > _PARALLEL_EPSILON:
        inv_det = 1.0 / det
        s = ray_origin - tri.v0
        u = tm.dot(s, p) * inv_det
        if u >= 0.0 and u <= 1.0:
            q = tm.cross(s, edge1)
            v = tm.dot(ray_direction, q) * inv_det
            if v >= 0.0 and u + v <= 1.0:
                t = tm.dot(edge2, q) * inv_det
                if t > t_min and t < t_max:
                    did_hit = 1
                    hit_t = t

    return did_hit, hit_t, u, v


@ti.func
def hit_triangle(
    ray_origin: vec3,
    ray_direction: vec3,
    tri: Triangle,
    t_min: ti.f32,
    t_max: ti.f32,
):
    """Ray-triangle test returning only (hit, t)."""
    did_hit, hit_t, _u, _v = hit_triangle_barycentric(ray_origin, ray_direction, tri, t_min, t_max)
    return did_hit, hit_t


@ti.func
def triangle_normal(tri: Triangle) -> vec3:
    """The precomputed face normal (constant across the face)."""
    return tri.normal


@ti.func
def triangle_uv(tri: Triangle, point: vec3):
    """Barycentric coordinates (u, v) of a point on the triangle's plane.

    Solves point = v0 + u * (v1 - v0) + v * (v2 - v0) in the least-squares
    sense, which is exact for points on the plane.
    """
    e1 = tri.v1 - tri.v0
    e2 = tri.v2 - tri.v0
    d = point - tri.v0
    d11 = tm.dot(e1, e1)
    d12 = tm.dot(e1, e2)
    d22 = tm.dot(e2, e2)
    d1 = tm.dot(d, e1)
    d2 = tm.dot(d, e2)
    denom = d11 * d22 - d12 * d12
    u = 0.0
    v = 0.0
    if ti.abs(denom) > 1e-12:
        u = (d22 * d1 - d12 * d2) / denom
        v = (d11 * d2 - d12 * d1) / denom
    return u, v


# =============================================================================
# Host-side Helpers
# =============================================================================


def validate_triangle(v0: Point3, v1: Point3, v2: Point3) -> None:
    """Raise ValueError for non-finite vertices or zero-area triangles."""
    for vertex in (v0, v1, v2):
        if not all(math.isfinite(c) for c in vertex):
            raise ValueError(f"Triangle vertex {vertex} must be finite")
    a = np.asarray(v0, dtype=np.float64)
    n = np.cross(np.asarray(v1, dtype=np.float64) - a, np.asarray(v2, dtype=np.float64) - a)
    if np.linalg.norm(n) < 1e-12:
        raise ValueError(f"Triangle ({v0}, {v1}, {v2}) has zero area")


def triangle_bounds(v0: Point3, v1: Point3, v2: Point3) -> BoundingVolume:
    """Bounding volume spanning the three vertices."""
    return BoundingVolume.from_points((v0, v1, v2))
