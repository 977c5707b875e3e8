"""Sphere primitive with robust ray-sphere intersection.

This module provides a Sphere dataclass and intersection function using the
robust quadratic formula from Ray Tracing Gems to avoid floating-point artifacts.

The robust quadratic formula avoids catastrophic cancellation when b^2 is
nearly equal to 4ac by using a reformulated calculation that maintains
numerical stability.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from src.raycore.geometry.sphere import Sphere, hit_sphere
    >>> sphere = Sphere(center=ti.math.vec3(0, 0, -1), radius=0.5)
    >>> # hit, t = hit_sphere(origin, direction, sphere, t_min, t_max)
"""

import math

import taichi as ti
import taichi.math as tm

from src.raycore.geometry.aabb import BoundingVolume, Point3

vec3 = tm.vec3


@ti.dataclass
class Sphere:
    """A sphere defined by center point and radius.

    Attributes:
        center: The center point of the sphere (vec3).
        radius: The radius of the sphere (positive float).
    """

    center: vec3
    radius: ti.f32


@ti.func
def _solve_quadratic_robust(h: ti.f32, a: ti.f32, c: ti.f32, sqrt_d: ti.f32):
    """Solve a*t^2 + 2*h*t + c = 0 with the numerically stable formula.

    Returns:
        Tuple of (t0, t1) where t0 <= t1.
    """
    # q = -(h + sign(h) * sqrt(discriminant))
    sign_h = ti.select(h < 0.0, -1.0, 1.0)
    q = -(h + sign_h * sqrt_d)

    t0 = 0.0
    t1 = 0.0

    if ti.abs(q) < 1e-10:
        # Tangent ray: fall back to the textbook formula
        t0 = (-h - sqrt_d) / a
        t1 = (-h + sqrt_d) / a
    else:
        t0 = q / a
        t1 = c / q

    if t0 > t1:
        temp = t0
        t0 = t1
        t1 = temp

    return t0, t1


@ti.func
def hit_sphere(
    ray_origin: vec3,
    ray_direction: vec3,
    sphere: Sphere,
    t_min: ti.f32,
    t_max: ti.f32,
):
    """Test for ray-sphere intersection using robust quadratic formula.

    The ray-sphere intersection is found by solving:
        |ray_origin + t * ray_direction - center|^2 = radius^2

    which in half-b form is a*t^2 + 2*h*t + c = 0 with
        a = dot(direction, direction)
        h = dot(direction, origin - center)
        c = dot(origin - center, origin - center) - radius^2

    Args:
        ray_origin: The starting point of the ray.
        ray_direction: The direction vector of the ray.
        sphere: The sphere to test intersection against.
        t_min: Hits must satisfy t > t_min (avoids self-intersection).
        t_max: Hits must satisfy t < t_max.

    Returns:
        A tuple (hit, t) with the nearest root inside (t_min, t_max).
        hit is 1 if such a root exists, 0 otherwise.
    """
    oc = ray_origin - sphere.center

    a = tm.dot(ray_direction, ray_direction)
    h = tm.dot(ray_direction, oc)
    c = tm.dot(oc, oc) - sphere.radius * sphere.radius

    discriminant = h * h - a * c

    did_hit = 0
    hit_t = 0.0

    if discriminant >= 0.0 and a > 0.0:
        sqrt_d = ti.sqrt(discriminant)
        t0, t1 = _solve_quadratic_robust(h, a, c, sqrt_d)

        if t0 > t_min and t0 < t_max:
            did_hit = 1
            hit_t = t0
        elif t1 > t_min and t1 < t_max:
            did_hit = 1
            hit_t = t1

    return did_hit, hit_t


@ti.func
def sphere_normal(sphere: Sphere, point: vec3) -> vec3:
    """Outward unit normal at a point on the sphere."""
    return (point - sphere.center) / sphere.radius


@ti.func
def sphere_uv(sphere: Sphere, point: vec3):
    """Spherical texture coordinates of a point on the sphere.

    Returns:
        Tuple (u, v) in [0, 1]; u wraps around the y axis, v runs from the
        north pole (0) to the south pole (1).
    """
    n = sphere_normal(sphere, point)
    u = 0.5 + ti.atan2(n.z, n.x) / (2.0 * tm.pi)
    v = 0.5 - ti.asin(tm.clamp(n.y, -1.0, 1.0)) / tm.pi
    return u, v


@ti.func
def make_sphere(center: vec3, radius: ti.f32) -> Sphere:
    """Create a sphere from center and radius inside a Taichi kernel."""
    return Sphere(center=center, radius=radius)


# =============================================================================
# Host-side Helpers
# =============================================================================


def validate_sphere(center: Point3, radius: float) -> None:
    """Raise ValueError for non-finite centers or non-positive radii."""
    if not all(math.isfinite(c) for c in center):
        raise ValueError(f"Sphere center {center} must be finite")
    if not radius > 0.0:
        raise ValueError(f"Sphere radius = {radius} must be positive")


def sphere_bounds(center: Point3, radius: float) -> BoundingVolume:
    """Bounding volume of a sphere: center +/- radius on every axis."""
    return BoundingVolume(
        tuple(c - radius for c in center),
        tuple(c + radius for c in center),
    )
