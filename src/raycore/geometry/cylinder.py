"""Capped cylinder primitive.

The cylinder is described by its center (the midpoint of the axis segment),
a unit axis, a radius, and a half-length ``height``: the body spans
[-height, +height] along the axis and is closed by two flat caps.
"""

import math

import numpy as np
import taichi as ti
import taichi.math as tm

from src.raycore.core.ray import build_onb_from_normal
from src.raycore.geometry.aabb import BoundingVolume, Point3

vec3 = tm.vec3


@ti.dataclass
class Cylinder:
    """A finite cylinder with flat caps.

    Attributes:
        center: Midpoint of the cylinder's axis segment.
        axis: Unit axis direction.
        radius: Radius of the body and caps.
        height: Half-length along the axis.
    """

    center: vec3
    axis: vec3
    radius: ti.f32
    height: ti.f32


@ti.func
def _hit_cylinder_body(ray_origin: vec3, ray_direction: vec3, cyl: Cylinder, t_min: ti.f32, t_max: ti.f32):
    oc = ray_origin - cyl.center
    d_perp = ray_direction - tm.dot(ray_direction, cyl.axis) * cyl.axis
    oc_perp = oc - tm.dot(oc, cyl.axis) * cyl.axis

    a = tm.dot(d_perp, d_perp)
    h = tm.dot(d_perp, oc_perp)
    c = tm.dot(oc_perp, oc_perp) - cyl.radius * cyl.radius

    did_hit = 0
    hit_t = 0.0
    discriminant = h * h - a * c
    # a == 0: ray parallel to the axis never meets the body
    if a > 1e-12 and discriminant >= 0.0:
        sqrt_d = ti.sqrt(discriminant)
        t0 = (-h - sqrt_d) / a
        t1 = (-h + sqrt_d) / a
        if t0 > t_min and t0 < t_max:
            if ti.abs(tm.dot(oc + t0 * ray_direction, cyl.axis)) <= cyl.height:
                did_hit = 1
                hit_t = t0
        if did_hit == 0 and t1 > t_min and t1 < t_max:
            if ti.abs(tm.dot(oc + t1 * ray_direction, cyl.axis)) <= cyl.height:
                did_hit = 1
                hit_t = t1
    return did_hit, hit_t


@ti.func
def _hit_cylinder_cap(
    ray_origin: vec3,
    ray_direction: vec3,
    cyl: Cylinder,
    side: ti.f32,
    t_min: ti.f32,
    t_max: ti.f32,
):
    cap_center = cyl.center + side * cyl.height * cyl.axis
    denom = tm.dot(ray_direction, cyl.axis)
    did_hit = 0
    hit_t = 0.0
    if ti.abs(denom) > 1e-8:
        t = tm.dot(cap_center - ray_origin, cyl.axis) / denom
        if t > t_min and t < t_max:
            offset = ray_origin + t * ray_direction - cap_center
            if tm.dot(offset, offset) <= cyl.radius * cyl.radius:
                did_hit = 1
                hit_t = t
    return did_hit, hit_t


@ti.func
def hit_cylinder(
    ray_origin: vec3,
    ray_direction: vec3,
    cyl: Cylinder,
    t_min: ti.f32,
    t_max: ti.f32,
):
    """Nearest intersection with the body or either cap.

    Returns:
        A tuple (hit, t) with the smallest t inside (t_min, t_max).
    """
    closest = t_max
    did_hit = 0

    body_hit, body_t = _hit_cylinder_body(ray_origin, ray_direction, cyl, t_min, closest)
    if body_hit == 1:
        did_hit = 1
        closest = body_t

    top_hit, top_t = _hit_cylinder_cap(ray_origin, ray_direction, cyl, 1.0, t_min, closest)
    if top_hit == 1:
        did_hit = 1
        closest = top_t

    bottom_hit, bottom_t = _hit_cylinder_cap(ray_origin, ray_direction, cyl, -1.0, t_min, closest)
    if bottom_hit == 1:
        did_hit = 1
        closest = bottom_t

    return did_hit, ti.select(did_hit == 1, closest, 0.0)


@ti.func
def cylinder_normal(cyl: Cylinder, point: vec3) -> vec3:
    """Outward normal: radial on the body, +/- axis on the caps.

    A point is assigned to whichever surface it lies closer to.
    """
    rel = point - cyl.center
    along = tm.dot(rel, cyl.axis)
    radial = rel - along * cyl.axis
    radial_len = tm.length(radial)
    result = cyl.axis
    if ti.abs(ti.abs(along) - cyl.height) < ti.abs(radial_len - cyl.radius):
        result = ti.select(along < 0.0, -1.0, 1.0) * cyl.axis
    elif radial_len > 1e-12:
        result = radial / radial_len
    return result


@ti.func
def cylinder_uv(cyl: Cylinder, point: vec3):
    """Texture coordinates: angle around the axis and normalized height."""
    tangent, bitangent, _ = build_onb_from_normal(cyl.axis)
    rel = point - cyl.center
    along = tm.dot(rel, cyl.axis)
    u = 0.5 + ti.atan2(tm.dot(rel, bitangent), tm.dot(rel, tangent)) / (2.0 * tm.pi)
    v = (along + cyl.height) / (2.0 * cyl.height)
    return u, v


# =============================================================================
# Host-side Helpers
# =============================================================================


def validate_cylinder(center: Point3, axis: Point3, radius: float, height: float) -> Point3:
    """Validate cylinder parameters and return the normalized axis.

    Raises:
        ValueError: For non-finite centers, zero axes, or non-positive
            radius or height.
    """
    if not all(math.isfinite(c) for c in center):
        raise ValueError(f"Cylinder center {center} must be finite")
    if not radius > 0.0:
        raise ValueError(f"Cylinder radius = {radius} must be positive")
    if not height > 0.0:
        raise ValueError(f"Cylinder height = {height} must be positive")
    a = np.asarray(axis, dtype=np.float64)
    norm = float(np.linalg.norm(a))
    if not norm > 1e-12 or not math.isfinite(norm):
        raise ValueError(f"Cylinder axis {axis} must be a non-zero vector")
    a = a / norm
    return (float(a[0]), float(a[1]), float(a[2]))


def cylinder_bounds(center: Point3, axis: Point3, radius: float, height: float) -> BoundingVolume:
    """Bounding volume of both cap discs (and so of the whole cylinder).

    A disc of radius r perpendicular to unit axis a extends
    r * sqrt(1 - a_i^2) along world axis i.
    """
    c = np.asarray(center, dtype=np.float64)
    a = np.asarray(axis, dtype=np.float64)
    a = a / np.linalg.norm(a)
    e = radius * np.sqrt(np.clip(1.0 - a * a, 0.0, 1.0))
    top = c + height * a
    bottom = c - height * a
    return BoundingVolume(np.minimum(top, bottom) - e, np.maximum(top, bottom) + e)
