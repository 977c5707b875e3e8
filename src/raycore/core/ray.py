"""Ray data structure, reflection and refraction for ray tracing.

This module provides the Ray dataclass, the precomputed RayQuery used by
bounding-volume slab tests, and the reflect/refract helpers used by the
shading code. All operations are designed to work within Taichi kernels.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> origin = ti.math.vec3(0.0, 0.0, 0.0)
    >>> direction = ti.math.vec3(0.0, 0.0, -1.0)
    >>> ray = Ray(origin=origin, direction=direction)
    >>> reflected = reflect(direction, ti.math.vec3(0.0, 0.0, 1.0))
"""

import taichi as ti
import taichi.math as tm

# Type alias for 3D vectors using Taichi's math module
vec3 = tm.vec3
ivec3 = tm.ivec3

# =============================================================================
# Ray Constants
# =============================================================================

# Minimum accepted hit distance; excludes self-intersection at a ray's origin
RAY_EPSILON = 1e-4

# Far clipping distance for unbounded queries
T_MAX = 1e10

# Replacement for the inverse of a near-zero direction component
_INV_DIRECTION_LIMIT = 1e8


@ti.dataclass
class Ray:
    """A ray with an origin point and direction vector.

    Attributes:
        origin: The starting point of the ray (vec3).
        direction: The direction vector of the ray (vec3). Should be normalized
            for most operations, but this is not enforced to allow flexibility.
    """

    origin: vec3
    direction: vec3


@ti.dataclass
class RayQuery:
    """A ray with the per-axis data needed by slab tests.

    Derived once per ray with make_ray_query() and read-only afterwards.

    Attributes:
        origin: The starting point of the ray.
        direction: The direction vector of the ray.
        inv_direction: Component-wise inverse of the direction. Components
            of near-zero directions are replaced by a large signed value.
        sign: 1 on axes where the direction is negative, 0 otherwise. Selects
            which box corner is the near corner on that axis.
    """

    origin: vec3
    direction: vec3
    inv_direction: vec3
    sign: ivec3


@ti.func
def make_ray(origin: vec3, direction: vec3) -> Ray:
    """Create a ray from origin and direction."""
    return Ray(origin=origin, direction=direction)


@ti.func
def safe_inverse(direction: vec3) -> vec3:
    """Component-wise inverse of a direction that never divides by zero.

    Components with magnitude below 1e-8 map to +/-1e8, keeping the sign
    of the original component (zero counts as positive).
    """
    inv = vec3(0.0, 0.0, 0.0)
    for axis in ti.static(range(3)):
        if ti.abs(direction[axis]) < 1e-8:
            inv[axis] = ti.select(direction[axis] < 0.0, -_INV_DIRECTION_LIMIT, _INV_DIRECTION_LIMIT)
        else:
            inv[axis] = 1.0 / direction[axis]
    return inv


@ti.func
def make_ray_query(origin: vec3, direction: vec3) -> RayQuery:
    """Precompute inverse direction and per-axis signs for a ray.

    Args:
        origin: The starting point of the ray.
        direction: The direction vector of the ray.

    Returns:
        A RayQuery ready for the bounding-volume slab tests.
    """
    inv = safe_inverse(direction)
    sign = ivec3(0, 0, 0)
    for axis in ti.static(range(3)):
        sign[axis] = ti.select(inv[axis] < 0.0, 1, 0)
    return RayQuery(origin=origin, direction=direction, inv_direction=inv, sign=sign)


# =============================================================================
# Reflection and Refraction
# =============================================================================


@ti.func
def reflect(incident: vec3, normal: vec3) -> vec3:
    """Reflect an incident vector about a normal.

    Computes d - 2 * (N . d) * N. The normal should be unit length.

    Args:
        incident: The incoming direction vector (pointing toward the surface).
        normal: The surface normal (should be normalized).

    Returns:
        The mirrored direction vector.
    """
    return incident - 2.0 * tm.dot(incident, normal) * normal


@ti.func
def refract(incident: vec3, normal: vec3, eta: ti.f32):
    """Refract an incident vector through a surface using Snell's law.

    The normal must face the incident ray (N . d <= 0).

    Args:
        incident: The incoming direction vector (should be normalized).
        normal: The surface normal on the incident side (normalized).
        eta: The ratio of refractive indices (n_incident / n_transmitted).

    Returns:
        A tuple (direction, refracted). refracted is 0 when the implied
        sine squared of the exit angle exceeds 1 (total internal reflection),
        in which case direction is the zero vector.
    """
    cos_i = -tm.dot(incident, normal)
    sin2_t = eta * eta * (1.0 - cos_i * cos_i)
    result = vec3(0.0, 0.0, 0.0)
    refracted = 0
    if sin2_t <= 1.0:
        cos_t = ti.sqrt(1.0 - sin2_t)
        result = tm.normalize(eta * incident + (eta * cos_i - cos_t) * normal)
        refracted = 1
    return result, refracted


@ti.func
def build_onb_from_normal(normal: vec3):
    """Build an orthonormal basis with the given unit vector as its z-axis.

    Returns:
        A tuple (tangent, bitangent, normal).
    """
    a = vec3(1.0, 0.0, 0.0)
    if ti.abs(normal.x) > 0.9:
        a = vec3(0.0, 1.0, 0.0)
    tangent = tm.normalize(tm.cross(a, normal))
    bitangent = tm.cross(normal, tangent)
    return tangent, bitangent, normal

