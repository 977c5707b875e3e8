"""Whitted-style shading: Blinn-Phong, shadows, reflection, refraction.

``shade(origin, direction, depth, state)`` evaluates

    color(ray, d) = local(hit)
                  + reflectivity * color(reflected ray, d - 1)   if reflective and d > 0
                  + transparency * color(refracted ray, d - 1)   if refractive and d > 0

and returns the background color on a miss. Taichi functions cannot
recurse, so pending secondary rays are kept on a small local stack together
with their accumulated weight and remaining depth. Every push lowers the
depth by one, so the loop ends after a bounded number of rays.

Local illumination sums over all lights:

    - point lights: one shadow ray from ``hit + epsilon * L`` toward the light.
      An occluded light contributes nothing. Otherwise Blinn-Phong diffuse
      ``kd * max(0, N.L) * diffuse_color`` plus specular
      ``ks * max(0, N.H)^n * specular_color`` with ``H = normalize(V + L)``,
      both scaled by the light's intensity and falloff.
    - area lights: the same computation averaged over ``area_light_samples``
      random points on the light's rectangle.

Falloff defaults to INVERSE_SQUARE (intensity / d^2), so a closer light
lights a surface more brightly. ``LightFalloff.NONE`` uses the bare
intensity and gives exactly ``kd * max(0, N.L) * diffuse_color * intensity``.

Refraction flips the normal and inverts the index ratio when the ray leaves
the medium (N.d > 0). Total internal reflection drops the refracted term.

Example:
    >>> configure_shading(background=(0.1, 0.1, 0.1))
    >>> color = shade_ray((0.0, 0.0, 5.0), (0.0, 0.0, -1.0), max_depth=3)
"""

from enum import IntEnum

import taichi as ti
import taichi.math as tm

from src.raycore.core.ray import RAY_EPSILON, T_MAX, reflect, refract
from src.raycore.core.sampler import next_float2, seed_state
from src.raycore.geometry.shapes import shape_uv
from src.raycore.materials.blinn_phong import get_material
from src.raycore.materials.texture import sample_texture
from src.raycore.scene.intersection import (
    SurfaceHit,
    check_query_ready,
    intersect_surface,
    is_hierarchy_enabled,
    is_occluded,
)
from src.raycore.scene.lights import (
    LightType,
    area_light_point,
    light_intensities,
    light_positions,
    light_types,
    num_lights,
)

vec3 = tm.vec3


class RenderMode(IntEnum):
    """How primary rays are turned into colors."""

    PHONG = 0
    BINARY = 1


class LightFalloff(IntEnum):
    """Distance attenuation applied to light intensity.

    INVERSE_SQUARE divides by the squared light distance. NONE leaves the
    intensity unscaled, the plain Blinn-Phong formula.
    """

    INVERSE_SQUARE = 0
    NONE = 1


def render_mode_from_name(name: str) -> RenderMode:
    """Parse a render mode name ("phong" or "binary").

    Raises:
        ValueError: For any other name.
    """
    if isinstance(name, RenderMode):
        return name
    try:
        return RenderMode[str(name).upper()]
    except KeyError:
        raise ValueError(f"Unknown render mode: {name}") from None


def light_falloff_from_name(name: str) -> LightFalloff:
    """Parse a falloff name ("inverse_square" or "none")."""
    if isinstance(name, LightFalloff):
        return name
    try:
        return LightFalloff[str(name).upper()]
    except KeyError:
        raise ValueError(f"Unknown light falloff: {name}") from None


# =============================================================================
# Shading Constants and Settings
# =============================================================================

# Deepest supported recursion (bounds the local ray stack)
MAX_RAY_DEPTH = 8
DEFAULT_MAX_DEPTH = 5
DEFAULT_AREA_LIGHT_SAMPLES = 16

# Each pop at depth d > 0 pushes at most two rays, so the stack never holds
# more than MAX_RAY_DEPTH + 1 entries.
_STACK_SIZE = MAX_RAY_DEPTH + 2

BINARY_HIT_COLOR = vec3(1.0, 0.0, 0.0)

_background = ti.Vector.field(3, dtype=ti.f32, shape=())
_render_mode = ti.field(dtype=ti.i32, shape=())
_area_light_samples = ti.field(dtype=ti.i32, shape=())
_light_falloff = ti.field(dtype=ti.i32, shape=())


def configure_shading(
    background: tuple[float, float, float] = (0.0, 0.0, 0.0),
    render_mode: RenderMode = RenderMode.PHONG,
    area_light_samples: int = DEFAULT_AREA_LIGHT_SAMPLES,
    light_falloff: LightFalloff = LightFalloff.INVERSE_SQUARE,
) -> None:
    """Set the scene-wide shading parameters.

    Raises:
        ValueError: For an unknown render mode or falloff, or fewer than one
            area light sample.
    """
    if render_mode not in tuple(RenderMode):
        raise ValueError(f"Unknown render mode: {render_mode}")
    if light_falloff not in tuple(LightFalloff):
        raise ValueError(f"Unknown light falloff: {light_falloff}")
    if area_light_samples < 1:
        raise ValueError(f"area_light_samples = {area_light_samples} must be at least 1")
    _background[None] = background
    _render_mode[None] = int(render_mode)
    _area_light_samples[None] = area_light_samples
    _light_falloff[None] = int(light_falloff)


def validate_max_depth(max_depth: int) -> None:
    """Raise ValueError unless 0 <= max_depth <= MAX_RAY_DEPTH."""
    if not 0 <= max_depth <= MAX_RAY_DEPTH:
        raise ValueError(f"max_depth = {max_depth} must be in [0, {MAX_RAY_DEPTH}]")


# =============================================================================
# Local Illumination
# =============================================================================


@ti.func
def _direct_light(
    point: vec3,
    normal: vec3,
    view: vec3,
    light_position: vec3,
    intensity: vec3,
    kd: ti.f32,
    ks: ti.f32,
    exponent: ti.f32,
    diffuse_color: vec3,
    specular_color: vec3,
) -> vec3:
    """Blinn-Phong contribution of one light position, zero if shadowed."""
    to_light = light_position - point
    distance = tm.length(to_light)
    contribution = vec3(0.0, 0.0, 0.0)
    if distance > 2.0 * RAY_EPSILON:
        light_dir = to_light / distance
        shadow_origin = point + RAY_EPSILON * light_dir
        if is_occluded(shadow_origin, light_dir, distance - RAY_EPSILON) == 0:
            radiance = intensity
            if _light_falloff[None] == int(LightFalloff.INVERSE_SQUARE):
                radiance = intensity / (distance * distance)

            diffuse = kd * tm.max(0.0, tm.dot(normal, light_dir)) * diffuse_color * radiance

            specular = vec3(0.0, 0.0, 0.0)
            half_sum = light_dir + view
            if tm.length(half_sum) > 1e-8:
                half_vector = tm.normalize(half_sum)
                spec_term = tm.pow(tm.max(0.0, tm.dot(normal, half_vector)), exponent)
                specular = ks * spec_term * specular_color * radiance

            contribution = diffuse + specular
    return contribution


@ti.func
def local_illumination(hit: SurfaceHit, direction: vec3, rng_state: ti.u32):
    """Direct lighting at a hit from every light.

    Args:
        hit: The surface hit to shade.
        direction: Normalized direction of the ray that produced the hit.
        rng_state: Random state for area-light sampling.

    Returns:
        A tuple (color, new_rng_state).
    """
    state = rng_state
    mat = get_material(hit.material_id)

    diffuse_color = mat.diffuse_color
    if mat.texture_id >= 0:
        u, v = shape_uv(hit.shape_id, hit.point)
        diffuse_color = sample_texture(mat.texture_id, u, v)

    # Light the side the ray arrived on
    normal = hit.normal
    if hit.front_face == 0:
        normal = -hit.normal
    view = -direction

    color = vec3(0.0, 0.0, 0.0)
    for light in range(num_lights[None]):
        if light_types[light] == int(LightType.POINT):
            color += _direct_light(
                hit.point,
                normal,
                view,
                light_positions[light],
                light_intensities[light],
                mat.kd,
                mat.ks,
                mat.specular_exponent,
                diffuse_color,
                mat.specular_color,
            )
        else:
            samples = ti.max(_area_light_samples[None], 1)
            area_sum = vec3(0.0, 0.0, 0.0)
            for _ in range(samples):
                random_u, random_v, state = next_float2(state)
                area_sum += _direct_light(
                    hit.point,
                    normal,
                    view,
                    area_light_point(light, random_u, random_v),
                    light_intensities[light],
                    mat.kd,
                    mat.ks,
                    mat.specular_exponent,
                    diffuse_color,
                    mat.specular_color,
                )
            color += area_sum / ti.cast(samples, ti.f32)
    return color, state


# =============================================================================
# Recursive Shading
# =============================================================================


@ti.func
def shade(ray_origin: vec3, ray_direction: vec3, max_depth: ti.i32, rng_state: ti.u32):
    """Color seen along a ray, following reflections and refractions.

    Args:
        ray_origin: The starting point of the ray.
        ray_direction: The direction of the ray (normalized here).
        max_depth: Remaining recursion depth. 0 means local lighting only.
        rng_state: Random state for area-light sampling.

    Returns:
        A tuple (color, new_rng_state). color is unclamped linear RGB.
    """
    state = rng_state
    color = vec3(0.0, 0.0, 0.0)

    origins = ti.Matrix.zero(ti.f32, _STACK_SIZE, 3)
    directions = ti.Matrix.zero(ti.f32, _STACK_SIZE, 3)
    weights = ti.Vector.zero(ti.f32, _STACK_SIZE)
    depths = ti.Vector.zero(ti.i32, _STACK_SIZE)

    for k in ti.static(range(3)):
        origins[0, k] = ray_origin[k]
        directions[0, k] = ray_direction[k]
    weights[0] = 1.0
    depths[0] = max_depth
    stack_ptr = 1

    while stack_ptr > 0:
        stack_ptr -= 1
        origin = vec3(origins[stack_ptr, 0], origins[stack_ptr, 1], origins[stack_ptr, 2])
        direction = tm.normalize(
            vec3(directions[stack_ptr, 0], directions[stack_ptr, 1], directions[stack_ptr, 2])
        )
        weight = weights[stack_ptr]
        depth = depths[stack_ptr]

        hit = intersect_surface(origin, direction, T_MAX)
        if hit.hit == 0:
            color += weight * _background[None]
        elif _render_mode[None] == int(RenderMode.BINARY):
            color += weight * BINARY_HIT_COLOR
        else:
            local, state = local_illumination(hit, direction, state)
            color += weight * local

            if depth > 0:
                mat = get_material(hit.material_id)

                if mat.is_reflective == 1 and mat.reflectivity > 0.0 and stack_ptr < _STACK_SIZE:
                    reflected = reflect(direction, hit.normal)
                    new_origin = hit.point + RAY_EPSILON * reflected
                    for k in ti.static(range(3)):
                        origins[stack_ptr, k] = new_origin[k]
                        directions[stack_ptr, k] = reflected[k]
                    weights[stack_ptr] = weight * mat.reflectivity
                    depths[stack_ptr] = depth - 1
                    stack_ptr += 1

                if mat.is_refractive == 1 and mat.transparency > 0.0 and stack_ptr < _STACK_SIZE:
                    normal = hit.normal
                    eta = 1.0 / mat.refractive_index
                    if -tm.dot(normal, direction) < 0.0:
                        # Leaving the medium
                        normal = -normal
                        eta = mat.refractive_index
                    refracted, ok = refract(direction, normal, eta)
                    if ok == 1:
                        new_origin = hit.point + RAY_EPSILON * refracted
                        for k in ti.static(range(3)):
                            origins[stack_ptr, k] = new_origin[k]
                            directions[stack_ptr, k] = refracted[k]
                        weights[stack_ptr] = weight * mat.transparency
                        depths[stack_ptr] = depth - 1
                        stack_ptr += 1

    return color, state


@ti.kernel
def _shade_single(
    ox: ti.f32,
    oy: ti.f32,
    oz: ti.f32,
    dx: ti.f32,
    dy: ti.f32,
    dz: ti.f32,
    max_depth: ti.i32,
    seed: ti.i32,
) -> vec3:
    state = seed_state(0, 0, seed)
    color, _state = shade(vec3(ox, oy, oz), vec3(dx, dy, dz), max_depth, state)
    return color


def shade_ray(
    origin: tuple[float, float, float],
    direction: tuple[float, float, float],
    max_depth: int = DEFAULT_MAX_DEPTH,
    seed: int = 0,
) -> tuple[float, float, float]:
    """Shade a single ray from Python.

    Args:
        origin: Ray origin.
        direction: Ray direction (need not be normalized).
        max_depth: Recursion depth, 0 for local lighting only.
        seed: Seed for area-light sampling.

    Returns:
        Tuple of (R, G, B), unclamped.

    Raises:
        ValueError: If max_depth is out of range.
        RuntimeError: If the hierarchy is enabled but missing or stale.
    """
    validate_max_depth(max_depth)
    check_query_ready(is_hierarchy_enabled())
    color = _shade_single(
        origin[0], origin[1], origin[2], direction[0], direction[1], direction[2], max_depth, seed
    )
    return (float(color[0]), float(color[1]), float(color[2]))
