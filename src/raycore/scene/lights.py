"""Point and area light registry.

Lights are stored in Structure-of-Arrays Taichi fields. A point light has a
position and an RGB intensity. An area light is a rectangle centered on
``center``, spanned by two orthonormal axes scaled by width and height; the
shading engine samples it stochastically.
"""

from enum import IntEnum

import numpy as np
import taichi as ti
import taichi.math as tm

vec3 = tm.vec3


class LightType(IntEnum):
    """Supported light variants."""

    POINT = 0
    AREA = 1


def light_type_from_name(name: str) -> LightType:
    """Parse a light type name ("point" or "area").

    Raises:
        ValueError: For any other name.
    """
    if isinstance(name, LightType):
        return name
    try:
        return LightType[str(name).upper()]
    except KeyError:
        raise ValueError(f"Unknown light type: {name}") from None


MAX_LIGHTS = 64

light_types = ti.field(dtype=ti.i32, shape=MAX_LIGHTS)
light_positions = ti.Vector.field(3, dtype=ti.f32, shape=MAX_LIGHTS)
light_intensities = ti.Vector.field(3, dtype=ti.f32, shape=MAX_LIGHTS)
light_u_axes = ti.Vector.field(3, dtype=ti.f32, shape=MAX_LIGHTS)
light_v_axes = ti.Vector.field(3, dtype=ti.f32, shape=MAX_LIGHTS)
light_widths = ti.field(dtype=ti.f32, shape=MAX_LIGHTS)
light_heights = ti.field(dtype=ti.f32, shape=MAX_LIGHTS)
num_lights = ti.field(dtype=ti.i32, shape=())


def clear_lights() -> None:
    """Remove all lights."""
    num_lights[None] = 0


def _validate_intensity(intensity: tuple[float, float, float]) -> None:
    if len(intensity) != 3:
        raise ValueError(f"Light intensity must have 3 components, got {len(intensity)}")
    for i, c in enumerate(intensity):
        if not c >= 0.0:
            raise ValueError(f"Light intensity component {i} = {c} must be non-negative")


def _next_light_index() -> int:
    idx = num_lights[None]
    if idx >= MAX_LIGHTS:
        raise RuntimeError(f"Maximum number of lights ({MAX_LIGHTS}) exceeded")
    return idx


def add_point_light(
    position: tuple[float, float, float],
    intensity: tuple[float, float, float] = (1.0, 1.0, 1.0),
) -> int:
    """Add a point light.

    Returns:
        The light index.

    Raises:
        RuntimeError: If the maximum number of lights is exceeded.
        ValueError: If the intensity is negative.
    """
    _validate_intensity(intensity)
    idx = _next_light_index()
    light_types[idx] = int(LightType.POINT)
    light_positions[idx] = position
    light_intensities[idx] = intensity
    light_u_axes[idx] = (0.0, 0.0, 0.0)
    light_v_axes[idx] = (0.0, 0.0, 0.0)
    light_widths[idx] = 0.0
    light_heights[idx] = 0.0
    num_lights[None] = idx + 1
    return idx


def add_area_light(
    center: tuple[float, float, float],
    intensity: tuple[float, float, float],
    u_axis: tuple[float, float, float],
    v_axis: tuple[float, float, float],
    width: float,
    height: float,
) -> int:
    """Add a rectangular area light.

    The axes are normalized on entry and must be orthogonal.

    Args:
        center: Center of the rectangle.
        intensity: RGB intensity of the whole light.
        u_axis: Direction of the width edge.
        v_axis: Direction of the height edge.
        width: Extent along u_axis.
        height: Extent along v_axis.

    Returns:
        The light index.

    Raises:
        RuntimeError: If the maximum number of lights is exceeded.
        ValueError: For zero or non-orthogonal axes, non-positive sizes, or
            negative intensity.
    """
    _validate_intensity(intensity)
    if not (width > 0.0 and height > 0.0):
        raise ValueError(f"Area light size ({width} x {height}) must be positive")
    u = np.asarray(u_axis, dtype=np.float64)
    v = np.asarray(v_axis, dtype=np.float64)
    u_len = float(np.linalg.norm(u))
    v_len = float(np.linalg.norm(v))
    if u_len < 1e-12 or v_len < 1e-12:
        raise ValueError("Area light axes must be non-zero")
    u = u / u_len
    v = v / v_len
    if abs(float(np.dot(u, v))) > 1e-4:
        raise ValueError(f"Area light axes {u_axis} and {v_axis} must be orthogonal")

    idx = _next_light_index()
    light_types[idx] = int(LightType.AREA)
    light_positions[idx] = center
    light_intensities[idx] = intensity
    light_u_axes[idx] = u.tolist()
    light_v_axes[idx] = v.tolist()
    light_widths[idx] = width
    light_heights[idx] = height
    num_lights[None] = idx + 1
    return idx


def get_light_count() -> int:
    """Get the number of lights."""
    return int(num_lights[None])


@ti.func
def area_light_point(light_idx: ti.i32, random_u: ti.f32, random_v: ti.f32) -> vec3:
    """Point on an area light for random_u, random_v in [0, 1).

    The samples are shifted to [-0.5, 0.5) so they cover the rectangle
    centered on the light's position.
    """
    return (
        light_positions[light_idx]
        + (random_u - 0.5) * light_widths[light_idx] * light_u_axes[light_idx]
        + (random_v - 0.5) * light_heights[light_idx] * light_v_axes[light_idx]
    )
