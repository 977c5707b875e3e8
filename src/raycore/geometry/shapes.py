"""Owning shape table with per-variant storage and unified dispatch.

Every shape gets a unified ``shape_id``. The id maps to a (ShapeType,
type-local index, material id) triple stored in Taichi fields, and the
variant's own parameters live in Structure-of-Arrays fields. The hierarchy
and the linear scan both refer to shapes only through ``shape_id``.

Host-side bounding volumes are kept alongside so the hierarchy builder can
run on the host without reading the fields back. A generation counter
increases on every change so a stale hierarchy can be detected.

Example:
    >>> clear_shapes()
    >>> sid = add_sphere((0.0, 0.0, -1.0), 0.5, material_id=0)
    >>> get_shape_bounds(sid).extent()
    array([1., 1., 1.])
"""

from enum import IntEnum

import taichi as ti
import taichi.math as tm

from src.raycore.geometry.aabb import BoundingVolume, Point3
from src.raycore.geometry.cylinder import (
    Cylinder,
    cylinder_bounds,
    cylinder_normal,
    cylinder_uv,
    hit_cylinder,
    validate_cylinder,
)
from src.raycore.geometry.sphere import (
    Sphere,
    hit_sphere,
    sphere_bounds,
    sphere_normal,
    sphere_uv,
    validate_sphere,
)
from src.raycore.geometry.triangle import (
    Triangle,
    hit_triangle,
    triangle_bounds,
    triangle_normal,
    triangle_uv,
    validate_triangle,
)

vec3 = tm.vec3


class ShapeType(IntEnum):
    """Closed set of shape variants."""

    SPHERE = 0
    TRIANGLE = 1
    CYLINDER = 2


# Maximum number of shapes of all kinds
MAX_SHAPES = 4096

# Unified table: shape_id -> (type, type-local index, material id)
shape_types = ti.field(dtype=ti.i32, shape=MAX_SHAPES)
shape_type_indices = ti.field(dtype=ti.i32, shape=MAX_SHAPES)
shape_material_ids = ti.field(dtype=ti.i32, shape=MAX_SHAPES)
num_shapes = ti.field(dtype=ti.i32, shape=())

# Sphere storage
sphere_centers = ti.Vector.field(3, dtype=ti.f32, shape=MAX_SHAPES)
sphere_radii = ti.field(dtype=ti.f32, shape=MAX_SHAPES)
num_spheres = ti.field(dtype=ti.i32, shape=())

# Triangle storage
triangle_v0 = ti.Vector.field(3, dtype=ti.f32, shape=MAX_SHAPES)
triangle_v1 = ti.Vector.field(3, dtype=ti.f32, shape=MAX_SHAPES)
triangle_v2 = ti.Vector.field(3, dtype=ti.f32, shape=MAX_SHAPES)
triangle_normals = ti.Vector.field(3, dtype=ti.f32, shape=MAX_SHAPES)
num_triangles = ti.field(dtype=ti.i32, shape=())

# Cylinder storage
cylinder_centers = ti.Vector.field(3, dtype=ti.f32, shape=MAX_SHAPES)
cylinder_axes = ti.Vector.field(3, dtype=ti.f32, shape=MAX_SHAPES)
cylinder_radii = ti.field(dtype=ti.f32, shape=MAX_SHAPES)
cylinder_heights = ti.field(dtype=ti.f32, shape=MAX_SHAPES)
num_cylinders = ti.field(dtype=ti.i32, shape=())

# Host-side mirrors
_shape_bounds: list[BoundingVolume] = []
_generation = 0


def clear_shapes() -> None:
    """Remove all shapes.

    Resets the counters; field data is overwritten by later additions.
    """
    global _generation
    num_shapes[None] = 0
    num_spheres[None] = 0
    num_triangles[None] = 0
    num_cylinders[None] = 0
    _shape_bounds.clear()
    _generation += 1


def _register_shape(kind: ShapeType, type_index: int, material_id: int, bounds: BoundingVolume) -> int:
    global _generation
    shape_id = num_shapes[None]
    shape_types[shape_id] = int(kind)
    shape_type_indices[shape_id] = type_index
    shape_material_ids[shape_id] = material_id
    num_shapes[None] = shape_id + 1
    _shape_bounds.append(bounds)
    _generation += 1
    return shape_id


def _check_capacity() -> None:
    if num_shapes[None] >= MAX_SHAPES:
        raise RuntimeError(f"Maximum number of shapes ({MAX_SHAPES}) exceeded")


def add_sphere(center: Point3, radius: float, material_id: int = 0) -> int:
    """Add a sphere to the shape table.

    Args:
        center: The center point of the sphere.
        radius: The radius of the sphere (must be positive).
        material_id: The material ID to associate with this sphere.

    Returns:
        The unified shape_id of the sphere.

    Raises:
        RuntimeError: If the maximum number of shapes is exceeded.
        ValueError: If the sphere is degenerate.
    """
    validate_sphere(center, radius)
    _check_capacity()
    idx = num_spheres[None]
    sphere_centers[idx] = center
    sphere_radii[idx] = radius
    num_spheres[None] = idx + 1
    return _register_shape(ShapeType.SPHERE, idx, material_id, sphere_bounds(center, radius))


def add_triangle(v0: Point3, v1: Point3, v2: Point3, material_id: int = 0) -> int:
    """Add a triangle to the shape table.

    The face normal (v1 - v0) x (v2 - v0) is normalized and stored here, so
    the winding order decides which side is the front.

    Raises:
        RuntimeError: If the maximum number of shapes is exceeded.
        ValueError: If the triangle has zero area.
    """
    validate_triangle(v0, v1, v2)
    _check_capacity()
    idx = num_triangles[None]
    triangle_v0[idx] = v0
    triangle_v1[idx] = v1
    triangle_v2[idx] = v2
    triangle_normals[idx] = _unit_normal(v0, v1, v2)
    num_triangles[None] = idx + 1
    return _register_shape(ShapeType.TRIANGLE, idx, material_id, triangle_bounds(v0, v1, v2))


def add_cylinder(
    center: Point3,
    axis: Point3,
    radius: float,
    height: float,
    material_id: int = 0,
) -> int:
    """Add a capped cylinder to the shape table.

    Args:
        center: Midpoint of the cylinder's axis segment.
        axis: Axis direction (normalized on entry).
        radius: Radius (must be positive).
        height: Half-length along the axis (must be positive).
        material_id: The material ID to associate with this cylinder.

    Raises:
        RuntimeError: If the maximum number of shapes is exceeded.
        ValueError: If the cylinder is degenerate.
    """
    unit_axis = validate_cylinder(center, axis, radius, height)
    _check_capacity()
    idx = num_cylinders[None]
    cylinder_centers[idx] = center
    cylinder_axes[idx] = unit_axis
    cylinder_radii[idx] = radius
    cylinder_heights[idx] = height
    num_cylinders[None] = idx + 1
    bounds = cylinder_bounds(center, unit_axis, radius, height)
    return _register_shape(ShapeType.CYLINDER, idx, material_id, bounds)


def _unit_normal(v0: Point3, v1: Point3, v2: Point3) -> Point3:
    e1 = [v1[i] - v0[i] for i in range(3)]
    e2 = [v2[i] - v0[i] for i in range(3)]
    n = (
        e1[1] * e2[2] - e1[2] * e2[1],
        e1[2] * e2[0] - e1[0] * e2[2],
        e1[0] * e2[1] - e1[1] * e2[0],
    )
    norm = (n[0] * n[0] + n[1] * n[1] + n[2] * n[2]) ** 0.5
    return (n[0] / norm, n[1] / norm, n[2] / norm)


def get_shape_count() -> int:
    """Get the number of shapes in the table."""
    return int(num_shapes[None])


def get_shape_type(shape_id: int) -> ShapeType:
    """Get the variant of a shape (host side)."""
    if not 0 <= shape_id < get_shape_count():
        raise ValueError(f"Invalid shape_id: {shape_id}")
    return ShapeType(int(shape_types[shape_id]))


def get_shape_bounds(shape_id: int) -> BoundingVolume:
    """Get the bounding volume of one shape."""
    return _shape_bounds[shape_id]


def get_all_shape_bounds() -> list[BoundingVolume]:
    """Bounding volumes of all shapes, indexed by shape_id."""
    return list(_shape_bounds)


def get_shape_generation() -> int:
    """Counter that changes whenever the shape table changes."""
    return _generation


# =============================================================================
# Taichi Dispatch
# =============================================================================


@ti.func
def get_sphere(idx: ti.i32) -> Sphere:
    return Sphere(center=sphere_centers[idx], radius=sphere_radii[idx])


@ti.func
def get_triangle(idx: ti.i32) -> Triangle:
    return Triangle(
        v0=triangle_v0[idx],
        v1=triangle_v1[idx],
        v2=triangle_v2[idx],
        normal=triangle_normals[idx],
    )


@ti.func
def get_cylinder(idx: ti.i32) -> Cylinder:
    return Cylinder(
        center=cylinder_centers[idx],
        axis=cylinder_axes[idx],
        radius=cylinder_radii[idx],
        height=cylinder_heights[idx],
    )


@ti.func
def hit_shape(shape_id: ti.i32, ray_origin: vec3, ray_direction: vec3, t_min: ti.f32, t_max: ti.f32):
    """Intersect one shape by id.

    Returns:
        A tuple (hit, t) with t inside (t_min, t_max) when hit is 1.
    """
    kind = shape_types[shape_id]
    idx = shape_type_indices[shape_id]
    did_hit = 0
    hit_t = 0.0
    if kind == int(ShapeType.SPHERE):
        did_hit, hit_t = hit_sphere(ray_origin, ray_direction, get_sphere(idx), t_min, t_max)
    elif kind == int(ShapeType.TRIANGLE):
        did_hit, hit_t = hit_triangle(ray_origin, ray_direction, get_triangle(idx), t_min, t_max)
    elif kind == int(ShapeType.CYLINDER):
        did_hit, hit_t = hit_cylinder(ray_origin, ray_direction, get_cylinder(idx), t_min, t_max)
    return did_hit, hit_t


@ti.func
def shape_normal(shape_id: ti.i32, point: vec3) -> vec3:
    """Outward surface normal of a shape at a point on its surface."""
    kind = shape_types[shape_id]
    idx = shape_type_indices[shape_id]
    n = vec3(0.0, 0.0, 1.0)
    if kind == int(ShapeType.SPHERE):
        n = sphere_normal(get_sphere(idx), point)
    elif kind == int(ShapeType.TRIANGLE):
        n = triangle_normal(get_triangle(idx))
    elif kind == int(ShapeType.CYLINDER):
        n = cylinder_normal(get_cylinder(idx), point)
    return n


@ti.func
def shape_uv(shape_id: ti.i32, point: vec3):
    """Texture coordinates (u, v) of a point on a shape."""
    kind = shape_types[shape_id]
    idx = shape_type_indices[shape_id]
    u = 0.0
    v = 0.0
    if kind == int(ShapeType.SPHERE):
        u, v = sphere_uv(get_sphere(idx), point)
    elif kind == int(ShapeType.TRIANGLE):
        u, v = triangle_uv(get_triangle(idx), point)
    elif kind == int(ShapeType.CYLINDER):
        u, v = cylinder_uv(get_cylinder(idx), point)
    return u, v


@ti.func
def shape_material(shape_id: ti.i32) -> ti.i32:
    """Material id of a shape."""
    return shape_material_ids[shape_id]
