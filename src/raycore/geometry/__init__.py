"""Geometry module for bounding volumes and shape primitives.

Components:
    aabb: Axis-aligned bounding volumes (host class and Taichi slab tests)
    sphere: Sphere primitive
    triangle: Triangle primitive (Moller-Trumbore)
    cylinder: Capped cylinder primitive
    shapes: Shape table with per-variant storage and intersection dispatch

Intersection routines are Taichi functions (@ti.func) returning
(hit, t); normals and texture coordinates are computed separately at the
hit point.
"""

from .aabb import BoundingVolume, hit_aabb, hit_aabb_interval, hit_aabb_signed
from .cylinder import Cylinder, cylinder_bounds, cylinder_normal, cylinder_uv, hit_cylinder
from .shapes import (
    MAX_SHAPES,
    ShapeType,
    add_cylinder,
    add_sphere,
    add_triangle,
    clear_shapes,
    get_all_shape_bounds,
    get_shape_bounds,
    get_shape_count,
    get_shape_generation,
    get_shape_type,
    hit_shape,
    shape_material,
    shape_normal,
    shape_uv,
)
from .sphere import Sphere, hit_sphere, make_sphere, sphere_bounds, sphere_normal, sphere_uv
from .triangle import (
    Triangle,
    hit_triangle,
    hit_triangle_barycentric,
    make_triangle,
    triangle_bounds,
    triangle_normal,
    triangle_uv,
)

__all__ = [
    # Bounding volumes
    "BoundingVolume",
    "hit_aabb",
    "hit_aabb_interval",
    "hit_aabb_signed",
    # Sphere
    "Sphere",
    "hit_sphere",
    "make_sphere",
    "sphere_normal",
    "sphere_uv",
    "sphere_bounds",
    # Triangle
    "Triangle",
    "hit_triangle",
    "hit_triangle_barycentric",
    "make_triangle",
    "triangle_normal",
    "triangle_uv",
    "triangle_bounds",
    # Cylinder
    "Cylinder",
    "hit_cylinder",
    "cylinder_normal",
    "cylinder_uv",
    "cylinder_bounds",
    # Shape table
    "MAX_SHAPES",
    "ShapeType",
    "add_sphere",
    "add_triangle",
    "add_cylinder",
    "clear_shapes",
    "get_shape_count",
    "get_shape_type",
    "get_shape_bounds",
    "get_all_shape_bounds",
    "get_shape_generation",
    "hit_shape",
    "shape_normal",
    "shape_uv",
    "shape_material",
]
