"""Scene module for intersection queries, lights and scene management.

Components:
    intersection: Nearest-hit queries through the hierarchy or a linear scan
    lights: Point and area light registry
    manager: SceneManager coordinating shapes, materials, lights and settings
    presets: Ready-made demo scenes
    loader: JSON scene description files
"""

from .intersection import (
    SurfaceHit,
    intersect_ray,
    intersect_rays,
    intersect_scene,
    intersect_surface,
    is_occluded,
    set_hierarchy_enabled,
)
from .lights import LightType, add_area_light, add_point_light, clear_lights, get_light_count

# Note: manager, presets and loader are NOT imported here to avoid circular
# imports (they depend on core.shading, which depends on this package).
# Import directly from src.raycore.scene.manager.

__all__ = [
    "SurfaceHit",
    "intersect_scene",
    "intersect_surface",
    "is_occluded",
    "intersect_ray",
    "intersect_rays",
    "set_hierarchy_enabled",
    "LightType",
    "add_point_light",
    "add_area_light",
    "clear_lights",
    "get_light_count",
]
