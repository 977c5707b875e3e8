"""Pytest configuration for raytracer tests.

This module provides shared fixtures for all test modules, including
Taichi initialization which must happen once per session.
"""

import pytest
import taichi as ti


@pytest.fixture(scope="session", autouse=True)
def init_taichi_session():
    """Initialize Taichi once for the entire test session.

    Using session scope prevents multiple ti.init() calls which can cause
    segmentation faults due to Taichi runtime conflicts.
    """
    ti.init(arch=ti.cpu, random_seed=42)
    yield


@pytest.fixture(autouse=True)
def clear_all_scene_data():
    """Clear shapes, materials, textures, lights, hierarchy and render state.

    This ensures tests are isolated from each other.
    """
    # Import here so Taichi is initialized first
    from src.raycore.accel.traversal import clear_hierarchy
    from src.raycore.core.integrator import release_render_target
    from src.raycore.core.shading import configure_shading
    from src.raycore.geometry.shapes import clear_shapes
    from src.raycore.materials.blinn_phong import clear_materials
    from src.raycore.materials.texture import clear_textures
    from src.raycore.scene.intersection import set_hierarchy_enabled
    from src.raycore.scene.lights import clear_lights

    def _clear_all():
        clear_shapes()
        clear_materials()
        clear_textures()
        clear_lights()
        clear_hierarchy()
        set_hierarchy_enabled(False)
        configure_shading()
        release_render_target()

    _clear_all()
    yield
    _clear_all()


@pytest.fixture
def build_current_hierarchy():
    """Return a helper that builds and uploads a hierarchy for the current shapes."""
    from src.raycore.accel.builder import build_hierarchy, flatten_hierarchy
    from src.raycore.accel.traversal import upload_hierarchy
    from src.raycore.geometry.shapes import get_all_shape_bounds, get_shape_generation

    def _build(leaf_size: int = 2):
        root = build_hierarchy(get_all_shape_bounds(), leaf_size=leaf_size)
        upload_hierarchy(flatten_hierarchy(root), generation=get_shape_generation())
        return root

    return _build
