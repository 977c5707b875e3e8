"""Taichi-based Whitted ray tracer with a bounding volume hierarchy.

This package provides CPU ray tracing using Taichi, with support for:
- Spheres, triangles and capped cylinders
- A largest-gap bounding volume hierarchy with branch-and-bound traversal
- Blinn-Phong shading with shadows, point and area lights
- Recursive reflection and refraction with total internal reflection
- Image textures, tone mapping and PNG export

Subpackages:
    core: Rays, random sampling, shading and the render loop
    geometry: Bounding volumes, shape primitives and the shape table
    accel: Hierarchy construction and traversal
    materials: Blinn-Phong materials and image textures
    scene: Intersection queries, lights and scene management
    camera: Pinhole camera with ray generation
    preview: Tone mapping, preview and image export
"""

__version__ = "0.1.0"
