"""Core rendering module.

Components:
    ray: Ray data structures, reflection and refraction
    sampler: Explicit per-pixel random state (PCG hash)
    shading: Blinn-Phong local lighting and recursive reflection/refraction
    integrator: Render target and per-pixel sample accumulation
"""

from .ray import (
    RAY_EPSILON,
    T_MAX,
    Ray,
    RayQuery,
    build_onb_from_normal,
    make_ray,
    make_ray_query,
    reflect,
    refract,
    safe_inverse,
)
from .sampler import next_float, next_float2, next_u32, pcg_hash, seed_state

# Note: shading and integrator are NOT imported here to avoid circular imports.
# Import directly from src.raycore.core.shading or src.raycore.core.integrator.

__all__ = [
    "RAY_EPSILON",
    "T_MAX",
    "Ray",
    "RayQuery",
    "make_ray",
    "make_ray_query",
    "safe_inverse",
    "reflect",
    "refract",
    "build_onb_from_normal",
    "pcg_hash",
    "seed_state",
    "next_u32",
    "next_float",
    "next_float2",
]
