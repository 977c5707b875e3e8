"""Materials module.

Components:
    blinn_phong: Material registry (diffuse/specular coefficients,
        reflection and refraction parameters)
    texture: Image textures sampled by surface uv
"""

from .blinn_phong import (
    MAX_MATERIALS,
    NO_TEXTURE,
    BlinnPhongMaterial,
    MaterialParams,
    add_material,
    add_material_params,
    clear_materials,
    get_material,
    get_material_count,
)
from .texture import add_texture_array, clear_textures, get_texture_count, load_texture, sample_texture

__all__ = [
    "MAX_MATERIALS",
    "NO_TEXTURE",
    "BlinnPhongMaterial",
    "MaterialParams",
    "add_material",
    "add_material_params",
    "clear_materials",
    "get_material",
    "get_material_count",
    "add_texture_array",
    "load_texture",
    "clear_textures",
    "get_texture_count",
    "sample_texture",
]
