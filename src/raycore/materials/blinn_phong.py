"""Blinn-Phong material registry.

A material carries everything the shading engine needs at a hit:

    - kd, ks: diffuse and specular coefficients in [0, 1]
    - diffuse_color, specular_color: RGB in [0, 1]
    - specular_exponent: Blinn-Phong shininess (>= 0)
    - is_reflective, reflectivity: mirror term and its weight
    - is_refractive, refractive_index, transparency: transmitted term
    - texture_id: optional image texture replacing diffuse_color (-1 = none)

Materials are stored in Structure-of-Arrays Taichi fields and addressed by
the index returned from add_material().

Example:
    >>> red = add_material(kd=0.9, ks=0.1, diffuse_color=(0.8, 0.1, 0.1))
    >>> glass = add_material(is_refractive=True, refractive_index=1.5, transparency=0.9)
"""

from dataclasses import asdict, dataclass

import taichi as ti
import taichi.math as tm

vec3 = tm.vec3

NO_TEXTURE = -1


@ti.dataclass
class BlinnPhongMaterial:
    """Material parameters gathered for one hit."""

    kd: ti.f32
    ks: ti.f32
    specular_exponent: ti.f32
    diffuse_color: vec3
    specular_color: vec3
    is_reflective: ti.i32
    reflectivity: ti.f32
    is_refractive: ti.i32
    refractive_index: ti.f32
    transparency: ti.f32
    texture_id: ti.i32


@dataclass
class MaterialParams:
    """Host-side copy of a material's parameters.

    Defaults follow the usual scene-file conventions: a mid-grey diffuse
    surface, white highlights, half transparency for refractive materials.
    """

    kd: float = 0.9
    ks: float = 0.1
    specular_exponent: float = 20.0
    diffuse_color: tuple[float, float, float] = (0.5, 0.5, 0.5)
    specular_color: tuple[float, float, float] = (1.0, 1.0, 1.0)
    is_reflective: bool = False
    reflectivity: float = 0.0
    is_refractive: bool = False
    refractive_index: float = 1.0
    transparency: float = 0.5
    texture_id: int = NO_TEXTURE

    def validate(self) -> None:
        """Check ranges.

        Raises:
            ValueError: If any parameter is outside its valid range.
        """
        for name in ("kd", "ks", "reflectivity", "transparency"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} = {value} is outside [0, 1]")
        for name in ("diffuse_color", "specular_color"):
            color = getattr(self, name)
            if len(color) != 3:
                raise ValueError(f"{name} must have 3 components, got {len(color)}")
            for i, c in enumerate(color):
                if not 0.0 <= c <= 1.0:
                    raise ValueError(f"{name} component {i} = {c} is outside [0, 1]")
        if self.specular_exponent < 0.0:
            raise ValueError(f"specular_exponent = {self.specular_exponent} must be >= 0")
        if self.refractive_index < 1.0:
            raise ValueError(
                f"Index of refraction = {self.refractive_index} is less than 1.0. "
                "IOR must be >= 1.0 for physically meaningful materials."
            )

    def to_dict(self) -> dict:
        data = asdict(self)
        data["diffuse_color"] = list(self.diffuse_color)
        data["specular_color"] = list(self.specular_color)
        return data


# =============================================================================
# Material Field Storage
# =============================================================================

MAX_MATERIALS = 256

material_kd = ti.field(dtype=ti.f32, shape=MAX_MATERIALS)
material_ks = ti.field(dtype=ti.f32, shape=MAX_MATERIALS)
material_exponents = ti.field(dtype=ti.f32, shape=MAX_MATERIALS)
material_diffuse_colors = ti.Vector.field(3, dtype=ti.f32, shape=MAX_MATERIALS)
material_specular_colors = ti.Vector.field(3, dtype=ti.f32, shape=MAX_MATERIALS)
material_is_reflective = ti.field(dtype=ti.i32, shape=MAX_MATERIALS)
material_reflectivity = ti.field(dtype=ti.f32, shape=MAX_MATERIALS)
material_is_refractive = ti.field(dtype=ti.i32, shape=MAX_MATERIALS)
material_refractive_index = ti.field(dtype=ti.f32, shape=MAX_MATERIALS)
material_transparency = ti.field(dtype=ti.f32, shape=MAX_MATERIALS)
material_texture_ids = ti.field(dtype=ti.i32, shape=MAX_MATERIALS)
num_materials = ti.field(dtype=ti.i32, shape=())


def clear_materials() -> None:
    """Clear all materials.

    Resets the material count to zero. Existing data in the fields will be
    overwritten when new materials are added.
    """
    num_materials[None] = 0


def add_material_params(params: MaterialParams) -> int:
    """Add a validated material to the registry.

    Returns:
        The index of the added material.

    Raises:
        RuntimeError: If the maximum number of materials is exceeded.
        ValueError: If any parameter is out of range.
    """
    params.validate()

    idx = num_materials[None]
    if idx >= MAX_MATERIALS:
        raise RuntimeError(f"Maximum number of materials ({MAX_MATERIALS}) exceeded")

    material_kd[idx] = params.kd
    material_ks[idx] = params.ks
    material_exponents[idx] = params.specular_exponent
    material_diffuse_colors[idx] = params.diffuse_color
    material_specular_colors[idx] = params.specular_color
    material_is_reflective[idx] = int(params.is_reflective)
    material_reflectivity[idx] = params.reflectivity
    material_is_refractive[idx] = int(params.is_refractive)
    material_refractive_index[idx] = params.refractive_index
    material_transparency[idx] = params.transparency
    material_texture_ids[idx] = params.texture_id
    num_materials[None] = idx + 1
    return idx


def add_material(**kwargs) -> int:
    """Add a material given MaterialParams fields as keyword arguments."""
    return add_material_params(MaterialParams(**kwargs))


def get_material_count() -> int:
    """Get the number of materials in the registry."""
    return int(num_materials[None])


@ti.func
def get_material(material_idx: ti.i32) -> BlinnPhongMaterial:
    """Gather all parameters of a material by index."""
    return BlinnPhongMaterial(
        kd=material_kd[material_idx],
        ks=material_ks[material_idx],
        specular_exponent=material_exponents[material_idx],
        diffuse_color=material_diffuse_colors[material_idx],
        specular_color=material_specular_colors[material_idx],
        is_reflective=material_is_reflective[material_idx],
        reflectivity=material_reflectivity[material_idx],
        is_refractive=material_is_refractive[material_idx],
        refractive_index=material_refractive_index[material_idx],
        transparency=material_transparency[material_idx],
        texture_id=material_texture_ids[material_idx],
    )
