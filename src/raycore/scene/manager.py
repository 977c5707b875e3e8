"""Scene manager coordinating shapes, materials, textures and lights.

This module provides the high-level scene API. The SceneManager owns:

- the material and texture registries (unified material ids),
- the shape collection (spheres, triangles, cylinders),
- the light list,
- the scene-wide SceneSettings, and
- the bounding volume hierarchy, rebuilt by ``build()``.

Lifecycle: add everything, call ``build()``, then query or render. Queries
and renders raise RuntimeError before the first ``build()`` and after any
change to ``settings`` that has not been rebuilt. Adding a shape after
``build()`` makes the hierarchy stale; hierarchy queries then raise
RuntimeError until ``build()`` is called again.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from src.raycore.scene.manager import SceneManager
    >>> scene = SceneManager()
    >>> red = scene.add_material(diffuse_color=(0.8, 0.1, 0.1))
    >>> scene.add_sphere(center=(0, 0, -1), radius=0.5, material_id=red)
    >>> scene.add_point_light(position=(0, 5, 5))
    >>> scene.build()
    >>> hit, t, shape_id = scene.intersect((0, 0, 5), (0, 0, -1))
"""

import logging
from dataclasses import asdict, dataclass, field, replace
from pathlib import Path
from typing import Any

import numpy as np
import numpy.typing as npt

from src.raycore.accel.builder import (
    DEFAULT_LEAF_SIZE,
    BVHNode,
    FlatHierarchy,
    build_hierarchy,
    flatten_hierarchy,
    hierarchy_stats,
)
from src.raycore.accel.traversal import clear_hierarchy, upload_hierarchy
from src.raycore.camera.pinhole import PinholeCamera, setup_camera
from src.raycore.core.integrator import get_image_numpy, render_image, setup_render_target
from src.raycore.core.ray import T_MAX
from src.raycore.core.shading import (
    DEFAULT_AREA_LIGHT_SAMPLES,
    DEFAULT_MAX_DEPTH,
    LightFalloff,
    RenderMode,
    configure_shading,
    light_falloff_from_name,
    render_mode_from_name,
    shade_ray,
    validate_max_depth,
)
from src.raycore.geometry import shapes
from src.raycore.geometry.shapes import ShapeType, get_all_shape_bounds, get_shape_generation
from src.raycore.materials.blinn_phong import (
    NO_TEXTURE,
    MaterialParams,
    add_material_params,
    clear_materials,
    get_material_count,
)
from src.raycore.materials.texture import (
    add_texture_array,
    clear_textures,
    get_texture_count,
    load_texture,
)
from src.raycore.scene import lights
from src.raycore.scene.intersection import intersect_ray, set_hierarchy_enabled
from src.raycore.scene.lights import LightType, light_type_from_name

logger = logging.getLogger(__name__)


# =============================================================================
# Settings and Bookkeeping
# =============================================================================


@dataclass
class SceneSettings:
    """Scene-wide rendering settings.

    Attributes:
        background: Color returned for rays that miss every shape.
        render_mode: PHONG for full shading, BINARY for a hit mask.
        light_falloff: Distance attenuation of light intensity.
        use_bvh: Route queries through the hierarchy (True) or a linear scan.
        antialiasing: Jitter camera rays within each pixel.
        samples_per_pixel: Samples averaged per pixel.
        area_light_samples: Shadow samples per area light per hit.
        max_depth: Reflection/refraction recursion depth.
        leaf_size: Largest shape count stored in a hierarchy leaf.
        seed: Seed for all random sampling.
    """

    background: tuple[float, float, float] = (0.0, 0.0, 0.0)
    render_mode: RenderMode = RenderMode.PHONG
    light_falloff: LightFalloff = LightFalloff.INVERSE_SQUARE
    use_bvh: bool = True
    antialiasing: bool = False
    samples_per_pixel: int = 1
    area_light_samples: int = DEFAULT_AREA_LIGHT_SAMPLES
    max_depth: int = DEFAULT_MAX_DEPTH
    leaf_size: int = DEFAULT_LEAF_SIZE
    seed: int = 0

    def validate(self) -> None:
        """Raise ValueError for out-of-range settings."""
        if len(self.background) != 3:
            raise ValueError(f"background must have 3 components, got {len(self.background)}")
        if self.samples_per_pixel < 1:
            raise ValueError(f"samples_per_pixel = {self.samples_per_pixel} must be at least 1")
        if self.area_light_samples < 1:
            raise ValueError(f"area_light_samples = {self.area_light_samples} must be at least 1")
        if self.leaf_size < 1:
            raise ValueError(f"leaf_size = {self.leaf_size} must be at least 1")
        validate_max_depth(self.max_depth)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["background"] = list(self.background)
        data["render_mode"] = self.render_mode.name.lower()
        data["light_falloff"] = self.light_falloff.name.lower()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SceneSettings":
        """Build settings from a dictionary; missing keys keep defaults.

        Raises:
            ValueError: For an unknown render mode or light falloff.
        """
        defaults = cls()
        return cls(
            background=tuple(data.get("background", defaults.background)),
            render_mode=render_mode_from_name(data.get("render_mode", defaults.render_mode.name)),
            light_falloff=light_falloff_from_name(data.get("light_falloff", defaults.light_falloff.name)),
            use_bvh=bool(data.get("use_bvh", defaults.use_bvh)),
            antialiasing=bool(data.get("antialiasing", defaults.antialiasing)),
            samples_per_pixel=int(data.get("samples_per_pixel", defaults.samples_per_pixel)),
            area_light_samples=int(data.get("area_light_samples", defaults.area_light_samples)),
            max_depth=int(data.get("max_depth", defaults.max_depth)),
            leaf_size=int(data.get("leaf_size", defaults.leaf_size)),
            seed=int(data.get("seed", defaults.seed)),
        )


@dataclass
class ShapeInfo:
    """Information about a shape in the scene.

    Attributes:
        shape_id: Index in the unified shape table.
        shape_type: Which kind of shape this is.
        params: Construction parameters as given to the add_* method.
        material_id: The material assigned to the shape.
    """

    shape_id: int
    shape_type: ShapeType
    params: dict[str, Any]
    material_id: int


@dataclass
class LightInfo:
    """Information about a light in the scene."""

    light_id: int
    light_type: LightType
    params: dict[str, Any]


@dataclass
class SceneConfig:
    """Configuration for scene serialization.

    Attributes:
        settings: SceneSettings as a dictionary.
        textures: Texture sources, each {"path": ...} or {"pixels": ...}.
        materials: Material parameter dictionaries.
        shapes: Shape dictionaries with a "type" key.
        lights: Light dictionaries with a "type" key.
    """

    settings: dict[str, Any] = field(default_factory=dict)
    textures: list[dict[str, Any]] = field(default_factory=list)
    materials: list[dict[str, Any]] = field(default_factory=list)
    shapes: list[dict[str, Any]] = field(default_factory=list)
    lights: list[dict[str, Any]] = field(default_factory=list)


def _vec(values: Any) -> tuple[float, float, float]:
    if len(values) != 3:
        raise ValueError(f"Expected 3 components, got {len(values)}")
    return (float(values[0]), float(values[1]), float(values[2]))


def _empty_flat_hierarchy() -> FlatHierarchy:
    return FlatHierarchy(
        node_lo=np.zeros((0, 3), dtype=np.float64),
        node_hi=np.zeros((0, 3), dtype=np.float64),
        left=np.zeros(0, dtype=np.int32),
        right=np.zeros(0, dtype=np.int32),
        first=np.zeros(0, dtype=np.int32),
        count=np.zeros(0, dtype=np.int32),
        shape_ids=np.zeros(0, dtype=np.int32),
    )


# =============================================================================
# Scene Manager
# =============================================================================


class SceneManager:
    """High-level scene API.

    Shapes, materials, textures and lights live in module-level Taichi
    fields, so only one scene is active at a time; creating a SceneManager
    clears them.

    Attributes:
        settings: Scene-wide rendering settings, applied by build().
        materials: MaterialParams for every material id.
        shapes: ShapeInfo for every shape id.
        lights: LightInfo for every light.
        textures: Source of every texture id.
    """

    def __init__(self, settings: SceneSettings | None = None) -> None:
        self.settings = settings if settings is not None else SceneSettings()
        self.materials: list[MaterialParams] = []
        self.shapes: list[ShapeInfo] = []
        self.lights: list[LightInfo] = []
        self.textures: list[dict[str, Any]] = []
        self._hierarchy: BVHNode | None = None
        # Settings applied by the last successful build()
        self._built_settings: SceneSettings | None = None
        self._clear_all()

    def _clear_all(self) -> None:
        shapes.clear_shapes()
        clear_materials()
        clear_textures()
        lights.clear_lights()
        clear_hierarchy()
        set_hierarchy_enabled(False)
        self.materials.clear()
        self.shapes.clear()
        self.lights.clear()
        self.textures.clear()
        self._hierarchy = None
        self._built_settings = None

    def clear(self) -> None:
        """Remove every shape, material, texture and light.

        Settings are kept.
        """
        self._clear_all()

    # =========================================================================
    # Materials and Textures
    # =========================================================================

    def add_texture(self, pixels: npt.ArrayLike) -> int:
        """Register a texture from an (H, W, 3) RGB array in [0, 1].

        Returns:
            The texture id.
        """
        data = np.asarray(pixels, dtype=np.float32)
        texture_id = add_texture_array(data)
        self.textures.append({"pixels": data.tolist()})
        return texture_id

    def load_texture(self, path: str | Path) -> int:
        """Load an image file as a texture.

        Returns:
            The texture id.
        """
        texture_id = load_texture(path)
        self.textures.append({"path": str(path)})
        return texture_id

    def add_material(self, params: MaterialParams | None = None, **kwargs: Any) -> int:
        """Add a Blinn-Phong material.

        Args:
            params: Complete material parameters; if omitted, keyword
                arguments are MaterialParams fields.

        Returns:
            The material id.

        Raises:
            ValueError: For out-of-range parameters or an unknown texture id.
            RuntimeError: If the maximum number of materials is exceeded.
        """
        if params is None:
            params = MaterialParams(**kwargs)
        elif kwargs:
            raise ValueError("Pass either params or keyword arguments, not both")
        if params.texture_id != NO_TEXTURE and not 0 <= params.texture_id < get_texture_count():
            raise ValueError(f"Invalid texture_id: {params.texture_id}")
        material_id = add_material_params(params)
        self.materials.append(params)
        return material_id

    # =========================================================================
    # Shapes
    # =========================================================================

    def _check_material(self, material_id: int) -> None:
        if material_id < 0 or material_id >= get_material_count():
            raise ValueError(f"Invalid material_id: {material_id}")

    def _record_shape(self, shape_id: int, shape_type: ShapeType, params: dict[str, Any], material_id: int) -> int:
        self.shapes.append(ShapeInfo(shape_id, shape_type, params, material_id))
        return shape_id

    def add_sphere(
        self,
        center: tuple[float, float, float],
        radius: float,
        material_id: int,
    ) -> int:
        """Add a sphere.

        Returns:
            The shape id.

        Raises:
            ValueError: If material_id or the radius is invalid.
            RuntimeError: If the maximum number of shapes is exceeded.
        """
        self._check_material(material_id)
        shape_id = shapes.add_sphere(center, radius, material_id)
        return self._record_shape(
            shape_id, ShapeType.SPHERE, {"center": list(center), "radius": radius}, material_id
        )

    def add_triangle(
        self,
        v0: tuple[float, float, float],
        v1: tuple[float, float, float],
        v2: tuple[float, float, float],
        material_id: int,
    ) -> int:
        """Add a triangle; its normal follows the v0, v1, v2 winding.

        Returns:
            The shape id.
        """
        self._check_material(material_id)
        shape_id = shapes.add_triangle(v0, v1, v2, material_id)
        return self._record_shape(
            shape_id, ShapeType.TRIANGLE, {"v0": list(v0), "v1": list(v1), "v2": list(v2)}, material_id
        )

    def add_cylinder(
        self,
        center: tuple[float, float, float],
        axis: tuple[float, float, float],
        radius: float,
        height: float,
        material_id: int,
    ) -> int:
        """Add a capped cylinder.

        Returns:
            The shape id.
        """
        self._check_material(material_id)
        shape_id = shapes.add_cylinder(center, axis, radius, height, material_id)
        params = {"center": list(center), "axis": list(axis), "radius": radius, "height": height}
        return self._record_shape(shape_id, ShapeType.CYLINDER, params, material_id)

    def add_mesh(
        self,
        vertices: npt.ArrayLike,
        faces: npt.ArrayLike,
        material_id: int,
    ) -> list[int]:
        """Add one triangle per face of an indexed mesh.

        Args:
            vertices: (n, 3) vertex positions.
            faces: (m, 3) vertex indices per triangle.
            material_id: Material for every triangle.

        Returns:
            The shape ids of the added triangles.

        Raises:
            ValueError: If the arrays have the wrong shape or an index is out
                of range.
        """
        verts = np.asarray(vertices, dtype=np.float64)
        tris = np.asarray(faces, dtype=np.int64)
        if verts.ndim != 2 or verts.shape[1] != 3:
            raise ValueError(f"vertices must have shape (n, 3), got {verts.shape}")
        if tris.ndim != 2 or tris.shape[1] != 3:
            raise ValueError(f"faces must have shape (m, 3), got {tris.shape}")
        if tris.size and (tris.min() < 0 or tris.max() >= len(verts)):
            raise ValueError("Face index out of range")
        return [
            self.add_triangle(tuple(verts[a]), tuple(verts[b]), tuple(verts[c]), material_id)
            for a, b, c in tris
        ]

    # =========================================================================
    # Lights
    # =========================================================================

    def add_point_light(
        self,
        position: tuple[float, float, float],
        intensity: tuple[float, float, float] = (1.0, 1.0, 1.0),
    ) -> int:
        """Add a point light. Returns the light index."""
        light_id = lights.add_point_light(position, intensity)
        params = {"position": list(position), "intensity": list(intensity)}
        self.lights.append(LightInfo(light_id, LightType.POINT, params))
        return light_id

    def add_area_light(
        self,
        center: tuple[float, float, float],
        intensity: tuple[float, float, float],
        u_axis: tuple[float, float, float],
        v_axis: tuple[float, float, float],
        width: float,
        height: float,
    ) -> int:
        """Add a rectangular area light. Returns the light index."""
        light_id = lights.add_area_light(center, intensity, u_axis, v_axis, width, height)
        params = {
            "center": list(center),
            "intensity": list(intensity),
            "u_axis": list(u_axis),
            "v_axis": list(v_axis),
            "width": width,
            "height": height,
        }
        self.lights.append(LightInfo(light_id, LightType.AREA, params))
        return light_id

    # =========================================================================
    # Build and Query
    # =========================================================================

    def build(self) -> None:
        """Apply settings and (re)build the hierarchy over the current shapes.

        Raises:
            ValueError: If the settings are invalid.
        """
        self._built_settings = None
        self.settings.validate()
        self.settings.background = tuple(self.settings.background)
        configure_shading(
            background=self.settings.background,
            render_mode=self.settings.render_mode,
            area_light_samples=self.settings.area_light_samples,
            light_falloff=self.settings.light_falloff,
        )

        bounds = get_all_shape_bounds()
        if bounds:
            self._hierarchy = build_hierarchy(bounds, leaf_size=self.settings.leaf_size)
            flat = flatten_hierarchy(self._hierarchy)
            stats = hierarchy_stats(self._hierarchy)
        else:
            self._hierarchy = None
            flat = _empty_flat_hierarchy()
            stats = {"nodes": 0, "leaves": 0, "depth": 0}
        upload_hierarchy(flat, generation=get_shape_generation())
        set_hierarchy_enabled(self.settings.use_bvh)
        self._built_settings = replace(self.settings)

        logger.info(
            "Built scene: %d shapes, %d lights, %d materials; hierarchy %d nodes, %d leaves, depth %d",
            len(bounds),
            len(self.lights),
            len(self.materials),
            stats["nodes"],
            stats["leaves"],
            stats["depth"],
        )

    @property
    def hierarchy(self) -> BVHNode | None:
        """Root of the hierarchy from the last build(), None if empty."""
        return self._hierarchy

    def _check_built(self) -> None:
        if self._built_settings is None:
            raise RuntimeError("Scene not built. Call SceneManager.build() before querying or rendering.")
        if self.settings != self._built_settings:
            raise RuntimeError("Scene not built with the current settings. Call SceneManager.build() again.")

    def intersect(
        self,
        origin: tuple[float, float, float],
        direction: tuple[float, float, float],
        max_distance: float = T_MAX,
    ) -> tuple[bool, float, int]:
        """Nearest hit as (hit, distance, shape_id).

        Raises:
            RuntimeError: If the scene is not built with the current settings.
        """
        self._check_built()
        return intersect_ray(origin, direction, max_distance)

    def shade(
        self,
        origin: tuple[float, float, float],
        direction: tuple[float, float, float],
        max_depth: int | None = None,
    ) -> tuple[float, float, float]:
        """Color seen along a single ray."""
        self._check_built()
        depth = self.settings.max_depth if max_depth is None else max_depth
        return shade_ray(origin, direction, max_depth=depth, seed=self.settings.seed)

    def render(self, camera: PinholeCamera, width: int, height: int) -> npt.NDArray[np.float32]:
        """Render the scene with the settings applied by the last build().

        Returns:
            Linear RGB image of shape (height, width, 3), row 0 at the top.

        Raises:
            RuntimeError: If the scene is not built with the current settings.
        """
        self._check_built()
        setup_camera(camera)
        setup_render_target(width, height)
        render_image(
            num_samples=self.settings.samples_per_pixel,
            max_depth=self.settings.max_depth,
            antialiasing=self.settings.antialiasing,
            seed=self.settings.seed,
        )
        return get_image_numpy()

    def get_shape_count(self) -> int:
        return len(self.shapes)

    def get_light_count(self) -> int:
        return len(self.lights)

    # =========================================================================
    # Scene Serialization
    # =========================================================================

    def to_config(self) -> SceneConfig:
        """Export the scene to a configuration object."""
        config = SceneConfig(settings=self.settings.to_dict())
        config.textures = [dict(texture) for texture in self.textures]
        config.materials = [params.to_dict() for params in self.materials]
        for info in self.shapes:
            config.shapes.append(
                {"type": info.shape_type.name.lower(), **info.params, "material_id": info.material_id}
            )
        for light in self.lights:
            config.lights.append({"type": light.light_type.name.lower(), **light.params})
        return config

    def from_config(self, config: SceneConfig) -> None:
        """Load a scene from a configuration object.

        Clears the current scene, loads the configuration, and builds.

        Raises:
            ValueError: If the configuration contains invalid data.
        """
        self.clear()
        self.settings = SceneSettings.from_dict(config.settings)

        for texture in config.textures:
            if "path" in texture:
                self.load_texture(texture["path"])
            elif "pixels" in texture:
                self.add_texture(texture["pixels"])
            else:
                raise ValueError("Texture entry needs a 'path' or 'pixels' key")

        for mat_config in config.materials:
            data = dict(mat_config)
            for key in ("diffuse_color", "specular_color"):
                if key in data:
                    data[key] = _vec(data[key])
            try:
                params = MaterialParams(**data)
            except TypeError as err:
                raise ValueError(f"Invalid material: {err}") from err
            self.add_material(params)

        for shape_config in config.shapes:
            shape_type = str(shape_config.get("type", "")).lower()
            material_id = int(shape_config.get("material_id", 0))
            if shape_type == "sphere":
                self.add_sphere(
                    _vec(shape_config.get("center", [0, 0, 0])),
                    float(shape_config.get("radius", 1.0)),
                    material_id,
                )
            elif shape_type == "triangle":
                self.add_triangle(
                    _vec(shape_config["v0"]),
                    _vec(shape_config["v1"]),
                    _vec(shape_config["v2"]),
                    material_id,
                )
            elif shape_type == "cylinder":
                self.add_cylinder(
                    _vec(shape_config.get("center", [0, 0, 0])),
                    _vec(shape_config.get("axis", [0, 1, 0])),
                    float(shape_config.get("radius", 1.0)),
                    float(shape_config.get("height", 1.0)),
                    material_id,
                )
            else:
                raise ValueError(f"Unknown shape type: {shape_type}")

        for light_config in config.lights:
            light_type = light_type_from_name(light_config.get("type", ""))
            intensity = _vec(light_config.get("intensity", [1, 1, 1]))
            if light_type == LightType.POINT:
                self.add_point_light(_vec(light_config["position"]), intensity)
            else:
                self.add_area_light(
                    _vec(light_config["center"]),
                    intensity,
                    _vec(light_config["u_axis"]),
                    _vec(light_config["v_axis"]),
                    float(light_config["width"]),
                    float(light_config["height"]),
                )

        self.build()

    def to_dict(self) -> dict[str, Any]:
        """Export the scene to a dictionary (for JSON serialization)."""
        config = self.to_config()
        return {
            "settings": config.settings,
            "textures": config.textures,
            "materials": config.materials,
            "shapes": config.shapes,
            "lights": config.lights,
        }

    def from_dict(self, data: dict[str, Any]) -> None:
        """Load a scene from a dictionary produced by to_dict()."""
        config = SceneConfig(
            settings=data.get("settings", {}),
            textures=data.get("textures", []),
            materials=data.get("materials", []),
            shapes=data.get("shapes", []),
            lights=data.get("lights", []),
        )
        self.from_config(config)
