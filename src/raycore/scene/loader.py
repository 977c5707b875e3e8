"""Load scene description files.

The file format is JSON with a render section, a camera and a scene:

    {
      "nbounces": 4,
      "rendermode": "phong",
      "camera": {"width": 640, "height": 480, "position": [0, 1, 5],
                 "lookAt": [0, 0, 0], "upVector": [0, 1, 0], "fov": 45,
                 "exposure": 1.0},
      "scene": {
        "backgroundcolor": [0.1, 0.1, 0.1],
        "lightsources": [{"type": "pointlight", "position": [0, 5, 5],
                          "intensity": [1, 1, 1]}],
        "shapes": [{"type": "sphere", "center": [0, 0, 0], "radius": 1,
                    "material": {"kd": 0.9, "ks": 0.1, ...}}]
      }
    }

Each shape carries its own material; identical materials share one id.
Missing material keys fall back to MaterialParams defaults, and a missing
material gives the default material.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from src.raycore.camera.pinhole import PinholeCamera
from src.raycore.core.shading import render_mode_from_name
from src.raycore.materials.blinn_phong import MaterialParams
from src.raycore.scene.manager import SceneManager, SceneSettings

logger = logging.getLogger(__name__)

DEFAULT_WIDTH = 640
DEFAULT_HEIGHT = 480

# File key -> MaterialParams field
_MATERIAL_KEYS = {
    "kd": "kd",
    "ks": "ks",
    "specularexponent": "specular_exponent",
    "diffusecolor": "diffuse_color",
    "specularcolor": "specular_color",
    "isreflective": "is_reflective",
    "reflectivity": "reflectivity",
    "isrefractive": "is_refractive",
    "refractiveindex": "refractive_index",
    "transparency": "transparency",
}

_LIGHT_TYPES = {"pointlight": "point", "point": "point", "arealight": "area", "area": "area"}


@dataclass
class LoadedScene:
    """A scene read from a description file.

    Attributes:
        scene: The built scene.
        camera: Camera from the file, or a default camera.
        width: Image width in pixels.
        height: Image height in pixels.
        exposure: Exposure for tone mapping.
    """

    scene: SceneManager
    camera: PinholeCamera
    width: int
    height: int
    exposure: float = 1.0


def _vec(values: Any, name: str) -> tuple[float, float, float]:
    if isinstance(values, (int, float)):
        return (float(values), float(values), float(values))
    if len(values) != 3:
        raise ValueError(f"'{name}' must have 3 components, got {len(values)}")
    return (float(values[0]), float(values[1]), float(values[2]))


def parse_material(data: dict[str, Any] | None) -> MaterialParams:
    """Convert a file material dictionary to MaterialParams.

    Raises:
        ValueError: For unknown keys or out-of-range values.
    """
    params = MaterialParams()
    for key, value in (data or {}).items():
        if key not in _MATERIAL_KEYS:
            raise ValueError(f"Unknown material key: {key}")
        field_name = _MATERIAL_KEYS[key]
        if field_name in ("diffuse_color", "specular_color"):
            value = _vec(value, key)
        elif field_name in ("is_reflective", "is_refractive"):
            value = bool(value)
        else:
            value = float(value)
        setattr(params, field_name, value)
    params.validate()
    return params


def _parse_camera(data: dict[str, Any]) -> tuple[PinholeCamera, int, int, float]:
    width = int(data.get("width", DEFAULT_WIDTH))
    height = int(data.get("height", DEFAULT_HEIGHT))
    if width <= 0 or height <= 0:
        raise ValueError(f"Camera size ({width}x{height}) must be positive")
    camera = PinholeCamera(
        lookfrom=_vec(data.get("position", [0.0, 0.0, 5.0]), "position"),
        lookat=_vec(data.get("lookAt", [0.0, 0.0, 0.0]), "lookAt"),
        vup=_vec(data.get("upVector", [0.0, 1.0, 0.0]), "upVector"),
        vfov=float(data.get("fov", 45.0)),
        aspect_ratio=width / height,
    )
    return camera, width, height, float(data.get("exposure", 1.0))


def scene_from_description(data: dict[str, Any], settings: SceneSettings | None = None) -> LoadedScene:
    """Build a scene from a parsed description.

    Args:
        data: Parsed JSON document.
        settings: Base settings; nbounces, rendermode and backgroundcolor
            in the file override them.

    Raises:
        ValueError: For unknown shape, light or render mode names and
            invalid values.
    """
    settings = settings if settings is not None else SceneSettings()
    scene_data = data.get("scene", {})

    if "nbounces" in data:
        settings.max_depth = int(data["nbounces"])
    if "rendermode" in data:
        settings.render_mode = render_mode_from_name(data["rendermode"])
    if "backgroundcolor" in scene_data:
        settings.background = _vec(scene_data["backgroundcolor"], "backgroundcolor")

    scene = SceneManager(settings)
    material_ids: dict[tuple, int] = {}

    def material_for(shape_data: dict[str, Any]) -> int:
        params = parse_material(shape_data.get("material"))
        key = tuple(
            sorted((k, tuple(v) if isinstance(v, list) else v) for k, v in params.to_dict().items())
        )
        if key not in material_ids:
            material_ids[key] = scene.add_material(params)
        return material_ids[key]

    for shape_data in scene_data.get("shapes", []):
        shape_type = str(shape_data.get("type", "")).lower()
        if shape_type == "sphere":
            scene.add_sphere(
                _vec(shape_data["center"], "center"), float(shape_data["radius"]), material_for(shape_data)
            )
        elif shape_type == "triangle":
            scene.add_triangle(
                _vec(shape_data["v0"], "v0"),
                _vec(shape_data["v1"], "v1"),
                _vec(shape_data["v2"], "v2"),
                material_for(shape_data),
            )
        elif shape_type == "cylinder":
            scene.add_cylinder(
                _vec(shape_data["center"], "center"),
                _vec(shape_data["axis"], "axis"),
                float(shape_data["radius"]),
                float(shape_data["height"]),
                material_for(shape_data),
            )
        else:
            raise ValueError(f"Unknown shape type: {shape_type}")

    for light_data in scene_data.get("lightsources", []):
        light_name = str(light_data.get("type", "pointlight")).lower()
        if light_name not in _LIGHT_TYPES:
            raise ValueError(f"Unknown light type: {light_name}")
        intensity = _vec(light_data.get("intensity", [1.0, 1.0, 1.0]), "intensity")
        if _LIGHT_TYPES[light_name] == "point":
            scene.add_point_light(_vec(light_data["position"], "position"), intensity)
        else:
            scene.add_area_light(
                _vec(light_data.get("center", light_data.get("position")), "center"),
                intensity,
                _vec(light_data.get("u_axis", [1.0, 0.0, 0.0]), "u_axis"),
                _vec(light_data.get("v_axis", [0.0, 0.0, 1.0]), "v_axis"),
                float(light_data.get("width", 1.0)),
                float(light_data.get("height", 1.0)),
            )

    scene.build()
    camera, width, height, exposure = _parse_camera(data.get("camera", {}))
    return LoadedScene(scene=scene, camera=camera, width=width, height=height, exposure=exposure)


def load_scene_file(path: str | Path, settings: SceneSettings | None = None) -> LoadedScene:
    """Read a JSON scene description file and build the scene."""
    with open(path) as f:
        data = json.load(f)
    loaded = scene_from_description(data, settings)
    logger.info(
        "Loaded %s: %d shapes, %d lights", path, loaded.scene.get_shape_count(), loaded.scene.get_light_count()
    )
    return loaded
