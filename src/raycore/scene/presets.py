"""Ready-made scenes for the example scripts and tests.

Two presets are provided:

- ``create_demo_scene``: a textured floor, a diffuse sphere, a mirror
  sphere, a glass sphere and a cylinder, lit by one point light and one
  area light.
- ``create_random_spheres_scene``: many small spheres scattered in a box,
  useful for comparing hierarchy and linear-scan performance.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from src.raycore.scene.presets import create_demo_scene
    >>> scene, camera = create_demo_scene()
    >>> image = scene.render(camera, 320, 240)
"""

from dataclasses import dataclass

import numpy as np

from src.raycore.camera.pinhole import PinholeCamera
from src.raycore.materials.blinn_phong import MaterialParams
from src.raycore.scene.manager import SceneManager, SceneSettings


@dataclass
class DemoSceneParams:
    """Parameters for the demo scene.

    Attributes:
        aspect_ratio: Camera aspect ratio (width / height).
        light_intensity: Intensity of the point light (white).
        area_light_intensity: Intensity of the area light (white).
        floor_size: Half extent of the square floor.
        checker_squares: Squares per side of the floor texture, 0 for a
            plain floor.
    """

    aspect_ratio: float = 4.0 / 3.0
    light_intensity: float = 40.0
    area_light_intensity: float = 20.0
    floor_size: float = 6.0
    checker_squares: int = 8


def checker_texture(squares: int, texels_per_square: int = 8) -> np.ndarray:
    """Two-tone checkerboard as an (H, W, 3) array in [0, 1]."""
    size = squares * texels_per_square
    idx = np.arange(size) // texels_per_square
    mask = (idx[:, None] + idx[None, :]) % 2 == 0
    light = np.array([0.85, 0.85, 0.85], dtype=np.float32)
    dark = np.array([0.25, 0.25, 0.3], dtype=np.float32)
    return np.where(mask[:, :, None], light, dark).astype(np.float32)


def create_demo_scene(
    params: DemoSceneParams | None = None,
    settings: SceneSettings | None = None,
) -> tuple[SceneManager, PinholeCamera]:
    """Build the demo scene.

    Returns:
        Tuple of (scene, camera). The scene is already built.
    """
    if params is None:
        params = DemoSceneParams()
    scene = SceneManager(settings if settings is not None else SceneSettings(background=(0.05, 0.05, 0.08)))

    texture_id = -1
    if params.checker_squares > 0:
        texture_id = scene.add_texture(checker_texture(params.checker_squares))

    floor = scene.add_material(MaterialParams(kd=0.8, ks=0.05, diffuse_color=(0.7, 0.7, 0.7), texture_id=texture_id))
    red = scene.add_material(MaterialParams(kd=0.9, ks=0.3, specular_exponent=40.0, diffuse_color=(0.8, 0.15, 0.1)))
    mirror = scene.add_material(
        MaterialParams(
            kd=0.1,
            ks=0.6,
            specular_exponent=200.0,
            diffuse_color=(0.9, 0.9, 0.9),
            is_reflective=True,
            reflectivity=0.8,
        )
    )
    glass = scene.add_material(
        MaterialParams(
            kd=0.05,
            ks=0.8,
            specular_exponent=300.0,
            diffuse_color=(0.9, 0.95, 1.0),
            is_reflective=True,
            reflectivity=0.1,
            is_refractive=True,
            refractive_index=1.5,
            transparency=0.85,
        )
    )
    teal = scene.add_material(MaterialParams(kd=0.8, ks=0.2, diffuse_color=(0.1, 0.5, 0.5)))

    s = params.floor_size
    scene.add_mesh(
        vertices=[(-s, 0.0, -s), (s, 0.0, -s), (s, 0.0, s), (-s, 0.0, s)],
        faces=[(0, 2, 1), (0, 3, 2)],
        material_id=floor,
    )

    scene.add_sphere(center=(-1.6, 0.8, 0.0), radius=0.8, material_id=red)
    scene.add_sphere(center=(0.2, 1.0, -1.2), radius=1.0, material_id=mirror)
    scene.add_sphere(center=(1.4, 0.6, 1.0), radius=0.6, material_id=glass)
    scene.add_cylinder(center=(2.6, 0.6, -1.0), axis=(0.0, 1.0, 0.0), radius=0.4, height=0.6, material_id=teal)

    li = params.light_intensity
    scene.add_point_light(position=(-3.0, 5.0, 4.0), intensity=(li, li, li))
    ai = params.area_light_intensity
    scene.add_area_light(
        center=(2.0, 4.0, 2.0),
        intensity=(ai, ai, ai),
        u_axis=(1.0, 0.0, 0.0),
        v_axis=(0.0, 0.0, 1.0),
        width=1.0,
        height=1.0,
    )
    scene.build()

    camera = PinholeCamera(
        lookfrom=(0.0, 2.5, 7.0),
        lookat=(0.0, 0.7, 0.0),
        vup=(0.0, 1.0, 0.0),
        vfov=45.0,
        aspect_ratio=params.aspect_ratio,
    )
    return scene, camera


def create_random_spheres_scene(
    count: int = 200,
    seed: int = 0,
    extent: float = 5.0,
    settings: SceneSettings | None = None,
) -> tuple[SceneManager, PinholeCamera]:
    """Scatter ``count`` spheres with random radii in a cube, colored from a
    small random palette.

    Returns:
        Tuple of (scene, camera). The scene is already built.
    """
    rng = np.random.default_rng(seed)
    scene = SceneManager(settings)

    centers = rng.uniform(-extent, extent, size=(count, 3))
    radii = rng.uniform(0.05, 0.3, size=count)
    palette = [
        scene.add_material(diffuse_color=tuple(float(c) for c in color))
        for color in rng.uniform(0.1, 0.9, size=(16, 3))
    ]
    for k, (center, radius) in enumerate(zip(centers, radii)):
        scene.add_sphere(tuple(float(c) for c in center), float(radius), palette[k % len(palette)])

    scene.add_point_light(position=(0.0, 2.0 * extent, 2.0 * extent), intensity=(400.0, 400.0, 400.0))
    scene.build()

    camera = PinholeCamera(lookfrom=(0.0, 0.0, 3.0 * extent), lookat=(0.0, 0.0, 0.0), vfov=45.0)
    return scene, camera
