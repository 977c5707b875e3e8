"""Integration tests for the image integrator.

Tests cover:
- Render target setup and error handling
- Raster order of the returned image
- Running average across render_image calls
- Seed determinism
- render_sample agreeing with the accumulated image
"""

import numpy as np
import pytest


class TestRenderTarget:
    """Render target lifecycle."""

    def test_render_before_setup(self):
        from src.raycore.core.integrator import get_image_numpy, render_image

        with pytest.raises(RuntimeError, match="Render target not set up"):
            render_image()
        with pytest.raises(RuntimeError, match="Render target not set up"):
            get_image_numpy()

    def test_invalid_dimensions(self):
        from src.raycore.core.integrator import MAX_IMAGE_WIDTH, setup_render_target

        with pytest.raises(ValueError, match="must be positive"):
            setup_render_target(0, 10)
        with pytest.raises(ValueError, match="exceed maximum"):
            setup_render_target(MAX_IMAGE_WIDTH + 1, 10)

    def test_setup_clears(self):
        from src.raycore.camera.pinhole import PinholeCamera, setup_camera
        from src.raycore.core.integrator import (
            get_image_dimensions,
            get_image_numpy,
            get_total_samples,
            render_image,
            setup_render_target,
        )
        from src.raycore.core.shading import configure_shading

        configure_shading(background=(0.5, 0.5, 0.5))
        setup_camera(PinholeCamera())
        setup_render_target(5, 3)
        render_image(num_samples=2)
        assert get_total_samples() == 2
        np.testing.assert_allclose(get_image_numpy(), 0.5, atol=1e-6)

        setup_render_target(4, 6)
        assert get_image_dimensions() == (4, 6)
        assert get_total_samples() == 0
        assert get_image_numpy().shape == (6, 4, 3)
        assert np.all(get_image_numpy() == 0.0)


class TestRendering:
    """Image contents."""

    def test_raster_order(self):
        """A sphere up and to the right lands in the top-right quadrant of the array."""
        from src.raycore.camera.pinhole import PinholeCamera, setup_camera
        from src.raycore.core.integrator import get_image_numpy, render_image, setup_render_target
        from src.raycore.core.shading import RenderMode, configure_shading
        from src.raycore.geometry.shapes import add_sphere
        from src.raycore.materials.blinn_phong import add_material

        configure_shading(render_mode=RenderMode.BINARY)
        add_sphere((2.0, 2.0, 0.0), 0.8, material_id=add_material())
        setup_camera(PinholeCamera(vfov=90.0))
        setup_render_target(16, 16)
        render_image(num_samples=1)

        image = get_image_numpy()
        assert image.shape == (16, 16, 3)
        assert image[:8, 8:, 0].max() == 1.0
        assert image[8:, :, 0].sum() == 0.0
        assert image[:, :8, 0].sum() == 0.0
        assert image[..., 1].sum() == 0.0

    def test_incremental_equals_single_call(self):
        """Two calls of one sample equal one call of two samples."""
        from src.raycore.camera.pinhole import setup_camera
        from src.raycore.core.integrator import get_image_numpy, get_total_samples, render_image, setup_render_target
        from src.raycore.scene.presets import DemoSceneParams, create_demo_scene

        _scene, camera = create_demo_scene(DemoSceneParams(aspect_ratio=12 / 9))
        setup_camera(camera)
        setup_render_target(12, 9)
        render_image(num_samples=2, max_depth=3, antialiasing=True, seed=5)
        at_once = get_image_numpy()

        setup_render_target(12, 9)
        render_image(num_samples=1, max_depth=3, antialiasing=True, seed=5)
        render_image(num_samples=1, max_depth=3, antialiasing=True, seed=5)
        assert get_total_samples() == 2
        np.testing.assert_allclose(get_image_numpy(), at_once, rtol=1e-5, atol=1e-6)

    def test_seed_determinism(self):
        """The same seed reproduces the image; another seed changes it."""
        from src.raycore.scene.presets import DemoSceneParams, create_demo_scene
        from src.raycore.scene.manager import SceneSettings

        settings = SceneSettings(antialiasing=True, samples_per_pixel=2, max_depth=2, area_light_samples=4, seed=1)
        scene, camera = create_demo_scene(DemoSceneParams(aspect_ratio=16 / 12), settings)

        first = scene.render(camera, 16, 12)
        second = scene.render(camera, 16, 12)
        np.testing.assert_array_equal(first, second)

        scene.settings.seed = 2
        scene.build()
        third = scene.render(camera, 16, 12)
        assert np.any(third != first)
        assert np.all(np.isfinite(first))

    def test_render_sample_matches_buffer(self):
        """Pixel (i, j) with j from the bottom is array row height - 1 - j."""
        from src.raycore.camera.pinhole import setup_camera
        from src.raycore.core.integrator import get_image_numpy, render_image, render_sample, setup_render_target
        from src.raycore.scene.presets import DemoSceneParams, create_demo_scene

        _scene, camera = create_demo_scene(DemoSceneParams(aspect_ratio=10 / 8))
        setup_camera(camera)
        setup_render_target(10, 8)
        render_image(num_samples=1, max_depth=2, seed=9)
        image = get_image_numpy()

        for i, j in [(0, 0), (3, 5), (9, 7)]:
            color = render_sample(i, j, sample_index=0, seed=9, max_depth=2)
            np.testing.assert_allclose(image[8 - 1 - j, i], color, rtol=1e-6, atol=1e-7)

    def test_normalized_image_is_clamped(self):
        from src.raycore.camera.pinhole import PinholeCamera, setup_camera
        from src.raycore.core.integrator import get_normalized_image_numpy, render_image, setup_render_target
        from src.raycore.core.shading import configure_shading

        configure_shading(background=(3.0, 0.5, -1.0))
        setup_camera(PinholeCamera())
        setup_render_target(2, 2)
        render_image()
        image = get_normalized_image_numpy()
        np.testing.assert_allclose(image[0, 0], (1.0, 0.5, 0.0), atol=1e-6)

    def test_stale_hierarchy_blocks_render(self, build_current_hierarchy):
        from src.raycore.camera.pinhole import PinholeCamera, setup_camera
        from src.raycore.core.integrator import render_image, setup_render_target
        from src.raycore.geometry.shapes import add_sphere
        from src.raycore.scene.intersection import set_hierarchy_enabled

        add_sphere((0.0, 0.0, 0.0), 1.0)
        build_current_hierarchy()
        set_hierarchy_enabled(True)
        setup_camera(PinholeCamera())
        setup_render_target(4, 4)
        render_image()

        add_sphere((0.0, 2.0, 0.0), 0.5)
        with pytest.raises(RuntimeError, match="missing or stale"):
            render_image()

    def test_bvh_and_linear_images_match(self):
        """Whole images agree between the two intersection paths."""
        from src.raycore.scene.manager import SceneSettings
        from src.raycore.scene.presets import create_random_spheres_scene

        scene, camera = create_random_spheres_scene(count=80, seed=4, settings=SceneSettings(use_bvh=True))
        bvh = scene.render(camera, 24, 24)

        scene.settings.use_bvh = False
        scene.build()
        linear = scene.render(camera, 24, 24)

        np.testing.assert_allclose(bvh, linear, rtol=1e-4, atol=1e-4)
