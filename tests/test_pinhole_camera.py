"""Unit tests for the pinhole camera.

Tests cover:
- Viewport vectors from the field of view and aspect ratio
- Validation of degenerate camera configurations
- Pixel-center and jittered ray generation
- Dictionary round trip
"""

import numpy as np
import pytest
import taichi as ti


class TestPinholeCamera:
    """Tests for setup_camera() and the ray generators."""

    def test_default_viewport(self):
        """Viewport at unit distance, sized by the vertical field of view."""
        from src.raycore.camera.pinhole import PinholeCamera, get_camera_info, setup_camera

        setup_camera(PinholeCamera(vfov=90.0, aspect_ratio=2.0))
        info = get_camera_info()
        assert info["origin"] == (0.0, 0.0, 5.0)
        assert abs(info["vertical"][1] - 2.0) < 1e-5
        assert abs(info["horizontal"][0] - 4.0) < 1e-5
        ll = info["lower_left"]
        assert abs(ll[0] + 2.0) < 1e-5
        assert abs(ll[1] + 1.0) < 1e-5
        assert abs(ll[2] - 4.0) < 1e-5

    @pytest.mark.parametrize(
        "kwargs,match",
        [
            ({"vfov": 0.0}, "vfov"),
            ({"vfov": 180.0}, "vfov"),
            ({"aspect_ratio": 0.0}, "aspect_ratio"),
            ({"lookat": (0.0, 0.0, 5.0)}, "must differ"),
            ({"vup": (0.0, 0.0, 1.0)}, "parallel"),
        ],
    )
    def test_invalid_camera(self, kwargs, match):
        from src.raycore.camera.pinhole import PinholeCamera, setup_camera

        with pytest.raises(ValueError, match=match):
            setup_camera(PinholeCamera(**kwargs))

    def test_center_pixel_looks_forward(self):
        """The middle pixel of an odd-sized image looks at lookat."""
        from src.raycore.camera.pinhole import PinholeCamera, get_ray_centered, setup_camera

        setup_camera(PinholeCamera(lookfrom=(1.0, 2.0, 3.0), lookat=(1.0, 2.0, -7.0)))
        direction = ti.field(dtype=ti.math.vec3, shape=())

        @ti.kernel
        def test_kernel():
            direction[None] = get_ray_centered(1, 1, 3, 3).direction

        test_kernel()
        d = direction[None]
        assert abs(d[0]) < 1e-6
        assert abs(d[1]) < 1e-6
        assert abs(d[2] + 1.0) < 1e-6

    def test_jittered_rays_stay_in_pixel(self):
        """Jittered rays for the bottom-left pixel of a 2x2 image point down and left."""
        from src.raycore.camera.pinhole import PinholeCamera, get_ray_jittered, setup_camera
        from src.raycore.core.sampler import seed_state

        setup_camera(PinholeCamera())
        n = 64
        directions = ti.field(dtype=ti.math.vec3, shape=n)

        @ti.kernel
        def test_kernel():
            for k in range(n):
                ray, _state = get_ray_jittered(0, 0, 2, 2, seed_state(0, k, 1))
                directions[k] = ray.direction

        test_kernel()
        d = directions.to_numpy()
        assert np.all(d[:, 0] <= 0.0)
        assert np.all(d[:, 1] <= 0.0)
        assert np.all(d[:, 2] < 0.0)
        assert np.std(d[:, 0]) > 0.0

    def test_dict_round_trip(self):
        from src.raycore.camera.pinhole import PinholeCamera

        camera = PinholeCamera(lookfrom=(1.0, 2.0, 3.0), vfov=60.0, aspect_ratio=1.5)
        data = camera.to_dict()
        assert data["lookfrom"] == [1.0, 2.0, 3.0]
        assert PinholeCamera.from_dict(data) == camera
