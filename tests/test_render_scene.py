"""End-to-end tests for the render_scene example script.

Tests cover:
- Argument defaults
- Rendering each scene source to a PNG
- Command-line flags overriding a scene file
"""

import json

import numpy as np
from PIL import Image as PILImage


class TestRenderScene:
    """render_scene() with small images."""

    def test_defaults(self):
        from examples.render_scene import parse_args

        args = parse_args([])
        assert args.scene == "demo"
        assert args.width is None
        assert args.samples == 4
        assert args.tone_map == "aces"
        assert not args.no_bvh

    def test_demo_to_png(self, tmp_path):
        from examples.render_scene import parse_args, render_scene

        output = tmp_path / "demo.png"
        args = parse_args(
            ["--width", "16", "--height", "12", "--samples", "1", "--area-samples", "2", "--output", str(output), "--quiet"]
        )
        assert render_scene(args) == output
        with PILImage.open(output) as f:
            assert f.size == (16, 12)

    def test_linear_spheres_binary(self, tmp_path):
        from examples.render_scene import parse_args, render_scene

        output = tmp_path / "spheres.png"
        args = parse_args(
            [
                "--scene", "spheres",
                "--width", "12",
                "--height", "12",
                "--samples", "1",
                "--mode", "binary",
                "--no-bvh",
                "--tone-map", "none",
                "--output", str(output),
                "--quiet",
            ]
        )
        render_scene(args)
        with PILImage.open(output) as f:
            data = np.asarray(f)
        # Binary mode writes pure red where a shape is hit
        hits = data[..., 0] == 255
        assert hits.any()
        assert np.all(data[hits][:, 1] == 0)
        assert np.all(data[hits][:, 2] == 0)

    def test_scene_file_with_overrides(self, tmp_path):
        from examples.render_scene import parse_args, render_scene
        from src.raycore.core.integrator import get_image_dimensions

        path = tmp_path / "scene.json"
        path.write_text(
            json.dumps(
                {
                    "nbounces": 4,
                    "camera": {"width": 10, "height": 8, "position": [0, 0, 4]},
                    "scene": {
                        "shapes": [{"type": "sphere", "center": [0, 0, 0], "radius": 1}],
                        "lightsources": [{"type": "pointlight", "position": [0, 3, 3]}],
                    },
                }
            )
        )
        output = tmp_path / "file.png"
        args = parse_args(["--scene", str(path), "--samples", "1", "--max-depth", "1", "--output", str(output), "--quiet"])
        render_scene(args)
        assert get_image_dimensions() == (10, 8)
        with PILImage.open(output) as f:
            assert f.size == (10, 8)
