#!/usr/bin/env python3
"""Render a scene to a PNG file.

Renders either the built-in demo scene, a random-spheres scene, or a JSON
scene description file, using the Whitted ray tracer.

Usage:
    python -m examples.render_scene [options]

Options:
    --scene SCENE         "demo", "spheres", or a path to a JSON scene file
    --width WIDTH         Image width in pixels (default: 400)
    --height HEIGHT       Image height in pixels (default: 300)
    --samples SAMPLES     Samples per pixel (default: 4)
    --max-depth DEPTH     Reflection/refraction depth (default: 5)
    --mode MODE           "phong" or "binary" (default: phong)
    --no-bvh              Use the linear scan instead of the hierarchy
    --output OUTPUT       Output file path (default: render.png)

Example:
    python -m examples.render_scene --scene demo --width 640 --height 480 --samples 8
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from pathlib import Path

import taichi as ti


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Render a scene with the Whitted ray tracer.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--scene",
        type=str,
        default="demo",
        help='"demo", "spheres", or a path to a JSON scene file (default: demo)',
    )
    parser.add_argument("--width", type=int, default=None, help="Image width in pixels (default: 400)")
    parser.add_argument("--height", type=int, default=None, help="Image height in pixels (default: 300)")
    parser.add_argument("--samples", type=int, default=4, help="Samples per pixel (default: 4)")
    parser.add_argument("--max-depth", type=int, default=None, help="Recursion depth (default: 5)")
    parser.add_argument(
        "--mode",
        type=str,
        choices=["phong", "binary"],
        default=None,
        help="Render mode (default: phong)",
    )
    parser.add_argument("--area-samples", type=int, default=16, help="Samples per area light (default: 16)")
    parser.add_argument("--no-bvh", action="store_true", help="Use the linear scan instead of the hierarchy")
    parser.add_argument("--no-antialias", action="store_true", help="Trace through pixel centers only")
    parser.add_argument("--seed", type=int, default=0, help="Random seed (default: 0)")
    parser.add_argument(
        "--tone-map",
        type=str,
        choices=["none", "reinhard", "exposure", "aces"],
        default="aces",
        help="Tone mapping method (default: aces)",
    )
    parser.add_argument("--exposure", type=float, default=None, help="Exposure for tone mapping")
    parser.add_argument("--output", type=str, default="render.png", help="Output file path (default: render.png)")
    parser.add_argument("--preview", action="store_true", help="Show a Matplotlib preview after rendering")
    parser.add_argument("--quiet", action="store_true", help="Suppress progress output")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def render_scene(args: argparse.Namespace) -> Path:
    """Build the requested scene, render it and save a PNG.

    Returns:
        Path to the saved image file.
    """
    # Lazy imports so Taichi is initialized first
    from src.raycore.camera.pinhole import setup_camera
    from src.raycore.core.integrator import get_image_numpy, render_image, setup_render_target
    from src.raycore.core.shading import render_mode_from_name
    from src.raycore.preview.export import save_png_from_array
    from src.raycore.scene.loader import load_scene_file
    from src.raycore.scene.manager import SceneSettings
    from src.raycore.scene.presets import DemoSceneParams, create_demo_scene, create_random_spheres_scene

    settings = SceneSettings(
        background=(0.05, 0.05, 0.08),
        use_bvh=not args.no_bvh,
        antialiasing=not args.no_antialias,
        samples_per_pixel=args.samples,
        area_light_samples=args.area_samples,
        seed=args.seed,
    )
    if args.max_depth is not None:
        settings.max_depth = args.max_depth
    if args.mode is not None:
        settings.render_mode = render_mode_from_name(args.mode)

    width = args.width or 400
    height = args.height or 300
    exposure = 1.0

    if not args.quiet:
        print(f"Building scene '{args.scene}'...")
    if args.scene == "demo":
        scene, camera = create_demo_scene(DemoSceneParams(aspect_ratio=width / height), settings)
    elif args.scene == "spheres":
        scene, camera = create_random_spheres_scene(seed=args.seed, settings=settings)
        camera.aspect_ratio = width / height
    else:
        loaded = load_scene_file(args.scene, settings)
        scene, camera, exposure = loaded.scene, loaded.camera, loaded.exposure
        width = args.width or loaded.width
        height = args.height or loaded.height
        camera.aspect_ratio = width / height
        # Flags override the file
        if args.max_depth is not None or args.mode is not None:
            if args.max_depth is not None:
                scene.settings.max_depth = args.max_depth
            if args.mode is not None:
                scene.settings.render_mode = render_mode_from_name(args.mode)
            scene.build()
    if args.exposure is not None:
        exposure = args.exposure

    setup_camera(camera)
    setup_render_target(width, height)

    if not args.quiet:
        bvh = "hierarchy" if scene.settings.use_bvh else "linear scan"
        print(f"Rendering {width}x{height}, {settings.samples_per_pixel} spp, {scene.get_shape_count()} shapes ({bvh})...")

    start_time = time.time()
    for sample in range(scene.settings.samples_per_pixel):
        render_image(
            num_samples=1,
            max_depth=scene.settings.max_depth,
            antialiasing=scene.settings.antialiasing,
            seed=scene.settings.seed,
        )
        if not args.quiet:
            done = sample + 1
            elapsed = time.time() - start_time
            rate = done / elapsed if elapsed > 0 else 0.0
            print(
                f"\r  Progress: {done}/{scene.settings.samples_per_pixel} samples - {rate:.2f} spp/s",
                end="",
                flush=True,
            )
    if not args.quiet:
        print()

    image = get_image_numpy()
    output_file = Path(args.output)
    save_png_from_array(image, output_file, tone_map=args.tone_map, gamma=2.2, exposure=exposure)

    if not args.quiet:
        print(f"Saved to: {output_file.absolute()}")
        print(f"Total time: {time.time() - start_time:.2f}s")

    if args.preview:
        from src.raycore.preview.display import show_preview

        show_preview(image, tone_map=args.tone_map, exposure=exposure)

    return output_file


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s: %(message)s",
    )

    ti.init(arch=ti.cpu)

    try:
        render_scene(args)
        return 0
    except (ValueError, RuntimeError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
