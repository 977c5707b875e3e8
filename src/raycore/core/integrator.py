"""Image rendering: camera rays, shading, and sample accumulation.

Every pixel is independent: each sample seeds its own random state from
(pixel index, sample index, seed), generates a camera ray (jittered when
anti-aliasing is on, through the pixel center otherwise) and shades it.
Samples are averaged into a preallocated color buffer, so rendering more
samples refines the same image.

The buffer is indexed (i, j) with j = 0 at the bottom. The numpy export
flips it into raster order (top row first) with shape (height, width, 3).

Example:
    >>> from src.raycore.scene.presets import create_demo_scene
    >>> scene, camera = create_demo_scene()
    >>> setup_camera(camera)
    >>> setup_render_target(320, 240)
    >>> render_image(num_samples=4, max_depth=5, antialiasing=True)
    >>> image = get_image_numpy()
"""

import logging

import numpy as np
import numpy.typing as npt
import taichi as ti
import taichi.math as tm

from src.raycore.camera.pinhole import get_ray_centered, get_ray_jittered
from src.raycore.core.sampler import seed_state
from src.raycore.core.shading import DEFAULT_MAX_DEPTH, shade, validate_max_depth
from src.raycore.scene.intersection import check_query_ready, is_hierarchy_enabled

logger = logging.getLogger(__name__)

vec3 = tm.vec3

# =============================================================================
# Render Target (Image Buffer)
# =============================================================================

# Maximum supported image dimensions (preallocated to avoid kernel recompilation)
MAX_IMAGE_WIDTH = 2048
MAX_IMAGE_HEIGHT = 2048

_image_width = ti.field(dtype=ti.i32, shape=())
_image_height = ti.field(dtype=ti.i32, shape=())

# Color accumulation buffer (preallocated to max size)
_color_buffer = ti.Vector.field(3, dtype=ti.f32, shape=(MAX_IMAGE_WIDTH, MAX_IMAGE_HEIGHT))

# Samples accumulated so far (same for every pixel)
_sample_count = ti.field(dtype=ti.i32, shape=())

_render_target_initialized = ti.field(dtype=ti.i32, shape=())


def setup_render_target(width: int, height: int) -> None:
    """Set the active image size and clear the buffers.

    Raises:
        ValueError: If dimensions are not positive or exceed the maximum.
    """
    if width <= 0 or height <= 0:
        raise ValueError(f"Image dimensions ({width}x{height}) must be positive")
    if width > MAX_IMAGE_WIDTH or height > MAX_IMAGE_HEIGHT:
        raise ValueError(
            f"Image dimensions ({width}x{height}) exceed maximum supported "
            f"({MAX_IMAGE_WIDTH}x{MAX_IMAGE_HEIGHT})"
        )

    _image_width[None] = width
    _image_height[None] = height
    _render_target_initialized[None] = 1
    clear_render_target()


def clear_render_target() -> None:
    """Clear the color buffer and sample count."""
    _color_buffer.fill(0.0)
    _sample_count[None] = 0


def release_render_target() -> None:
    """Mark the render target as not set up."""
    clear_render_target()
    _render_target_initialized[None] = 0


def get_image_dimensions() -> tuple[int, int]:
    """Get the current render target dimensions as (width, height)."""
    return int(_image_width[None]), int(_image_height[None])


def _check_render_target_initialized() -> None:
    if _render_target_initialized[None] == 0:
        raise RuntimeError("Render target not set up. Call setup_render_target() first.")


def get_total_samples() -> int:
    """Number of samples accumulated per pixel."""
    _check_render_target_initialized()
    return int(_sample_count[None])


# =============================================================================
# Rendering Kernels
# =============================================================================


@ti.func
def render_pixel_sample(
    pixel_i: ti.i32,
    pixel_j: ti.i32,
    width: ti.i32,
    height: ti.i32,
    sample_index: ti.i32,
    seed: ti.i32,
    max_depth: ti.i32,
    antialiasing: ti.i32,
) -> vec3:
    """Shade one sample of one pixel with its own random state."""
    state = seed_state(pixel_j * width + pixel_i, sample_index, seed)
    origin = vec3(0.0, 0.0, 0.0)
    direction = vec3(0.0, 0.0, -1.0)
    if antialiasing == 1:
        ray, state = get_ray_jittered(pixel_i, pixel_j, width, height, state)
        origin = ray.origin
        direction = ray.direction
    else:
        ray = get_ray_centered(pixel_i, pixel_j, width, height)
        origin = ray.origin
        direction = ray.direction
    color, _state = shade(origin, direction, max_depth, state)

    # NaN/Inf from degenerate geometry contribute nothing
    for c in ti.static(range(3)):
        if tm.isnan(color[c]) or tm.isinf(color[c]):
            color[c] = 0.0
    return color


@ti.kernel
def _render_one_spp(
    width: ti.i32,
    height: ti.i32,
    sample_index: ti.i32,
    seed: ti.i32,
    max_depth: ti.i32,
    antialiasing: ti.i32,
):
    for i, j in ti.ndrange(width, height):
        color = render_pixel_sample(i, j, width, height, sample_index, seed, max_depth, antialiasing)
        # Running average: avg_n = avg_{n-1} + (x_n - avg_{n-1}) / n
        n = ti.cast(sample_index + 1, ti.f32)
        _color_buffer[i, j] += (color - _color_buffer[i, j]) / n


@ti.kernel
def _render_single_pixel(
    pixel_i: ti.i32,
    pixel_j: ti.i32,
    width: ti.i32,
    height: ti.i32,
    sample_index: ti.i32,
    seed: ti.i32,
    max_depth: ti.i32,
    antialiasing: ti.i32,
) -> vec3:
    return render_pixel_sample(
        pixel_i, pixel_j, width, height, sample_index, seed, max_depth, antialiasing
    )


# =============================================================================
# Public Rendering API
# =============================================================================


def render_sample(
    pixel_i: int,
    pixel_j: int,
    sample_index: int = 0,
    seed: int = 0,
    max_depth: int = DEFAULT_MAX_DEPTH,
    antialiasing: bool = False,
) -> tuple[float, float, float]:
    """Render one sample of one pixel without touching the buffer.

    Args:
        pixel_i: Pixel x-coordinate (0 = left).
        pixel_j: Pixel y-coordinate (0 = bottom).

    Returns:
        Tuple of (R, G, B) color values.

    Raises:
        RuntimeError: If the render target or hierarchy is not ready.
    """
    _check_render_target_initialized()
    validate_max_depth(max_depth)
    check_query_ready(is_hierarchy_enabled())
    width, height = get_image_dimensions()
    color = _render_single_pixel(
        pixel_i, pixel_j, width, height, sample_index, seed, max_depth, int(antialiasing)
    )
    return (float(color[0]), float(color[1]), float(color[2]))


def render_image(
    num_samples: int = 1,
    max_depth: int = DEFAULT_MAX_DEPTH,
    antialiasing: bool = False,
    seed: int = 0,
) -> None:
    """Accumulate samples for every pixel.

    Can be called repeatedly; sample indices continue where the previous
    call stopped, so results equal one call with the total sample count.

    Raises:
        RuntimeError: If the render target or hierarchy is not ready.
        ValueError: If max_depth is out of range.
    """
    _check_render_target_initialized()
    validate_max_depth(max_depth)
    check_query_ready(is_hierarchy_enabled())

    width, height = get_image_dimensions()
    start = int(_sample_count[None])
    for sample_index in range(start, start + num_samples):
        _render_one_spp(width, height, sample_index, seed, max_depth, int(antialiasing))
        _sample_count[None] = sample_index + 1
    logger.debug("Rendered %d samples (%d total) at %dx%d", num_samples, start + num_samples, width, height)


def get_image_numpy() -> npt.NDArray[np.float32]:
    """Rendered image in raster order, unclamped.

    Returns:
        Array of shape (height, width, 3); row 0 is the top of the image.

    Raises:
        RuntimeError: If render target has not been set up.
    """
    _check_render_target_initialized()
    width, height = get_image_dimensions()

    full_image = _color_buffer.to_numpy()
    image = full_image[:width, :height, :]

    # (width, height, 3) -> (height, width, 3)
    image = np.transpose(image, (1, 0, 2))

    # Buffer row 0 is the bottom of the image
    image = np.flipud(image)

    return np.ascontiguousarray(image, dtype=np.float32)


def get_normalized_image_numpy() -> npt.NDArray[np.float32]:
    """Rendered image in raster order, clamped to [0, 1]."""
    return np.clip(get_image_numpy(), 0.0, 1.0).astype(np.float32)
