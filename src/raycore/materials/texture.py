"""Image textures for UV-mapped diffuse color.

Images are decoded with Pillow and packed into one flat texel field. Each
texture records its offset, width and height. Lookups wrap (u, v) into
[0, 1) and read the texel at (int(u * width), int(v * height)), stored row
major with row 0 being the top row of the image.
"""

import logging
from pathlib import Path

import numpy as np
import numpy.typing as npt
import taichi as ti
import taichi.math as tm

logger = logging.getLogger(__name__)

vec3 = tm.vec3

MAX_TEXTURES = 64
MAX_TEXELS = 1 << 20

texels = ti.Vector.field(3, dtype=ti.f32, shape=MAX_TEXELS)
texture_offsets = ti.field(dtype=ti.i32, shape=MAX_TEXTURES)
texture_widths = ti.field(dtype=ti.i32, shape=MAX_TEXTURES)
texture_heights = ti.field(dtype=ti.i32, shape=MAX_TEXTURES)
num_textures = ti.field(dtype=ti.i32, shape=())
_texel_cursor = ti.field(dtype=ti.i32, shape=())


def clear_textures() -> None:
    """Forget all textures; texel storage is reused from the start."""
    num_textures[None] = 0
    _texel_cursor[None] = 0


@ti.kernel
def _write_texels(offset: ti.i32, pixels: ti.types.ndarray(dtype=ti.f32, ndim=3)):
    height = pixels.shape[0]
    width = pixels.shape[1]
    for y, x in ti.ndrange(height, width):
        texels[offset + y * width + x] = vec3(pixels[y, x, 0], pixels[y, x, 1], pixels[y, x, 2])


def add_texture_array(pixels: npt.ArrayLike) -> int:
    """Register a texture from an RGB array.

    Args:
        pixels: Array of shape (height, width, 3) with values in [0, 1].

    Returns:
        The texture id.

    Raises:
        ValueError: If the array does not have shape (H, W, 3).
        RuntimeError: If texture or texel capacity is exceeded.
    """
    data = np.ascontiguousarray(pixels, dtype=np.float32)
    if data.ndim != 3 or data.shape[2] != 3 or data.shape[0] == 0 or data.shape[1] == 0:
        raise ValueError(f"Texture must have shape (height, width, 3), got {data.shape}")

    texture_id = num_textures[None]
    if texture_id >= MAX_TEXTURES:
        raise RuntimeError(f"Maximum number of textures ({MAX_TEXTURES}) exceeded")

    height, width = int(data.shape[0]), int(data.shape[1])
    offset = int(_texel_cursor[None])
    if offset + width * height > MAX_TEXELS:
        raise RuntimeError(f"Texture storage ({MAX_TEXELS} texels) exceeded")

    _write_texels(offset, data)
    texture_offsets[texture_id] = offset
    texture_widths[texture_id] = width
    texture_heights[texture_id] = height
    _texel_cursor[None] = offset + width * height
    num_textures[None] = texture_id + 1
    return texture_id


def load_texture(path: str | Path) -> int:
    """Decode an image file with Pillow and register it as a texture.

    Returns:
        The texture id.
    """
    from PIL import Image as PILImage

    with PILImage.open(path) as image:
        rgb = np.asarray(image.convert("RGB"), dtype=np.float32) / 255.0
    texture_id = add_texture_array(rgb)
    logger.info("Loaded texture %d from %s (%dx%d)", texture_id, path, rgb.shape[1], rgb.shape[0])
    return texture_id


def get_texture_count() -> int:
    """Get the number of registered textures."""
    return int(num_textures[None])


@ti.func
def sample_texture(texture_id: ti.i32, u: ti.f32, v: ti.f32) -> vec3:
    """Nearest-texel lookup with wrap-around addressing."""
    width = texture_widths[texture_id]
    height = texture_heights[texture_id]
    wu = u - ti.floor(u)
    wv = v - ti.floor(v)
    x = ti.min(ti.cast(wu * ti.cast(width, ti.f32), ti.i32), width - 1)
    y = ti.min(ti.cast(wv * ti.cast(height, ti.f32), ti.i32), height - 1)
    return texels[texture_offsets[texture_id] + y * width + x]
