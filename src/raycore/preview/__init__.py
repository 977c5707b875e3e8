"""Preview module for output and visualization.

Components:
    display: Tone mapping, gamma correction and Matplotlib preview
    export: 8-bit PNG export via Pillow

Example:
    >>> from src.raycore.core.integrator import get_image_numpy
    >>> from src.raycore.preview import save_png_from_array
    >>> save_png_from_array(get_image_numpy(), "output.png", tone_map="aces")
"""

from src.raycore.preview.display import (
    ToneMapMethod,
    apply_gamma,
    process_image_for_display,
    show_comparison,
    show_preview,
    tone_map_aces,
    tone_map_exposure,
    tone_map_reinhard,
)
from src.raycore.preview.export import compute_rmse, image_to_uint8, save_png_from_array

__all__ = [
    "show_preview",
    "show_comparison",
    "tone_map_reinhard",
    "tone_map_exposure",
    "tone_map_aces",
    "apply_gamma",
    "process_image_for_display",
    "ToneMapMethod",
    "save_png_from_array",
    "image_to_uint8",
    "compute_rmse",
]
