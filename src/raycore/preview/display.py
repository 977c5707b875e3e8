"""Tone mapping and Matplotlib preview for rendered images.

Rendered colors are unclamped linear RGB. This module maps them to the
displayable [0, 1] range.

Features:
    - Tone mapping (Reinhard, exposure-based, ACES filmic)
    - Gamma correction (sRGB 2.2)
    - Matplotlib preview window and side-by-side comparison

Example:
    >>> from src.raycore.core.integrator import get_image_numpy
    >>> from src.raycore.preview.display import show_preview
    >>> show_preview(get_image_numpy(), tone_map="aces")
"""

from __future__ import annotations

from typing import Callable, Literal

import numpy as np
import numpy.typing as npt

ToneMapMethod = Literal["none", "reinhard", "exposure", "aces"]

FloatImage = npt.NDArray[np.float32]

# ACES filmic curve fit (Narkowicz)
_ACES_A = 2.51
_ACES_B = 0.03
_ACES_C = 2.43
_ACES_D = 0.59
_ACES_E = 0.14


def tone_map_reinhard(image: FloatImage) -> FloatImage:
    """Reinhard operator c / (1 + c); negative input counts as black."""
    c = np.maximum(image, 0.0)
    return (c / (1.0 + c)).astype(np.float32)


def tone_map_exposure(image: FloatImage, exposure: float = 1.0) -> FloatImage:
    """Exposure operator 1 - exp(-c * exposure).

    Args:
        image: Linear (H, W, 3) image.
        exposure: Scale applied before the curve; larger is brighter.
    """
    c = np.maximum(image, 0.0)
    return (1.0 - np.exp(-exposure * c)).astype(np.float32)


def tone_map_aces(image: FloatImage) -> FloatImage:
    """ACES filmic curve x(ax + b) / (x(cx + d) + e), clamped to [0, 1]."""
    x = np.maximum(image, 0.0)
    mapped = (x * (_ACES_A * x + _ACES_B)) / (x * (_ACES_C * x + _ACES_D) + _ACES_E)
    return np.clip(mapped, 0.0, 1.0).astype(np.float32)


def apply_gamma(image: FloatImage, gamma: float = 2.2) -> FloatImage:
    """Encode a linear [0, 1] image with a power-law gamma.

    A gamma of exactly 1 returns the input untouched.

    Raises:
        ValueError: If gamma is not positive.
    """
    if gamma <= 0.0:
        raise ValueError(f"Gamma = {gamma} must be positive")
    if gamma == 1.0:
        return image
    # Negative values would give NaN
    return np.power(np.clip(image, 0.0, 1.0), 1.0 / gamma).astype(np.float32)


_TONE_MAPS: dict[str, Callable[[FloatImage, float], FloatImage]] = {
    "none": lambda image, exposure: image,
    "reinhard": lambda image, exposure: tone_map_reinhard(image),
    "exposure": tone_map_exposure,
    "aces": lambda image, exposure: tone_map_aces(image),
}


def process_image_for_display(
    image: FloatImage,
    tone_map: ToneMapMethod = "none",
    gamma: float = 2.2,
    exposure: float = 1.0,
) -> FloatImage:
    """Tone map, gamma encode and clamp a copy of ``image``.

    Raises:
        ValueError: For an unknown tone mapping method.
    """
    if tone_map not in _TONE_MAPS:
        raise ValueError(f"Unknown tone mapping method: {tone_map}")
    mapped = _TONE_MAPS[tone_map](np.array(image, dtype=np.float32, copy=True), exposure)
    return np.clip(apply_gamma(mapped, gamma), 0.0, 1.0).astype(np.float32)


def show_preview(
    image: FloatImage,
    *,
    tone_map: ToneMapMethod = "none",
    gamma: float = 2.2,
    exposure: float = 1.0,
    title: str | None = None,
    figsize: tuple[float, float] = (8, 8),
    block: bool = True,
) -> None:
    """Show a rendered image in a Matplotlib window.

    Args:
        image: Linear (H, W, 3) image, row 0 at the top.
        tone_map: Tone mapping method.
        gamma: Display gamma.
        exposure: Exposure for the "exposure" tone map.
        title: Window title; defaults to the size and tone map.
        figsize: Figure size in inches.
        block: Block until the window is closed.
    """
    import matplotlib.pyplot as plt

    shown = process_image_for_display(image, tone_map=tone_map, gamma=gamma, exposure=exposure)
    if title is None:
        height, width = shown.shape[:2]
        title = f"Render Preview - {width}x{height}"
        if tone_map != "none":
            title += f" ({tone_map})"

    _fig, ax = plt.subplots(figsize=figsize)
    ax.imshow(shown)
    ax.set_title(title)
    ax.axis("off")
    plt.tight_layout()
    plt.show(block=block)


def show_comparison(
    image_a: FloatImage,
    image_b: FloatImage,
    *,
    labels: tuple[str, str] = ("A", "B"),
    tone_map: ToneMapMethod = "none",
    gamma: float = 2.2,
    diff_scale: float = 10.0,
    figsize: tuple[float, float] = (16, 6),
    block: bool = True,
) -> float:
    """Show two renders and their amplified difference side by side.

    Useful for checking the hierarchy render against the linear-scan render.

    Returns:
        RMSE between the two images after display processing.
    """
    import matplotlib.pyplot as plt

    shown_a = process_image_for_display(image_a, tone_map=tone_map, gamma=gamma)
    shown_b = process_image_for_display(image_b, tone_map=tone_map, gamma=gamma)
    diff = np.abs(shown_a.astype(np.float64) - shown_b.astype(np.float64))
    rmse = float(np.sqrt(np.mean(diff**2)))

    panels = [
        (shown_a, labels[0]),
        (shown_b, labels[1]),
        (np.clip(diff * diff_scale, 0.0, 1.0), f"Difference ({diff_scale}x) - RMSE: {rmse:.6f}"),
    ]
    _fig, axes = plt.subplots(1, len(panels), figsize=figsize)
    for ax, (panel, label) in zip(axes, panels):
        ax.imshow(panel)
        ax.set_title(label)
        ax.axis("off")
    plt.tight_layout()
    plt.show(block=block)
    return rmse
