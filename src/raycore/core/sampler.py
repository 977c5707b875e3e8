"""Explicit random source for jitter and area-light sampling.

Each pixel sample owns a 32-bit state seeded from (pixel index, sample index,
seed) with a PCG hash. Functions take the state and return the advanced
state alongside the value, so no generator is shared between pixels and a
render is reproducible for a given seed.

Example:
    >>> @ti.kernel
    ... def draw(pixel: ti.i32) -> ti.f32:
    ...     state = seed_state(pixel, 0, 42)
    ...     value, state = next_float(state)
    ...     return value
"""

import taichi as ti

# PCG-RXS-M-XS constants. The increment 2891336453 does not fit a signed
# 32-bit literal, so it is assembled as 2 * 1445668226 + 1 in u32 arithmetic.
_PCG_MULTIPLIER = 747796405
_PCG_INCREMENT_HALF = 1445668226
_PCG_WORD_MULTIPLIER = 277803737

# 2^-24: floats are built from the top 24 bits of the state
_FLOAT_SCALE = 1.0 / 16777216.0


@ti.func
def pcg_hash(value: ti.u32) -> ti.u32:
    """Hash a 32-bit value with the PCG output permutation."""
    increment = ti.cast(_PCG_INCREMENT_HALF, ti.u32) * ti.cast(2, ti.u32) + ti.cast(1, ti.u32)
    state = value * ti.cast(_PCG_MULTIPLIER, ti.u32) + increment
    shift = ti.bit_shr(state, 28) + ti.cast(4, ti.u32)
    word = (ti.bit_shr(state, shift) ^ state) * ti.cast(_PCG_WORD_MULTIPLIER, ti.u32)
    return ti.bit_shr(word, 22) ^ word


@ti.func
def seed_state(pixel_index: ti.i32, sample_index: ti.i32, seed: ti.i32) -> ti.u32:
    """Derive an independent random state for one pixel sample.

    Args:
        pixel_index: Linear pixel index.
        sample_index: Index of the sample within the pixel.
        seed: Global render seed.

    Returns:
        A non-zero 32-bit state.
    """
    h = pcg_hash(ti.cast(seed, ti.u32))
    h = pcg_hash(ti.cast(sample_index, ti.u32) ^ h)
    h = pcg_hash(ti.cast(pixel_index, ti.u32) ^ h)
    if h == ti.cast(0, ti.u32):
        h = ti.cast(1, ti.u32)
    return h


@ti.func
def next_u32(state: ti.u32):
    """Advance the state and return (value, new_state)."""
    new_state = pcg_hash(state)
    return new_state, new_state


@ti.func
def next_float(state: ti.u32):
    """Draw a float uniformly from [0, 1).

    Returns:
        A tuple (value, new_state).
    """
    bits, new_state = next_u32(state)
    value = ti.cast(ti.bit_shr(bits, 8), ti.f32) * _FLOAT_SCALE
    return value, new_state


@ti.func
def next_float2(state: ti.u32):
    """Draw two independent floats from [0, 1).

    Returns:
        A tuple (a, b, new_state).
    """
    a, s1 = next_float(state)
    b, s2 = next_float(s1)
    return a, b, s2
