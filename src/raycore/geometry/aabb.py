"""Axis-aligned bounding volumes.

Two halves live here:

- ``BoundingVolume``: an immutable host-side box used while building the
  hierarchy. ``merge`` and ``expand`` return new volumes, so merging is
  commutative and associative in the obvious way.
- Taichi slab tests used during traversal: a boolean test, an interval test
  returning the overlap [t_enter, t_exit], and a sign-based variant of the
  interval test that picks the near corner per axis without branching.

An empty volume uses the min=+inf / max=-inf sentinel. It merges as the
identity element but is never a valid box for rendering.

Example:
    >>> a = BoundingVolume((0, 0, 0), (1, 1, 1))
    >>> b = BoundingVolume((2, -1, 0), (3, 0, 1))
    >>> a.merge(b).extent()
    array([3., 2., 1.])
"""

import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

import numpy as np
import numpy.typing as npt
import taichi as ti
import taichi.math as tm

from src.raycore.core.ray import RayQuery

vec3 = tm.vec3

Point3 = tuple[float, float, float]


def _as_point(values: Sequence[float] | npt.NDArray[np.float64]) -> Point3:
    return (float(values[0]), float(values[1]), float(values[2]))


@dataclass(frozen=True)
class BoundingVolume:
    """Axis-aligned box defined by its min and max corners.

    Attributes:
        lo: Minimum corner (x, y, z).
        hi: Maximum corner (x, y, z).
    """

    lo: Point3
    hi: Point3

    def __post_init__(self) -> None:
        object.__setattr__(self, "lo", _as_point(self.lo))
        object.__setattr__(self, "hi", _as_point(self.hi))
        if not self.is_empty and any(low > high for low, high in zip(self.lo, self.hi)):
            raise ValueError(f"Bounding volume min {self.lo} exceeds max {self.hi}")

    @classmethod
    def empty(cls) -> "BoundingVolume":
        """Return the empty sentinel volume (min=+inf, max=-inf)."""
        inf = math.inf
        return cls((inf, inf, inf), (-inf, -inf, -inf))

    @classmethod
    def from_points(cls, points: Iterable[Sequence[float]]) -> "BoundingVolume":
        """Return the smallest volume enclosing all points."""
        volume = cls.empty()
        for point in points:
            volume = volume.expand(point)
        return volume

    @classmethod
    def union_of(cls, volumes: Iterable["BoundingVolume"]) -> "BoundingVolume":
        """Merge any number of volumes, starting from the empty sentinel."""
        result = cls.empty()
        for volume in volumes:
            result = result.merge(volume)
        return result

    @property
    def is_empty(self) -> bool:
        """True for the sentinel volume (no point has been added)."""
        return all(math.isinf(low) and low > 0 for low in self.lo) and all(
            math.isinf(high) and high < 0 for high in self.hi
        )

    @property
    def lo_array(self) -> npt.NDArray[np.float64]:
        return np.array(self.lo, dtype=np.float64)

    @property
    def hi_array(self) -> npt.NDArray[np.float64]:
        return np.array(self.hi, dtype=np.float64)

    def merge(self, other: "BoundingVolume") -> "BoundingVolume":
        """Component-wise min/max of both volumes."""
        return BoundingVolume(
            np.minimum(self.lo_array, other.lo_array),
            np.maximum(self.hi_array, other.hi_array),
        )

    def expand(self, point: Sequence[float]) -> "BoundingVolume":
        """Widen the volume to include a point."""
        p = np.asarray(point, dtype=np.float64)
        return BoundingVolume(np.minimum(self.lo_array, p), np.maximum(self.hi_array, p))

    def centroid(self) -> npt.NDArray[np.float64]:
        """Midpoint of the min and max corners."""
        self._require_valid("centroid")
        return 0.5 * (self.lo_array + self.hi_array)

    def extent(self) -> npt.NDArray[np.float64]:
        """Size along each axis (max - min)."""
        self._require_valid("extent")
        return self.hi_array - self.lo_array

    def contains(self, other: "BoundingVolume", tolerance: float = 0.0) -> bool:
        """True if other lies inside this volume (within tolerance)."""
        if other.is_empty:
            return True
        return bool(
            np.all(self.lo_array - tolerance <= other.lo_array)
            and np.all(other.hi_array <= self.hi_array + tolerance)
        )

    def isclose(self, other: "BoundingVolume", tolerance: float = 1e-9) -> bool:
        """True if both corners match within tolerance."""
        if self.is_empty or other.is_empty:
            return self.is_empty and other.is_empty
        return bool(
            np.allclose(self.lo_array, other.lo_array, atol=tolerance)
            and np.allclose(self.hi_array, other.hi_array, atol=tolerance)
        )

    def intersect_interval(
        self,
        origin: Sequence[float],
        direction: Sequence[float],
        t_min: float = 0.0,
        t_max: float = math.inf,
    ) -> tuple[bool, float, float]:
        """Slab test returning the overlap of the ray with the box.

        Args:
            origin: Ray origin.
            direction: Ray direction.
            t_min: Start of the admissible parameter range.
            t_max: End of the admissible parameter range.

        Returns:
            Tuple (hit, t_enter, t_exit). t_enter/t_exit are the clipped
            interval and are only meaningful when hit is True.
        """
        if self.is_empty:
            return False, t_min, t_max
        for axis in range(3):
            d = float(direction[axis])
            if abs(d) < 1e-8:
                inv = -1e8 if d < 0.0 else 1e8
            else:
                inv = 1.0 / d
            t0 = (self.lo[axis] - origin[axis]) * inv
            t1 = (self.hi[axis] - origin[axis]) * inv
            if inv < 0.0:
                t0, t1 = t1, t0
            t_min = max(t_min, t0)
            t_max = min(t_max, t1)
            if t_max < t_min:
                return False, t_min, t_max
        return True, t_min, t_max

    def intersects(
        self,
        origin: Sequence[float],
        direction: Sequence[float],
        t_min: float = 0.0,
        t_max: float = math.inf,
    ) -> bool:
        """Boolean slab test."""
        return self.intersect_interval(origin, direction, t_min, t_max)[0]

    def _require_valid(self, operation: str) -> None:
        if self.is_empty:
            raise ValueError(f"Cannot compute {operation} of an empty bounding volume")


# =============================================================================
# Taichi Slab Tests
# =============================================================================


@ti.func
def hit_aabb(
    origin: vec3,
    inv_direction: vec3,
    box_min: vec3,
    box_max: vec3,
    t_min: ti.f32,
    t_max: ti.f32,
) -> ti.i32:
    """Boolean slab test.

    For each axis the entry/exit parameters are swapped when the direction
    is negative, and the running [t_min, t_max] is narrowed. An empty
    interval means a miss.
    """
    lo = t_min
    hi = t_max
    for axis in ti.static(range(3)):
        t0 = (box_min[axis] - origin[axis]) * inv_direction[axis]
        t1 = (box_max[axis] - origin[axis]) * inv_direction[axis]
        if inv_direction[axis] < 0.0:
            temp = t0
            t0 = t1
            t1 = temp
        lo = tm.max(lo, t0)
        hi = tm.min(hi, t1)
    return ti.select(lo <= hi, 1, 0)


@ti.func
def hit_aabb_interval(
    origin: vec3,
    inv_direction: vec3,
    box_min: vec3,
    box_max: vec3,
    t_min: ti.f32,
    t_max: ti.f32,
):
    """Slab test that also returns the clipped parameter interval.

    Returns:
        A tuple (hit, t_enter, t_exit).
    """
    lo = t_min
    hi = t_max
    for axis in ti.static(range(3)):
        t0 = (box_min[axis] - origin[axis]) * inv_direction[axis]
        t1 = (box_max[axis] - origin[axis]) * inv_direction[axis]
        if inv_direction[axis] < 0.0:
            temp = t0
            t0 = t1
            t1 = temp
        lo = tm.max(lo, t0)
        hi = tm.min(hi, t1)
    return ti.select(lo <= hi, 1, 0), lo, hi


@ti.func
def hit_aabb_signed(query: RayQuery, box_min: vec3, box_max: vec3, t_min: ti.f32, t_max: ti.f32):
    """Interval slab test using the ray's precomputed per-axis signs.

    The near and far corners are selected per axis from query.sign, so no
    swap is needed.

    Returns:
        A tuple (hit, t_enter, t_exit), identical to hit_aabb_interval().
    """
    lo = t_min
    hi = t_max
    for axis in ti.static(range(3)):
        near = ti.select(query.sign[axis] == 1, box_max[axis], box_min[axis])
        far = ti.select(query.sign[axis] == 1, box_min[axis], box_max[axis])
        lo = tm.max(lo, (near - query.origin[axis]) * query.inv_direction[axis])
        hi = tm.min(hi, (far - query.origin[axis]) * query.inv_direction[axis])
    return ti.select(lo <= hi, 1, 0), lo, hi
