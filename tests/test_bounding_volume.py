"""Unit tests for BoundingVolume and the Taichi slab tests.

Tests cover:
- The empty sentinel and its identities under merge
- Merge associativity and commutativity
- Construction from points, containment, centroid and extent
- Host slab test with positive, negative and zero direction components
- Agreement of the three Taichi slab variants with the host slab test
"""

import math

import numpy as np
import pytest
import taichi as ti


class TestBoundingVolumeHost:
    """Tests for the host-side BoundingVolume."""

    def test_empty_is_identity_for_merge(self):
        """merge(empty, B) == B and merge(B, empty) == B."""
        from src.raycore.geometry.aabb import BoundingVolume

        empty = BoundingVolume.empty()
        box = BoundingVolume((0.0, -1.0, 2.0), (1.0, 1.0, 3.0))
        assert empty.is_empty
        assert not box.is_empty
        assert empty.merge(box).isclose(box)
        assert box.merge(empty).isclose(box)
        assert empty.merge(empty).is_empty

    def test_merge_commutative_and_associative(self):
        """Merging order and grouping do not matter."""
        from src.raycore.geometry.aabb import BoundingVolume

        rng = np.random.default_rng(3)
        boxes = []
        for _ in range(3):
            lo = rng.uniform(-5.0, 5.0, size=3)
            boxes.append(BoundingVolume(lo, lo + rng.uniform(0.0, 2.0, size=3)))
        a, b, c = boxes
        assert a.merge(b).isclose(b.merge(a))
        assert a.merge(b).merge(c).isclose(a.merge(b.merge(c)))

    def test_merge_contains_inputs(self):
        """The union contains both operands."""
        from src.raycore.geometry.aabb import BoundingVolume

        a = BoundingVolume((0.0, 0.0, 0.0), (1.0, 1.0, 1.0))
        b = BoundingVolume((2.0, -1.0, 0.5), (3.0, 0.5, 4.0))
        union = a.merge(b)
        assert union.contains(a)
        assert union.contains(b)
        assert union.lo == (0.0, -1.0, 0.0)
        assert union.hi == (3.0, 1.0, 4.0)

    def test_from_points(self):
        """from_points gives the tightest enclosing box."""
        from src.raycore.geometry.aabb import BoundingVolume

        box = BoundingVolume.from_points([(1.0, 2.0, 3.0), (-1.0, 5.0, 0.0), (0.0, 0.0, 1.0)])
        assert box.lo == (-1.0, 0.0, 0.0)
        assert box.hi == (1.0, 5.0, 3.0)
        np.testing.assert_allclose(box.centroid(), [0.0, 2.5, 1.5])
        np.testing.assert_allclose(box.extent(), [2.0, 5.0, 3.0])

    def test_empty_centroid_raises(self):
        """Centroid and extent of the sentinel are undefined."""
        from src.raycore.geometry.aabb import BoundingVolume

        with pytest.raises(ValueError, match="empty"):
            BoundingVolume.empty().centroid()
        with pytest.raises(ValueError, match="empty"):
            BoundingVolume.empty().extent()

    def test_inverted_corners_raise(self):
        """min > max on any axis is rejected."""
        from src.raycore.geometry.aabb import BoundingVolume

        with pytest.raises(ValueError, match="exceeds"):
            BoundingVolume((1.0, 0.0, 0.0), (0.0, 1.0, 1.0))

    def test_host_slab_hit_and_miss(self):
        """Rays through, beside and behind the box."""
        from src.raycore.geometry.aabb import BoundingVolume

        box = BoundingVolume((-1.0, -1.0, -1.0), (1.0, 1.0, 1.0))

        hit, t0, t1 = box.intersect_interval((0.0, 0.0, 5.0), (0.0, 0.0, -1.0))
        assert hit
        assert abs(t0 - 4.0) < 1e-9
        assert abs(t1 - 6.0) < 1e-9

        assert not box.intersects((3.0, 0.0, 5.0), (0.0, 0.0, -1.0))
        assert not box.intersects((0.0, 0.0, 5.0), (0.0, 0.0, 1.0))
        # Limited range stops short of the box
        assert not box.intersects((0.0, 0.0, 5.0), (0.0, 0.0, -1.0), t_max=3.0)
        # Origin inside
        hit, t0, _ = box.intersect_interval((0.0, 0.0, 0.0), (1.0, 1.0, 0.0))
        assert hit
        assert t0 == 0.0

    def test_empty_never_hit(self):
        """The sentinel is never intersected."""
        from src.raycore.geometry.aabb import BoundingVolume

        assert not BoundingVolume.empty().intersects((0.0, 0.0, 0.0), (1.0, 0.0, 0.0))


class TestTaichiSlabTests:
    """The boolean, interval and signed slab tests must agree."""

    def test_variants_agree_with_host(self):
        """Random rays against a fixed box give the same answers everywhere."""
        from src.raycore.core.ray import make_ray_query, safe_inverse, vec3
        from src.raycore.geometry.aabb import BoundingVolume, hit_aabb, hit_aabb_interval, hit_aabb_signed

        n = 256
        rng = np.random.default_rng(11)
        origins = rng.uniform(-4.0, 4.0, size=(n, 3)).astype(np.float32)
        targets = rng.uniform(-1.5, 1.5, size=(n, 3)).astype(np.float32)
        directions = (targets - origins).astype(np.float32)
        # A few axis-parallel rays exercise zero components
        directions[:8, 1:] = 0.0

        box = BoundingVolume((-1.0, -0.5, -0.75), (1.0, 0.5, 0.75))
        results = ti.field(dtype=ti.i32, shape=(n, 3))
        enter = ti.field(dtype=ti.f32, shape=(n, 2))

        @ti.kernel
        def test_kernel(
            o: ti.types.ndarray(dtype=ti.f32, ndim=2),
            d: ti.types.ndarray(dtype=ti.f32, ndim=2),
        ):
            bmin = vec3(-1.0, -0.5, -0.75)
            bmax = vec3(1.0, 0.5, 0.75)
            for i in range(n):
                origin = vec3(o[i, 0], o[i, 1], o[i, 2])
                direction = vec3(d[i, 0], d[i, 1], d[i, 2])
                inv = safe_inverse(direction)
                results[i, 0] = hit_aabb(origin, inv, bmin, bmax, 0.0, 1e10)
                hit1, lo1, _hi1 = hit_aabb_interval(origin, inv, bmin, bmax, 0.0, 1e10)
                hit2, lo2, _hi2 = hit_aabb_signed(make_ray_query(origin, direction), bmin, bmax, 0.0, 1e10)
                results[i, 1] = hit1
                results[i, 2] = hit2
                enter[i, 0] = lo1
                enter[i, 1] = lo2

        test_kernel(origins, directions)
        res = results.to_numpy()
        ent = enter.to_numpy()

        for i in range(n):
            host_hit, host_enter, host_exit = box.intersect_interval(
                origins[i].astype(np.float64), directions[i].astype(np.float64), 0.0, math.inf
            )
            # Grazing rays may differ in float32
            if abs(host_exit - host_enter) < 1e-4:
                continue
            assert res[i, 0] == res[i, 1] == res[i, 2] == int(host_hit)
            if host_hit:
                assert abs(ent[i, 0] - ent[i, 1]) < 1e-4
                assert abs(ent[i, 0] - host_enter) < 1e-3 * max(1.0, host_enter)
