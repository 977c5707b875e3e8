"""Unit tests for ray utilities.

Tests cover:
- Ray construction
- Reflection about a normal
- Refraction (straight-through, Snell's law, total internal reflection)
- Safe inverse direction and RayQuery signs
- Orthonormal basis construction
"""

import math

import taichi as ti


class TestRayBasics:
    """Tests for Ray construction."""

    def test_make_ray(self):
        """make_ray stores the origin and direction unchanged."""
        from src.raycore.core.ray import make_ray, vec3

        origin = ti.field(dtype=ti.math.vec3, shape=())
        direction = ti.field(dtype=ti.math.vec3, shape=())

        @ti.kernel
        def test_kernel():
            ray = make_ray(vec3(1.0, 2.0, 3.0), vec3(0.0, 0.0, -1.0))
            origin[None] = ray.origin
            direction[None] = ray.direction

        test_kernel()
        assert origin.to_numpy().tolist() == [1.0, 2.0, 3.0]
        assert direction.to_numpy().tolist() == [0.0, 0.0, -1.0]


class TestReflectRefract:
    """Tests for reflect() and refract()."""

    def test_reflect_at_45_degrees(self):
        """d - 2(N.d)N mirrors the normal component."""
        from src.raycore.core.ray import reflect, vec3

        result = ti.field(dtype=ti.math.vec3, shape=())

        @ti.kernel
        def test_kernel():
            d = ti.math.normalize(vec3(1.0, -1.0, 0.0))
            result[None] = reflect(d, vec3(0.0, 1.0, 0.0))

        test_kernel()
        r = result[None]
        s = 1.0 / math.sqrt(2.0)
        assert abs(r[0] - s) < 1e-6
        assert abs(r[1] - s) < 1e-6
        assert abs(r[2]) < 1e-6

    def test_refract_normal_incidence_is_straight(self):
        """At normal incidence the direction does not bend."""
        from src.raycore.core.ray import refract, vec3

        result = ti.field(dtype=ti.math.vec3, shape=())
        ok = ti.field(dtype=ti.i32, shape=())

        @ti.kernel
        def test_kernel():
            direction, refracted = refract(vec3(0.0, 0.0, -1.0), vec3(0.0, 0.0, 1.0), 1.0 / 1.5)
            result[None] = direction
            ok[None] = refracted

        test_kernel()
        assert ok[None] == 1
        d = result[None]
        assert abs(d[0]) < 1e-6
        assert abs(d[1]) < 1e-6
        assert abs(d[2] + 1.0) < 1e-6

    def test_refract_follows_snell(self):
        """sin(theta_t) = eta * sin(theta_i) entering a denser medium."""
        from src.raycore.core.ray import refract, vec3

        result = ti.field(dtype=ti.math.vec3, shape=())

        @ti.kernel
        def test_kernel():
            incident = ti.math.normalize(vec3(1.0, -1.0, 0.0))
            direction, _ok = refract(incident, vec3(0.0, 1.0, 0.0), 1.0 / 1.5)
            result[None] = direction

        test_kernel()
        d = result[None]
        sin_t = abs(d[0])
        expected = (1.0 / 1.5) * math.sin(math.radians(45.0))
        assert abs(sin_t - expected) < 1e-5
        assert d[1] < 0.0
        assert abs(d[0] ** 2 + d[1] ** 2 + d[2] ** 2 - 1.0) < 1e-5

    def test_total_internal_reflection(self):
        """Leaving glass at a steep angle refracts nothing."""
        from src.raycore.core.ray import refract, vec3

        ok = ti.field(dtype=ti.i32, shape=())
        result = ti.field(dtype=ti.math.vec3, shape=())

        @ti.kernel
        def test_kernel():
            # 60 degrees from the normal, eta = 1.5: sin^2 = 2.25 * 0.75 > 1
            incident = vec3(ti.sin(ti.math.pi / 3.0), -ti.cos(ti.math.pi / 3.0), 0.0)
            direction, refracted = refract(incident, vec3(0.0, 1.0, 0.0), 1.5)
            ok[None] = refracted
            result[None] = direction

        test_kernel()
        assert ok[None] == 0
        d = result[None]
        assert abs(d[0]) + abs(d[1]) + abs(d[2]) == 0.0


class TestRayQuery:
    """Tests for the precomputed slab-test data."""

    def test_inverse_and_sign(self):
        """Negative components set the sign bit; zeros map to a large inverse."""
        from src.raycore.core.ray import make_ray_query, vec3

        inv = ti.field(dtype=ti.math.vec3, shape=())
        sign = ti.field(dtype=ti.math.ivec3, shape=())

        @ti.kernel
        def test_kernel():
            query = make_ray_query(vec3(0.0, 0.0, 0.0), vec3(2.0, -4.0, 0.0))
            inv[None] = query.inv_direction
            sign[None] = query.sign

        test_kernel()
        i = inv[None]
        s = sign[None]
        assert abs(i[0] - 0.5) < 1e-6
        assert abs(i[1] + 0.25) < 1e-6
        assert i[2] > 1e7
        assert (s[0], s[1], s[2]) == (0, 1, 0)

    def test_build_onb_is_orthonormal(self):
        """Tangent, bitangent and normal are unit length and orthogonal."""
        from src.raycore.core.ray import build_onb_from_normal, vec3

        dots = ti.field(dtype=ti.f32, shape=3)
        lengths = ti.field(dtype=ti.f32, shape=3)

        @ti.kernel
        def test_kernel():
            n = ti.math.normalize(vec3(0.3, -0.5, 0.8))
            t, b, w = build_onb_from_normal(n)
            dots[0] = ti.math.dot(t, b)
            dots[1] = ti.math.dot(t, w)
            dots[2] = ti.math.dot(b, w)
            lengths[0] = ti.math.length(t)
            lengths[1] = ti.math.length(b)
            lengths[2] = ti.math.length(w)

        test_kernel()
        for k in range(3):
            assert abs(dots[k]) < 1e-5
            assert abs(lengths[k] - 1.0) < 1e-5
