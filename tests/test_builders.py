"""
Test suite for the R2BP, CR3BP and NBP model builders.

Tests cover:
- State and parameter layout
- Numeric correctness of the equations of motion
- Simplification and naming options
- Invalid N-body configurations
"""

import numpy as np
import pytest

import astromod
from astromod import (
    build_r2bp, build_cr3bp, build_nbp, compile_model, ModelKind,
    InvalidConfigurationError,
)


def cr3bp_reference(state, mu):
    """Hand-written CR3BP right-hand side for comparison."""
    x, y, z, vx, vy, vz = state
    r1 = np.sqrt((x + mu)**2 + y**2 + z**2)
    r2 = np.sqrt((x - (1 - mu))**2 + y**2 + z**2)
    ax = 2*vy + x - (1 - mu)*(x + mu) / r1**3 - mu*(x - 1 + mu) / r2**3
    ay = -2*vx + y - (1 - mu)*y / r1**3 - mu*y / r2**3
    az = -(1 - mu)*z / r1**3 - mu*z / r2**3
    return np.array([vx, vy, vz, ax, ay, az])


def nbp_reference(state, G, masses):
    """Hand-written N-body accelerations for comparison."""
    N = len(masses)
    r = state[:3 * N].reshape(N, 3)
    a = np.zeros((N, 3))
    for i in range(N):
        for j in range(N):
            if i != j:
                d = r[j] - r[i]
                a[i] += G * masses[j] * d / np.linalg.norm(d)**3
    return np.concatenate([state[3 * N:], a.ravel()])


class TestR2BP:
    """Test the restricted two-body model."""

    def test_layout(self):
        """States and parameters follow the documented order."""
        model = build_r2bp()
        assert model.state_names == ('x', 'y', 'z', 'vx', 'vy', 'vz')
        assert model.parameter_names == ('mu',)
        assert model.kind == ModelKind.R2BP
        assert model.name == "R2BP"

    def test_circular_orbit_point(self, backend_name, cache):
        """At unit radius with mu = 1 the acceleration is -r."""
        model = build_r2bp(backend=backend_name)
        f = compile_model(model, cache=cache)
        dx = f([1.0, 0.0, 0.0, 0.0, 1.0, 0.0], [1.0], 0.0)
        assert np.allclose(dx[:3], [0.0, 1.0, 0.0])
        assert np.allclose(dx[3:], [-1.0, 0.0, 0.0])

    def test_inverse_square_magnitude(self, cache):
        """Acceleration magnitude is mu / r**2 and points inward."""
        f = compile_model(build_r2bp(), cache=cache)
        state = np.array([7000.0, -1200.0, 300.0, 1.0, 7.0, 0.5])
        mu = 3.986004415e5
        a = f(state, [mu], 0.0)[3:]
        r = state[:3]
        assert np.isclose(np.linalg.norm(a), mu / np.dot(r, r), rtol=1e-12)
        assert np.allclose(a / np.linalg.norm(a), -r / np.linalg.norm(r))

    def test_custom_name(self):
        """The name option is used as the model name."""
        assert build_r2bp(name="Earth").name == "Earth"


class TestCR3BP:
    """Test the circular restricted three-body model."""

    def test_layout(self):
        """States and parameters follow the documented order."""
        model = build_cr3bp()
        assert model.state_names == ('x', 'y', 'z', 'vx', 'vy', 'vz')
        assert model.parameter_names == ('mu',)
        assert model.kind == ModelKind.CR3BP

    def test_matches_reference(self, backend_name, cache):
        """Compiled equations match the textbook CR3BP equations."""
        f = compile_model(build_cr3bp(backend=backend_name), cache=cache)
        rng = np.random.default_rng(3)
        mu = 0.01215
        for _ in range(5):
            state = rng.uniform(-1.5, 1.5, 6)
            assert np.allclose(f(state, [mu], 0.0),
                               cr3bp_reference(state, mu), rtol=1e-12)

    def test_zero_mass_ratio_is_rotating_two_body(self, cache):
        """With mu = 0 only two-body gravity plus frame terms remain."""
        f3 = compile_model(build_cr3bp(), cache=cache)
        f2 = compile_model(build_r2bp(), cache=cache)
        state = np.array([0.7, -0.4, 0.2, 0.1, 0.3, -0.05])
        x, y, z, vx, vy, vz = state
        frame = np.array([0.0, 0.0, 0.0, 2*vy + x, -2*vx + y, 0.0])
        assert np.allclose(f3(state, [0.0], 0.0),
                           f2(state, [1.0], 0.0) + frame, rtol=1e-12)

    def test_collinear_point_is_equilibrium(self, cache):
        """The L1 point of the Earth-Moon system has zero acceleration."""
        f = compile_model(build_cr3bp(), cache=cache)
        mu = 0.012150585609624

        # bisect the x-acceleration between the primaries
        def ax(x):
            return cr3bp_reference([x, 0.0, 0.0, 0.0, 0.0, 0.0], mu)[3]

        lo, hi = 0.7, 0.95
        for _ in range(100):
            mid = 0.5 * (lo + hi)
            if ax(lo) * ax(mid) <= 0.0:
                hi = mid
            else:
                lo = mid
        x_L1 = 0.5 * (lo + hi)

        assert x_L1 == pytest.approx(0.8369151257723573, abs=1e-12)
        dx = f([x_L1, 0.0, 0.0, 0.0, 0.0, 0.0], [mu], 0.0)
        assert np.allclose(dx, 0.0, atol=1e-12)


class TestNBP:
    """Test the Newtonian N-body model."""

    def test_two_body_layout(self):
        """Two bodies give 12 states and parameters [G, m1, m2]."""
        model = build_nbp(2)
        assert model.dimension == 12
        assert model.state_names == (
            'x1', 'y1', 'z1', 'x2', 'y2', 'z2',
            'vx1', 'vy1', 'vz1', 'vx2', 'vy2', 'vz2',
        )
        assert model.parameter_names == ('G', 'm1', 'm2')
        assert model.body_count == 2
        assert model.kind == ModelKind.NBP

    @pytest.mark.parametrize("N", [1, 2, 3, 5])
    def test_dimension(self, N):
        """N bodies give 6N states and N + 1 parameters."""
        model = build_nbp(N)
        assert model.dimension == 6 * N
        assert len(model.states) == len(model.equations)
        assert len(model.parameters) == N + 1

    def test_single_body_moves_freely(self, cache):
        """One body has no one to attract it."""
        f = compile_model(build_nbp(1), cache=cache)
        dx = f([1.0, 2.0, 3.0, 0.1, 0.2, 0.3], [1.0, 5.0], 0.0)
        assert np.allclose(dx, [0.1, 0.2, 0.3, 0.0, 0.0, 0.0])

    def test_matches_reference(self, backend_name, cache):
        """Three-body accelerations match a direct pairwise sum."""
        f = compile_model(build_nbp(3, backend=backend_name), cache=cache)
        rng = np.random.default_rng(11)
        state = rng.normal(size=18)
        G, masses = 0.5, np.array([1.0, 2.0, 3.0])
        assert np.allclose(f(state, np.concatenate([[G], masses]), 0.0),
                           nbp_reference(state, G, masses), rtol=1e-12)

    def test_momentum_is_conserved(self, cache):
        """Pairwise forces cancel: sum of m_i a_i is zero."""
        f = compile_model(build_nbp(4), cache=cache)
        rng = np.random.default_rng(5)
        state = rng.normal(size=24)
        masses = np.array([1.0, 0.5, 2.0, 0.1])
        dx = f(state, np.concatenate([[1.0], masses]), 0.0)
        accel = dx[12:].reshape(4, 3)
        assert np.allclose(masses @ accel, 0.0, atol=1e-12)

    @pytest.mark.parametrize("N", [np.int64(2), np.int32(2), np.uint8(2)])
    def test_numpy_integer_body_count(self, N):
        """Numpy integers are valid body counts."""
        model = build_nbp(N)
        assert model.dimension == 12
        assert model.body_count == 2
        assert type(model.body_count) is int
        assert model.key == build_nbp(2).key

    @pytest.mark.parametrize("N", [0, -1, -10])
    def test_nonpositive_body_count(self, N):
        """N < 1 is an invalid configuration."""
        with pytest.raises(InvalidConfigurationError):
            build_nbp(N)

    @pytest.mark.parametrize("N", [2.5, "3", None, True])
    def test_non_integer_body_count(self, N):
        """Body counts must be plain integers."""
        with pytest.raises(InvalidConfigurationError):
            build_nbp(N)

    def test_invalid_count_builds_nothing(self, monkeypatch):
        """Rejection happens before any model is constructed."""
        def fail(*args, **kwargs):
            raise AssertionError("DynamicsModel should not be constructed")
        monkeypatch.setattr(astromod.builders, "DynamicsModel", fail)
        with pytest.raises(InvalidConfigurationError):
            build_nbp(0)


class TestSimplify:
    """Test the simplify option."""

    def test_simplify_keeps_count_and_order(self, backend_name):
        """Simplification never changes equation count or state order."""
        plain = build_r2bp(backend=backend_name, simplify=False)
        simple = build_r2bp(backend=backend_name, simplify=True)
        assert simple.simplified is True
        assert plain.simplified is False
        assert simple.state_names == plain.state_names
        assert len(simple.equations) == len(plain.equations)

    def test_simplify_keeps_values(self, backend_name, cache):
        """Simplified equations evaluate to the same numbers."""
        plain = compile_model(build_r2bp(backend=backend_name), cache=cache)
        simple = compile_model(build_r2bp(backend=backend_name, simplify=True),
                               cache=cache)
        state = [0.3, -1.1, 0.4, 0.2, 0.1, -0.3]
        assert np.allclose(plain(state, [2.5]), simple(state, [2.5]),
                           rtol=1e-12)

    def test_config_default(self):
        """simplify=None follows config.DEFAULT_SIMPLIFY."""
        assert build_r2bp().simplified is False
        with astromod.temp_config(DEFAULT_SIMPLIFY=True):
            assert build_r2bp().simplified is True
