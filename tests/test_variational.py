"""
Test suite for state transition matrix augmentation.

Tests cover:
- Augmented dimension and state naming
- Preservation of the base equations
- Numeric agreement with J @ Phi
- The state-count guards
- Initial condition and splitting helpers
"""

import numpy as np
import pytest

import astromod
from astromod import (
    augment_stm, build_r2bp, build_cr3bp, build_nbp, compile_model,
    stm_initial_conditions, split_stm, stm_dimension, temp_config,
    DynamicsModel, InvalidConfigurationError, get_backend,
)


class TestAugmentation:
    """Test the structure of augmented models."""

    @pytest.mark.parametrize("builder, n", [(build_r2bp, 6), (build_cr3bp, 6)])
    def test_dimension(self, builder, n, backend_name):
        """An n-state model becomes n + n**2 states."""
        model = augment_stm(builder(backend=backend_name))
        assert model.dimension == n + n**2
        assert model.base_dimension == n
        assert model.stm is True

    def test_nbp_two_bodies(self):
        """NBP(2) with STM dynamics has 12 + 144 states."""
        model = build_nbp(2, stm=True)
        assert model.dimension == 156
        assert model.base_dimension == 12
        assert model.body_count == 2

    def test_builder_flag_matches_augment(self):
        """stm=True on a builder equals augmenting the plain model."""
        via_flag = build_r2bp(stm=True)
        via_call = augment_stm(build_r2bp())
        assert via_flag.state_names == via_call.state_names
        backend = via_flag.backend
        assert all(backend.equal(a, b) for a, b in
                   zip(via_flag.equations, via_call.equations))

    def test_base_equations_unchanged(self, backend_name):
        """The first n equations are the base model's, untouched."""
        base = build_cr3bp(backend=backend_name)
        augmented = augment_stm(base)
        backend = base.backend
        assert augmented.state_names[:6] == base.state_names
        for a, b in zip(augmented.equations[:6], base.equations):
            assert backend.equal(a, b)

    def test_simplify_leaves_base_equations(self, backend_name):
        """Simplifying the STM block leaves the base equations alone."""
        backend = get_backend(backend_name)
        x, v, k = backend.symbols("x", "v", "k")
        base = DynamicsModel((x, v), (v, -k * x**3 + 2.0 * x - x),
                             (k,), backend=backend)
        augmented = augment_stm(base, simplify=True)
        assert augmented.dimension == 6
        for a, b in zip(augmented.equations[:2], base.equations):
            assert backend.equal(a, b)

    def test_state_names(self):
        """STM states are named row-major with 1-based indices."""
        names = build_r2bp(stm=True).state_names
        assert names[6] == "phi_1_1"
        assert names[7] == "phi_1_2"
        assert names[12] == "phi_2_1"
        assert names[-1] == "phi_6_6"

    def test_name_collision(self, backend_name):
        """STM names steer clear of existing state names."""
        backend = get_backend(backend_name)
        q, v = backend.symbols("phi_1_1", "v")
        model = DynamicsModel((q, v), (v, -q), backend=backend)
        names = augment_stm(model).state_names
        assert len(names) == 6
        assert len(set(names)) == 6
        assert "_phi_1_1" in names

    def test_parameters_and_kind_carried(self):
        """Parameters, time, kind and name carry over."""
        base = build_cr3bp(name="EarthMoon")
        augmented = augment_stm(base)
        assert augmented.parameter_names == base.parameter_names
        assert augmented.time_name == base.time_name
        assert augmented.kind == base.kind
        assert augmented.name == "EarthMoon"
        assert augment_stm(base, name="other").name == "other"

    def test_keys_differ(self):
        """Augmented models are cached apart from their base model."""
        base = build_r2bp()
        assert augment_stm(base).key != base.key
        assert augment_stm(base).key == augment_stm(base).key


class TestValues:
    """Test numeric behavior of augmented models."""

    @pytest.mark.parametrize("builder, state, params", [
        (build_r2bp, [1.1, 0.4, -0.2, 0.3, 0.9, 0.1], [1.0]),
        (build_cr3bp, [0.6, 0.3, 0.05, 0.1, -0.2, 0.0], [0.0121]),
    ])
    def test_matches_jacobian_product(self, builder, state, params,
                                      backend_name, cache):
        """The STM block evaluates to J(x) @ Phi."""
        base = builder(backend=backend_name)
        f_base = compile_model(base, jacobian=True, cache=cache)
        f_stm = compile_model(augment_stm(base), cache=cache)

        rng = np.random.default_rng(7)
        phi = rng.normal(size=(6, 6))
        u = np.concatenate([state, phi.ravel()])

        du = f_stm(u, params)
        dx, dphi = split_stm(du)
        assert np.allclose(dx, f_base(state, params), rtol=1e-12)
        assert np.allclose(dphi, f_base.jac(state, params) @ phi, rtol=1e-10)

    def test_identity_start(self, cache):
        """With Phi = I the STM derivative is the Jacobian itself."""
        base = build_r2bp()
        f_base = compile_model(base, jacobian=True, cache=cache)
        f_stm = compile_model(augment_stm(base), cache=cache)
        state = [1.0, 0.5, 0.0, 0.0, 1.0, 0.2]
        _, dphi = split_stm(f_stm(stm_initial_conditions(state), [1.0]))
        assert np.allclose(dphi, f_base.jac(state, [1.0]))


class TestGuards:
    """Test the state-count guards."""

    def test_max_states(self):
        """Exceeding max_states raises before building."""
        with pytest.raises(InvalidConfigurationError, match="42 states"):
            augment_stm(build_r2bp(), max_states=41)
        assert augment_stm(build_r2bp(), max_states=42).dimension == 42

    def test_config_budget(self):
        """config.MAX_MODEL_STATES applies when max_states is not given."""
        with temp_config(MAX_MODEL_STATES=100):
            with pytest.raises(InvalidConfigurationError):
                build_nbp(2, stm=True)

    def test_guard_runs_before_differentiation(self, monkeypatch):
        """A rejected model performs no symbolic work."""
        def fail(*args, **kwargs):
            raise AssertionError("differentiated a rejected model")
        monkeypatch.setattr(astromod.variational, "jacobian_of", fail)
        with pytest.raises(InvalidConfigurationError):
            build_nbp(6, stm=True, max_states=1000)

    def test_base_model_budget(self):
        """Plain models also honor max_states."""
        with pytest.raises(InvalidConfigurationError):
            build_nbp(3, max_states=10)

    def test_lenient_mode_warns(self):
        """With STRICT_VALIDATION off the budget only warns."""
        with temp_config(STRICT_VALIDATION=False):
            with pytest.warns(UserWarning, match="exceeds"):
                model = augment_stm(build_r2bp(), max_states=10)
        assert model.dimension == 42

    def test_resource_warning(self):
        """Large models warn about their size."""
        with temp_config(STM_WARNING_STATES=40):
            with pytest.warns(ResourceWarning, match="42 states"):
                augment_stm(build_r2bp())


class TestHelpers:
    """Test stm_initial_conditions and split_stm."""

    def test_stm_dimension(self):
        """n + n**2."""
        assert stm_dimension(6) == 42
        assert stm_dimension(12) == 156
        assert stm_dimension(36) == 1332

    def test_initial_conditions(self):
        """The STM starts at the identity."""
        u0 = stm_initial_conditions([1.0, 2.0, 3.0])
        assert u0.shape == (12,)
        assert np.array_equal(u0[:3], [1.0, 2.0, 3.0])
        assert np.array_equal(u0[3:].reshape(3, 3), np.eye(3))

    def test_split_roundtrip(self):
        """split_stm undoes stm_initial_conditions."""
        state = np.arange(6.0)
        x, phi = split_stm(stm_initial_conditions(state))
        assert np.array_equal(x, state)
        assert np.array_equal(phi, np.eye(6))

    def test_split_explicit_dimension(self):
        """The base dimension can be given explicitly."""
        x, phi = split_stm(np.arange(20.0), n=4)
        assert x.shape == (4,)
        assert phi.shape == (4, 4)
        assert phi[0, 1] == 5.0

    def test_split_bad_length(self):
        """Lengths that are not n + n**2 are rejected."""
        with pytest.raises(ValueError):
            split_stm(np.zeros(10))
        with pytest.raises(ValueError):
            split_stm(np.zeros(42), n=5)

    def test_split_returns_copies(self):
        """Modifying the pieces leaves the input alone."""
        u = stm_initial_conditions([0.0, 0.0])
        x, phi = split_stm(u)
        phi[0, 0] = 5.0
        assert u[2] == 1.0
