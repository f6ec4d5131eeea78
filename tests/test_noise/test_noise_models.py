"""
Test Suite: Stochastic Noise Channels
=====================================

Each channel is exercised at rate 0 (never fires, draws nothing) and at
rate 1 (always fires) so outcomes are deterministic regardless of seed.

Test Categories:
1. Helpers: rotations, basis enumeration, logical suppression
2. Per-channel sampling
3. Noise applied through the state vector
"""

import pytest
import numpy as np

from circuit_simulator.configurations import NoiseParameters, SimulatorConfig
from circuit_simulator.gates import Gate, GateType
from circuit_simulator.noise_models import (
    NoiseEvent,
    NoiseEventType,
    NoiseModel,
    basis_index_with_bit,
    logical_error_rate,
    random_rotation,
)
from circuit_simulator.state_vector import StateVector


def rng_state(rng):
    return rng.bit_generator.state


@pytest.fixture
def always():
    """Every stochastic channel fires on every tick."""
    return NoiseParameters(
        dephasing_rate=1.0,
        relaxation_rate=1.0,
        gate_error_rate=1.0,
        atom_loss_rate=1.0,
    )


# =============================================================================
# CATEGORY 1: HELPERS
# =============================================================================

class TestHelpers:

    def test_rotation_is_unitary(self):
        R = random_rotation(0.3, [1.0, 2.0, -0.5])
        assert np.allclose(R.conj().T @ R, np.eye(2), atol=1e-12)

    def test_zero_angle_is_identity(self):
        assert np.allclose(random_rotation(0.0, [0, 0, 1]), np.eye(2))

    def test_pi_rotation_about_x_flips(self):
        R = random_rotation(np.pi, [1, 0, 0])
        assert abs(R[1, 0]) == pytest.approx(1.0)

    @pytest.mark.parametrize("n, q", [(3, 0), (3, 1), (3, 2), (4, 2)])
    def test_basis_index_enumeration(self, n, q):
        got = [basis_index_with_bit(k, q) for k in range(2 ** (n - 1))]
        expected = [i for i in range(2 ** n) if (i >> q) & 1]
        assert got == expected

    def test_suppression_below_threshold(self):
        p_l = logical_error_rate(1e-4, 1e-2, 3, 0.1)
        assert p_l == pytest.approx(0.1 * (0.01) ** 2)
        assert p_l < 1e-4

    def test_no_suppression_above_threshold(self):
        assert logical_error_rate(0.05, 1e-2, 3, 0.1) == 0.05

    def test_zero_rate_stays_zero(self):
        assert logical_error_rate(0.0, 1e-2, 3, 0.1) == 0.0


# =============================================================================
# CATEGORY 2: CHANNEL SAMPLING
# =============================================================================

class TestChannelSampling:

    def test_noiseless_model_draws_nothing(self):
        rng = np.random.default_rng(5)
        before = rng_state(rng)
        model = NoiseModel(NoiseParameters(), rng)
        assert model.sample_gate_error(0, 0.0) is None
        assert model.sample_dephasing(0, 3, 0.0) is None
        assert model.sample_relaxation(0, 0.0) is None
        assert model.sample_atom_loss(0, 0.0, atoms=17) == []
        assert model.sample_physical_errors(100) == 0
        assert rng_state(rng) == before

    def test_gate_error(self, always):
        model = NoiseModel(always, np.random.default_rng(0))
        rotation, event = model.sample_gate_error(1, 2e-6)
        assert np.allclose(rotation.conj().T @ rotation, np.eye(2))
        assert event.event_type is NoiseEventType.GATE_ERROR
        assert event.qubit == 1
        assert event.timestamp == 2e-6
        assert 0.0 <= event.magnitude <= SimulatorConfig().gate_error_max_angle

    def test_dephasing_targets_amplitude_with_bit_set(self, always):
        model = NoiseModel(always, np.random.default_rng(1))
        for _ in range(20):
            index, phase, event = model.sample_dephasing(2, 4, 0.0)
            assert (index >> 2) & 1
            assert abs(phase) <= SimulatorConfig().dephasing_max_phase
            assert event.magnitude == phase

    def test_relaxation_damping_bounds(self, always):
        model = NoiseModel(always, np.random.default_rng(2))
        damping, event = model.sample_relaxation(0, 0.0)
        assert 0.0 <= damping < SimulatorConfig().relaxation_max_damping
        assert event.event_type is NoiseEventType.RELAXATION

    def test_atom_loss_per_physical_atom(self, always):
        model = NoiseModel(always, np.random.default_rng(3))
        events = model.sample_atom_loss(0, 1.0, atoms=17)
        assert len(events) == 17
        assert all(e.event_type is NoiseEventType.ATOM_LOSS for e in events)

    def test_with_parameters_shares_random_source(self, always):
        rng = np.random.default_rng(4)
        model = NoiseModel(NoiseParameters(), rng)
        other = model.with_parameters(always)
        other.sample_relaxation(0, 0.0)
        assert rng_state(rng) != rng_state(np.random.default_rng(4))

    def test_event_to_dict_uses_type_key(self):
        d = NoiseEvent(1.5, 2, NoiseEventType.ATOM_LOSS, 0.05).to_dict()
        assert d == {"timestamp": 1.5, "qubit": 2, "type": "atomLoss", "magnitude": 0.05}

    def test_coherence_reset_types(self):
        assert NoiseEventType.RELAXATION.resets_coherence
        assert NoiseEventType.ATOM_LOSS.resets_coherence
        assert not NoiseEventType.DEPHASING.resets_coherence


# =============================================================================
# CATEGORY 3: NOISE THROUGH THE STATE VECTOR
# =============================================================================

class TestNoisyGateApplication:

    def test_noise_keeps_state_normalised(self, always):
        model = NoiseModel(always, np.random.default_rng(9))
        sv = StateVector(3)
        for q in range(3):
            sv.apply_gate(Gate(GateType.HADAMARD, q), model)
        for _ in range(50):
            sv.apply_gate(Gate(GateType.CNOT, 2, 0), model)
            assert sv.norm() == pytest.approx(1.0, abs=1e-9)

    def test_events_reported_in_order(self, always):
        model = NoiseModel(always, np.random.default_rng(10))
        sv = StateVector(2)
        events = sv.apply_gate(Gate(GateType.HADAMARD, 0), model, timestamp=3e-6)
        assert [e.event_type for e in events] == [
            NoiseEventType.GATE_ERROR,
            NoiseEventType.DEPHASING,
            NoiseEventType.RELAXATION,
        ]
        assert all(e.timestamp == 3e-6 for e in events)

    def test_gate_error_perturbs_result(self):
        params = NoiseParameters(gate_error_rate=1.0)
        model = NoiseModel(params, np.random.default_rng(12))
        noisy = StateVector(1)
        noisy.apply_gate(Gate(GateType.HADAMARD, 0), model)
        ideal = StateVector(1)
        ideal.apply_gate(Gate(GateType.HADAMARD, 0))
        overlap = abs(np.vdot(ideal.amplitudes, noisy.amplitudes)) ** 2
        assert 0.99 < overlap <= 1.0 + 1e-12
        assert not np.allclose(noisy.amplitudes, ideal.amplitudes, atol=1e-12)
