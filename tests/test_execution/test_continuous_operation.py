"""
Test Suite: Continuous Operation Controller
===========================================

Drives whole runs through the controller and checks metrics bookkeeping,
atom loss and replenishment, error-correction tracking and the incremental
``advance`` entry point.

Test Categories:
1. Noise-free baseline: fidelity, timing, coherence
2. Fidelity accounting per mode
3. Atom loss and replenishment
4. Fault-tolerant threshold tracking
5. Mode state machine
6. Run control: step, advance, cancel, reset, measured qubits
7. Reproducibility and event channel
"""

import warnings

import pytest
import numpy as np

from circuit_simulator.circuit import Circuit, OperationMode
from circuit_simulator.configurations import (
    NoiseParameters,
    get_neutral_atom_noise_parameters,
)
from circuit_simulator.continuous_operation import ContinuousOperationController
from circuit_simulator.error_correction import ErrorCorrectionCode
from circuit_simulator.exceptions import (
    InvalidQubitCount,
    LogicalErrorThresholdExceeded,
    QubitAlreadyMeasuredError,
)
from circuit_simulator.gates import Gate, GateType
from circuit_simulator.noise_models import NoiseEventType


GATE_S = 0.5e-6
MEASURE_S = 10e-6
LATENCY_S = 50e-3


def repeated_h(n_gates, mode=OperationMode.STANDARD, num_qubits=1):
    c = Circuit("repeated-h", num_qubits, mode)
    for i in range(n_gates):
        c.h(i % num_qubits)
    return c


@pytest.fixture
def bell():
    return Circuit("bell", 2).h(0).cnot(0, 1)


@pytest.fixture
def lossy():
    """Every touched atom is lost on every gate."""
    return NoiseParameters(atom_loss_rate=1.0)


# =============================================================================
# CATEGORY 1: NOISE-FREE BASELINE
# =============================================================================

class TestNoiseFreeBaseline:

    @pytest.mark.parametrize("mode", list(OperationMode))
    def test_fidelity_is_exactly_one(self, mode):
        ctrl = ContinuousOperationController(repeated_h(25, mode, 3))
        metrics = ctrl.execute()
        assert metrics.fidelity == 1.0
        assert metrics.noise_event_count == 0

    def test_bell_amplitudes(self, bell):
        ctrl = ContinuousOperationController(bell)
        ctrl.execute()
        s = 1 / np.sqrt(2)
        assert np.allclose(ctrl.state_vector, [s, 0, 0, s])

    def test_execution_time_is_simulated_device_time(self):
        c = repeated_h(3).measure(0)
        metrics = ContinuousOperationController(c).execute()
        assert metrics.execution_time_ms == pytest.approx((3 * GATE_S + MEASURE_S) * 1e3)
        assert metrics.gates_applied == 4

    def test_coherence_equals_elapsed_without_resets(self):
        metrics = ContinuousOperationController(repeated_h(10)).execute()
        assert metrics.coherence_time_seconds == pytest.approx(10 * GATE_S)

    def test_structural_errors_raised_before_run(self):
        with pytest.raises(InvalidQubitCount):
            ContinuousOperationController(Circuit("big", 30))

    def test_accepts_circuit_spec_dict(self):
        spec = {
            "circuit_name": "x",
            "qubit_count": 1,
            "gates": [{"type": "pauliX", "target_qubit": 0}],
        }
        ctrl = ContinuousOperationController(spec)
        ctrl.execute()
        assert ctrl.state_vector[1] == pytest.approx(1.0)

    def test_circuit_is_frozen_on_submission(self, bell):
        ContinuousOperationController(bell)
        with pytest.raises(RuntimeError):
            bell.h(1)

    def test_run_ignores_later_edits_to_submitted_circuit(self, bell):
        ctrl = ContinuousOperationController(bell)
        with pytest.raises(AttributeError):
            bell.gates.append(Gate(GateType.PAULI_X, 7))
        bell.gates = tuple(bell.gates) + (Gate(GateType.PAULI_X, 7),)
        metrics = ctrl.execute()
        assert metrics.gates_applied == 2
        s = 1 / np.sqrt(2)
        assert np.allclose(ctrl.state_vector, [s, 0, 0, s])


# =============================================================================
# CATEGORY 2: FIDELITY ACCOUNTING
# =============================================================================

class TestFidelityAccounting:

    def test_standard_mode_gate_error_product(self):
        noise = NoiseParameters(gate_error_rate=0.01)
        metrics = ContinuousOperationController(repeated_h(10), noise, seed=1).execute()
        assert metrics.fidelity == pytest.approx(0.99 ** 10)

    def test_continuous_correction_factor(self):
        noise = NoiseParameters(continuous_operation_correction=0.99)
        c = repeated_h(10, OperationMode.CONTINUOUS)
        metrics = ContinuousOperationController(c, noise).execute()
        assert metrics.fidelity == pytest.approx(0.99 ** 10)

    def test_correction_ignored_in_standard_mode(self):
        noise = NoiseParameters(continuous_operation_correction=0.5)
        metrics = ContinuousOperationController(repeated_h(10), noise).execute()
        assert metrics.fidelity == 1.0

    def test_measurement_does_not_change_fidelity(self):
        noise = NoiseParameters(gate_error_rate=0.01)
        c = repeated_h(2).measure(0)
        metrics = ContinuousOperationController(c, noise, seed=3).execute()
        assert metrics.fidelity == pytest.approx(0.99 ** 2)

    def test_fault_tolerant_fidelity_uses_configured_rate(self):
        noise = NoiseParameters(gate_error_rate=5e-4, continuous_operation_correction=0.999)
        c = Circuit("ft-x", 1, OperationMode.FAULT_TOLERANT)
        for _ in range(10):
            c.x(0)
        metrics = ContinuousOperationController(c, noise, seed=4).execute()
        assert metrics.fidelity == pytest.approx(((1 - 5e-4) * 0.999) ** 10)

    def test_fault_tolerant_encoding_improves_logical_fidelity(self):
        noise = NoiseParameters(gate_error_rate=1e-4)
        std = ContinuousOperationController(repeated_h(10), noise, seed=4).execute()
        ft = ContinuousOperationController(
            repeated_h(10, OperationMode.FAULT_TOLERANT), noise, seed=4
        ).execute()
        assert ft.fidelity == pytest.approx(std.fidelity)
        assert ft.logical_fidelity == pytest.approx((1 - 1e-5) ** 10)
        assert ft.logical_fidelity > ft.fidelity

    def test_logical_fidelity_matches_outside_fault_tolerant_mode(self):
        noise = NoiseParameters(gate_error_rate=0.01, continuous_operation_correction=0.99)
        metrics = ContinuousOperationController(
            repeated_h(5, OperationMode.CONTINUOUS), noise, seed=2
        ).execute()
        assert metrics.logical_fidelity == pytest.approx(metrics.fidelity)

    def test_fidelity_never_increases(self):
        noise = get_neutral_atom_noise_parameters()
        ctrl = ContinuousOperationController(repeated_h(50, num_qubits=3), noise, seed=5)
        previous = 1.0
        while ctrl.step() is not None:
            assert 0.0 <= ctrl.fidelity <= previous
            previous = ctrl.fidelity


# =============================================================================
# CATEGORY 3: ATOM LOSS AND REPLENISHMENT
# =============================================================================

class TestAtomReplenishment:

    def test_standard_mode_never_replenishes(self, lossy):
        ctrl = ContinuousOperationController(repeated_h(5), lossy)
        ctrl.execute()
        metrics = ctrl.advance(1.0)
        assert metrics.atom_replenishment_count == 0
        assert ctrl.metrics.noise_breakdown()["atomLoss"] == 0

    def test_continuous_gate_waits_for_reload(self, lossy):
        ctrl = ContinuousOperationController(repeated_h(3, OperationMode.CONTINUOUS), lossy)
        metrics = ctrl.execute()
        # second and third gates each wait for the previous loss to be reloaded
        assert metrics.atom_replenishment_count == 2
        assert metrics.elapsed_time_s == pytest.approx(2 * LATENCY_S + GATE_S)
        assert metrics.unavailable_qubits == (0,)

    def test_atom_loss_restarts_coherence_clock(self, lossy):
        ctrl = ContinuousOperationController(repeated_h(3, OperationMode.CONTINUOUS), lossy)
        metrics = ctrl.execute()
        assert metrics.coherence_time_seconds == pytest.approx(GATE_S)

    def test_replenishment_count_is_monotone_under_advance(self, lossy):
        ctrl = ContinuousOperationController(repeated_h(3, OperationMode.CONTINUOUS), lossy)
        counts = [ctrl.atom_replenishment_count]
        for _ in range(30):
            counts.append(ctrl.advance(0.02).atom_replenishment_count)
        assert counts == sorted(counts)
        assert counts[-1] > 2
        assert ctrl.is_complete

    def test_replenishment_events_recorded(self, lossy):
        ctrl = ContinuousOperationController(repeated_h(3, OperationMode.CONTINUOUS), lossy)
        ctrl.execute()
        ctrl.advance(0.2)
        breakdown = ctrl.metrics.noise_breakdown()
        assert breakdown["atomReplenishment"] == ctrl.atom_replenishment_count
        assert breakdown["atomLoss"] >= breakdown["atomReplenishment"]

    def test_idle_without_loss_only_advances_clock(self):
        ctrl = ContinuousOperationController(repeated_h(2, OperationMode.CONTINUOUS))
        metrics = ctrl.advance(1.0)
        assert metrics.elapsed_time_s == pytest.approx(1.0)
        assert metrics.atom_replenishment_count == 0

    def test_fault_tolerant_loss_never_stalls(self, lossy):
        c = repeated_h(3, OperationMode.FAULT_TOLERANT)
        ctrl = ContinuousOperationController(c, lossy)
        metrics = ctrl.execute()
        assert metrics.elapsed_time_s == pytest.approx(3 * GATE_S)
        # one loss per physical atom of the surface-code block
        assert ctrl.metrics.noise_breakdown()["atomLoss"] == 3 * 17
        assert metrics.unavailable_qubits == ()

        metrics = ctrl.advance(LATENCY_S)
        assert metrics.atom_replenishment_count >= 3 * 17


# =============================================================================
# CATEGORY 4: FAULT-TOLERANT THRESHOLD
# =============================================================================

class TestLogicalThreshold:

    def test_threshold_exceeded_above_threshold(self):
        noise = NoiseParameters(gate_error_rate=0.05)
        ctrl = ContinuousOperationController(
            repeated_h(100, OperationMode.FAULT_TOLERANT), noise, seed=6,
        )
        with pytest.warns(LogicalErrorThresholdExceeded):
            metrics = ctrl.execute()
        assert metrics.logical_error_threshold_exceeded
        assert metrics.code == "surface"
        assert metrics.physical_gate_count == 100 * 17
        assert metrics.physical_error_rate > ErrorCorrectionCode.SURFACE.threshold
        # the run continues in degraded mode
        assert metrics.gates_applied == 100

    def test_threshold_not_exceeded_below_threshold(self):
        noise = NoiseParameters(gate_error_rate=1e-4)
        ctrl = ContinuousOperationController(
            repeated_h(100, OperationMode.FAULT_TOLERANT), noise, seed=7,
        )
        with warnings.catch_warnings():
            warnings.simplefilter("error", LogicalErrorThresholdExceeded)
            metrics = ctrl.execute()
        assert not metrics.logical_error_threshold_exceeded

    def test_flag_absent_outside_fault_tolerant_mode(self):
        noise = NoiseParameters(gate_error_rate=0.5)
        metrics = ContinuousOperationController(repeated_h(100), noise, seed=8).execute()
        assert not metrics.logical_error_threshold_exceeded
        assert metrics.code is None
        assert metrics.physical_gate_count == 0

    def test_selected_code(self):
        c = repeated_h(2, OperationMode.FAULT_TOLERANT)
        metrics = ContinuousOperationController(c, code="steane").execute()
        assert metrics.code == "steane"
        assert metrics.physical_gate_count == 2 * 7


# =============================================================================
# CATEGORY 5: MODE STATE MACHINE
# =============================================================================

class TestModeTransitions:

    def test_forward_transitions(self, bell):
        ctrl = ContinuousOperationController(bell)
        assert ctrl.transition_to("continuous") is OperationMode.CONTINUOUS
        assert ctrl.code is None
        assert ctrl.transition_to(OperationMode.FAULT_TOLERANT) is OperationMode.FAULT_TOLERANT
        assert ctrl.code is ErrorCorrectionCode.SURFACE
        assert ctrl.error_tracker is not None

    def test_backward_transition_rejected(self, bell):
        ctrl = ContinuousOperationController(bell)
        ctrl.transition_to("continuous")
        with pytest.raises(ValueError):
            ctrl.transition_to("standard")
        assert ctrl.mode is OperationMode.CONTINUOUS

    def test_transition_with_code(self, bell):
        ctrl = ContinuousOperationController(bell)
        ctrl.transition_to("faultTolerant", code="color")
        assert ctrl.code is ErrorCorrectionCode.COLOR

    def test_same_mode_is_a_no_op(self, bell):
        ctrl = ContinuousOperationController(bell)
        assert ctrl.transition_to("standard") is OperationMode.STANDARD

    def test_transition_mid_run_enables_replenishment(self, lossy):
        ctrl = ContinuousOperationController(repeated_h(4), lossy)
        ctrl.step()
        ctrl.step()
        assert ctrl.atom_replenishment_count == 0
        ctrl.transition_to("continuous")
        ctrl.execute()
        ctrl.advance(LATENCY_S)
        assert ctrl.atom_replenishment_count > 0


# =============================================================================
# CATEGORY 6: RUN CONTROL
# =============================================================================

class TestRunControl:

    def test_measured_qubit_error_is_recoverable(self):
        c = Circuit("m", 2).h(0).measure(0).x(0).h(1)
        ctrl = ContinuousOperationController(c, seed=9)
        ctrl.step()
        ctrl.step()
        before = ctrl.state_vector
        fidelity = ctrl.fidelity

        with pytest.raises(QubitAlreadyMeasuredError):
            ctrl.step()
        assert np.array_equal(ctrl.state_vector, before)
        assert ctrl.fidelity == fidelity
        assert ctrl.gates_applied == 2

        ctrl.execute()
        assert ctrl.is_complete
        assert ctrl.gates_applied == 3
        assert [r.index for r in ctrl.rejected_gates] == [2]

    def test_execute_skips_gate_on_measured_qubit(self):
        c = Circuit("late", 2).measure(0).x(0).x(1)
        ctrl = ContinuousOperationController(c, seed=9)
        metrics = ctrl.execute()
        assert ctrl.is_complete
        assert metrics.gates_applied == 2
        assert metrics.rejected_gate_count == 1
        rejected = ctrl.rejected_gates[0]
        assert rejected.index == 1
        assert rejected.qubit == 0
        assert rejected.gate.gate_type is GateType.PAULI_X
        # x(1) still ran after the rejected x(0)
        assert ctrl.state_vector[2] == pytest.approx(1.0)

    def test_raise_policy_propagates_then_resumes(self):
        c = Circuit("late", 2).measure(0).x(0).x(1)
        ctrl = ContinuousOperationController(c, seed=9, on_measured_qubit="raise")
        with pytest.raises(QubitAlreadyMeasuredError):
            ctrl.execute()
        assert ctrl.gates_applied == 1
        ctrl.execute()
        assert ctrl.is_complete
        assert ctrl.state_vector[2] == pytest.approx(1.0)

    def test_unknown_measured_qubit_policy(self, bell):
        with pytest.raises(ValueError):
            ContinuousOperationController(bell, on_measured_qubit="ignore")

    def test_advance_counts_reload_wait_against_budget(self, lossy):
        ctrl = ContinuousOperationController(repeated_h(2, OperationMode.CONTINUOUS), lossy)
        metrics = ctrl.advance(0.01)
        # the second gate would have to wait for the 50 ms reload
        assert metrics.gates_applied == 1
        assert metrics.elapsed_time_s <= 0.01

        metrics = ctrl.advance(LATENCY_S)
        assert metrics.gates_applied == 2
        assert metrics.elapsed_time_s == pytest.approx(0.01 + LATENCY_S)

    def test_advance_in_small_slices(self):
        ctrl = ContinuousOperationController(repeated_h(4))
        for i in range(8):
            ctrl.advance(GATE_S / 2)
            assert ctrl.gates_applied == (i + 1) // 2
        assert ctrl.is_complete

    def test_advance_rejects_negative_duration(self, bell):
        with pytest.raises(ValueError):
            ContinuousOperationController(bell).advance(-1.0)

    def test_cancel_stops_between_steps(self):
        ctrl = ContinuousOperationController(repeated_h(5))
        ctrl.step()
        ctrl.cancel()
        metrics = ctrl.execute()
        assert ctrl.is_cancelled
        assert metrics.gates_applied == 1
        assert ctrl.step() is None
        assert abs(np.linalg.norm(ctrl.state_vector) - 1.0) < 1e-9

    def test_reset_rewinds_everything(self, bell):
        noise = NoiseParameters(gate_error_rate=0.5)
        ctrl = ContinuousOperationController(bell, noise, seed=10)
        ctrl.execute()
        ctrl.reset()
        assert ctrl.gates_applied == 0
        assert ctrl.fidelity == 1.0
        assert ctrl.noise_events == ()
        assert ctrl.elapsed_time_s == 0.0
        assert ctrl.state_vector[0] == 1.0
        assert ctrl.pending_gates == 2


# =============================================================================
# CATEGORY 7: REPRODUCIBILITY AND EVENTS
# =============================================================================

class TestReproducibility:

    @pytest.fixture
    def noisy(self):
        return NoiseParameters(
            dephasing_rate=0.2, relaxation_rate=0.2,
            gate_error_rate=0.2, atom_loss_rate=0.05,
        )

    def test_same_seed_same_trajectory(self, noisy):
        def run():
            c = repeated_h(40, OperationMode.CONTINUOUS, 3).measure(1)
            ctrl = ContinuousOperationController(c, noisy, seed=123)
            ctrl.execute()
            return ctrl

        a, b = run(), run()
        assert np.array_equal(a.state_vector, b.state_vector)
        assert a.noise_events == b.noise_events
        assert a.measurements == b.measurements
        assert a.metrics.snapshot() == b.metrics.snapshot()

    def test_different_seed_different_events(self, noisy):
        c1 = repeated_h(40, OperationMode.CONTINUOUS, 3)
        c2 = repeated_h(40, OperationMode.CONTINUOUS, 3)
        a = ContinuousOperationController(c1, noisy, seed=1)
        b = ContinuousOperationController(c2, noisy, seed=2)
        a.execute()
        b.execute()
        assert a.noise_events != b.noise_events

    def test_listeners_receive_every_event(self, noisy):
        received = []
        ctrl = ContinuousOperationController(repeated_h(20, OperationMode.CONTINUOUS), noisy, seed=11)
        ctrl.subscribe(received.append)
        ctrl.execute()
        assert received == list(ctrl.noise_events)
        assert len(received) > 0

    def test_unsubscribe(self, noisy):
        received = []
        ctrl = ContinuousOperationController(repeated_h(20), noisy, seed=12)
        listener = ctrl.subscribe(received.append)
        ctrl.unsubscribe(listener)
        ctrl.execute()
        assert received == []

    def test_event_timestamps_are_ordered_by_gate(self, noisy):
        ctrl = ContinuousOperationController(repeated_h(30), noisy, seed=13)
        ctrl.execute()
        stamps = [e.timestamp for e in ctrl.noise_events
                  if e.event_type is not NoiseEventType.ATOM_REPLENISHMENT]
        assert stamps == sorted(stamps)
