"""
Configuration Dataclasses for Circuit Simulations
==================================================

Simulation parameters are grouped into two read-only containers:

1. **NoiseParameters** - the stochastic rates of the noise model. Every field
   is a probability (or multiplicative factor) in [0, 1] and is applied once
   per gate-application tick.

2. **SimulatorConfig** - engine limits and the timing / noise-magnitude model
   (dense-vector ceiling, norm tolerance, gate and measurement durations,
   atom replenishment latency, ...).

Both are frozen: an engine reads them, it never writes them. Several runs may
therefore share one instance safely. Use ``dataclasses.replace`` (or the
``with_updates`` helpers) to derive a modified copy.

PRESET CONFIGURATIONS
---------------------

- ``get_ideal_noise_parameters()``: every rate 0, correction factor 1
- ``get_neutral_atom_noise_parameters()``: typical Rydberg-array rates
- ``get_continuous_operation_noise_parameters()``: neutral-atom rates with
  atom loss and the continuous-operation correction factor active
- ``get_default_simulator_config()``: defaults from ``constants.py``

The preset rates are calibration values chosen to reproduce the reference
average fidelity in ``constants.AVERAGE_FIDELITY``; they are not derived from
first principles and should be re-fitted against measured data before being
used to make hardware claims.
"""

from dataclasses import dataclass, replace, asdict
from typing import Dict

from .constants import (
    NORM_TOLERANCE,
    DRIFT_WARNING_THRESHOLD,
    MAX_QUBITS,
    GATE_DURATION_S,
    MEASUREMENT_DURATION_S,
    REPLENISHMENT_LATENCY_S,
    REPLENISHMENT_CYCLE_S,
    DEPHASING_MAX_PHASE,
    RELAXATION_MAX_DAMPING,
    GATE_ERROR_MAX_ANGLE,
    MIN_THRESHOLD_SAMPLES,
    AVERAGE_FIDELITY,
)


# =============================================================================
# NOISE PARAMETERS
# =============================================================================

@dataclass(frozen=True)
class NoiseParameters:
    """
    Per-tick noise probabilities.

    Attributes
    ----------
    dephasing_rate : float
        Probability that a gate tick applies a random relative phase to one
        basis amplitude (T2-type).
    relaxation_rate : float
        Probability that a gate tick biases the target qubit toward |0⟩
        (T1-type).
    gate_error_rate : float
        Probability that the applied unitary is over-rotated before commit.
        Also the per-gate fidelity loss factor.
    atom_loss_rate : float
        Probability that a physical atom is lost during a tick. Only active
        in continuous and fault-tolerant operation.
    continuous_operation_correction : float
        Multiplicative per-gate fidelity factor applied outside standard
        mode. 1.0 means replenishment costs no fidelity.
    """
    dephasing_rate: float = 0.0
    relaxation_rate: float = 0.0
    gate_error_rate: float = 0.0
    atom_loss_rate: float = 0.0
    continuous_operation_correction: float = 1.0

    def __post_init__(self):
        for name, value in asdict(self).items():
            if not 0.0 <= float(value) <= 1.0:
                raise ValueError(f"{name} must lie in [0, 1], got {value}")

    @property
    def is_noiseless(self) -> bool:
        """True when no stochastic noise channel can trigger."""
        return (
            self.dephasing_rate == 0.0
            and self.relaxation_rate == 0.0
            and self.gate_error_rate == 0.0
            and self.atom_loss_rate == 0.0
        )

    @property
    def physical_error_probability(self) -> float:
        """Probability that at least one Pauli-type channel fires on a gate."""
        survive = (
            (1.0 - self.dephasing_rate)
            * (1.0 - self.relaxation_rate)
            * (1.0 - self.gate_error_rate)
        )
        return 1.0 - survive

    def with_updates(self, **changes) -> "NoiseParameters":
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


# =============================================================================
# ENGINE CONFIGURATION
# =============================================================================

@dataclass(frozen=True)
class SimulatorConfig:
    """
    Engine limits, timing model and noise-event magnitudes.

    Attributes
    ----------
    max_qubits : int
        Dense state-vector ceiling. Memory is 16·2^n bytes.
    norm_tolerance : float
        Renormalise when |‖ψ‖ - 1| exceeds this.
    drift_warning_threshold : float
        Issue ``NumericalDriftWarning`` when unexplained drift exceeds this.
    gate_duration_s, measurement_duration_s : float
        Simulated time per unitary gate / per measurement.
    replenishment_latency_s : float
        Time from atom loss until the site is reloaded.
    replenishment_cycle_s : float
        Granularity of idle continuous operation in ``advance()``.
    dephasing_max_phase, relaxation_max_damping, gate_error_max_angle : float
        Upper bounds of the uniformly drawn event magnitudes.
    min_threshold_samples : int
        Physical gates needed before the empirical error rate is compared
        to the error-correction threshold.
    """
    max_qubits: int = MAX_QUBITS
    norm_tolerance: float = NORM_TOLERANCE
    drift_warning_threshold: float = DRIFT_WARNING_THRESHOLD
    gate_duration_s: float = GATE_DURATION_S
    measurement_duration_s: float = MEASUREMENT_DURATION_S
    replenishment_latency_s: float = REPLENISHMENT_LATENCY_S
    replenishment_cycle_s: float = REPLENISHMENT_CYCLE_S
    dephasing_max_phase: float = DEPHASING_MAX_PHASE
    relaxation_max_damping: float = RELAXATION_MAX_DAMPING
    gate_error_max_angle: float = GATE_ERROR_MAX_ANGLE
    min_threshold_samples: int = MIN_THRESHOLD_SAMPLES

    def __post_init__(self):
        if self.max_qubits < 1:
            raise ValueError(f"max_qubits must be >= 1, got {self.max_qubits}")
        if self.norm_tolerance <= 0:
            raise ValueError("norm_tolerance must be positive")
        for name in ("gate_duration_s", "measurement_duration_s",
                     "replenishment_latency_s", "replenishment_cycle_s"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")
        if not 0.0 <= self.relaxation_max_damping < 1.0:
            raise ValueError("relaxation_max_damping must lie in [0, 1)")

    @property
    def max_state_bytes(self) -> int:
        """Memory needed by a register at the ceiling."""
        return 16 * 2 ** self.max_qubits

    def with_updates(self, **changes) -> "SimulatorConfig":
        return replace(self, **changes)


# =============================================================================
# PRESETS
# =============================================================================

def get_ideal_noise_parameters() -> NoiseParameters:
    """All noise channels off; fidelity stays exactly 1.0."""
    return NoiseParameters()


def get_neutral_atom_noise_parameters() -> NoiseParameters:
    """
    Typical rates for a Rydberg atom array in standard operation.

    gate_error_rate is 1 - AVERAGE_FIDELITY (0.15 %), roughly the measured
    two-qubit infidelity of current neutral-atom CZ gates.
    """
    return NoiseParameters(
        dephasing_rate=1e-3,
        relaxation_rate=5e-4,
        gate_error_rate=round(1.0 - AVERAGE_FIDELITY, 6),
        atom_loss_rate=0.0,
        continuous_operation_correction=1.0,
    )


def get_continuous_operation_noise_parameters() -> NoiseParameters:
    """Neutral-atom rates with atom loss and a replenishment fidelity cost."""
    return get_neutral_atom_noise_parameters().with_updates(
        atom_loss_rate=1e-4,
        continuous_operation_correction=0.9999,
    )


def get_default_simulator_config() -> SimulatorConfig:
    return SimulatorConfig()
