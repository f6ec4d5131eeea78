"""
Stochastic Noise Model
======================

Every gate application is one noise "tick". During a tick each channel is
sampled independently against its configured rate; a channel that fires
produces a perturbation for the state-vector engine to apply and a
``NoiseEvent`` for the run's history.

NOISE CHANNELS
--------------

1. **Gate error** (gate_error_rate)
   The just-applied unitary is multiplied by a small random SU(2) rotation

       R(θ, n) = exp(-i θ/2 · n·σ),   θ ~ U(0, θ_max),  n uniform on S²

   on its target qubit before it is committed. R is unitary, so the norm is
   untouched.

2. **Dephasing** (dephasing_rate, T2-type)
   One basis amplitude whose target bit is 1 picks up a phase e^{iφ},
   φ ~ U(-φ_max, φ_max). Populations do not change.

3. **Relaxation** (relaxation_rate, T1-type)
   Amplitudes with the target bit set are scaled by √(1-γ),
   γ ~ U(0, γ_max); the engine renormalises afterwards, which moves weight
   toward |0⟩ on that qubit.

4. **Atom loss** (atom_loss_rate, continuous and fault-tolerant modes only)
   A physical atom leaves its trap. The controller marks it unavailable and
   reloads it ``replenishment_latency_s`` later.

The model owns no simulation state. It reads frozen parameters and draws
from the ``numpy.random.Generator`` it is given; the same generator and seed
always yield the same perturbations. Channels with rate 0 do not consume
random numbers, so a noiseless run only draws for measurements.

Magnitudes of triggered events come from ``SimulatorConfig``.
"""

from dataclasses import dataclass, asdict
from enum import Enum
from typing import Dict, List, Optional, Tuple

import numpy as np
from scipy.linalg import expm

from .configurations import NoiseParameters, SimulatorConfig


# Pauli basis for rotation generators
PAULI_X = np.array([[0, 1], [1, 0]], dtype=np.complex128)
PAULI_Y = np.array([[0, -1j], [1j, 0]], dtype=np.complex128)
PAULI_Z = np.array([[1, 0], [0, -1]], dtype=np.complex128)


class NoiseEventType(str, Enum):
    DEPHASING = "dephasing"
    RELAXATION = "relaxation"
    GATE_ERROR = "gateError"
    ATOM_LOSS = "atomLoss"
    ATOM_REPLENISHMENT = "atomReplenishment"

    @property
    def resets_coherence(self) -> bool:
        return self in (NoiseEventType.RELAXATION, NoiseEventType.ATOM_LOSS)


@dataclass(frozen=True)
class NoiseEvent:
    """
    One entry of the append-only noise history.

    Attributes
    ----------
    timestamp : float
        Simulated time of the event (s since the start of the run).
    qubit : int
        Logical qubit index affected.
    event_type : NoiseEventType
    magnitude : float
        Channel-specific strength: phase (rad) for dephasing, damping γ for
        relaxation, rotation angle θ (rad) for gate errors, reload latency (s)
        for atom loss, 1.0 for replenishment.
    """
    timestamp: float
    qubit: int
    event_type: NoiseEventType
    magnitude: float

    def to_dict(self) -> Dict[str, object]:
        d = asdict(self)
        d["type"] = self.event_type.value
        del d["event_type"]
        return d


def random_rotation(angle: float, axis: np.ndarray) -> np.ndarray:
    """SU(2) rotation exp(-i·angle/2·(n·σ)) about a unit axis."""
    axis = np.asarray(axis, dtype=float)
    axis = axis / np.linalg.norm(axis)
    generator = axis[0] * PAULI_X + axis[1] * PAULI_Y + axis[2] * PAULI_Z
    return expm(-0.5j * angle * generator)


def basis_index_with_bit(k: int, qubit: int) -> int:
    """k-th basis index (in ascending order) whose ``qubit`` bit is 1."""
    low = k & ((1 << qubit) - 1)
    high = k >> qubit
    return (high << (qubit + 1)) | (1 << qubit) | low


def logical_error_rate(physical_rate: float, threshold: float, distance: int,
                       prefactor: float) -> float:
    """
    Below-threshold suppression p_L = A·(p/p_th)^((d+1)/2).

    Never returns more than the physical rate; at or above threshold the code
    provides no suppression and ``physical_rate`` is returned.
    """
    if physical_rate <= 0.0:
        return 0.0
    if physical_rate >= threshold:
        return physical_rate
    exponent = (distance + 1) / 2
    return min(physical_rate, prefactor * (physical_rate / threshold) ** exponent)


class NoiseModel:
    """
    Samples noise events for gate ticks.

    Parameters
    ----------
    parameters : NoiseParameters
        Channel rates. Read-only.
    rng : np.random.Generator
        Random source, normally shared with the measurement engine of the
        same run so that a single seed fixes the whole trajectory.
    config : SimulatorConfig, optional
        Event magnitude bounds; defaults to ``SimulatorConfig()``.
    """

    def __init__(self, parameters: NoiseParameters, rng: np.random.Generator,
                 config: Optional[SimulatorConfig] = None):
        self._parameters = parameters
        self._rng = rng
        self._config = config or SimulatorConfig()

    @property
    def parameters(self) -> NoiseParameters:
        return self._parameters

    @property
    def config(self) -> SimulatorConfig:
        return self._config

    def with_parameters(self, parameters: NoiseParameters) -> "NoiseModel":
        """Model with different rates sharing this model's random source."""
        return NoiseModel(parameters, self._rng, self._config)

    def _fires(self, rate: float) -> bool:
        return rate > 0.0 and self._rng.random() < rate

    # ------------------------------------------------------------------
    # Per-tick channels
    # ------------------------------------------------------------------

    def sample_gate_error(self, qubit: int, timestamp: float
                          ) -> Optional[Tuple[np.ndarray, NoiseEvent]]:
        """Over-rotation to fold into the gate before commit, or None."""
        if not self._fires(self._parameters.gate_error_rate):
            return None
        angle = self._rng.uniform(0.0, self._config.gate_error_max_angle)
        axis = self._rng.normal(size=3)
        while np.linalg.norm(axis) < 1e-12:
            axis = self._rng.normal(size=3)
        rotation = random_rotation(angle, axis)
        return rotation, NoiseEvent(timestamp, qubit, NoiseEventType.GATE_ERROR, float(angle))

    def sample_dephasing(self, qubit: int, num_qubits: int, timestamp: float
                         ) -> Optional[Tuple[int, float, NoiseEvent]]:
        """(basis index, phase, event) or None."""
        if not self._fires(self._parameters.dephasing_rate):
            return None
        k = int(self._rng.integers(2 ** (num_qubits - 1)))
        index = basis_index_with_bit(k, qubit)
        bound = self._config.dephasing_max_phase
        phase = float(self._rng.uniform(-bound, bound))
        return index, phase, NoiseEvent(timestamp, qubit, NoiseEventType.DEPHASING, phase)

    def sample_relaxation(self, qubit: int, timestamp: float
                          ) -> Optional[Tuple[float, NoiseEvent]]:
        """(damping γ, event) or None."""
        if not self._fires(self._parameters.relaxation_rate):
            return None
        damping = float(self._rng.uniform(0.0, self._config.relaxation_max_damping))
        return damping, NoiseEvent(timestamp, qubit, NoiseEventType.RELAXATION, damping)

    def sample_atom_loss(self, qubit: int, timestamp: float,
                         atoms: int = 1) -> List[NoiseEvent]:
        """
        One ``ATOM_LOSS`` event per atom lost out of ``atoms`` physical atoms
        backing ``qubit``.
        """
        rate = self._parameters.atom_loss_rate
        if rate <= 0.0 or atoms <= 0:
            return []
        if atoms == 1:
            lost = 1 if self._rng.random() < rate else 0
        else:
            lost = int(self._rng.binomial(atoms, rate))
        latency = self._config.replenishment_latency_s
        return [
            NoiseEvent(timestamp, qubit, NoiseEventType.ATOM_LOSS, latency)
            for _ in range(lost)
        ]

    def sample_physical_errors(self, physical_gates: int) -> int:
        """Number of faulty gates among ``physical_gates`` physical operations."""
        p = self._parameters.physical_error_probability
        if p <= 0.0 or physical_gates <= 0:
            return 0
        return int(self._rng.binomial(physical_gates, p))
