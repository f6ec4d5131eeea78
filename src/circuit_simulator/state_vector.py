"""
Dense State-Vector Engine
=========================

Holds the 2^n complex amplitudes of an n-qubit register and mutates them in
place as gates, noise and measurement collapse are applied.

HOW A GATE IS APPLIED
---------------------

A k-qubit gate never becomes a 2^n × 2^n matrix. Instead the amplitude array
is partitioned into groups of 2^k basis states that differ only in the
target bits; the small local unitary U acts on each group independently:

    for every basis index b with all target bits 0 (and all control bits 1):
        group = [b + offset(j) for j in 0 .. 2^k - 1]
        ψ[group] ← U · ψ[group]

For a single-qubit gate the groups are the familiar (|…0…⟩, |…1…⟩) pairs.
Controlled gates simply restrict the base indices to those with every
control bit set; pairs outside the controlled subspace are left untouched.
All groups are gathered with one fancy-indexing operation and updated with
a single matrix product, so the cost is O(2^n) per gate.

NORM INVARIANT
--------------

Unitary evolution preserves ‖ψ‖ = 1 exactly in exact arithmetic. In floating
point the norm drifts slowly; ``renormalize()`` corrects drift beyond
``norm_tolerance`` in place and counts the correction. Drift far beyond the
tolerance signals a bug rather than rounding and is reported with
``NumericalDriftWarning``. Relaxation deliberately shrinks the norm and is
always followed by a renormalisation that is not counted as drift.

MEMORY
------

The register occupies 16·2^n bytes. Registers larger than ``max_qubits``
are rejected with ``InvalidQubitCount`` (see ``constants.MAX_QUBITS``).
"""

import warnings
from typing import FrozenSet, List, Optional, Sequence

import numpy as np

from .circuit import validate_qubit_count
from .constants import MAX_QUBITS, NORM_TOLERANCE, DRIFT_WARNING_THRESHOLD
from .exceptions import NumericalDriftWarning, QubitAlreadyMeasuredError, UnsupportedGate
from .gates import Gate, validate_gate
from .noise_models import NoiseEvent, NoiseModel


def group_indices(num_qubits: int, targets: Sequence[int],
                  controls: Sequence[int] = ()) -> np.ndarray:
    """
    Basis-state groups a local gate acts on.

    Returns
    -------
    np.ndarray
        Integer array of shape (m, 2^k). Row r lists the 2^k basis indices of
        one group; column j has local index j, where bit i of j is the value
        of ``targets[i]``.
    """
    idx = np.arange(1 << num_qubits, dtype=np.int64)
    target_mask = 0
    for t in targets:
        target_mask |= 1 << t
    control_mask = 0
    for c in controls:
        control_mask |= 1 << c
    base = idx[((idx & target_mask) == 0) & ((idx & control_mask) == control_mask)]

    k = len(targets)
    offsets = np.zeros(1 << k, dtype=np.int64)
    for j in range(1 << k):
        for i, t in enumerate(targets):
            if (j >> i) & 1:
                offsets[j] |= 1 << t
    return base[:, None] + offsets[None, :]


def embed_on_first_target(rotation: np.ndarray, num_targets: int) -> np.ndarray:
    """Lift a 2×2 operator on ``targets[0]`` to the local k-qubit space."""
    if num_targets == 1:
        return rotation
    return np.kron(np.eye(1 << (num_targets - 1)), rotation)


class StateVector:
    """
    Amplitudes of an n-qubit register, little-endian (bit q = qubit q).

    Parameters
    ----------
    num_qubits : int
        Register size.
    max_qubits : int
        Capacity ceiling; larger registers raise ``InvalidQubitCount``.
    norm_tolerance : float
        Drift beyond which the state is renormalised.
    drift_warning_threshold : float
        Drift beyond which ``NumericalDriftWarning`` is issued.
    """

    def __init__(self, num_qubits: int, max_qubits: int = MAX_QUBITS,
                 norm_tolerance: float = NORM_TOLERANCE,
                 drift_warning_threshold: float = DRIFT_WARNING_THRESHOLD):
        self.max_qubits = max_qubits
        self.norm_tolerance = norm_tolerance
        self.drift_warning_threshold = drift_warning_threshold
        self.initialize(num_qubits)

    @classmethod
    def from_amplitudes(cls, amplitudes, normalize: bool = True, **kwargs) -> "StateVector":
        amps = np.asarray(amplitudes, dtype=np.complex128).ravel()
        n = int(np.log2(amps.size)) if amps.size else 0
        if amps.size == 0 or (1 << n) != amps.size:
            raise ValueError(f"Amplitude count must be a power of two, got {amps.size}")
        state = cls(n, **kwargs)
        norm = np.linalg.norm(amps)
        if norm == 0:
            raise ValueError("Cannot build a state from the zero vector")
        state._amps[:] = amps / norm if normalize else amps
        return state

    def initialize(self, num_qubits: int) -> None:
        """Allocate |0…0⟩ for ``num_qubits`` qubits, discarding any prior state."""
        self._num_qubits = validate_qubit_count(num_qubits, self.max_qubits)
        self._amps = np.zeros(1 << self._num_qubits, dtype=np.complex128)
        self._amps[0] = 1.0
        self._measured = set()
        self.renormalization_count = 0

    def reset(self) -> None:
        self.initialize(self._num_qubits)

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def num_qubits(self) -> int:
        return self._num_qubits

    @property
    def dimension(self) -> int:
        return self._amps.size

    @property
    def amplitudes(self) -> np.ndarray:
        """Read-only view of the amplitudes."""
        view = self._amps.view()
        view.setflags(write=False)
        return view

    @property
    def measured_qubits(self) -> FrozenSet[int]:
        return frozenset(self._measured)

    def norm(self) -> float:
        return float(np.linalg.norm(self._amps))

    def probabilities(self) -> np.ndarray:
        return np.abs(self._amps) ** 2

    def _bit_view(self, qubit: int) -> np.ndarray:
        # index = high·2^(q+1) + bit·2^q + low  →  axes (high, bit, low)
        return self._amps.reshape(-1, 2, 1 << qubit)

    def probability_of_one(self, qubit: int) -> float:
        ones = self._bit_view(qubit)[:, 1, :]
        return float(np.sum(np.abs(ones) ** 2))

    def copy(self) -> "StateVector":
        other = StateVector.__new__(StateVector)
        other.max_qubits = self.max_qubits
        other.norm_tolerance = self.norm_tolerance
        other.drift_warning_threshold = self.drift_warning_threshold
        other._num_qubits = self._num_qubits
        other._amps = self._amps.copy()
        other._measured = set(self._measured)
        other.renormalization_count = self.renormalization_count
        return other

    # ------------------------------------------------------------------
    # Unitary evolution
    # ------------------------------------------------------------------

    def apply_matrix(self, matrix: np.ndarray, targets: Sequence[int],
                     controls: Sequence[int] = ()) -> None:
        """Apply a 2^k × 2^k local unitary to ``targets`` (pure kernel, no noise)."""
        k = len(targets)
        if matrix.shape != (1 << k, 1 << k):
            raise ValueError(f"Matrix shape {matrix.shape} does not match {k} target(s)")
        groups = group_indices(self._num_qubits, targets, controls)
        self._amps[groups] = self._amps[groups] @ matrix.T

    def apply_gate(self, gate: Gate, noise_model: Optional[NoiseModel] = None,
                   timestamp: float = 0.0) -> List[NoiseEvent]:
        """
        Apply one unitary gate, sampling noise once for this application.

        The gate-error rotation (if any) is folded into the unitary before it
        is committed; dephasing and relaxation act on the result. The state
        is renormalised before returning.

        Returns
        -------
        list of NoiseEvent
            Events triggered by this application, in order.

        Raises
        ------
        UnsupportedGate
            Invalid indices or a MEASURE tag.
        QubitAlreadyMeasuredError
            Gate touches a measured qubit. The state is left unchanged.
        """
        if not gate.is_unitary:
            raise UnsupportedGate(f"{gate} is not unitary; use the measurement engine")
        validate_gate(gate, self._num_qubits)
        for q in gate.qubits:
            if q in self._measured:
                raise QubitAlreadyMeasuredError(q, gate)

        events = []
        matrix = gate.matrix()
        if noise_model is not None:
            sampled = noise_model.sample_gate_error(gate.target, timestamp)
            if sampled is not None:
                rotation, event = sampled
                matrix = embed_on_first_target(rotation, len(gate.targets)) @ matrix
                events.append(event)

        self.apply_matrix(matrix, gate.targets, gate.controls)

        if noise_model is not None:
            dephasing = noise_model.sample_dephasing(gate.target, self._num_qubits, timestamp)
            if dephasing is not None:
                index, phase, event = dephasing
                self.apply_phase(index, phase)
                events.append(event)
            relaxation = noise_model.sample_relaxation(gate.target, timestamp)
            if relaxation is not None:
                damping, event = relaxation
                self.apply_relaxation(gate.target, damping)
                events.append(event)

        self.renormalize()
        return events

    # ------------------------------------------------------------------
    # Noise perturbations
    # ------------------------------------------------------------------

    def apply_phase(self, index: int, phase: float) -> None:
        self._amps[index] *= np.exp(1j * phase)

    def apply_relaxation(self, qubit: int, damping: float) -> None:
        """Scale the |1⟩ branch of ``qubit`` by √(1-γ) and renormalise."""
        if not 0.0 <= damping < 1.0:
            raise ValueError(f"damping must lie in [0, 1), got {damping}")
        self._bit_view(qubit)[:, 1, :] *= np.sqrt(1.0 - damping)
        # A qubit entirely in |1⟩ is left unchanged by the renormalisation.
        self._amps /= np.linalg.norm(self._amps)

    # ------------------------------------------------------------------
    # Measurement support
    # ------------------------------------------------------------------

    def collapse(self, qubit: int, outcome: int) -> None:
        """Project ``qubit`` onto ``outcome``, renormalise and lock the qubit."""
        view = self._bit_view(qubit)
        norm = np.linalg.norm(view[:, outcome, :])
        if norm == 0.0:
            raise ValueError(f"Outcome {outcome} on qubit {qubit} has zero probability")
        view[:, 1 - outcome, :] = 0.0
        self._amps /= norm
        self._measured.add(qubit)

    def renormalize(self) -> bool:
        """
        Restore unit norm if drift exceeds tolerance.

        Returns True when a correction was applied.
        """
        norm = np.linalg.norm(self._amps)
        drift = abs(norm - 1.0)
        if drift <= self.norm_tolerance:
            return False
        if norm == 0.0:
            raise FloatingPointError("State vector norm collapsed to zero")
        if drift > self.drift_warning_threshold:
            warnings.warn(
                f"State norm drifted to {norm:.12f} (|Δ| = {drift:.2e}); "
                f"renormalising in place.",
                NumericalDriftWarning,
            )
        self._amps /= norm
        self.renormalization_count += 1
        return True

    def __repr__(self):
        return (f"StateVector(num_qubits={self._num_qubits}, "
                f"measured={sorted(self._measured)})")
