"""
Measurement Engine
==================

Born-rule sampling with collapse.

For a qubit q:

    P(1) = Σ |ψ_b|²  over basis states b with bit q = 1
    P(0) = 1 - P(1)

One uniform sample u ∈ [0, 1) decides the outcome: **1 if u < P(1), else 0**.
The amplitudes inconsistent with the outcome are zeroed, the rest are
renormalised, and the outcome is recorded. A recorded outcome is final for
the rest of the run: measuring the qubit again returns it without drawing,
and unitary gates on it raise ``QubitAlreadyMeasuredError``.

``measure_all()`` always walks qubits in ascending index order, since every
collapse changes the conditional probabilities of the qubits after it.

Shot statistics (``sample_counts``) draw bitstrings from the joint Born
distribution |ψ_b|² of the current state, which is the same distribution
ascending sequential measurement of fresh copies would produce. Bitstrings
are written qubit 0 first: "01" means qubit 0 → 0, qubit 1 → 1.
"""

from typing import Dict, Tuple

import numpy as np

from .exceptions import UnsupportedGate
from .state_vector import StateVector


def bitstring(index: int, num_qubits: int) -> str:
    """Basis index → outcome string, qubit 0 first."""
    return "".join("1" if (index >> q) & 1 else "0" for q in range(num_qubits))


def marginal_counts(counts: Dict[str, int]) -> Dict[int, Dict[int, int]]:
    """Per-qubit outcome counts ``{qubit: {0: c0, 1: c1}}`` from bitstring counts."""
    marginals: Dict[int, Dict[int, int]] = {}
    for bits, count in counts.items():
        for q, ch in enumerate(bits):
            per_qubit = marginals.setdefault(q, {0: 0, 1: 0})
            per_qubit[int(ch)] += count
    return marginals


class MeasurementEngine:
    """
    Measures qubits of one ``StateVector``.

    Parameters
    ----------
    state : StateVector
        Register to measure (collapsed in place).
    rng : np.random.Generator
        Random source; share it with the run's noise model for
        seed-level reproducibility.
    """

    def __init__(self, state: StateVector, rng: np.random.Generator):
        self._state = state
        self._rng = rng
        self._results: Dict[int, int] = {}

    @property
    def results(self) -> Dict[int, int]:
        """Recorded outcomes, qubit → 0/1 (a copy)."""
        return dict(self._results)

    def is_measured(self, qubit: int) -> bool:
        return qubit in self._results

    def reset(self) -> None:
        self._results.clear()

    def _check_qubit(self, qubit: int) -> None:
        if not 0 <= qubit < self._state.num_qubits:
            raise UnsupportedGate(
                f"qubit index {qubit} out of range for "
                f"{self._state.num_qubits}-qubit register"
            )

    def probabilities(self, qubit: int) -> Tuple[float, float]:
        """(P(0), P(1)) for ``qubit``; always sums to 1."""
        self._check_qubit(qubit)
        p1 = min(max(self._state.probability_of_one(qubit), 0.0), 1.0)
        return 1.0 - p1, p1

    def measure(self, qubit: int) -> int:
        """Measure one qubit, collapsing the state; repeat calls return the record."""
        self._check_qubit(qubit)
        if qubit in self._results:
            return self._results[qubit]

        _, p1 = self.probabilities(qubit)
        outcome = 1 if self._rng.random() < p1 else 0
        self._state.collapse(qubit, outcome)
        self._results[qubit] = outcome
        return outcome

    def measure_all(self) -> Dict[int, int]:
        for q in range(self._state.num_qubits):
            self.measure(q)
        return self.results

    def sample_counts(self, shots: int) -> Dict[str, int]:
        """
        Aggregate ``shots`` draws from the current state's Born distribution.

        The state itself is not collapsed.
        """
        if shots <= 0:
            raise ValueError(f"shots must be positive, got {shots}")
        probs = self._state.probabilities()
        probs = probs / probs.sum()
        draws = self._rng.choice(probs.size, size=shots, p=probs)
        tallies = np.bincount(draws, minlength=probs.size)
        n = self._state.num_qubits
        return {
            bitstring(int(i), n): int(tallies[i])
            for i in np.flatnonzero(tallies)
        }
