"""
Gate Library
============

The gate set is closed and finite: every gate the simulator understands is a
member of ``GateType``, and each tag maps to one local unitary through
``gate_matrix()``. There is no gate class hierarchy to extend; adding a gate
means adding a tag, an entry in ``_GATE_LAYOUT`` and a matrix.

Matrices act on the computational basis {|0⟩, |1⟩}:

    H = (1/√2) [[1,  1], [1, -1]]        X = [[0, 1], [1,  0]]
    Y = [[0, -i], [i, 0]]                Z = [[1, 0], [0, -1]]
    S = [[1, 0], [0, i]]                 T = [[1, 0], [0, e^{iπ/4}]]

Multi-qubit gates are expressed as a small sub-unitary plus control qubits:

    CNOT    : X on the target, conditioned on one control being |1⟩
    Toffoli : X on the target, conditioned on two controls being |1⟩
    SWAP    : 4×4 permutation on (target, control) - the ``control`` field of
              a SWAP holds its second target; SWAP is not controlled

QUBIT ORDERING
--------------

Basis index bit ``q`` is qubit ``q`` (little-endian). For a k-qubit local
matrix acting on ``targets``, local index bit ``i`` is ``targets[i]``.

All functions here are pure; matrices are returned read-only.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple

import numpy as np

from .exceptions import UnsupportedGate


class GateType(str, Enum):
    HADAMARD = "hadamard"
    PAULI_X = "pauliX"
    PAULI_Y = "pauliY"
    PAULI_Z = "pauliZ"
    PHASE = "phase"
    T = "t"
    CNOT = "cnot"
    SWAP = "swap"
    TOFFOLI = "toffoli"
    MEASURE = "measure"

    @property
    def is_unitary(self) -> bool:
        return self is not GateType.MEASURE


# (targets, controls) each tag requires. For SWAP the second target is
# carried in the ``control`` field.
_GATE_LAYOUT: Dict[GateType, Tuple[int, int]] = {
    GateType.HADAMARD: (1, 0),
    GateType.PAULI_X: (1, 0),
    GateType.PAULI_Y: (1, 0),
    GateType.PAULI_Z: (1, 0),
    GateType.PHASE: (1, 0),
    GateType.T: (1, 0),
    GateType.CNOT: (1, 1),
    GateType.SWAP: (2, 0),
    GateType.TOFFOLI: (1, 2),
    GateType.MEASURE: (1, 0),
}

_ALIASES: Dict[str, GateType] = {
    "h": GateType.HADAMARD,
    "x": GateType.PAULI_X,
    "y": GateType.PAULI_Y,
    "z": GateType.PAULI_Z,
    "s": GateType.PHASE,
    "cx": GateType.CNOT,
    "ccx": GateType.TOFFOLI,
    "ccnot": GateType.TOFFOLI,
    "m": GateType.MEASURE,
    "measurement": GateType.MEASURE,
}


# =============================================================================
# MATRICES
# =============================================================================

def _frozen(matrix) -> np.ndarray:
    arr = np.array(matrix, dtype=np.complex128)
    arr.setflags(write=False)
    return arr


_SQRT2_INV = 1.0 / np.sqrt(2.0)

_MATRICES: Dict[GateType, np.ndarray] = {
    GateType.HADAMARD: _frozen([[_SQRT2_INV, _SQRT2_INV], [_SQRT2_INV, -_SQRT2_INV]]),
    GateType.PAULI_X: _frozen([[0, 1], [1, 0]]),
    GateType.PAULI_Y: _frozen([[0, -1j], [1j, 0]]),
    GateType.PAULI_Z: _frozen([[1, 0], [0, -1]]),
    GateType.PHASE: _frozen([[1, 0], [0, 1j]]),
    GateType.T: _frozen([[1, 0], [0, np.exp(1j * np.pi / 4)]]),
    # Controlled gates carry the sub-unitary applied to the target.
    GateType.CNOT: _frozen([[0, 1], [1, 0]]),
    GateType.TOFFOLI: _frozen([[0, 1], [1, 0]]),
    GateType.SWAP: _frozen([
        [1, 0, 0, 0],
        [0, 0, 1, 0],
        [0, 1, 0, 0],
        [0, 0, 0, 1],
    ]),
}


def gate_matrix(gate_type: GateType) -> np.ndarray:
    """
    Local unitary for a gate tag.

    Parameters
    ----------
    gate_type : GateType
        Any unitary tag.

    Returns
    -------
    np.ndarray
        Read-only 2×2 matrix (4×4 for SWAP). For CNOT and Toffoli this is the
        X block applied when all controls are |1⟩.

    Raises
    ------
    UnsupportedGate
        For MEASURE, which has no unitary.
    """
    gate_type = parse_gate_type(gate_type)
    try:
        return _MATRICES[gate_type]
    except KeyError:
        raise UnsupportedGate(f"{gate_type.value} is not a unitary gate") from None


def gate_arity(gate_type: GateType) -> int:
    """Number of qubits a gate touches (targets plus controls)."""
    n_targets, n_controls = _GATE_LAYOUT[parse_gate_type(gate_type)]
    return n_targets + n_controls


def parse_gate_type(name) -> GateType:
    """Resolve a tag, its value (``"cnot"``) or a common alias (``"cx"``)."""
    if isinstance(name, GateType):
        return name
    if isinstance(name, str):
        key = name.strip()
        for gate_type in GateType:
            if key == gate_type.value or key.lower() == gate_type.value.lower():
                return gate_type
            if key.upper() == gate_type.name:
                return gate_type
        if key.lower() in _ALIASES:
            return _ALIASES[key.lower()]
    raise UnsupportedGate(f"Unknown gate type: {name!r}")


# =============================================================================
# GATE RECORD
# =============================================================================

@dataclass(frozen=True)
class Gate:
    """
    One circuit operation.

    Attributes
    ----------
    gate_type : GateType
    target : int
        Target qubit (first target for SWAP).
    control : int, optional
        Control qubit for CNOT/Toffoli, second target for SWAP.
    control2 : int, optional
        Second control for Toffoli.
    """
    gate_type: GateType
    target: int
    control: Optional[int] = None
    control2: Optional[int] = None

    def __post_init__(self):
        object.__setattr__(self, "gate_type", parse_gate_type(self.gate_type))

    @property
    def targets(self) -> Tuple[int, ...]:
        if self.gate_type is GateType.SWAP:
            return (self.target, self.control)
        return (self.target,)

    @property
    def controls(self) -> Tuple[int, ...]:
        if self.gate_type is GateType.SWAP:
            return ()
        return tuple(q for q in (self.control, self.control2) if q is not None)

    @property
    def qubits(self) -> Tuple[int, ...]:
        return self.controls + self.targets

    @property
    def is_unitary(self) -> bool:
        return self.gate_type.is_unitary

    def matrix(self) -> np.ndarray:
        return gate_matrix(self.gate_type)

    def __str__(self):
        name = self.gate_type.name
        if self.gate_type is GateType.SWAP:
            return f"{name}({self.target}, {self.control})"
        if self.controls:
            ctrl = ", ".join(str(c) for c in self.controls)
            return f"{name}(c=[{ctrl}], t={self.target})"
        return f"{name}({self.target})"


def validate_gate(gate: Gate, num_qubits: int) -> None:
    """
    Check a gate against a register size.

    Raises
    ------
    UnsupportedGate
        If an index is out of range or not an integer, a control coincides
        with the target or another control, or the control fields do not
        match the gate's layout.
    """
    n_targets, n_controls = _GATE_LAYOUT[gate.gate_type]
    # SWAP's second target lives in ``control``.
    required_fields = n_controls + (n_targets - 1)
    given = [q for q in (gate.control, gate.control2) if q is not None]

    if gate.control2 is not None and gate.control is None:
        raise UnsupportedGate(f"{gate}: control2 given without control")
    if len(given) != required_fields:
        raise UnsupportedGate(
            f"{gate.gate_type.value} needs {required_fields} control/extra "
            f"qubit(s), got {len(given)}"
        )

    qubits = gate.qubits
    for q in qubits:
        if isinstance(q, bool) or not isinstance(q, (int, np.integer)):
            raise UnsupportedGate(f"{gate}: qubit index {q!r} is not an integer")
        if not 0 <= q < num_qubits:
            raise UnsupportedGate(
                f"{gate}: qubit index {q} out of range for {num_qubits}-qubit register"
            )
    if len(set(qubits)) != len(qubits):
        raise UnsupportedGate(f"{gate}: control and target qubits must be distinct")
