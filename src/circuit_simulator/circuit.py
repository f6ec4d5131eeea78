"""
Circuit Description
===================

A ``Circuit`` is the caller-owned description of what to run: a name, a
qubit count, an operation mode and an ordered list of gates. Gates are
appended while the circuit is being built; once the circuit is handed to an
engine (``freeze()``), it is immutable.

Circuits can also be built from the Circuit Spec dictionary exchanged with
the job layer::

    {
        "circuit_name": "bell",
        "qubit_count": 2,
        "operation_mode": "standard",
        "gates": [
            {"type": "hadamard", "target_qubit": 0},
            {"type": "cnot", "target_qubit": 1, "control_qubit": 0},
        ],
    }
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, Optional, Sequence

import numpy as np

from .constants import MAX_QUBITS
from .exceptions import InvalidQubitCount, UnsupportedGate
from .gates import Gate, GateType, validate_gate


class OperationMode(str, Enum):
    STANDARD = "standard"
    CONTINUOUS = "continuous"
    FAULT_TOLERANT = "faultTolerant"

    @classmethod
    def parse(cls, value) -> "OperationMode":
        if isinstance(value, cls):
            return value
        key = str(value).replace("_", "").replace("-", "").lower()
        for mode in cls:
            if mode.value.lower() == key:
                return mode
        raise ValueError(
            f"Unknown operation mode: {value!r}. "
            f"Use one of {[m.value for m in cls]}"
        )

    @property
    def rank(self) -> int:
        """Position in the standard → continuous → faultTolerant progression."""
        return list(OperationMode).index(self)


def validate_qubit_count(num_qubits, max_qubits: int = MAX_QUBITS) -> int:
    if isinstance(num_qubits, bool) or not isinstance(num_qubits, (int, np.integer)):
        raise InvalidQubitCount(num_qubits, max_qubits)
    num_qubits = int(num_qubits)
    if num_qubits <= 0 or num_qubits > max_qubits:
        raise InvalidQubitCount(num_qubits, max_qubits)
    return num_qubits


@dataclass
class Circuit:
    name: str
    num_qubits: int
    mode: OperationMode = OperationMode.STANDARD
    gates: Sequence[Gate] = field(default_factory=list)
    _frozen: bool = field(default=False, init=False, repr=False, compare=False)

    def __post_init__(self):
        self.mode = OperationMode.parse(self.mode)
        self.gates = list(self.gates)

    # ------------------------------------------------------------------
    # Building
    # ------------------------------------------------------------------

    def append(self, gate: Gate) -> "Circuit":
        if self._frozen:
            raise RuntimeError(
                f"Circuit '{self.name}' has been handed to an engine and can no "
                f"longer be modified"
            )
        self.gates.append(gate)
        return self

    def add_gate(self, gate_type, target: int, control: Optional[int] = None,
                 control2: Optional[int] = None) -> "Circuit":
        return self.append(Gate(gate_type, target, control, control2))

    def h(self, target: int) -> "Circuit":
        return self.add_gate(GateType.HADAMARD, target)

    def x(self, target: int) -> "Circuit":
        return self.add_gate(GateType.PAULI_X, target)

    def y(self, target: int) -> "Circuit":
        return self.add_gate(GateType.PAULI_Y, target)

    def z(self, target: int) -> "Circuit":
        return self.add_gate(GateType.PAULI_Z, target)

    def s(self, target: int) -> "Circuit":
        return self.add_gate(GateType.PHASE, target)

    def t(self, target: int) -> "Circuit":
        return self.add_gate(GateType.T, target)

    def cnot(self, control: int, target: int) -> "Circuit":
        return self.add_gate(GateType.CNOT, target, control)

    def swap(self, qubit_a: int, qubit_b: int) -> "Circuit":
        return self.add_gate(GateType.SWAP, qubit_a, qubit_b)

    def toffoli(self, control: int, control2: int, target: int) -> "Circuit":
        return self.add_gate(GateType.TOFFOLI, target, control, control2)

    def measure(self, target: int) -> "Circuit":
        return self.add_gate(GateType.MEASURE, target)

    def measure_all(self) -> "Circuit":
        for q in range(self.num_qubits):
            self.measure(q)
        return self

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def freeze(self) -> "Circuit":
        """Lock the circuit; the gate list becomes a tuple snapshot."""
        self.gates = tuple(self.gates)
        self._frozen = True
        return self

    @property
    def is_frozen(self) -> bool:
        return self._frozen

    def validate(self, max_qubits: int = MAX_QUBITS) -> None:
        """Raise ``InvalidQubitCount`` / ``UnsupportedGate`` on structural errors."""
        validate_qubit_count(self.num_qubits, max_qubits)
        for gate in self.gates:
            validate_gate(gate, self.num_qubits)

    @property
    def has_mid_circuit_measurement(self) -> bool:
        return any(g.gate_type is GateType.MEASURE for g in self.gates)

    def copy(self, name: Optional[str] = None) -> "Circuit":
        """Unfrozen copy, e.g. to append further gates to a submitted circuit."""
        return Circuit(name or self.name, self.num_qubits, self.mode, list(self.gates))

    def __len__(self):
        return len(self.gates)

    def __iter__(self) -> Iterator[Gate]:
        return iter(self.gates)

    # ------------------------------------------------------------------
    # Circuit Spec conversion
    # ------------------------------------------------------------------

    @classmethod
    def from_dict(cls, spec: Dict[str, Any]) -> "Circuit":
        """
        Build a circuit from a Circuit Spec dict.

        Accepts ``circuit_name``/``name``, ``qubit_count``/``num_qubits``,
        ``operation_mode``/``mode`` and gates with ``type``,
        ``target_qubit``/``target``, ``control_qubit``/``control`` and
        ``control_qubit_2``/``control2``.
        """
        try:
            name = spec.get("circuit_name", spec.get("name", "circuit"))
            num_qubits = spec.get("qubit_count", spec.get("num_qubits"))
            mode = spec.get("operation_mode", spec.get("mode", OperationMode.STANDARD))
            gate_specs = spec.get("gates", [])
        except AttributeError:
            raise TypeError(f"Circuit spec must be a mapping, got {type(spec).__name__}")

        gates = []
        for i, g in enumerate(gate_specs):
            if "type" not in g:
                raise UnsupportedGate(f"gate {i} of '{name}' has no 'type'")
            gates.append(Gate(
                g["type"],
                g.get("target_qubit", g.get("target")),
                g.get("control_qubit", g.get("control")),
                g.get("control_qubit_2", g.get("control2")),
            ))
        return cls(name, num_qubits, mode, gates)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "circuit_name": self.name,
            "qubit_count": self.num_qubits,
            "operation_mode": self.mode.value,
            "gates": [
                {
                    "type": g.gate_type.value,
                    "target_qubit": g.target,
                    "control_qubit": g.control,
                    "control_qubit_2": g.control2,
                }
                for g in self.gates
            ],
        }
