"""
Execution Metrics and Results
=============================

Read-only outputs of a run, consumed by the job, reporting and plotting
layers:

- ``ExecutionMetrics``: a frozen snapshot of fidelity, coherence, timing,
  replenishment and error-correction bookkeeping at one instant.
- ``MetricsAggregator``: a read-only view over a running controller that
  produces snapshots and summarises the noise history. It has no mutating
  methods; a controller hands it out instead of its own internals.
- ``RealTimeNoiseSnapshot``: the live per-qubit noise view (event rates,
  qubit status, replenishment rate) a monitor polls during long runs.
- ``ExecutionResult``: everything a finished ``simulate_circuit`` call
  returns, with ``to_dict()`` for transport (complex amplitudes become
  ``{"real": ..., "imaginary": ...}``).
"""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

from .constants import QUBIT_CRITICAL_EVENT_RATE, QUBIT_DEGRADED_EVENT_RATE
from .gates import Gate
from .noise_models import NoiseEvent, NoiseEventType


@dataclass(frozen=True)
class ExecutionMetrics:
    """
    Snapshot of a run's metrics.

    Attributes
    ----------
    fidelity : float
        Running product of per-gate fidelity factors, in [0, 1], from the
        configured gate-error rate.
    logical_fidelity : float
        Same product from the rate acting on the simulated qubits (the
        code-suppressed rate in fault-tolerant mode).
    coherence_time_seconds : float
        Shortest time any qubit has gone without a relaxation or atom-loss
        event.
    execution_time_ms : float
        Simulated device time consumed so far.
    atom_replenishment_count : int
        Atoms reloaded so far. Never decreases within a run.
    gates_applied : int
        Gates consumed (unitary and measurement).
    elapsed_time_s : float
        Simulated clock, seconds (includes idle continuous operation).
    operation_mode : str
    code : str or None
        Active error-correction code in fault-tolerant mode.
    physical_gate_count : int
        Physical gates executed under encoding.
    physical_error_rate : float
        Empirical physical error rate under encoding.
    logical_error_threshold_exceeded : bool
        Degraded-state flag; set once, never cleared within a run.
    renormalization_count : int
        Floating-point drift corrections applied to the state.
    noise_event_count : int
    rejected_gate_count : int
        Gates skipped because they touched a measured qubit.
    unavailable_qubits : tuple of int
        Qubits whose atom is currently being replenished.
    """
    fidelity: float
    coherence_time_seconds: float
    execution_time_ms: float
    atom_replenishment_count: int
    gates_applied: int = 0
    elapsed_time_s: float = 0.0
    operation_mode: str = "standard"
    code: Optional[str] = None
    physical_gate_count: int = 0
    physical_error_rate: float = 0.0
    logical_error_threshold_exceeded: bool = False
    renormalization_count: int = 0
    noise_event_count: int = 0
    rejected_gate_count: int = 0
    unavailable_qubits: Tuple[int, ...] = ()
    logical_fidelity: float = 1.0

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["unavailable_qubits"] = list(self.unavailable_qubits)
        return d


@dataclass(frozen=True)
class RejectedGate:
    """A gate consumed without effect because it touched a measured qubit."""
    index: int
    gate: Gate
    qubit: int
    timestamp: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "type": self.gate.gate_type.value,
            "qubits": list(self.gate.qubits),
            "measured_qubit": self.qubit,
            "timestamp": self.timestamp,
        }


# =============================================================================
# LIVE NOISE VIEW
# =============================================================================

class QubitStatus(str, Enum):
    OPTIMAL = "optimal"
    DEGRADED = "degraded"
    CRITICAL = "critical"
    REPLENISHING = "replenishing"

    @classmethod
    def classify(cls, event_rate: float, replenishing: bool = False) -> "QubitStatus":
        if replenishing:
            return cls.REPLENISHING
        if event_rate >= QUBIT_CRITICAL_EVENT_RATE:
            return cls.CRITICAL
        if event_rate >= QUBIT_DEGRADED_EVENT_RATE:
            return cls.DEGRADED
        return cls.OPTIMAL


@dataclass(frozen=True)
class QubitNoiseLevel:
    """
    Observed noise on one qubit.

    Rates are events per unitary gate applied to the qubit (0 before its
    first gate).
    """
    dephasing: float
    relaxation: float
    gate_error: float
    gates_applied: int
    coherence_time_s: float
    status: QubitStatus

    @property
    def event_rate(self) -> float:
        return self.dephasing + self.relaxation + self.gate_error

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["status"] = self.status.value
        return d


@dataclass(frozen=True)
class RealTimeNoiseSnapshot:
    """
    Live noise view of a run at simulated time ``timestamp``.

    Attributes
    ----------
    timestamp : float
        Simulated clock (s).
    qubit_noise_map : Dict[int, QubitNoiseLevel]
    overall_fidelity : float
    coherence_remaining : float
        Shortest per-qubit coherence clock as a fraction of elapsed time
        (1.0 at t = 0).
    atom_loss_rate : float
        Atom-loss events per simulated second.
    replenishment_rate : float
        Atom replenishments per simulated second.
    """
    timestamp: float
    qubit_noise_map: Dict[int, QubitNoiseLevel]
    overall_fidelity: float
    coherence_remaining: float
    atom_loss_rate: float
    replenishment_rate: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "qubit_noise_map": {str(q): lvl.to_dict() for q, lvl in self.qubit_noise_map.items()},
            "overall_fidelity": self.overall_fidelity,
            "coherence_remaining": self.coherence_remaining,
            "atom_loss_rate": self.atom_loss_rate,
            "replenishment_rate": self.replenishment_rate,
        }


class MetricsAggregator:
    """
    Read-only metrics view over a ``ContinuousOperationController``.

    The aggregator only reads public properties of the controller, so it
    cannot alter the run it observes.
    """

    def __init__(self, controller):
        self._controller = controller

    def snapshot(self) -> ExecutionMetrics:
        c = self._controller
        tracker = c.error_tracker
        return ExecutionMetrics(
            fidelity=c.fidelity,
            coherence_time_seconds=float(np.min(c.coherence_times)),
            execution_time_ms=c.elapsed_time_s * 1e3,
            atom_replenishment_count=c.atom_replenishment_count,
            gates_applied=c.gates_applied,
            elapsed_time_s=c.elapsed_time_s,
            operation_mode=c.mode.value,
            code=c.code.value if c.code is not None else None,
            physical_gate_count=tracker.physical_gate_count if tracker else 0,
            physical_error_rate=tracker.physical_error_rate if tracker else 0.0,
            logical_error_threshold_exceeded=bool(tracker and tracker.threshold_exceeded),
            renormalization_count=c.renormalization_count,
            noise_event_count=len(c.noise_events),
            rejected_gate_count=len(c.rejected_gates),
            unavailable_qubits=tuple(sorted(c.unavailable_qubits)),
            logical_fidelity=c.logical_fidelity,
        )

    @property
    def noise_events(self) -> Tuple[NoiseEvent, ...]:
        return tuple(self._controller.noise_events)

    @property
    def coherence_times(self) -> np.ndarray:
        """Per-qubit coherence clocks (s), a copy."""
        return np.array(self._controller.coherence_times, dtype=float)

    def events_for_qubit(self, qubit: int) -> List[NoiseEvent]:
        return [e for e in self._controller.noise_events if e.qubit == qubit]

    def noise_breakdown(self) -> Dict[str, int]:
        """Event count per type, every type present (zero if never seen)."""
        breakdown = {t.value: 0 for t in NoiseEventType}
        for event in self._controller.noise_events:
            breakdown[event.event_type.value] += 1
        return breakdown

    def qubit_noise_map(self) -> Dict[int, QubitNoiseLevel]:
        """Per-qubit event rates and status, built from the noise history."""
        c = self._controller
        n = c.circuit.num_qubits
        tracked = (NoiseEventType.DEPHASING, NoiseEventType.RELAXATION, NoiseEventType.GATE_ERROR)
        counts = {t: np.zeros(n, dtype=np.int64) for t in tracked}
        for event in c.noise_events:
            if event.event_type in counts:
                counts[event.event_type][event.qubit] += 1

        gates = c.qubit_gate_counts
        coherence = c.coherence_times
        unavailable = c.unavailable_qubits
        levels = {}
        for q in range(n):
            per_gate = [counts[t][q] / gates[q] if gates[q] else 0.0 for t in tracked]
            levels[q] = QubitNoiseLevel(
                dephasing=float(per_gate[0]),
                relaxation=float(per_gate[1]),
                gate_error=float(per_gate[2]),
                gates_applied=int(gates[q]),
                coherence_time_s=float(coherence[q]),
                status=QubitStatus.classify(sum(per_gate), q in unavailable),
            )
        return levels

    def realtime_snapshot(self) -> RealTimeNoiseSnapshot:
        c = self._controller
        elapsed = c.elapsed_time_s
        breakdown = self.noise_breakdown()
        if elapsed > 0:
            coherence_remaining = float(np.min(c.coherence_times)) / elapsed
            loss_rate = breakdown[NoiseEventType.ATOM_LOSS.value] / elapsed
            replenishment_rate = c.atom_replenishment_count / elapsed
        else:
            coherence_remaining, loss_rate, replenishment_rate = 1.0, 0.0, 0.0
        return RealTimeNoiseSnapshot(
            timestamp=elapsed,
            qubit_noise_map=self.qubit_noise_map(),
            overall_fidelity=c.fidelity,
            coherence_remaining=min(max(coherence_remaining, 0.0), 1.0),
            atom_loss_rate=loss_rate,
            replenishment_rate=replenishment_rate,
        )


def _complex_list(state: np.ndarray) -> List[Dict[str, float]]:
    return [{"real": float(a.real), "imaginary": float(a.imag)} for a in state]


@dataclass
class ExecutionResult:
    """
    Output of ``simulate_circuit``.

    Attributes
    ----------

    Circuit
    ~~~~~~~
    circuit_name : str
    num_qubits : int
    operation_mode : str

    Measurement
    ~~~~~~~~~~~
    measurements : Dict[int, int]
        Outcomes recorded by MEASURE gates in the (first) trajectory.
    counts : Dict[str, int], optional
        Aggregated bitstring counts over ``shots`` (qubit 0 first).
    qubit_counts : Dict[int, Dict[int, int]], optional
        Per-qubit marginal counts ``{qubit: {0: c0, 1: c1}}``.
    shots : int, optional

    Metrics
    ~~~~~~~
    fidelity : float
    execution_time_ms : float
    coherence_time_seconds : float
    atom_replenishment_count : int
    logical_error_threshold_exceeded : bool
    metrics : ExecutionMetrics
        Full snapshot at the end of the run.
    noise_events : List[NoiseEvent]
    rejected_gates : List[RejectedGate]
        Gates skipped because they touched a measured qubit.

    Debug
    ~~~~~
    final_state : np.ndarray, optional
        Amplitudes at the end of the run, if requested.
    ideal_state_fidelity : float, optional
        |⟨ψ_ideal|ψ⟩|² against a noise-free run, if requested.
    seed : int, optional
    wall_time_ms : float
        Host time spent simulating (not part of the physical model).
    """
    circuit_name: str
    num_qubits: int
    operation_mode: str
    measurements: Dict[int, int]
    fidelity: float
    execution_time_ms: float
    coherence_time_seconds: float
    atom_replenishment_count: int
    metrics: ExecutionMetrics
    noise_events: List[NoiseEvent] = field(default_factory=list)
    rejected_gates: List[RejectedGate] = field(default_factory=list)
    counts: Optional[Dict[str, int]] = None
    qubit_counts: Optional[Dict[int, Dict[int, int]]] = None
    shots: Optional[int] = None
    logical_error_threshold_exceeded: bool = False
    final_state: Optional[np.ndarray] = None
    ideal_state_fidelity: Optional[float] = None
    seed: Optional[int] = None
    wall_time_ms: float = 0.0

    def probabilities(self) -> Optional[Dict[str, float]]:
        """Relative frequencies from ``counts``."""
        if not self.counts:
            return None
        total = sum(self.counts.values())
        return {k: v / total for k, v in self.counts.items()}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "circuit_name": self.circuit_name,
            "qubit_count": self.num_qubits,
            "operation_mode": self.operation_mode,
            "measurements": {str(q): v for q, v in self.measurements.items()},
            "counts": self.counts,
            "qubit_counts": (
                {str(q): {str(k): v for k, v in c.items()}
                 for q, c in self.qubit_counts.items()}
                if self.qubit_counts is not None else None
            ),
            "shots": self.shots,
            "fidelity": self.fidelity,
            "execution_time_ms": self.execution_time_ms,
            "coherence_time_seconds": self.coherence_time_seconds,
            "atom_replenishments": self.atom_replenishment_count,
            "logical_error_threshold_exceeded": self.logical_error_threshold_exceeded,
            "noise_events": [e.to_dict() for e in self.noise_events],
            "rejected_gates": [g.to_dict() for g in self.rejected_gates],
            "final_state_vector": (
                _complex_list(self.final_state) if self.final_state is not None else None
            ),
            "ideal_state_fidelity": self.ideal_state_fidelity,
            "metrics": self.metrics.to_dict(),
        }
