"""
Continuous Operation Controller
===============================

Drives one circuit run: it owns the run's state vector, measurement engine,
noise model, random source, simulated clock and metrics. Nothing is shared
between controllers except read-only configuration, so independent runs can
execute side by side.

OPERATION MODES
---------------

The controller is a forward-only state machine:

    standard  ──►  continuous  ──►  faultTolerant

standard
    Plain noisy execution. No atom loss, no replenishment, no encoding.

continuous
    Long-duration operation of an atom array. Each gate tick may lose the
    atom backing a touched qubit; the site is reloaded after a fixed latency
    and ``atom_replenishment_count`` increments. A gate that needs a qubit
    whose atom is still being reloaded waits for it. Fidelity additionally
    picks up the ``continuous_operation_correction`` factor per gate.

faultTolerant
    Qubits are logical qubits of an error-correction code. Each logical gate
    costs ``physical_per_logical × arity`` physical gates whose faults are
    tracked against the code threshold (see ``error_correction.py``). Lost
    atoms are erasures the code absorbs: they are reloaded and counted but
    never stall the logical qubit.

RUNNING
-------

``execute()`` runs all remaining gates. ``advance(duration_s)`` is the
incremental entry point for long runs: it executes the gates that fit into
the time budget, and once the circuit is exhausted in a non-standard mode it
keeps the array "alive" in replenishment cycles until the budget is used up.
Each call returns an ``ExecutionMetrics`` snapshot, so a caller can drive a
two-hour continuous run in bounded slices and stop (``cancel()``) between any
two of them; the last committed step always leaves a normalised state and
consistent metrics.

METRICS UPDATE PER UNITARY GATE
-------------------------------

    fidelity ← clamp(fidelity · (1 - p) · (c if mode ≠ standard), 0, 1)

where p is the configured ``gate_error_rate`` and c is
``continuous_operation_correction``. ``logical_fidelity`` follows the same
product with p replaced by the rate actually acting on the simulated qubits,
i.e. the code-suppressed logical rate in fault-tolerant mode below threshold
(outside that case the two agree). Per-qubit coherence clocks run with the
simulated time and restart on relaxation and atom-loss events.

MEASURED QUBITS
---------------

A unitary gate on a measured qubit is consumed without touching state or
metrics. ``step()`` always raises ``QubitAlreadyMeasuredError`` for it;
``execute()`` and ``advance()`` either record it in ``rejected_gates`` and
carry on (``on_measured_qubit="skip"``, the default) or re-raise it
(``"raise"``).
"""

import heapq
from typing import Callable, Dict, List, Optional, Set, Tuple, Union

import numpy as np

from .circuit import Circuit, OperationMode
from .configurations import NoiseParameters, SimulatorConfig
from .error_correction import (
    ErrorCorrectionCode,
    LogicalErrorTracker,
    physical_gate_count,
    suppressed_noise_parameters,
)
from .exceptions import QubitAlreadyMeasuredError
from .gates import Gate
from .measurement import MeasurementEngine
from .metrics import ExecutionMetrics, MetricsAggregator, RejectedGate
from .noise_models import NoiseEvent, NoiseEventType, NoiseModel
from .state_vector import StateVector


NoiseListener = Callable[[NoiseEvent], None]

MEASURED_QUBIT_POLICIES = ("skip", "raise")

_TIME_EPS = 1e-15


class ContinuousOperationController:
    """
    Executes one circuit with noise, measurement and continuous-operation
    bookkeeping.

    Parameters
    ----------
    circuit : Circuit or dict
        The circuit (or Circuit Spec dict). It is validated and frozen here;
        structural errors are raised before any state is allocated.
    noise : NoiseParameters, optional
        Noise rates. Defaults to noiseless.
    config : SimulatorConfig, optional
        Engine limits and timing model.
    code : ErrorCorrectionCode or str, optional
        Code used in fault-tolerant mode (default: surface).
    seed : int, optional
        Seed for a fresh ``numpy.random.default_rng``. Ignored if ``rng`` is
        given.
    rng : np.random.Generator, optional
        Random source to use instead of seeding a new one.
    on_measured_qubit : str
        "skip" or "raise": what ``execute``/``advance`` do with a unitary
        gate on a measured qubit.
    verbose : bool
        Print run banners and mode changes.

    Raises
    ------
    InvalidQubitCount, UnsupportedGate
        Structural problems with the circuit.
    """

    def __init__(self, circuit: Union[Circuit, dict],
                 noise: Optional[NoiseParameters] = None,
                 config: Optional[SimulatorConfig] = None,
                 code: Optional[Union[ErrorCorrectionCode, str]] = None,
                 seed: Optional[int] = None,
                 rng: Optional[np.random.Generator] = None,
                 on_measured_qubit: str = "skip",
                 verbose: bool = False):
        if on_measured_qubit not in MEASURED_QUBIT_POLICIES:
            raise ValueError(
                f"Unknown on_measured_qubit policy: {on_measured_qubit}. "
                f"Use one of {MEASURED_QUBIT_POLICIES}"
            )
        if isinstance(circuit, dict):
            circuit = Circuit.from_dict(circuit)
        self._config = config or SimulatorConfig()
        circuit.validate(self._config.max_qubits)
        self._circuit = circuit.freeze()
        # the run reads this snapshot, never the caller's object
        self._gates: Tuple[Gate, ...] = tuple(self._circuit.gates)
        self._on_measured_qubit = on_measured_qubit

        self._noise_parameters = noise or NoiseParameters()
        self._seed = seed
        self._rng = rng if rng is not None else np.random.default_rng(seed)
        self.verbose = verbose

        self._mode = circuit.mode
        if code is not None:
            self._code = ErrorCorrectionCode.parse(code)
        elif self._mode is OperationMode.FAULT_TOLERANT:
            self._code = ErrorCorrectionCode.SURFACE
        else:
            self._code = None

        self._state = StateVector(
            circuit.num_qubits,
            max_qubits=self._config.max_qubits,
            norm_tolerance=self._config.norm_tolerance,
            drift_warning_threshold=self._config.drift_warning_threshold,
        )
        self._measurement = MeasurementEngine(self._state, self._rng)
        self._physical_noise = NoiseModel(self._noise_parameters, self._rng, self._config)
        self._listeners: List[NoiseListener] = []
        self._metrics = MetricsAggregator(self)
        self._reset_run()

    # ------------------------------------------------------------------
    # Run state
    # ------------------------------------------------------------------

    def _reset_run(self) -> None:
        n = self._circuit.num_qubits
        self._cursor = 0
        self._clock = 0.0
        self._horizon = 0.0
        self._fidelity = 1.0
        self._logical_fidelity = 1.0
        self._gates_applied = 0
        self._replenishments = 0
        self._events: List[NoiseEvent] = []
        self._rejected: List[RejectedGate] = []
        self._coherence_start = np.zeros(n, dtype=float)
        self._qubit_gate_counts = np.zeros(n, dtype=np.int64)
        # qubit → time its atom is back (continuous mode stalls on these)
        self._unavailable: Dict[int, float] = {}
        # (due time, qubit) of every atom being reloaded
        self._pending_reloads: List[Tuple[float, int]] = []
        self._cancelled = False
        if self._mode is OperationMode.FAULT_TOLERANT:
            self._tracker = LogicalErrorTracker(self._code, self._config.min_threshold_samples)
        else:
            self._tracker = None
        self._refresh_tick_noise()

    def _refresh_tick_noise(self) -> None:
        if self._tracker is not None and not self._tracker.threshold_exceeded:
            logical = suppressed_noise_parameters(self._noise_parameters, self._code)
            self._tick_noise = self._physical_noise.with_parameters(logical)
        else:
            self._tick_noise = self._physical_noise

    def reset(self) -> None:
        """Discard state vector, measurements and metrics together; rewind to gate 0."""
        self._state.reset()
        self._measurement.reset()
        self._reset_run()

    def cancel(self) -> None:
        """Stop the run. The last committed step remains consistent."""
        self._cancelled = True

    # ------------------------------------------------------------------
    # Read access (used by MetricsAggregator)
    # ------------------------------------------------------------------

    @property
    def circuit(self) -> Circuit:
        return self._circuit

    @property
    def mode(self) -> OperationMode:
        return self._mode

    @property
    def code(self) -> Optional[ErrorCorrectionCode]:
        """Active error-correction code (fault-tolerant mode only)."""
        return self._code if self._mode is OperationMode.FAULT_TOLERANT else None

    @property
    def noise_parameters(self) -> NoiseParameters:
        return self._noise_parameters

    @property
    def config(self) -> SimulatorConfig:
        return self._config

    @property
    def metrics(self) -> MetricsAggregator:
        return self._metrics

    @property
    def error_tracker(self) -> Optional[LogicalErrorTracker]:
        return self._tracker

    @property
    def fidelity(self) -> float:
        return self._fidelity

    @property
    def logical_fidelity(self) -> float:
        """Fidelity product under the rate acting on the simulated qubits."""
        return self._logical_fidelity

    @property
    def rejected_gates(self) -> Tuple[RejectedGate, ...]:
        return tuple(self._rejected)

    @property
    def qubit_gate_counts(self) -> np.ndarray:
        """Unitary gates applied per qubit, a copy."""
        return self._qubit_gate_counts.copy()

    @property
    def elapsed_time_s(self) -> float:
        return self._clock

    @property
    def coherence_times(self) -> np.ndarray:
        return self._clock - self._coherence_start

    @property
    def atom_replenishment_count(self) -> int:
        return self._replenishments

    @property
    def gates_applied(self) -> int:
        return self._gates_applied

    @property
    def noise_events(self) -> Tuple[NoiseEvent, ...]:
        return tuple(self._events)

    @property
    def renormalization_count(self) -> int:
        return self._state.renormalization_count

    @property
    def unavailable_qubits(self) -> Set[int]:
        return {q for q, t in self._unavailable.items() if t > self._clock}

    @property
    def measurements(self) -> Dict[int, int]:
        return self._measurement.results

    @property
    def state_vector(self) -> np.ndarray:
        """Copy of the current amplitudes."""
        return np.array(self._state.amplitudes)

    @property
    def pending_gates(self) -> int:
        return len(self._gates) - self._cursor

    @property
    def is_complete(self) -> bool:
        return self._cursor >= len(self._gates)

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    @property
    def measurement_engine(self) -> MeasurementEngine:
        return self._measurement

    # ------------------------------------------------------------------
    # Event channel
    # ------------------------------------------------------------------

    def subscribe(self, listener: NoiseListener) -> NoiseListener:
        """Call ``listener(event)`` for every noise event from now on."""
        self._listeners.append(listener)
        return listener

    def unsubscribe(self, listener: NoiseListener) -> None:
        self._listeners.remove(listener)

    def _record(self, event: NoiseEvent) -> None:
        self._events.append(event)
        if event.event_type.resets_coherence:
            self._coherence_start[event.qubit] = event.timestamp
        for listener in self._listeners:
            listener(event)

    # ------------------------------------------------------------------
    # Mode state machine
    # ------------------------------------------------------------------

    def transition_to(self, mode, code: Optional[Union[ErrorCorrectionCode, str]] = None
                      ) -> OperationMode:
        """
        Move forward along standard → continuous → faultTolerant.

        Raises
        ------
        ValueError
            For a backward transition.
        """
        new_mode = OperationMode.parse(mode)
        if new_mode.rank < self._mode.rank:
            raise ValueError(
                f"Cannot move from {self._mode.value} back to {new_mode.value}"
            )
        if new_mode is self._mode:
            return self._mode

        self._mode = new_mode
        if new_mode is OperationMode.FAULT_TOLERANT:
            if code is not None:
                self._code = ErrorCorrectionCode.parse(code)
            elif self._code is None:
                self._code = ErrorCorrectionCode.SURFACE
            self._tracker = LogicalErrorTracker(self._code, self._config.min_threshold_samples)
            self._refresh_tick_noise()

        if self.verbose:
            suffix = f" ({self._code.value} code)" if self.code else ""
            print(f"  t = {self._clock:.6f} s: mode → {new_mode.value}{suffix}")
        return self._mode

    # ------------------------------------------------------------------
    # Atom loss and replenishment
    # ------------------------------------------------------------------

    def _atoms_per_qubit(self) -> int:
        if self._mode is OperationMode.FAULT_TOLERANT:
            return self._code.physical_per_logical
        return 1

    def _sample_atom_loss(self, qubits, timestamp: float) -> None:
        if self._mode is OperationMode.STANDARD:
            return
        atoms = self._atoms_per_qubit()
        latency = self._config.replenishment_latency_s
        for q in qubits:
            for event in self._physical_noise.sample_atom_loss(q, timestamp, atoms):
                self._record(event)
                due = timestamp + latency
                heapq.heappush(self._pending_reloads, (due, q))
                if self._mode is OperationMode.CONTINUOUS:
                    self._unavailable[q] = max(self._unavailable.get(q, 0.0), due)

    def _process_replenishments(self) -> None:
        while self._pending_reloads and self._pending_reloads[0][0] <= self._clock + _TIME_EPS:
            due, q = heapq.heappop(self._pending_reloads)
            self._replenishments += 1
            self._record(NoiseEvent(due, q, NoiseEventType.ATOM_REPLENISHMENT, 1.0))
            if q in self._unavailable and self._unavailable[q] <= due + _TIME_EPS:
                del self._unavailable[q]

    def _ready_time(self, qubits) -> float:
        """Earliest time every atom backing ``qubits`` is in place."""
        if self._mode is not OperationMode.CONTINUOUS:
            return self._clock
        ready = max((self._unavailable.get(q, 0.0) for q in qubits), default=0.0)
        return max(ready, self._clock)

    def _wait_for_atoms(self, qubits) -> None:
        ready = self._ready_time(qubits)
        if ready > self._clock:
            self._clock = ready
            self._process_replenishments()

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def _finish_time(self, gate: Gate) -> float:
        """Clock after ``gate`` would complete, including any reload wait."""
        if not gate.is_unitary:
            return self._clock + self._config.measurement_duration_s
        if any(self._measurement.is_measured(q) for q in gate.qubits):
            return self._clock
        return self._ready_time(gate.qubits) + self._config.gate_duration_s

    def _run_step(self) -> None:
        try:
            self.step()
        except QubitAlreadyMeasuredError as exc:
            if self._on_measured_qubit == "raise":
                raise
            if self.verbose:
                print(f"  skipped: {exc}")

    def step(self) -> Optional[Gate]:
        """
        Execute the next gate.

        Returns
        -------
        Gate or None
            The gate consumed, or None when the run is complete or cancelled.

        Raises
        ------
        QubitAlreadyMeasuredError
            The gate touches a measured qubit. It is consumed and added to
            ``rejected_gates`` with state and metrics unchanged, so the run
            can be resumed.
        """
        if self._cancelled or self.is_complete:
            return None
        gate = self._gates[self._cursor]

        if not gate.is_unitary:
            self._cursor += 1
            self._measurement.measure(gate.target)
            self._clock += self._config.measurement_duration_s
            self._gates_applied += 1
            self._process_replenishments()
            return gate

        for q in gate.qubits:
            if self._measurement.is_measured(q):
                self._rejected.append(RejectedGate(self._cursor, gate, q, self._clock))
                self._cursor += 1
                raise QubitAlreadyMeasuredError(q, gate)

        self._cursor += 1
        self._wait_for_atoms(gate.qubits)
        start = self._clock
        for event in self._state.apply_gate(gate, self._tick_noise, timestamp=start):
            self._record(event)
        self._clock = start + self._config.gate_duration_s
        self._gates_applied += 1
        self._qubit_gate_counts[list(gate.qubits)] += 1

        if self._tracker is not None:
            n_physical = physical_gate_count(gate, self._code)
            n_faults = self._physical_noise.sample_physical_errors(n_physical)
            if self._tracker.record(n_physical, n_faults):
                self._refresh_tick_noise()
                if self.verbose:
                    print(f"  ⚠ threshold exceeded at t = {self._clock:.6f} s "
                          f"(p = {self._tracker.physical_error_rate:.2e})")

        self._sample_atom_loss(gate.qubits, start)

        correction = 1.0
        if self._mode is not OperationMode.STANDARD:
            correction = self._noise_parameters.continuous_operation_correction
        factor = (1.0 - self._noise_parameters.gate_error_rate) * correction
        logical_factor = (1.0 - self._tick_noise.parameters.gate_error_rate) * correction
        self._fidelity = min(max(self._fidelity * factor, 0.0), 1.0)
        self._logical_fidelity = min(max(self._logical_fidelity * logical_factor, 0.0), 1.0)

        self._process_replenishments()
        return gate

    def execute(self) -> ExecutionMetrics:
        """Run every remaining gate and return the final metrics."""
        if self.verbose:
            self._print_header()
        while not self._cancelled and not self.is_complete:
            self._run_step()
        self._horizon = max(self._horizon, self._clock)
        if self.verbose:
            self._print_summary()
        return self._metrics.snapshot()

    def advance(self, duration_s: float) -> ExecutionMetrics:
        """
        Advance the simulation by ``duration_s`` of simulated time.

        Gates run while they fit into the accumulated time budget, counting
        any wait for a reloading atom; a gate that does not fit waits for a
        later call. When no gates remain, a non-standard run idles in
        replenishment cycles up to the budget.
        """
        if duration_s < 0:
            raise ValueError(f"duration_s must be non-negative, got {duration_s}")
        self._horizon = max(self._horizon, self._clock) + duration_s

        while not self._cancelled and not self.is_complete:
            gate = self._gates[self._cursor]
            if self._finish_time(gate) > self._horizon + _TIME_EPS:
                break
            self._run_step()

        if not self._cancelled and self.is_complete:
            self._idle_until(self._horizon)
        return self._metrics.snapshot()

    def _idle_until(self, target: float) -> None:
        if target <= self._clock:
            return
        if (self._mode is OperationMode.STANDARD
                or self._noise_parameters.atom_loss_rate == 0.0):
            self._clock = target
            self._process_replenishments()
            return

        cycle = self._config.replenishment_cycle_s
        qubits = range(self._circuit.num_qubits)
        while self._clock + cycle <= target + _TIME_EPS:
            self._clock += cycle
            self._process_replenishments()
            available = [q for q in qubits if q not in self.unavailable_qubits]
            self._sample_atom_loss(available, self._clock)
        self._clock = max(self._clock, target)
        self._process_replenishments()

    # ------------------------------------------------------------------
    # Verbose output
    # ------------------------------------------------------------------

    def _print_header(self) -> None:
        c = self._circuit
        print(f"\n{'='*70}")
        print(f"CIRCUIT: {c.name}")
        print(f"{'='*70}")
        print(f"Qubits:            {c.num_qubits} "
              f"({16 * 2**c.num_qubits / 1024:.1f} KiB state vector)")
        print(f"Gates:             {len(c.gates)}")
        print(f"Mode:              {self._mode.value}")
        if self.code is not None:
            p = self.code.parameters
            print(f"Code:              {p.name} "
                  f"({p.physical_per_logical} physical/logical, p_th = {p.threshold:.1e})")
        n = self._noise_parameters
        print(f"\n--- Noise rates ---")
        print(f"Dephasing:         {n.dephasing_rate:.2e}")
        print(f"Relaxation:        {n.relaxation_rate:.2e}")
        print(f"Gate error:        {n.gate_error_rate:.2e}")
        print(f"Atom loss:         {n.atom_loss_rate:.2e}")
        print(f"Correction factor: {n.continuous_operation_correction:.6f}")

    def _print_summary(self) -> None:
        m = self._metrics.snapshot()
        print(f"\n--- Result ---")
        print(f"Fidelity:          {m.fidelity:.6f}")
        if self.code is not None:
            print(f"Logical fidelity:  {m.logical_fidelity:.6f}")
        if m.rejected_gate_count:
            print(f"Rejected gates:    {m.rejected_gate_count}")
        print(f"Execution time:    {m.execution_time_ms:.4f} ms")
        print(f"Coherence time:    {m.coherence_time_seconds:.6f} s")
        print(f"Replenishments:    {m.atom_replenishment_count}")
        print(f"Noise events:      {m.noise_event_count}")
        if m.logical_error_threshold_exceeded:
            print(f"Threshold:         ✗ EXCEEDED (p = {m.physical_error_rate:.2e})")
        print(f"{'='*70}")
