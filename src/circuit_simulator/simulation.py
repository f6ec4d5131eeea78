"""
Circuit Simulation Entry Point
==============================

``simulate_circuit()`` is the one call the job, comparison and reporting
layers need: it takes a circuit (or a Circuit Spec dict), runs it through a
fresh ``ContinuousOperationController`` and returns an ``ExecutionResult``.

Simulation flow
---------------
1. Validate the circuit (structural errors abort before any allocation)
2. Execute every gate with noise, recording mid-circuit measurements
3. Optionally gather shot statistics
4. Optionally compare the final state with a noise-free run
5. Package metrics, noise history and (optionally) the final state

Shot sampling
-------------
``sampling="final_state"`` (default)
    One noisy trajectory is simulated; ``shots`` bitstrings are drawn from
    the Born distribution of its final state. Fast, and exact for noiseless
    circuits.

``sampling="trajectories"``
    Monte Carlo: the circuit is re-run ``shots`` times with fresh noise, and
    every qubit is measured (ascending order) at the end of each run. Noise
    statistics are then reflected in the counts, at ``shots`` times the cost.

Every count is derived from state-vector amplitudes through the Born rule;
no distribution is ever synthesised independently of the engine.

Reproducibility
---------------
A single ``numpy.random.Generator`` seeded with ``seed`` feeds the noise
model and the measurement engine, in a fixed order. The same circuit, noise
parameters and seed always produce the same result.
"""

import time
import warnings
from typing import Callable, Dict, Iterable, Optional, Union

import numpy as np

# QuTiP imports (version 5 compatible)
try:
    from qutip import Qobj, ket2dm, fidelity
except ImportError:
    raise ImportError(
        "QuTiP is required for simulation. Install with: pip install qutip"
    )

from .circuit import Circuit
from .configurations import NoiseParameters, SimulatorConfig
from .continuous_operation import ContinuousOperationController
from .error_correction import ErrorCorrectionCode
from .measurement import bitstring, marginal_counts
from .metrics import ExecutionResult
from .noise_models import NoiseEvent


SAMPLING_MODES = ("final_state", "trajectories")


# =============================================================================
# FIDELITY
# =============================================================================

def to_qobj(amplitudes: np.ndarray) -> Qobj:
    """Wrap a little-endian amplitude vector as an n-qubit QuTiP ket."""
    amplitudes = np.asarray(amplitudes, dtype=np.complex128).reshape(-1, 1)
    n = int(np.log2(amplitudes.shape[0]))
    return Qobj(amplitudes, dims=[[2] * n, [1] * n])


def compute_state_fidelity(psi_out, psi_target) -> float:
    """
    Overlap fidelity of two register states.

    Amplitude vectors are wrapped as kets, giving F = |⟨ψ_target|ψ_out⟩|²
    (global phase drops out). Density matrices fall back to the Uhlmann
    fidelity squared.

    Parameters
    ----------
    psi_out, psi_target : Qobj or np.ndarray
        Kets, density matrices, or little-endian amplitude vectors.

    Returns
    -------
    float
        Fidelity in [0, 1]
    """
    if not isinstance(psi_out, Qobj):
        psi_out = to_qobj(psi_out)
    if not isinstance(psi_target, Qobj):
        psi_target = to_qobj(psi_target)

    if psi_out.isket and psi_target.isket:
        overlap = psi_target.dag() * psi_out
        # Handle QuTiP version differences
        if hasattr(overlap, 'full'):
            overlap = overlap.full()[0, 0]
        return float(np.abs(overlap) ** 2)
    rho_out = ket2dm(psi_out) if psi_out.isket else psi_out
    rho_target = ket2dm(psi_target) if psi_target.isket else psi_target
    return float(fidelity(rho_out, rho_target) ** 2)


def ideal_final_state(circuit: Circuit, config: Optional[SimulatorConfig] = None) -> np.ndarray:
    """Final amplitudes of a noise-free run (circuit must not measure)."""
    controller = ContinuousOperationController(circuit.copy(), NoiseParameters(), config)
    controller.execute()
    return controller.state_vector


# =============================================================================
# SHOT SAMPLING
# =============================================================================

def _sample_trajectories(circuit: Circuit, noise: Optional[NoiseParameters],
                         config: Optional[SimulatorConfig], code,
                         shots: int, rng: np.random.Generator,
                         on_measured_qubit: str = "skip") -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for _ in range(shots):
        run = ContinuousOperationController(circuit, noise, config, code, rng=rng,
                                            on_measured_qubit=on_measured_qubit)
        run.execute()
        outcomes = run.measurement_engine.measure_all()
        index = sum(outcome << q for q, outcome in outcomes.items())
        key = bitstring(index, circuit.num_qubits)
        counts[key] = counts.get(key, 0) + 1
    return dict(sorted(counts.items()))


# =============================================================================
# MAIN SIMULATION FUNCTION
# =============================================================================

def simulate_circuit(
    circuit: Union[Circuit, dict],
    noise: Optional[NoiseParameters] = None,
    config: Optional[SimulatorConfig] = None,
    code: Optional[Union[ErrorCorrectionCode, str]] = None,
    shots: Optional[int] = None,
    seed: Optional[int] = None,
    sampling: str = "final_state",
    include_state_vector: bool = False,
    compute_ideal_fidelity: bool = False,
    listeners: Optional[Iterable[Callable[[NoiseEvent], None]]] = None,
    on_measured_qubit: str = "skip",
    verbose: bool = False,
) -> ExecutionResult:
    """
    Simulate a circuit and collect its execution result.

    Parameters
    ----------
    circuit : Circuit or dict
        Circuit, or Circuit Spec dict (see ``Circuit.from_dict``).
    noise : NoiseParameters, optional
        Noise rates; noiseless if omitted.
    config : SimulatorConfig, optional
        Engine limits and timing model.
    code : ErrorCorrectionCode or str, optional
        Error-correction code for fault-tolerant circuits (default surface).
    shots : int, optional
        Number of samples for aggregate counts. No counts if omitted.
    seed : int, optional
        Seed for deterministic results.
    sampling : str
        "final_state" or "trajectories" (see module docstring).
    include_state_vector : bool
        Attach the final amplitudes to the result.
    compute_ideal_fidelity : bool
        Compare the final state to a noise-free run with QuTiP. Skipped with
        a warning for circuits that measure mid-run.
    listeners : iterable of callables, optional
        Receive every ``NoiseEvent`` of the main run as it is emitted.
    on_measured_qubit : str
        "skip" (default): a unitary gate on a measured qubit is dropped,
        listed in ``rejected_gates`` and the run continues. "raise": the
        ``QubitAlreadyMeasuredError`` propagates.
    verbose : bool
        Print run banners.

    Returns
    -------
    ExecutionResult

    Raises
    ------
    InvalidQubitCount, UnsupportedGate
        Structural errors, before anything is simulated.
    QubitAlreadyMeasuredError
        A unitary gate follows a measurement of one of its qubits
        (only with ``on_measured_qubit="raise"``).
    ValueError
        Bad ``shots``, ``sampling`` or ``on_measured_qubit``.
    """
    wall_start = time.perf_counter()

    if sampling not in SAMPLING_MODES:
        raise ValueError(f"Unknown sampling mode: {sampling}. Use one of {SAMPLING_MODES}")
    if shots is not None and shots <= 0:
        raise ValueError(f"shots must be positive, got {shots}")
    if isinstance(circuit, dict):
        circuit = Circuit.from_dict(circuit)

    rng = np.random.default_rng(seed)
    controller = ContinuousOperationController(
        circuit, noise, config, code, rng=rng,
        on_measured_qubit=on_measured_qubit, verbose=verbose,
    )
    for listener in listeners or ():
        controller.subscribe(listener)

    controller.execute()
    final_state = controller.state_vector

    counts = None
    qubit_counts = None
    if shots is not None:
        if sampling == "final_state":
            counts = dict(sorted(controller.measurement_engine.sample_counts(shots).items()))
        else:
            counts = _sample_trajectories(circuit, noise, config, code, shots, rng,
                                          on_measured_qubit)
        qubit_counts = marginal_counts(counts)
        if verbose:
            print(f"\n--- Counts ({shots} shots, {sampling}) ---")
            for key, value in counts.items():
                print(f"  |{key}⟩: {value}")

    ideal_fidelity = None
    if compute_ideal_fidelity:
        if circuit.has_mid_circuit_measurement:
            warnings.warn(
                "Ideal-state fidelity is undefined for circuits with measurements; "
                "skipping.",
                UserWarning,
            )
        else:
            ideal_fidelity = compute_state_fidelity(final_state, ideal_final_state(circuit, config))
            if verbose:
                print(f"Ideal-state fidelity: {ideal_fidelity:.6f}")

    metrics = controller.metrics.snapshot()
    return ExecutionResult(
        circuit_name=circuit.name,
        num_qubits=circuit.num_qubits,
        operation_mode=controller.mode.value,
        measurements=controller.measurements,
        fidelity=metrics.fidelity,
        execution_time_ms=metrics.execution_time_ms,
        coherence_time_seconds=metrics.coherence_time_seconds,
        atom_replenishment_count=metrics.atom_replenishment_count,
        metrics=metrics,
        noise_events=list(controller.noise_events),
        rejected_gates=list(controller.rejected_gates),
        counts=counts,
        qubit_counts=qubit_counts,
        shots=shots,
        logical_error_threshold_exceeded=metrics.logical_error_threshold_exceeded,
        final_state=final_state if include_state_vector else None,
        ideal_state_fidelity=ideal_fidelity,
        seed=seed,
        wall_time_ms=(time.perf_counter() - wall_start) * 1e3,
    )
