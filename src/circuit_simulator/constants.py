"""
Numerical and Timing Constants for the Circuit Simulator
=========================================================

All defaults used by the state-vector engine, noise model and continuous
operation controller live here. Configuration dataclasses in
``configurations.py`` read their defaults from this module, so changing a
value here changes the default for every new run.

CAPACITY LIMIT
--------------

The simulator stores the full state vector: ``2^n`` complex128 amplitudes,
i.e. ``16 · 2^n`` bytes.

| Qubits | Amplitudes     | Memory   |
|--------|----------------|----------|
| 10     | 1 024          | 16 KiB   |
| 20     | 1 048 576      | 16 MiB   |
| 24     | 16 777 216     | 256 MiB  |
| 30     | 1 073 741 824  | 16 GiB   |

``MAX_QUBITS`` is the default ceiling. Registers above it are rejected with
``InvalidQubitCount``; nothing is truncated. Raise the ceiling through
``SimulatorConfig(max_qubits=...)`` if the machine has the memory.

TIMING MODEL
------------

Simulated time is deterministic and independent of wall-clock time:

    - every unitary gate advances the clock by GATE_DURATION_S
    - every measurement advances it by MEASUREMENT_DURATION_S
    - a lost atom is back in its tweezer REPLENISHMENT_LATENCY_S later
    - idle continuous operation is processed in REPLENISHMENT_CYCLE_S cycles

The gate time follows typical Rydberg CZ durations (~0.5 μs) and the
replenishment latency follows the continuous-operation hardware reference
below.

References
----------
[1] Bluvstein PhD Thesis (Harvard 2024) - gate durations, error budget
[2] Chiu et al., "Continuous operation of a coherent 3,000-qubit system",
    Nature (2025) - atom reloading during operation
"""

import numpy as np


# =============================================================================
# NUMERICS
# =============================================================================

NORM_TOLERANCE = 1e-9
"""Allowed |‖ψ‖ - 1| before the state is renormalised in place."""

DRIFT_WARNING_THRESHOLD = 1e-6
"""Drift above this is unexpected for unitary evolution and is reported."""

MAX_QUBITS = 24
"""Default dense-vector ceiling (256 MiB of amplitudes)."""

BYTES_PER_AMPLITUDE = np.dtype(np.complex128).itemsize


# =============================================================================
# TIMING (seconds)
# =============================================================================

GATE_DURATION_S = 0.5e-6
MEASUREMENT_DURATION_S = 10e-6
REPLENISHMENT_LATENCY_S = 50e-3
REPLENISHMENT_CYCLE_S = 50e-3


# =============================================================================
# NOISE MAGNITUDES
# =============================================================================
#
# A triggered noise event draws its strength from these bounds.

DEPHASING_MAX_PHASE = 0.1        # rad
RELAXATION_MAX_DAMPING = 0.1     # fraction of |1⟩ amplitude² removed
GATE_ERROR_MAX_ANGLE = 0.05      # rad, over-rotation about a random axis


# =============================================================================
# ERROR-CORRECTION TRACKING
# =============================================================================

LOGICAL_ERROR_PREFACTOR = 0.1
"""A in p_L = A · (p / p_th)^((d+1)/2)."""

MIN_THRESHOLD_SAMPLES = 1000
"""Physical gates required before the empirical rate is compared to p_th."""


# =============================================================================
# QUBIT STATUS
# =============================================================================
#
# Per-qubit health in the live noise view, from the observed rate of
# dephasing, relaxation and gate-error events per applied gate:
#
#   rate < DEGRADED            optimal
#   DEGRADED <= rate < CRITICAL  degraded
#   rate >= CRITICAL           critical
#
# A qubit whose atom is being reloaded is "replenishing" regardless of rate.

QUBIT_DEGRADED_EVENT_RATE = 0.01
QUBIT_CRITICAL_EVENT_RATE = 0.05


# =============================================================================
# HARDWARE REFERENCE SPECS
# =============================================================================
#
# Reference figures for a continuously operated neutral-atom array. Used by the
# noise presets; they are calibration values, not physical law.

HARDWARE_MAX_QUBITS = 3000
CONTINUOUS_OPERATION_HOURS = 2.0
FAULT_TOLERANT_LOGICAL_QUBITS = 96
AVERAGE_FIDELITY = 0.9985
