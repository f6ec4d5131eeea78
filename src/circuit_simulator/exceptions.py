# Error Taxonomy
#
# Structural errors (raised before any state mutation):
#   - InvalidQubitCount: register size <= 0 or above the dense-vector ceiling
#   - UnsupportedGate: unknown gate tag, bad index, control == target
#
# Runtime errors (abort only the offending gate):
#   - QubitAlreadyMeasuredError
#
# Non-fatal conditions (issued with warnings.warn, never raised):
#   - LogicalErrorThresholdExceeded: physical error rate above code threshold
#   - NumericalDriftWarning: renormalisation far beyond tolerance


class SimulatorError(Exception):
    """Base class for all errors raised by the circuit simulator."""


class InvalidQubitCount(SimulatorError, ValueError):
    """Register size is not positive or exceeds the configured maximum."""

    def __init__(self, num_qubits, max_qubits):
        self.num_qubits = num_qubits
        self.max_qubits = max_qubits
        if isinstance(num_qubits, int) and num_qubits > max_qubits:
            reason = (
                f"{num_qubits} qubits exceeds the dense state-vector limit of "
                f"{max_qubits} (needs {16 * 2**num_qubits / 2**20:.0f} MiB)"
            )
        else:
            reason = f"qubit count must be a positive integer, got {num_qubits!r}"
        super().__init__(reason)


class UnsupportedGate(SimulatorError, ValueError):
    """Gate tag is unknown or its qubit indices are invalid for the register."""


class QubitAlreadyMeasuredError(SimulatorError, RuntimeError):
    """A unitary gate referenced a qubit whose outcome is already recorded."""

    def __init__(self, qubit, gate=None):
        self.qubit = qubit
        self.gate = gate
        msg = f"qubit {qubit} has already been measured"
        if gate is not None:
            msg += f"; cannot apply {gate}"
        super().__init__(msg)


class LogicalErrorThresholdExceeded(UserWarning):
    """Physical error rate exceeded the active error-correction threshold."""


class NumericalDriftWarning(RuntimeWarning):
    """State norm drifted far beyond tolerance and was renormalised."""
