"""
Error-Correction Overlay
========================

In fault-tolerant operation every simulated qubit is a *logical* qubit,
encoded in several physical atoms by an error-correction code. The dense
state vector still holds one amplitude pair per logical qubit; the overlay
accounts for the physical layer around it:

1. **Overhead** - a logical gate on k logical qubits is executed
   transversally as ``physical_per_logical × k`` physical gates.

2. **Physical errors** - the number of faulty physical gates is drawn
   binomially from the physical error probability. Their running ratio is the
   empirical physical error rate.

3. **Threshold** - while that rate stays below the code threshold p_th,
   logical noise is suppressed as

       p_L = A · (p / p_th)^((d+1)/2)

   Above threshold the code amplifies rather than corrects; the run is
   flagged degraded, ``LogicalErrorThresholdExceeded`` is issued once, and
   logical noise falls back to the raw physical rates. The run continues.

SUPPORTED CODES
---------------

| Code    | Physical / logical | Threshold | Distance |
|---------|--------------------|-----------|----------|
| surface | 17 (d=3 rotated)   | 1.0e-2    | 3        |
| steane  | 7  ([[7,1,3]])     | 1.0e-3    | 3        |
| shor    | 9  ([[9,1,3]])     | 1.0e-4    | 3        |
| color   | 7  (6.6.6, d=3)    | 3.0e-3    | 3        |
| boss    | 9  (Bacon-Shor 3×3)| 2.0e-3    | 3        |

The thresholds are calibration constants taken from commonly quoted
circuit-level estimates. They are not derived here and should be validated
against decoder simulations before being used quantitatively.
"""

import warnings
from dataclasses import dataclass
from enum import Enum
from typing import Dict

from .configurations import NoiseParameters
from .constants import LOGICAL_ERROR_PREFACTOR, MIN_THRESHOLD_SAMPLES
from .exceptions import LogicalErrorThresholdExceeded
from .gates import Gate
from .noise_models import logical_error_rate


@dataclass(frozen=True)
class CodeParameters:
    name: str
    physical_per_logical: int
    threshold: float
    distance: int


class ErrorCorrectionCode(str, Enum):
    SURFACE = "surface"
    STEANE = "steane"
    SHOR = "shor"
    COLOR = "color"
    BOSS = "boss"

    @classmethod
    def parse(cls, value) -> "ErrorCorrectionCode":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise ValueError(
                f"Unknown error-correction code: {value!r}. "
                f"Use one of {[c.value for c in cls]}"
            ) from None

    @property
    def parameters(self) -> CodeParameters:
        return CODE_PARAMETERS[self]

    @property
    def physical_per_logical(self) -> int:
        return CODE_PARAMETERS[self].physical_per_logical

    @property
    def threshold(self) -> float:
        return CODE_PARAMETERS[self].threshold

    @property
    def distance(self) -> int:
        return CODE_PARAMETERS[self].distance


CODE_PARAMETERS: Dict[ErrorCorrectionCode, CodeParameters] = {
    ErrorCorrectionCode.SURFACE: CodeParameters("Rotated surface code", 17, 1.0e-2, 3),
    ErrorCorrectionCode.STEANE: CodeParameters("Steane [[7,1,3]]", 7, 1.0e-3, 3),
    ErrorCorrectionCode.SHOR: CodeParameters("Shor [[9,1,3]]", 9, 1.0e-4, 3),
    ErrorCorrectionCode.COLOR: CodeParameters("6.6.6 color code", 7, 3.0e-3, 3),
    ErrorCorrectionCode.BOSS: CodeParameters("Bacon-Shor 3x3", 9, 2.0e-3, 3),
}


def physical_qubit_count(logical_qubits: int, code: ErrorCorrectionCode) -> int:
    return logical_qubits * code.physical_per_logical


def physical_gate_count(gate: Gate, code: ErrorCorrectionCode) -> int:
    """Transversal expansion: one physical gate per code block member per qubit."""
    return code.physical_per_logical * len(gate.qubits)


def suppressed_noise_parameters(parameters: NoiseParameters, code: ErrorCorrectionCode,
                                prefactor: float = LOGICAL_ERROR_PREFACTOR
                                ) -> NoiseParameters:
    """
    Logical-level rates for an encoded register below threshold.

    Atom loss is an erasure of a single physical atom that the code absorbs,
    so it stays at the physical rate and is sampled per atom by the
    controller; it never acts on the logical amplitudes.
    """
    p = code.parameters

    def suppress(rate):
        return logical_error_rate(rate, p.threshold, p.distance, prefactor)

    return parameters.with_updates(
        dephasing_rate=suppress(parameters.dephasing_rate),
        relaxation_rate=suppress(parameters.relaxation_rate),
        gate_error_rate=suppress(parameters.gate_error_rate),
    )


class LogicalErrorTracker:
    """
    Running physical error rate of an encoded register versus its threshold.

    Parameters
    ----------
    code : ErrorCorrectionCode
    min_samples : int
        Physical gates required before the rate is compared to the threshold.
    """

    def __init__(self, code: ErrorCorrectionCode, min_samples: int = MIN_THRESHOLD_SAMPLES):
        self.code = ErrorCorrectionCode.parse(code)
        self.min_samples = min_samples
        self.reset()

    def reset(self) -> None:
        self.physical_gate_count = 0
        self.physical_error_count = 0
        self.threshold_exceeded = False

    @property
    def physical_error_rate(self) -> float:
        if self.physical_gate_count == 0:
            return 0.0
        return self.physical_error_count / self.physical_gate_count

    def record(self, physical_gates: int, physical_errors: int) -> bool:
        """
        Add one logical gate's worth of physical operations.

        Returns True only on the call that first crosses the threshold.
        """
        self.physical_gate_count += physical_gates
        self.physical_error_count += physical_errors
        if self.threshold_exceeded or self.physical_gate_count < self.min_samples:
            return False
        if self.physical_error_rate > self.code.threshold:
            self.threshold_exceeded = True
            warnings.warn(
                f"Physical error rate {self.physical_error_rate:.2e} exceeds the "
                f"{self.code.value} code threshold {self.code.threshold:.1e}; "
                f"continuing in degraded mode without logical suppression.",
                LogicalErrorThresholdExceeded,
            )
            return True
        return False
