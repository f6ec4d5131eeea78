# Circuit Simulator: Noisy State-Vector Simulation for Neutral-Atom Circuits
#
# Exact dense state-vector execution of small gate-model circuits with
# stochastic noise, Born-rule measurement, continuous-operation bookkeeping
# (atom loss and replenishment) and an error-correction overlay.
#
# Layers:
#   Core:       gates, circuit, state_vector, measurement
#   Noise:      noise_models, error_correction
#   Execution:  continuous_operation, metrics, simulation
#   Reporting:  visualization

__version__ = "0.1.0"

from .circuit import Circuit, OperationMode
from .configurations import (
    NoiseParameters,
    SimulatorConfig,
    get_ideal_noise_parameters,
    get_neutral_atom_noise_parameters,
    get_continuous_operation_noise_parameters,
    get_default_simulator_config,
)
from .continuous_operation import ContinuousOperationController
from .error_correction import ErrorCorrectionCode, LogicalErrorTracker
from .exceptions import (
    SimulatorError,
    InvalidQubitCount,
    UnsupportedGate,
    QubitAlreadyMeasuredError,
    LogicalErrorThresholdExceeded,
    NumericalDriftWarning,
)
from .gates import Gate, GateType
from .measurement import MeasurementEngine
from .metrics import (
    ExecutionMetrics,
    ExecutionResult,
    MetricsAggregator,
    QubitNoiseLevel,
    QubitStatus,
    RealTimeNoiseSnapshot,
    RejectedGate,
)
from .noise_models import NoiseEvent, NoiseEventType, NoiseModel
from .simulation import simulate_circuit, compute_state_fidelity
from .state_vector import StateVector

__all__ = [
    "Circuit",
    "OperationMode",
    "NoiseParameters",
    "SimulatorConfig",
    "get_ideal_noise_parameters",
    "get_neutral_atom_noise_parameters",
    "get_continuous_operation_noise_parameters",
    "get_default_simulator_config",
    "ContinuousOperationController",
    "ErrorCorrectionCode",
    "LogicalErrorTracker",
    "SimulatorError",
    "InvalidQubitCount",
    "UnsupportedGate",
    "QubitAlreadyMeasuredError",
    "LogicalErrorThresholdExceeded",
    "NumericalDriftWarning",
    "Gate",
    "GateType",
    "MeasurementEngine",
    "ExecutionMetrics",
    "ExecutionResult",
    "MetricsAggregator",
    "QubitNoiseLevel",
    "QubitStatus",
    "RealTimeNoiseSnapshot",
    "RejectedGate",
    "NoiseEvent",
    "NoiseEventType",
    "NoiseModel",
    "simulate_circuit",
    "compute_state_fidelity",
    "StateVector",
]
