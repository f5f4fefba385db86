"""Command-line hyperparameter tuning driven by per-parameter Optuna studies."""

from .config import ParameterSpec, TunerConfig, load_parameter_payload, parse_parameter_specs
from .errors import (
    ConfigurationError,
    ObjectiveLaunchError,
    OptimizerError,
    ProtocolError,
    RangeError,
    SubprocessFailure,
    TunerError,
)
from .optimization import LoopState, OptimizationLoop, OptimizationResult, run_optimization
from .state import ParameterState

__all__ = [
    "ConfigurationError",
    "LoopState",
    "ObjectiveLaunchError",
    "OptimizationLoop",
    "OptimizationResult",
    "OptimizerError",
    "ParameterSpec",
    "ParameterState",
    "ProtocolError",
    "RangeError",
    "SubprocessFailure",
    "TunerConfig",
    "TunerError",
    "load_parameter_payload",
    "parse_parameter_specs",
    "run_optimization",
]
