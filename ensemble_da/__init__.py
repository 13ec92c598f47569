"""
Ensemble data assimilation with a stochastic Ensemble Kalman Filter.
"""

from ensemble_da.config import AssimilationConfig, SolverConfig
from ensemble_da.exceptions import (
    AssimilationError,
    CholeskyFactorizationError,
    ConfigurationError,
    NumericalError,
    SolverConvergenceError,
)
from ensemble_da.filters.enkf import AssimilationResult, EnsembleKalmanFilter
from ensemble_da.operators.observation import ObservationMapping, ObservationOperator

__version__ = "0.1.0"

__all__ = [
    "AssimilationConfig",
    "SolverConfig",
    "AssimilationError",
    "CholeskyFactorizationError",
    "ConfigurationError",
    "NumericalError",
    "SolverConvergenceError",
    "AssimilationResult",
    "EnsembleKalmanFilter",
    "ObservationMapping",
    "ObservationOperator",
]
