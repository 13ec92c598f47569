"""
Ensemble filtering algorithms.
"""

from ensemble_da.filters.covariance import SampleCovarianceEstimator
from ensemble_da.filters.noise import NoiseGenerator
from ensemble_da.filters.gain import KalmanGainSolver
from ensemble_da.filters.enkf import EnsembleKalmanFilter

__all__ = ['SampleCovarianceEstimator', 'NoiseGenerator', 'KalmanGainSolver', 'EnsembleKalmanFilter']
