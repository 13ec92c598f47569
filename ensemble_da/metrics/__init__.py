"""
Diagnostics for assimilation cycles.

This package provides metrics for:
- Accuracy: RMSE of the ensemble mean, ensemble spread
- Stability: symmetry, positive definiteness, conditioning
"""

from __future__ import annotations

from ensemble_da.metrics.accuracy import (
    compute_rmse,
    compute_ensemble_mean_rmse,
    compute_ensemble_spread,
)

from ensemble_da.metrics.stability import (
    check_symmetry,
    check_positive_definite,
    compute_condition_number,
    compute_trace,
)

__all__ = [
    # Accuracy metrics
    'compute_rmse',
    'compute_ensemble_mean_rmse',
    'compute_ensemble_spread',
    # Stability metrics
    'check_symmetry',
    'check_positive_definite',
    'compute_condition_number',
    'compute_trace',
]
