"""
Synthetic problems for exercising the assimilation engine.
"""

from ensemble_da.data.generators import (
    TwinExperiment,
    generate_twin_experiment,
    make_grid_support_points,
    nearest_neighbor_csr,
)

__all__ = ['TwinExperiment', 'generate_twin_experiment', 'make_grid_support_points',
           'nearest_neighbor_csr']
