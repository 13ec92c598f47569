"""
Observation mapping and implicit linear operators.
"""

from ensemble_da.operators.observation import ObservationMapping, ObservationOperator
from ensemble_da.operators.linear import LinearOperatorSum, innovation_operator, gain_operator

__all__ = ['ObservationMapping', 'ObservationOperator', 'LinearOperatorSum',
           'innovation_operator', 'gain_operator']
