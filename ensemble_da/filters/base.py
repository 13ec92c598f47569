"""
Base class for ensemble filters.

This module defines the abstract interface shared by ensemble filters and
the bookkeeping they all need: the observation mapping, which is rebuilt
only when the spatial layout changes, and the observation operator derived
from it.

Classes:
    BaseEnsembleFilter: Abstract base class for ensemble filters
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Mapping, Optional, Sequence, Union

import tensorflow as tf

from ensemble_da.config import AssimilationConfig
from ensemble_da.exceptions import ConfigurationError
from ensemble_da.operators.observation import ObservationMapping, ObservationOperator
from ensemble_da.utils.logging_config import get_logger

logger = get_logger(__name__)


class BaseEnsembleFilter(ABC):
    """
    Abstract base class for ensemble data-assimilation filters.

    Attributes
    ----------
    config : AssimilationConfig
        Engine settings.
    mapping : ObservationMapping or None
        Current observation/DoF correspondence.
    """

    def __init__(self, config: Optional[AssimilationConfig] = None) -> None:
        self.config = config or AssimilationConfig()
        self._mapping: Optional[ObservationMapping] = None
        self._operator: Optional[ObservationOperator] = None

    @property
    def dtype(self) -> tf.DType:
        return self.config.dtype

    @property
    def mapping(self) -> Optional[ObservationMapping]:
        return self._mapping

    @mapping.setter
    def mapping(self, value: ObservationMapping) -> None:
        self._mapping = value
        self._operator = None

    def update_dof_mapping(
        self,
        dof_indices: Union[Mapping[int, Any], Sequence[int]],
        neighbor_indices: Sequence[int],
        offsets: Sequence[int],
    ) -> ObservationMapping:
        """
        Rebuild the observation mapping from a nearest-neighbour search.

        Call whenever the mesh or the observation locations change.

        Parameters
        ----------
        dof_indices : mapping or sequence
            Support-point enumeration, see
            :meth:`ObservationMapping.from_neighbors`.
        neighbor_indices : sequence of int
            Flat CSR neighbour positions.
        offsets : sequence of int
            CSR offsets, length expt_size + 1.

        Returns
        -------
        ObservationMapping
            The new mapping, also stored on the filter.
        """
        self.mapping = ObservationMapping.from_neighbors(dof_indices, neighbor_indices, offsets)
        logger.info("Observation mapping rebuilt: %d observations, %d pairs",
                    self._mapping.expt_size, len(self._mapping))
        return self._mapping

    def observation_operator(self, sim_size: int) -> ObservationOperator:
        """
        Observation operator for the current mapping, cached until the
        mapping or the state size changes.
        """
        if self._mapping is None:
            raise ConfigurationError(
                "No observation mapping; call update_dof_mapping() first")
        if (self._operator is None or self._operator.sim_size != sim_size
                or self._operator.dtype != self.dtype):
            self._operator = ObservationOperator(self._mapping, sim_size, dtype=self.dtype)
        return self._operator

    @abstractmethod
    def update_ensemble(self, ensemble: Sequence, observations, R) -> Any:
        """
        Assimilate observations into the ensemble in place.

        Parameters
        ----------
        ensemble : sequence
            Forecast members, mutated in place.
        observations : array-like
            Observation vector (expt_size,).
        R : array-like
            Observation-error covariance (expt_size, expt_size).
        """
        pass
