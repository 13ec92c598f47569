"""
Observation mapping and observation operator (H).

An external nearest-neighbour search pairs every observation with one or
more simulation support points and reports the result in CSR form:

    neighbor_indices : flat positions into the support-point enumeration
    offsets          : length expt_size + 1, observation i owns
                       neighbor_indices[offsets[i]:offsets[i + 1]]

:class:`ObservationMapping` flattens that into ordered
(observation_index, simulation_index) pairs, and :class:`ObservationOperator`
turns the pairs into the selection operator H of shape (expt_size, sim_size).

When several simulation indices map to the same observation, the last pair
in mapping order wins, for the sparse matrix and the gather alike.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Mapping, Sequence, Tuple, Union

import numpy as np
import tensorflow as tf

from ensemble_da.exceptions import ConfigurationError


def _as_index_array(values, name: str) -> np.ndarray:
    array = np.asarray(values)
    if array.size == 0:
        return np.zeros(0, dtype=np.int64)
    if array.ndim != 1 or not np.issubdtype(array.dtype, np.integer):
        raise ConfigurationError(f"{name} must be a 1D integer array")
    return array.astype(np.int64)


def _dof_enumeration(dof_indices: Union[Mapping[int, object], Sequence[int]]) -> np.ndarray:
    # Support points keyed by DoF are enumerated in ascending DoF order.
    if isinstance(dof_indices, Mapping):
        return np.asarray(sorted(int(k) for k in dof_indices.keys()), dtype=np.int64)
    return _as_index_array(dof_indices, "dof_indices")


@dataclass(frozen=True)
class ObservationMapping:
    """
    Ordered correspondence between observations and simulation DoFs.

    Parameters
    ----------
    observation_indices : tuple of int
        Observation index of every pair.
    simulation_indices : tuple of int
        Simulation degree of freedom of every pair.
    expt_size : int
        Number of observations (rows of H).
    """

    observation_indices: Tuple[int, ...]
    simulation_indices: Tuple[int, ...]
    expt_size: int

    def __post_init__(self) -> None:
        if len(self.observation_indices) != len(self.simulation_indices):
            raise ConfigurationError(
                "observation_indices and simulation_indices must have the same length")
        if self.expt_size < 0:
            raise ConfigurationError(f"expt_size must be non-negative, got {self.expt_size}")
        for obs in self.observation_indices:
            if not 0 <= obs < self.expt_size:
                raise ConfigurationError(
                    f"observation index {obs} outside [0, {self.expt_size})")

    @classmethod
    def from_pairs(cls, pairs: Sequence[Tuple[int, int]], expt_size: int) -> "ObservationMapping":
        """Build a mapping from an explicit list of (observation, simulation) pairs."""
        pairs = [(int(o), int(s)) for o, s in pairs]
        return cls(
            observation_indices=tuple(o for o, _ in pairs),
            simulation_indices=tuple(s for _, s in pairs),
            expt_size=int(expt_size),
        )

    @classmethod
    def from_neighbors(
        cls,
        dof_indices: Union[Mapping[int, object], Sequence[int]],
        neighbor_indices: Sequence[int],
        offsets: Sequence[int],
    ) -> "ObservationMapping":
        """
        Flatten a CSR nearest-neighbour result into (observation, DoF) pairs.

        Parameters
        ----------
        dof_indices : mapping or sequence
            Enumeration of the simulation support points. Either a sequence
            whose entry p is the DoF of support point p, or a dict
            {dof: coordinates} enumerated in ascending DoF order.
        neighbor_indices : sequence of int
            Flat support-point positions returned by the neighbour search.
        offsets : sequence of int
            CSR offsets of length expt_size + 1.

        Returns
        -------
        ObservationMapping
            One pair per neighbour, ordered by observation then by position
            in ``neighbor_indices``.

        Raises
        ------
        ConfigurationError
            If the CSR arrays are malformed or reference unknown points.
        """
        dofs = _dof_enumeration(dof_indices)
        neighbors = _as_index_array(neighbor_indices, "neighbor_indices")
        offsets = _as_index_array(offsets, "offsets")

        if offsets.size == 0:
            raise ConfigurationError("offsets must contain at least one entry")
        if offsets[0] != 0:
            raise ConfigurationError(f"offsets[0] must be 0, got {offsets[0]}")
        if np.any(np.diff(offsets) < 0):
            raise ConfigurationError("offsets must be non-decreasing")
        if offsets[-1] != neighbors.size:
            raise ConfigurationError(
                f"offsets[-1] ({offsets[-1]}) must equal the number of neighbours "
                f"({neighbors.size})")
        if neighbors.size and (neighbors.min() < 0 or neighbors.max() >= dofs.size):
            raise ConfigurationError(
                f"neighbour positions must lie in [0, {dofs.size})")

        expt_size = offsets.size - 1
        counts = np.diff(offsets)
        observation = np.repeat(np.arange(expt_size, dtype=np.int64), counts)
        simulation = dofs[neighbors]

        return cls(
            observation_indices=tuple(int(i) for i in observation),
            simulation_indices=tuple(int(i) for i in simulation),
            expt_size=int(expt_size),
        )

    @property
    def pairs(self) -> Tuple[Tuple[int, int], ...]:
        return tuple(zip(self.observation_indices, self.simulation_indices))

    def __len__(self) -> int:
        return len(self.observation_indices)

    def validate(self, sim_size: int) -> None:
        """Check every simulation index against the state size."""
        for sim in self.simulation_indices:
            if not 0 <= sim < sim_size:
                raise ConfigurationError(
                    f"simulation index {sim} outside [0, {sim_size})")

    def effective_pairs(self) -> Dict[int, int]:
        """
        Reduce the mapping to one simulation index per observation.

        Later pairs overwrite earlier ones. Observations without any pair
        are absent from the result.
        """
        last = {}
        for obs, sim in zip(self.observation_indices, self.simulation_indices):
            last[obs] = sim
        return dict(sorted(last.items()))


class ObservationOperator(tf.linalg.LinearOperator):
    """
    Selection operator H mapping simulation space to observation space.

    H has a single 1.0 per observed row, at the column chosen by
    :meth:`ObservationMapping.effective_pairs`. It can be applied through the
    sparse matrix (``matvec``/``matmul``, including the adjoint) or through
    a direct gather (:meth:`apply`); both give identical results.

    Parameters
    ----------
    mapping : ObservationMapping
        Observation/DoF correspondence.
    sim_size : int
        Length of a simulation state vector (columns of H).
    dtype : tf.DType
        Element type.
    """

    def __init__(self, mapping: ObservationMapping, sim_size: int,
                 dtype: tf.DType = tf.float64,
                 name: str = "ObservationOperator") -> None:
        parameters = dict(mapping=mapping, sim_size=sim_size, dtype=dtype, name=name)
        mapping.validate(sim_size)

        self._mapping = mapping
        self._sim_size = int(sim_size)
        self._expt_size = int(mapping.expt_size)

        effective = mapping.effective_pairs()
        self._obs_indices = tf.constant(list(effective.keys()), shape=[len(effective)], dtype=tf.int64)
        self._sim_indices = tf.constant(list(effective.values()), shape=[len(effective)], dtype=tf.int64)
        self._sparse = self.build_sparse(dtype)

        super().__init__(dtype=dtype, name=name, parameters=parameters)

    @property
    def mapping(self) -> ObservationMapping:
        return self._mapping

    @property
    def expt_size(self) -> int:
        return self._expt_size

    @property
    def sim_size(self) -> int:
        return self._sim_size

    def build_sparse(self, dtype: tf.DType = None) -> tf.sparse.SparseTensor:
        """
        Materialize H as a SparseTensor of shape (expt_size, sim_size).

        Returns
        -------
        tf.sparse.SparseTensor
            Value 1.0 at (observation, simulation) for each effective pair.
        """
        dtype = dtype or self.dtype
        indices = tf.stack([self._obs_indices, self._sim_indices], axis=1)
        values = tf.ones(tf.shape(self._obs_indices), dtype=dtype)
        sparse = tf.sparse.SparseTensor(
            indices=tf.reshape(indices, [-1, 2]),
            values=values,
            dense_shape=[self._expt_size, self._sim_size],
        )
        return tf.sparse.reorder(sparse)

    def apply(self, state) -> tf.Tensor:
        """
        Compute H @ state by gathering the observed components.

        Parameters
        ----------
        state : tf.Tensor
            Simulation state of shape (sim_size,).

        Returns
        -------
        tf.Tensor
            Observation-space vector of shape (expt_size,). Unobserved rows
            are zero.
        """
        state = tf.reshape(tf.cast(tf.convert_to_tensor(state), self.dtype), [-1])
        values = tf.gather(state, self._sim_indices)
        return tf.scatter_nd(
            tf.expand_dims(self._obs_indices, axis=-1),
            values,
            shape=tf.constant([self._expt_size], dtype=tf.int64),
        )

    def _shape(self) -> tf.TensorShape:
        return tf.TensorShape([self._expt_size, self._sim_size])

    def _shape_tensor(self) -> tf.Tensor:
        return tf.constant([self._expt_size, self._sim_size], dtype=tf.int32)

    def _matmul(self, x, adjoint=False, adjoint_arg=False):
        return tf.sparse.sparse_dense_matmul(
            self._sparse, x, adjoint_a=adjoint, adjoint_b=adjoint_arg)

    def _to_dense(self):
        return tf.sparse.to_dense(self._sparse)
