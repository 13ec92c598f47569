# ensemble_da/data/generators.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Sequence, Tuple

import numpy as np
import tensorflow as tf
import tensorflow_probability as tfp

tfd = tfp.distributions


@dataclass
class TwinExperiment:
    """
    Synthetic assimilation problem on a 1D rod.

    Attributes
    ----------
    support_points : dict
        {dof: (x,)} coordinates of the simulation degrees of freedom.
    truth : tf.Tensor
        Reference state, shape (sim_size,).
    ensemble : list of tf.Variable
        Forecast members, shape (sim_size,) each.
    observation_locations : tf.Tensor
        Sensor coordinates, shape (expt_size, 1).
    observations : tf.Tensor
        Noisy observations of the truth, shape (expt_size,).
    R : tf.Tensor
        Observation-error covariance, shape (expt_size, expt_size).
    neighbor_indices, offsets : np.ndarray
        CSR nearest-neighbour result linking sensors to support points.
    """

    support_points: Dict[int, Tuple[float, ...]]
    truth: tf.Tensor
    ensemble: list
    observation_locations: tf.Tensor
    observations: tf.Tensor
    R: tf.Tensor
    neighbor_indices: np.ndarray
    offsets: np.ndarray


def make_grid_support_points(num_points: int, length: float = 1.0) -> Dict[int, Tuple[float]]:
    """
    Uniform 1D grid of support points keyed by DoF.

    DoFs are numbered from the right end of the rod, so the DoF order and
    the coordinate order differ, as with finite-element numberings.
    """
    h = length / max(num_points - 1, 1)
    return {num_points - 1 - i: (i * h,) for i in range(num_points)}


def nearest_neighbor_csr(
    support_points: Dict[int, Sequence[float]],
    locations,
    k: int = 1,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Brute-force k-nearest support points of every location.

    Positions refer to the support points enumerated in ascending DoF order.

    Parameters
    ----------
    support_points : dict
        {dof: coordinates}.
    locations : array-like
        Query coordinates, shape (expt_size, dim).
    k : int
        Neighbours per location.

    Returns
    -------
    neighbor_indices : np.ndarray
        Flat positions, shape (expt_size * k,).
    offsets : np.ndarray
        CSR offsets, shape (expt_size + 1,).
    """
    dofs = sorted(support_points)
    points = tf.constant([support_points[d] for d in dofs], dtype=tf.float64)
    locations = tf.reshape(tf.cast(locations, tf.float64), [-1, points.shape[1]])

    diff = locations[:, tf.newaxis, :] - points[tf.newaxis, :, :]
    dist2 = tf.reduce_sum(diff ** 2, axis=-1)  # (expt_size, num_points)
    order = tf.argsort(dist2, axis=1, stable=True)[:, :k]

    expt_size = int(locations.shape[0])
    neighbor_indices = tf.reshape(order, [-1]).numpy().astype(np.int64)
    offsets = np.arange(expt_size + 1, dtype=np.int64) * k
    return neighbor_indices, offsets


def _profile(x: tf.Tensor, center: float, width: float, amplitude: float) -> tf.Tensor:
    return amplitude * tf.exp(-0.5 * ((x - center) / width) ** 2)


def generate_twin_experiment(
    num_points: int = 41,
    num_members: int = 20,
    num_observations: int = 8,
    obs_std: float = 0.05,
    prior_std: float = 0.5,
    correlation_length: float = 0.2,
    neighbors_per_observation: int = 1,
    seed: int = 0,
) -> TwinExperiment:
    """
    Build a twin experiment: a known truth, a biased forecast ensemble and
    noisy point observations of the truth.

    The truth is a Gaussian temperature bump; the forecast ensemble is
    centred on a shifted, flattened bump with spatially correlated
    perturbations drawn from an exponential covariance.

    Parameters
    ----------
    num_points : int
        Simulation degrees of freedom.
    num_members : int
        Ensemble size.
    num_observations : int
        Sensors, spread uniformly along the rod.
    obs_std : float
        Observation noise standard deviation (R = obs_std^2 I).
    prior_std : float
        Standard deviation of the forecast perturbations.
    correlation_length : float
        Length scale of the forecast perturbations.
    neighbors_per_observation : int
        Support points assigned to each sensor.
    seed : int
        Seed of all random draws.

    Returns
    -------
    TwinExperiment
    """
    support_points = make_grid_support_points(num_points)
    dofs = sorted(support_points)
    x = tf.constant([support_points[d][0] for d in dofs], dtype=tf.float64)

    truth = _profile(x, center=0.55, width=0.12, amplitude=2.0)
    background = _profile(x, center=0.45, width=0.18, amplitude=1.5)

    dist = tf.abs(x[:, tf.newaxis] - x[tf.newaxis, :])
    B = prior_std ** 2 * tf.exp(-dist / correlation_length)
    B = B + 1e-10 * tf.eye(num_points, dtype=tf.float64)
    prior = tfd.MultivariateNormalTriL(loc=background, scale_tril=tf.linalg.cholesky(B))
    members = prior.sample(num_members, seed=tf.constant([seed, 1], dtype=tf.int32))
    ensemble = [tf.Variable(members[m], trainable=False, name=f"member_{m}")
                for m in range(num_members)]

    locations = tf.linspace(tf.constant(0.05, tf.float64), tf.constant(0.95, tf.float64),
                            num_observations)[:, tf.newaxis]
    neighbor_indices, offsets = nearest_neighbor_csr(
        support_points, locations, k=neighbors_per_observation)

    # Observe the truth at the first neighbour of every sensor
    first = tf.constant([dofs[p] for p in neighbor_indices[offsets[:-1]]], dtype=tf.int64)
    R = obs_std ** 2 * tf.eye(num_observations, dtype=tf.float64)
    noise = obs_std * tf.random.stateless_normal(
        [num_observations], seed=[seed, 2], dtype=tf.float64)
    observations = tf.gather(truth, first) + noise

    return TwinExperiment(
        support_points=support_points,
        truth=truth,
        ensemble=ensemble,
        observation_locations=locations,
        observations=observations,
        R=R,
        neighbor_indices=neighbor_indices,
        offsets=offsets,
    )
