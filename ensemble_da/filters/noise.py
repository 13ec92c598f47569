"""
Correlated observation noise for the stochastic EnKF.

Perturbations are drawn as u = L z with R = L L^T and z ~ N(0, I). The
generator owns its random state explicitly: each cycle draws one stateless
seed per ensemble member from a ``tf.random.Generator``, so member m always
receives the same sub-stream for a given generator state regardless of the
order in which members are processed.
"""

from __future__ import annotations

from typing import Optional

import tensorflow as tf
import tensorflow_probability as tfp

from ensemble_da.exceptions import CholeskyFactorizationError
from ensemble_da.utils.logging_config import get_logger

tfd = tfp.distributions

logger = get_logger(__name__)


def cholesky_factor(R: tf.Tensor) -> tf.Tensor:
    """
    Lower-triangular Cholesky factor of an SPD matrix.

    Parameters
    ----------
    R : tf.Tensor
        Symmetric positive-definite matrix (m, m).

    Returns
    -------
    tf.Tensor
        L with R = L @ L^T.

    Raises
    ------
    CholeskyFactorizationError
        If R is not positive definite.
    """
    R = tf.convert_to_tensor(R)
    try:
        L = tf.linalg.cholesky(R)
    except tf.errors.InvalidArgumentError as err:
        raise CholeskyFactorizationError(
            "Observation covariance is not positive definite") from err
    # Some devices return NaNs instead of raising.
    if not bool(tf.reduce_all(tf.math.is_finite(L))):
        raise CholeskyFactorizationError(
            "Observation covariance is not positive definite")
    return L


class NoiseGenerator:
    """
    Draws perturbations u ~ N(0, R).

    Parameters
    ----------
    seed : int, optional
        Seed of the owned generator. None uses non-deterministic state.
    dtype : tf.DType
        Element type of the draws.
    generator : tf.random.Generator, optional
        Use an existing generator instead of creating one. Takes precedence
        over ``seed``.
    """

    def __init__(self, seed: Optional[int] = None, dtype: tf.DType = tf.float64,
                 generator: Optional[tf.random.Generator] = None) -> None:
        if generator is None:
            if seed is None:
                generator = tf.random.Generator.from_non_deterministic_state()
            else:
                generator = tf.random.Generator.from_seed(seed)
        self.generator = generator
        self.dtype = dtype

    def member_seeds(self, num_members: int) -> tf.Tensor:
        """
        One stateless seed per member, advancing the owned generator once.

        Returns
        -------
        tf.Tensor
            int32 tensor of shape (num_members, 2).
        """
        seeds = self.generator.make_seeds(num_members)  # (2, num_members)
        return tf.cast(tf.transpose(seeds) % (2 ** 31 - 1), tf.int32)

    def _distribution(self, L: tf.Tensor) -> tfd.MultivariateNormalTriL:
        loc = tf.zeros(tf.shape(L)[:1], dtype=self.dtype)
        return tfd.MultivariateNormalTriL(loc=loc, scale_tril=tf.cast(L, self.dtype))

    def sample(self, R: tf.Tensor) -> tf.Tensor:
        """
        Single draw from N(0, R).

        Parameters
        ----------
        R : tf.Tensor
            Observation-error covariance (expt_size, expt_size).

        Returns
        -------
        tf.Tensor
            Perturbation of shape (expt_size,).
        """
        return self.sample_members(R, 1)[0]

    def sample_members(self, R: tf.Tensor, num_members: int) -> tf.Tensor:
        """
        One draw per ensemble member, factoring R once.

        Parameters
        ----------
        R : tf.Tensor
            Observation-error covariance (expt_size, expt_size).
        num_members : int
            Number of draws.

        Returns
        -------
        tf.Tensor
            Perturbations of shape (num_members, expt_size).

        Raises
        ------
        CholeskyFactorizationError
            If R is not positive definite.
        """
        R = tf.cast(tf.convert_to_tensor(R), self.dtype)
        expt_size = int(R.shape[0])
        if num_members == 0:
            return tf.zeros([0, expt_size], dtype=self.dtype)
        if expt_size == 0:
            return tf.zeros([num_members, 0], dtype=self.dtype)

        L = cholesky_factor(R)
        mvn = self._distribution(L)
        seeds = self.member_seeds(num_members)
        draws = [mvn.sample(seed=seeds[m]) for m in range(num_members)]
        logger.debug("Drew %d perturbations of size %d", num_members, expt_size)
        return tf.stack(draws, axis=0)
