"""
Sample covariance of a forecast ensemble.

For N members x_1..x_N of length n:

    mean    = (1/N) sum_m x_m
    A[:, m] = (x_m - mean) / sqrt(N - 1)          shape (n, N)
    P       = A A^T                               shape (n, n)

P is dense: O(n^2 N) time and O(n^2) memory per cycle. That bounds the state
size the engine can handle; localization or low-rank estimators can be
plugged in by passing any object with a ``compute_covariance`` method to the
gain solver.
"""

from __future__ import annotations

from typing import Protocol, Sequence, runtime_checkable

import tensorflow as tf

from ensemble_da.utils.linalg import stack_ensemble


@runtime_checkable
class CovarianceEstimator(Protocol):
    """Strategy for estimating the forecast covariance of an ensemble."""

    def compute_covariance(self, ensemble: Sequence) -> tf.Tensor:
        ...


class SampleCovarianceEstimator:
    """
    Dense sample covariance from the ensemble anomaly matrix.

    Requires at least two members. With a single member the anomaly
    scaling divides by zero and the result is not finite.

    Parameters
    ----------
    dtype : tf.DType
        Element type of the returned tensors.
    """

    def __init__(self, dtype: tf.DType = tf.float64) -> None:
        self.dtype = dtype

    def ensemble_mean(self, ensemble: Sequence) -> tf.Tensor:
        """Per-component mean over members, shape (sim_size,)."""
        return tf.reduce_mean(stack_ensemble(ensemble, self.dtype), axis=0)

    def anomaly_matrix(self, ensemble: Sequence) -> tf.Tensor:
        """
        Scaled deviations from the ensemble mean.

        Returns
        -------
        tf.Tensor
            Shape (sim_size, N); column m is (x_m - mean) / sqrt(N - 1).
        """
        X = stack_ensemble(ensemble, self.dtype)  # (N, n)
        N = tf.cast(tf.shape(X)[0], self.dtype)
        mean = tf.reduce_mean(X, axis=0)
        return tf.transpose(X - mean[tf.newaxis, :]) / tf.sqrt(N - 1.0)

    def compute_covariance(self, ensemble: Sequence) -> tf.Tensor:
        """
        Sample covariance P = A A^T, shape (sim_size, sim_size).

        Examples
        --------
        >>> est = SampleCovarianceEstimator()
        >>> est.compute_covariance([[1.0, 2.0], [3.0, 4.0], [5.0, 6.0]])
        <tf.Tensor: shape=(2, 2), dtype=float64, numpy=array([[4., 4.], [4., 4.]])>
        """
        A = self.anomaly_matrix(ensemble)
        return tf.matmul(A, A, transpose_b=True)
