"""
Accuracy metrics for assimilated ensembles.

This module compares ensembles against a reference ("truth") state, as done
in twin experiments.

"""

from __future__ import annotations

from typing import Sequence

import tensorflow as tf

from ensemble_da.utils.linalg import as_vector, stack_ensemble


def compute_rmse(estimate: tf.Tensor, ground_truth: tf.Tensor) -> float:
    """
    Compute root mean squared error between an estimate and ground truth.

    Parameters
    ----------
    estimate : tf.Tensor
        Estimated state of shape (n,).
    ground_truth : tf.Tensor
        True state of shape (n,).

    Returns
    -------
    float
        RMSE value.

    Examples
    --------
    >>> x_true = tf.constant([1.0, 2.0, 3.0, 4.0])
    >>> x_est = tf.constant([1.1, 2.1, 2.9, 4.1])
    >>> rmse = compute_rmse(x_est, x_true)
    >>> print(f"RMSE: {rmse:.4f}")
    RMSE: 0.1000
    """
    estimate = as_vector(estimate)
    ground_truth = as_vector(ground_truth)
    return float(tf.sqrt(tf.reduce_mean((estimate - ground_truth) ** 2)))


def compute_ensemble_mean_rmse(ensemble: Sequence, ground_truth: tf.Tensor) -> float:
    """RMSE of the ensemble mean against the truth."""
    X = stack_ensemble(ensemble)
    return compute_rmse(tf.reduce_mean(X, axis=0), ground_truth)


def compute_ensemble_spread(ensemble: Sequence) -> float:
    """
    Root of the average ensemble variance, sqrt(tr(P) / n).

    Parameters
    ----------
    ensemble : sequence
        N >= 2 members of length n.

    Returns
    -------
    float
        Ensemble spread. Comparable to the RMSE of the ensemble mean when
        the ensemble is well calibrated.
    """
    X = stack_ensemble(ensemble)
    N = tf.cast(tf.shape(X)[0], X.dtype)
    anomalies = X - tf.reduce_mean(X, axis=0, keepdims=True)
    variance = tf.reduce_sum(anomalies ** 2, axis=0) / (N - 1.0)
    return float(tf.sqrt(tf.reduce_mean(variance)))
