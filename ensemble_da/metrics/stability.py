"""
Numerical stability diagnostics for covariance matrices.

With DEBUG logging enabled, the Kalman gain solver reports the trace and
symmetry error of the forecast covariance P, and the condition number and
smallest eigenvalue of the innovation covariance S = H P H^T + R.

"""

from __future__ import annotations

import math

import tensorflow as tf


def check_symmetry(matrix: tf.Tensor) -> float:
    """
    Check symmetry of a matrix via max|P - P^T|.

    Parameters
    ----------
    matrix : tf.Tensor
        Matrix to check, shape (n, n).

    Returns
    -------
    float
        Maximum absolute element-wise error |P - P^T|. 0.0 for an empty
        matrix.

    Notes
    -----
    A sample covariance A A^T is symmetric up to rounding; expect errors
    near machine epsilon times the largest entry.
    """
    matrix = tf.convert_to_tensor(matrix)
    if tf.size(matrix) == 0:
        return 0.0
    return float(tf.reduce_max(tf.abs(matrix - tf.transpose(matrix))))


def check_positive_definite(matrix: tf.Tensor) -> tuple[float, bool]:
    """
    Check positive definiteness via eigenvalue analysis.

    Parameters
    ----------
    matrix : tf.Tensor
        Symmetric matrix, shape (n, n).

    Returns
    -------
    min_eigval : float
        Smallest eigenvalue.
    is_pd : bool
        Whether min_eigval > 0.

    Notes
    -----
    A sample covariance from N members has rank at most N - 1, so it is
    only positive semi-definite when n >= N. R must be strictly positive
    definite.
    """
    matrix = tf.convert_to_tensor(matrix)
    eigvals = tf.linalg.eigvalsh(0.5 * (matrix + tf.transpose(matrix)))
    min_eigval = float(tf.reduce_min(eigvals))
    return min_eigval, min_eigval > 0.0


def compute_condition_number(matrix: tf.Tensor) -> float:
    """
    Condition number κ = σ_max / σ_min.

    Parameters
    ----------
    matrix : tf.Tensor
        Input matrix of shape (n, n).

    Returns
    -------
    float
        Condition number; inf for a singular matrix.

    Notes
    -----
    Interpretation:
        - κ < 10³: Excellent conditioning
        - κ ∈ [10³, 10⁶]: Acceptable
        - κ ∈ [10⁶, 10¹⁰]: Caution, the Krylov solve may need more iterations
        - κ > 10¹⁰: Dangerous, near-singular
    """
    matrix = tf.convert_to_tensor(matrix)
    s = tf.linalg.svd(matrix, compute_uv=False)
    s_max = float(tf.reduce_max(s))
    s_min = float(tf.reduce_min(s))
    if s_min == 0.0:
        return math.inf
    return s_max / s_min


def compute_trace(matrix: tf.Tensor) -> float:
    """
    Total variance tr(P).

    Parameters
    ----------
    matrix : tf.Tensor
        Matrix, shape (n, n).

    Returns
    -------
    float
        Sum of the diagonal.
    """
    return float(tf.linalg.trace(tf.convert_to_tensor(matrix)))
