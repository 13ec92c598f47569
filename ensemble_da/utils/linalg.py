"""
Linear algebra utilities for ensemble data assimilation.

Conversions between the caller's ensemble representation and tensors,
plus small helpers shared by the filters and the diagnostics.

"""

from __future__ import annotations

from typing import Sequence

import numpy as np
import tensorflow as tf


def as_vector(value, dtype: tf.DType = tf.float64) -> tf.Tensor:
    """
    Read a vector-like value (tf.Variable, tf.Tensor, ndarray, list) as a
    1D tensor of the given dtype.
    """
    if isinstance(value, tf.Variable):
        value = value.value()
    return tf.reshape(tf.cast(tf.convert_to_tensor(value), dtype), [-1])


def stack_ensemble(ensemble: Sequence, dtype: tf.DType = tf.float64) -> tf.Tensor:
    """
    Stack ensemble members into a single tensor.

    Parameters
    ----------
    ensemble : sequence
        N vectors of length sim_size.
    dtype : tf.DType
        Output dtype.

    Returns
    -------
    tf.Tensor
        Ensemble matrix of shape (N, sim_size).
    """
    return tf.stack([as_vector(member, dtype) for member in ensemble], axis=0)


def ensure_symmetric(matrix: tf.Tensor) -> tf.Tensor:
    """
    Enforce symmetry by averaging matrix with its transpose.

    Parameters
    ----------
    matrix : tf.Tensor
        Matrix of shape (n, n).

    Returns
    -------
    tf.Tensor
        Symmetric matrix of shape (n, n).
    """
    matrix = tf.convert_to_tensor(matrix)
    return 0.5 * (matrix + tf.transpose(matrix))


def assign_in_place(member, shift: tf.Tensor) -> None:
    """
    Add ``shift`` to an ensemble member without rebinding it.

    tf.Variable members use ``assign_add``; ndarray members are updated
    through their buffer, so every outside reference observes the change.
    """
    if isinstance(member, tf.Variable):
        member.assign_add(tf.cast(tf.reshape(shift, member.shape), member.dtype))
    else:
        member += np.asarray(shift, dtype=member.dtype).reshape(member.shape)


def is_mutable_member(member) -> bool:
    """Whether ``assign_in_place`` can update this member."""
    if isinstance(member, tf.Variable):
        return True
    return isinstance(member, np.ndarray) and member.flags.writeable


def has_floating_dtype(member) -> bool:
    """Whether the member can hold a fractional analysis without truncation."""
    if isinstance(member, tf.Variable):
        return member.dtype.is_floating
    return np.issubdtype(np.asarray(member).dtype, np.floating)
