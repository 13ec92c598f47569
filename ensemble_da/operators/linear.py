"""
Implicit linear operators for the Kalman gain.

The innovation covariance S = H P H^T + R is only ever applied to vectors
inside the Krylov solve, so it is expressed as a composition of
``tf.linalg.LinearOperator`` objects instead of a dense matrix.
"""

from __future__ import annotations

from typing import Sequence

import tensorflow as tf


class LinearOperatorSum(tf.linalg.LinearOperator):
    """
    Sum of linear operators of identical shape: (A_1 + ... + A_k) x.

    Parameters
    ----------
    operators : sequence of tf.linalg.LinearOperator
        Summands, all with the same dtype and shape.
    is_self_adjoint, is_positive_definite, is_non_singular : bool, optional
        Hints about the sum. They cannot be inferred from the summands in
        general, so the caller states them.
    """

    def __init__(self, operators: Sequence[tf.linalg.LinearOperator],
                 is_non_singular=None, is_self_adjoint=None,
                 is_positive_definite=None, name: str = None) -> None:
        parameters = dict(
            operators=operators,
            is_non_singular=is_non_singular,
            is_self_adjoint=is_self_adjoint,
            is_positive_definite=is_positive_definite,
            name=name,
        )
        operators = list(operators)
        if not operators:
            raise ValueError("Expected a non-empty list of operators")
        dtype = operators[0].dtype
        shape = operators[0].shape
        for operator in operators[1:]:
            if operator.dtype != dtype:
                raise TypeError(
                    f"All operators must share a dtype, found {dtype.name} and "
                    f"{operator.dtype.name}")
            if not operator.shape.is_compatible_with(shape):
                raise ValueError(
                    f"All operators must share a shape, found {shape} and {operator.shape}")
        self._operators = operators

        if name is None:
            name = "_p_".join(operator.name for operator in operators)

        super().__init__(
            dtype=dtype,
            is_non_singular=is_non_singular,
            is_self_adjoint=is_self_adjoint,
            is_positive_definite=is_positive_definite,
            is_square=operators[0].is_square,
            name=name,
            parameters=parameters,
        )

    @property
    def operators(self):
        return self._operators

    def _shape(self) -> tf.TensorShape:
        return self._operators[0].shape

    def _shape_tensor(self) -> tf.Tensor:
        return self._operators[0].shape_tensor()

    def _matmul(self, x, adjoint=False, adjoint_arg=False):
        result = self._operators[0].matmul(x, adjoint=adjoint, adjoint_arg=adjoint_arg)
        for operator in self._operators[1:]:
            result = result + operator.matmul(x, adjoint=adjoint, adjoint_arg=adjoint_arg)
        return result

    def _to_dense(self):
        return tf.add_n([operator.to_dense() for operator in self._operators])


def innovation_operator(
    H: tf.linalg.LinearOperator,
    P: tf.Tensor,
    R: tf.Tensor,
) -> LinearOperatorSum:
    """
    Build S = H P H^T + R without materializing H P H^T.

    Parameters
    ----------
    H : tf.linalg.LinearOperator
        Observation operator (expt_size, sim_size).
    P : tf.Tensor
        Forecast sample covariance (sim_size, sim_size).
    R : tf.Tensor
        Observation-error covariance (expt_size, expt_size), SPD.

    Returns
    -------
    LinearOperatorSum
        Self-adjoint positive-definite operator of shape
        (expt_size, expt_size).
    """
    op_P = tf.linalg.LinearOperatorFullMatrix(P, is_self_adjoint=True, name="P")
    op_R = tf.linalg.LinearOperatorFullMatrix(
        R, is_self_adjoint=True, is_positive_definite=True, is_non_singular=True, name="R")
    op_HPHt = tf.linalg.LinearOperatorComposition([H, op_P, H.adjoint()], name="HPHt")
    return LinearOperatorSum(
        [op_HPHt, op_R],
        is_self_adjoint=True,
        is_positive_definite=True,
        is_non_singular=True,
        name="HPHt_plus_R",
    )


def gain_operator(H: tf.linalg.LinearOperator, P: tf.Tensor) -> tf.linalg.LinearOperator:
    """The map v -> P H^T v that turns a solved innovation into a state shift."""
    op_P = tf.linalg.LinearOperatorFullMatrix(P, is_self_adjoint=True, name="P")
    return tf.linalg.LinearOperatorComposition([op_P, H.adjoint()], name="PHt")
