"""
Kalman gain application through an implicit Krylov solve.

For perturbed innovations d_m the stochastic EnKF shift is

    shift_m = K d_m,    K = P H^T (H P H^T + R)^{-1}

K is never formed. S = H P H^T + R is built once per cycle as a composition
of linear operators and each system S v_m = d_m is solved with conjugate
gradients (S is symmetric positive definite whenever R is). The shift is
then P H^T v_m.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import tensorflow as tf

from ensemble_da.config import SolverConfig
from ensemble_da.exceptions import SolverConvergenceError
from ensemble_da.filters.covariance import CovarianceEstimator, SampleCovarianceEstimator
from ensemble_da.metrics.stability import (
    check_positive_definite,
    check_symmetry,
    compute_condition_number,
    compute_trace,
)
from ensemble_da.operators.linear import gain_operator, innovation_operator
from ensemble_da.utils.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class GainResult:
    """Per-member output of :meth:`KalmanGainSolver.apply_gain`."""
    shifts: tf.Tensor
    iterations: List[int] = field(default_factory=list)
    residual_norms: List[float] = field(default_factory=list)
    used_fallback: List[bool] = field(default_factory=list)


class KalmanGainSolver:
    """
    Applies K = P H^T (H P H^T + R)^{-1} to a batch of innovations.

    Parameters
    ----------
    config : SolverConfig, optional
        Convergence control and fallback policy.
    covariance_estimator : CovarianceEstimator, optional
        Strategy that turns the ensemble into P. Defaults to the dense
        :class:`SampleCovarianceEstimator`.
    dtype : tf.DType
        Element type.
    """

    def __init__(self, config: Optional[SolverConfig] = None,
                 covariance_estimator: Optional[CovarianceEstimator] = None,
                 dtype: tf.DType = tf.float64) -> None:
        self.config = config or SolverConfig()
        self.covariance_estimator = covariance_estimator or SampleCovarianceEstimator(dtype)
        self.dtype = dtype

    def _threshold(self, rhs_norm: float) -> float:
        return max(self.config.relative_tolerance * rhs_norm,
                   self.config.absolute_tolerance)

    def solve_innovation(self, S: tf.linalg.LinearOperator, rhs: tf.Tensor,
                         member: int = 0) -> tuple[tf.Tensor, int, float, bool]:
        """
        Solve S v = rhs for one member.

        Returns
        -------
        v : tf.Tensor
            Solution of shape (expt_size,).
        iterations : int
            CG iterations performed, including a failed attempt that
            preceded a fallback.
        residual_norm : float
            Final residual norm of the CG iteration.
        used_fallback : bool
            Whether the direct solve replaced CG.

        Raises
        ------
        SolverConvergenceError
            If CG does not converge and the fallback policy is ``"raise"``.
        """
        rhs_norm = float(tf.norm(rhs))
        if rhs_norm == 0.0:
            return tf.zeros_like(rhs), 0, 0.0, False

        # conjugate_gradient scales tol by the initial residual, which is rhs for x0 = 0
        threshold = self._threshold(rhs_norm)
        state = tf.linalg.experimental.conjugate_gradient(
            S, rhs, tol=threshold / rhs_norm, max_iter=self.config.max_iterations)
        iterations = int(state.i)
        residual_norm = float(tf.norm(state.r))

        # Stopping before the budget means the residual test was met
        if residual_norm <= threshold or iterations < self.config.max_iterations:
            return state.x, iterations, residual_norm, False

        if self.config.fallback == "direct":
            logger.warning(
                "CG did not converge for member %d (%d iterations, residual %.3e > %.3e); "
                "falling back to a direct solve", member, iterations, residual_norm, threshold)
            v = tf.linalg.solve(S.to_dense(), rhs[:, tf.newaxis])[:, 0]
            return v, iterations, residual_norm, True

        raise SolverConvergenceError(member, iterations, residual_norm, threshold)

    def _log_diagnostics(self, P: tf.Tensor, S: tf.linalg.LinearOperator) -> None:
        logger.debug("Forecast covariance: trace %.6e, symmetry error %.3e",
                     compute_trace(P), check_symmetry(P))
        S_dense = S.to_dense()
        min_eig, is_pd = check_positive_definite(S_dense)
        logger.debug("Innovation covariance: condition number %.3e, min eigenvalue %.3e%s",
                     compute_condition_number(S_dense), min_eig,
                     "" if is_pd else " (not positive definite)")

    def apply_gain(
        self,
        ensemble: Sequence,
        H: tf.linalg.LinearOperator,
        R: tf.Tensor,
        innovations: tf.Tensor,
    ) -> GainResult:
        """
        Compute the state-space shift of every member.

        Parameters
        ----------
        ensemble : sequence
            Forecast ensemble, N members of length sim_size.
        H : tf.linalg.LinearOperator
            Observation operator (expt_size, sim_size).
        R : tf.Tensor
            Observation-error covariance (expt_size, expt_size).
        innovations : tf.Tensor
            Perturbed innovations d_m, shape (N, expt_size).

        Returns
        -------
        GainResult
            ``shifts`` has shape (N, sim_size).
        """
        R = tf.cast(R, self.dtype)
        innovations = tf.cast(innovations, self.dtype)

        P = self.covariance_estimator.compute_covariance(ensemble)
        S = innovation_operator(H, P, R)
        if logger.isEnabledFor(logging.DEBUG):
            self._log_diagnostics(P, S)
        K_tail = gain_operator(H, P)

        result = GainResult(shifts=None)
        solutions = []
        for member in range(int(innovations.shape[0])):
            v, iterations, residual_norm, used_fallback = self.solve_innovation(
                S, innovations[member], member)
            solutions.append(v)
            result.iterations.append(iterations)
            result.residual_norms.append(residual_norm)
            result.used_fallback.append(used_fallback)

        V = tf.stack(solutions, axis=1)  # (expt_size, N)
        result.shifts = tf.transpose(K_tail.matmul(V))
        logger.debug("Krylov iterations per member: %s", result.iterations)
        return result
