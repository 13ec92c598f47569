"""
Stochastic Ensemble Kalman Filter.

One assimilation cycle:

    d_m   = y + u_m - H x_m,      u_m ~ N(0, R)
    x_m  <- x_m + P H^T (H P H^T + R)^{-1} d_m

The update is all-or-nothing. Every shift is computed and checked before
the first member is written, so a failed cycle leaves the ensemble exactly
as it was.

References:
    Evensen, G. (2003). The Ensemble Kalman Filter: theoretical formulation
    and practical implementation. Ocean Dynamics, 53, 343-367.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import tensorflow as tf

from ensemble_da.config import AssimilationConfig
from ensemble_da.exceptions import ConfigurationError, NumericalError
from ensemble_da.filters.base import BaseEnsembleFilter
from ensemble_da.filters.covariance import CovarianceEstimator
from ensemble_da.filters.gain import KalmanGainSolver
from ensemble_da.filters.noise import NoiseGenerator
from ensemble_da.metrics.stability import check_symmetry
from ensemble_da.utils.linalg import (
    as_vector,
    assign_in_place,
    ensure_symmetric,
    has_floating_dtype,
    is_mutable_member,
)
from ensemble_da.utils.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class AssimilationResult:
    """Diagnostics of one :meth:`EnsembleKalmanFilter.update_ensemble` call."""
    num_members: int
    sim_size: int
    expt_size: int
    skipped: bool = False
    innovation_norms: List[float] = field(default_factory=list)
    shift_norms: List[float] = field(default_factory=list)
    iterations: List[int] = field(default_factory=list)
    used_fallback: bool = False


class EnsembleKalmanFilter(BaseEnsembleFilter):
    """
    Stochastic EnKF with perturbed observations.

    Parameters
    ----------
    config : AssimilationConfig, optional
        Engine settings (dtype, seed, Krylov solver control).
    covariance_estimator : CovarianceEstimator, optional
        Replacement for the dense sample covariance.
    noise : NoiseGenerator, optional
        Source of observation perturbations. Defaults to a generator seeded
        with ``config.seed``.

    Examples
    --------
    >>> enkf = EnsembleKalmanFilter(AssimilationConfig(seed=0))
    >>> enkf.update_dof_mapping(dof_indices, neighbor_indices, offsets)
    >>> enkf.update_ensemble(ensemble, observations, R)  # mutates ensemble
    """

    def __init__(self, config: Optional[AssimilationConfig] = None,
                 covariance_estimator: Optional[CovarianceEstimator] = None,
                 noise: Optional[NoiseGenerator] = None) -> None:
        super().__init__(config)
        self.noise = noise or NoiseGenerator(seed=self.config.seed, dtype=self.dtype)
        self.gain_solver = KalmanGainSolver(
            config=self.config.solver,
            covariance_estimator=covariance_estimator,
            dtype=self.dtype,
        )

    def _validate(self, ensemble: Sequence, observations: tf.Tensor, R: tf.Tensor) -> int:
        """Check sizes and types before any numerical work; return sim_size."""
        for m, member in enumerate(ensemble):
            if not is_mutable_member(member):
                raise ConfigurationError(
                    f"Ensemble member {m} cannot be updated in place; "
                    "use tf.Variable or a writeable numpy.ndarray")
            if not has_floating_dtype(member):
                raise ConfigurationError(
                    f"Ensemble member {m} has non-floating dtype {member.dtype}")
            if len(member.shape) != 1:
                raise ConfigurationError(
                    f"Ensemble member {m} must be 1D, got shape {tuple(member.shape)}")

        seen = {}
        for m, member in enumerate(ensemble):
            if id(member) in seen:
                raise ConfigurationError(
                    f"Ensemble members {seen[id(member)]} and {m} are the same object")
            seen[id(member)] = m

        sim_size = int(ensemble[0].shape[0])
        for m, member in enumerate(ensemble):
            if int(member.shape[0]) != sim_size:
                raise ConfigurationError(
                    f"Ensemble member {m} has length {int(member.shape[0])}, expected {sim_size}")

        expt_size = int(observations.shape[0])
        if R.shape.rank != 2 or tuple(R.shape) != (expt_size, expt_size):
            raise ConfigurationError(
                f"R must have shape ({expt_size}, {expt_size}), got {tuple(R.shape)}")
        return sim_size

    def _check_cycle(self, ensemble: Sequence, sim_size: int,
                     observations: tf.Tensor, R: tf.Tensor) -> None:
        expt_size = int(observations.shape[0])
        if len(ensemble) < 2:
            raise ConfigurationError(
                "At least two ensemble members are needed to estimate a covariance")
        if self.mapping is None:
            raise ConfigurationError(
                "No observation mapping; call update_dof_mapping() first")
        if self.mapping.expt_size != expt_size:
            raise ConfigurationError(
                f"Mapping covers {self.mapping.expt_size} observations, "
                f"got {expt_size} observed values")
        self.mapping.validate(sim_size)

        if not bool(tf.reduce_all(tf.math.is_finite(observations))):
            raise ConfigurationError("Observations contain non-finite values")
        if not bool(tf.reduce_all(tf.math.is_finite(R))):
            raise ConfigurationError("R contains non-finite values")
        scale = max(1.0, float(tf.reduce_max(tf.abs(R))))
        if check_symmetry(R) > self.config.symmetry_tolerance * scale:
            raise ConfigurationError("R is not symmetric")

    def update_ensemble(self, ensemble: Sequence, observations, R) -> AssimilationResult:
        """
        Assimilate one set of observations into the ensemble in place.

        Parameters
        ----------
        ensemble : sequence of tf.Variable or numpy.ndarray
            Forecast members of length sim_size; replaced by the analysis.
        observations : array-like
            Observed values y, shape (expt_size,).
        R : array-like
            Observation-error covariance, SPD, shape (expt_size, expt_size).

        Returns
        -------
        AssimilationResult
            Diagnostics; the analysis itself is written into ``ensemble``.

        Raises
        ------
        ConfigurationError
            Inconsistent inputs; raised before any numerical work.
        CholeskyFactorizationError
            R is not positive definite.
        SolverConvergenceError
            The Krylov solve failed and no fallback is configured.
        NumericalError
            The computed shifts are not finite.
        """
        ensemble = list(ensemble)
        observations = as_vector(observations, self.dtype)
        R = tf.cast(tf.convert_to_tensor(R), self.dtype)
        num_members = len(ensemble)
        expt_size = int(observations.shape[0])

        if num_members == 0:
            logger.warning("Empty ensemble; nothing to assimilate")
            return AssimilationResult(0, 0, expt_size, skipped=True)

        sim_size = self._validate(ensemble, observations, R)
        if sim_size == 0 or expt_size == 0:
            logger.warning("Degenerate cycle (sim_size=%d, expt_size=%d); nothing to assimilate",
                           sim_size, expt_size)
            return AssimilationResult(num_members, sim_size, expt_size, skipped=True)

        self._check_cycle(ensemble, sim_size, observations, R)
        R = ensure_symmetric(R)
        H = self.observation_operator(sim_size)

        logger.info("Assimilating %d observations into %d members (state size %d)",
                    expt_size, num_members, sim_size)

        # d_m = u_m + y - H x_m
        noise = self.noise.sample_members(R, num_members)
        predicted = tf.stack(
            [H.apply(as_vector(member, self.dtype)) for member in ensemble], axis=0)
        innovations = noise + observations[tf.newaxis, :] - predicted

        gain = self.gain_solver.apply_gain(ensemble, H, R, innovations)
        shifts = gain.shifts
        if not bool(tf.reduce_all(tf.math.is_finite(shifts))):
            raise NumericalError("Kalman gain produced non-finite shifts")

        for member, shift in zip(ensemble, tf.unstack(shifts, axis=0)):
            assign_in_place(member, shift.numpy())

        result = AssimilationResult(
            num_members=num_members,
            sim_size=sim_size,
            expt_size=expt_size,
            innovation_norms=[float(v) for v in tf.norm(innovations, axis=1)],
            shift_norms=[float(v) for v in tf.norm(shifts, axis=1)],
            iterations=list(gain.iterations),
            used_fallback=any(gain.used_fallback),
        )
        logger.info("Ensemble updated: mean shift norm %.4e, max CG iterations %d",
                    sum(result.shift_norms) / num_members, max(result.iterations))
        return result
