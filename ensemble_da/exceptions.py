"""
Exception hierarchy for the assimilation engine.

Every failure surfaces synchronously from
:meth:`ensemble_da.filters.enkf.EnsembleKalmanFilter.update_ensemble`.
A raised exception means no ensemble member was modified.
"""

from __future__ import annotations


class AssimilationError(Exception):
    """Base class for all assimilation failures."""


class ConfigurationError(AssimilationError, ValueError):
    """
    Inputs are inconsistent with each other.

    Raised before any numerical work: malformed CSR offsets, mismatched
    vector/matrix sizes, out-of-range mapping indices, immutable ensemble
    members or invalid solver settings.
    """


class NumericalError(AssimilationError):
    """Base class for failures that happen during the numerical work."""


class CholeskyFactorizationError(NumericalError):
    """The observation-error covariance is not symmetric positive definite."""


class SolverConvergenceError(NumericalError):
    """
    The Krylov solve did not reach its tolerance within the iteration budget.

    Attributes
    ----------
    member : int
        Index of the ensemble member whose innovation failed to converge.
    iterations : int
        Iterations performed.
    residual_norm : float
        Final residual norm.
    threshold : float
        Residual norm that had to be reached.
    """

    def __init__(self, member: int, iterations: int,
                 residual_norm: float, threshold: float) -> None:
        self.member = member
        self.iterations = iterations
        self.residual_norm = residual_norm
        self.threshold = threshold
        super().__init__(
            f"Krylov solve for member {member} did not converge after "
            f"{iterations} iterations (residual {residual_norm:.3e} > {threshold:.3e})"
        )
