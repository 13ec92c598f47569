"""
Configuration objects for the assimilation engine.

Both classes can be built from a nested configuration dictionary, e.g. one
loaded from the simulation driver's input file:

    assimilation:
      dtype: float64
      seed: 1234
      solver:
        max_iterations: 500
        relative_tolerance: 1.0e-10
        absolute_tolerance: 1.0e-12
        fallback: direct
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

import tensorflow as tf

from ensemble_da.exceptions import ConfigurationError

FALLBACK_POLICIES = ("raise", "direct")


@dataclass
class SolverConfig:
    """
    Convergence control for the Krylov solve of (H P H^T + R) v = d.

    The solve stops once ||r|| <= max(relative_tolerance * ||d||,
    absolute_tolerance) or after ``max_iterations`` iterations.

    Parameters
    ----------
    max_iterations : int
        Iteration budget per right-hand side. Default 1000.
    relative_tolerance : float
        Tolerance relative to the norm of the innovation. Default 1e-10.
    absolute_tolerance : float
        Absolute floor on the residual norm. Default 1e-12.
    fallback : str
        What to do when the budget is exhausted: ``"raise"`` (default)
        raises :class:`SolverConvergenceError`; ``"direct"`` materializes the
        operator and solves it densely.
    """

    max_iterations: int = 1000
    relative_tolerance: float = 1e-10
    absolute_tolerance: float = 1e-12
    fallback: str = "raise"

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        if int(self.max_iterations) < 1:
            raise ConfigurationError(
                f"max_iterations must be positive, got {self.max_iterations}")
        if self.relative_tolerance < 0.0 or self.absolute_tolerance < 0.0:
            raise ConfigurationError("solver tolerances must be non-negative")
        if self.relative_tolerance == 0.0 and self.absolute_tolerance == 0.0:
            raise ConfigurationError(
                "at least one of relative_tolerance / absolute_tolerance must be > 0")
        if self.fallback not in FALLBACK_POLICIES:
            raise ConfigurationError(
                f"fallback must be one of {FALLBACK_POLICIES}, got {self.fallback!r}")

    @staticmethod
    def from_config(cfg: dict) -> "SolverConfig":
        return SolverConfig(
            max_iterations=int(cfg.get("max_iterations", 1000)),
            relative_tolerance=float(cfg.get("relative_tolerance", 1e-10)),
            absolute_tolerance=float(cfg.get("absolute_tolerance", 1e-12)),
            fallback=str(cfg.get("fallback", "raise")),
        )


@dataclass
class AssimilationConfig:
    """
    Engine-wide settings.

    Parameters
    ----------
    solver : SolverConfig
        Krylov convergence control.
    dtype : tf.DType
        Element type of every vector and matrix the engine builds.
    seed : int | None
        Seed of the engine's random generator. None draws a
        non-deterministic seed.
    symmetry_tolerance : float
        Maximum |R - R^T| accepted for the observation covariance.
    """

    solver: SolverConfig = field(default_factory=SolverConfig)
    dtype: tf.DType = tf.float64
    seed: Optional[int] = None
    symmetry_tolerance: float = 1e-8

    def __post_init__(self) -> None:
        self.dtype = tf.as_dtype(self.dtype)
        if not self.dtype.is_floating:
            raise ConfigurationError(f"dtype must be floating point, got {self.dtype.name}")
        if self.symmetry_tolerance < 0.0:
            raise ConfigurationError("symmetry_tolerance must be non-negative")

    @staticmethod
    def from_config(cfg: dict) -> "AssimilationConfig":
        """
        Construct an AssimilationConfig from a configuration dictionary.

        Parameters
        ----------
        cfg : dict
            Either the ``assimilation`` section itself or a dictionary that
            contains it. Keys: ``dtype`` (str), ``seed`` (int),
            ``symmetry_tolerance`` (float) and ``solver`` (dict).

        Returns
        -------
        AssimilationConfig
        """
        if "assimilation" in cfg:
            cfg = cfg["assimilation"]
        seed = cfg.get("seed")
        return AssimilationConfig(
            solver=SolverConfig.from_config(cfg.get("solver", {})),
            dtype=tf.as_dtype(cfg.get("dtype", "float64")),
            seed=None if seed is None else int(seed),
            symmetry_tolerance=float(cfg.get("symmetry_tolerance", 1e-8)),
        )
