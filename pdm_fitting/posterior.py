"""
PosteriorFitter component for conditioning a PDM on point observations.

The model coefficients are independent unit Gaussians. An observation of
reference point ``i`` at position ``x`` with noise covariance ``S`` reads

    x = reference[i] + mean[i] + Q_i @ alpha + e,    e ~ N(0, S)

where ``Q_i`` holds the basis rows of point ``i`` scaled by the mode standard
deviations. The posterior over ``alpha`` is Gaussian and computed in closed
form with Cholesky factorizations.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence

import numpy as np
from scipy.linalg import block_diag, cho_factor, cho_solve

from .errors import EmptyEvidenceError, NoiseCovarianceError, ShapeMismatchError
from .model import PointDistributionModel

logger = logging.getLogger(__name__)


def isotropic_covariance(variance: float = 1.0) -> np.ndarray:
    return variance * np.eye(3)


@dataclass(frozen=True, eq=False)
class PointObservation:
    """Observed position of one reference point."""
    point_id: int
    position: np.ndarray                # (3,)
    noise_covariance: np.ndarray = field(default_factory=isotropic_covariance)  # (3, 3) SPD

    def __post_init__(self):
        position = np.asarray(self.position, dtype=np.float64).reshape(-1)
        covariance = np.asarray(self.noise_covariance, dtype=np.float64)
        if position.shape != (3,):
            raise ShapeMismatchError(f"Observed position must have 3 coordinates, got {position.shape}")
        if covariance.shape != (3, 3):
            raise ShapeMismatchError(f"Noise covariance must be 3x3, got {covariance.shape}")
        if not np.allclose(covariance, covariance.T):
            raise NoiseCovarianceError(f"Noise covariance of point {self.point_id} is not symmetric")
        if np.linalg.eigvalsh(covariance)[0] <= 0:
            raise NoiseCovarianceError(f"Noise covariance of point {self.point_id} is not positive definite")
        object.__setattr__(self, "point_id", int(self.point_id))
        object.__setattr__(self, "position", position)
        object.__setattr__(self, "noise_covariance", covariance)


@dataclass(frozen=True, eq=False)
class PosteriorModel(PointDistributionModel):
    """PDM conditioned on observations.

    ``coefficients`` and ``coefficient_covariance`` describe the posterior
    over the prior model's standardized coefficients; the inherited fields
    describe the same distribution as a model of its own.
    """
    coefficients: Optional[np.ndarray] = None             # (K_prior,)
    coefficient_covariance: Optional[np.ndarray] = None   # (K_prior, K_prior)

    def __post_init__(self):
        super().__post_init__()
        if self.coefficients is not None:
            coefficients = np.array(self.coefficients, dtype=np.float64).reshape(-1)
            coefficients.setflags(write=False)
            object.__setattr__(self, "coefficients", coefficients)
        if self.coefficient_covariance is not None:
            covariance = np.array(self.coefficient_covariance, dtype=np.float64)
            covariance.setflags(write=False)
            object.__setattr__(self, "coefficient_covariance", covariance)


class PosteriorFitter:
    """Closed-form Gaussian posterior of a PDM given point observations."""

    @staticmethod
    def observations_from_indexed(
        points: np.ndarray,
        indices: np.ndarray,
        noise_covariance: Optional[np.ndarray] = None,
    ) -> list[PointObservation]:
        """Pair indexed target points with a shared noise covariance.

        Args:
            points: Observed positions of shape (n, 3).
            indices: Reference point ids of shape (n,).
            noise_covariance: 3x3 covariance; isotropic unit noise if None.

        Returns:
            One observation per point.
        """
        points = np.asarray(points, dtype=np.float64).reshape(-1, 3)
        indices = np.asarray(indices).reshape(-1)
        if len(points) != len(indices):
            raise ShapeMismatchError(f"{len(points)} points but {len(indices)} indices")
        covariance = isotropic_covariance() if noise_covariance is None else noise_covariance
        return [
            PointObservation(point_id=int(i), position=p, noise_covariance=covariance)
            for i, p in zip(indices, points)
        ]

    @staticmethod
    def compute_posterior(
        pdm: PointDistributionModel,
        observations: Sequence[PointObservation],
    ) -> PosteriorModel:
        """Condition ``pdm`` on ``observations``.

        The linear system is solved in observation space (3n x 3n) when
        there are at most as many observed coordinates as model modes, and
        in coefficient space (K x K) otherwise. Both forms give the same
        posterior.

        Args:
            pdm: Prior model, left unchanged.
            observations: Non-empty sequence of point observations. Repeated
                point ids act as independent noisy readings.

        Returns:
            Posterior model over the same reference domain.

        Raises:
            EmptyEvidenceError: If no observations are given.
            PointIdError: If an observation references an unknown point.
        """
        if len(observations) == 0:
            raise EmptyEvidenceError("Posterior requires at least one point observation")

        point_ids = pdm.check_point_ids([o.point_id for o in observations])
        positions = np.stack([o.position for o in observations])
        covariances = np.stack([o.noise_covariance for o in observations])
        n_obs = len(observations)
        rank = pdm.rank

        if rank == 0:
            return PosteriorModel(
                reference=pdm.reference,
                mean=pdm.mean,
                basis=pdm.basis,
                variances=pdm.variances,
                coefficients=np.zeros(0),
                coefficient_covariance=np.zeros((0, 0)),
            )

        q = pdm.marginal_basis(point_ids)
        residual = (positions - pdm.reference[point_ids] - pdm.mean[point_ids]).reshape(-1)
        identity = np.eye(rank)

        if 3 * n_obs <= rank:
            system = q @ q.T + block_diag(*covariances)
            factor = cho_factor(system, lower=True)
            coefficients = q.T @ cho_solve(factor, residual)
            covariance = identity - q.T @ cho_solve(factor, q)
        else:
            # Whiten each observation by its own 3x3 Cholesky factor
            chol = np.linalg.cholesky(covariances)
            q_white = np.linalg.solve(chol, q.reshape(n_obs, 3, rank)).reshape(-1, rank)
            r_white = np.linalg.solve(chol, residual.reshape(n_obs, 3, 1)).reshape(-1)
            system = identity + q_white.T @ q_white
            factor = cho_factor(system, lower=True)
            coefficients = cho_solve(factor, q_white.T @ r_white)
            covariance = cho_solve(factor, identity)
        covariance = 0.5 * (covariance + covariance.T)

        std = pdm.standard_deviations
        mean = pdm.mean + (pdm.basis @ (std * coefficients)).reshape(-1, 3)

        # Re-diagonalize the posterior covariance in the prior's mode space
        eigvals, eigvecs = np.linalg.eigh(std[:, None] * covariance * std[None, :])
        order = np.argsort(eigvals)[::-1]
        eigvals = np.clip(eigvals[order], 0.0, None)
        eigvecs = eigvecs[:, order]
        keep = eigvals > 0

        logger.debug(
            f"Posterior from {n_obs} observations: rank {int(keep.sum())}/{rank}, "
            f"|alpha| = {np.linalg.norm(coefficients):.4f}"
        )

        return PosteriorModel(
            reference=pdm.reference,
            mean=mean,
            basis=pdm.basis @ eigvecs[:, keep],
            variances=eigvals[keep],
            coefficients=coefficients,
            coefficient_covariance=covariance,
        )
