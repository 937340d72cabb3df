"""
Point distribution model and the PCA builder that creates it.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Union

import numpy as np

from .deformation import DeformationFieldBuilder
from .errors import InsufficientDataError, PointIdError, ShapeMismatchError

logger = logging.getLogger(__name__)

RandomLike = Union[None, int, np.random.Generator]


def as_generator(rng: RandomLike) -> np.random.Generator:
    """Seed, generator or None (fresh entropy) to a numpy Generator."""
    return np.random.default_rng(rng)


def _frozen_array(values) -> np.ndarray:
    array = np.array(values, dtype=np.float64)
    array.setflags(write=False)
    return array


@dataclass(frozen=True, eq=False)
class PointDistributionModel:
    """Linear Gaussian shape model over a fixed reference point set.

    Coefficients are standardized: each one is an independent N(0, 1) latent
    variable and the shape it produces is

        reference + mean + basis @ (sqrt(variances) * coefficients)
    """
    reference: np.ndarray   # (N, 3) reference domain, row index = point id
    mean: np.ndarray        # (N, 3) mean deformation
    basis: np.ndarray       # (3N, K) orthonormal principal directions
    variances: np.ndarray   # (K,) descending mode variances

    def __post_init__(self):
        reference = _frozen_array(self.reference).reshape(-1, 3)
        mean = _frozen_array(self.mean).reshape(-1, 3)
        n = len(reference)
        variances = _frozen_array(self.variances).reshape(-1)
        basis = _frozen_array(self.basis)
        if mean.shape != reference.shape:
            raise ShapeMismatchError(
                f"Mean deformation has {len(mean)} points, reference has {n}"
            )
        if basis.size != 3 * n * len(variances):
            raise ShapeMismatchError(
                f"Basis of shape {basis.shape} does not match {n} points "
                f"and {len(variances)} variances"
            )
        basis = basis.reshape(3 * n, len(variances))
        object.__setattr__(self, "reference", reference)
        object.__setattr__(self, "mean", mean)
        object.__setattr__(self, "basis", basis)
        object.__setattr__(self, "variances", variances)

    @property
    def rank(self) -> int:
        return len(self.variances)

    @property
    def num_points(self) -> int:
        return len(self.reference)

    @property
    def standard_deviations(self) -> np.ndarray:
        return np.sqrt(np.clip(self.variances, 0.0, None))

    def deformation(self, coefficients: np.ndarray) -> np.ndarray:
        """Deformation field (N, 3) for standardized coefficients (K,)."""
        coefficients = np.asarray(coefficients, dtype=np.float64).reshape(-1)
        if len(coefficients) != self.rank:
            raise ShapeMismatchError(
                f"Expected {self.rank} coefficients, got {len(coefficients)}"
            )
        offset = self.basis @ (self.standard_deviations * coefficients)
        return self.mean + offset.reshape(-1, 3)

    def instance(self, coefficients: np.ndarray) -> np.ndarray:
        """Shape (N, 3) for standardized coefficients (K,)."""
        return self.reference + self.deformation(coefficients)

    def mean_instance(self) -> np.ndarray:
        return self.reference + self.mean

    def project(self, deformation: np.ndarray) -> np.ndarray:
        """Standardized coefficients of the closest field in the model span.

        Args:
            deformation: Deformation field of shape (N, 3).

        Returns:
            Coefficients of shape (K,).
        """
        deformation = np.asarray(deformation, dtype=np.float64)
        if deformation.size != self.mean.size:
            raise ShapeMismatchError(
                f"Deformation field has {deformation.size // 3} points, model has {self.num_points}"
            )
        residual = (deformation - self.mean).reshape(-1)
        return (self.basis.T @ residual) / self.standard_deviations

    def sample(self, rng: RandomLike = None) -> np.ndarray:
        """Draw a random shape instance.

        Args:
            rng: Generator or seed. None draws from fresh OS entropy.
        """
        generator = as_generator(rng)
        return self.instance(generator.standard_normal(self.rank))

    def check_point_ids(self, point_ids: np.ndarray) -> np.ndarray:
        point_ids = np.asarray(point_ids, dtype=np.int64).reshape(-1)
        invalid = (point_ids < 0) | (point_ids >= self.num_points)
        if np.any(invalid):
            raise PointIdError(
                f"Point id {int(point_ids[invalid][0])} outside reference domain "
                f"of {self.num_points} points"
            )
        return point_ids

    def marginal_basis(self, point_ids: Sequence[int]) -> np.ndarray:
        """Basis rows at the given point ids scaled by the mode deviations.

        Args:
            point_ids: Reference point ids, duplicates allowed.

        Returns:
            Array of shape (3 * len(point_ids), K); rows 3i..3i+2 belong to
            point_ids[i].
        """
        point_ids = self.check_point_ids(point_ids)
        rows = (3 * point_ids[:, None] + np.arange(3)[None, :]).reshape(-1)
        return self.basis[rows] * self.standard_deviations[None, :]


class ModelBuilder:
    """Builds point distribution models by PCA over deformation fields."""

    @staticmethod
    def build(
        reference: np.ndarray,
        deformation_fields: Sequence[np.ndarray],
        max_components: Optional[int] = None,
        eigenvalue_tolerance: float = 1e-10,
    ) -> PointDistributionModel:
        """Compute a PDM from training deformation fields.

        The decomposition runs on the Gram matrix (M x M) when there are fewer
        samples than deformation dimensions and on the scatter matrix
        (3N x 3N) otherwise.

        Args:
            reference: Reference domain of shape (N, 3).
            deformation_fields: M fields of shape (N, 3).
            max_components: Optional cap on the model rank.
            eigenvalue_tolerance: Relative threshold below which eigenvalues
                are treated as zero.

        Returns:
            Model of rank at most min(M - 1, 3N).

        Raises:
            InsufficientDataError: If no fields are given.
            ShapeMismatchError: If a field does not match the reference.
        """
        if len(deformation_fields) == 0:
            raise InsufficientDataError("Cannot build a model from an empty training set")

        reference = np.asarray(reference, dtype=np.float64).reshape(-1, 3)
        n_points = len(reference)
        for i, field in enumerate(deformation_fields):
            if np.asarray(field).size != 3 * n_points:
                raise ShapeMismatchError(
                    f"Deformation field {i} has {np.asarray(field).size // 3} points, "
                    f"reference has {n_points}"
                )

        data = np.stack([np.asarray(f, dtype=np.float64).reshape(-1) for f in deformation_fields])
        n_samples, dim = data.shape
        mean = data.mean(axis=0)
        centered = data - mean

        max_rank = min(n_samples - 1, dim)
        if max_components is not None:
            max_rank = min(max_rank, max_components)

        if max_rank <= 0:
            basis = np.zeros((dim, 0))
            variances = np.zeros(0)
        else:
            if n_samples <= dim:
                eigvals, eigvecs = np.linalg.eigh(centered @ centered.T)
            else:
                eigvals, eigvecs = np.linalg.eigh(centered.T @ centered)

            order = np.argsort(eigvals)[::-1]
            eigvals = eigvals[order]
            eigvecs = eigvecs[:, order]

            # Centering leaves eigenvalues of round-off size where the data has none
            roundoff = 100.0 * data.size * (np.finfo(np.float64).eps * np.max(np.abs(data))) ** 2
            keep = eigvals > max(eigenvalue_tolerance * eigvals[0], roundoff)
            eigvals = eigvals[keep][:max_rank]
            eigvecs = eigvecs[:, keep][:, :max_rank]

            if n_samples <= dim:
                # Gram eigenvectors back to deformation space
                basis = centered.T @ eigvecs
                basis /= np.linalg.norm(basis, axis=0, keepdims=True)
            else:
                basis = eigvecs
            variances = eigvals / (n_samples - 1)

        model = PointDistributionModel(
            reference=reference,
            mean=mean.reshape(-1, 3),
            basis=basis,
            variances=variances,
        )
        logger.info(
            f"PDM built from {n_samples} samples of {n_points} points "
            f"with {model.rank} principal components"
        )
        return model

    @staticmethod
    def build_from_point_clouds(
        point_clouds: Sequence[np.ndarray],
        max_components: Optional[int] = None,
        eigenvalue_tolerance: float = 1e-10,
    ) -> PointDistributionModel:
        """Build a PDM on the mean of corresponding training clouds.

        Args:
            point_clouds: Training clouds of shape (N, 3), in correspondence.
            max_components: Optional cap on the model rank.
            eigenvalue_tolerance: Relative eigenvalue threshold.

        Returns:
            Model whose reference is the per-point training mean.
        """
        reference = DeformationFieldBuilder.compute_mean_reference(point_clouds)
        fields = DeformationFieldBuilder.build_fields(reference, point_clouds)
        return ModelBuilder.build(
            reference,
            fields,
            max_components=max_components,
            eigenvalue_tolerance=eigenvalue_tolerance,
        )
