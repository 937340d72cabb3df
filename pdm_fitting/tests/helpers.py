"""
Synthetic shapes and models shared by the tests.
"""

import numpy as np

from pdm_fitting.model import PointDistributionModel


def grid_points(n_per_axis: int = 3, spacing: float = 1.0) -> np.ndarray:
    """Regular (n^3, 3) grid; well separated points keep nearest neighbours stable."""
    axis = np.arange(n_per_axis) * spacing
    xx, yy, zz = np.meshgrid(axis, axis, axis, indexing="ij")
    return np.column_stack([xx.ravel(), yy.ravel(), zz.ravel()])


def random_training_clouds(seed: int, n_samples: int, n_points: int, scale: float = 0.1) -> list[np.ndarray]:
    """Corresponding clouds: a random base shape plus independent perturbations."""
    rng = np.random.default_rng(seed)
    base = rng.uniform(-5.0, 5.0, size=(n_points, 3))
    return [base + scale * rng.standard_normal((n_points, 3)) for _ in range(n_samples)]


def synthetic_model(variances=(0.04, 0.01), n_per_axis: int = 3, seed: int = 0) -> PointDistributionModel:
    """PDM on a grid with random orthonormal modes and zero mean deformation."""
    reference = grid_points(n_per_axis)
    rng = np.random.default_rng(seed)
    basis, _ = np.linalg.qr(rng.standard_normal((reference.size, len(variances))))
    return PointDistributionModel(
        reference=reference,
        mean=np.zeros_like(reference),
        basis=basis,
        variances=np.asarray(variances, dtype=np.float64),
    )
