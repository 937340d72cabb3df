"""
DeformationFieldBuilder component for expressing training shapes as
displacements of a shared reference point set.
"""

from typing import Sequence

import numpy as np

from .errors import InsufficientDataError, ShapeMismatchError


class DeformationFieldBuilder:
    """Builds per-point displacement fields relative to a reference domain."""

    @staticmethod
    def compute_mean_reference(point_clouds: Sequence[np.ndarray]) -> np.ndarray:
        """Average corresponding points across all training clouds.

        Point i of the result is the mean of point i of every cloud, so the
        clouds must already be in correspondence.

        Args:
            point_clouds: Sequence of (N, 3) arrays.

        Returns:
            Mean point cloud of shape (N, 3).

        Raises:
            InsufficientDataError: If no clouds are given.
            ShapeMismatchError: If point counts differ.
        """
        if len(point_clouds) == 0:
            raise InsufficientDataError("Cannot compute mean of empty point cloud collection")

        expected = len(point_clouds[0])
        for i, cloud in enumerate(point_clouds):
            if len(cloud) != expected:
                raise ShapeMismatchError(
                    f"Point cloud {i} has {len(cloud)} points, expected {expected}"
                )

        stacked = np.stack([np.asarray(c, dtype=np.float64) for c in point_clouds])
        return stacked.mean(axis=0)

    @staticmethod
    def build_field(reference: np.ndarray, points: np.ndarray) -> np.ndarray:
        """Displacement of each point from its reference counterpart.

        Args:
            reference: Reference points of shape (N, 3).
            points: Corresponding training points of shape (N, 3).

        Returns:
            Deformation field of shape (N, 3).

        Raises:
            ShapeMismatchError: If the point counts differ.
        """
        reference = np.asarray(reference, dtype=np.float64)
        points = np.asarray(points, dtype=np.float64)
        if len(points) != len(reference):
            raise ShapeMismatchError(
                f"Training cloud has {len(points)} points but the reference has {len(reference)}"
            )
        return points - reference

    @staticmethod
    def build_fields(reference: np.ndarray, point_clouds: Sequence[np.ndarray]) -> list[np.ndarray]:
        """Deformation fields for every training cloud."""
        return [DeformationFieldBuilder.build_field(reference, cloud) for cloud in point_clouds]
