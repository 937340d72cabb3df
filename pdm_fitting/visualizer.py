"""
Visualizer component for displaying point clouds and shape models.

Open3D is an optional dependency (``pip install pdm-fitting[visualize]``)
and is imported on first use.
"""

from typing import Sequence

import numpy as np

from .model import PointDistributionModel

# Cycled per labelled item
PALETTE = [
    [0.7, 0.7, 0.9],
    [0.9, 0.2, 0.2],
    [0.2, 0.8, 0.2],
    [0.9, 0.6, 0.1],
    [0.6, 0.2, 0.8],
    [0.1, 0.7, 0.8],
]


def _open3d():
    try:
        import open3d as o3d
    except ImportError as e:
        raise ImportError(
            "Visualization requires open3d: pip install 'pdm-fitting[visualize]'"
        ) from e
    return o3d


class Visualizer:
    """Handles 3D display of shapes; output only."""

    @staticmethod
    def check_available() -> None:
        """Raise ImportError with an install hint if open3d is missing."""
        _open3d()

    @staticmethod
    def to_point_cloud(points: np.ndarray, color=None):
        """Create an Open3D point cloud.

        Args:
            points: Array of shape (N, 3).
            color: Optional RGB triple painted on every point.

        Returns:
            open3d.geometry.PointCloud
        """
        o3d = _open3d()
        pcd = o3d.geometry.PointCloud()
        pcd.points = o3d.utility.Vector3dVector(np.asarray(points, dtype=np.float64).reshape(-1, 3))
        if color is not None:
            pcd.paint_uniform_color(color)
        return pcd

    @staticmethod
    def show(items: Sequence[tuple[str, np.ndarray]], window_name: str = "PDM Fitting") -> None:
        """Display labelled point sets in one window.

        Args:
            items: (label, points) pairs; each gets its own colour.
            window_name: Window title.
        """
        o3d = _open3d()
        geometries = []
        legend = []
        for i, (label, points) in enumerate(items):
            color = PALETTE[i % len(PALETTE)]
            geometries.append(Visualizer.to_point_cloud(points, color))
            legend.append(label)

        o3d.visualization.draw_geometries(
            geometries,
            window_name=f"{window_name}: " + ", ".join(legend),
        )

    @staticmethod
    def model_views(pdm: PointDistributionModel, num_modes: int = 3, scale: float = 2.0) -> list[tuple[str, np.ndarray]]:
        """Mean shape plus the shapes at +/- ``scale`` deviations of the leading modes."""
        items = [("mean", pdm.mean_instance())]
        for mode in range(min(num_modes, pdm.rank)):
            coefficients = np.zeros(pdm.rank)
            for sign, name in ((1.0, "+"), (-1.0, "-")):
                coefficients[mode] = sign * scale
                items.append((f"mode {mode + 1} {name}{scale:g}sd", pdm.instance(coefficients)))
        return items

    @staticmethod
    def show_model(pdm: PointDistributionModel, num_modes: int = 3, scale: float = 2.0) -> None:
        """Display the model mean and its leading modes of variation."""
        Visualizer.show(
            Visualizer.model_views(pdm, num_modes=num_modes, scale=scale),
            window_name=f"PDM ({pdm.rank} components)",
        )
