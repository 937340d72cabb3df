"""
PointLoader component for reading and writing plain-text point clouds.

Two formats are supported:
    plain    one point per line, ``x y z`` (extra columns ignored)
    indexed  one point per line, exactly ``x y z index``
"""

import logging
import os
from pathlib import Path

import numpy as np

from .config import POINT_FILE_SUFFIX
from .errors import MalformedFileError

logger = logging.getLogger(__name__)


class PointLoader:
    """Handles loading and saving ``.pts`` point cloud files."""

    @staticmethod
    def validate_path(path: str) -> None:
        """Raise FileNotFoundError with descriptive message if invalid.

        Args:
            path: Path to validate.

        Raises:
            FileNotFoundError: If the path does not exist.
        """
        if not os.path.exists(path):
            raise FileNotFoundError(f"Point cloud file not found: {path}")

    @staticmethod
    def _split_lines(path: str) -> list[tuple[int, list[str]]]:
        """Return (line_number, fields) for every non-empty line, 1-based."""
        rows = []
        with open(path, 'r') as f:
            for line_number, line in enumerate(f, start=1):
                fields = line.split()
                if fields:
                    rows.append((line_number, fields))
        return rows

    @staticmethod
    def load_points(path: str) -> np.ndarray:
        """Load an un-indexed point cloud.

        Args:
            path: Path to a file with ``x y z`` per line.

        Returns:
            float64 array of shape (N, 3).

        Raises:
            FileNotFoundError: If the file does not exist.
            MalformedFileError: If a line has fewer than 3 fields, a value is
                not numeric, or the file holds no points.
        """
        PointLoader.validate_path(path)
        name = os.path.basename(path)

        points = []
        for line_number, fields in PointLoader._split_lines(path):
            if len(fields) < 3:
                raise MalformedFileError(
                    f"Invalid point format in {name}: line {line_number} has "
                    f"{len(fields)} field(s), expected at least 3 (x y z)",
                    path=path,
                    line_number=line_number,
                )
            try:
                points.append([float(v) for v in fields[:3]])
            except ValueError as e:
                raise MalformedFileError(
                    f"Invalid point format in {name}: line {line_number}: {e}",
                    path=path,
                    line_number=line_number,
                ) from e

        if not points:
            raise MalformedFileError(f"No valid points found in file {name}", path=path)

        return np.asarray(points, dtype=np.float64)

    @staticmethod
    def load_indexed_points(path: str) -> tuple[np.ndarray, np.ndarray]:
        """Load a partial point cloud annotated with reference point ids.

        Args:
            path: Path to a file with ``x y z index`` per line.

        Returns:
            Tuple of (points, indices).
            points: float64 array of shape (N, 3)
            indices: int64 array of shape (N,)

        Raises:
            FileNotFoundError: If the file does not exist.
            MalformedFileError: If any non-empty line does not have exactly
                4 fields or holds an unparsable value.
        """
        PointLoader.validate_path(path)
        name = os.path.basename(path)
        rows = PointLoader._split_lines(path)

        # The whole file is rejected on the first bad line
        for line_number, fields in rows:
            if len(fields) != 4:
                raise MalformedFileError(
                    f"Invalid pointcloud format in {name}: line {line_number} has "
                    f"{len(fields)} field(s), expected 4: '{' '.join(fields)}'. "
                    "Expected format: x y z index",
                    path=path,
                    line_number=line_number,
                )

        points = []
        indices = []
        for line_number, fields in rows:
            try:
                points.append([float(v) for v in fields[:3]])
                indices.append(int(fields[3]))
            except ValueError as e:
                raise MalformedFileError(
                    f"Invalid pointcloud format in {name}: line {line_number}: {e}",
                    path=path,
                    line_number=line_number,
                ) from e

        if not points:
            raise MalformedFileError(f"No valid points found in file {name}", path=path)

        return np.asarray(points, dtype=np.float64), np.asarray(indices, dtype=np.int64)

    @staticmethod
    def write_points(points: np.ndarray, path: str) -> None:
        """Write a point cloud as ``x y z`` lines with 8 decimals.

        Args:
            points: Array of shape (N, 3).
            path: Output file path.
        """
        points = np.asarray(points, dtype=np.float64).reshape(-1, 3)
        np.savetxt(path, points, fmt="%.8f", delimiter=" ")
        logger.debug(f"Wrote {len(points)} points to {path}")

    @staticmethod
    def list_point_files(path: str) -> list[Path]:
        """Return the point files to process for a file or directory path.

        Args:
            path: A single file, or a directory scanned for ``*.pts`` files.

        Returns:
            Sorted list of file paths.

        Raises:
            FileNotFoundError: If the path does not exist.
        """
        PointLoader.validate_path(path)
        p = Path(path)
        if p.is_dir():
            return sorted(f for f in p.iterdir() if f.is_file() and f.suffix == POINT_FILE_SUFFIX)
        return [p]
