"""
Batch fitting of point cloud files against a shared, read-only PDM.

A failure on one file is logged and recorded in the report; the remaining
files are still processed.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional, Sequence

import numpy as np

from .config import FittingConfig, ICP_SUFFIX, POINT_FILE_SUFFIX, POSTERIOR_SUFFIX
from .icp import ICPFitter
from .model import PointDistributionModel
from .point_loader import PointLoader
from .posterior import PosteriorFitter, isotropic_covariance

logger = logging.getLogger(__name__)


@dataclass
class FileResult:
    """Outcome of fitting one input file."""
    input_path: Path
    output_path: Optional[Path] = None
    error: Optional[str] = None
    views: list = field(default_factory=list)   # (label, points) pairs for display

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class BatchReport:
    """Per-file results in input order."""
    results: list[FileResult] = field(default_factory=list)

    @property
    def succeeded(self) -> list[FileResult]:
        return [r for r in self.results if r.ok]

    @property
    def failed(self) -> list[FileResult]:
        return [r for r in self.results if not r.ok]

    def summary(self) -> str:
        lines = [f"{len(self.succeeded)}/{len(self.results)} file(s) fitted"]
        for r in self.failed:
            lines.append(f"  FAILED {r.input_path.name}: {r.error}")
        return "\n".join(lines)


FileTask = Callable[[Path], FileResult]


def output_path_for(input_path: Path, output_dir: Path, suffix: str) -> Path:
    """``<stem><suffix>`` in ``output_dir`` (``scan.pts`` -> ``scan_fitted_icp.pts``)."""
    name = input_path.name
    if name.endswith(POINT_FILE_SUFFIX):
        name = name[:-len(POINT_FILE_SUFFIX)]
    return Path(output_dir) / f"{name}{suffix}"


def fit_posterior_file(
    path: Path,
    pdm: PointDistributionModel,
    output_dir: Path,
    config: FittingConfig,
) -> FileResult:
    """Fit an indexed partial point cloud by posterior conditioning."""
    points, indices = PointLoader.load_indexed_points(str(path))
    logger.info(
        f"Loaded {len(points)} points from {path.name} "
        f"({len(points) * 100.0 / pdm.num_points:.1f}% of full model)"
    )
    observations = PosteriorFitter.observations_from_indexed(
        points, indices, isotropic_covariance(config.noise_variance)
    )
    posterior = PosteriorFitter.compute_posterior(pdm, observations)
    fitted = posterior.mean_instance()

    output_path = output_path_for(path, output_dir, POSTERIOR_SUFFIX)
    PointLoader.write_points(fitted, str(output_path))
    logger.info(f"Fitted point cloud written to: {output_path}")

    result = FileResult(input_path=path, output_path=output_path)
    if config.visualize:
        rng = np.random.default_rng(config.seed)
        result.views = [
            ("Mean Shape", pdm.mean_instance()),
            (f"Target: {path.name}", points),
            (f"Fitted: {path.name}", fitted),
        ]
        for i in range(config.num_samples):
            result.views.append((f"Posterior Sample {path.name} #{i + 1}", posterior.sample(rng)))
    return result


def fit_icp_file(
    path: Path,
    pdm: PointDistributionModel,
    output_dir: Path,
    config: FittingConfig,
) -> FileResult:
    """Fit an unordered point cloud with non-rigid ICP."""
    target = PointLoader.load_points(str(path))
    logger.info(f"Loaded {len(target)} target points from {path.name}")

    progress = []

    def record_progress(iteration: int, points: np.ndarray) -> None:
        # Every 5th round counted back from the last one, plus the last round
        remaining = config.iterations - iteration + 1
        if remaining % 5 == 0 or remaining == 1:
            progress.append((f"{path.name} - Iteration {iteration}", points.copy()))

    icp = ICPFitter.fit(
        pdm,
        target,
        iterations=config.iterations,
        noise_variance=config.noise_variance,
        convergence_threshold=config.convergence_threshold,
        on_iteration=record_progress if config.visualize else None,
    )

    output_path = output_path_for(path, output_dir, ICP_SUFFIX)
    PointLoader.write_points(icp.fitted_points, str(output_path))
    logger.info(f"Fitted point cloud written to: {output_path}")

    result = FileResult(input_path=path, output_path=output_path)
    if config.visualize:
        result.views = [
            ("Model Mean", pdm.mean_instance()),
            (f"Target: {path.name}", target),
            *progress,
            (f"Final Fit: {path.name}", icp.fitted_points),
        ]
    return result


class BatchProcessor:
    """Runs a per-file task over many files with failure isolation."""

    @staticmethod
    def _run_one(task: FileTask, path: Path) -> FileResult:
        logger.info(f"Processing file: {path.name}")
        try:
            return task(path)
        except Exception as e:
            logger.error(f"Error processing file {path.name}: {type(e).__name__}: {e}")
            return FileResult(input_path=path, error=f"{type(e).__name__}: {e}")

    @staticmethod
    def run(files: Sequence[Path], task: FileTask, workers: int = 1) -> BatchReport:
        """Process every file, sequentially or on a thread pool.

        Args:
            files: Input files.
            task: Callable mapping one file to its FileResult.
            workers: Thread count; 1 processes in the calling thread.

        Returns:
            BatchReport with one result per file, in input order.
        """
        files = [Path(f) for f in files]
        logger.info(f"Found {len(files)} file(s) to process")

        if workers <= 1 or len(files) <= 1:
            results = [BatchProcessor._run_one(task, f) for f in files]
        else:
            with ThreadPoolExecutor(max_workers=workers) as executor:
                futures = [executor.submit(BatchProcessor._run_one, task, f) for f in files]
                results = [future.result() for future in futures]

        report = BatchReport(results=results)
        if report.failed:
            logger.warning(report.summary())
        else:
            logger.info(report.summary())
        return report
