"""
Command-line interface for building and fitting point distribution models.

    pdm-fitting build --input <dir> [--output <file>]
    pdm-fitting posterior --pdm <file> --input <file-or-dir> [--output <dir>]
    pdm-fitting icp --pdm <file> --input <file-or-dir> [--iterations 20]
    pdm-fitting show --pdm <file>
"""

import argparse
import logging
import os
from functools import partial
from pathlib import Path
from typing import Optional, Sequence

from .batch import BatchProcessor, fit_icp_file, fit_posterior_file
from .config import (
    BuildConfig,
    DEFAULT_MODEL_DIR,
    DEFAULT_OUTPUT_DIRNAME,
    FittingConfig,
    MODEL_SUFFIX,
)
from .errors import PDMFittingError
from .logging_config import setup_logging
from .model import ModelBuilder
from .model_io import ModelIO
from .point_loader import PointLoader
from .visualizer import Visualizer

logger = logging.getLogger(__name__)


def _resolve_output_dir(input_path: Path, output: Optional[str]) -> Path:
    if output:
        output_dir = Path(output)
    elif input_path.is_dir():
        output_dir = input_path / DEFAULT_OUTPUT_DIRNAME
    else:
        output_dir = input_path.parent / DEFAULT_OUTPUT_DIRNAME
    if not output_dir.exists():
        output_dir.mkdir(parents=True)
        logger.info(f"Created output directory: {output_dir.resolve()}")
    return output_dir


def _fitting_config(args: argparse.Namespace) -> FittingConfig:
    return FittingConfig(
        iterations=getattr(args, "iterations", FittingConfig.iterations),
        convergence_threshold=getattr(args, "convergence_threshold", None),
        noise_variance=args.noise_variance,
        num_samples=getattr(args, "samples", FittingConfig.num_samples),
        seed=args.seed,
        workers=args.workers,
        visualize=args.visualize,
    )


def run_build(args: argparse.Namespace) -> int:
    data_dir = Path(args.input)
    if not data_dir.is_dir():
        raise NotADirectoryError(f"{data_dir.resolve()} is not a valid directory")

    logger.info(f"Loading point clouds from {data_dir.resolve()}")
    files = PointLoader.list_point_files(str(data_dir))
    clouds = [PointLoader.load_points(str(f)) for f in files]
    logger.info(f"Loaded {len(clouds)} training point cloud(s)")

    config = BuildConfig(max_components=args.max_components)
    pdm = ModelBuilder.build_from_point_clouds(
        clouds,
        max_components=config.max_components,
        eigenvalue_tolerance=config.eigenvalue_tolerance,
    )

    output = args.output or os.path.join(DEFAULT_MODEL_DIR, f"{data_dir.resolve().name}{MODEL_SUFFIX}")
    ModelIO.save(pdm, output)
    logger.info(f"PDM successfully saved to: {os.path.abspath(output)}")
    return 0


def _run_fitting(args: argparse.Namespace, file_task) -> int:
    config = _fitting_config(args)
    if config.visualize:
        Visualizer.check_available()

    input_path = Path(args.input)
    PointLoader.validate_path(str(input_path))
    output_dir = _resolve_output_dir(input_path, args.output)
    pdm = ModelIO.load(args.pdm)

    files = PointLoader.list_point_files(str(input_path))
    task = partial(file_task, pdm=pdm, output_dir=output_dir, config=config)
    report = BatchProcessor.run(files, task, workers=config.workers)

    if config.visualize:
        for result in report.succeeded:
            Visualizer.show(result.views, window_name=result.input_path.name)

    logger.info(f"All files processed. Results saved to: {output_dir.resolve()}")
    return 1 if report.failed else 0


def run_posterior(args: argparse.Namespace) -> int:
    return _run_fitting(args, fit_posterior_file)


def run_icp(args: argparse.Namespace) -> int:
    return _run_fitting(args, fit_icp_file)


def run_show(args: argparse.Namespace) -> int:
    Visualizer.check_available()
    pdm = ModelIO.load(args.pdm)
    Visualizer.show_model(pdm, num_modes=args.modes)
    return 0


def _add_fitting_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument('--pdm', required=True, help='Path to PDM file')
    parser.add_argument('--input', required=True, help='Point cloud file or directory of .pts files')
    parser.add_argument('--output', default=None, help="Output directory (default: 'fitted' next to the input)")
    parser.add_argument('--visualize', action='store_true', help='Show results in a viewer')
    parser.add_argument('--noise-variance', type=float, default=1.0, help='Isotropic observation noise variance')
    parser.add_argument('--seed', type=int, default=None, help='Seed for posterior samples')
    parser.add_argument('--workers', type=int, default=1, help='Files fitted in parallel')


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='pdm-fitting', description='Build and fit point distribution models')
    parser.add_argument('--log-level', default='INFO', choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'])
    parser.add_argument('--log-file', default=None)
    subparsers = parser.add_subparsers(dest='command', required=True)

    build = subparsers.add_parser('build', help='Build a PDM from corresponding training point clouds')
    build.add_argument('--input', required=True, help='Directory of training .pts files')
    build.add_argument('--output', default=None, help=f'Model file (default: {DEFAULT_MODEL_DIR}/<dir>{MODEL_SUFFIX})')
    build.add_argument('--max-components', type=int, default=None)
    build.set_defaults(func=run_build)

    posterior = subparsers.add_parser('posterior', help='Fit indexed point clouds by posterior conditioning')
    _add_fitting_arguments(posterior)
    posterior.add_argument('--samples', type=int, default=2, help='Posterior samples shown with --visualize')
    posterior.set_defaults(func=run_posterior)

    icp = subparsers.add_parser('icp', help='Fit unordered point clouds with non-rigid ICP')
    _add_fitting_arguments(icp)
    icp.add_argument('--iterations', type=int, default=20, help='Number of ICP iterations')
    icp.add_argument('--convergence-threshold', type=float, default=None,
                     help='Stop once no tracked point moves further than this')
    icp.set_defaults(func=run_icp)

    show = subparsers.add_parser('show', help='Display a PDM mean and its main modes')
    show.add_argument('--pdm', required=True)
    show.add_argument('--modes', type=int, default=3)
    show.set_defaults(func=run_show)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.log_level, args.log_file)

    try:
        return args.func(args)
    except (PDMFittingError, OSError, ImportError) as e:
        logger.error(f"Error during {args.command}: {e}")
        return 1
