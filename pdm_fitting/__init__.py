"""
Point Distribution Model Fitting

This package builds PCA shape models from corresponding 3D point clouds and
fits them to new, partial or unordered point clouds by Gaussian posterior
conditioning or non-rigid ICP.
"""

from .errors import (
    PDMFittingError,
    ShapeMismatchError,
    InsufficientDataError,
    EmptyEvidenceError,
    InsufficientTargetPointsError,
    PointIdError,
    MalformedFileError,
    NoiseCovarianceError,
    ModelLoadError,
    ModelSaveError,
)
from .point_loader import PointLoader
from .deformation import DeformationFieldBuilder
from .model import PointDistributionModel, ModelBuilder
from .model_io import ModelIO
from .posterior import PointObservation, PosteriorModel, PosteriorFitter
from .icp import ICPFitter, IcpResult, IcpState
from .batch import BatchProcessor, BatchReport, FileResult
from .config import BuildConfig, FittingConfig
from .visualizer import Visualizer

__all__ = [
    "PDMFittingError",
    "ShapeMismatchError",
    "InsufficientDataError",
    "EmptyEvidenceError",
    "InsufficientTargetPointsError",
    "PointIdError",
    "MalformedFileError",
    "NoiseCovarianceError",
    "ModelLoadError",
    "ModelSaveError",
    "PointLoader",
    "DeformationFieldBuilder",
    "PointDistributionModel",
    "ModelBuilder",
    "ModelIO",
    "PointObservation",
    "PosteriorModel",
    "PosteriorFitter",
    "ICPFitter",
    "IcpResult",
    "IcpState",
    "BatchProcessor",
    "BatchReport",
    "FileResult",
    "BuildConfig",
    "FittingConfig",
    "Visualizer",
]
