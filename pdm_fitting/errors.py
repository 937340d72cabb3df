"""
Exception types raised by the shape model fitting components.
"""


class PDMFittingError(Exception):
    """Base class for all errors raised by pdm_fitting."""


class ShapeMismatchError(PDMFittingError, ValueError):
    """Point counts of corresponding point sets differ."""


class InsufficientDataError(PDMFittingError, ValueError):
    """Training set is empty."""


class EmptyEvidenceError(PDMFittingError, ValueError):
    """Posterior requested without any point observations."""


class InsufficientTargetPointsError(PDMFittingError, ValueError):
    """ICP target cloud is empty or smaller than the tracked point set."""


class PointIdError(PDMFittingError, IndexError):
    """Observation references a point id outside the reference domain."""


class MalformedFileError(PDMFittingError, ValueError):
    """Point cloud file could not be parsed."""

    def __init__(self, message: str, path: str = None, line_number: int = None):
        super().__init__(message)
        self.path = path
        self.line_number = line_number


class ModelLoadError(PDMFittingError):
    """Model file could not be read."""


class ModelSaveError(PDMFittingError):
    """Model file could not be written."""


class NoiseCovarianceError(PDMFittingError, ValueError):
    """Observation noise covariance is not symmetric positive definite."""
