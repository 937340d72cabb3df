"""
Configuration for model building and fitting.
"""

from dataclasses import dataclass
from typing import Optional


POINT_FILE_SUFFIX = ".pts"
POSTERIOR_SUFFIX = "_fitted_posterior.pts"
ICP_SUFFIX = "_fitted_icp.pts"
MODEL_SUFFIX = "_pdm.h5"
DEFAULT_MODEL_DIR = "models"
DEFAULT_OUTPUT_DIRNAME = "fitted"


@dataclass
class BuildConfig:
    """Model building configuration."""
    # Upper bound on retained principal modes (None keeps M - 1)
    max_components: Optional[int] = None
    # Eigenvalues below tolerance * largest eigenvalue are discarded
    eigenvalue_tolerance: float = 1e-10


@dataclass
class FittingConfig:
    """Fitting configuration shared by the posterior and ICP commands."""
    # ICP
    iterations: int = 20
    convergence_threshold: Optional[float] = None

    # Isotropic observation noise (variance per coordinate)
    noise_variance: float = 1.0

    # Posterior samples drawn for display
    num_samples: int = 2
    seed: Optional[int] = None

    # Batch
    workers: int = 1
    visualize: bool = False
