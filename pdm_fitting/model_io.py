"""
Input/Output for point distribution models (HDF5).
"""
import logging
import os

import h5py
import numpy as np

from .errors import ModelLoadError, ModelSaveError
from .model import PointDistributionModel

logger = logging.getLogger(__name__)

MODEL_FORMAT = "pdm-fitting/point-distribution-model"
FORMAT_VERSION = 1


class ModelIO:
    """Saves and loads the reference, mean, basis and variances bundle."""

    @staticmethod
    def save(model: PointDistributionModel, filepath: str) -> None:
        """Write a model to an HDF5 file, creating parent directories.

        Raises:
            ModelSaveError: If the file cannot be written.
        """
        logger.info(f"Saving PDM to: {filepath}")
        try:
            parent = os.path.dirname(os.path.abspath(filepath))
            os.makedirs(parent, exist_ok=True)
            with h5py.File(filepath, "w") as f:
                f.attrs["format"] = MODEL_FORMAT
                f.attrs["version"] = FORMAT_VERSION
                f.attrs["rank"] = model.rank
                f.create_dataset("reference", data=model.reference)
                f.create_dataset("mean", data=model.mean)
                f.create_dataset("basis", data=model.basis)
                f.create_dataset("variances", data=model.variances)
        except (OSError, ValueError, TypeError) as e:
            raise ModelSaveError(f"Failed to save PDM to {filepath}: {e}") from e

    @staticmethod
    def load(filepath: str) -> PointDistributionModel:
        """Read a model written by ``save``.

        Raises:
            ModelLoadError: If the file is missing, unreadable or incomplete.
        """
        logger.info(f"Loading PDM from: {filepath}")
        if not os.path.exists(filepath):
            raise ModelLoadError(f"Failed to load PDM from {filepath}: file not found")
        try:
            with h5py.File(filepath, "r") as f:
                if f.attrs.get("format") != MODEL_FORMAT:
                    raise ModelLoadError(f"Failed to load PDM from {filepath}: not a PDM file")
                version = int(f.attrs.get("version", 0))
                if version > FORMAT_VERSION:
                    raise ModelLoadError(
                        f"Failed to load PDM from {filepath}: unsupported version {version}"
                    )
                model = PointDistributionModel(
                    reference=np.asarray(f["reference"]),
                    mean=np.asarray(f["mean"]),
                    basis=np.asarray(f["basis"]),
                    variances=np.asarray(f["variances"]),
                )
        except ModelLoadError:
            raise
        except (OSError, KeyError, ValueError) as e:
            raise ModelLoadError(f"Failed to load PDM from {filepath}: {e}") from e

        logger.info(f"Loaded PDM with {model.rank} principal components")
        return model
