"""
Shared fixtures for pdm_fitting tests.
"""

import pytest

from pdm_fitting.model import ModelBuilder
from pdm_fitting.tests.helpers import random_training_clouds, synthetic_model


@pytest.fixture(scope="session")
def training_clouds():
    """3 clouds of 10 corresponding points."""
    return random_training_clouds(seed=7, n_samples=3, n_points=10)


@pytest.fixture(scope="session")
def small_pdm(training_clouds):
    return ModelBuilder.build_from_point_clouds(training_clouds)


@pytest.fixture(scope="session")
def grid_pdm():
    return synthetic_model()
