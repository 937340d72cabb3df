"""
Property-based tests for ICPFitter.
"""

import numpy as np
import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from pdm_fitting.errors import InsufficientTargetPointsError
from pdm_fitting.icp import ICPFitter, IcpState
from pdm_fitting.model import ModelBuilder
from pdm_fitting.tests.helpers import random_training_clouds, synthetic_model


@st.composite
def icp_problem_strategy(draw):
    """Model plus a generic target: a perturbed model sample, possibly partial."""
    seed = draw(st.integers(min_value=0, max_value=2**32 - 1))
    n_samples = draw(st.integers(min_value=2, max_value=6))
    n_points = draw(st.integers(min_value=5, max_value=30))
    noise_variance = draw(st.sampled_from([0.01, 0.1, 1.0]))
    rng = np.random.default_rng(seed)
    pdm = ModelBuilder.build_from_point_clouds(random_training_clouds(seed, n_samples, n_points, scale=0.5))
    target = pdm.sample(rng) + 0.05 * rng.standard_normal((n_points, 3))
    keep = rng.random(n_points) < 0.7
    keep[0] = True
    return pdm, target[keep], noise_variance


def _non_increasing(values):
    values = np.asarray(values)
    return np.all(np.diff(values) <= 1e-9 * (1.0 + np.abs(values[:-1])))


# Property 1: ICP never increases its squared correspondence distance or its regularized objective
@given(problem=icp_problem_strategy())
@settings(max_examples=40, deadline=None)
def test_distance_and_objective_are_monotonically_non_increasing(problem):
    """
    The total squared correspondence distance SHALL NOT increase from one
    round to the next, and neither SHALL
    sum of squared correspondence distances / noise + |alpha|^2.
    """
    pdm, target, noise_variance = problem
    result = ICPFitter.fit(pdm, target, iterations=8, noise_variance=noise_variance)

    assert result.iterations == 8
    assert len(result.distances) == 9
    assert len(result.objectives) == 9
    assert _non_increasing(result.distances)
    assert _non_increasing(result.objectives)


def test_zero_iterations_return_mean_shape(small_pdm, training_clouds):
    result = ICPFitter.fit(small_pdm, training_clouds[0], iterations=0)
    np.testing.assert_array_equal(result.fitted_points, small_pdm.mean_instance())
    assert result.iterations == 0
    assert result.state == IcpState.ITERATION_BUDGET_EXHAUSTED
    assert result.distances == []


def test_icp_recovers_model_instance(grid_pdm):
    """Small deformations on a well separated grid: exact correspondences from the first round."""
    target = grid_pdm.instance(np.array([1.5, -1.0]))
    shuffled = target[np.random.default_rng(0).permutation(len(target))]

    result = ICPFitter.fit(grid_pdm, shuffled, iterations=5, noise_variance=1e-6)

    assert result.state == IcpState.ITERATION_BUDGET_EXHAUSTED
    np.testing.assert_allclose(result.fitted_points, target, atol=1e-3)
    np.testing.assert_allclose(result.coefficients, [1.5, -1.0], atol=1e-2)
    assert result.distances[-1] < result.distances[0]
    assert result.distances[-1] < 1e-6


def test_selected_ids_are_nearest_reference_points(grid_pdm):
    ids = ICPFitter.select_point_ids(grid_pdm, grid_pdm.reference[::-1] + 0.01)
    np.testing.assert_array_equal(ids, np.arange(grid_pdm.num_points)[::-1])


def test_partial_target_tracks_only_its_nearest_points(grid_pdm):
    target = grid_pdm.instance(np.array([1.0, 1.0]))[:5]
    result = ICPFitter.fit(grid_pdm, target, iterations=3, noise_variance=1e-6)
    np.testing.assert_array_equal(result.point_ids, np.arange(5))
    np.testing.assert_allclose(result.fitted_points[:5], target, atol=1e-3)


def test_convergence_threshold_stops_early(grid_pdm):
    target = grid_pdm.instance(np.array([0.5, 0.5]))
    result = ICPFitter.fit(grid_pdm, target, iterations=50, noise_variance=1e-6, convergence_threshold=1e-6)
    assert result.state == IcpState.CONVERGED
    assert result.converged
    assert result.iterations < 50


def test_default_runs_full_budget(grid_pdm):
    target = grid_pdm.instance(np.array([0.5, 0.5]))
    result = ICPFitter.fit(grid_pdm, target, iterations=4)
    assert result.iterations == 4
    assert not result.converged


def test_on_iteration_called_every_round(grid_pdm):
    seen = []
    target = grid_pdm.instance(np.array([0.3, -0.2]))
    result = ICPFitter.fit(grid_pdm, target, iterations=3, on_iteration=lambda i, points: seen.append(i))
    assert seen == [1, 2, 3]
    assert result.iterations == 3


def test_empty_target_is_fatal(grid_pdm):
    with pytest.raises(InsufficientTargetPointsError):
        ICPFitter.fit(grid_pdm, np.zeros((0, 3)))


def test_target_smaller_than_tracked_ids(grid_pdm):
    with pytest.raises(InsufficientTargetPointsError):
        ICPFitter.fit(grid_pdm, grid_pdm.reference[:3], point_ids=[0, 1, 2, 3])


def test_negative_iterations_rejected(grid_pdm):
    with pytest.raises(ValueError):
        ICPFitter.fit(grid_pdm, grid_pdm.reference, iterations=-1)


def test_rank_zero_model_stays_at_mean():
    pdm = ModelBuilder.build_from_point_clouds(random_training_clouds(seed=8, n_samples=1, n_points=6))
    target = pdm.mean_instance() + 3.0
    result = ICPFitter.fit(pdm, target, iterations=3)
    np.testing.assert_allclose(result.fitted_points, pdm.mean_instance())


def test_fit_leaves_model_unchanged():
    pdm = synthetic_model(seed=3)
    before = pdm.mean_instance().copy()
    ICPFitter.fit(pdm, pdm.instance(np.array([1.0, 1.0])), iterations=2)
    np.testing.assert_array_equal(pdm.mean_instance(), before)
