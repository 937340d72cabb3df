"""
ICPFitter component for fitting a PDM to an unordered target point cloud.

Non-rigid ICP alternates two steps until the iteration budget is spent:
    correspondence  nearest target point for every tracked reference point
    refit           posterior mean of the model given those correspondences

The tracked reference point ids are chosen once, before the first round; only
their matched target positions change between rounds.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional, Sequence

import numpy as np
from scipy.spatial import cKDTree

from .errors import InsufficientTargetPointsError
from .model import PointDistributionModel
from .posterior import PointObservation, PosteriorFitter, isotropic_covariance

logger = logging.getLogger(__name__)


class IcpState(Enum):
    INITIALIZED = "initialized"
    CORRESPONDENCE = "correspondence"
    REFIT = "refit"
    CONVERGED = "converged"
    ITERATION_BUDGET_EXHAUSTED = "iteration_budget_exhausted"


@dataclass
class IcpResult:
    """Result of an ICP fit."""
    fitted_points: np.ndarray       # (N, 3) final shape over the reference domain
    state: IcpState                 # terminal state
    iterations: int                 # refit rounds actually run
    point_ids: np.ndarray           # (n,) tracked reference point ids
    coefficients: np.ndarray        # (K,) standardized coefficients of the fit
    distances: list[float] = field(default_factory=list)   # total squared correspondence distance per round
    objectives: list[float] = field(default_factory=list)  # distance / noise_variance + |alpha|^2 per round

    @property
    def converged(self) -> bool:
        return self.state == IcpState.CONVERGED


class ICPFitter:
    """Handles non-rigid ICP fitting of a point distribution model."""

    @staticmethod
    def select_point_ids(pdm: PointDistributionModel, target: np.ndarray) -> np.ndarray:
        """Nearest reference point id for every target point.

        Args:
            pdm: Model whose reference domain is searched.
            target: Target point cloud of shape (M, 3).

        Returns:
            int64 array of shape (M,), duplicates allowed.
        """
        target = np.asarray(target, dtype=np.float64).reshape(-1, 3)
        _, ids = cKDTree(pdm.reference).query(target)
        return np.asarray(ids, dtype=np.int64)

    @staticmethod
    def fit(
        pdm: PointDistributionModel,
        target: np.ndarray,
        iterations: int = 20,
        point_ids: Optional[Sequence[int]] = None,
        noise_variance: float = 1.0,
        convergence_threshold: Optional[float] = None,
        on_iteration: Optional[Callable[[int, np.ndarray], None]] = None,
    ) -> IcpResult:
        """Deform the model mean onto ``target``.

        Args:
            pdm: Prior shape model, left unchanged.
            target: Target point cloud of shape (M, 3), no correspondence.
            iterations: Number of correspondence/refit rounds.
            point_ids: Tracked reference point ids. Defaults to
                ``select_point_ids(pdm, target)``.
            noise_variance: Isotropic observation noise per coordinate.
            convergence_threshold: Stop early once no tracked point moves by
                more than this between rounds. None runs every round.
            on_iteration: Called with (round, points) after every refit.

        Returns:
            IcpResult with the final shape and per-round diagnostics.

        Raises:
            InsufficientTargetPointsError: If the target is empty or has
                fewer points than tracked ids.
            ValueError: If ``iterations`` is negative.
        """
        target = np.asarray(target, dtype=np.float64).reshape(-1, 3)
        if iterations < 0:
            raise ValueError(f"Number of iterations must be non-negative, got {iterations}")
        if len(target) == 0:
            raise InsufficientTargetPointsError("Target point cloud is empty")

        if point_ids is None:
            point_ids = ICPFitter.select_point_ids(pdm, target)
        point_ids = pdm.check_point_ids(point_ids)
        if len(target) < len(point_ids):
            raise InsufficientTargetPointsError(
                f"Target has {len(target)} points but {len(point_ids)} reference points are tracked"
            )

        tree = cKDTree(target)
        covariance = isotropic_covariance(noise_variance)

        state = IcpState.INITIALIZED
        current = pdm.mean_instance()
        coefficients = np.zeros(pdm.rank)
        remaining = iterations
        rounds = 0
        distances = []
        objectives = []
        observations = []

        while True:
            if state == IcpState.INITIALIZED:
                state = IcpState.CORRESPONDENCE if remaining > 0 else IcpState.ITERATION_BUDGET_EXHAUSTED

            elif state == IcpState.CORRESPONDENCE:
                tracked = current[point_ids]
                dist, nearest = tree.query(tracked)
                distance = float(np.sum(dist ** 2))
                distances.append(distance)
                objectives.append(distance / noise_variance + float(coefficients @ coefficients))
                observations = [
                    PointObservation(point_id=i, position=target[j], noise_covariance=covariance)
                    for i, j in zip(point_ids, nearest)
                ]
                state = IcpState.REFIT

            elif state == IcpState.REFIT:
                rounds += 1
                remaining -= 1
                logger.info(f"ICP iteration {rounds}/{iterations}")
                posterior = PosteriorFitter.compute_posterior(pdm, observations)
                previous = current
                current = posterior.mean_instance()
                coefficients = posterior.coefficients
                logger.debug(f"  squared correspondence distance: {distances[-1]:.6f}")

                if on_iteration is not None:
                    on_iteration(rounds, current)

                shift = np.max(np.linalg.norm(current[point_ids] - previous[point_ids], axis=1))
                if convergence_threshold is not None and shift < convergence_threshold:
                    state = IcpState.CONVERGED
                elif remaining == 0:
                    state = IcpState.ITERATION_BUDGET_EXHAUSTED
                else:
                    state = IcpState.CORRESPONDENCE

            else:
                break

        if rounds > 0:
            # Distance of the final shape, measured like every other round
            dist, _ = tree.query(current[point_ids])
            distances.append(float(np.sum(dist ** 2)))
            objectives.append(distances[-1] / noise_variance + float(coefficients @ coefficients))

        logger.info(f"ICP finished after {rounds} iteration(s): {state.value}")
        return IcpResult(
            fitted_points=current,
            state=state,
            iterations=rounds,
            point_ids=point_ids,
            coefficients=np.asarray(coefficients),
            distances=distances,
            objectives=objectives,
        )
