"""Conversion of the solver output into a result."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import numpy as np

from daopt.aperture import vector_to_aperture
from daopt.delivery import optimize_delivery
from daopt.results import DaoResult

if TYPE_CHECKING:
    from numpy.typing import ArrayLike

    from daopt.aperture import ApertureInfo
    from daopt.config import PlanConfig
    from daopt.dij import DoseInfluenceMatrix
    from daopt.results import SolverOutcome

_LOGGER = logging.getLogger(__name__)


def post_process(  # noqa: PLR0913
    dij: DoseInfluenceMatrix,
    aperture: ApertureInfo,
    variables: ArrayLike,
    outcome: SolverOutcome,
    plan: PlanConfig,
    *,
    rescale_factor: float = 1.0,
) -> DaoResult:
    """Derive the result of an optimization from the solved aperture vector.

    The aperture parameterization is updated with the solved vector, from
    which the realized bixel weights and the dose are computed. For
    rotational plans, the delivery timing is derived as well.

    The dose influence matrix and parameterization must be in the original,
    unscaled, form, and `variables` must contain the shape weights in the
    original scale.

    Args:
        dij:            The dose influence matrix.
        aperture:       The aperture parameterization.
        variables:      The solved aperture vector.
        outcome:        The outcome of the solver.
        plan:           The plan configuration.
        rescale_factor: The factor that was used to rescale the problem.

    Returns:
        The optimization result.
    """
    aperture = vector_to_aperture(aperture, variables)
    assert aperture.bixel_weights is not None
    weights = np.array(aperture.bixel_weights)
    dose = dij.dose(weights).reshape(dij.dimensions)
    delivery = optimize_delivery(aperture, plan) if plan.vmat else None
    if delivery is not None:
        _LOGGER.info(
            "Delivery takes %.1f s for %.1f MU", delivery.total_time, delivery.total_mu
        )
    return DaoResult(
        aperture=aperture,
        weights=weights,
        dose=dose,
        outcome=outcome,
        delivery=delivery,
        rescale_factor=rescale_factor,
    )
