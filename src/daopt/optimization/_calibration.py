"""Calibration of an optimized plan to its prescription."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import TYPE_CHECKING

import numpy as np

from daopt.aperture import vector_to_aperture
from daopt.delivery import optimize_delivery
from daopt.quality import compute_quality_indicators

if TYPE_CHECKING:
    from collections.abc import Sequence

    from daopt.config import PlanConfig, StructureConfig
    from daopt.dij import DoseInfluenceMatrix
    from daopt.results import DaoResult

_LOGGER = logging.getLogger(__name__)


def calibrate_to_prescription(
    result: DaoResult,
    dij: DoseInfluenceMatrix,
    structures: Sequence[StructureConfig],
    plan: PlanConfig,
) -> DaoResult:
    """Scale the shape weights of a result to meet the prescription.

    The dose received by 95% of each prescription structure (D95) is
    compared to the prescribed dose of a single fraction. All shape weights
    are multiplied by the largest ratio of the prescription to the D95 over
    the prescription structures, after which the D95 of every prescription
    structure meets or exceeds the prescription.

    The aperture parameterization of the returned result records the total
    prescription scale factor: the factor applied here, multiplied by any
    factor recorded on the input. A subsequent optimization divides the
    weights by this factor before solving.

    Args:
        result:     The optimization result to calibrate.
        dij:        The dose influence matrix.
        structures: The structures.
        plan:       The plan configuration, with the prescription.

    Returns:
        The calibrated result.

    Raises:
        ValueError: If the prescription is missing, or the D95 of a
                    prescription structure is not positive.
    """
    target = plan.prescription_dose_per_fraction
    if target is None or not plan.prescription_structures:
        msg = "calibration requires a prescription dose and structures"
        raise ValueError(msg)
    if max(plan.prescription_structures) >= len(structures):
        msg = "invalid prescription structure index"
        raise ValueError(msg)

    indicators = compute_quality_indicators(result.dose, structures)
    d95 = np.array([indicators[idx].d95 for idx in plan.prescription_structures])
    if not np.all(np.isfinite(d95) & (d95 > 0.0)):
        msg = "cannot calibrate: the D95 of a prescription structure is not positive"
        raise ValueError(msg)
    factor = float(np.max(target / d95))
    _LOGGER.info("Calibrating the shape weights with factor %g", factor)

    aperture = result.aperture
    vector = np.array(aperture.aperture_vector)
    vector[: aperture.num_of_shapes] *= factor
    previous = aperture.prescription_scale_factor
    aperture = vector_to_aperture(
        replace(
            aperture,
            prescription_scale_factor=factor if previous is None else previous * factor,
        ),
        vector,
    )
    assert aperture.bixel_weights is not None
    weights = np.array(aperture.bixel_weights)
    return replace(
        result,
        aperture=aperture,
        weights=weights,
        dose=dij.dose(weights).reshape(dij.dimensions),
        delivery=None if result.delivery is None else optimize_delivery(aperture, plan),
        calibration_factor=factor,
        quality_indicators=indicators,
    )
