"""Dose objective functions and their gradients.

All functions take the dose in the voxels of a single structure and return
the penalized objective value, or its gradient with respect to that dose.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

from daopt.enums import ObjectiveType
from daopt.quality import dose_at_volume

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from daopt.config import DoseObjectiveConfig


def _deviation(
    objective: DoseObjectiveConfig, dose: NDArray[np.float64]
) -> NDArray[np.float64]:
    deviation = dose - objective.dose
    match objective.type:
        case ObjectiveType.SQUARED_DEVIATION:
            pass
        case ObjectiveType.SQUARED_OVERDOSING:
            deviation[deviation < 0.0] = 0.0
        case ObjectiveType.SQUARED_UNDERDOSING:
            deviation[deviation > 0.0] = 0.0
        case ObjectiveType.MAX_DVH:
            reference = dose_at_volume(dose, objective.volume)
            deviation[(dose < objective.dose) | (dose > reference)] = 0.0
        case ObjectiveType.MIN_DVH:
            reference = dose_at_volume(dose, objective.volume)
            deviation[(dose > objective.dose) | (dose < reference)] = 0.0
        case _:
            msg = f"objective type {objective.type!r} has no deviation"
            raise ValueError(msg)
    return deviation


def objective_value(objective: DoseObjectiveConfig, dose: NDArray[np.float64]) -> float:
    """Evaluate a dose objective.

    Args:
        objective: The objective configuration.
        dose:      The dose in the voxels of the structure.

    Returns:
        The penalized objective value.
    """
    if dose.size == 0:
        return 0.0
    if objective.type == ObjectiveType.MEAN_DOSE:
        return objective.penalty * float(dose.mean())
    deviation = _deviation(objective, dose)
    return objective.penalty * float(deviation @ deviation) / dose.size


def objective_gradient(
    objective: DoseObjectiveConfig, dose: NDArray[np.float64]
) -> NDArray[np.float64]:
    """Evaluate the gradient of a dose objective with respect to the dose.

    Args:
        objective: The objective configuration.
        dose:      The dose in the voxels of the structure.

    Returns:
        The gradient, with the same shape as `dose`.
    """
    if dose.size == 0:
        return np.zeros_like(dose)
    if objective.type == ObjectiveType.MEAN_DOSE:
        return np.full_like(dose, objective.penalty / dose.size)
    return 2.0 * objective.penalty * _deviation(objective, dose) / dose.size
