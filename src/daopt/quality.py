"""Dose quality indicators of structures."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Final

import numpy as np

if TYPE_CHECKING:
    from collections.abc import Sequence

    from numpy.typing import ArrayLike, NDArray

    from daopt.config import StructureConfig

DOSE_VOLUME_LEVELS: Final = (2, 5, 50, 95, 98)


def dose_at_volume(dose: ArrayLike, volume: float) -> float:
    """Return the minimum dose received by the hottest `volume` percent.

    The voxel doses are sorted in descending order, and the dose of the voxel
    at the given volume percentage is returned. For instance, `volume=95`
    returns the D95 value.

    Args:
        dose:   The dose in the voxels of a structure.
        volume: The volume percentage.

    Returns:
        The dose at the given volume, or NaN if there are no voxels.
    """
    dose = np.sort(np.asarray(dose, dtype=np.float64).ravel())[::-1]
    if dose.size == 0:
        return math.nan
    index = math.ceil(volume / 100.0 * dose.size) - 1
    return float(dose[min(max(index, 0), dose.size - 1)])


@dataclass(frozen=True, slots=True)
class QualityIndicators:
    """Dose statistics of a single structure.

    The `dose_at_volume` dictionary maps volume percentages to the
    corresponding dose values, for the levels listed in
    `daopt.quality.DOSE_VOLUME_LEVELS`.

    Attributes:
        name:           The name of the structure.
        mean:           The mean dose.
        std:            The standard deviation of the dose.
        max:            The maximum dose.
        min:            The minimum dose.
        dose_at_volume: Dose values at fixed volume percentages.
    """

    name: str
    mean: float
    std: float
    max: float
    min: float
    dose_at_volume: dict[int, float]

    @property
    def d95(self) -> float:
        """The dose received by 95% of the structure."""
        return self.dose_at_volume[95]


def compute_quality_indicators(
    dose: NDArray[np.float64], structures: Sequence[StructureConfig]
) -> tuple[QualityIndicators, ...]:
    """Compute the quality indicators of a set of structures.

    The dose may be given as a flat array or as a volume. In the latter case
    it is flattened in C-order to match the voxel indices of the structures.
    Structures without voxels yield NaN values.

    Args:
        dose:       The dose distribution.
        structures: The structures.

    Returns:
        The quality indicators of each structure, in order.
    """
    flat_dose = np.asarray(dose, dtype=np.float64).ravel()
    indicators = []
    for structure in structures:
        voxel_dose = flat_dose[structure.voxels]
        empty = voxel_dose.size == 0
        indicators.append(
            QualityIndicators(
                name=structure.name,
                mean=math.nan if empty else float(voxel_dose.mean()),
                std=math.nan if empty else float(voxel_dose.std()),
                max=math.nan if empty else float(voxel_dose.max()),
                min=math.nan if empty else float(voxel_dose.min()),
                dose_at_volume={
                    level: dose_at_volume(voxel_dose, level)
                    for level in DOSE_VOLUME_LEVELS
                },
            )
        )
    return tuple(indicators)
