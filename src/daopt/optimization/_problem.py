"""Assembly of the optimization problem."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

import numpy as np

from daopt.aperture import vector_to_aperture
from daopt.config.utils import immutable_array
from daopt.delivery import transition_times

if TYPE_CHECKING:
    from collections.abc import Sequence

    from numpy.typing import NDArray

    from daopt.aperture import ApertureInfo
    from daopt.config import PlanConfig, StructureConfig
    from daopt.dij import DoseInfluenceMatrix
    from daopt.enums import BiologicalModel, RadiationMode

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class OptimizationProblem:
    """The bounds and metadata of a direct aperture optimization problem.

    The variable bounds apply to the aperture vector. For rotational plans
    there are two constraint rows per transition between adjacent shapes:
    first all leaf speed rows, then all dose rate rows.

    Attributes:
        lower_bounds:          Lower bounds of the variables.
        upper_bounds:          Upper bounds of the variables.
        constraint_lower:      Lower bounds of the constraint rows.
        constraint_upper:      Upper bounds of the constraint rows.
        radiation_mode:        The radiation modality.
        bio_optimization:      The biological optimization mode.
        num_of_scenarios:      The number of dose scenarios.
        vmat:                  Whether delivery constraints are active.
        leaf_speed_constraint: Leaf speed limits `[min, max]` (mm/s).
        dose_rate_constraint:  Dose rate limits `[min, max]` (MU/s).
        gantry_rotation_speed: The gantry rotation speed (deg/s).
    """

    lower_bounds: NDArray[np.float64]
    upper_bounds: NDArray[np.float64]
    constraint_lower: NDArray[np.float64]
    constraint_upper: NDArray[np.float64]
    radiation_mode: RadiationMode
    bio_optimization: BiologicalModel
    num_of_scenarios: int = 1
    vmat: bool = False
    leaf_speed_constraint: tuple[float, float] = (0.0, 60.0)
    dose_rate_constraint: tuple[float, float] = (75.0 / 60.0, 600.0 / 60.0)
    gantry_rotation_speed: float = 6.0

    def __post_init__(self) -> None:
        """Convert the bounds to immutable arrays.

        # noqa
        """
        for name in (
            "lower_bounds",
            "upper_bounds",
            "constraint_lower",
            "constraint_upper",
        ):
            object.__setattr__(
                self, name, immutable_array(getattr(self, name), dtype=np.float64)
            )
        if self.lower_bounds.shape != self.upper_bounds.shape:
            msg = "the variable bounds must have equal lengths"
            raise ValueError(msg)
        if self.constraint_lower.shape != self.constraint_upper.shape:
            msg = "the constraint bounds must have equal lengths"
            raise ValueError(msg)

    @property
    def id(self) -> str:
        """Identifier composed of the radiation mode and biological model."""
        return f"{self.radiation_mode}_{self.bio_optimization}"

    @property
    def constraint_count(self) -> int:
        """The number of constraint rows."""
        return int(self.constraint_lower.size)


def set_overlap_priorities(
    structures: Sequence[StructureConfig],
) -> tuple[StructureConfig, ...]:
    """Remove overlapping voxels from structures with a lower precedence.

    A voxel contained in several structures is kept only in the structures
    with the lowest priority number. Structures of equal priority share their
    common voxels.

    Args:
        structures: The structures.

    Returns:
        New structures, with the overlapping voxels removed.
    """
    result = []
    for structure in structures:
        claimed = [
            other.voxels
            for other in structures
            if other.priority < structure.priority and other.voxels.size > 0
        ]
        voxels = structure.voxels
        if claimed:
            voxels = voxels[~np.isin(voxels, np.concatenate(claimed))]
        result.append(
            structure.model_copy(update={"voxels": immutable_array(voxels)})
        )
    return tuple(result)


def normalize_structures(
    structures: Sequence[StructureConfig], num_of_fractions: int
) -> tuple[StructureConfig, ...]:
    """Convert the dose thresholds of all objectives to a single fraction.

    Args:
        structures:       The structures.
        num_of_fractions: The number of fractions.

    Returns:
        New structures with per-fraction objectives.
    """
    return tuple(
        structure.model_copy(
            update={
                "objectives": tuple(
                    objective.per_fraction(num_of_fractions)
                    for objective in structure.objectives
                )
            }
        )
        for structure in structures
    )


def restore_prescription_scaling(aperture: ApertureInfo) -> ApertureInfo:
    """Undo a previous calibration of the shape weights to a prescription.

    The shape weights of a calibrated aperture parameterization are divided
    by its recorded prescription scale factor, and the record is cleared. The
    solver then starts from the weights found by the previous optimization.

    Args:
        aperture: The aperture parameterization.

    Returns:
        A parameterization without prescription scaling.
    """
    factor = aperture.prescription_scale_factor
    if factor is None:
        return aperture
    _LOGGER.debug("Removing prescription scale factor %g", factor)
    vector = np.array(aperture.aperture_vector)
    vector[: aperture.num_of_shapes] /= factor
    return vector_to_aperture(
        replace(aperture, prescription_scale_factor=None), vector
    )


def get_constraint_bounds(
    aperture: ApertureInfo, plan: PlanConfig
) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    """Return the bounds of the delivery constraint rows.

    Without rotational delivery there are no constraints. Otherwise each of
    the `k` transitions contributes a leaf speed row and a dose rate row, in
    this order: `k` leaf speed rows followed by `k` dose rate rows.

    Args:
        aperture: The aperture parameterization.
        plan:     The plan configuration.

    Returns:
        The lower and upper bounds of the constraint rows.

    Raises:
        ValueError: If two consecutive shapes have the same gantry angle.
    """
    if not plan.vmat:
        return np.zeros(0), np.zeros(0)
    count = transition_times(aperture, plan.gantry_rotation_speed).size
    limits = np.array([plan.leaf_speed_constraint, plan.dose_rate_constraint])
    return np.repeat(limits[:, 0], count), np.repeat(limits[:, 1], count)


def _check_inputs(
    structures: Sequence[StructureConfig],
    aperture: ApertureInfo,
    plan: PlanConfig,
    dij: DoseInfluenceMatrix,
) -> None:
    if plan.num_of_fractions <= 0:
        msg = "the number of fractions must be positive"
        raise ValueError(msg)
    if dij.num_of_bixels != aperture.num_of_bixels:
        msg = (
            f"the dose influence matrix has {dij.num_of_bixels} bixels, "
            f"the aperture parameterization {aperture.num_of_bixels}"
        )
        raise ValueError(msg)
    for structure in structures:
        voxels = structure.voxels
        if voxels.size > 0 and voxels.max() >= dij.num_of_voxels:
            msg = f"structure {structure.name!r} has voxels outside the dose grid"
            raise ValueError(msg)


def build_problem(
    structures: Sequence[StructureConfig],
    aperture: ApertureInfo,
    plan: PlanConfig,
    dij: DoseInfluenceMatrix,
) -> tuple[OptimizationProblem, tuple[StructureConfig, ...]]:
    """Assemble the optimization problem.

    The structures are prepared for the optimization by resolving overlaps
    and converting their objectives to a single fraction. The variable bounds
    are taken from the bounds table of the aperture parameterization, the
    constraint bounds from the machine limits of the plan.

    Args:
        structures: The structures.
        aperture:   The aperture parameterization.
        plan:       The plan configuration.
        dij:        The dose influence matrix.

    Returns:
        The problem and the prepared structures.

    Raises:
        ValueError: If the inputs are inconsistent.
    """
    _check_inputs(structures, aperture, plan, dij)
    prepared = normalize_structures(
        set_overlap_priorities(structures), plan.num_of_fractions
    )
    constraint_lower, constraint_upper = get_constraint_bounds(aperture, plan)
    problem = OptimizationProblem(
        lower_bounds=aperture.bounds[:, 0],
        upper_bounds=aperture.bounds[:, 1],
        constraint_lower=constraint_lower,
        constraint_upper=constraint_upper,
        radiation_mode=plan.radiation_mode,
        bio_optimization=plan.bio_optimization,
        num_of_scenarios=dij.num_of_scenarios,
        vmat=plan.vmat,
        leaf_speed_constraint=plan.leaf_speed_constraint,
        dose_rate_constraint=plan.dose_rate_constraint,
        gantry_rotation_speed=plan.gantry_rotation_speed,
    )
    _LOGGER.info(
        "Built problem %s with %d variables and %d constraints",
        problem.id,
        problem.lower_bounds.size,
        problem.constraint_count,
    )
    return problem, prepared
