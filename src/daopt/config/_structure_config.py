"""Configuration classes for structures and their dose objectives."""

from __future__ import annotations

from typing import Annotated

import numpy as np
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    NonNegativeFloat,
    PositiveInt,
    field_validator,
)

from daopt.config.validated_types import Array1DIndex  # noqa: TC001
from daopt.enums import ObjectiveType, StructureType


class DoseObjectiveConfig(BaseModel):
    """Configuration class for a single dose objective.

    The `dose` field is the dose threshold of the objective, given as a total
    dose over all fractions. The `volume` field is only used by the DVH
    objectives and gives the volume percentage the threshold refers to.
    Objectives of a structure are summed, each multiplied by its `penalty`.

    Attributes:
        type:    The objective type.
        dose:    The dose threshold in Gy.
        penalty: The penalty factor (default: 1).
        volume:  Volume percentage for DVH objectives (default: 100).
    """

    type: ObjectiveType = ObjectiveType.SQUARED_DEVIATION
    dose: NonNegativeFloat = 0.0
    penalty: NonNegativeFloat = 1.0
    volume: Annotated[float, Field(ge=0.0, le=100.0)] = 100.0

    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
        validate_default=True,
    )

    def per_fraction(self, num_of_fractions: int) -> DoseObjectiveConfig:
        """Return a copy with the dose threshold of a single fraction.

        Args:
            num_of_fractions: The number of fractions.

        Returns:
            A new objective with its dose divided by `num_of_fractions`.
        """
        return self.model_copy(update={"dose": self.dose / num_of_fractions})


class StructureConfig(BaseModel):
    """Configuration class for an anatomical structure.

    A structure is defined by the linear indices of its voxels in the dose
    grid. The `priority` field resolves overlaps: a voxel shared by several
    structures is only optimized as part of the structures with the lowest
    priority number.

    Attributes:
        name:       The name of the structure.
        type:       The structure type (default: organ at risk).
        priority:   Overlap priority, lower numbers take precedence.
        voxels:     Linear voxel indices of the structure.
        objectives: The dose objectives of the structure.
    """

    name: str
    type: StructureType = StructureType.OAR
    priority: PositiveInt = 1
    voxels: Array1DIndex
    objectives: tuple[DoseObjectiveConfig, ...] = ()

    model_config = ConfigDict(
        arbitrary_types_allowed=True,
        extra="forbid",
        frozen=True,
        str_min_length=1,
        str_strip_whitespace=True,
        validate_default=True,
    )

    @field_validator("voxels")
    @classmethod
    def _check_voxels(cls, value: Array1DIndex) -> Array1DIndex:
        if value.ndim != 1:
            msg = "the voxel indices must be a one-dimensional array"
            raise ValueError(msg)
        if np.any(value < 0):
            msg = "the voxel indices must not be negative"
            raise ValueError(msg)
        return value

    @property
    def is_optimized(self) -> bool:
        """Whether the structure contributes to the objective."""
        return (
            self.type != StructureType.IGNORED
            and bool(self.objectives)
            and self.voxels.size > 0
        )
