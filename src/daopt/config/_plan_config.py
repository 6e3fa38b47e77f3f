"""Configuration class for the treatment plan."""

from __future__ import annotations

from typing import Self

from pydantic import (
    BaseModel,
    ConfigDict,
    NonNegativeInt,
    PositiveFloat,
    PositiveInt,
    field_validator,
    model_validator,
)

from daopt.enums import BiologicalModel, RadiationMode

from .utils import check_limits


class PlanConfig(BaseModel):
    """Configuration class for the plan metadata used by the optimization.

    The `num_of_fractions` field sets the number of treatment fractions. The
    dose influence matrix yields the dose of a single fraction, hence all dose
    thresholds of the clinical objectives, which are given as total doses, are
    divided by this number before they enter the optimization.

    The `radiation_mode` and `bio_optimization` fields tag the problem. Direct
    aperture optimization only supports the physical dose
    ([`BiologicalModel.NONE`][daopt.enums.BiologicalModel.NONE]).

    If `vmat` is `True`, the shapes of the aperture parameterization are
    delivered in order during a gantry rotation. Constraint rows then bound
    the leaf speed and the dose rate of each transition between adjacent
    shapes, using the limits in `leaf_speed_constraint` (mm/s) and
    `dose_rate_constraint` (MU/s). The nominal duration of a transition
    follows from its angular distance and `gantry_rotation_speed` (deg/s).

    The optional `prescription_dose` (total dose in Gy) and
    `prescription_structures` (indices into the structure set) are needed
    for calibrating a solution to the prescription.

    Attributes:
        num_of_fractions:        Number of treatment fractions.
        radiation_mode:          The radiation modality.
        bio_optimization:        The biological optimization mode.
        vmat:                    Enable rotational delivery constraints.
        leaf_speed_constraint:   Leaf speed limits `[min, max]` in mm/s.
        dose_rate_constraint:    Dose rate limits `[min, max]` in MU/s.
        gantry_rotation_speed:   Maximum gantry rotation speed in deg/s.
        prescription_dose:       Prescribed total dose (optional).
        prescription_structures: Indices of the prescription structures.
    """

    num_of_fractions: PositiveInt = 1
    radiation_mode: RadiationMode = RadiationMode.PHOTONS
    bio_optimization: BiologicalModel = BiologicalModel.NONE
    vmat: bool = False
    leaf_speed_constraint: tuple[float, float] = (0.0, 60.0)
    dose_rate_constraint: tuple[float, float] = (75.0 / 60.0, 600.0 / 60.0)
    gantry_rotation_speed: PositiveFloat = 6.0
    prescription_dose: PositiveFloat | None = None
    prescription_structures: tuple[NonNegativeInt, ...] = ()

    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
        validate_default=True,
    )

    @field_validator("leaf_speed_constraint")
    @classmethod
    def _check_leaf_speed(cls, value: tuple[float, float]) -> tuple[float, float]:
        return check_limits(value, "leaf speed")

    @field_validator("dose_rate_constraint")
    @classmethod
    def _check_dose_rate(cls, value: tuple[float, float]) -> tuple[float, float]:
        return check_limits(value, "dose rate")

    @model_validator(mode="after")
    def _check_prescription(self) -> Self:
        if self.prescription_structures and self.prescription_dose is None:
            msg = "prescription structures are given without a prescription dose"
            raise ValueError(msg)
        return self

    @property
    def prescription_dose_per_fraction(self) -> float | None:
        """The prescribed dose of a single fraction, if a prescription is set."""
        if self.prescription_dose is None:
            return None
        return self.prescription_dose / self.num_of_fractions
