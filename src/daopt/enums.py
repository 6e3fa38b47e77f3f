"""Enumerations used within the `daopt` library."""

from enum import IntEnum, StrEnum


class RadiationMode(StrEnum):
    """Enumerates the radiation modalities a plan can be delivered with."""

    PHOTONS = "photons"
    PROTONS = "protons"
    CARBON = "carbon"


class BiologicalModel(StrEnum):
    """Enumerates the biological optimization modes of a plan.

    Direct aperture optimization only supports the physical dose, selected by
    [`NONE`][daopt.enums.BiologicalModel.NONE].
    """

    NONE = "none"
    "Optimize the physical dose."

    CONST_RBE = "const_RBExD"
    "Optimize the RBE-weighted dose with a constant RBE."

    LEM_EFFECT = "LEMIV_effect"
    "Optimize the biological effect."

    LEM_RBE = "LEMIV_RBExD"
    "Optimize the RBE-weighted dose with a variable RBE."


class StructureType(IntEnum):
    """Enumerates the clinical roles of a structure."""

    TARGET = 1
    "A target volume that should receive the prescribed dose."

    OAR = 2
    "An organ at risk."

    IGNORED = 3
    "A structure that does not take part in the optimization."


class ObjectiveType(IntEnum):
    r"""Enumerates the dose objectives that can be attached to a structure.

    With $d_i$ the dose in voxel $i$ of a structure with $n$ voxels, $D$ the
    dose threshold and $p$ the penalty, the objectives are:
    """

    SQUARED_DEVIATION = 1
    r"$\frac{p}{n}\sum_i (d_i - D)^2$"

    SQUARED_OVERDOSING = 2
    r"$\frac{p}{n}\sum_i \max(d_i - D, 0)^2$"

    SQUARED_UNDERDOSING = 3
    r"$\frac{p}{n}\sum_i \min(d_i - D, 0)^2$"

    MEAN_DOSE = 4
    r"$\frac{p}{n}\sum_i d_i$"

    MIN_DVH = 5
    """Penalize voxels below `D` that are needed to reach `volume` percent
    coverage at dose `D`."""

    MAX_DVH = 6
    """Penalize voxels above `D` that exceed the `volume` percent allowed to
    receive dose `D`."""


class SolverStatus(IntEnum):
    """Enumerates the reasons for terminating a solve."""

    CONVERGED = 1
    "The solver reports convergence."

    MAX_ITERATIONS_REACHED = 2
    "The solver stopped at the iteration limit."

    FAILED = 3
    "The solver failed for another reason."

    CANCELLED = 4
    "The solve was cancelled through the cancellation token."


class PipelineState(IntEnum):
    """Enumerates the states of a direct aperture optimization run."""

    BUILT = 1
    RESCALED = 2
    SOLVING = 3
    CONVERGED = 4
    CANCELLED = 5
    FAILED = 6
    POST_PROCESSED = 7
    CALIBRATED = 8


class EventType(IntEnum):
    """Enumerates the events emitted during a direct aperture optimization.

    Observers receive an [`Event`][daopt.events.Event] object. The `data`
    dictionary of the event holds:

    - `START_SOLVE`: `"problem"` and `"variables"`, the initial vector.
    - `ITERATION`: `"iteration"`, `"variables"` and `"objective"`.
    - `FINISHED_SOLVE`: `"outcome"`, the
      [`SolverOutcome`][daopt.results.SolverOutcome].
    - `FINISHED_POST_PROCESSING`: `"result"`, the
      [`DaoResult`][daopt.results.DaoResult].

    The events emitted by the solver also hold `"solver"`, the name of the
    solver method. The variables passed with solver events are in the scale
    used by the solver.
    """

    START_SOLVE = 1
    """Emitted just before the solver starts."""

    ITERATION = 2
    """Emitted after each solver iteration."""

    FINISHED_SOLVE = 3
    """Emitted when the solver returns."""

    FINISHED_POST_PROCESSING = 4
    """Emitted when the final result is available."""
