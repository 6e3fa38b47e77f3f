"""Result classes of direct aperture optimization."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from daopt.config.utils import immutable_array

if TYPE_CHECKING:
    import numpy as np
    from numpy.typing import NDArray

    from daopt.aperture import ApertureInfo
    from daopt.enums import SolverStatus
    from daopt.quality import QualityIndicators


@dataclass(frozen=True, slots=True)
class SolverOutcome:
    """The outcome of a single solve.

    The `variables` field holds the solved vector, in the domain the solver
    worked in: if the problem was rescaled, the inverse rescaling has not been
    applied yet. For a cancelled solve it holds the last completed iterate.

    Attributes:
        variables:        The solved vector.
        status:           The termination status.
        iterations:       The number of completed iterations.
        objective_values: The objective value after each iteration.
        message:          The message reported by the solver.
    """

    variables: NDArray[np.float64]
    status: SolverStatus
    iterations: int
    objective_values: NDArray[np.float64]
    message: str = ""

    def __post_init__(self) -> None:
        """Make all array fields immutable copies.

        # noqa
        """
        object.__setattr__(self, "variables", immutable_array(self.variables))
        object.__setattr__(
            self, "objective_values", immutable_array(self.objective_values)
        )


@dataclass(frozen=True, slots=True)
class DeliveryMetrics:
    """Delivery metrics of a rotational plan.

    Transitions are the gantry movements between consecutive shapes. The
    `max_leaf_speeds` field holds the leaf speeds implied by the nominal
    transition times, the other per-transition fields describe the delivery
    after slowing down transitions to respect all machine limits.

    Attributes:
        max_leaf_speeds: Maximum leaf speed per transition, nominal timing (mm/s).
        times:           Duration of each transition (s).
        leaf_speeds:     Maximum leaf speed per transition (mm/s).
        dose_rates:      Dose rate per transition (MU/s).
        gantry_speeds:   Gantry rotation speed per transition (deg/s).
        monitor_units:   Monitor units per shape.
        total_mu:        Total monitor units.
        total_time:      Total delivery time (s).
    """

    max_leaf_speeds: NDArray[np.float64]
    times: NDArray[np.float64]
    leaf_speeds: NDArray[np.float64]
    dose_rates: NDArray[np.float64]
    gantry_speeds: NDArray[np.float64]
    monitor_units: NDArray[np.float64]
    total_mu: float
    total_time: float


@dataclass(frozen=True, slots=True)
class DaoResult:
    """The result of a direct aperture optimization.

    The bixel weights are available under two names, `weights` and
    `dao_weights`, referring to the same array.

    Attributes:
        aperture:           The final aperture parameterization.
        weights:            The realized bixel weights.
        dose:               The dose of a single fraction, on the dose grid.
        outcome:            The outcome of the solver.
        delivery:           Delivery metrics for rotational plans.
        rescale_factor:     The factor used to rescale the problem.
        calibration_factor: The prescription calibration factor, if applied.
        quality_indicators: The quality indicators used for calibration.
    """

    aperture: ApertureInfo
    weights: NDArray[np.float64]
    dose: NDArray[np.float64]
    outcome: SolverOutcome
    delivery: DeliveryMetrics | None = None
    rescale_factor: float = 1.0
    calibration_factor: float | None = None
    quality_indicators: tuple[QualityIndicators, ...] | None = None

    def __post_init__(self) -> None:
        """Make all array fields immutable copies.

        # noqa
        """
        object.__setattr__(self, "weights", immutable_array(self.weights))
        object.__setattr__(self, "dose", immutable_array(self.dose))

    @property
    def dao_weights(self) -> NDArray[np.float64]:
        """The realized bixel weights."""
        return self.weights
