"""This module defines the direct aperture optimization driver."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Self

from daopt.config import PlanConfig, SolverConfig, StructureConfig
from daopt.enums import EventType, PipelineState, SolverStatus
from daopt.events import EventBroker

from ._calibration import calibrate_to_prescription
from ._cancellation import CancellationToken, subscribe_cancellation
from ._context import SolveContext
from ._evaluators import DaoProblem
from ._postprocess import post_process
from ._problem import build_problem, restore_prescription_scaling
from ._rescale import DoseRescaler
from ._solver import SciPySolver

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Sequence

    from daopt.aperture import ApertureInfo
    from daopt.dij import DoseInfluenceMatrix
    from daopt.events import Event
    from daopt.results import DaoResult

_LOGGER = logging.getLogger(__name__)

_SOLVED_STATES = {
    SolverStatus.CONVERGED: PipelineState.CONVERGED,
    SolverStatus.CANCELLED: PipelineState.CANCELLED,
    SolverStatus.MAX_ITERATIONS_REACHED: PipelineState.FAILED,
    SolverStatus.FAILED: PipelineState.FAILED,
}


class DirectApertureOptimizer:
    """A class for executing direct aperture optimization runs.

    The optimizer optimizes the shape weights and leaf positions of an
    aperture parameterization, such that the dose computed with the dose
    influence matrix meets the objectives of the structures. A run proceeds
    through the following steps:

    1. Any prescription scaling from an earlier calibration is removed from
       the shape weights.
    2. Optionally, the problem is rescaled to improve its numerical
       conditioning.
    3. The optimization problem is built, resolving overlapping structures
       and converting the objectives to a single fraction.
    4. The solver runs until it converges, fails, or is cancelled.
    5. The solution is mapped back to the original scale, and the bixel
       weights, the dose and, for rotational plans, the delivery metrics are
       computed.
    6. Optionally, the shape weights are calibrated to the prescription.

    The inputs are never modified. The progress of a run is available from
    the `state` property, and observers can be added to react to the events
    emitted during the run.

    A run can be cancelled from another thread, or from a signal handler, by
    calling `cancel`. The solver then stops after its current iteration, and
    the result holds the last completed iterate. A cancellation requested
    before the run starts has no effect.
    """

    def __init__(  # noqa: PLR0913
        self,
        dij: DoseInfluenceMatrix,
        structures: Sequence[StructureConfig | dict[str, Any]],
        aperture: ApertureInfo,
        plan: PlanConfig | dict[str, Any],
        *,
        solver: SolverConfig | dict[str, Any] | None = None,
        token: CancellationToken | None = None,
    ) -> None:
        """Initialize a `DirectApertureOptimizer` object.

        The structures, the plan, and the solver configuration may be passed
        as configuration objects, or as dictionaries that are validated into
        such objects.

        Args:
            dij:        The dose influence matrix.
            structures: The structures with their objectives.
            aperture:   The initial aperture parameterization.
            plan:       The plan configuration.
            solver:     The solver configuration.
            token:      The cancellation token to use.
        """
        self._dij = dij
        self._structures = tuple(
            StructureConfig.model_validate(item) for item in structures
        )
        self._aperture = aperture
        self._plan = PlanConfig.model_validate(plan)
        self._solver_config = SolverConfig.model_validate(
            {} if solver is None else solver
        )
        self._token = CancellationToken() if token is None else token
        self._events = EventBroker()
        self._state = PipelineState.BUILT
        self._result: DaoResult | None = None

    @property
    def state(self) -> PipelineState:
        """The state of the most recent run."""
        return self._state

    @property
    def token(self) -> CancellationToken:
        """The cancellation token of the optimizer."""
        return self._token

    @property
    def result(self) -> DaoResult | None:
        """The result of the most recent run, if available."""
        return self._result

    def add_observer(
        self, event_type: EventType, callback: Callable[[Event], None]
    ) -> Self:
        """Add an observer for optimization events.

        Args:
            event_type: The type of events to react to.
            callback:   The function to call when the event is emitted.

        Returns:
            The `DirectApertureOptimizer` instance, allowing for method chaining.
        """
        self._events.add_observer(event_type, callback)
        return self

    def cancel(self) -> None:
        """Request cancellation of the running optimization."""
        self._token.cancel()

    def run(
        self,
        *,
        scale_dij: bool = False,
        scale_to_prescription: bool = False,
        cancel_on_interrupt: bool = False,
    ) -> Self:
        """Run the optimization.

        After the run, the result is available from the `result` property.

        Args:
            scale_dij:             Rescale the problem before solving.
            scale_to_prescription: Calibrate the result to the prescription.
            cancel_on_interrupt:   Cancel the run on a keyboard interrupt.

        Returns:
            The `DirectApertureOptimizer` instance, allowing for method chaining.

        Raises:
            ValueError:          If the inputs are inconsistent.
            NotImplementedError: If the problem or solver is not supported.
        """
        self._state = PipelineState.BUILT
        self._result = None

        aperture = restore_prescription_scaling(self._aperture)
        dij = self._dij
        rescaler = DoseRescaler()
        if scale_dij:
            rescaler = DoseRescaler.from_aperture(aperture)
            dij, aperture = rescaler.rescale(dij, aperture)
            _LOGGER.info("Rescaled the problem with factor %g", rescaler.factor)
            self._state = PipelineState.RESCALED

        problem, structures = build_problem(
            self._structures, aperture, self._plan, dij
        )
        solver = SciPySolver(
            self._solver_config,
            DaoProblem(aperture, dij, structures, problem),
            self._events,
        )

        unsubscribe = (
            subscribe_cancellation(self._token) if cancel_on_interrupt else None
        )
        self._state = PipelineState.SOLVING
        try:
            outcome = solver.solve(
                aperture.aperture_vector, problem, SolveContext(token=self._token)
            )
        finally:
            if unsubscribe is not None:
                unsubscribe()
        self._state = _SOLVED_STATES[outcome.status]

        _, aperture = rescaler.restore(dij, aperture)
        result = post_process(
            self._dij,
            aperture,
            rescaler.from_optimizer(aperture, outcome.variables),
            outcome,
            self._plan,
            rescale_factor=rescaler.factor,
        )
        self._state = PipelineState.POST_PROCESSED

        if scale_to_prescription:
            result = calibrate_to_prescription(
                result, self._dij, self._structures, self._plan
            )
            self._state = PipelineState.CALIBRATED

        self._result = result
        self._events.emit(EventType.FINISHED_POST_PROCESSING, result=result)
        return self


def direct_aperture_optimization(  # noqa: PLR0913
    dij: DoseInfluenceMatrix,
    structures: Sequence[StructureConfig | dict[str, Any]],
    aperture: ApertureInfo,
    plan: PlanConfig | dict[str, Any],
    *,
    solver: SolverConfig | dict[str, Any] | None = None,
    scale_dij: bool = False,
    scale_to_prescription: bool = False,
    token: CancellationToken | None = None,
    cancel_on_interrupt: bool = False,
    observers: Iterable[tuple[EventType, Callable[[Event], None]]] | None = None,
) -> DaoResult:
    """Optimize the shapes of an aperture parameterization.

    This is a convenience function that creates a
    [`DirectApertureOptimizer`][daopt.optimization.DirectApertureOptimizer],
    runs it, and returns its result.

    Args:
        dij:                   The dose influence matrix.
        structures:            The structures with their objectives.
        aperture:              The initial aperture parameterization.
        plan:                  The plan configuration.
        solver:                The solver configuration.
        scale_dij:             Rescale the problem before solving.
        scale_to_prescription: Calibrate the result to the prescription.
        token:                 The cancellation token to use.
        cancel_on_interrupt:   Cancel the run on a keyboard interrupt.
        observers:             Pairs of event types and callbacks.

    Returns:
        The optimization result.
    """
    optimizer = DirectApertureOptimizer(
        dij, structures, aperture, plan, solver=solver, token=token
    )
    for event_type, callback in observers or ():
        optimizer.add_observer(event_type, callback)
    optimizer.run(
        scale_dij=scale_dij,
        scale_to_prescription=scale_to_prescription,
        cancel_on_interrupt=cancel_on_interrupt,
    )
    assert optimizer.result is not None
    return optimizer.result
