"""The SciPy solver adapter."""

from __future__ import annotations

import copy
import logging
from functools import partial
from typing import TYPE_CHECKING, Any, Final

import numpy as np
from scipy import sparse
from scipy.optimize import BFGS, Bounds, NonlinearConstraint, minimize

from daopt.enums import EventType, SolverStatus
from daopt.exceptions import SolveCancelled
from daopt.results import SolverOutcome

if TYPE_CHECKING:
    from numpy.typing import NDArray
    from scipy.optimize import OptimizeResult

    from daopt.config import SolverConfig
    from daopt.events import EventBroker

    from ._context import SolveContext
    from ._problem import OptimizationProblem
    from ._protocol import NlpProblem

_LOGGER = logging.getLogger(__name__)

_SUPPORTED_METHODS: Final[set[str]] = {
    name.lower() for name in ("SLSQP", "trust-constr", "L-BFGS-B", "TNC")
}

# All methods support bounds, only some support constraint rows:
_CONSTRAINT_SUPPORT_NONLINEAR: Final = {
    name.lower() for name in ("SLSQP", "trust-constr")
}

# These methods accept sparse constraint Jacobians:
_SPARSE_JACOBIAN: Final = {"trust-constr"}

# Status codes reporting an iteration or function evaluation limit:
_LIMIT_STATUS: Final = {"slsqp": 9, "trust-constr": 0, "l-bfgs-b": 1, "tnc": 3}


class SciPySolver:
    """Solves a nonlinear program with `scipy.optimize.minimize`.

    The solver method is selected by the `method` field of the
    [`SolverConfig`][daopt.config.SolverConfig] object. The `default` method
    is `SLSQP`; `trust-constr` uses sparse constraint Jacobians and a `BFGS`
    approximation of the Hessian. The `L-BFGS-B` and `TNC` methods only
    support problems without constraint rows.

    After each iteration of the solver, the iterate is recorded in the
    [`SolveContext`][daopt.optimization.SolveContext] and the cancellation
    token of the context is checked. If cancellation was requested, the solve
    stops and the last recorded iterate is returned with a
    [`CANCELLED`][daopt.enums.SolverStatus.CANCELLED] status.
    """

    def __init__(
        self,
        config: SolverConfig,
        problem: NlpProblem,
        events: EventBroker | None = None,
    ) -> None:
        """Initialize the solver.

        Args:
            config:  The solver configuration.
            problem: The problem callbacks.
            events:  Optional broker for emitting solver events.

        Raises:
            NotImplementedError: If the method is not supported, or does not
                                 support the constraints of the problem.
        """
        self._config = config
        self._problem = problem
        self._events = events
        self._structure: sparse.csr_matrix | None = None
        _, _, self._method = config.method.lower().rpartition("/")
        if self._method == "default":
            self._method = "slsqp"
        if self._method not in _SUPPORTED_METHODS:
            msg = f"SciPy optimizer algorithm {self._method} is not supported"
            raise NotImplementedError(msg)
        if (
            problem.constraint_count > 0
            and self._method not in _CONSTRAINT_SUPPORT_NONLINEAR
        ):
            msg = f"optimizer {self._method} does not support non-linear constraints"
            raise NotImplementedError(msg)
        self._options = self._parse_options()

    @property
    def method(self) -> str:
        """The name of the solver method."""
        return self._method

    def solve(
        self,
        initial_values: NDArray[np.float64],
        problem: OptimizationProblem,
        context: SolveContext,
    ) -> SolverOutcome:
        """Run the solver.

        Args:
            initial_values: The initial vector.
            problem:        The problem bounds.
            context:        The context holding the progress and token.

        Returns:
            The outcome of the solve.

        Raises:
            ValueError: If the initial vector and bounds are inconsistent, or
                        the constraint Jacobian leaves its sparsity pattern.
        """
        initial_values = np.array(initial_values, dtype=np.float64)
        if initial_values.shape != problem.lower_bounds.shape:
            msg = (
                f"the initial vector has length {initial_values.size}, "
                f"the bounds {problem.lower_bounds.size}"
            )
            raise ValueError(msg)
        if problem.constraint_count != self._problem.constraint_count:
            msg = "the constraint bounds do not match the constraint rows"
            raise ValueError(msg)

        with context.activate():
            self._emit(
                EventType.START_SOLVE, problem=problem, variables=initial_values
            )
            _LOGGER.info(
                "Starting %s with %d variables and %d constraints",
                self._method,
                initial_values.size,
                problem.constraint_count,
            )
            try:
                result = minimize(
                    fun=self._problem.objective,
                    x0=initial_values,
                    method=self._method,
                    jac=self._problem.gradient,
                    hess=BFGS() if self._method == "trust-constr" else None,
                    bounds=self._initialize_bounds(problem),
                    constraints=self._initialize_constraints(problem),
                    tol=self._config.tolerance,
                    options=self._options if self._options else None,
                    callback=partial(self._on_iteration, context),
                )
            except SolveCancelled as exc:
                outcome = self._cancelled_outcome(initial_values, context, exc)
            else:
                outcome = self._outcome(result, context)

        _LOGGER.info(
            "Finished %s after %d iterations: %s",
            self._method,
            outcome.iterations,
            outcome.status.name,
        )
        self._emit(EventType.FINISHED_SOLVE, outcome=outcome)
        return outcome

    def _initialize_bounds(self, problem: OptimizationProblem) -> Bounds | None:
        if (
            np.isfinite(problem.lower_bounds).any()
            or np.isfinite(problem.upper_bounds).any()
        ):
            return Bounds(problem.lower_bounds, problem.upper_bounds)
        return None

    def _initialize_constraints(
        self, problem: OptimizationProblem
    ) -> list[NonlinearConstraint]:
        if problem.constraint_count == 0:
            return []
        structure = sparse.csr_matrix(self._problem.jacobian_structure())
        if structure.shape[0] != problem.constraint_count:
            msg = "the Jacobian structure does not match the constraint rows"
            raise ValueError(msg)
        self._structure = structure.astype(bool)
        return [
            NonlinearConstraint(
                fun=self._problem.constraints,
                lb=problem.constraint_lower,
                ub=problem.constraint_upper,
                jac=(
                    self._sparse_jacobian
                    if self._method in _SPARSE_JACOBIAN
                    else self._dense_jacobian
                ),
            )
        ]

    def _sparse_jacobian(self, variables: NDArray[np.float64]) -> sparse.csr_matrix:
        matrix = sparse.csr_matrix(self._problem.jacobian(variables))
        assert self._structure is not None
        if matrix.shape != self._structure.shape:
            msg = "the constraint Jacobian does not match its sparsity pattern"
            raise ValueError(msg)
        outside = abs(matrix) - abs(matrix).multiply(self._structure)
        if outside.count_nonzero() > 0:
            msg = "the constraint Jacobian has entries outside its sparsity pattern"
            raise ValueError(msg)
        return matrix

    def _dense_jacobian(self, variables: NDArray[np.float64]) -> NDArray[np.float64]:
        return self._sparse_jacobian(variables).toarray()

    def _on_iteration(
        self,
        context: SolveContext,
        variables: NDArray[np.float64],
        *_: Any,  # noqa: ANN401
    ) -> None:
        objective = self._problem.objective(variables)
        context.record(variables, objective)
        _LOGGER.debug("Iteration %d: objective %g", context.iteration, objective)
        self._emit(
            EventType.ITERATION,
            iteration=context.iteration,
            variables=context.variables,
            objective=objective,
        )
        if context.token.is_cancelled:
            _LOGGER.info("Cancelled at iteration %d", context.iteration)
            raise SolveCancelled

    def _outcome(self, result: OptimizeResult, context: SolveContext) -> SolverOutcome:
        iterations = int(getattr(result, "nit", context.iteration))
        if result.success:
            status = SolverStatus.CONVERGED
        elif result.status == _LIMIT_STATUS[self._method] or (
            self._config.max_iterations is not None
            and iterations >= self._config.max_iterations
        ):
            status = SolverStatus.MAX_ITERATIONS_REACHED
        else:
            status = SolverStatus.FAILED
            _LOGGER.warning("Solver %s failed: %s", self._method, result.message)
        return SolverOutcome(
            variables=result.x,
            status=status,
            iterations=iterations,
            objective_values=np.array(context.objective_values, dtype=np.float64),
            message=str(result.message),
        )

    @staticmethod
    def _cancelled_outcome(
        initial_values: NDArray[np.float64],
        context: SolveContext,
        exc: SolveCancelled,
    ) -> SolverOutcome:
        variables = initial_values if context.variables is None else context.variables
        return SolverOutcome(
            variables=variables,
            status=exc.status,
            iterations=context.iteration,
            objective_values=np.array(context.objective_values, dtype=np.float64),
            message="cancelled",
        )

    def _parse_options(self) -> dict[str, Any]:
        options = (
            copy.deepcopy(self._config.options)
            if isinstance(self._config.options, dict)
            else {}
        )
        # The maximum number of iterations overrides an entry in the options.
        iterations = self._config.max_iterations
        if iterations is not None:
            if self._method == "tnc":
                options["maxfun"] = iterations
            else:
                options["maxiter"] = iterations
        return options

    def _emit(self, event_type: EventType, /, **kwargs: Any) -> None:  # noqa: ANN401
        if self._events is not None:
            self._events.emit(event_type, solver=self._method, **kwargs)
