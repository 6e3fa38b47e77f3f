"""The per-invocation state of a solve."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import numpy as np

from ._cancellation import CancellationToken

if TYPE_CHECKING:
    from collections.abc import Iterator

    from numpy.typing import NDArray


@dataclass(slots=True)
class SolveContext:
    """Progress state of a single solve.

    The context holds the cancellation token polled by the solver adapter,
    together with the last completed iterate and the trace of objective
    values. It is owned by one invocation: the state is reset when the solve
    starts and cleared when it ends. Concurrent solves must each use their
    own context and token.

    Attributes:
        token:            The cancellation token.
        iteration:        The number of completed iterations.
        variables:        The last completed iterate.
        objective_values: The objective value after each iteration.
    """

    token: CancellationToken = field(default_factory=CancellationToken)
    iteration: int = 0
    variables: NDArray[np.float64] | None = None
    objective_values: list[float] = field(default_factory=list)

    def reset(self) -> None:
        """Clear the progress state and the cancellation request."""
        self.iteration = 0
        self.variables = None
        self.objective_values = []
        self.token.clear()

    def record(self, variables: NDArray[np.float64], objective: float) -> None:
        """Record a completed iteration.

        Args:
            variables: The iterate.
            objective: The objective value of the iterate.
        """
        self.iteration += 1
        self.variables = np.array(variables, dtype=np.float64)
        self.objective_values.append(float(objective))

    @contextmanager
    def activate(self) -> Iterator[SolveContext]:
        """Scope the context to a single solve.

        Yields:
            The reset context.
        """
        self.reset()
        try:
            yield self
        finally:
            self.reset()
