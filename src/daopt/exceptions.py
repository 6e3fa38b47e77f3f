"""Exceptions raised within the `daopt` library."""

from .enums import SolverStatus


class SolveCancelled(Exception):  # noqa: N818
    """Raised when a solve is stopped before the solver terminates.

    The exception is raised from the iteration callback handed to the solver
    and caught by the solver adapter, which converts it into a
    [`SolverOutcome`][daopt.results.SolverOutcome] with the given status.
    """

    def __init__(self, status: SolverStatus = SolverStatus.CANCELLED) -> None:
        """Initialize the SolveCancelled exception.

        Args:
            status: The status to report for the interrupted solve.
        """
        self.status = status
        super().__init__()
