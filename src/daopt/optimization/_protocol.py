"""The interface between a problem and the solver adapter."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    import numpy as np
    from numpy.typing import NDArray
    from scipy import sparse


class NlpProblem(Protocol):
    """Protocol for the evaluation callbacks of a nonlinear program.

    The solver adapter minimizes `objective` over a vector of variables,
    subject to bounds on the variables and on the rows returned by
    `constraints`. Derivatives are supplied by `gradient` and `jacobian`; the
    sparsity pattern of the Jacobian does not depend on the variables and is
    requested once per solve.
    """

    @property
    def constraint_count(self) -> int:
        """The number of constraint rows."""

    def objective(self, variables: NDArray[np.float64]) -> float:
        """Evaluate the objective function.

        Args:
            variables: The variables.

        Returns:
            The objective value.
        """

    def gradient(self, variables: NDArray[np.float64]) -> NDArray[np.float64]:
        """Evaluate the gradient of the objective function.

        Args:
            variables: The variables.

        Returns:
            The gradient vector.
        """

    def constraints(self, variables: NDArray[np.float64]) -> NDArray[np.float64]:
        """Evaluate the constraint rows.

        Args:
            variables: The variables.

        Returns:
            The value of each constraint row.
        """

    def jacobian(self, variables: NDArray[np.float64]) -> sparse.csr_matrix:
        """Evaluate the Jacobian of the constraint rows.

        Args:
            variables: The variables.

        Returns:
            A sparse matrix of shape `(constraints, variables)`.
        """

    def jacobian_structure(self) -> sparse.csr_matrix:
        """Return the sparsity pattern of the constraint Jacobian.

        Returns:
            A sparse matrix with ones at the positions that may be non-zero.
        """
