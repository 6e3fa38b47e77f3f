"""Evaluation of the direct aperture optimization problem."""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np
from scipy import sparse

from daopt.aperture import bixel_weight_jacobian, compute_bixel_weights
from daopt.delivery import (
    delivery_constraints,
    delivery_jacobian,
    delivery_jacobian_structure,
    transition_times,
)
from daopt.enums import BiologicalModel
from daopt.objectives import objective_gradient, objective_value

if TYPE_CHECKING:
    from collections.abc import Sequence

    from numpy.typing import NDArray

    from daopt.aperture import ApertureInfo
    from daopt.config import StructureConfig
    from daopt.dij import DoseInfluenceMatrix

    from ._problem import OptimizationProblem


class DaoProblem:
    """Objective and constraint callbacks over the aperture vector.

    The objective is the sum of the dose objectives of all optimized
    structures, evaluated on the dose realized by the aperture vector. Its
    gradient is obtained by the chain rule, through the dose influence matrix
    and the derivatives of the bixel weights to the aperture vector.

    For rotational plans, the constraint rows hold the leaf speed and dose
    rate of each transition between adjacent shapes. Otherwise, there are no
    constraint rows.

    The dose of the most recent vector is cached, since the solver usually
    requests the objective and its gradient for the same vector.
    """

    def __init__(
        self,
        aperture: ApertureInfo,
        dij: DoseInfluenceMatrix,
        structures: Sequence[StructureConfig],
        problem: OptimizationProblem,
    ) -> None:
        """Initialize the problem callbacks.

        Args:
            aperture:   The aperture parameterization.
            dij:        The dose influence matrix.
            structures: The structures, prepared for the optimization.
            problem:    The optimization problem.

        Raises:
            NotImplementedError: If biological optimization is requested.
        """
        if problem.bio_optimization != BiologicalModel.NONE:
            msg = (
                "direct aperture optimization does not support "
                f"biological model {problem.bio_optimization}"
            )
            raise NotImplementedError(msg)
        self._aperture = aperture
        self._dij = dij
        self._problem = problem
        self._objectives = [
            (structure.voxels, objective)
            for structure in structures
            if structure.is_optimized
            for objective in structure.objectives
        ]
        self._times = (
            transition_times(aperture, problem.gantry_rotation_speed)
            if problem.vmat
            else None
        )
        self._cached_variables: NDArray[np.float64] | None = None
        self._cached_dose: NDArray[np.float64] | None = None

    @property
    def constraint_count(self) -> int:
        """The number of constraint rows."""
        return self._problem.constraint_count

    def _dose(self, variables: NDArray[np.float64]) -> NDArray[np.float64]:
        if self._cached_variables is None or not np.array_equal(
            variables, self._cached_variables
        ):
            weights = compute_bixel_weights(self._aperture, variables)
            self._cached_dose = self._dij.dose(weights)
            self._cached_variables = np.array(variables, dtype=np.float64)
        assert self._cached_dose is not None
        return self._cached_dose

    def objective(self, variables: NDArray[np.float64]) -> float:
        """Evaluate the objective function.

        Args:
            variables: The aperture vector.

        Returns:
            The objective value.
        """
        dose = self._dose(variables)
        return float(
            sum(
                objective_value(objective, dose[voxels])
                for voxels, objective in self._objectives
            )
        )

    def gradient(self, variables: NDArray[np.float64]) -> NDArray[np.float64]:
        """Evaluate the gradient of the objective function.

        Args:
            variables: The aperture vector.

        Returns:
            The gradient with respect to the aperture vector.
        """
        dose = self._dose(variables)
        dose_gradient = np.zeros_like(dose)
        for voxels, objective in self._objectives:
            np.add.at(
                dose_gradient, voxels, objective_gradient(objective, dose[voxels])
            )
        bixel_gradient = self._dij.bixel_gradient(dose_gradient)
        jacobian = bixel_weight_jacobian(self._aperture, variables)
        return np.asarray(jacobian.T @ bixel_gradient, dtype=np.float64).ravel()

    def constraints(self, variables: NDArray[np.float64]) -> NDArray[np.float64]:
        """Evaluate the delivery constraint rows.

        Args:
            variables: The aperture vector.

        Returns:
            The leaf speed rows followed by the dose rate rows.
        """
        if self._times is None:
            return np.zeros(0)
        return delivery_constraints(self._aperture, variables, self._times)

    def jacobian(self, variables: NDArray[np.float64]) -> sparse.csr_matrix:
        """Evaluate the Jacobian of the delivery constraint rows.

        Args:
            variables: The aperture vector.

        Returns:
            The sparse Jacobian.
        """
        if self._times is None:
            return sparse.csr_matrix((0, np.asarray(variables).size))
        return delivery_jacobian(self._aperture, variables, self._times)

    def jacobian_structure(self) -> sparse.csr_matrix:
        """Return the sparsity pattern of the delivery constraint Jacobian.

        Returns:
            A sparse matrix with ones at the positions that may be non-zero.
        """
        if self._times is None:
            return sparse.csr_matrix((0, self._aperture.aperture_vector.size))
        return delivery_jacobian_structure(self._aperture)
