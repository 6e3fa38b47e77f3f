"""The dose influence matrix."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

import numpy as np
from scipy import sparse

if TYPE_CHECKING:
    from numpy.typing import ArrayLike, NDArray


@dataclass(frozen=True, slots=True)
class DoseInfluenceMatrix:
    """Linear mapping of bixel weights to the dose of a single fraction.

    The `physical_dose` matrix has one row per voxel of the dose grid, and
    one column per bixel. The voxel rows are ordered as the linear (C-order)
    indices of a grid with the given `dimensions`. Dense input is converted
    to a sparse CSR matrix.

    Instances are not modified by the optimization: rescaling for numerical
    conditioning produces a new matrix, recording the applied factor in
    `scale_factor`.

    Attributes:
        physical_dose:    The dose influence matrix (voxels x bixels).
        dimensions:       The dimensions of the dose grid.
        num_of_scenarios: The number of uncertainty scenarios.
        scale_factor:     The factor the matrix has been rescaled with.
        weight_to_mu:     Conversion factor of bixel weights to monitor units.
    """

    physical_dose: sparse.csr_matrix
    dimensions: tuple[int, ...]
    num_of_scenarios: int = 1
    scale_factor: float = 1.0
    weight_to_mu: float = 100.0

    def __post_init__(self) -> None:
        """Convert the matrix and check it against the grid dimensions.

        # noqa
        """
        matrix = sparse.csr_matrix(self.physical_dose, dtype=np.float64)
        object.__setattr__(self, "physical_dose", matrix)
        object.__setattr__(
            self, "dimensions", tuple(int(item) for item in self.dimensions)
        )
        if matrix.shape[0] != int(np.prod(self.dimensions)):
            msg = (
                f"the dose influence matrix has {matrix.shape[0]} voxels, "
                f"the grid dimensions {self.dimensions} require "
                f"{int(np.prod(self.dimensions))}"
            )
            raise ValueError(msg)

    @classmethod
    def create(
        cls,
        physical_dose: ArrayLike | sparse.spmatrix,
        dimensions: tuple[int, ...] | None = None,
        *,
        num_of_scenarios: int = 1,
        weight_to_mu: float = 100.0,
    ) -> DoseInfluenceMatrix:
        """Create a dose influence matrix.

        If no grid dimensions are given, the voxels are assumed to form a
        one-dimensional grid.

        Args:
            physical_dose:    Dense or sparse matrix (voxels x bixels).
            dimensions:       Dimensions of the dose grid.
            num_of_scenarios: The number of uncertainty scenarios.
            weight_to_mu:     Conversion factor of bixel weights to monitor units.

        Returns:
            A new dose influence matrix.
        """
        matrix = (
            physical_dose
            if sparse.issparse(physical_dose)
            else np.atleast_2d(np.asarray(physical_dose, dtype=np.float64))
        )
        if dimensions is None:
            dimensions = (matrix.shape[0],)
        return cls(
            physical_dose=matrix,
            dimensions=dimensions,
            num_of_scenarios=num_of_scenarios,
            weight_to_mu=weight_to_mu,
        )

    @property
    def num_of_voxels(self) -> int:
        """The number of voxels in the dose grid."""
        return int(self.physical_dose.shape[0])

    @property
    def num_of_bixels(self) -> int:
        """The number of bixels."""
        return int(self.physical_dose.shape[1])

    def dose(self, bixel_weights: NDArray[np.float64]) -> NDArray[np.float64]:
        """Compute the dose of a vector of bixel weights.

        Args:
            bixel_weights: The bixel weights.

        Returns:
            The dose per voxel as a 1D array.
        """
        return np.asarray(self.physical_dose @ bixel_weights, dtype=np.float64).ravel()

    def bixel_gradient(
        self, dose_gradient: NDArray[np.float64]
    ) -> NDArray[np.float64]:
        """Map a gradient with respect to the voxel dose to the bixel weights.

        Args:
            dose_gradient: The gradient of a function with respect to the dose.

        Returns:
            The gradient with respect to the bixel weights.
        """
        return np.asarray(
            self.physical_dose.T @ dose_gradient, dtype=np.float64
        ).ravel()

    def scaled(self, factor: float) -> DoseInfluenceMatrix:
        """Return a copy with the matrix and MU factor multiplied by `factor`.

        The returned matrix records the total factor relative to the unscaled
        matrix in its `scale_factor` attribute.

        Args:
            factor: The scaling factor.

        Returns:
            A new, rescaled, dose influence matrix.
        """
        return replace(
            self,
            physical_dose=self.physical_dose * factor,
            weight_to_mu=self.weight_to_mu * factor,
            scale_factor=self.scale_factor * factor,
        )
