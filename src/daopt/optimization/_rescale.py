"""Rescaling of the problem for numerical conditioning."""

from __future__ import annotations

import logging
import math
from dataclasses import replace
from typing import TYPE_CHECKING

import numpy as np

from daopt.aperture import vector_to_aperture

if TYPE_CHECKING:
    from numpy.typing import ArrayLike, NDArray

    from daopt.aperture import ApertureInfo
    from daopt.dij import DoseInfluenceMatrix

_LOGGER = logging.getLogger(__name__)


def compute_scale_factor(weights: ArrayLike, bixel_width: float) -> float:
    """Compute the factor that brings the shape weights near the bixel width.

    The factor is the mean of the weights divided by the bixel width. If it
    cannot be computed, because the mean weight or the bixel width is zero or
    not finite, rescaling is disabled by returning a factor of one.

    Args:
        weights:     The shape weights.
        bixel_width: The bixel width.

    Returns:
        The scale factor.
    """
    weights = np.asarray(weights, dtype=np.float64)
    mean = float(weights.mean()) if weights.size > 0 else math.nan
    factor = mean / bixel_width if bixel_width != 0.0 else math.nan
    if not (math.isfinite(factor) and factor > 0.0):
        _LOGGER.warning(
            "Cannot rescale with mean weight %g and bixel width %g, "
            "rescaling is disabled",
            mean,
            bixel_width,
        )
        return 1.0
    return factor


class DoseRescaler:
    r"""Rescales the dose influence matrix and the shape weights.

    The dose realized by a shape is proportional to the product of the dose
    influence matrix and the shape weight. Multiplying the matrix by a factor
    $f$ and dividing the weights by $f$ leaves the dose unchanged, while
    bringing the weights into a range that suits the solver. The conversion
    factors to monitor units are multiplied by $f$ as well, which leaves the
    monitor units unchanged.

    All methods return new objects, the inputs are not modified.
    """

    def __init__(self, factor: float = 1.0) -> None:
        """Initialize the rescaler.

        Args:
            factor: The scale factor, a factor of one disables rescaling.
        """
        self._factor = factor

    @classmethod
    def from_aperture(cls, aperture: ApertureInfo) -> DoseRescaler:
        """Create a rescaler for an aperture parameterization.

        Args:
            aperture: The aperture parameterization.

        Returns:
            The rescaler, using the factor from
            [`compute_scale_factor`][daopt.optimization.compute_scale_factor].
        """
        return cls(
            compute_scale_factor(aperture.shape_weights, aperture.bixel_width)
        )

    @property
    def factor(self) -> float:
        """The scale factor."""
        return self._factor

    def to_optimizer(
        self, aperture: ApertureInfo, vector: ArrayLike
    ) -> NDArray[np.float64]:
        """Divide the shape weights of a vector by the scale factor.

        Args:
            aperture: The aperture parameterization.
            vector:   The aperture vector.

        Returns:
            The rescaled vector.
        """
        vector = np.array(vector, dtype=np.float64)
        vector[: aperture.num_of_shapes] /= self._factor
        return vector

    def from_optimizer(
        self, aperture: ApertureInfo, vector: ArrayLike
    ) -> NDArray[np.float64]:
        """Multiply the shape weights of a vector by the scale factor.

        Args:
            aperture: The aperture parameterization.
            vector:   The rescaled aperture vector.

        Returns:
            The vector in the original scale.
        """
        vector = np.array(vector, dtype=np.float64)
        vector[: aperture.num_of_shapes] *= self._factor
        return vector

    def rescale(
        self, dij: DoseInfluenceMatrix, aperture: ApertureInfo
    ) -> tuple[DoseInfluenceMatrix, ApertureInfo]:
        """Rescale a dose influence matrix and aperture parameterization.

        Args:
            dij:      The dose influence matrix.
            aperture: The aperture parameterization.

        Returns:
            The rescaled matrix and parameterization.
        """
        return dij.scaled(self._factor), self._scale_aperture(
            aperture, self._factor
        )

    def restore(
        self, dij: DoseInfluenceMatrix, aperture: ApertureInfo
    ) -> tuple[DoseInfluenceMatrix, ApertureInfo]:
        """Undo the rescaling of a dose influence matrix and parameterization.

        Args:
            dij:      The rescaled dose influence matrix.
            aperture: The rescaled aperture parameterization.

        Returns:
            The matrix and parameterization in the original scale.
        """
        return dij.scaled(1.0 / self._factor), self._scale_aperture(
            aperture, 1.0 / self._factor
        )

    @staticmethod
    def _scale_aperture(aperture: ApertureInfo, factor: float) -> ApertureInfo:
        shapes = aperture.num_of_shapes
        vector = np.array(aperture.aperture_vector)
        vector[:shapes] /= factor
        bounds = np.array(aperture.bounds)
        bounds[:shapes] /= factor
        scaled = replace(
            aperture,
            weight_to_mu=aperture.weight_to_mu * factor,
            aperture_vector=vector,
            bounds=bounds,
        )
        return vector_to_aperture(scaled, vector)
