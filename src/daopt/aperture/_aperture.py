"""Data classes describing the aperture parameterization."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import numpy as np

from daopt.config.utils import immutable_array

if TYPE_CHECKING:
    from numpy.typing import NDArray


@dataclass(frozen=True, slots=True)
class Beam:
    """The bixel layout of a beam.

    The bixels of a beam lie on a grid of leaf pairs (rows) and columns. The
    `bixel_map` array has that shape and holds, for each grid position, the
    index of the bixel in the dose influence matrix, or `-1` if there is no
    bixel at that position.

    Attributes:
        gantry_angle: The gantry angle of the beam in degrees.
        bixel_map:    Bixel indices per leaf pair and column.
    """

    gantry_angle: float
    bixel_map: NDArray[np.intp]

    def __post_init__(self) -> None:
        """Convert the bixel map to an immutable integer array.

        # noqa
        """
        bixel_map = immutable_array(self.bixel_map, dtype=np.intp, ndmin=2)
        if bixel_map.ndim != 2:  # noqa: PLR2004
            msg = "the bixel map of a beam must be two-dimensional"
            raise ValueError(msg)
        object.__setattr__(self, "bixel_map", bixel_map)
        object.__setattr__(self, "gantry_angle", float(self.gantry_angle))


@dataclass(frozen=True, slots=True)
class Shape:
    """A single aperture shape (segment) with its weight.

    Attributes:
        beam:                  Index of the beam delivering the shape.
        weight:                The weight of the shape.
        monitor_units:         The monitor units of the shape.
        left_leaf_positions:   Left leaf positions per leaf pair (mm).
        right_leaf_positions:  Right leaf positions per leaf pair (mm).
        fluence:               Relative opening of each bixel of the beam.
    """

    beam: int
    weight: float
    monitor_units: float
    left_leaf_positions: NDArray[np.float64]
    right_leaf_positions: NDArray[np.float64]
    fluence: NDArray[np.float64]


@dataclass(frozen=True, slots=True)
class ApertureInfo:
    """The aperture parameterization of a plan.

    The optimization works on a flat vector that holds, in this order, the
    weight of each shape, the left leaf positions of all shapes, and the right
    leaf positions of all shapes. Leaf positions are stored shape by shape,
    with one entry per leaf pair. The `bounds` array holds a `[lower, upper]`
    row for each entry of the vector.

    Shapes are listed in delivery order; `shape_beams` gives the beam of each
    shape. For rotational delivery, consecutive shapes are delivered one after
    the other during the gantry rotation.

    The `shapes` and `bixel_weights` fields hold the structured representation
    of `aperture_vector`. They are filled by
    [`vector_to_aperture`][daopt.aperture.vector_to_aperture], which should be
    used to derive a new object whenever the vector changes.

    Attributes:
        beams:                     The beams, with their bixel layout.
        shape_beams:               The beam index of each shape.
        bixel_width:               The width of a bixel column (mm).
        weight_to_mu:              Conversion factor of shape weights to MU.
        aperture_vector:           The flat optimization vector.
        bounds:                    Lower and upper bounds of the vector entries.
        shapes:                    The structured representation of the shapes.
        bixel_weights:             The bixel weights realized by the shapes.
        prescription_scale_factor: The prescription calibration factor applied
                                   to the shape weights, if any.
    """

    beams: tuple[Beam, ...]
    shape_beams: tuple[int, ...]
    bixel_width: float
    weight_to_mu: float
    aperture_vector: NDArray[np.float64]
    bounds: NDArray[np.float64]
    shapes: tuple[Shape, ...] = field(default=())
    bixel_weights: NDArray[np.float64] | None = None
    prescription_scale_factor: float | None = None

    def __post_init__(self) -> None:
        """Check the consistency of the parameterization.

        # noqa
        """
        object.__setattr__(self, "beams", tuple(self.beams))
        object.__setattr__(
            self, "shape_beams", tuple(int(item) for item in self.shape_beams)
        )
        object.__setattr__(
            self,
            "aperture_vector",
            immutable_array(self.aperture_vector, dtype=np.float64, ndmin=1),
        )
        object.__setattr__(
            self, "bounds", immutable_array(self.bounds, dtype=np.float64, ndmin=2)
        )
        if not self.beams:
            msg = "an aperture parameterization needs at least one beam"
            raise ValueError(msg)
        if len({beam.bixel_map.shape for beam in self.beams}) != 1:
            msg = "all beams must have bixel maps of the same shape"
            raise ValueError(msg)
        if not self.shape_beams:
            msg = "an aperture parameterization needs at least one shape"
            raise ValueError(msg)
        if min(self.shape_beams) < 0 or max(self.shape_beams) >= len(self.beams):
            msg = "invalid beam index of a shape"
            raise ValueError(msg)
        if not (np.isfinite(self.bixel_width) and self.bixel_width > 0.0):
            msg = "the bixel width must be positive"
            raise ValueError(msg)
        expected = self.num_of_shapes * (1 + 2 * self.num_of_leaf_pairs)
        if self.aperture_vector.shape != (expected,):
            msg = (
                f"the aperture vector has length {self.aperture_vector.size}, "
                f"expected {expected}"
            )
            raise ValueError(msg)
        if self.bounds.shape != (self.aperture_vector.size, 2):
            msg = (
                f"the bounds table has shape {self.bounds.shape}, "
                f"expected {(self.aperture_vector.size, 2)}"
            )
            raise ValueError(msg)
        if np.any(self.bounds[:, 0] > self.bounds[:, 1]):
            msg = "The lower bounds are larger than the upper bounds."
            raise ValueError(msg)

    @property
    def num_of_shapes(self) -> int:
        """The number of shapes."""
        return len(self.shape_beams)

    @property
    def num_of_leaf_pairs(self) -> int:
        """The number of leaf pairs of the collimator."""
        return int(self.beams[0].bixel_map.shape[0])

    @property
    def num_of_columns(self) -> int:
        """The number of bixel columns of each beam."""
        return int(self.beams[0].bixel_map.shape[1])

    @property
    def num_of_bixels(self) -> int:
        """The number of bixels over all beams."""
        return 1 + max(int(beam.bixel_map.max()) for beam in self.beams)

    @property
    def column_positions(self) -> NDArray[np.float64]:
        """The positions of the bixel column centers (mm)."""
        columns = self.num_of_columns
        return (np.arange(columns) - (columns - 1) / 2) * self.bixel_width

    @property
    def leaf_limits(self) -> tuple[float, float]:
        """The outer edges of the bixel grid (mm)."""
        half_width = self.num_of_columns * self.bixel_width / 2
        return -half_width, half_width

    @property
    def shape_weights(self) -> NDArray[np.float64]:
        """The shape weights stored in the aperture vector."""
        return self.aperture_vector[: self.num_of_shapes]

    @property
    def gantry_angles(self) -> NDArray[np.float64]:
        """The gantry angle of each shape, in delivery order."""
        return np.array(
            [self.beams[beam].gantry_angle for beam in self.shape_beams],
            dtype=np.float64,
        )

    def left_leaf_index(self, shape: int) -> int:
        """The index in the vector of the first left leaf of a shape."""
        return self.num_of_shapes + shape * self.num_of_leaf_pairs

    def right_leaf_index(self, shape: int) -> int:
        """The index in the vector of the first right leaf of a shape."""
        return self.num_of_shapes * (1 + self.num_of_leaf_pairs) + (
            shape * self.num_of_leaf_pairs
        )
