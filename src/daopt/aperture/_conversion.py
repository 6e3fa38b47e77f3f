"""Conversion between the aperture vector and bixel weights.

Each leaf pair of a shape opens an interval `[left, right]`. A bixel of width
`w` centered at `c` receives the fraction of its interval `[c - w/2, c + w/2]`
that lies inside the opening, multiplied by the weight of the shape. The bixel
weights of all shapes of a beam are summed.
"""

from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING

import numpy as np
from scipy import sparse

from daopt.config.utils import immutable_array

from ._aperture import ApertureInfo, Beam, Shape

if TYPE_CHECKING:
    from collections.abc import Sequence

    from numpy.typing import ArrayLike, NDArray


def create_aperture_info(  # noqa: PLR0913
    bixel_maps: Sequence[ArrayLike],
    gantry_angles: Sequence[float],
    bixel_width: float,
    *,
    shape_beams: Sequence[int] | None = None,
    weight_to_mu: float = 100.0,
    initial_weight: float = 1.0,
    bounds: ArrayLike | None = None,
) -> ApertureInfo:
    """Create an aperture parameterization with fully opened shapes.

    One beam is created per bixel map and gantry angle. By default, each beam
    delivers a single shape; multiple shapes per beam, or a different delivery
    order, are specified by `shape_beams`. The leaves of all shapes start at
    the outer edges of the bixel grid, with all shape weights set to
    `initial_weight`.

    Unless `bounds` is given, the shape weights are bounded below by zero, and
    the leaf positions by the edges of the bixel grid.

    Args:
        bixel_maps:     The bixel index map of each beam.
        gantry_angles:  The gantry angle of each beam.
        bixel_width:    The width of a bixel column (mm).
        shape_beams:    The beam of each shape, in delivery order.
        weight_to_mu:   Conversion factor of shape weights to monitor units.
        initial_weight: The initial weight of each shape.
        bounds:         Optional `(n, 2)` table of bounds for the vector.

    Returns:
        The aperture parameterization, including its structured representation.
    """
    if len(bixel_maps) != len(gantry_angles):
        msg = "the number of bixel maps and gantry angles must be equal"
        raise ValueError(msg)
    beams = tuple(
        Beam(gantry_angle=angle, bixel_map=np.asarray(bixel_map))
        for bixel_map, angle in zip(bixel_maps, gantry_angles, strict=True)
    )
    if shape_beams is None:
        shape_beams = range(len(beams))
    shape_count = len(shape_beams)
    leaf_count = shape_count * beams[0].bixel_map.shape[0]
    half_width = beams[0].bixel_map.shape[1] * bixel_width / 2

    vector = np.concatenate(
        [
            np.full(shape_count, initial_weight, dtype=np.float64),
            np.full(leaf_count, -half_width),
            np.full(leaf_count, half_width),
        ]
    )
    if bounds is None:
        bounds = np.vstack(
            [
                np.repeat([[0.0, np.inf]], shape_count, axis=0),
                np.repeat([[-half_width, half_width]], 2 * leaf_count, axis=0),
            ]
        )
    aperture = ApertureInfo(
        beams=beams,
        shape_beams=tuple(shape_beams),
        bixel_width=bixel_width,
        weight_to_mu=weight_to_mu,
        aperture_vector=vector,
        bounds=np.asarray(bounds, dtype=np.float64),
    )
    return vector_to_aperture(aperture, aperture.aperture_vector)


def split_aperture_vector(
    aperture: ApertureInfo, vector: ArrayLike
) -> tuple[NDArray[np.float64], NDArray[np.float64], NDArray[np.float64]]:
    """Split an aperture vector into its weights and leaf positions.

    Args:
        aperture: The aperture parameterization.
        vector:   The aperture vector.

    Returns:
        The shape weights, and the left and right leaf positions as arrays of
        shape `(shapes, leaf pairs)`.
    """
    vector = np.asarray(vector, dtype=np.float64)
    if vector.shape != aperture.aperture_vector.shape:
        msg = (
            f"the aperture vector has shape {vector.shape}, "
            f"expected {aperture.aperture_vector.shape}"
        )
        raise ValueError(msg)
    shapes = aperture.num_of_shapes
    leaves = shapes * aperture.num_of_leaf_pairs
    return (
        vector[:shapes],
        vector[shapes : shapes + leaves].reshape(shapes, -1),
        vector[shapes + leaves :].reshape(shapes, -1),
    )


def _leaf_openings(
    aperture: ApertureInfo,
    left: NDArray[np.float64],
    right: NDArray[np.float64],
) -> tuple[NDArray[np.float64], NDArray[np.float64], NDArray[np.float64]]:
    width = aperture.bixel_width
    lower = aperture.column_positions - width / 2
    upper = lower + width
    left = left[..., np.newaxis]
    right = right[..., np.newaxis]
    overlap = np.minimum(right, upper) - np.maximum(left, lower)
    is_open = overlap > 0.0
    fluence = np.clip(overlap, 0.0, width) / width
    # One-sided derivatives, taken towards closing the opening:
    d_left = np.where(is_open & (left >= lower) & (left < upper), -1.0 / width, 0.0)
    d_right = np.where(is_open & (right > lower) & (right <= upper), 1.0 / width, 0.0)
    return fluence, d_left, d_right


def _accumulate_bixel_weights(
    aperture: ApertureInfo,
    weights: NDArray[np.float64],
    fluence: NDArray[np.float64],
) -> NDArray[np.float64]:
    bixel_weights = np.zeros(aperture.num_of_bixels, dtype=np.float64)
    for shape, beam in enumerate(aperture.shape_beams):
        bixel_map = aperture.beams[beam].bixel_map
        valid = bixel_map >= 0
        np.add.at(
            bixel_weights, bixel_map[valid], weights[shape] * fluence[shape][valid]
        )
    return bixel_weights


def compute_bixel_weights(
    aperture: ApertureInfo, vector: ArrayLike
) -> NDArray[np.float64]:
    """Compute the bixel weights realized by an aperture vector.

    Args:
        aperture: The aperture parameterization.
        vector:   The aperture vector.

    Returns:
        The weight of each bixel.
    """
    weights, left, right = split_aperture_vector(aperture, vector)
    fluence, _, _ = _leaf_openings(aperture, left, right)
    return _accumulate_bixel_weights(aperture, weights, fluence)


def bixel_weight_jacobian(
    aperture: ApertureInfo, vector: ArrayLike
) -> sparse.csr_matrix:
    """Compute the derivatives of the bixel weights to the aperture vector.

    The bixel weights are piecewise linear in the leaf positions. At a leaf
    position coinciding with a bixel edge, the derivative towards closing the
    opening is used.

    Args:
        aperture: The aperture parameterization.
        vector:   The aperture vector.

    Returns:
        A sparse matrix of shape `(bixels, vector length)`.
    """
    weights, left, right = split_aperture_vector(aperture, vector)
    fluence, d_left, d_right = _leaf_openings(aperture, left, right)
    leaf_pairs = np.broadcast_to(
        np.arange(aperture.num_of_leaf_pairs)[:, np.newaxis],
        (aperture.num_of_leaf_pairs, aperture.num_of_columns),
    )
    rows: list[NDArray[np.intp]] = []
    columns: list[NDArray[np.intp]] = []
    values: list[NDArray[np.float64]] = []
    for shape, beam in enumerate(aperture.shape_beams):
        bixel_map = aperture.beams[beam].bixel_map
        valid = bixel_map >= 0
        bixels = bixel_map[valid]
        leaves = leaf_pairs[valid]
        rows.extend([bixels, bixels, bixels])
        columns.extend(
            [
                np.full(bixels.size, shape, dtype=np.intp),
                aperture.left_leaf_index(shape) + leaves,
                aperture.right_leaf_index(shape) + leaves,
            ]
        )
        values.extend(
            [
                fluence[shape][valid],
                weights[shape] * d_left[shape][valid],
                weights[shape] * d_right[shape][valid],
            ]
        )
    return sparse.csr_matrix(
        (np.concatenate(values), (np.concatenate(rows), np.concatenate(columns))),
        shape=(aperture.num_of_bixels, aperture.aperture_vector.size),
    )


def vector_to_aperture(aperture: ApertureInfo, vector: ArrayLike) -> ApertureInfo:
    """Derive the aperture parameterization of a new aperture vector.

    The returned object stores the vector, the structured representation of
    its shapes, and the realized bixel weights. The input object is not
    modified.

    Args:
        aperture: The aperture parameterization.
        vector:   The new aperture vector.

    Returns:
        A new aperture parameterization.
    """
    weights, left, right = split_aperture_vector(aperture, vector)
    fluence, _, _ = _leaf_openings(aperture, left, right)
    shapes = []
    for shape, beam in enumerate(aperture.shape_beams):
        valid = aperture.beams[beam].bixel_map >= 0
        shapes.append(
            Shape(
                beam=beam,
                weight=float(weights[shape]),
                monitor_units=float(weights[shape] * aperture.weight_to_mu),
                left_leaf_positions=immutable_array(left[shape]),
                right_leaf_positions=immutable_array(right[shape]),
                fluence=immutable_array(np.where(valid, fluence[shape], 0.0)),
            )
        )
    return replace(
        aperture,
        aperture_vector=np.array(vector, dtype=np.float64),
        shapes=tuple(shapes),
        bixel_weights=immutable_array(
            _accumulate_bixel_weights(aperture, weights, fluence)
        ),
    )
