"""Machine delivery limits of rotational plans.

In rotational delivery the shapes of an aperture parameterization are
delivered in order while the gantry rotates. Between two consecutive shapes
(a transition) the leaves move from one shape to the next, and the monitor
units of both shapes are delivered. A transition lasts at least the time
needed by the gantry to rotate over the angle between the shapes.

The constraint functions in this module are used as the constraint rows of the
optimization problem: for `k` transitions there are `k` leaf speed rows,
followed by `k` dose rate rows.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np
from scipy import sparse

from daopt.aperture import split_aperture_vector
from daopt.results import DeliveryMetrics

if TYPE_CHECKING:
    from numpy.typing import ArrayLike, NDArray

    from daopt.aperture import ApertureInfo
    from daopt.config import PlanConfig


def _gantry_travel(aperture: ApertureInfo) -> NDArray[np.float64]:
    # Shortest rotation between angles, for arcs passing through zero.
    return np.abs((np.diff(aperture.gantry_angles) + 180.0) % 360.0 - 180.0)


def transition_times(
    aperture: ApertureInfo, gantry_rotation_speed: float
) -> NDArray[np.float64]:
    """Compute the nominal duration of each transition.

    Args:
        aperture:              The aperture parameterization.
        gantry_rotation_speed: The gantry rotation speed (deg/s).

    Returns:
        The duration of each transition (s).

    Raises:
        ValueError: If two consecutive shapes have the same gantry angle.
    """
    angles = _gantry_travel(aperture)
    if np.any(angles == 0.0):
        msg = "consecutive shapes of a rotational plan must differ in gantry angle"
        raise ValueError(msg)
    return angles / gantry_rotation_speed


def _leaf_indices(aperture: ApertureInfo) -> NDArray[np.intp]:
    leaf_pairs = np.arange(aperture.num_of_leaf_pairs)
    return np.array(
        [
            np.concatenate(
                [
                    aperture.left_leaf_index(shape) + leaf_pairs,
                    aperture.right_leaf_index(shape) + leaf_pairs,
                ]
            )
            for shape in range(aperture.num_of_shapes)
        ],
        dtype=np.intp,
    )


def _max_leaf_travel(
    aperture: ApertureInfo, vector: ArrayLike
) -> tuple[
    NDArray[np.float64], NDArray[np.intp], NDArray[np.intp], NDArray[np.float64]
]:
    _, left, right = split_aperture_vector(aperture, vector)
    positions = np.hstack([left, right])
    travel = np.diff(positions, axis=0)
    transitions = np.arange(travel.shape[0])
    leaves = np.argmax(np.abs(travel), axis=1)
    indices = _leaf_indices(aperture)
    return (
        np.abs(travel[transitions, leaves]),
        indices[:-1][transitions, leaves],
        indices[1:][transitions, leaves],
        np.sign(travel[transitions, leaves]),
    )


def transition_monitor_units(
    aperture: ApertureInfo, vector: ArrayLike
) -> NDArray[np.float64]:
    """Compute the monitor units delivered during each transition.

    A transition delivers the mean of the monitor units of its two shapes.

    Args:
        aperture: The aperture parameterization.
        vector:   The aperture vector.

    Returns:
        The monitor units of each transition.
    """
    weights, _, _ = split_aperture_vector(aperture, vector)
    return 0.5 * (weights[:-1] + weights[1:]) * aperture.weight_to_mu


def delivery_constraints(
    aperture: ApertureInfo, vector: ArrayLike, times: NDArray[np.float64]
) -> NDArray[np.float64]:
    """Evaluate the leaf speed and dose rate of each transition.

    Args:
        aperture: The aperture parameterization.
        vector:   The aperture vector.
        times:    The nominal transition times.

    Returns:
        The leaf speeds followed by the dose rates.
    """
    travel, _, _, _ = _max_leaf_travel(aperture, vector)
    return np.concatenate(
        [travel / times, transition_monitor_units(aperture, vector) / times]
    )


def delivery_jacobian(
    aperture: ApertureInfo, vector: ArrayLike, times: NDArray[np.float64]
) -> sparse.csr_matrix:
    """Evaluate the Jacobian of the delivery constraints.

    The leaf speed of a transition is determined by the leaf travelling the
    farthest, the derivative is taken with respect to the positions of that
    leaf only.

    Args:
        aperture: The aperture parameterization.
        vector:   The aperture vector.
        times:    The nominal transition times.

    Returns:
        A sparse matrix of shape `(2 * transitions, vector length)`.
    """
    count = times.size
    _, index_from, index_to, sign = _max_leaf_travel(aperture, vector)
    transitions = np.arange(count)
    dose_rate = 0.5 * aperture.weight_to_mu / times
    rows = np.concatenate(
        [transitions, transitions, transitions + count, transitions + count]
    )
    columns = np.concatenate([index_to, index_from, transitions, transitions + 1])
    values = np.concatenate([sign / times, -sign / times, dose_rate, dose_rate])
    return sparse.csr_matrix(
        (values, (rows, columns)), shape=(2 * count, aperture.aperture_vector.size)
    )


def delivery_jacobian_structure(aperture: ApertureInfo) -> sparse.csr_matrix:
    """Return the sparsity pattern of the delivery constraint Jacobian.

    The leaf speed row of a transition depends on all leaf positions of its
    two shapes, the dose rate row on the weights of those shapes.

    Args:
        aperture: The aperture parameterization.

    Returns:
        A sparse matrix with ones at all positions that may be non-zero.
    """
    count = max(aperture.num_of_shapes - 1, 0)
    indices = _leaf_indices(aperture)
    rows: list[NDArray[np.intp]] = []
    columns: list[NDArray[np.intp]] = []
    for transition in range(count):
        leaves = np.concatenate([indices[transition], indices[transition + 1]])
        rows.extend(
            [
                np.full(leaves.size, transition, dtype=np.intp),
                np.full(2, transition + count, dtype=np.intp),
            ]
        )
        columns.extend([leaves, np.array([transition, transition + 1])])
    if not rows:
        return sparse.csr_matrix((0, aperture.aperture_vector.size))
    rows_array = np.concatenate(rows)
    return sparse.csr_matrix(
        (np.ones(rows_array.size), (rows_array, np.concatenate(columns))),
        shape=(2 * count, aperture.aperture_vector.size),
    )


def max_leaf_speeds(
    aperture: ApertureInfo, gantry_rotation_speed: float
) -> NDArray[np.float64]:
    """Compute the maximum leaf speed of each transition at nominal timing.

    Args:
        aperture:              The aperture parameterization.
        gantry_rotation_speed: The gantry rotation speed (deg/s).

    Returns:
        The maximum leaf speed of each transition (mm/s).
    """
    times = transition_times(aperture, gantry_rotation_speed)
    travel, _, _, _ = _max_leaf_travel(aperture, aperture.aperture_vector)
    return travel / times


def optimize_delivery(aperture: ApertureInfo, plan: PlanConfig) -> DeliveryMetrics:
    """Derive the delivery timing of a rotational plan.

    Each transition takes the longest of the time needed to rotate the gantry
    at its maximum speed, to move the leaves at their maximum speed, and to
    deliver its monitor units at the maximum dose rate. The speeds and dose
    rates of the delivery follow from these times.

    Args:
        aperture: The aperture parameterization, holding the solved vector.
        plan:     The plan configuration with the machine limits.

    Returns:
        The delivery metrics.
    """
    vector = aperture.aperture_vector
    nominal_times = transition_times(aperture, plan.gantry_rotation_speed)
    travel, _, _, _ = _max_leaf_travel(aperture, vector)
    transition_mu = transition_monitor_units(aperture, vector)
    times = np.maximum.reduce(
        [
            nominal_times,
            travel / plan.leaf_speed_constraint[1],
            transition_mu / plan.dose_rate_constraint[1],
        ]
    )
    monitor_units = aperture.shape_weights * aperture.weight_to_mu
    return DeliveryMetrics(
        max_leaf_speeds=travel / nominal_times,
        times=times,
        leaf_speeds=travel / times,
        dose_rates=transition_mu / times,
        gantry_speeds=_gantry_travel(aperture) / times,
        monitor_units=monitor_units,
        total_mu=float(monitor_units.sum()),
        total_time=float(times.sum()),
    )
