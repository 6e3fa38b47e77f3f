"""Utilities for checking and converting configuration values.

These helpers are used by the Pydantic models of `daopt.config` to convert
configuration inputs into standardized, immutable NumPy arrays.
"""

from typing import Any

import numpy as np
from numpy.typing import ArrayLike, NDArray


def immutable_array(
    array_like: ArrayLike,
    **kwargs: Any,  # noqa: ANN401
) -> NDArray[Any]:
    """Convert input to an immutable NumPy array.

    This function takes various array-like inputs (e.g., lists, tuples, other
    NumPy arrays) and converts them into a new NumPy array. It then sets the
    `writeable` flag of the resulting array to `False`, making it immutable.

    Args:
        array_like: The input data to convert (e.g., list, tuple, NumPy array).
        kwargs:     Additional keyword arguments passed directly to `numpy.array`.

    Returns:
        A new NumPy array, with its `writeable` flag set to `False`.
    """
    array = np.array(array_like, **kwargs)
    array.setflags(write=False)
    return array


def check_limits(limits: tuple[float, float], name: str) -> tuple[float, float]:
    """Check that a `[min, max]` pair of limits is ordered and not NaN.

    Args:
        limits: The lower and upper limit.
        name:   A descriptive name used in error messages.

    Returns:
        The limits as a tuple of floats.

    Raises:
        ValueError: If a limit is NaN, the lower limit exceeds the upper, or
                    the upper limit is not positive.
    """
    lower, upper = (float(item) for item in limits)
    if np.isnan(lower) or np.isnan(upper):
        msg = f"the {name} limits must not be NaN"
        raise ValueError(msg)
    if lower > upper:
        msg = f"the lower {name} limit is larger than the upper limit"
        raise ValueError(msg)
    if upper <= 0.0:
        msg = f"the upper {name} limit must be positive"
        raise ValueError(msg)
    return lower, upper


def _convert_1d_array_intp(array: ArrayLike | None) -> NDArray[np.intp] | None:
    if array is None:
        return array
    return immutable_array(array, dtype=np.intp, ndmin=1)
