"""Annotated types for Pydantic models providing input conversion.

These types use Pydantic's `BeforeValidator` to convert input values (like
lists or scalars) into immutable NumPy arrays during model initialization.
"""

from typing import Annotated

import numpy as np
from numpy.typing import NDArray
from pydantic import BeforeValidator

from .utils import _convert_1d_array_intp

Array1DIndex = Annotated[NDArray[np.intp], BeforeValidator(_convert_1d_array_intp)]
"""Convert to an immutable 1D numpy array of index values."""
