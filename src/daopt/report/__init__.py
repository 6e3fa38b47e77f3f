"""Functions for reporting optimization results.

The quality indicators and delivery metrics of a result can be converted into
[`pandas`](https://pandas.pydata.org/) data frames, or formatted as text
tables using [`tabulate`](https://github.com/astanin/python-tabulate). Both
packages are optional; the functions raise `NotImplementedError` if they are
not installed.
"""

from ._data_frame import delivery_data_frame, quality_indicators_data_frame
from ._table import delivery_table, quality_indicators_table

__all__ = [
    "delivery_data_frame",
    "delivery_table",
    "quality_indicators_data_frame",
    "quality_indicators_table",
]
