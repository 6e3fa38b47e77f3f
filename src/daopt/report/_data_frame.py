"""Conversion of results into data frames."""

from __future__ import annotations

from importlib.util import find_spec
from typing import TYPE_CHECKING, Final

_HAVE_PANDAS: Final = find_spec("pandas") is not None

if _HAVE_PANDAS:
    import pandas as pd

if TYPE_CHECKING:
    from collections.abc import Sequence

    from daopt.quality import QualityIndicators
    from daopt.results import DeliveryMetrics


def _check_pandas() -> None:
    if not _HAVE_PANDAS:
        msg = "Reporting data frames requires the `pandas` module"
        raise NotImplementedError(msg)


def quality_indicators_data_frame(
    indicators: Sequence[QualityIndicators],
) -> pd.DataFrame:
    """Convert quality indicators into a data frame.

    The frame is indexed by the structure name, with columns `mean`, `std`,
    `max`, `min`, and a column `D<v>` for each dose-at-volume level `v`.

    Args:
        indicators: The quality indicators of each structure.

    Returns:
        The data frame.

    Raises:
        NotImplementedError: If the pandas module is not available.
    """
    _check_pandas()
    records = [
        {
            "mean": item.mean,
            "std": item.std,
            "max": item.max,
            "min": item.min,
            **{f"D{level}": value for level, value in item.dose_at_volume.items()},
        }
        for item in indicators
    ]
    return pd.DataFrame.from_records(
        records, index=pd.Index([item.name for item in indicators], name="structure")
    )


def delivery_data_frame(delivery: DeliveryMetrics) -> pd.DataFrame:
    """Convert the delivery metrics of the transitions into a data frame.

    Args:
        delivery: The delivery metrics.

    Returns:
        A data frame with a row per transition between consecutive shapes.

    Raises:
        NotImplementedError: If the pandas module is not available.
    """
    _check_pandas()
    return pd.DataFrame(
        {
            "max_leaf_speed": delivery.max_leaf_speeds,
            "time": delivery.times,
            "leaf_speed": delivery.leaf_speeds,
            "dose_rate": delivery.dose_rates,
            "gantry_speed": delivery.gantry_speeds,
        },
        index=pd.RangeIndex(delivery.times.size, name="transition"),
    )
