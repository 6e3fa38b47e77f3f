"""Formatting of results as text tables."""

from __future__ import annotations

from importlib.util import find_spec
from typing import TYPE_CHECKING, Final

from ._data_frame import delivery_data_frame, quality_indicators_data_frame

_HAVE_TABULATE: Final = find_spec("tabulate") is not None

if _HAVE_TABULATE:
    from tabulate import tabulate

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    import pandas as pd

    from daopt.quality import QualityIndicators
    from daopt.results import DeliveryMetrics


def _format(frame: pd.DataFrame, path: Path | None) -> str:
    if not _HAVE_TABULATE:
        msg = "Reporting tables requires the `tabulate` module"
        raise NotImplementedError(msg)
    table = tabulate(frame, headers="keys", tablefmt="simple", floatfmt=".4g")
    if path is not None:
        if path.parent.exists():
            if not path.parent.is_dir():
                msg = f"Cannot write table to: {path}"
                raise RuntimeError(msg)
        else:
            path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(table)
    return table


def quality_indicators_table(
    indicators: Sequence[QualityIndicators], path: Path | None = None
) -> str:
    """Format quality indicators as a text table.

    Args:
        indicators: The quality indicators of each structure.
        path:       Optional file to write the table to.

    Returns:
        The table.

    Raises:
        NotImplementedError: If the pandas or tabulate modules are not
                             available.
    """
    return _format(quality_indicators_data_frame(indicators), path)


def delivery_table(delivery: DeliveryMetrics, path: Path | None = None) -> str:
    """Format the delivery metrics of the transitions as a text table.

    Args:
        delivery: The delivery metrics.
        path:     Optional file to write the table to.

    Returns:
        The table.

    Raises:
        NotImplementedError: If the pandas or tabulate modules are not
                             available.
    """
    return _format(delivery_data_frame(delivery), path)
