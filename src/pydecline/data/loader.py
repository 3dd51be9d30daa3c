"""Load an observed rate series from CSV files."""

import logging
from pathlib import Path

import numpy as np
import pandas as pd

from ..core.series import TimeSeries
from ..errors import InvalidParameterError

logger = logging.getLogger(__name__)

# Recognised column names (lowercase) -> standard name
COLUMN_MAPPINGS: dict[str, str] = {
    "rate": "rate",
    "q": "rate",
    "oil_rate": "rate",
    "oil": "rate",
    "bopd": "rate",
    "month": "time",
    "months": "time",
    "time": "time",
    "t": "time",
}


def _map_columns(df: pd.DataFrame) -> dict[str, str]:
    """Map DataFrame columns to standard names using COLUMN_MAPPINGS.

    Returns:
        Dictionary mapping standard name -> actual column name
    """
    mapping: dict[str, str] = {}
    for col in df.columns:
        standard_name = COLUMN_MAPPINGS.get(str(col).lower().strip())
        # First match wins
        if standard_name and standard_name not in mapping:
            mapping[standard_name] = col
    return mapping


def load_series(filepath: Path | str, rate_column: str | None = None) -> TimeSeries:
    """Load an observed series from a CSV file.

    The file needs a rate column (``rate``, ``q``, ``oil``, ``bopd``...) and
    may have a time column (``month``, ``time``, ``t``). Without a time
    column rows are taken as consecutive months from 0. Rows with a missing
    rate are dropped.

    Args:
        filepath: Path to the CSV file
        rate_column: Explicit rate column name, overriding detection

    Returns:
        Observed TimeSeries

    Raises:
        InvalidParameterError: If no rate column is found or values are invalid
    """
    filepath = Path(filepath)
    df = pd.read_csv(filepath)

    col_map = _map_columns(df)
    if rate_column is not None:
        if rate_column not in df.columns:
            raise InvalidParameterError(f"Column '{rate_column}' not found in {filepath}")
        col_map["rate"] = rate_column
    if "rate" not in col_map:
        raise InvalidParameterError(
            f"No rate column found in {filepath}. Columns: {', '.join(map(str, df.columns))}"
        )

    df = df.dropna(subset=[col_map["rate"]])
    if len(df) == 0:
        raise InvalidParameterError(f"No rate values found in {filepath}")

    rates = pd.to_numeric(df[col_map["rate"]], errors="coerce").to_numpy(dtype=float)
    if "time" in col_map:
        times = pd.to_numeric(df[col_map["time"]], errors="coerce").to_numpy(dtype=float)
    else:
        times = np.arange(len(rates))

    logger.info(f"Loaded {len(rates)} rate(s) from {filepath}")
    return TimeSeries(times=times, rates=rates)
