"""Rate-time series and decline curve generation."""

from dataclasses import dataclass
from typing import Iterator, Sequence

import numpy as np
import pandas as pd

from ..errors import InvalidParameterError
from .models import DeclineModelType, ModelParameters, rate

# Monthly samples 0..12 inclusive
DEFAULT_HORIZON_MONTHS = 13

# Days per monthly sample used when reporting cumulative volume
DEFAULT_PERIOD_LENGTH = 30.0


def validate_time_grid(grid: Sequence[int] | np.ndarray) -> np.ndarray:
    """Validate a time grid and return it as a read-only int64 array.

    A valid grid is a non-empty, strictly increasing sequence of
    non-negative integers (integral floats are accepted).

    Raises:
        InvalidParameterError: If the grid is malformed
    """
    try:
        values = np.asarray(grid, dtype=float)
    except (TypeError, ValueError):
        raise InvalidParameterError("Time grid must be a sequence of numbers") from None

    if values.ndim != 1 or values.size == 0:
        raise InvalidParameterError("Time grid must be a non-empty one-dimensional sequence")
    if not np.all(np.isfinite(values)):
        raise InvalidParameterError("Time grid contains non-finite values")
    if np.any(values < 0):
        raise InvalidParameterError("Time grid contains negative times")
    if np.any(values != np.floor(values)):
        raise InvalidParameterError("Time grid must contain integer time indices")
    if np.any(np.diff(values) <= 0):
        raise InvalidParameterError("Time grid must be strictly increasing")

    times = values.astype(np.int64)
    times.setflags(write=False)
    return times


def monthly_grid(n_months: int = DEFAULT_HORIZON_MONTHS) -> np.ndarray:
    """Return the monthly grid 0..n_months-1."""
    if n_months < 1:
        raise InvalidParameterError(f"Horizon must be at least 1 month, got {n_months}")
    return validate_time_grid(np.arange(n_months))


@dataclass(frozen=True, eq=False)
class TimeSeries:
    """Immutable rate-time series.

    Used both for observed production and for generated curves. The arrays
    are copied on construction and marked read-only; fits and regenerations
    always produce a new series.

    Attributes:
        times: Time indices (non-negative, strictly increasing integers)
        rates: Rates at each time (finite, >= 0)
    """
    times: np.ndarray
    rates: np.ndarray

    def __post_init__(self) -> None:
        times = validate_time_grid(self.times)
        try:
            rates = np.array(self.rates, dtype=float)
        except (TypeError, ValueError):
            raise InvalidParameterError("Rates must be numeric") from None

        if rates.shape != times.shape:
            raise InvalidParameterError(
                f"Times and rates differ in length: {times.size} vs {rates.size}"
            )
        if not np.all(np.isfinite(rates)):
            raise InvalidParameterError("Rates contain non-finite values")
        if np.any(rates < 0):
            raise InvalidParameterError("Rates must be non-negative")

        rates.setflags(write=False)
        object.__setattr__(self, "times", times)
        object.__setattr__(self, "rates", rates)

    @classmethod
    def from_rates(cls, rates: Sequence[float], start: int = 0) -> "TimeSeries":
        """Build a series from consecutive rates starting at time ``start``."""
        rates = np.asarray(rates, dtype=float)
        return cls(times=np.arange(start, start + rates.size), rates=rates)

    def __len__(self) -> int:
        return int(self.times.size)

    def __iter__(self) -> Iterator[tuple[int, float]]:
        for t, q in zip(self.times, self.rates):
            yield int(t), float(q)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TimeSeries):
            return NotImplemented
        return np.array_equal(self.times, other.times) and np.array_equal(self.rates, other.rates)

    def __hash__(self) -> int:
        # -0.0 == 0.0, fold the sign before hashing
        return hash((self.times.tobytes(), (self.rates + 0.0).tobytes()))

    def __repr__(self) -> str:
        return f"TimeSeries(n={len(self)}, t=[{self.times[0]}..{self.times[-1]}])"

    @property
    def points(self) -> list[tuple[int, float]]:
        """(time, rate) pairs in chronological order."""
        return list(self)

    def to_frame(self) -> pd.DataFrame:
        """Return the series as a DataFrame with ``time`` and ``rate`` columns."""
        return pd.DataFrame({"time": self.times, "rate": self.rates})


def generate_curve(
    model_type: DeclineModelType | str,
    qi: float,
    di: float,
    b: float | None = None,
    grid: Sequence[int] | np.ndarray | None = None,
) -> TimeSeries:
    """Sample a decline model over a time grid.

    Pure and deterministic: identical arguments give bit-identical rates.

    Args:
        model_type: Decline model variant
        qi: Initial rate (> 0)
        di: Decline rate (> 0)
        b: Hyperbolic exponent, required for hyperbolic and rejected otherwise
        grid: Time indices to sample (default: monthly 0..12)

    Returns:
        New TimeSeries with one rate per grid time

    Raises:
        InvalidParameterError: For out-of-domain parameters or a malformed grid
    """
    model_type = DeclineModelType.from_value(model_type)
    params = ModelParameters(initial_rate=qi, decline_rate=di, curvature=b)
    times = monthly_grid() if grid is None else validate_time_grid(grid)
    return TimeSeries(times=times, rates=rate(model_type, params, times))


def cumulative_volume(series: TimeSeries, period_length: float = DEFAULT_PERIOD_LENGTH) -> float:
    """Total volume under a curve: sum of rate * period_length over all points.

    Args:
        series: Rate series (e.g. daily rates at monthly samples)
        period_length: Length of each sample period (default 30 days)

    Returns:
        Cumulative volume in rate units * period units
    """
    period_length = float(period_length)
    if not np.isfinite(period_length) or period_length <= 0:
        raise InvalidParameterError(
            f"period_length must be finite and greater than 0, got {period_length}"
        )
    return float(np.sum(series.rates * period_length))
