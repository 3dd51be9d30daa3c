"""PyDecline: Arps decline curve generation and Levenberg-Marquardt fitting."""

from .core import (
    DeclineFitter,
    DeclineModelType,
    FitResult,
    FittingConfig,
    ModelParameters,
    TimeSeries,
    cumulative_volume,
    fit,
    generate_curve,
)
from .errors import DeclineError, FitFailedError, InvalidParameterError

__version__ = "0.1.0"

__all__ = [
    "DeclineFitter",
    "DeclineModelType",
    "FitResult",
    "FittingConfig",
    "ModelParameters",
    "TimeSeries",
    "cumulative_volume",
    "fit",
    "generate_curve",
    "DeclineError",
    "FitFailedError",
    "InvalidParameterError",
]
