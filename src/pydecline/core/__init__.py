"""Core decline curve models, curve generation and fitting."""

from .models import (
    DeclineModelType,
    ModelParameters,
    exponential_rate,
    harmonic_rate,
    hyperbolic_rate,
    rate,
)
from .series import TimeSeries, cumulative_volume, generate_curve, monthly_grid
from .residuals import build_model_factory, build_residual_function
from .solver import SolverOptions, SolverResult, TerminationReason, levenberg_marquardt
from .fitting import DeclineFitter, FitResult, FittingConfig, fit

__all__ = [
    "DeclineModelType",
    "ModelParameters",
    "exponential_rate",
    "harmonic_rate",
    "hyperbolic_rate",
    "rate",
    "TimeSeries",
    "cumulative_volume",
    "generate_curve",
    "monthly_grid",
    "build_model_factory",
    "build_residual_function",
    "SolverOptions",
    "SolverResult",
    "TerminationReason",
    "levenberg_marquardt",
    "DeclineFitter",
    "FitResult",
    "FittingConfig",
    "fit",
]
