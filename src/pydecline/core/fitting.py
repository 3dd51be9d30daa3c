"""Decline curve fitting with a Levenberg-Marquardt solver.

Binds a decline model variant and a fixed initial rate to the generic
solver, validates the solver output against the model domain and builds a
:class:`FitResult`.

Features:
- Exponential/harmonic fit di; hyperbolic fits (di, b)
- Caller-supplied or default initial guess (di=0.6, b=1.1), or a
  data-driven guess from log-linear regression
- Out-of-domain solver output reported as FitFailedError, never clamped
- Optional regenerated curve over the observed time grid
"""

from dataclasses import dataclass, field
import logging
import math
from typing import Sequence

import numpy as np
from scipy.stats import linregress

from ..errors import FitFailedError, InvalidParameterError
from .models import DeclineModelType, ModelParameters, check_positive
from .residuals import build_model_factory
from .series import TimeSeries, generate_curve
from .solver import SolverOptions, SolverResult, levenberg_marquardt

logger = logging.getLogger(__name__)

DEFAULT_INITIAL_DECLINE_RATE = 0.6
DEFAULT_INITIAL_B = 1.1

# Starting values for a manually tuned curve
DEFAULT_MANUAL_DECLINE_RATE = 0.7
DEFAULT_MANUAL_B = 1.2


@dataclass(frozen=True)
class FitResult:
    """Result of fitting a decline model to an observed series.

    Attributes:
        model_type: Decline model variant that was fitted
        initial_rate: Fixed qi used for the fit
        decline_rate: Fitted di
        curvature: Fitted b (hyperbolic only, None otherwise)
        converged: Whether the solver met a convergence tolerance
        iterations: Solver iterations performed
        reason: Solver termination reason
        sse: Sum of squared residuals at the fitted parameters
        r_squared: Coefficient of determination
        rmse: Root mean squared error
        curve: Regenerated curve over the observed grid, when requested
    """
    model_type: DeclineModelType
    initial_rate: float
    decline_rate: float
    curvature: float | None
    converged: bool
    iterations: int
    reason: str
    sse: float
    r_squared: float
    rmse: float
    curve: TimeSeries | None = None

    @property
    def parameters(self) -> ModelParameters:
        """Fitted parameters as a validated ModelParameters."""
        return ModelParameters(
            initial_rate=self.initial_rate,
            decline_rate=self.decline_rate,
            curvature=self.curvature,
        )

    def summary(self) -> dict:
        """Return summary dictionary of fit results."""
        return {
            "model": self.model_type.value,
            "qi": self.initial_rate,
            "di": self.decline_rate,
            "b": self.curvature,
            "converged": self.converged,
            "iterations": self.iterations,
            "reason": self.reason,
            "sse": self.sse,
            "r_squared": self.r_squared,
            "rmse": self.rmse,
        }


@dataclass
class FittingConfig:
    """Configuration for decline curve fitting.

    Attributes:
        initial_decline_rate: Default di starting guess (default 0.6)
        initial_b: Default b starting guess for hyperbolic fits (default 1.1)
        guess_from_data: Estimate the starting guess from the data instead
            of using the constant pair (default False)
        solver: Levenberg-Marquardt settings
    """
    initial_decline_rate: float = DEFAULT_INITIAL_DECLINE_RATE
    initial_b: float = DEFAULT_INITIAL_B
    guess_from_data: bool = False
    solver: SolverOptions = field(default_factory=SolverOptions)

    @classmethod
    def from_pydecline_config(cls, config: "PyDeclineConfig") -> "FittingConfig":  # noqa: F821
        """Create FittingConfig from a PyDeclineConfig."""
        return cls(
            initial_decline_rate=config.fitting.initial_decline_rate,
            initial_b=config.fitting.initial_b,
            guess_from_data=config.fitting.guess_from_data,
            solver=config.solver.to_options(),
        )


def _calculate_metrics(observed: np.ndarray, predicted: np.ndarray) -> dict:
    """Calculate sse, r_squared and rmse."""
    residuals = observed - predicted
    ss_res = float(np.sum(residuals ** 2))
    ss_tot = float(np.sum((observed - np.mean(observed)) ** 2))
    return {
        "sse": ss_res,
        "r_squared": 1 - (ss_res / ss_tot) if ss_tot > 0 else 0.0,
        "rmse": math.sqrt(ss_res / len(observed)),
    }


class DeclineFitter:
    """Fits Arps decline models with a fixed initial rate."""

    def __init__(self, config: FittingConfig | None = None):
        """Initialize fitter with configuration.

        Args:
            config: Fitting configuration, uses defaults if None
        """
        self.config = config or FittingConfig()

    def default_guess(self, model_type: DeclineModelType | str) -> tuple[float, ...]:
        """Return the configured constant starting guess for a model."""
        model_type = DeclineModelType.from_value(model_type)
        if model_type is DeclineModelType.HYPERBOLIC:
            return (self.config.initial_decline_rate, self.config.initial_b)
        return (self.config.initial_decline_rate,)

    def estimate_initial_guess(
        self,
        model_type: DeclineModelType | str,
        qi: float,
        observed: TimeSeries,
    ) -> tuple[float, ...]:
        """Estimate a starting guess from the observed data.

        Uses log-linear regression of log(q / qi) against t (exponential
        assumption) for di. The b guess stays at the configured default.
        Falls back to the constant guess when fewer than two positive rates
        are available or the regression does not show a decline.
        """
        model_type = DeclineModelType.from_value(model_type)
        fallback = self.default_guess(model_type)

        mask = observed.rates > 0
        if np.sum(mask) < 2:
            return fallback

        t = observed.times[mask].astype(float)
        log_q = np.log(observed.rates[mask] / qi)
        try:
            slope, _, _, _, _ = linregress(t, log_q)
        except ValueError:
            return fallback

        if not np.isfinite(slope) or slope >= 0:
            return fallback

        di_guess = float(np.clip(-slope, 0.001, 2.0))
        if model_type is DeclineModelType.HYPERBOLIC:
            return (di_guess, self.config.initial_b)
        return (di_guess,)

    def _resolve_guess(
        self,
        model_type: DeclineModelType,
        qi: float,
        observed: TimeSeries,
        initial_guess: ModelParameters | Sequence[float] | None,
    ) -> tuple[float, ...]:
        """Validate a caller guess or pick the configured one."""
        if initial_guess is None:
            if self.config.guess_from_data:
                return self.estimate_initial_guess(model_type, qi, observed)
            guess = self.default_guess(model_type)
        elif isinstance(initial_guess, ModelParameters):
            guess = tuple(initial_guess.free_parameters(model_type))
        else:
            guess = tuple(initial_guess)

        if len(guess) != model_type.n_free_params:
            raise InvalidParameterError(
                f"{model_type.value} decline needs {model_type.n_free_params} "
                f"initial value(s) {model_type.parameter_names}, got {len(guess)}"
            )
        return tuple(
            check_positive(name, value)
            for name, value in zip(model_type.parameter_names, guess)
        )

    def fit(
        self,
        model_type: DeclineModelType | str,
        qi: float,
        observed: TimeSeries,
        initial_guess: ModelParameters | Sequence[float] | None = None,
        return_curve: bool = False,
    ) -> FitResult:
        """Fit a decline model to an observed series with qi held fixed.

        Args:
            model_type: Decline model variant
            qi: Initial rate (> 0), not fitted
            observed: Observed rate series
            initial_guess: (di,) or (di, b), or ModelParameters; defaults to
                the configured guess
            return_curve: Attach the fitted curve over the observed grid

        Returns:
            FitResult. ``converged`` is False when the solver stopped without
            meeting a tolerance; the parameters are then the best estimate.

        Raises:
            InvalidParameterError: For a bad qi or initial guess
            FitFailedError: If the solver output is outside the model domain
        """
        model_type = DeclineModelType.from_value(model_type)
        qi = check_positive("qi", qi)
        guess = self._resolve_guess(model_type, qi, observed, initial_guess)

        factory = build_model_factory(model_type, qi)
        solver_result = levenberg_marquardt(
            observed.times.astype(float),
            observed.rates,
            factory,
            guess,
            self.config.solver,
        )
        return self._build_result(model_type, qi, observed, solver_result, return_curve)

    def _build_result(
        self,
        model_type: DeclineModelType,
        qi: float,
        observed: TimeSeries,
        solver_result: SolverResult,
        return_curve: bool,
    ) -> FitResult:
        """Validate solver output and build the FitResult."""
        di = solver_result.params[0]
        b = solver_result.params[1] if model_type is DeclineModelType.HYPERBOLIC else None

        in_domain = math.isfinite(di) and di > 0 and (
            b is None or (math.isfinite(b) and b > 0)
        )
        if not in_domain:
            result = FitResult(
                model_type=model_type,
                initial_rate=qi,
                decline_rate=di,
                curvature=b,
                converged=False,
                iterations=solver_result.iterations,
                reason=solver_result.reason.value,
                sse=solver_result.cost,
                r_squared=float("nan"),
                rmse=float("nan"),
            )
            logger.warning(
                f"{model_type.value} fit returned out-of-domain parameters "
                f"{solver_result.params} ({solver_result.reason.value})"
            )
            raise FitFailedError(
                f"{model_type.value} fit failed: parameters {solver_result.params} "
                f"outside the model domain",
                result=result,
                solver_result=solver_result,
            )

        curve = generate_curve(model_type, qi, di, b, observed.times)
        metrics = _calculate_metrics(observed.rates, curve.rates)

        if solver_result.converged:
            logger.info(
                f"{model_type.value} fit converged in {solver_result.iterations} "
                f"iteration(s): di={di:.6g}" + (f", b={b:.6g}" if b is not None else "")
            )
        else:
            logger.warning(
                f"{model_type.value} fit did not converge after {solver_result.iterations} "
                f"iteration(s): {solver_result.reason.value}"
            )

        return FitResult(
            model_type=model_type,
            initial_rate=qi,
            decline_rate=di,
            curvature=b,
            converged=solver_result.converged,
            iterations=solver_result.iterations,
            reason=solver_result.reason.value,
            sse=metrics["sse"],
            r_squared=metrics["r_squared"],
            rmse=metrics["rmse"],
            curve=curve if return_curve else None,
        )


def fit(
    model_type: DeclineModelType | str,
    qi: float,
    observed: TimeSeries,
    initial_guess: ModelParameters | Sequence[float] | None = None,
    return_curve: bool = False,
    config: FittingConfig | None = None,
) -> FitResult:
    """Fit a decline model with a fresh :class:`DeclineFitter`."""
    return DeclineFitter(config).fit(
        model_type, qi, observed,
        initial_guess=initial_guess,
        return_curve=return_curve,
    )
