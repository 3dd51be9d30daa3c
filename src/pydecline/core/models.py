"""Arps decline curve models for oil and gas production rates.

This module implements the three classic Arps rate-time relations used for
decline curve analysis. All three are functions of the elapsed time t and
return the instantaneous production rate.

Mathematical Background
-----------------------

    Exponential:  q(t) = qi * exp(-Di * t)
    Harmonic:     q(t) = qi / (1 + Di * t)
    Hyperbolic:   q(t) = qi / (1 + b * Di * t)^(1/b)

Where:
    q(t) = Production rate at time t
    qi   = Initial production rate at t=0
    Di   = Initial nominal decline rate (fraction/time)
    b    = Hyperbolic exponent (dimensionless, b > 0)
    t    = Elapsed time from start (t >= 0)

Exponential (b -> 0) and Harmonic (b = 1) are limiting and special cases of
the hyperbolic form. All three return exactly qi at t=0 and are
non-increasing in t for Di > 0.

References:
    Arps, J.J. (1945). "Analysis of Decline Curves". Trans. AIME, 160, 228-247.
"""

from dataclasses import dataclass
from enum import Enum
import math

import numpy as np

from ..errors import InvalidParameterError


class DeclineModelType(str, Enum):
    """Decline model variant.

    Determines the functional form and the number of free parameters:
    hyperbolic fits (di, b), the others fit di only.
    """
    EXPONENTIAL = "exponential"
    HARMONIC = "harmonic"
    HYPERBOLIC = "hyperbolic"

    @classmethod
    def from_value(cls, value: "str | DeclineModelType") -> "DeclineModelType":
        """Parse a model type from its name or a short alias (exp, harm, hyper).

        Raises:
            InvalidParameterError: If the value names no known model
        """
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower()
        key = _MODEL_ALIASES.get(key, key)
        try:
            return cls(key)
        except ValueError:
            valid = ", ".join(m.value for m in cls)
            raise InvalidParameterError(
                f"Unknown decline model '{value}'. Must be one of: {valid}"
            ) from None

    @property
    def parameter_names(self) -> tuple[str, ...]:
        """Names of the free (fitted) parameters, in solver order."""
        if self is DeclineModelType.HYPERBOLIC:
            return ("di", "b")
        return ("di",)

    @property
    def n_free_params(self) -> int:
        return len(self.parameter_names)


_MODEL_ALIASES = {
    "exp": "exponential",
    "harm": "harmonic",
    "hyp": "hyperbolic",
    "hyper": "hyperbolic",
}


def check_positive(name: str, value: float) -> float:
    """Return value as float, raising if it is not finite and > 0."""
    try:
        value = float(value)
    except (TypeError, ValueError):
        raise InvalidParameterError(f"{name} must be a number, got {value!r}") from None
    if not math.isfinite(value) or value <= 0:
        raise InvalidParameterError(f"{name} must be finite and greater than 0, got {value}")
    return value


def _as_time_array(t: np.ndarray | float) -> np.ndarray:
    """Convert elapsed time input to a float array, rejecting negative values."""
    t = np.atleast_1d(np.asarray(t, dtype=float))
    if not np.all(np.isfinite(t)) or np.any(t < 0):
        raise InvalidParameterError("Elapsed time must be finite and non-negative")
    return t


@dataclass(frozen=True)
class ModelParameters:
    """Decline parameters for one curve.

    Attributes:
        initial_rate: qi, rate at t=0. Fixed during fitting.
        decline_rate: di, initial nominal decline rate (fraction/period)
        curvature: b, hyperbolic exponent. Present only for hyperbolic models.
    """
    initial_rate: float
    decline_rate: float
    curvature: float | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "initial_rate", check_positive("qi", self.initial_rate))
        object.__setattr__(self, "decline_rate", check_positive("di", self.decline_rate))
        if self.curvature is not None:
            object.__setattr__(self, "curvature", check_positive("b", self.curvature))

    def check_model(self, model_type: DeclineModelType) -> None:
        """Check that the curvature matches the model variant.

        Raises:
            InvalidParameterError: If b is missing for hyperbolic, or given
                for exponential/harmonic
        """
        if model_type is DeclineModelType.HYPERBOLIC:
            if self.curvature is None:
                raise InvalidParameterError("Hyperbolic decline requires a b-factor")
        elif self.curvature is not None:
            raise InvalidParameterError(
                f"b-factor does not apply to {model_type.value} decline"
            )

    def free_parameters(self, model_type: DeclineModelType) -> list[float]:
        """Return the fitted parameters in solver order."""
        self.check_model(model_type)
        if model_type is DeclineModelType.HYPERBOLIC:
            return [self.decline_rate, self.curvature]
        return [self.decline_rate]


def exponential_rate(qi: float, di: float, t: np.ndarray | float) -> np.ndarray:
    """Exponential decline: q(t) = qi * exp(-di * t).

    Args:
        qi: Initial rate (> 0)
        di: Decline rate (> 0)
        t: Elapsed time, scalar or array (>= 0)

    Returns:
        Rate array with the shape of ``np.atleast_1d(t)``
    """
    qi = check_positive("qi", qi)
    di = check_positive("di", di)
    return qi * np.exp(-di * _as_time_array(t))


def harmonic_rate(qi: float, di: float, t: np.ndarray | float) -> np.ndarray:
    """Harmonic decline: q(t) = qi / (1 + di * t)."""
    qi = check_positive("qi", qi)
    di = check_positive("di", di)
    return qi / (1 + di * _as_time_array(t))


def hyperbolic_rate(qi: float, di: float, b: float, t: np.ndarray | float) -> np.ndarray:
    """Hyperbolic decline: q(t) = qi / (1 + b * di * t)^(1/b).

    b must be strictly positive; the b -> 0 exponential limit is not
    evaluated here, use :func:`exponential_rate` for that.
    """
    qi = check_positive("qi", qi)
    di = check_positive("di", di)
    b = check_positive("b", b)
    return qi / np.power(1 + b * di * _as_time_array(t), 1 / b)


def rate(
    model_type: DeclineModelType | str,
    params: ModelParameters,
    t: np.ndarray | float,
) -> np.ndarray:
    """Evaluate the rate of a decline model variant at elapsed time t."""
    model_type = DeclineModelType.from_value(model_type)
    params.check_model(model_type)
    if model_type is DeclineModelType.EXPONENTIAL:
        return exponential_rate(params.initial_rate, params.decline_rate, t)
    if model_type is DeclineModelType.HARMONIC:
        return harmonic_rate(params.initial_rate, params.decline_rate, t)
    return hyperbolic_rate(params.initial_rate, params.decline_rate, params.curvature, t)


def evaluate_unchecked(
    model_type: DeclineModelType,
    qi: float,
    di: float,
    b: float | None,
    t: np.ndarray,
) -> np.ndarray:
    """Evaluate a model without raising on out-of-domain parameters.

    Used while iterating a fit, where trial parameters may leave the model
    domain. Returns NaN everywhere when di <= 0 (or b <= 0 for hyperbolic),
    so the trial step is rejected by the solver rather than aborting it.
    """
    t = np.asarray(t, dtype=float)
    if not (di > 0) or (model_type is DeclineModelType.HYPERBOLIC and not (b > 0)):
        return np.full(t.shape, np.nan)

    with np.errstate(all="ignore"):
        if model_type is DeclineModelType.EXPONENTIAL:
            return qi * np.exp(-di * t)
        if model_type is DeclineModelType.HARMONIC:
            return qi / (1 + di * t)
        return qi / np.power(1 + b * di * t, 1 / b)
