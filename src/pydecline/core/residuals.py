"""Residual functions binding a decline model to an observed series.

The solver only sees a model factory ``params -> (x -> y)``. These builders
close over the model variant and the fixed initial rate so the free
parameters are just (di,) or (di, b).
"""

from typing import Callable, Sequence

import numpy as np

from .models import DeclineModelType, check_positive, evaluate_unchecked
from .series import TimeSeries
from .solver import ModelFactory

Predictor = Callable[[np.ndarray], np.ndarray]


def build_model_factory(model_type: DeclineModelType | str, qi: float) -> ModelFactory:
    """Build a prediction-function factory for a model variant with fixed qi.

    Args:
        model_type: Decline model variant
        qi: Initial rate, held fixed

    Returns:
        Callable mapping free parameters to a vectorised ``t -> rate`` function.
        Out-of-domain trial parameters predict NaN.
    """
    model_type = DeclineModelType.from_value(model_type)
    qi = check_positive("qi", qi)
    n_params = model_type.n_free_params

    def factory(params: Sequence[float]) -> Predictor:
        if len(params) != n_params:
            raise ValueError(
                f"{model_type.value} decline takes {n_params} parameter(s), got {len(params)}"
            )
        di = float(params[0])
        b = float(params[1]) if n_params == 2 else None

        def predict(t: np.ndarray) -> np.ndarray:
            return evaluate_unchecked(model_type, qi, di, b, t)

        return predict

    return factory


def build_residual_function(
    model_type: DeclineModelType | str,
    qi: float,
    observed: TimeSeries,
) -> Callable[[Sequence[float]], np.ndarray]:
    """Build ``params -> observed - predicted`` for an observed series."""
    factory = build_model_factory(model_type, qi)
    t = observed.times.astype(float)
    q = observed.rates

    def residuals(params: Sequence[float]) -> np.ndarray:
        return q - factory(params)(t)

    return residuals
