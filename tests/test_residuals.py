"""Tests for model factories and residual functions."""

import numpy as np
import pytest

from pydecline.core.models import DeclineModelType
from pydecline.core.residuals import build_model_factory, build_residual_function
from pydecline.core.series import TimeSeries, generate_curve
from pydecline.errors import InvalidParameterError


class TestModelFactory:
    """Tests for build_model_factory."""

    def test_exponential_predictions(self):
        predict = build_model_factory("exponential", 1000)([0.1])
        t = np.arange(5, dtype=float)

        np.testing.assert_allclose(predict(t), 1000 * np.exp(-0.1 * t))

    def test_hyperbolic_matches_generated_curve(self):
        curve = generate_curve("hyperbolic", 800, 0.3, 0.8)
        predict = build_model_factory(DeclineModelType.HYPERBOLIC, 800)([0.3, 0.8])

        np.testing.assert_allclose(predict(curve.times.astype(float)), curve.rates)

    def test_out_of_domain_predicts_nan(self):
        factory = build_model_factory("hyperbolic", 800)
        t = np.arange(3, dtype=float)

        assert np.all(np.isnan(factory([-0.1, 0.8])(t)))
        assert np.all(np.isnan(factory([0.3, 0.0])(t)))

    @pytest.mark.parametrize("model_type,params", [
        ("exponential", [0.1, 0.5]),
        ("harmonic", []),
        ("hyperbolic", [0.3]),
    ])
    def test_wrong_parameter_count(self, model_type, params):
        factory = build_model_factory(model_type, 800)
        with pytest.raises(ValueError, match="parameter"):
            factory(params)

    def test_invalid_qi(self):
        with pytest.raises(InvalidParameterError, match="qi"):
            build_model_factory("harmonic", 0)


class TestResidualFunction:
    """Tests for build_residual_function."""

    def test_zero_at_true_parameters(self):
        observed = generate_curve("harmonic", 800, 0.2)
        residuals = build_residual_function("harmonic", 800, observed)

        np.testing.assert_allclose(residuals([0.2]), 0.0, atol=1e-9)

    def test_sign_is_observed_minus_predicted(self):
        observed = TimeSeries.from_rates([1000, 900, 800])
        residuals = build_residual_function("exponential", 1000, observed)

        # A faster decline predicts lower rates, so residuals are positive
        r = residuals([1.0])
        assert r[0] == pytest.approx(0.0)
        assert np.all(r[1:] > 0)

    def test_uses_observed_times(self):
        observed = TimeSeries(times=[0, 3, 6], rates=[100, 50, 25])
        residuals = build_residual_function("exponential", 100, observed)
        di = np.log(2) / 3

        np.testing.assert_allclose(residuals([di]), 0.0, atol=1e-9)
