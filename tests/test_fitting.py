"""Tests for decline curve fitting."""

import logging
import math

import numpy as np
import pytest

from pydecline.config import PyDeclineConfig
from pydecline.core.fitting import (
    DEFAULT_INITIAL_B,
    DEFAULT_INITIAL_DECLINE_RATE,
    DeclineFitter,
    FitResult,
    FittingConfig,
    fit,
)
from pydecline.core.models import DeclineModelType, ModelParameters
from pydecline.core.series import TimeSeries, generate_curve
from pydecline.core.solver import SolverOptions, SolverResult, TerminationReason
from pydecline.data import get_sample_well
from pydecline.errors import FitFailedError, InvalidParameterError


@pytest.fixture
def fitter():
    return DeclineFitter()


class TestRoundTrip:
    """Fitting noise-free generated curves recovers their parameters."""

    def test_exponential(self, fitter):
        observed = generate_curve("exponential", 1000, 0.1)
        result = fitter.fit("exponential", 1000, observed)

        assert result.converged
        assert result.decline_rate == pytest.approx(0.1, rel=0.01)
        assert result.curvature is None

    def test_harmonic(self, fitter):
        observed = generate_curve("harmonic", 800, 0.2)
        result = fitter.fit("harmonic", 800, observed)

        assert result.converged
        assert result.decline_rate == pytest.approx(0.2, rel=0.01)
        assert result.curvature is None

    def test_hyperbolic(self, fitter):
        observed = generate_curve("hyperbolic", 800, 0.3, 0.8)
        result = fitter.fit("hyperbolic", 800, observed)

        assert result.converged
        assert result.decline_rate == pytest.approx(0.3, rel=0.01)
        assert result.curvature == pytest.approx(0.8, rel=0.01)

    def test_metrics_on_exact_data(self, fitter):
        observed = generate_curve("harmonic", 800, 0.2)
        result = fitter.fit("harmonic", 800, observed)

        assert result.r_squared == pytest.approx(1.0, abs=1e-6)
        assert result.rmse == pytest.approx(0.0, abs=1e-3)
        assert result.sse == pytest.approx(0.0, abs=1e-4)


class TestSampleWells:
    """Fits against the built-in sample wells."""

    def test_well_b_harmonic(self, fitter):
        well = get_sample_well("B")
        result = fitter.fit("harmonic", well.qi, well.observed)

        assert result.converged
        assert 0.1 <= result.decline_rate <= 0.3
        assert result.r_squared > 0.9

    @pytest.mark.parametrize("key", ["A", "B", "C"])
    def test_hyperbolic_fits_every_well(self, fitter, key):
        well = get_sample_well(key)
        result = fitter.fit(DeclineModelType.HYPERBOLIC, well.qi, well.observed)

        assert result.converged
        assert result.decline_rate > 0
        assert result.curvature > 0


class TestFitResult:
    """Tests for FitResult contents."""

    def test_curve_not_attached_by_default(self, fitter):
        observed = generate_curve("exponential", 1000, 0.1)
        assert fitter.fit("exponential", 1000, observed).curve is None

    def test_return_curve(self, fitter):
        observed = TimeSeries(times=[0, 2, 4, 6], rates=[1000, 800, 650, 540])
        result = fitter.fit("harmonic", 1000, observed, return_curve=True)

        assert result.curve is not None
        assert result.curve.times.tolist() == [0, 2, 4, 6]
        assert result.curve == generate_curve("harmonic", 1000, result.decline_rate, grid=[0, 2, 4, 6])

    def test_observed_not_modified(self, fitter):
        observed = generate_curve("exponential", 1000, 0.1)
        before = observed.rates.copy()
        fitter.fit("exponential", 1000, observed, return_curve=True)

        np.testing.assert_array_equal(observed.rates, before)

    def test_hashable_with_curve(self, fitter):
        """Test a frozen FitResult stays hashable when a curve is attached."""
        observed = generate_curve("harmonic", 800, 0.2)
        first = fitter.fit("harmonic", 800, observed, return_curve=True)
        second = fitter.fit("harmonic", 800, observed, return_curve=True)

        assert first == second
        assert hash(first) == hash(second)

    def test_parameters(self, fitter):
        observed = generate_curve("hyperbolic", 800, 0.3, 0.8)
        params = fitter.fit("hyperbolic", 800, observed).parameters

        assert isinstance(params, ModelParameters)
        assert params.initial_rate == 800.0

    def test_summary(self, fitter):
        observed = generate_curve("exponential", 1000, 0.1)
        summary = fitter.fit("exponential", 1000, observed).summary()

        assert summary["model"] == "exponential"
        assert summary["qi"] == 1000.0
        assert summary["b"] is None
        assert summary["converged"] is True
        assert set(summary) >= {"di", "iterations", "reason", "sse", "r_squared", "rmse"}

    def test_deterministic(self, fitter):
        well = get_sample_well("C")
        first = fitter.fit("hyperbolic", well.qi, well.observed)
        second = fitter.fit("hyperbolic", well.qi, well.observed)

        assert first == second


class TestNonConvergence:
    """Tests for degenerate data and solver failures."""

    def test_all_zero_series(self, fitter, caplog):
        observed = TimeSeries.from_rates([0] * 13)
        with caplog.at_level(logging.WARNING, logger="pydecline.core.fitting"):
            result = fitter.fit("exponential", 1000, observed)

        assert not result.converged
        assert result.reason == TerminationReason.DEGENERATE_DATA.value
        assert "did not converge" in caplog.text

    def test_iteration_cap(self):
        config = FittingConfig(solver=SolverOptions(max_iterations=1))
        observed = generate_curve("hyperbolic", 800, 0.3, 0.8)
        result = DeclineFitter(config).fit("hyperbolic", 800, observed)

        assert not result.converged
        assert result.reason == "max_iterations"
        assert result.iterations == 1

    def test_out_of_domain_solver_output(self, fitter, monkeypatch):
        def fake_solver(xs, ys, factory, guess, options):
            return SolverResult(
                params=(-0.5,), cost=1.0, iterations=3,
                reason=TerminationReason.DIVERGED, damping=1.0, evaluations=10,
            )

        monkeypatch.setattr("pydecline.core.fitting.levenberg_marquardt", fake_solver)
        observed = generate_curve("exponential", 1000, 0.1)

        with pytest.raises(FitFailedError, match="outside the model domain") as exc_info:
            fitter.fit("exponential", 1000, observed)

        result = exc_info.value.result
        assert isinstance(result, FitResult)
        assert not result.converged
        assert result.decline_rate == -0.5
        assert math.isnan(result.r_squared)
        assert exc_info.value.solver_result.iterations == 3


class TestInitialGuess:
    """Tests for starting guesses and input validation."""

    def test_default_guess(self, fitter):
        assert fitter.default_guess("hyperbolic") == (DEFAULT_INITIAL_DECLINE_RATE, DEFAULT_INITIAL_B)
        assert fitter.default_guess("harmonic") == (DEFAULT_INITIAL_DECLINE_RATE,)

    def test_configured_guess(self):
        fitter = DeclineFitter(FittingConfig(initial_decline_rate=0.3, initial_b=0.5))
        assert fitter.default_guess("hyperbolic") == (0.3, 0.5)

    def test_explicit_guess(self, fitter):
        observed = generate_curve("hyperbolic", 800, 0.3, 0.8)
        result = fitter.fit("hyperbolic", 800, observed, initial_guess=(0.4, 1.0))

        assert result.converged
        assert result.curvature == pytest.approx(0.8, rel=0.01)

    def test_model_parameters_guess(self, fitter):
        observed = generate_curve("hyperbolic", 800, 0.3, 0.8)
        guess = ModelParameters(initial_rate=800, decline_rate=0.4, curvature=1.0)
        result = fitter.fit("hyperbolic", 800, observed, initial_guess=guess)

        assert result.converged

    def test_model_parameters_guess_with_wrong_model(self, fitter):
        observed = generate_curve("harmonic", 800, 0.2)
        guess = ModelParameters(initial_rate=800, decline_rate=0.4, curvature=1.0)

        with pytest.raises(InvalidParameterError, match="does not apply"):
            fitter.fit("harmonic", 800, observed, initial_guess=guess)

    def test_wrong_guess_length(self, fitter):
        observed = generate_curve("harmonic", 800, 0.2)
        with pytest.raises(InvalidParameterError, match="initial value"):
            fitter.fit("harmonic", 800, observed, initial_guess=(0.4, 1.0))

    @pytest.mark.parametrize("guess", [(0.0, 1.0), (-0.4, 1.0), (0.4, 0.0), (np.nan, 1.0)])
    def test_invalid_guess(self, fitter, guess):
        observed = generate_curve("hyperbolic", 800, 0.3, 0.8)
        with pytest.raises(InvalidParameterError):
            fitter.fit("hyperbolic", 800, observed, initial_guess=guess)

    @pytest.mark.parametrize("qi", [0, -100, np.inf])
    def test_invalid_qi(self, fitter, qi):
        observed = generate_curve("harmonic", 800, 0.2)
        with pytest.raises(InvalidParameterError, match="qi"):
            fitter.fit("harmonic", qi, observed)

    def test_unknown_model(self, fitter):
        observed = generate_curve("harmonic", 800, 0.2)
        with pytest.raises(InvalidParameterError):
            fitter.fit("logistic", 800, observed)


class TestDataDrivenGuess:
    """Tests for estimate_initial_guess."""

    def test_recovers_exponential_decline(self, fitter):
        observed = generate_curve("exponential", 1000, 0.15)
        guess = fitter.estimate_initial_guess("exponential", 1000, observed)

        assert guess[0] == pytest.approx(0.15, rel=1e-6)

    def test_keeps_configured_b(self, fitter):
        observed = generate_curve("hyperbolic", 800, 0.3, 0.8)
        guess = fitter.estimate_initial_guess("hyperbolic", 800, observed)

        assert len(guess) == 2
        assert guess[1] == DEFAULT_INITIAL_B

    def test_falls_back_for_rising_rates(self, fitter):
        observed = TimeSeries.from_rates([100, 120, 150])
        assert fitter.estimate_initial_guess("harmonic", 100, observed) == (DEFAULT_INITIAL_DECLINE_RATE,)

    def test_falls_back_for_single_rate(self, fitter):
        observed = TimeSeries.from_rates([100, 0, 0])
        assert fitter.estimate_initial_guess("harmonic", 100, observed) == (DEFAULT_INITIAL_DECLINE_RATE,)

    def test_used_when_configured(self):
        fitter = DeclineFitter(FittingConfig(guess_from_data=True))
        well = get_sample_well("A")
        result = fitter.fit("exponential", well.qi, well.observed)

        assert result.converged


class TestModuleFit:
    """Tests for the module-level fit function."""

    def test_fit(self):
        observed = generate_curve("exponential", 1000, 0.1)
        result = fit("exponential", 1000, observed, return_curve=True)

        assert result.converged
        assert result.curve is not None

    def test_fit_with_config(self):
        observed = generate_curve("hyperbolic", 800, 0.3, 0.8)
        config = FittingConfig(solver=SolverOptions(max_iterations=1))

        assert not fit("hyperbolic", 800, observed, config=config).converged


class TestFittingConfig:
    """Tests for FittingConfig."""

    def test_defaults(self):
        config = FittingConfig()
        assert config.initial_decline_rate == 0.6
        assert config.initial_b == 1.1
        assert config.guess_from_data is False
        assert config.solver == SolverOptions()

    def test_from_pydecline_config(self):
        pd_config = PyDeclineConfig.from_dict({
            "fitting": {"initial_decline_rate": 0.4, "guess_from_data": True},
            "solver": {"max_iterations": 50, "jacobian": "central"},
        })
        config = FittingConfig.from_pydecline_config(pd_config)

        assert config.initial_decline_rate == 0.4
        assert config.initial_b == 1.1
        assert config.guess_from_data is True
        assert config.solver.max_iterations == 50
        assert config.solver.jacobian == "central"
