"""CLI commands for PyDecline."""

import logging
from pathlib import Path
from typing import Annotated, Optional

import typer

from ..config import PyDeclineConfig, generate_default_config
from ..core.models import DeclineModelType
from ..core.series import TimeSeries, cumulative_volume, generate_curve, monthly_grid
from ..errors import FitFailedError, InvalidParameterError

app = typer.Typer(
    name="pydecline",
    help="Arps decline curve generation and auto-fitting",
    add_completion=False,
)

# Exit code when the auto-fit did not converge
EXIT_NOT_CONVERGED = 2


def _load_config(config: Optional[Path]) -> PyDeclineConfig:
    if config:
        typer.echo(f"Loading config from {config}")
        return PyDeclineConfig.from_yaml(config)
    return PyDeclineConfig()


def _parse_model(model: str) -> DeclineModelType:
    try:
        return DeclineModelType.from_value(model)
    except InvalidParameterError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


def _echo_series(title: str, series: TimeSeries, precision: int) -> None:
    typer.echo(f"\n{title}:")
    typer.echo("  Month      Rate")
    for t, q in series:
        typer.echo(f"  {t:>5d}  {q:>10.{precision}f}")


@app.command()
def curve(
    model: Annotated[
        str,
        typer.Option(
            "-m", "--model",
            help="Decline model: exponential, harmonic, or hyperbolic",
        )
    ] = "hyperbolic",
    qi: Annotated[
        float,
        typer.Option("--qi", help="Initial rate at t=0"),
    ] = 1000.0,
    di: Annotated[
        float,
        typer.Option("--di", help="Nominal decline rate (fraction/month)"),
    ] = 0.7,
    b: Annotated[
        Optional[float],
        typer.Option("--b", help="Hyperbolic b-factor (hyperbolic only, default 1.2)"),
    ] = None,
    months: Annotated[
        Optional[int],
        typer.Option("--months", help="Monthly samples to generate (overrides config)"),
    ] = None,
    period_length: Annotated[
        Optional[float],
        typer.Option("--period-length", help="Days per sample for cumulative volume"),
    ] = None,
    config: Annotated[
        Optional[Path],
        typer.Option("-c", "--config", help="YAML config file", exists=True),
    ] = None,
) -> None:
    """Generate a decline curve and report its cumulative volume.

    Example:
        pydecline curve --model hyperbolic --qi 800 --di 0.3 --b 0.8
    """
    from ..core.fitting import DEFAULT_MANUAL_B

    pd_config = _load_config(config)
    model_type = _parse_model(model)
    if b is None and model_type is DeclineModelType.HYPERBOLIC:
        b = DEFAULT_MANUAL_B

    try:
        if months is None:
            months = pd_config.fitting.horizon_months
        if period_length is None:
            period_length = pd_config.fitting.period_length
        grid = monthly_grid(months)
        series = generate_curve(model_type, qi, di, b, grid)
        cum = cumulative_volume(series, period_length)
    except InvalidParameterError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    params = f"qi={qi:g}, di={di:g}" + (f", b={b:g}" if b is not None else "")
    typer.echo(f"{model_type.value.capitalize()} decline ({params})")
    if pd_config.output.show_curve:
        _echo_series("Curve", series, pd_config.output.precision)
    typer.echo(f"\nCumulative: {cum:,.0f}")


@app.command()
def fit(
    rates: Annotated[
        Optional[list[float]],
        typer.Argument(help="Observed monthly rates starting at month 0"),
    ] = None,
    well: Annotated[
        Optional[str],
        typer.Option("-w", "--well", help="Built-in sample well key (see 'pydecline wells')"),
    ] = None,
    input_file: Annotated[
        Optional[Path],
        typer.Option("-i", "--input", help="CSV file with a rate column", exists=True),
    ] = None,
    model: Annotated[
        str,
        typer.Option(
            "-m", "--model",
            help="Decline model: exponential, harmonic, or hyperbolic",
        )
    ] = "hyperbolic",
    qi: Annotated[
        Optional[float],
        typer.Option("--qi", help="Initial rate (default: well qi or first observed rate)"),
    ] = None,
    di0: Annotated[
        Optional[float],
        typer.Option("--di0", help="Starting di guess (overrides config)"),
    ] = None,
    b0: Annotated[
        Optional[float],
        typer.Option("--b0", help="Starting b guess, hyperbolic only (overrides config)"),
    ] = None,
    manual_di: Annotated[
        Optional[float],
        typer.Option("--manual-di", help="Manual curve di, kept if the auto-fit fails"),
    ] = None,
    manual_b: Annotated[
        Optional[float],
        typer.Option("--manual-b", help="Manual curve b (hyperbolic only)"),
    ] = None,
    guess_from_data: Annotated[
        bool,
        typer.Option("--guess-from-data", help="Estimate the di guess from the data"),
    ] = False,
    config: Annotated[
        Optional[Path],
        typer.Option("-c", "--config", help="YAML config file", exists=True),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("-v", "--verbose", help="Log solver progress"),
    ] = False,
) -> None:
    """Auto-fit a decline model to observed monthly rates.

    Observed rates come from the command line, a sample well, or a CSV file.
    The initial rate qi is held fixed; di (and b for hyperbolic) are fitted
    with Levenberg-Marquardt. A manual curve is reported alongside and kept
    when the auto-fit does not converge.

    Examples:
        pydecline fit --well B --model harmonic
        pydecline fit 800 720 645 585 540 --model exponential
        pydecline fit --input well.csv --model hyperbolic --di0 0.5 --b0 0.9
    """
    from ..core.fitting import (
        DEFAULT_MANUAL_B,
        DEFAULT_MANUAL_DECLINE_RATE,
        DeclineFitter,
        FittingConfig,
    )
    from ..data import get_sample_well, load_series

    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")

    sources = [s for s in (rates, well, input_file) if s]
    if len(sources) != 1:
        typer.echo("Error: Provide exactly one of RATES, --well, or --input.", err=True)
        raise typer.Exit(1)

    pd_config = _load_config(config)
    model_type = _parse_model(model)
    hyperbolic = model_type is DeclineModelType.HYPERBOLIC
    if not hyperbolic and (b0 is not None or manual_b is not None):
        typer.echo(f"Error: b-factor does not apply to {model_type.value} decline.", err=True)
        raise typer.Exit(1)

    try:
        if well:
            sample = get_sample_well(well)
            observed = sample.observed
            qi = qi if qi is not None else sample.qi
            typer.echo(f"{sample.name} - Monthly Oil Production")
        elif input_file:
            observed = load_series(input_file)
        else:
            observed = TimeSeries.from_rates(rates)
        if qi is None:
            qi = float(observed.rates[0])

        fitting_config = FittingConfig.from_pydecline_config(pd_config)
        fitting_config.guess_from_data = guess_from_data or fitting_config.guess_from_data
        fitter = DeclineFitter(fitting_config)

        initial_guess = None
        if di0 is not None or b0 is not None:
            default = fitter.default_guess(model_type)
            initial_guess = (di0 if di0 is not None else default[0],)
            if hyperbolic:
                initial_guess += (b0 if b0 is not None else default[1],)

        manual = generate_curve(
            model_type, qi,
            manual_di if manual_di is not None else DEFAULT_MANUAL_DECLINE_RATE,
            (manual_b if manual_b is not None else DEFAULT_MANUAL_B) if hyperbolic else None,
            observed.times,
        )
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    period = pd_config.fitting.period_length
    precision = pd_config.output.precision
    typer.echo(f"Fitting {model_type.value} decline to {len(observed)} point(s), qi={qi:g}")
    typer.echo(f"  Cumulative (observed): {cumulative_volume(observed, period):,.0f}")
    typer.echo(f"  Cumulative (manual curve): {cumulative_volume(manual, period):,.0f}")

    try:
        result = fitter.fit(model_type, qi, observed, initial_guess, return_curve=True)
    except InvalidParameterError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    except FitFailedError as e:
        typer.echo(f"\nAuto-fit did not converge: {e}", err=True)
        typer.echo("Keeping manual curve.")
        if pd_config.output.show_curve:
            _echo_series("Manual curve", manual, precision)
        raise typer.Exit(EXIT_NOT_CONVERGED)

    if not result.converged:
        typer.echo(f"\nAuto-fit did not converge ({result.reason}).", err=True)
        typer.echo(f"  Best estimate: di={result.decline_rate:.4f}"
                   + (f", b={result.curvature:.4f}" if result.curvature is not None else ""))
        typer.echo("Keeping manual curve.")
        if pd_config.output.show_curve:
            _echo_series("Manual curve", manual, precision)
        raise typer.Exit(EXIT_NOT_CONVERGED)

    typer.echo("\nFit Results:")
    typer.echo(f"  di: {result.decline_rate:.4f}")
    if result.curvature is not None:
        typer.echo(f"  b: {result.curvature:.4f}")
    typer.echo(f"  Iterations: {result.iterations}")
    typer.echo(f"  R²: {result.r_squared:.3f}")
    typer.echo(f"  RMSE: {result.rmse:.2f}")
    typer.echo(f"  Cumulative (fitted curve): {cumulative_volume(result.curve, period):,.0f}")
    if pd_config.output.show_curve:
        _echo_series("Fitted curve", result.curve, precision)


@app.command()
def wells() -> None:
    """List the built-in sample wells."""
    from ..data import SAMPLE_WELLS

    for key, sample in SAMPLE_WELLS.items():
        typer.echo(f"{key}: {sample.name} (qi={sample.qi:g}, {len(sample.rates)} months)")


@app.command()
def init(
    output: Annotated[
        Path,
        typer.Option(
            "-o", "--output",
            help="Output file path",
        )
    ] = Path("pydecline.yaml"),
) -> None:
    """Generate a default configuration file.

    Creates a YAML config file with all available settings and their defaults.

    Example:
        pydecline init -o my_config.yaml
    """
    if output.exists():
        overwrite = typer.confirm(f"{output} already exists. Overwrite?")
        if not overwrite:
            raise typer.Exit(0)

    generate_default_config(output)
    typer.echo(f"Config file created: {output}")
    typer.echo("\nEdit this file to customize settings, then use:")
    typer.echo(f"  pydecline fit --well A --config {output}")
