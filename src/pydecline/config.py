"""Configuration file support for PyDecline.

Supports YAML config files with fitting, solver and output settings.
CLI flags override config file values.
"""

from dataclasses import asdict, dataclass, field, fields as dataclass_fields
import logging
from pathlib import Path
from typing import ClassVar, Literal

import yaml

from .core.solver import SolverOptions

logger = logging.getLogger(__name__)


@dataclass
class FittingDefaults:
    """Fitting parameters.

    Attributes:
        initial_decline_rate: Default di starting guess (default 0.6)
        initial_b: Default b starting guess for hyperbolic fits (default 1.1)
        guess_from_data: Estimate di guess by log-linear regression (default False)
        horizon_months: Monthly samples in a generated curve (default 13 = months 0..12)
        period_length: Days per monthly sample for cumulative volume (default 30)
    """
    initial_decline_rate: float = 0.6
    initial_b: float = 1.1
    guess_from_data: bool = False
    horizon_months: int = 13
    period_length: float = 30.0


@dataclass
class SolverConfig:
    """Levenberg-Marquardt solver settings (see SolverOptions)."""
    max_iterations: int = 100
    initial_damping: float = 1e-3
    damping_increase: float = 10.0
    damping_decrease: float = 10.0
    max_damping: float = 1e10
    max_retries: int = 20
    ftol: float = 1e-10
    xtol: float = 1e-10
    finite_difference_step: float = 1.49e-8
    jacobian: Literal["forward", "central"] = "forward"
    divergence_limit: float = 1e3

    def to_options(self) -> SolverOptions:
        """Build the immutable SolverOptions used by the solver."""
        return SolverOptions(**asdict(self))


@dataclass
class OutputConfig:
    """Output configuration.

    Attributes:
        show_curve: Print the rate table for generated and fitted curves (default True)
        precision: Decimal places for printed rates (default 2)
    """
    show_curve: bool = True
    precision: int = 2


@dataclass
class PyDeclineConfig:
    """Complete PyDecline configuration.

    Attributes:
        fitting: Fitting parameters and curve horizon
        solver: Levenberg-Marquardt settings
        output: Output configuration
    """
    fitting: FittingDefaults = field(default_factory=FittingDefaults)
    solver: SolverConfig = field(default_factory=SolverConfig)
    output: OutputConfig = field(default_factory=OutputConfig)

    def validate(self) -> None:
        """Validate configuration values.

        Raises:
            ValueError: If any configuration value is invalid
        """
        errors = []

        if not 0 < self.fitting.initial_decline_rate < float("inf"):
            errors.append(
                f"fitting.initial_decline_rate ({self.fitting.initial_decline_rate}) must be finite and greater than 0"
            )
        if not 0 < self.fitting.initial_b < float("inf"):
            errors.append(
                f"fitting.initial_b ({self.fitting.initial_b}) must be finite and greater than 0"
            )
        if not self.fitting.horizon_months >= 1:
            errors.append(
                f"fitting.horizon_months ({self.fitting.horizon_months}) must be at least 1"
            )
        if not 0 < self.fitting.period_length < float("inf"):
            errors.append(
                f"fitting.period_length ({self.fitting.period_length}) must be finite and greater than 0"
            )
        if not self.output.precision >= 0:
            errors.append(
                f"output.precision ({self.output.precision}) must be non-negative"
            )

        try:
            self.solver.to_options()
        except (TypeError, ValueError) as e:
            errors.append(f"solver: {e}")

        if errors:
            raise ValueError("Invalid configuration:\n  - " + "\n  - ".join(errors))

    @classmethod
    def from_yaml(cls, filepath: Path | str) -> "PyDeclineConfig":
        """Load configuration from YAML file.

        Args:
            filepath: Path to YAML config file

        Returns:
            PyDeclineConfig instance

        Raises:
            ValueError: If configuration values are invalid
        """
        filepath = Path(filepath)
        with open(filepath) as f:
            data = yaml.safe_load(f) or {}

        config = cls.from_dict(data)
        config.validate()
        return config

    @staticmethod
    def _filter_unknown_keys(
        section_data: dict,
        dataclass_type: type,
        section_name: str,
    ) -> dict:
        """Filter unknown keys from a config section and warn about them."""
        known_keys = {f.name for f in dataclass_fields(dataclass_type)}
        unknown_keys = set(section_data) - known_keys
        if unknown_keys:
            logger.warning(
                f"Unknown key(s) in '{section_name}' config section: "
                f"{', '.join(sorted(unknown_keys))}. "
                f"Valid keys: {', '.join(sorted(known_keys))}"
            )
        return {k: v for k, v in section_data.items() if k in known_keys}

    _SECTION_TYPES: ClassVar[dict[str, type]] = {
        "fitting": FittingDefaults,
        "solver": SolverConfig,
        "output": OutputConfig,
    }

    @classmethod
    def from_dict(cls, data: dict) -> "PyDeclineConfig":
        """Create configuration from dictionary.

        Unknown sections and keys are logged as warnings and ignored.

        Args:
            data: Configuration dictionary

        Returns:
            PyDeclineConfig instance
        """
        config = cls()

        unknown_sections = set(data) - set(cls._SECTION_TYPES)
        if unknown_sections:
            logger.warning(
                f"Unknown top-level config section(s): {', '.join(sorted(unknown_sections))}. "
                f"Valid sections: {', '.join(sorted(cls._SECTION_TYPES))}"
            )

        for section, dtype in cls._SECTION_TYPES.items():
            if section in data and data[section]:
                section_data = cls._filter_unknown_keys(data[section], dtype, section)
                setattr(config, section, dtype(**section_data))

        return config

    def to_dict(self) -> dict:
        """Convert configuration to dictionary."""
        return asdict(self)

    def to_yaml(self, filepath: Path | str) -> None:
        """Save configuration to YAML file."""
        filepath = Path(filepath)
        with open(filepath, "w") as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)


def generate_default_config(filepath: Path | str) -> Path:
    """Generate a default configuration file with comments.

    Args:
        filepath: Output file path

    Returns:
        Path to created file
    """
    filepath = Path(filepath)

    content = """# PyDecline Configuration File

# Decline curve fitting
fitting:
  initial_decline_rate: 0.6   # Starting di guess for every model
  initial_b: 1.1              # Starting b guess (hyperbolic only)
  guess_from_data: false      # Estimate di guess by log-linear regression
  horizon_months: 13          # Samples in a generated curve (months 0..12)
  period_length: 30.0         # Days per monthly sample for cumulative volume

# Levenberg-Marquardt solver
solver:
  max_iterations: 100         # Iteration cap (reports not converged when hit)
  initial_damping: 0.001      # Starting damping factor (lambda)
  damping_increase: 10.0      # lambda multiplier after a rejected step
  damping_decrease: 10.0      # lambda divisor after an accepted step
  max_damping: 10000000000.0  # lambda ceiling
  max_retries: 20             # Rejected steps allowed per iteration
  ftol: 1.0e-10               # Relative cost decrease treated as converged
  xtol: 1.0e-10               # Relative step size treated as converged
  finite_difference_step: 1.49e-08  # Relative Jacobian step
  jacobian: forward           # forward or central differences
  divergence_limit: 1000.0    # Stop when |params| grows past this multiple

# Output options
output:
  show_curve: true            # Print rate tables
  precision: 2                # Decimal places for printed rates
"""

    with open(filepath, "w") as f:
        f.write(content)

    return filepath
