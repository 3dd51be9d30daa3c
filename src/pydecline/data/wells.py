"""Built-in demonstration wells with 13 months of daily oil rates."""

from dataclasses import dataclass

from ..core.series import TimeSeries
from ..errors import InvalidParameterError


@dataclass(frozen=True)
class SampleWell:
    """A named well with a known initial rate and observed monthly rates.

    Attributes:
        key: Short lookup key (e.g. "A")
        name: Display name
        qi: Initial rate (BOPD)
        rates: Observed rates for months 0..n-1 (BOPD)
    """
    key: str
    name: str
    qi: float
    rates: tuple[float, ...]

    @property
    def observed(self) -> TimeSeries:
        """Observed rates as a new TimeSeries starting at month 0."""
        return TimeSeries.from_rates(self.rates)


SAMPLE_WELLS: dict[str, SampleWell] = {
    "A": SampleWell(
        key="A", name="Well A", qi=1000,
        rates=(1000, 850, 760, 690, 630, 590, 555, 520, 490, 460, 430, 405, 390),
    ),
    "B": SampleWell(
        key="B", name="Well B", qi=800,
        rates=(800, 720, 645, 585, 540, 500, 465, 435, 410, 385, 365, 350, 335),
    ),
    "C": SampleWell(
        key="C", name="Well C", qi=1200,
        rates=(1200, 1020, 915, 825, 750, 690, 640, 600, 565, 535, 510, 490, 470),
    ),
}


def get_sample_well(key: str) -> SampleWell:
    """Look up a sample well by key (case-insensitive)."""
    try:
        return SAMPLE_WELLS[key.strip().upper()]
    except KeyError:
        raise InvalidParameterError(
            f"Unknown well '{key}'. Available wells: {', '.join(SAMPLE_WELLS)}"
        ) from None
