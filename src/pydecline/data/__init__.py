"""Observed production series: built-in sample wells and file loading."""

from .wells import SampleWell, SAMPLE_WELLS, get_sample_well
from .loader import load_series

__all__ = [
    "SampleWell",
    "SAMPLE_WELLS",
    "get_sample_well",
    "load_series",
]
