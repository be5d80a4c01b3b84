"""Carbon-intensity data sources."""

from src.intensity.exceptions import (
    FetchConnectionError,
    FetchError,
    FetchMalformedError,
    FetchStatusError,
    FetchTimeoutError,
)
from src.intensity.source import CarbonIntensitySource, IntensitySource, parse_reading

__all__ = [
    "CarbonIntensitySource",
    "FetchConnectionError",
    "FetchError",
    "FetchMalformedError",
    "FetchStatusError",
    "FetchTimeoutError",
    "IntensitySource",
    "parse_reading",
]
