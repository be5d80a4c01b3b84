"""Core module — config, types, logging."""

from src.core.config import ConfigError, Settings, get_settings, load_settings, reset_settings
from src.core.logging import setup_logging
from src.core.types import (
    LEVEL_NORMAL,
    LEVEL_UNKNOWN,
    AlertEvent,
    AlertState,
    Comparison,
    ForecastHorizon,
    IntensityReading,
    Region,
    RegionEvent,
    RegionEventType,
    ThresholdRule,
)

__all__ = [
    "LEVEL_NORMAL",
    "LEVEL_UNKNOWN",
    "AlertEvent",
    "AlertState",
    "Comparison",
    "ConfigError",
    "ForecastHorizon",
    "IntensityReading",
    "Region",
    "RegionEvent",
    "RegionEventType",
    "Settings",
    "ThresholdRule",
    "get_settings",
    "load_settings",
    "reset_settings",
    "setup_logging",
]
