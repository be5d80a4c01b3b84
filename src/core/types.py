"""Domain types for carbon-intensity polling and alerting."""

from __future__ import annotations

import math
import time
from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Level every region starts in before its first successful evaluation.
LEVEL_UNKNOWN = "unknown"
# Level assigned when no threshold rule matches.
LEVEL_NORMAL = "normal"


class Comparison(StrEnum):
    """Comparison operator of a threshold rule."""

    LT = "<"
    LE = "<="
    GT = ">"
    GE = ">="


class ForecastHorizon(StrEnum):
    """Whether a reading describes the current period or a future one."""

    CURRENT = "current"
    FORECAST = "forecast"


class RegionEventType(StrEnum):
    """Internal observability signals emitted by the poll scheduler."""

    REGION_DEGRADED = "region_degraded"
    REGION_RECOVERED = "region_recovered"
    ALERT_PUBLISHED = "alert_published"
    ALERT_DROPPED = "alert_dropped"


class ThresholdRule(BaseModel):
    """A single level-assignment condition over the intensity value (gCO2/kWh)."""

    model_config = ConfigDict(frozen=True)

    level: str
    op: Comparison
    bound: float

    @field_validator("level")
    @classmethod
    def _check_level(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("rule level must not be empty")
        if v == LEVEL_UNKNOWN:
            raise ValueError(f"'{LEVEL_UNKNOWN}' is a reserved level")
        return v

    @field_validator("bound")
    @classmethod
    def _check_bound(cls, v: float) -> float:
        if not math.isfinite(v):
            raise ValueError("rule bound must be finite")
        return v


class Region(BaseModel):
    """A geographic area tracked independently for polling and alerting.

    ``provider_region_id`` is the Carbon Intensity API region (1-17); when it
    is ``None`` the national GB endpoint is polled instead.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    label: str = ""
    provider_region_id: int | None = Field(default=None, ge=1, le=17)
    rules: tuple[ThresholdRule, ...]
    poll_interval_secs: float | None = Field(default=None, gt=0)

    @field_validator("id")
    @classmethod
    def _check_id(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("region id must not be empty")
        if "/" in v or "+" in v or "#" in v:
            raise ValueError("region id must not contain MQTT topic characters")
        return v

    @field_validator("rules")
    @classmethod
    def _check_rules(cls, v: tuple[ThresholdRule, ...]) -> tuple[ThresholdRule, ...]:
        if not v:
            raise ValueError("region needs at least one threshold rule")
        return v

    @property
    def display_name(self) -> str:
        return self.label or self.id


class IntensityReading(BaseModel):
    """A single fetched data point. Immutable, discarded after evaluation."""

    model_config = ConfigDict(frozen=True)

    region_id: str
    value: float
    timestamp: datetime
    valid_to: datetime | None = None
    horizon: ForecastHorizon = ForecastHorizon.CURRENT
    index: str | None = None


class AlertState(BaseModel):
    """Per-region mutable alert record, owned by that region's poll loop."""

    region_id: str
    level: str = LEVEL_UNKNOWN
    last_emitted_at: float | None = None
    consecutive_failures: int = 0


class AlertEvent(BaseModel):
    """Emitted on a level transition and handed to the bus publisher."""

    model_config = ConfigDict(frozen=True)

    region_id: str
    region_label: str = ""
    previous_level: str
    new_level: str
    value: float
    timestamp: datetime
    index: str | None = None
    horizon: ForecastHorizon = ForecastHorizon.CURRENT


class RegionEvent(BaseModel):
    """Health/delivery signal for observers. Never published on the bus."""

    event_type: RegionEventType
    region_id: str
    consecutive_failures: int = 0
    detail: str = ""
    timestamp: float = Field(default_factory=time.time)
    metadata: dict[str, Any] = Field(default_factory=dict)
