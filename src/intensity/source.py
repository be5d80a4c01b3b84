"""Intensity sources — fetch a point-in-time carbon-intensity reading per region."""

from __future__ import annotations

import abc
import math
from datetime import UTC, datetime
from types import TracebackType
from typing import Any

import httpx
import structlog

from src.core.config import CarbonApiConfig, get_settings
from src.core.types import ForecastHorizon, IntensityReading, Region
from src.intensity.exceptions import (
    FetchConnectionError,
    FetchError,
    FetchMalformedError,
    FetchStatusError,
    FetchTimeoutError,
)

logger = structlog.get_logger(__name__)

# Timestamp format used throughout the Carbon Intensity API, e.g. "2021-12-13T16:30Z".
_CARBON_DATE_FORMAT = "%Y-%m-%dT%H:%MZ"


class IntensitySource(abc.ABC):
    """Abstract reading provider consumed by the poll scheduler.

    Implementations never retry; the scheduler decides what a failure means.
    """

    async def connect(self) -> None:
        """Acquire network resources. No-op by default."""

    async def close(self) -> None:
        """Release network resources. No-op by default."""

    @abc.abstractmethod
    async def fetch(self, region: Region) -> IntensityReading:
        """Fetch the current reading for *region*.

        Raises:
            FetchError: On timeout, non-2xx status, or unparseable payload.
        """

    async def __aenter__(self) -> IntensitySource:
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()


# ── Response parsing ───────────────────────────────────────────


def _parse_carbon_date(raw: object) -> datetime:
    """Parse an API timestamp into an aware UTC datetime."""
    if not isinstance(raw, str):
        raise FetchMalformedError(f"expected timestamp string, got {raw!r}")
    try:
        return datetime.strptime(raw, _CARBON_DATE_FORMAT).replace(tzinfo=UTC)
    except ValueError as exc:
        raise FetchMalformedError(f"bad timestamp {raw!r}") from exc


def _horizon_for(valid_from: datetime, now: datetime) -> ForecastHorizon:
    return ForecastHorizon.FORECAST if valid_from > now else ForecastHorizon.CURRENT


def _error_message(body: object) -> str | None:
    """Extract the provider's error message from an ``{"error": ...}`` body."""
    if not isinstance(body, dict):
        return None
    error = body.get("error")
    if not isinstance(error, dict):
        return None
    code = error.get("code", "")
    message = error.get("message", "")
    return f"{code} {message}".strip() or "unspecified error"


def _first(items: object, what: str) -> dict[str, Any]:
    if not isinstance(items, list) or not items or not isinstance(items[0], dict):
        raise FetchMalformedError(f"response has no {what}")
    return items[0]


def _period_from_body(body: object, regional: bool) -> dict[str, Any]:
    """Locate the forecast period object within a national or regional body.

    Regional::

        {"data": [{"regionid": 13, "shortname": "London",
                   "data": [{"from": ..., "to": ..., "intensity": {...}}]}]}

    National::

        {"data": [{"from": ..., "to": ..., "intensity": {...}}]}
    """
    if not isinstance(body, dict):
        raise FetchMalformedError("response body is not an object")

    message = _error_message(body)
    if message is not None:
        raise FetchMalformedError(f"provider error: {message}")

    entry = _first(body.get("data"), "data")
    if regional:
        return _first(entry.get("data"), "regional forecast data")
    return entry


def parse_reading(
    body: object,
    region: Region,
    now: datetime | None = None,
) -> IntensityReading:
    """Turn a Carbon Intensity API body into an IntensityReading.

    Raises:
        FetchMalformedError: If the body lacks a finite forecast value or a
            parseable validity window.
    """
    period = _period_from_body(body, regional=region.provider_region_id is not None)

    intensity = period.get("intensity")
    if not isinstance(intensity, dict):
        raise FetchMalformedError("period has no intensity object")

    raw_value = intensity.get("forecast")
    if isinstance(raw_value, bool) or not isinstance(raw_value, (int, float)):
        raise FetchMalformedError(f"forecast is not numeric: {raw_value!r}")
    value = float(raw_value)
    if not math.isfinite(value):
        raise FetchMalformedError(f"forecast is not finite: {raw_value!r}")

    valid_from = _parse_carbon_date(period.get("from"))
    valid_to = _parse_carbon_date(period["to"]) if period.get("to") else None

    index = intensity.get("index")
    return IntensityReading(
        region_id=region.id,
        value=value,
        timestamp=valid_from,
        valid_to=valid_to,
        horizon=_horizon_for(valid_from, now or datetime.now(UTC)),
        index=index if isinstance(index, str) else None,
    )


# ── CarbonIntensitySource ──────────────────────────────────────


class CarbonIntensitySource(IntensitySource):
    """Polls the GB Carbon Intensity API (api.carbonintensity.org.uk).

    Regions with a ``provider_region_id`` use the regional endpoint; the
    rest use the national one.

    Usage::

        async with CarbonIntensitySource() as source:
            reading = await source.fetch(region)
    """

    def __init__(self, config: CarbonApiConfig | None = None) -> None:
        self._config = config or get_settings().carbon_api
        self._http: httpx.AsyncClient | None = None

    @property
    def connected(self) -> bool:
        """Whether the HTTP client is active."""
        return self._http is not None and not self._http.is_closed

    def url_for(self, region: Region) -> str:
        base = self._config.base_url.rstrip("/")
        if region.provider_region_id is None:
            return f"{base}/intensity"
        return f"{base}/regional/regionid/{region.provider_region_id}"

    async def connect(self) -> None:
        """Create the httpx async client."""
        if self.connected:
            return
        self._http = httpx.AsyncClient(
            timeout=httpx.Timeout(self._config.timeout_secs),
            headers={"Accept": "application/json"},
        )

    async def close(self) -> None:
        """Close the httpx async client."""
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    async def fetch(self, region: Region) -> IntensityReading:
        if self._http is None:
            raise FetchConnectionError("HTTP client not connected")

        url = self.url_for(region)
        logger.debug("intensity_fetch", region_id=region.id, url=url)

        try:
            response = await self._http.get(url)
        except httpx.TimeoutException as exc:
            raise FetchTimeoutError(f"{url} timed out") from exc
        except httpx.HTTPError as exc:
            raise FetchConnectionError(f"{url} request failed: {exc}") from exc

        if not response.is_success:
            message = ""
            try:
                message = _error_message(response.json()) or ""
            except ValueError:
                pass
            raise FetchStatusError(response.status_code, message)

        try:
            body = response.json()
        except ValueError as exc:
            raise FetchMalformedError(f"{url} returned invalid JSON") from exc

        try:
            reading = parse_reading(body, region)
        except FetchError:
            raise
        except (KeyError, TypeError, ValueError) as exc:
            raise FetchMalformedError(f"{url} returned an unexpected shape") from exc

        logger.debug(
            "intensity_fetched",
            region_id=region.id,
            value=reading.value,
            index=reading.index,
            horizon=reading.horizon,
        )
        return reading
