"""AlertStateMachine — per-region edge-triggered level tracking."""

from __future__ import annotations

import time

import structlog

from src.core.types import AlertEvent, AlertState, IntensityReading, Region

logger = structlog.get_logger(__name__)


class AlertStateMachine:
    """Tracks the last emitted level of one region.

    A new event is produced only when the evaluated level differs from the
    last emitted one, so a region that stays above a threshold for many polls
    fires exactly once on entry and once on exit. Fetch failures never move
    the level; they only bump the consecutive-failure counter.

    Usage::

        machine = AlertStateMachine(region)
        event = machine.observe(reading, evaluate(reading, region.rules))
        if event is not None:
            await publisher.publish(event)
    """

    def __init__(self, region: Region) -> None:
        self._region = region
        self._state = AlertState(region_id=region.id)

    # ── Properties ────────────────────────────────────────────────

    @property
    def region(self) -> Region:
        return self._region

    @property
    def state(self) -> AlertState:
        """Read-only copy of the current alert state."""
        return self._state.model_copy()

    @property
    def level(self) -> str:
        return self._state.level

    @property
    def consecutive_failures(self) -> int:
        return self._state.consecutive_failures

    # ── State mutation ───────────────────────────────────────────

    def observe(self, reading: IntensityReading, level: str) -> AlertEvent | None:
        """Apply a freshly evaluated level.

        Returns the AlertEvent for a transition, or None when the level is
        unchanged.
        """
        previous = self._state.level
        if level == previous:
            return None

        self._state.level = level
        self._state.last_emitted_at = time.time()
        logger.debug(
            "alert_level_changed",
            region_id=self._region.id,
            previous_level=previous,
            new_level=level,
            value=reading.value,
        )
        return AlertEvent(
            region_id=self._region.id,
            region_label=self._region.display_name,
            previous_level=previous,
            new_level=level,
            value=reading.value,
            timestamp=reading.timestamp,
            index=reading.index,
            horizon=reading.horizon,
        )

    def record_failure(self) -> int:
        """Count a failed fetch. Returns the new consecutive-failure count."""
        self._state.consecutive_failures += 1
        return self._state.consecutive_failures

    def record_success(self) -> int:
        """Reset the failure counter. Returns the count held before the reset."""
        previous = self._state.consecutive_failures
        self._state.consecutive_failures = 0
        return previous
