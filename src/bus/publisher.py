"""EventBusPublisher — serialize alert events and deliver them with retry."""

from __future__ import annotations

import asyncio
import random
import time
from collections.abc import Awaitable, Callable

import structlog

from src.bus.backoff import backoff_delay, jittered
from src.bus.client import BusClient
from src.bus.exceptions import PublishExhaustedError, TransientPublishError
from src.core.config import MqttConfig, PublishConfig, get_settings
from src.core.types import AlertEvent

logger = structlog.get_logger(__name__)

SleepFn = Callable[[float], Awaitable[None]]
ClockFn = Callable[[], float]


def serialize_event(event: AlertEvent) -> bytes:
    """JSON payload as published on the bus."""
    return event.model_dump_json().encode()


class EventBusPublisher:
    """Publishes AlertEvents onto ``{topic_prefix}/{region_id}``.

    Transient failures are retried with capped, jittered exponential backoff
    until ``max_attempts`` is used up or the next delay would overrun
    ``max_elapsed_secs``; then PublishExhaustedError is raised and the event
    is dropped. One publisher (and one client) is shared by all regions; the
    caller is responsible for awaiting each region's publish before starting
    the next one.
    """

    def __init__(
        self,
        client: BusClient,
        mqtt_config: MqttConfig | None = None,
        retry_config: PublishConfig | None = None,
        sleep: SleepFn = asyncio.sleep,
        clock: ClockFn = time.monotonic,
        rng: random.Random | None = None,
    ) -> None:
        self._client = client
        self._mqtt = mqtt_config or get_settings().mqtt
        self._retry = retry_config or get_settings().publish
        self._sleep = sleep
        self._clock = clock
        self._rng = rng

    def topic_for(self, region_id: str) -> str:
        prefix = self._mqtt.topic_prefix
        return f"{prefix}/{region_id}" if prefix else region_id

    def delay_for(self, attempt: int) -> float:
        """Jittered delay after failed attempt number *attempt* (1-based)."""
        base = backoff_delay(
            attempt - 1,
            self._retry.base_delay_secs,
            self._retry.max_delay_secs,
        )
        return jittered(base, self._retry.jitter, self._rng)

    async def publish(self, event: AlertEvent) -> int:
        """Deliver *event*, retrying transient failures.

        Returns:
            The number of attempts it took.

        Raises:
            PublishExhaustedError: When retries are used up.
        """
        topic = self.topic_for(event.region_id)
        payload = serialize_event(event)
        max_attempts = self._retry.max_attempts
        started = self._clock()
        last_error: TransientPublishError | None = None
        attempt = 0

        while attempt < max_attempts:
            attempt += 1
            try:
                await self._client.publish(
                    topic, payload, qos=self._mqtt.qos, retain=self._mqtt.retain,
                )
            except TransientPublishError as exc:
                last_error = exc
            else:
                logger.info(
                    "alert_published",
                    region_id=event.region_id,
                    topic=topic,
                    previous_level=event.previous_level,
                    new_level=event.new_level,
                    value=event.value,
                    attempts=attempt,
                )
                return attempt

            if attempt >= max_attempts:
                break

            delay = self.delay_for(attempt)
            elapsed = self._clock() - started
            if elapsed + delay > self._retry.max_elapsed_secs:
                logger.warning(
                    "publish_deadline_reached",
                    region_id=event.region_id,
                    attempts=attempt,
                    elapsed_secs=round(elapsed, 3),
                )
                break

            logger.warning(
                "publish_retrying",
                region_id=event.region_id,
                attempt=attempt,
                delay=round(delay, 3),
                error=str(last_error),
            )
            await self._sleep(delay)

        raise PublishExhaustedError(attempt, last_error)
