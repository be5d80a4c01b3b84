"""Service wiring — run the polling pipeline until cancelled."""

from __future__ import annotations

import asyncio

import structlog

from src.bus.client import BusClient, MqttBusClient
from src.bus.publisher import EventBusPublisher
from src.core.config import ConfigError, Settings
from src.intensity.source import CarbonIntensitySource, IntensitySource
from src.scheduler.poller import PollScheduler

logger = structlog.get_logger(__name__)


async def run(
    settings: Settings,
    stop_event: asyncio.Event,
    source: IntensitySource | None = None,
    bus: BusClient | None = None,
) -> dict[str, dict[str, object]]:
    """Poll every configured region until *stop_event* is set.

    *source* and *bus* default to the Carbon Intensity API and MQTT clients
    built from *settings*.

    Returns:
        The final per-region alert state.

    Raises:
        ConfigError: If no regions are configured.
    """
    if not settings.regions:
        raise ConfigError("no regions configured")

    source = source or CarbonIntensitySource(settings.carbon_api)
    bus = bus or MqttBusClient(settings.mqtt)

    logger.info(
        "service_starting",
        regions=[r.id for r in settings.regions],
        broker=f"{settings.mqtt.host}:{settings.mqtt.port}",
    )

    await source.connect()
    try:
        await bus.connect()
        try:
            publisher = EventBusPublisher(
                client=bus,
                mqtt_config=settings.mqtt,
                retry_config=settings.publish,
            )
            scheduler = PollScheduler(
                regions=settings.regions,
                source=source,
                publisher=publisher,
                config=settings.scheduler,
            )
            await scheduler.run_until_cancelled(stop_event)
            snapshot = scheduler.snapshot()
        finally:
            await bus.close()
    finally:
        await source.close()

    logger.info("service_stopped", regions=snapshot)
    return snapshot
