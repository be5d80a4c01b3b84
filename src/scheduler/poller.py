"""PollScheduler — one independent fetch/evaluate/publish loop per region."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from types import TracebackType

import structlog

from src.alerting.evaluator import evaluate
from src.alerting.state_machine import AlertStateMachine
from src.bus.exceptions import PublishExhaustedError
from src.bus.publisher import EventBusPublisher
from src.core.config import SchedulerConfig, get_settings
from src.core.types import AlertEvent, AlertState, Region, RegionEvent, RegionEventType
from src.intensity.exceptions import FetchError
from src.intensity.source import IntensitySource

logger = structlog.get_logger(__name__)

# Type alias for region event callbacks
RegionEventCallback = Callable[[RegionEvent], Awaitable[None] | None]
EmitFn = Callable[[RegionEvent], Awaitable[None]]


async def _wait_or_stop(stop: asyncio.Event, timeout: float) -> bool:
    """Sleep up to *timeout* seconds. Returns True if *stop* was set."""
    try:
        await asyncio.wait_for(stop.wait(), timeout)
    except TimeoutError:
        return False
    return True


class RegionPoller:
    """The polling loop of a single region.

    Owns that region's AlertStateMachine outright; nothing else reads or
    writes it while the loop runs. A publish is awaited to completion
    (delivered or dropped) before the next wait begins, so at most one event
    per region is ever in flight and events leave in order.
    """

    def __init__(
        self,
        region: Region,
        source: IntensitySource,
        publisher: EventBusPublisher,
        interval_secs: float,
        failure_threshold: int,
        emit: EmitFn,
    ) -> None:
        self._region = region
        self._source = source
        self._publisher = publisher
        self._interval_secs = interval_secs
        self._failure_threshold = failure_threshold
        self._emit = emit
        self._machine = AlertStateMachine(region)

    @property
    def region(self) -> Region:
        return self._region

    @property
    def interval_secs(self) -> float:
        return self._interval_secs

    @property
    def state(self) -> AlertState:
        return self._machine.state

    async def poll_once(self) -> AlertEvent | None:
        """Run one fetch → evaluate → publish cycle.

        Returns the AlertEvent produced by this cycle (whether it was
        delivered or dropped), or None.
        """
        region = self._region
        try:
            reading = await self._source.fetch(region)
        except FetchError as exc:
            await self._on_fetch_failure(exc)
            return None

        previous_failures = self._machine.record_success()
        if previous_failures >= self._failure_threshold:
            logger.info(
                "region_recovered",
                region_id=region.id,
                failed_polls=previous_failures,
            )
            await self._emit(RegionEvent(
                event_type=RegionEventType.REGION_RECOVERED,
                region_id=region.id,
                detail=f"recovered after {previous_failures} failed polls",
            ))

        level = evaluate(reading, region.rules)
        event = self._machine.observe(reading, level)
        if event is None:
            logger.debug(
                "alert_level_unchanged",
                region_id=region.id,
                level=level,
                value=reading.value,
            )
            return None

        logger.info(
            "alert_transition",
            region_id=region.id,
            previous_level=event.previous_level,
            new_level=event.new_level,
            value=event.value,
        )
        await self._publish(event)
        return event

    async def _on_fetch_failure(self, exc: FetchError) -> None:
        failures = self._machine.record_failure()
        logger.warning(
            "intensity_fetch_failed",
            region_id=self._region.id,
            error=str(exc),
            error_type=type(exc).__name__,
            consecutive_failures=failures,
        )
        if failures == self._failure_threshold:
            logger.error(
                "region_degraded",
                region_id=self._region.id,
                consecutive_failures=failures,
            )
            await self._emit(RegionEvent(
                event_type=RegionEventType.REGION_DEGRADED,
                region_id=self._region.id,
                consecutive_failures=failures,
                detail=str(exc),
            ))

    async def _publish(self, event: AlertEvent) -> None:
        try:
            attempts = await self._publisher.publish(event)
        except PublishExhaustedError as exc:
            # Lost notification: the level has already moved on.
            logger.error(
                "alert_dropped",
                region_id=event.region_id,
                previous_level=event.previous_level,
                new_level=event.new_level,
                attempts=exc.attempts,
                error=str(exc.last_error),
            )
            await self._emit(RegionEvent(
                event_type=RegionEventType.ALERT_DROPPED,
                region_id=event.region_id,
                detail=str(exc),
                metadata={"event": event.model_dump(mode="json"), "attempts": exc.attempts},
            ))
            return

        await self._emit(RegionEvent(
            event_type=RegionEventType.ALERT_PUBLISHED,
            region_id=event.region_id,
            metadata={"event": event.model_dump(mode="json"), "attempts": attempts},
        ))

    async def run(self, stop: asyncio.Event, poll_on_start: bool = True) -> None:
        """Loop until *stop* is set or the task is cancelled."""
        wait_first = not poll_on_start
        while not stop.is_set():
            if wait_first and await _wait_or_stop(stop, self._interval_secs):
                break
            wait_first = True
            try:
                await self.poll_once()
            except Exception:
                logger.exception("region_poll_error", region_id=self._region.id)


class PollScheduler:
    """Runs one RegionPoller task per configured region.

    Regions share only the intensity source and the bus publisher; one
    region's provider outage or dropped event never stops another.

    Usage::

        scheduler = PollScheduler(regions, source, publisher)
        scheduler.on_event(my_callback)
        async with scheduler:
            await shutdown.wait()
    """

    def __init__(
        self,
        regions: Iterable[Region],
        source: IntensitySource,
        publisher: EventBusPublisher,
        config: SchedulerConfig | None = None,
    ) -> None:
        cfg = config or get_settings().scheduler
        self._config = cfg
        self._callbacks: list[RegionEventCallback] = []
        self._pollers: dict[str, RegionPoller] = {}
        for region in regions:
            self._pollers[region.id] = RegionPoller(
                region=region,
                source=source,
                publisher=publisher,
                interval_secs=region.poll_interval_secs or cfg.poll_interval_secs,
                failure_threshold=cfg.failure_threshold,
                emit=self._emit,
            )
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._stop = asyncio.Event()
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    @property
    def region_ids(self) -> list[str]:
        return list(self._pollers)

    def poller(self, region_id: str) -> RegionPoller:
        return self._pollers[region_id]

    def state(self, region_id: str) -> AlertState:
        return self._pollers[region_id].state

    def snapshot(self) -> dict[str, dict[str, object]]:
        """Per-region alert state, e.g. for the shutdown summary."""
        return {rid: p.state.model_dump() for rid, p in self._pollers.items()}

    def on_event(self, callback: RegionEventCallback) -> None:
        """Register a callback for region health and delivery events."""
        self._callbacks.append(callback)

    async def _emit(self, event: RegionEvent) -> None:
        for cb in self._callbacks:
            try:
                result = cb(event)
                if asyncio.iscoroutine(result):
                    await result
            except Exception:
                logger.exception(
                    "region_event_callback_error",
                    region_id=event.region_id,
                    event_type=event.event_type,
                )

    async def start(self) -> None:
        """Spawn one polling task per region."""
        if self._running:
            return
        self._running = True
        self._stop.clear()
        for region_id, poller in self._pollers.items():
            self._tasks[region_id] = asyncio.create_task(
                poller.run(self._stop, self._config.poll_on_start),
                name=f"poll-{region_id}",
            )
        logger.info(
            "scheduler_started",
            regions=self.region_ids,
            failure_threshold=self._config.failure_threshold,
        )

    async def stop(self) -> None:
        """Signal shutdown and cancel every region task.

        Any fetch, publish, or backoff wait in progress is abandoned; an
        in-flight event is not requeued.
        """
        self._running = False
        self._stop.set()
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        results = await asyncio.gather(*tasks, return_exceptions=True)
        for region_id, result in zip(self._tasks, results):
            if isinstance(result, Exception):
                logger.error(
                    "region_task_failed",
                    region_id=region_id,
                    error=repr(result),
                )
        self._tasks.clear()
        logger.info("scheduler_stopped")

    async def run_until_cancelled(self, stop_event: asyncio.Event) -> None:
        """Poll every region until *stop_event* is set, then shut down."""
        await self.start()
        try:
            await stop_event.wait()
        finally:
            await self.stop()

    async def __aenter__(self) -> PollScheduler:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.stop()
