"""Per-region poll scheduling."""

from src.scheduler.poller import PollScheduler, RegionEventCallback, RegionPoller

__all__ = [
    "PollScheduler",
    "RegionEventCallback",
    "RegionPoller",
]
