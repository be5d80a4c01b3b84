"""Event bus — MQTT connection and resilient alert publishing."""

from src.bus.backoff import backoff_delay, jittered
from src.bus.client import BusClient, MqttBusClient
from src.bus.exceptions import PublishError, PublishExhaustedError, TransientPublishError
from src.bus.publisher import EventBusPublisher, serialize_event

__all__ = [
    "BusClient",
    "EventBusPublisher",
    "MqttBusClient",
    "PublishError",
    "PublishExhaustedError",
    "TransientPublishError",
    "backoff_delay",
    "jittered",
    "serialize_event",
]
