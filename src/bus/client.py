"""Bus clients — the shared broker connection used by every region."""

from __future__ import annotations

import abc
import asyncio
import threading
from typing import Any

import paho.mqtt.client as mqtt
import structlog

from src.bus.exceptions import TransientPublishError
from src.core.config import MqttConfig, get_settings

logger = structlog.get_logger(__name__)


class BusClient(abc.ABC):
    """Base class for message-bus connections.

    Implementations must tolerate concurrent ``publish()`` calls from many
    region tasks without external locking.
    """

    @abc.abstractmethod
    async def connect(self) -> None:
        """Open the broker connection."""

    @abc.abstractmethod
    async def close(self) -> None:
        """Close the broker connection."""

    @abc.abstractmethod
    async def publish(self, topic: str, payload: bytes, qos: int, retain: bool) -> None:
        """Deliver one message.

        Raises:
            TransientPublishError: If this attempt failed and may be retried.
        """


class MqttBusClient(BusClient):
    """paho-mqtt connection driven by paho's own network thread.

    ``loop_start()`` runs the socket loop (and automatic reconnects) in a
    background thread; ``publish()`` is thread-safe in paho, and waiting for
    the broker acknowledgement is pushed to a worker thread so that the event
    loop never blocks.
    """

    def __init__(self, config: MqttConfig | None = None) -> None:
        self._config = config or get_settings().mqtt
        self._client: mqtt.Client | None = None
        self._connected = threading.Event()

    @property
    def connected(self) -> bool:
        return self._connected.is_set()

    def _build_client(self) -> mqtt.Client:
        cfg = self._config
        client = mqtt.Client(
            mqtt.CallbackAPIVersion.VERSION2,
            client_id=cfg.client_id,
        )
        if cfg.username:
            client.username_pw_set(
                cfg.username,
                cfg.password.get_secret_value() or None,
            )
        if cfg.tls:
            client.tls_set()
        client.reconnect_delay_set(min_delay=1, max_delay=30)
        client.on_connect = self._on_connect
        client.on_disconnect = self._on_disconnect
        return client

    # ── paho callbacks (network thread) ─────────────────────────

    def _on_connect(
        self,
        client: mqtt.Client,
        userdata: Any,
        flags: Any,
        reason_code: Any,
        properties: Any,
    ) -> None:
        if reason_code.is_failure:
            logger.warning("mqtt_connect_refused", reason=str(reason_code))
            return
        self._connected.set()
        logger.info("mqtt_connected", host=self._config.host, port=self._config.port)

    def _on_disconnect(
        self,
        client: mqtt.Client,
        userdata: Any,
        disconnect_flags: Any,
        reason_code: Any,
        properties: Any,
    ) -> None:
        self._connected.clear()
        logger.warning("mqtt_disconnected", reason=str(reason_code))

    # ── Lifecycle ───────────────────────────────────────────────

    async def connect(self) -> None:
        """Start the network thread and wait (bounded) for the first CONNACK.

        An unreachable broker is not fatal: paho keeps reconnecting in the
        background and publishes fail transiently until it comes up.
        """
        if self._client is not None:
            return
        cfg = self._config
        self._client = self._build_client()
        self._client.connect_async(cfg.host, cfg.port, keepalive=cfg.keepalive_secs)
        self._client.loop_start()

        ok = await asyncio.to_thread(self._connected.wait, cfg.connect_timeout_secs)
        if not ok:
            logger.warning(
                "mqtt_connect_pending",
                host=cfg.host,
                port=cfg.port,
                timeout_secs=cfg.connect_timeout_secs,
            )

    async def close(self) -> None:
        client = self._client
        if client is None:
            return
        self._client = None
        client.disconnect()
        await asyncio.to_thread(client.loop_stop)
        self._connected.clear()
        logger.info("mqtt_closed")

    async def publish(self, topic: str, payload: bytes, qos: int, retain: bool) -> None:
        client = self._client
        if client is None:
            raise TransientPublishError("MQTT client not started")
        if not client.is_connected():
            raise TransientPublishError("broker not connected")

        try:
            info = client.publish(topic, payload, qos=qos, retain=retain)
        except OSError as exc:
            raise TransientPublishError(f"publish failed: {exc}") from exc

        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise TransientPublishError(f"publish rejected: {mqtt.error_string(info.rc)}")

        timeout = self._config.ack_timeout_secs
        try:
            await asyncio.to_thread(info.wait_for_publish, timeout)
        except (RuntimeError, ValueError) as exc:
            raise TransientPublishError(str(exc)) from exc

        if not info.is_published():
            raise TransientPublishError(f"no acknowledgement within {timeout}s")
