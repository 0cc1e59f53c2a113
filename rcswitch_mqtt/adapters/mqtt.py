"""paho-mqtt adapter for the bridge.

paho runs its network loop on a thread of its own. Everything the bridge
reacts to (the CONNACK, later reconnects, inbound command messages) is handed
over to the asyncio loop that called :meth:`MQTTClient.connect`.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import functools
import logging
from typing import Any, Awaitable, Callable, List, Optional

import paho.mqtt.client as mqtt

from ..config import MqttConfig

LOGGER = logging.getLogger(__name__)
PAHO_LOGGER = logging.getLogger(f"{__name__}.paho")

MessageHandler = Callable[[str, bytes], Awaitable[None]]
ConnectionListener = Callable[[int], None]


class MQTTConnectionError(RuntimeError):
    """Raised when the broker cannot be reached or refuses an operation."""


def _reason_value(reason_code: Any) -> int:
    # paho 2.x hands out ReasonCode objects; MQTT 3.1.1 paths use ints.
    return int(getattr(reason_code, "value", reason_code))


def _log_handler_failure(topic: str, future: concurrent.futures.Future) -> None:
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        LOGGER.error("Handling MQTT message on %s failed: %r", topic, exc, exc_info=exc)


class MQTTClient:
    """Single broker session owned by the bridge.

    ``connect`` returns once the broker has acknowledged the session. paho then
    reconnects on its own after a dropped connection; every acknowledged
    (re)connection is reported to the connect listeners with its reason code,
    which is where the bridge restores its command subscriptions.
    """

    def __init__(self, config: MqttConfig, *, client_id: str) -> None:
        self.config = config
        self.client_id = client_id

        self._client: Optional[mqtt.Client] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._connack: Optional[asyncio.Future[int]] = None
        self._closed: Optional[asyncio.Event] = None
        self._message_handler: Optional[MessageHandler] = None
        self._connect_listeners: List[ConnectionListener] = []
        self._disconnect_listeners: List[ConnectionListener] = []

    def register_connect_handler(self, handler: ConnectionListener) -> None:
        self._connect_listeners.append(handler)

    def register_disconnect_handler(self, handler: ConnectionListener) -> None:
        self._disconnect_listeners.append(handler)

    def set_message_handler(self, handler: Optional[MessageHandler]) -> None:
        self._message_handler = handler

    async def connect(self, timeout: float = 30.0) -> None:
        loop = asyncio.get_running_loop()
        self._loop = loop
        self._connack = loop.create_future()
        self._closed = asyncio.Event()

        client = self._build_client()
        LOGGER.info(
            "Connecting to MQTT broker %s:%s as %s",
            self.config.broker_host,
            self.config.broker_port,
            self.client_id,
        )
        client.connect_async(
            self.config.broker_host, self.config.broker_port, self.config.keepalive
        )
        client.loop_start()

        try:
            rc = await asyncio.wait_for(self._connack, timeout=timeout)
        except asyncio.TimeoutError as exc:
            client.loop_stop()
            raise MQTTConnectionError(
                f"No CONNACK from {self.config.broker_host} within {timeout}s"
            ) from exc
        if rc != 0:
            client.loop_stop()
            raise MQTTConnectionError(f"MQTT broker rejected connection (rc={rc})")

        self._client = client

    async def disconnect(self, timeout: float = 5.0) -> None:
        client = self._client
        if client is None:
            return
        self._client = None

        assert self._closed is not None
        client.disconnect()
        try:
            await asyncio.wait_for(self._closed.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            LOGGER.warning("Timed out waiting for MQTT disconnect acknowledgement")
        finally:
            client.loop_stop()

    def publish(
        self, topic: str, payload: bytes, qos: int = 0, retain: bool = False
    ) -> None:
        client = self._require_client()
        info = client.publish(topic, payload, qos=qos, retain=retain)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise MQTTConnectionError(f"Publish to {topic} failed with rc={info.rc}")

    def subscribe(self, topic: str, qos: int = 0) -> None:
        client = self._require_client()
        result, _ = client.subscribe(topic, qos=qos)
        if result != mqtt.MQTT_ERR_SUCCESS:
            raise MQTTConnectionError(f"Subscribe to {topic} failed with rc={result}")

    def _require_client(self) -> mqtt.Client:
        if self._client is None:
            raise MQTTConnectionError("MQTT client not connected")
        return self._client

    def _build_client(self) -> mqtt.Client:
        client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id=self.client_id)
        client.enable_logger(PAHO_LOGGER)
        if self.config.username:
            client.username_pw_set(self.config.username, self.config.password)
        client.on_connect = self._on_connect
        client.on_disconnect = self._on_disconnect
        client.on_message = self._on_message
        return client

    # Runs on the event loop.
    def _handle_connack(self, rc: int) -> None:
        if self._connack is not None and not self._connack.done():
            self._connack.set_result(rc)

        if rc != 0:
            LOGGER.error("MQTT broker refused connection (rc=%s)", rc)
            return

        LOGGER.info("MQTT connected")
        if self._closed is not None:
            self._closed.clear()
        for listener in self._connect_listeners:
            listener(rc)

    # Runs on the event loop.
    def _handle_disconnect(self, rc: int) -> None:
        LOGGER.info("Disconnected from MQTT broker (rc=%s)", rc)
        if self._closed is not None:
            self._closed.set()
        for listener in self._disconnect_listeners:
            listener(rc)

    # paho network thread callbacks
    def _on_connect(
        self, client: mqtt.Client, userdata, flags, reason_code, properties=None
    ) -> None:
        if self._loop is not None:
            self._loop.call_soon_threadsafe(
                self._handle_connack, _reason_value(reason_code)
            )

    def _on_disconnect(
        self, client: mqtt.Client, userdata, flags, reason_code, properties=None
    ) -> None:
        if self._loop is not None:
            self._loop.call_soon_threadsafe(
                self._handle_disconnect, _reason_value(reason_code)
            )

    def _on_message(
        self, client: mqtt.Client, userdata, message: mqtt.MQTTMessage
    ) -> None:
        handler = self._message_handler
        loop = self._loop
        if handler is None or loop is None:
            return

        future = asyncio.run_coroutine_threadsafe(
            handler(message.topic, message.payload), loop
        )
        future.add_done_callback(functools.partial(_log_handler_failure, message.topic))
