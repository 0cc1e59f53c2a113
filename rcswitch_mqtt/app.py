"""Main application entry-point for rcswitch-mqtt."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import time
from enum import Enum
from typing import Callable, Optional

from . import constants
from .adapters import (
    MQTTClient,
    MQTTConnectionError,
    SerialLineTransport,
    SerialTransportError,
)
from .commands import CommandTranslator
from .config import BridgeConfig, load_config
from .events import EventTranslator
from .logging import configure_logging

LOGGER = logging.getLogger(__name__)


class BridgeState(str, Enum):
    COLD_START = "cold_start"
    AWAITING_MQTT = "awaiting_mqtt"
    AWAITING_SERIAL = "awaiting_serial"
    ACTIVE = "active"
    STOPPING = "stopping"


class RcSwitchBridgeApp:
    """Coordinates startup and shutdown of the serial/MQTT bridge.

    Startup is strictly ordered: the broker connection must be acknowledged
    before the serial port is opened, and command topics are only subscribed
    once the port is open. Transports can be injected for testing.
    """

    def __init__(
        self,
        config: Optional[BridgeConfig] = None,
        *,
        mqtt_client: Optional[MQTTClient] = None,
        serial: Optional[SerialLineTransport] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config or load_config()
        self._mqtt_client = mqtt_client or MQTTClient(
            self._config.mqtt, client_id=_build_client_id(self._config)
        )
        self._serial = serial or SerialLineTransport(self._config.serial)

        topics = self._config.mqtt.topics
        self._commands = CommandTranslator(topics, self._serial)
        self._events = EventTranslator(
            topics,
            self._mqtt_client,
            qos=self._config.mqtt.qos,
            retain=self._config.mqtt.retain,
            clock=clock,
        )

        self._state = BridgeState.COLD_START
        self._shutdown_event: Optional[asyncio.Event] = None
        self._reader_task: Optional[asyncio.Task[None]] = None
        self._subscribed = False
        self._stopping = False

    @property
    def state(self) -> BridgeState:
        return self._state

    async def run(self) -> bool:
        """Start the bridge and serve until shutdown is requested.

        Returns False when startup failed.
        """

        self._shutdown_event = asyncio.Event()

        LOGGER.info("%s starting with config: %s", constants.APP_NAME, self._config.path)
        started = await self._start_services()
        if not started:
            await self._stop_services()
            return False

        try:
            await self._idle_loop()
        except asyncio.CancelledError:
            LOGGER.info("%s received shutdown signal", constants.APP_NAME)
            raise
        finally:
            await self._stop_services()
        return True

    def request_stop(self) -> None:
        if self._shutdown_event is not None:
            self._shutdown_event.set()

    @classmethod
    def start(cls, config: Optional[BridgeConfig] = None) -> bool:
        config = config or load_config()
        configure_logging(
            config.logging.level,
            log_path=config.logging.path,
            log_network=config.logging.log_network,
        )
        instance = cls(config=config)
        try:
            return asyncio.run(instance.run())
        except KeyboardInterrupt:
            LOGGER.info("%s received shutdown signal", constants.APP_NAME)
            return True

    def _transition_state(self, state: BridgeState, *, detail: Optional[str] = None) -> None:
        if state == self._state:
            return

        previous = self._state
        self._state = state
        LOGGER.info(
            "Bridge state transition %s -> %s (%s)",
            previous.value,
            state.value,
            detail or state.value,
        )

    async def _idle_loop(self) -> None:
        if self._shutdown_event is None:
            self._shutdown_event = asyncio.Event()
        await self._shutdown_event.wait()

    async def _start_services(self) -> bool:
        self._stopping = False
        self._subscribed = False

        self._mqtt_client.register_connect_handler(self._on_mqtt_connect)
        self._mqtt_client.register_disconnect_handler(self._on_mqtt_disconnect)

        self._transition_state(BridgeState.AWAITING_MQTT, detail="connecting to mqtt broker")
        try:
            await self._mqtt_client.connect()
        except MQTTConnectionError as exc:
            LOGGER.error("MQTT connection failed: %s", exc)
            return False

        self._transition_state(
            BridgeState.AWAITING_SERIAL, detail="mqtt connected; opening serial port"
        )
        try:
            await self._serial.open()
        except SerialTransportError as exc:
            LOGGER.error("%s", exc)
            return False

        self._mqtt_client.set_message_handler(self._commands.handle_message)
        try:
            self._subscribe_commands()
        except MQTTConnectionError as exc:
            LOGGER.error("Subscribing to command topics failed: %s", exc)
            return False

        self._reader_task = asyncio.create_task(self._pump_serial())
        self._transition_state(BridgeState.ACTIVE, detail="bridging")
        return True

    async def _stop_services(self) -> None:
        self._transition_state(BridgeState.STOPPING, detail="shutdown requested")
        self._stopping = True

        if self._reader_task is not None:
            self._reader_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._reader_task
            self._reader_task = None

        self._mqtt_client.set_message_handler(None)
        await self._serial.close()
        await self._mqtt_client.disconnect()

        if self._shutdown_event is not None:
            self._shutdown_event.set()

    def _subscribe_commands(self) -> None:
        for topic in self._commands.subscriptions:
            self._mqtt_client.subscribe(topic, qos=self._config.mqtt.qos)
            LOGGER.info("Subscribed to %s", topic)
        self._subscribed = True

    async def _pump_serial(self) -> None:
        try:
            async for line in self._serial.lines():
                self._events.handle_line(line)
        except (SerialTransportError, OSError) as exc:
            LOGGER.error("Serial read failed: %s", exc)

        if not self._stopping:
            LOGGER.error("Serial stream ended; shutting down")
            self.request_stop()

    def _on_mqtt_connect(self, rc: int) -> None:
        # The first connection is handled by _start_services; later ones are
        # paho's automatic reconnects, which start without subscriptions.
        if not self._subscribed or self._stopping:
            return

        LOGGER.info("MQTT reconnected; restoring command subscriptions")
        try:
            self._subscribe_commands()
        except MQTTConnectionError as exc:
            LOGGER.error("Restoring command subscriptions failed: %s", exc)

    def _on_mqtt_disconnect(self, rc: int) -> None:
        if self._stopping:
            return
        LOGGER.warning("MQTT connection lost (rc=%s)", rc)


def _build_client_id(config: BridgeConfig) -> str:
    if config.mqtt.client_id:
        return config.mqtt.client_id
    return f"{constants.APP_NAME}-{os.getpid()}"
